from fastapi import APIRouter, Depends, HTTPException
from ..schemas.posts import PostIn, PostOut, LikeIn, SubmitOut
from ..backend import Backend
from ..errors import SubmitError
from ..store import FeedStore, Variant
from .deps import board_backend, board_variant
from typing import List

router = APIRouter()


@router.get('/', response_model=List[PostOut])
async def list_all(backend: Backend = Depends(board_backend), variant: Variant = Depends(board_variant)):
    store = FeedStore(backend, variant)
    await store.load_all()
    return store.display()


@router.post('/', response_model=SubmitOut)
async def submit(payload: PostIn, backend: Backend = Depends(board_backend), variant: Variant = Depends(board_variant)):
    store = FeedStore(backend, variant)
    try:
        post = await store.submit(payload.content, payload.username, payload.parent_id)
    except SubmitError as e:
        raise HTTPException(502, str(e))
    return {'post': post}


@router.post('/{post_id}/like')
async def like(post_id: int, payload: LikeIn, backend: Backend = Depends(board_backend)):
    await FeedStore(backend).like(post_id, payload.current_likes)
    return {'id': post_id, 'likes': payload.current_likes + 1}


@router.delete('/{post_id}')
async def delete(post_id: int, backend: Backend = Depends(board_backend)):
    await FeedStore(backend).delete(post_id)
    return {'id': post_id, 'deleted': True}
