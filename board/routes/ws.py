from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from ..schemas.posts import PostIn, PostIdIn
from ..view import BoardView
from .deps import board_backend, board_variant
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


async def handle_action(view: BoardView, data: dict):
    if not isinstance(data, dict):
        raise ValueError('action must be an object')
    action = data.get('action')
    if action == 'submit':
        payload = PostIn.model_validate(data)
        view.composer.content = payload.content
        view.composer.name = payload.username or ''
        if payload.parent_id is not None:
            view.start_reply(payload.parent_id)
        await view.submit()
    elif action == 'like':
        await view.like(PostIdIn.model_validate(data).id)
    elif action == 'delete':
        await view.delete(PostIdIn.model_validate(data).id)
    elif action == 'reply':
        view.start_reply(PostIdIn.model_validate(data).id)
        await view.render()
    elif action == 'cancel_reply':
        view.cancel_reply()
        await view.render()
    else:
        logger.warning(f"Unknown feed action {action!r}")


@router.websocket('/feed')
async def feed_ws(websocket: WebSocket):
    await websocket.accept()

    async def push(rows):
        await websocket.send_json({'posts': rows, 'reply_to': view.composer.reply_to})

    view = BoardView(board_backend(websocket), board_variant(), on_render=push)
    await view.mount()
    try:
        while True:
            data = await websocket.receive_json()
            try:
                await handle_action(view, data)
            except (KeyError, ValueError, ValidationError) as e:
                logger.warning(f"Rejected feed action {data!r}: {e}")
                await websocket.send_json({'alert': 'invalid action'})
                continue
            while view.alerts:
                await websocket.send_json({'alert': view.alerts.pop(0)})
    except WebSocketDisconnect:
        pass
    finally:
        view.unmount()
