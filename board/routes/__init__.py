from fastapi import APIRouter
from .posts import router as posts_router
from .ws import router as ws_router

router = APIRouter()
router.include_router(posts_router, prefix='/posts', tags=['posts'])
router.include_router(ws_router, prefix='/ws', tags=['ws'])
