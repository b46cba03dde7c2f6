"""
Backend collaborator
The hosted data service the feed talks to: a query surface over the posts
table plus a change feed. Everything here may fail with BackendError.
"""
from typing import Any, Dict, List
import logging
from sqlalchemy.exc import SQLAlchemyError
from . import config, crud
from .errors import BackendError
from .realtime import Channel, ChangeFeed, feed

logger = logging.getLogger(__name__)


class Backend:
    """Interface of the backend service used by the feed store"""

    async def select_posts(self, ascending: bool = True) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def insert_post(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def update_likes(self, post_id: int, likes: int) -> None:
        raise NotImplementedError

    async def delete_post(self, post_id: int) -> None:
        raise NotImplementedError

    def channel(self, name: str) -> Channel:
        raise NotImplementedError

    def remove_channel(self, channel: Channel) -> None:
        raise NotImplementedError


class LocalBackend(Backend):
    """Posts table reached through SQLAlchemy, changes through the process feed"""

    def __init__(self, change_feed: ChangeFeed = feed):
        self.feed = change_feed

    async def select_posts(self, ascending: bool = True):
        try:
            posts = await crud.list_posts(ascending)
        except SQLAlchemyError as e:
            raise BackendError(f"select failed: {e}") from e
        return [crud.row_dict(post) for post in posts]

    async def insert_post(self, row):
        try:
            post = await crud.create_post(row['content'], row['username'], row.get('parent_id'), self.feed)
        except SQLAlchemyError as e:
            raise BackendError(f"insert failed: {e}") from e
        return crud.row_dict(post)

    async def update_likes(self, post_id, likes):
        try:
            await crud.set_likes(post_id, likes, self.feed)
        except SQLAlchemyError as e:
            raise BackendError(f"update failed: {e}") from e

    async def delete_post(self, post_id):
        try:
            await crud.delete_post(post_id, self.feed)
        except SQLAlchemyError as e:
            raise BackendError(f"delete failed: {e}") from e

    def channel(self, name):
        return self.feed.channel(name)

    def remove_channel(self, channel):
        self.feed.remove_channel(channel)


def get_backend() -> Backend:
    """Build the backend selected by BOARD_BACKEND"""
    if config.BACKEND == 'rest':
        from .rest import RestBackend
        return RestBackend(config.BOARD_URL, config.BOARD_ANON_KEY)
    if config.BACKEND != 'local':
        logger.warning(f"Unknown backend {config.BACKEND!r}, using local")
    return LocalBackend()
