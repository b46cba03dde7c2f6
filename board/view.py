from datetime import datetime
from typing import Awaitable, Callable, List, Optional
import logging
from .backend import Backend
from .errors import SubmitError
from .schemas.posts import PostOut
from .store import FeedStore, Variant
from .subscription import ChangeSubscription, ReloadPolicy

logger = logging.getLogger(__name__)


def format_timestamp(ts: datetime) -> str:
    """Render like 2024/1/5 9:03:07 in local time"""
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    return f"{ts.year}/{ts.month}/{ts.day} {ts.hour}:{ts.minute:02d}:{ts.second:02d}"


class Composer:
    def __init__(self):
        self.content = ''
        self.name = ''
        self.reply_to: Optional[int] = None

    def clear(self):
        self.content = ''
        self.reply_to = None


class BoardView:
    """
    One mounted message board. Owns its post snapshot and its change
    subscription; both live exactly as long as the view is mounted.
    """

    def __init__(
        self,
        backend: Backend,
        variant: Variant = Variant.THREADED,
        policy: ReloadPolicy = ReloadPolicy.FULL,
        on_render: Optional[Callable[[List[dict]], Awaitable[None]]] = None,
    ):
        self.store = FeedStore(backend, variant)
        self.subscription = ChangeSubscription(backend, self.store, policy=policy, on_refresh=self.render)
        self.composer = Composer()
        self.alerts: List[str] = []
        self.on_render = on_render
        self.mounted = False

    async def mount(self):
        self.mounted = True
        await self.store.load_all()
        await self.subscription.activate()
        await self.render()

    def unmount(self):
        self.mounted = False
        self.subscription.deactivate()
        self.store.close()

    async def __aenter__(self):
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.unmount()

    async def render(self):
        if self.mounted and self.on_render is not None:
            await self.on_render(self.rendered())

    def rendered(self) -> List[dict]:
        return [
            {
                'id': post.id,
                'username': post.username,
                'content': post.content,
                'created_at': format_timestamp(post.created_at),
                'likes': post.likes,
                'parent_id': post.parent_id,
                'is_reply': post.is_reply,
            }
            for post in self.store.display()
        ]

    def start_reply(self, post_id: int):
        self.composer.reply_to = post_id

    def cancel_reply(self):
        self.composer.reply_to = None

    async def submit(self) -> Optional[PostOut]:
        composer = self.composer
        if not composer.content.strip():
            return None
        try:
            created = await self.store.submit(composer.content, composer.name, composer.reply_to)
        except SubmitError as e:
            self.alerts.append(str(e))
            logger.error(f"Submit failed: {e}")
            return None
        if created is not None:
            composer.clear()
        return created

    async def like(self, post_id: int):
        post = self.store.find(post_id)
        if post is None:
            logger.debug(f"Like for unknown post {post_id}")
            return
        await self.store.like(post.id, post.likes)

    async def delete(self, post_id: int):
        await self.store.delete(post_id)
