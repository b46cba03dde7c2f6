"""
Feed Store
Owns the local snapshot of posts for one view and produces the display order.
The backend owns the durable records; this snapshot is disposable.
"""
from collections import defaultdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set
import logging
from pydantic import ValidationError
from . import config
from .backend import Backend
from .core import FEED_RELOADS, STALE_LOADS
from .errors import BackendError, SubmitError
from .schemas.posts import ChangeEvent, EventType, PostOut

logger = logging.getLogger(__name__)


class Variant(str, Enum):
    """Display policy: flat is newest first, threaded is oldest first with replies inlined"""
    FLAT = 'flat'
    THREADED = 'threaded'


def _created(post: PostOut) -> datetime:
    ts = post.created_at
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def sort_posts(posts: Iterable[PostOut], ascending: bool = True) -> List[PostOut]:
    return sorted(posts, key=lambda p: (_created(p), p.id), reverse=not ascending)


def thread_order(posts: List[PostOut]) -> List[PostOut]:
    """
    Emit every top-level post followed by its direct replies, oldest reply
    first. Top-level posts keep their input order. Only one level is
    inlined: a reply to a reply matches no top-level id and is not shown,
    and neither is a reply whose parent is gone.
    """
    replies = defaultdict(list)
    for post in posts:
        if post.parent_id is not None:
            replies[post.parent_id].append(post)

    ordered = []
    for post in posts:
        if post.parent_id is not None:
            continue
        ordered.append(post)
        ordered.extend(sort_posts(replies.get(post.id, [])))
    return ordered


def parse_rows(rows: Iterable[Dict[str, Any]]) -> List[PostOut]:
    """Validate raw rows, dropping the malformed ones"""
    posts = []
    for row in rows:
        try:
            posts.append(PostOut.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Dropping malformed post row {row!r}: {e.error_count()} errors")
    return posts


class FeedStore:
    def __init__(self, backend: Backend, variant: Variant = Variant.THREADED, anonymous_name: Optional[str] = None):
        self.backend = backend
        self.variant = Variant(variant)
        self.anonymous_name = anonymous_name or config.ANONYMOUS_NAME
        self.posts: List[PostOut] = []
        self.active = True
        self._issued = 0
        self._applied = 0
        self._last_change: Dict[int, datetime] = {}
        self._deleted: Set[int] = set()

    @property
    def ascending(self) -> bool:
        return self.variant is Variant.THREADED

    def display(self) -> List[PostOut]:
        if self.variant is Variant.THREADED:
            return thread_order(self.posts)
        return list(self.posts)

    def find(self, post_id: int) -> Optional[PostOut]:
        return next((p for p in self.posts if p.id == post_id), None)

    async def load_all(self) -> List[PostOut]:
        """
        Replace the snapshot with every post from the backend.
        On failure the previous snapshot stays. A response that resolves
        after a later-issued load has already been applied is discarded.
        """
        self._issued += 1
        ticket = self._issued
        try:
            rows = await self.backend.select_posts(ascending=self.ascending)
        except BackendError as e:
            logger.error(f"Error fetching posts: {e}")
            return self.posts

        if not self.active:
            logger.debug("Discarding post list received after close")
            return self.posts
        if ticket < self._applied:
            STALE_LOADS.inc()
            logger.debug(f"Discarding load {ticket}, load {self._applied} already applied")
            return self.posts

        self._applied = ticket
        self.posts = sort_posts(parse_rows(rows), self.ascending)
        for post_id in self._deleted:
            self._last_change.pop(post_id, None)
        self._deleted.clear()
        FEED_RELOADS.inc()
        return self.posts

    def apply(self, change: ChangeEvent) -> bool:
        """
        Merge a single change event into the snapshot. Safe under
        redelivery and reordering: events older than the last one applied
        for the same id are ignored, as are inserts of ids deleted locally.
        Returns whether the snapshot changed.
        """
        if not self.active:
            return False
        post_id = change.record_id
        if post_id is None:
            logger.warning(f"Ignoring {change.event.value} event without an id")
            return False

        last = self._last_change.get(post_id)
        if last is not None and change.commit_timestamp < last:
            return False
        self._last_change[post_id] = change.commit_timestamp

        if change.event is EventType.DELETE:
            self._deleted.add(post_id)
            before = len(self.posts)
            self.posts = [p for p in self.posts if p.id != post_id]
            return len(self.posts) != before

        if post_id in self._deleted:
            return False
        row = change.new or {}
        current = self.find(post_id)
        if change.event is EventType.UPDATE and current is not None:
            # updates may carry only the changed columns
            row = {**current.model_dump(), **row}
        parsed = parse_rows([row])
        if not parsed:
            return False
        post = parsed[0]
        posts = [p for p in self.posts if p.id != post_id]
        posts.append(post)
        self.posts = sort_posts(posts, self.ascending)
        return True

    async def submit(self, content: str, author: Optional[str] = None, parent_id: Optional[int] = None) -> Optional[PostOut]:
        """
        Insert a new post. Blank content is ignored without touching the
        backend. Nothing is added locally; the post shows up with the next
        reload.
        """
        if not content or not content.strip():
            return None
        row = {
            'content': content,
            'username': (author or '').strip() or self.anonymous_name,
            'parent_id': parent_id,
            'likes': 0,
        }
        try:
            created = await self.backend.insert_post(row)
        except BackendError as e:
            if self.variant is Variant.FLAT:
                raise SubmitError(f"投稿に失敗しました: {e}") from e
            logger.warning(f"Insert failed: {e}")
            return None
        posts = parse_rows([created])
        return posts[0] if posts else None

    async def like(self, post_id: int, current_likes: int):
        # no read-modify-write: concurrent likes may lose an increment
        try:
            await self.backend.update_likes(post_id, current_likes + 1)
        except BackendError as e:
            logger.warning(f"Like of post {post_id} failed: {e}")

    async def delete(self, post_id: int):
        try:
            await self.backend.delete_post(post_id)
        except BackendError as e:
            logger.warning(f"Delete of post {post_id} failed: {e}")

    def close(self):
        self.active = False
