"""
Change Subscription Adapter
Bridges the backend change feed into feed store refreshes for as long as
the owning view is mounted. The channel callback only enqueues; a single
consumer task does the reloading.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Callable, List, Optional
import logging
from .backend import Backend
from .core import CHANGE_EVENTS
from .errors import BackendError
from .realtime import Channel
from .schemas.posts import ChangeEvent, EventType
from .store import FeedStore, Variant

logger = logging.getLogger(__name__)

CHANNEL_NAME = 'realtime-posts'
TABLE = 'posts'


class SubscriptionState(Enum):
    UNSUBSCRIBED = 'unsubscribed'
    SUBSCRIBING = 'subscribing'
    SUBSCRIBED = 'subscribed'


class ReloadPolicy(Enum):
    FULL = 'full'
    MERGE = 'merge'


def default_events(variant: Variant) -> List[EventType]:
    # likes and deletes only propagate when every event type is watched
    if variant is Variant.FLAT:
        return [EventType.INSERT]
    return [EventType.ALL]


class ChangeSubscription:
    def __init__(
        self,
        backend: Backend,
        store: FeedStore,
        events: Optional[List[EventType]] = None,
        policy: ReloadPolicy = ReloadPolicy.FULL,
        on_refresh: Optional[Callable[[], Awaitable[None]]] = None,
        table: str = TABLE,
        channel_name: str = CHANNEL_NAME,
    ):
        self.backend = backend
        self.store = store
        self.events = events or default_events(store.variant)
        self.policy = policy
        self.on_refresh = on_refresh
        self.table = table
        self.channel_name = channel_name
        self.state = SubscriptionState.UNSUBSCRIBED
        self.channel: Optional[Channel] = None
        self.queue: Optional[asyncio.Queue] = None
        self.consumer: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.state is SubscriptionState.SUBSCRIBED

    async def activate(self) -> bool:
        """Open the channel and start the consumer. Returns whether it is subscribed."""
        if self.state is not SubscriptionState.UNSUBSCRIBED:
            return self.active
        self.state = SubscriptionState.SUBSCRIBING
        self.queue = asyncio.Queue()
        channel = self.backend.channel(self.channel_name)
        for event in self.events:
            channel.on(self.table, event, self._on_change)
        self.channel = channel
        try:
            await channel.subscribe()
        except BackendError as e:
            logger.error(f"Subscribing to {self.table} changes failed: {e}")
            self.deactivate()
            return False
        if self.state is not SubscriptionState.SUBSCRIBING:
            # deactivated while the join was in flight
            return False
        self.consumer = asyncio.create_task(self._consume())
        self.state = SubscriptionState.SUBSCRIBED
        logger.info(f"Subscribed to {self.table} changes ({', '.join(e.value for e in self.events)})")
        return True

    def _on_change(self, change: ChangeEvent):
        if self.state is SubscriptionState.UNSUBSCRIBED or self.queue is None:
            return
        CHANGE_EVENTS.labels(event=change.event.value).inc()
        self.queue.put_nowait(change)

    async def _consume(self):
        queue = self.queue
        while True:
            change = await queue.get()
            if not self.active:
                break
            try:
                if self.policy is ReloadPolicy.FULL:
                    await self.store.load_all()
                else:
                    self.store.apply(change)
                if self.on_refresh is not None and self.active:
                    await self.on_refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Refresh after {change.event.value} event failed")

    def deactivate(self):
        """Release the channel. Idempotent, never raises."""
        channel, self.channel = self.channel, None
        consumer, self.consumer = self.consumer, None
        self.state = SubscriptionState.UNSUBSCRIBED
        self.queue = None
        if channel is not None:
            try:
                self.backend.remove_channel(channel)
            except Exception as e:
                logger.warning(f"Releasing channel {channel.name} failed: {e}")
        if consumer is not None and not consumer.done():
            consumer.cancel()
