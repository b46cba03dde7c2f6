from typing import Callable, Dict, List, Set, Tuple
import logging
from .schemas.posts import ChangeEvent, EventType

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


class Channel:
    """A named registration on the change feed with its event bindings"""

    def __init__(self, feed: 'ChangeFeed', name: str):
        self.feed = feed
        self.name = name
        self.bindings: List[Tuple[str, EventType, ChangeCallback]] = []
        self.joined = False

    def on(self, table: str, event: EventType, callback: ChangeCallback) -> 'Channel':
        self.bindings.append((table, EventType(event), callback))
        return self

    async def subscribe(self) -> 'Channel':
        self.feed.join(self)
        return self

    def deliver(self, change: ChangeEvent):
        for table, event, callback in self.bindings:
            if table != change.table:
                continue
            if event is not EventType.ALL and event is not change.event:
                continue
            callback(change)


class ChangeFeed:
    def __init__(self):
        self.channels: Dict[str, Set[Channel]] = {}

    def channel(self, name: str) -> Channel:
        return Channel(self, name)

    def join(self, channel: Channel):
        self.channels.setdefault(channel.name, set()).add(channel)
        channel.joined = True
        logger.debug(f"Channel {channel.name} joined")

    def remove_channel(self, channel: Channel) -> bool:
        joined = self.channels.get(channel.name, set())
        if channel not in joined:
            return False
        joined.discard(channel)
        if not joined:
            self.channels.pop(channel.name, None)
        channel.joined = False
        logger.debug(f"Channel {channel.name} removed")
        return True

    async def publish(self, change: ChangeEvent):
        for name, joined in list(self.channels.items()):
            for channel in list(joined):
                try:
                    channel.deliver(change)
                except Exception:
                    logger.exception(f"Change delivery to channel {name} failed")

    @property
    def subscriber_count(self) -> int:
        return sum(len(joined) for joined in self.channels.values())


# Change feed of this process, fed by every committed write in crud
feed = ChangeFeed()
