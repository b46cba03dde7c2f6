import asyncio
import itertools
from datetime import datetime, timedelta, timezone
import pytest
import pytest_asyncio

from board import models
from board.errors import BackendError
from board.realtime import ChangeFeed
from board.schemas.posts import ChangeEvent, EventType

BASE_TIME = datetime(2024, 1, 5, 9, 0, tzinfo=timezone.utc)


def make_row(id, content='hello', parent_id=None, minutes=0, likes=0, username='tester'):
    return {
        'id': id,
        'content': content,
        'username': username,
        'created_at': BASE_TIME + timedelta(minutes=minutes),
        'parent_id': parent_id,
        'likes': likes,
    }


class FakeBackend:
    """In-memory stand-in for the hosted service, with its own change feed"""

    def __init__(self, rows=None):
        self.rows = {row['id']: dict(row) for row in rows or []}
        self.feed = ChangeFeed()
        self.calls = []
        self.fail = set()
        self.select_gate = None
        self.ids = itertools.count(max(self.rows, default=0) + 1)
        self.clock = itertools.count(len(self.rows) + 1)

    def _check(self, op):
        self.calls.append(op)
        if op in self.fail:
            raise BackendError(f'{op} unavailable')

    async def select_posts(self, ascending=True):
        self._check('select')
        snapshot = [dict(row) for row in self.rows.values()]
        if self.select_gate is not None:
            gate, self.select_gate = self.select_gate, None
            await gate.wait()
        return sorted(snapshot, key=lambda r: (r['created_at'], r['id']), reverse=not ascending)

    async def insert_post(self, row):
        self._check('insert')
        new = dict(row, id=next(self.ids), created_at=BASE_TIME + timedelta(minutes=next(self.clock)))
        self.rows[new['id']] = new
        await self.feed.publish(ChangeEvent(event=EventType.INSERT, new=dict(new)))
        return dict(new)

    async def update_likes(self, post_id, likes):
        self._check('update')
        if post_id in self.rows:
            old = dict(self.rows[post_id])
            self.rows[post_id]['likes'] = likes
            await self.feed.publish(ChangeEvent(event=EventType.UPDATE, new=dict(self.rows[post_id]), old=old))

    async def delete_post(self, post_id):
        self._check('delete')
        old = self.rows.pop(post_id, None)
        if old is not None:
            await self.feed.publish(ChangeEvent(event=EventType.DELETE, old=old))

    def channel(self, name):
        return self.feed.channel(name)

    def remove_channel(self, channel):
        self.feed.remove_channel(channel)


async def settle(rounds=10):
    """Let queued callbacks and consumer tasks run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def database(tmp_path):
    models.bind(f'sqlite+aiosqlite:///{tmp_path / "board.db"}')
    await models.init_db()
    yield models.engine
    await models.engine.dispose()
