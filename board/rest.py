"""
REST backend for a hosted PostgREST-style data service.
Writes go over HTTP; every successful write is then announced on the
ChangeFeed handed in, which is what subscribed views listen to.
"""
from typing import Optional
import logging
import httpx
from .backend import Backend
from .errors import BackendError
from .realtime import ChangeFeed, feed
from .schemas.posts import ChangeEvent, EventType

logger = logging.getLogger(__name__)


def _json_rows(response: httpx.Response) -> list:
    # 204 No Content when the service ignores the Prefer header
    if not response.content:
        return []
    rows = response.json()
    return rows if isinstance(rows, list) else []


class RestBackend(Backend):
    def __init__(self, url: str, anon_key: str, change_feed: ChangeFeed = feed,
                 transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.feed = change_feed
        self.client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={'apikey': anon_key, 'Authorization': f'Bearer {anon_key}'},
            transport=transport,
            timeout=timeout,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BackendError(f"{method} {path} returned {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {path} failed: {e}") from e
        return response

    async def select_posts(self, ascending=True):
        direction = 'asc' if ascending else 'desc'
        response = await self._request('GET', '/posts', params={'select': '*', 'order': f'created_at.{direction},id.{direction}'})
        return response.json()

    async def insert_post(self, row):
        response = await self._request('POST', '/posts', json=[row], headers={'Prefer': 'return=representation'})
        rows = response.json()
        if not rows:
            raise BackendError("insert returned no row")
        await self.feed.publish(ChangeEvent(event=EventType.INSERT, new=rows[0]))
        return rows[0]

    async def update_likes(self, post_id, likes):
        response = await self._request('PATCH', '/posts', params={'id': f'eq.{post_id}'}, json={'likes': likes},
                                       headers={'Prefer': 'return=representation'})
        rows = _json_rows(response)
        new = rows[0] if rows else {'id': post_id, 'likes': likes}
        await self.feed.publish(ChangeEvent(event=EventType.UPDATE, new=new))

    async def delete_post(self, post_id):
        await self._request('DELETE', '/posts', params={'id': f'eq.{post_id}'})
        await self.feed.publish(ChangeEvent(event=EventType.DELETE, old={'id': post_id}))

    def channel(self, name):
        return self.feed.channel(name)

    def remove_channel(self, channel):
        self.feed.remove_channel(channel)

    async def close(self):
        await self.client.aclose()
