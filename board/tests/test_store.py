import asyncio
from datetime import timedelta
import pytest

from board.errors import SubmitError
from board.schemas.posts import ChangeEvent, EventType, PostOut
from board.store import FeedStore, Variant, parse_rows, thread_order
from conftest import BASE_TIME, FakeBackend, make_row


def posts(*rows):
    return [PostOut.model_validate(row) for row in rows]


def ids(items):
    return [p.id for p in items]


class TestThreadOrder:

    def test_replies_follow_their_parent(self):
        p1, p2, r1, r2 = posts(
            make_row(1, minutes=1),
            make_row(2, minutes=2),
            make_row(3, parent_id=1, minutes=3),
            make_row(4, parent_id=1, minutes=4),
        )
        assert ids(thread_order([p1, p2, r1, r2])) == [1, 3, 4, 2]

    def test_replies_sorted_oldest_first_regardless_of_input(self):
        p1, r_late, r_early = posts(
            make_row(1, minutes=1),
            make_row(2, parent_id=1, minutes=9),
            make_row(3, parent_id=1, minutes=5),
        )
        assert ids(thread_order([p1, r_late, r_early])) == [1, 3, 2]

    def test_top_level_order_is_kept(self):
        newer, older = posts(make_row(1, minutes=5), make_row(2, minutes=1))
        assert ids(thread_order([newer, older])) == [1, 2]

    def test_idempotent(self):
        items = posts(
            make_row(1, minutes=1),
            make_row(2, minutes=2),
            make_row(3, parent_id=2, minutes=3),
            make_row(4, parent_id=1, minutes=4),
            make_row(5, parent_id=3, minutes=5),
        )
        once = thread_order(items)
        assert ids(thread_order(once)) == ids(once)

    def test_reply_to_reply_is_not_displayed(self):
        # known limitation: only direct replies of top-level posts are inlined
        items = posts(
            make_row(1, minutes=1),
            make_row(2, parent_id=1, minutes=2),
            make_row(3, parent_id=2, minutes=3),
        )
        assert ids(thread_order(items)) == [1, 2]

    def test_orphaned_replies_are_not_displayed(self):
        items = posts(make_row(2, minutes=1), make_row(3, parent_id=1, minutes=2))
        assert ids(thread_order(items)) == [2]


def test_parse_rows_drops_malformed():
    rows = [make_row(1), {'content': 'no id'}, dict(make_row(2), likes='many'), {**make_row(3), 'username': None}]
    assert ids(parse_rows(rows)) == [1]


def test_parse_rows_accepts_name_alias():
    row = make_row(1)
    row['name'] = row.pop('username')
    assert parse_rows([row])[0].username == 'tester'


class TestLoadAll:

    @pytest.mark.asyncio
    async def test_threaded_is_oldest_first(self):
        backend = FakeBackend([make_row(1, minutes=1), make_row(2, minutes=2)])
        store = FeedStore(backend, Variant.THREADED)
        assert ids(await store.load_all()) == [1, 2]

    @pytest.mark.asyncio
    async def test_flat_is_newest_first(self):
        backend = FakeBackend([make_row(1, minutes=1), make_row(2, minutes=2), make_row(3, parent_id=1, minutes=3)])
        store = FeedStore(backend, Variant.FLAT)
        await store.load_all()
        assert ids(store.display()) == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_snapshot(self):
        backend = FakeBackend([make_row(1)])
        store = FeedStore(backend)
        await store.load_all()
        backend.rows.clear()
        backend.fail.add('select')
        assert ids(await store.load_all()) == [1]

    @pytest.mark.asyncio
    async def test_superseded_response_is_discarded(self):
        backend = FakeBackend([make_row(1)])
        store = FeedStore(backend)
        gate = asyncio.Event()
        backend.select_gate = gate
        slow = asyncio.create_task(store.load_all())
        await asyncio.sleep(0)

        backend.rows[2] = make_row(2, minutes=1)
        assert ids(await store.load_all()) == [1, 2]

        gate.set()
        await slow
        assert ids(store.posts) == [1, 2]

    @pytest.mark.asyncio
    async def test_response_after_close_is_discarded(self):
        backend = FakeBackend([make_row(1)])
        store = FeedStore(backend)
        gate = asyncio.Event()
        backend.select_gate = gate
        pending = asyncio.create_task(store.load_all())
        await asyncio.sleep(0)
        store.close()
        gate.set()
        await pending
        assert store.posts == []


class TestSubmit:

    @pytest.mark.asyncio
    @pytest.mark.parametrize('content', ['', '   ', '\n\t'])
    async def test_blank_content_is_a_noop(self, backend, content):
        store = FeedStore(backend)
        assert await store.submit(content) is None
        assert backend.calls == []
        assert backend.rows == {}
        assert store.posts == []

    @pytest.mark.asyncio
    async def test_post_appears_after_reload(self, backend):
        store = FeedStore(backend)
        created = await store.submit('first!')
        assert store.posts == []

        await store.load_all()
        assert len(store.posts) == 1
        post = store.posts[0]
        assert post.id == created.id
        assert post.likes == 0
        assert post.parent_id is None
        assert post.username == store.anonymous_name

    @pytest.mark.asyncio
    async def test_reply_keeps_parent(self, backend):
        store = FeedStore(backend)
        parent = await store.submit('parent', 'alice')
        await store.submit('child', '  bob ', parent.id)
        await store.load_all()
        assert [(p.username, p.parent_id) for p in store.display()] == [('alice', None), ('bob', parent.id)]

    @pytest.mark.asyncio
    async def test_flat_insert_failure_is_raised(self, backend):
        backend.fail.add('insert')
        store = FeedStore(backend, Variant.FLAT)
        with pytest.raises(SubmitError):
            await store.submit('hello')

    @pytest.mark.asyncio
    async def test_threaded_insert_failure_is_dropped(self, backend):
        backend.fail.add('insert')
        store = FeedStore(backend, Variant.THREADED)
        assert await store.submit('hello') is None


class TestLikeAndDelete:

    @pytest.mark.asyncio
    async def test_like_sets_known_value_plus_one(self):
        backend = FakeBackend([make_row(1, likes=3)])
        await FeedStore(backend).like(1, 3)
        assert backend.rows[1]['likes'] == 4

    @pytest.mark.asyncio
    async def test_concurrent_likes_lose_an_update(self):
        # documented behaviour: both callers saw 3, both write 4
        backend = FakeBackend([make_row(1, likes=3)])
        first, second = FeedStore(backend), FeedStore(backend)
        await asyncio.gather(first.like(1, 3), second.like(1, 3))
        assert backend.rows[1]['likes'] == 4

    @pytest.mark.asyncio
    async def test_update_and_delete_failures_are_dropped(self):
        backend = FakeBackend([make_row(1, likes=3)])
        backend.fail.update({'update', 'delete'})
        store = FeedStore(backend)
        await store.like(1, 3)
        await store.delete(1)
        assert backend.rows[1]['likes'] == 3

    @pytest.mark.asyncio
    async def test_delete_leaves_replies_but_hides_them(self):
        backend = FakeBackend([
            make_row(1, minutes=1),
            make_row(2, minutes=2),
            make_row(3, parent_id=1, minutes=3),
            make_row(4, parent_id=1, minutes=4),
        ])
        store = FeedStore(backend)
        await store.delete(1)
        await store.load_all()
        assert ids(store.posts) == [2, 3, 4]
        assert ids(store.display()) == [2]


class TestApply:

    def event(self, kind, row, seconds=0):
        field = 'old' if kind is EventType.DELETE else 'new'
        return ChangeEvent(event=kind, **{field: row}, commit_timestamp=BASE_TIME + timedelta(seconds=seconds))

    def test_insert_update_delete(self, backend):
        store = FeedStore(backend)
        assert store.apply(self.event(EventType.INSERT, make_row(1), 1))
        assert store.apply(self.event(EventType.UPDATE, make_row(1, likes=2), 2))
        assert store.posts[0].likes == 2
        assert store.apply(self.event(EventType.DELETE, make_row(1), 3))
        assert store.posts == []

    def test_redelivery_is_idempotent(self, backend):
        store = FeedStore(backend)
        insert = self.event(EventType.INSERT, make_row(1), 1)
        store.apply(insert)
        store.apply(insert)
        assert ids(store.posts) == [1]

    def test_older_update_is_ignored(self, backend):
        store = FeedStore(backend)
        store.apply(self.event(EventType.UPDATE, make_row(1, likes=5), 5))
        assert not store.apply(self.event(EventType.UPDATE, make_row(1, likes=4), 4))
        assert store.posts[0].likes == 5

    def test_late_insert_after_delete_is_ignored(self, backend):
        store = FeedStore(backend)
        store.apply(self.event(EventType.DELETE, make_row(1), 2))
        assert not store.apply(self.event(EventType.INSERT, make_row(1), 2))
        assert store.posts == []

    def test_merge_keeps_display_order(self, backend):
        store = FeedStore(backend)
        store.apply(self.event(EventType.INSERT, make_row(3, parent_id=1, minutes=3), 1))
        store.apply(self.event(EventType.INSERT, make_row(2, minutes=2), 2))
        store.apply(self.event(EventType.INSERT, make_row(1, minutes=1), 3))
        assert ids(store.display()) == [1, 3, 2]

    def test_closed_store_ignores_events(self, backend):
        store = FeedStore(backend)
        store.close()
        assert not store.apply(self.event(EventType.INSERT, make_row(1), 1))
        assert store.posts == []

    def test_partial_update_merges_into_known_post(self, backend):
        store = FeedStore(backend)
        store.apply(self.event(EventType.INSERT, make_row(1, content='kept', likes=0), 1))
        assert store.apply(self.event(EventType.UPDATE, {'id': 1, 'likes': 7}, 2))
        post = store.find(1)
        assert (post.content, post.likes) == ('kept', 7)

    def test_partial_update_for_unknown_post_is_dropped(self, backend):
        store = FeedStore(backend)
        assert not store.apply(self.event(EventType.UPDATE, {'id': 1, 'likes': 7}, 1))
        assert store.posts == []

    @pytest.mark.asyncio
    async def test_full_load_forgets_deleted_ids(self):
        backend = FakeBackend([make_row(1), make_row(2, minutes=1)])
        store = FeedStore(backend)
        await store.load_all()
        store.apply(self.event(EventType.UPDATE, make_row(2, likes=1, minutes=1), 1))
        store.apply(self.event(EventType.DELETE, make_row(1), 2))
        assert set(store._last_change) == {1, 2}

        del backend.rows[1]
        await store.load_all()
        assert set(store._last_change) == {2}
        assert store._deleted == set()
