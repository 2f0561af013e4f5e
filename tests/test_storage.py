# /tests/test_storage.py
# Tests for the document store backends

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from pymongo.errors import PyMongoError

from boardchat import MemoryDocumentStore, MongoDBDocumentStore, NotFoundError, SQLiteDocumentStore
from boardchat.storage import ASCENDING, DESCENDING, matches

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    if request.param == "memory":
        backend = MemoryDocumentStore()
    else:
        backend = SQLiteDocumentStore(db_path=str(tmp_path / "docs.db"))
    async with backend:
        yield backend


# ========== Filter helpers ==========

class TestMatches:
    def test_equality_and_operators(self):
        doc = {"user_id": "u1", "read": False, "expires_at": T0}

        assert matches(doc, {"user_id": "u1"})
        assert matches(doc, {"user_id": "u1", "read": False})
        assert not matches(doc, {"read": True})
        assert matches(doc, {"expires_at": {"$lt": T0 + timedelta(seconds=1)}})
        assert not matches(doc, {"expires_at": {"$lt": T0}})
        assert matches(doc, {"user_id": {"$in": ["u1", "u2"]}})

    def test_missing_field_never_matches_range(self):
        assert not matches({}, {"expires_at": {"$lt": T0}})

    def test_empty_filter_matches_everything(self):
        assert matches({"a": 1}, None)
        assert matches({"a": 1}, {})


# ========== Store contract ==========

class TestDocumentStore:
    @pytest.mark.asyncio
    async def test_insert_and_get(self, store):
        """Insert assigns an id and the document round-trips, datetimes included."""
        doc_id = await store.insert("things", {"name": "a", "at": T0, "nested": {"at": T0}})

        doc = await store.get("things", doc_id)
        assert doc["id"] == doc_id
        assert doc["name"] == "a"
        assert doc["at"] == T0
        assert doc["nested"]["at"] == T0

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get("things", "nope") is None

    @pytest.mark.asyncio
    async def test_insert_duplicate_id_rejected(self, store):
        await store.insert("things", {"id": "x"})
        with pytest.raises(ValueError):
            await store.insert("things", {"id": "x"})

    @pytest.mark.asyncio
    async def test_create_if_absent_first_writer_wins(self, store):
        assert await store.create_if_absent("things", "k", {"v": 1}) is True
        assert await store.create_if_absent("things", "k", {"v": 2}) is False

        doc = await store.get("things", "k")
        assert doc["v"] == 1

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.update("things", "nope", {"v": 1})

    @pytest.mark.asyncio
    async def test_compare_and_set(self, store):
        await store.insert("things", {"id": "k", "status": "draft"})

        assert await store.compare_and_set("things", "k", {"status": "draft"}, {"status": "sent"})
        assert not await store.compare_and_set("things", "k", {"status": "draft"}, {"status": "paid"})

        doc = await store.get("things", "k")
        assert doc["status"] == "sent"

    @pytest.mark.asyncio
    async def test_compare_and_set_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.compare_and_set("things", "nope", {"status": "draft"}, {"status": "sent"})

    @pytest.mark.asyncio
    async def test_array_append_and_increment(self, store):
        await store.insert("things", {"id": "k"})

        await store.array_append("things", "k", "items", {"n": 1})
        await store.array_append("things", "k", "items", {"n": 2})
        await store.increment("things", "k", "count")
        await store.increment("things", "k", "count", 4)

        doc = await store.get("things", "k")
        assert doc["items"] == [{"n": 1}, {"n": 2}]
        assert doc["count"] == 5

    @pytest.mark.asyncio
    async def test_find_filter_sort_limit(self, store):
        for i in range(5):
            await store.insert("things", {"id": f"t{i}", "group": i % 2, "at": T0 + timedelta(minutes=i)})

        evens = await store.find("things", {"group": 0}, sort=[("at", ASCENDING)])
        assert [d["id"] for d in evens] == ["t0", "t2", "t4"]

        latest = await store.find("things", sort=[("at", DESCENDING)], limit=2)
        assert [d["id"] for d in latest] == ["t4", "t3"]

        assert await store.count("things", {"group": 1}) == 2

    @pytest.mark.asyncio
    async def test_sort_tie_break_on_second_key(self, store):
        await store.insert("things", {"id": "b", "at": T0})
        await store.insert("things", {"id": "a", "at": T0})
        await store.insert("things", {"id": "c", "at": T0 - timedelta(seconds=1)})

        docs = await store.find("things", sort=[("at", ASCENDING), ("id", ASCENDING)])
        assert [d["id"] for d in docs] == ["c", "a", "b"]

    @pytest.mark.asyncio
    async def test_delete_many(self, store):
        for i in range(4):
            await store.insert("things", {"id": f"t{i}", "at": T0 + timedelta(days=i)})

        removed = await store.delete_many("things", {"at": {"$lt": T0 + timedelta(days=2)}})

        assert removed == 2
        remaining = await store.find("things", sort=[("id", ASCENDING)])
        assert [d["id"] for d in remaining] == ["t2", "t3"]

    @pytest.mark.asyncio
    async def test_documents_are_copies(self, store):
        doc = {"id": "k", "items": []}
        await store.insert("things", doc)
        doc["items"].append("leak")

        stored = await store.get("things", "k")
        assert stored["items"] == []


# ========== Change listeners ==========

class TestChangeListeners:
    @pytest.mark.asyncio
    async def test_listener_receives_writes_for_its_collection(self, store):
        changes = []

        async def on_change(change):
            changes.append(change)

        store.add_listener("things", on_change)

        doc_id = await store.insert("things", {"v": 1})
        await store.update("things", doc_id, {"v": 2})
        await store.insert("other", {"v": 3})
        await store.delete_many("things", {})

        assert [c.operation for c in changes] == ["insert", "update", "delete"]
        assert changes[1].document["v"] == 2
        assert all(c.collection == "things" for c in changes)

    @pytest.mark.asyncio
    async def test_failed_create_if_absent_is_not_announced(self, store):
        changes = []

        async def on_change(change):
            changes.append(change)

        store.add_listener("things", on_change)
        await store.create_if_absent("things", "k", {})
        await store.create_if_absent("things", "k", {})

        assert len(changes) == 1

    @pytest.mark.asyncio
    async def test_remove_listener(self, store):
        changes = []

        async def on_change(change):
            changes.append(change)

        listener_id = store.add_listener("things", on_change)
        assert store.remove_listener(listener_id) is True
        assert store.remove_listener(listener_id) is False

        await store.insert("things", {})
        assert changes == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_writes(self, store):
        received = []

        async def broken(change):
            raise RuntimeError("boom")

        async def healthy(change):
            received.append(change)

        store.add_listener("things", broken)
        store.add_listener("things", healthy)

        await store.insert("things", {})
        assert len(received) == 1


# ========== MongoDB change stream ==========

class FakeChangeStream:
    """Yields the given events, then blocks like an idle change stream."""

    def __init__(self, events):
        self._events = list(events)
        self.resume_token = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._events:
            event = self._events.pop(0)
            self.resume_token = {"_data": event["documentKey"]["_id"]}
            return event
        await asyncio.Event().wait()


class DroppedChangeStream:
    async def __aenter__(self):
        raise PyMongoError("connection reset")

    async def __aexit__(self, *exc):
        return False


class FakeDatabase:
    def __init__(self, streams):
        self._streams = list(streams)
        self.watch_calls = []

    def watch(self, **kwargs):
        self.watch_calls.append(kwargs)
        return self._streams.pop(0)


class TestMongoChangeStream:
    @pytest.mark.asyncio
    async def test_reconnects_after_stream_error(self):
        store = MongoDBDocumentStore(retry_delay=0)
        insert = {
            "operationType": "insert",
            "ns": {"coll": "things"},
            "documentKey": {"_id": "k"},
            "fullDocument": {"_id": "k", "id": "k", "name": "first"},
        }
        store._db = FakeDatabase([DroppedChangeStream(), FakeChangeStream([insert])])
        seen = []
        arrived = asyncio.Event()

        async def on_change(change):
            seen.append(change)
            arrived.set()

        store.add_listener("things", on_change)
        task = asyncio.create_task(store._watch())
        try:
            await asyncio.wait_for(arrived.wait(), timeout=1)
        finally:
            task.cancel()

        assert len(store._db.watch_calls) == 2
        assert seen[0].doc_id == "k"
        assert seen[0].operation == "insert"
        assert seen[0].document == {"id": "k", "name": "first"}

    @pytest.mark.asyncio
    async def test_unexpected_stream_failure_is_logged(self, caplog):
        store = MongoDBDocumentStore(retry_delay=0)

        async def broken():
            raise RuntimeError("bad change event")

        task = asyncio.create_task(broken())
        task.add_done_callback(store._on_watch_done)
        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)

        assert "Change stream stopped" in caplog.text
