# /tests/test_outbox.py
# Tests for outbox recording, dispatch and re-drive

from datetime import timedelta

import pytest

from boardchat import DeliveryStatus, EventType, Sender
from boardchat.outbox import OUTBOX

from conftest import ORG, START, user


async def break_channel_lookup(app, monkeypatch):
    async def unavailable(channel_id):
        raise ConnectionError("directory offline")

    monkeypatch.setattr(app.channels, "get_channel", unavailable)


class TestPublish:
    @pytest.mark.asyncio
    async def test_successful_publish_marks_dispatched(self, app):
        channel_id = await app.get_or_create_channel("p1", ORG)

        message = await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")

        docs = await app.store.find(OUTBOX)
        assert len(docs) == 1
        assert docs[0]["event_type"] == EventType.MESSAGE_POSTED.value
        assert docs[0]["correlation_id"] == message.id
        assert docs[0]["status"] == DeliveryStatus.DISPATCHED.value
        assert docs[0]["attempts"] == 1
        assert await app.outbox.pending() == []

    @pytest.mark.asyncio
    async def test_failed_rule_keeps_event_pending(self, app, monkeypatch):
        channel_id = await app.get_or_create_channel("p1", ORG)
        await break_channel_lookup(app, monkeypatch)

        message = await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")

        assert message.text == "hello"
        assert await app.list_notifications("a1") == []

        pending = await app.outbox.pending()
        assert len(pending) == 1
        assert pending[0].attempts == 1
        assert "directory offline" in pending[0].last_error
        assert "outbox.dispatch" in [r.operation for r in app.error_sink.records]

    @pytest.mark.asyncio
    async def test_unknown_event_type_has_no_rule(self, app):
        event = await app.outbox.record(EventType.MESSAGE_POSTED, "m1", {"channel_id": "x"})
        event.event_type = "unknown"

        with pytest.raises(ValueError):
            await app.rules.dispatch(event)


class TestDrain:
    @pytest.mark.asyncio
    async def test_drain_redelivers_pending_events(self, app, monkeypatch):
        channel_id = await app.get_or_create_channel("p1", ORG)
        await break_channel_lookup(app, monkeypatch)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")
        monkeypatch.undo()

        dispatched = await app.outbox.drain()

        assert dispatched == 1
        assert await app.outbox.pending() == []
        for admin_id in ("a1", "a2"):
            assert len(await app.list_notifications(admin_id)) == 1

    @pytest.mark.asyncio
    async def test_drain_still_failing(self, app, monkeypatch):
        channel_id = await app.get_or_create_channel("p1", ORG)
        await break_channel_lookup(app, monkeypatch)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")

        assert await app.outbox.drain() == 0

        pending = await app.outbox.pending()
        assert pending[0].attempts == 2

    @pytest.mark.asyncio
    async def test_drain_skips_exhausted_events(self, app, monkeypatch):
        channel_id = await app.get_or_create_channel("p1", ORG)
        await break_channel_lookup(app, monkeypatch)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")
        monkeypatch.undo()

        assert await app.outbox.drain(max_attempts=1) == 0
        assert len(await app.outbox.pending()) == 1

    @pytest.mark.asyncio
    async def test_drain_oldest_first_with_limit(self, app):
        first = await app.outbox.record(EventType.REPORT_SUBMITTED, "r1", {
            "client_name": "Carla Client", "project_id": "p1", "project_name": "Website Redesign",
        }, organization_id=ORG)
        await app.outbox.record(EventType.REPORT_SUBMITTED, "r2", {
            "client_name": "Carla Client", "project_id": "p1", "project_name": "Website Redesign",
        }, organization_id=ORG)

        assert await app.outbox.drain(limit=1) == 1

        remaining = await app.outbox.pending()
        assert [e.correlation_id for e in remaining] == ["r2"]
        assert remaining[0].event_id != first.event_id

    @pytest.mark.asyncio
    async def test_exhausted_head_does_not_block_newer_events(self, app):
        report = {"client_name": "Carla Client", "project_id": "p1", "project_name": "Website Redesign"}
        stuck = await app.outbox.record(EventType.REPORT_SUBMITTED, "old", report, organization_id=ORG)
        await app.store.update(OUTBOX, stuck.event_id, {"attempts": 2, "last_error": "rule failed"})
        await app.outbox.record(EventType.TICKET_ASSIGNED, "t1", {
            "assignee_id": "u1", "ticket_title": "Fix login", "project_id": "p1",
        }, organization_id=ORG)

        assert await app.outbox.drain(limit=1, max_attempts=2) == 1

        assert [e.correlation_id for e in await app.outbox.pending()] == ["old"]
        assert len(await app.list_notifications("u1")) == 1


class TestPurge:
    @pytest.mark.asyncio
    async def test_purge_only_dispatched(self, app, monkeypatch):
        channel_id = await app.get_or_create_channel("p1", ORG)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "delivered")
        await break_channel_lookup(app, monkeypatch)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "stuck")

        purged = await app.outbox.purge_dispatched(before=START + timedelta(days=1))

        assert purged == 1
        assert await app.store.count(OUTBOX) == 1
        assert len(await app.outbox.pending()) == 1

    @pytest.mark.asyncio
    async def test_purge_accepts_naive_cutoff(self, app):
        channel_id = await app.get_or_create_channel("p1", ORG)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "delivered")

        cutoff = (START + timedelta(days=1)).replace(tzinfo=None)

        assert await app.outbox.purge_dispatched(before=cutoff) == 1
