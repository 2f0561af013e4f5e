# /tests/test_subscriptions.py
# Tests for live channel and notification-feed subscriptions

from datetime import timedelta

import pytest

from boardchat import Project, Sender

from conftest import ORG, user


class Recorder:
    """Collects every snapshot a subscription delivers."""

    def __init__(self):
        self.snapshots = []

    async def __call__(self, items):
        self.snapshots.append(items)

    @property
    def last(self):
        return self.snapshots[-1]


class TestMessageSubscriptions:
    @pytest.mark.asyncio
    async def test_initial_snapshot_then_updates(self, app):
        channel_id = await app.get_or_create_channel("p1", ORG)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "first")
        recorder = Recorder()

        await app.subscribe_to_messages(channel_id, recorder)
        assert [m.text for m in recorder.last] == ["first"]

        await app.post_message(channel_id, Sender.from_user(user("a1")), "second")
        assert [m.text for m in recorder.last] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_window_is_latest_hundred_ascending(self, app):
        channel_id = await app.get_or_create_channel("p1", ORG)
        recorder = Recorder()
        await app.subscribe_to_messages(channel_id, recorder)

        for i in range(105):
            await app.post_message(channel_id, Sender.from_user(user("c1")), f"m{i}")

        snapshot = recorder.last
        assert len(snapshot) == 100
        assert snapshot[0].text == "m5"
        assert snapshot[-1].text == "m104"
        assert all(a.sort_key < b.sort_key for a, b in zip(snapshot, snapshot[1:]))

    @pytest.mark.asyncio
    async def test_other_channels_do_not_trigger(self, app):
        await app.projects.add_project(Project(id="p2", name="Mobile App", organization_id=ORG, client_ids=["c1"]))
        watched = await app.get_or_create_channel("p1", ORG)
        other = await app.get_or_create_channel("p2", ORG)
        recorder = Recorder()
        await app.subscribe_to_messages(watched, recorder)

        await app.post_message(other, Sender.from_user(user("c1")), "elsewhere")

        assert len(recorder.snapshots) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_callbacks(self, app):
        channel_id = await app.get_or_create_channel("p1", ORG)
        recorder = Recorder()
        subscription = await app.subscribe_to_messages(channel_id, recorder)

        subscription.unsubscribe()
        subscription()
        await app.post_message(channel_id, Sender.from_user(user("c1")), "after")

        assert len(recorder.snapshots) == 1
        assert subscription.active is False

    @pytest.mark.asyncio
    async def test_subscribers_are_independent(self, app):
        channel_id = await app.get_or_create_channel("p1", ORG)
        first, second = Recorder(), Recorder()
        sub_a = await app.subscribe_to_messages(channel_id, first)
        await app.subscribe_to_messages(channel_id, second)

        sub_a.unsubscribe()
        await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")

        assert len(first.snapshots) == 1
        assert [m.text for m in second.last] == ["hello"]

    @pytest.mark.asyncio
    async def test_failing_callback_is_isolated(self, app):
        channel_id = await app.get_or_create_channel("p1", ORG)
        healthy = Recorder()

        async def broken(items):
            raise RuntimeError("render failed")

        await app.subscribe_to_messages(channel_id, broken)
        await app.subscribe_to_messages(channel_id, healthy)

        message = await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")

        assert message.text == "hello"
        assert [m.text for m in healthy.last] == ["hello"]


class TestNotificationSubscriptions:
    @pytest.mark.asyncio
    async def test_feed_updates_on_new_notification(self, app):
        recorder = Recorder()
        await app.subscribe_to_notifications("a1", recorder)
        assert recorder.last == []

        channel_id = await app.get_or_create_channel("p1", ORG)
        await app.post_message(channel_id, Sender.from_user(user("c1")), "hello")

        assert len(recorder.last) == 1
        assert recorder.last[0].message == 'New message from Carla Client in "Website Redesign"'

    @pytest.mark.asyncio
    async def test_feed_newest_first_capped_at_twenty(self, app):
        recorder = Recorder()
        await app.subscribe_to_notifications("c1", recorder)

        for i in range(25):
            await app.notify("c1", f"n{i}")

        assert len(recorder.last) == 20
        assert recorder.last[0].message == "n24"

    @pytest.mark.asyncio
    async def test_read_flag_change_pushes_snapshot(self, app):
        notification_id = await app.notify("c1", "hello")
        recorder = Recorder()
        await app.subscribe_to_notifications("c1", recorder)

        await app.mark_notification_read(notification_id)

        assert recorder.last[0].read is True

    @pytest.mark.asyncio
    async def test_expiry_sweep_pushes_snapshot(self, app):
        await app.notify("c1", "stale")
        recorder = Recorder()
        await app.subscribe_to_notifications("c1", recorder)

        await app.delete_expired_notifications(now=recorder.last[0].expires_at + timedelta(seconds=1))

        assert recorder.last == []

    @pytest.mark.asyncio
    async def test_callback_that_writes_gets_follow_up_snapshot(self, app):
        sizes = []

        async def reply_once(items):
            sizes.append(len(items))
            if len(sizes) == 1:
                await app.notify("c1", "written from callback")

        await app.subscribe_to_notifications("c1", reply_once)

        assert sizes == [0, 1]

    @pytest.mark.asyncio
    async def test_close_unsubscribes_everything(self, app):
        recorder = Recorder()
        await app.subscribe_to_notifications("c1", recorder)

        app.subscriptions.close()
        await app.notify("c1", "late")

        assert len(recorder.snapshots) == 1
