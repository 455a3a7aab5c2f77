# tests/services/test_subscriptions.py
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from clearlot_relay.core.errors import TransientStoreError
from clearlot_relay.models import NotificationPriority, NotificationType
from clearlot_relay.schemas.notification import NotificationDraft


class Recorder:
    """Collects every emitted snapshot."""

    def __init__(self) -> None:
        self.snapshots: list[list] = []

    def __call__(self, items: list) -> None:
        self.snapshots.append(items)

    @property
    def latest(self) -> list:
        return self.snapshots[-1]


@pytest.mark.asyncio
async def test_conversation_list_emits_snapshot_then_updates(services, eventually) -> None:
    conversation_id = await services.conversations.create_or_get_conversation("alice", "bob")
    received = Recorder()

    unsubscribe = services.subscriptions.subscribe_to_conversation_list("bob", "bob", received)
    try:
        await eventually(lambda: len(received.snapshots) >= 1)
        assert [view.id for view in received.latest] == [conversation_id]
        assert received.latest[0].unread_count["bob"] == 0

        await services.messages.send_message(conversation_id, "alice", "bob", "hello")

        await eventually(lambda: received.latest and received.latest[0].last_message is not None)
        view = received.latest[0]
        assert view.unread_count["bob"] == 1
        assert view.last_message["content"] == "hello"
    finally:
        unsubscribe()


@pytest.mark.asyncio
async def test_message_stream_is_ordered_and_async_callbacks_work(
    services, clock, eventually
) -> None:
    conversation_id = await services.conversations.create_or_get_conversation("alice", "bob")
    received: list[list] = []

    async def on_update(items: list) -> None:
        received.append(items)

    unsubscribe = services.subscriptions.subscribe_to_conversation_messages(
        "alice", conversation_id, on_update
    )
    try:
        await eventually(lambda: len(received) >= 1)
        assert received[0] == []

        await services.messages.send_message(conversation_id, "alice", "bob", "first")
        clock.advance(timedelta(seconds=1))
        await services.messages.send_message(conversation_id, "bob", "alice", "second")

        await eventually(lambda: len(received[-1]) == 2)
        assert [m.content for m in received[-1]] == ["first", "second"]
    finally:
        unsubscribe()


@pytest.mark.asyncio
async def test_outsider_gets_noop_message_subscription(services) -> None:
    conversation_id = await services.conversations.create_or_get_conversation("alice", "bob")
    await services.messages.send_message(conversation_id, "alice", "bob", "private")
    received = Recorder()

    unsubscribe = services.subscriptions.subscribe_to_conversation_messages(
        "mallory", conversation_id, received
    )
    await services.messages.send_message(conversation_id, "bob", "alice", "reply")
    await asyncio.sleep(0.05)
    unsubscribe()

    assert services.subscriptions.active_subscriptions == 0
    assert received.snapshots == []


@pytest.mark.asyncio
async def test_missing_conversation_streams_empty_updates(services, eventually) -> None:
    received = Recorder()

    unsubscribe = services.subscriptions.subscribe_to_conversation_messages(
        "alice", "no-such-conversation", received
    )
    try:
        await eventually(lambda: len(received.snapshots) >= 1)
        assert received.latest == []
        assert services.subscriptions.active_subscriptions == 1
    finally:
        unsubscribe()

@pytest.mark.asyncio
async def test_mismatched_requester_gets_noop_subscription(services) -> None:
    received = Recorder()

    unsubscribe = services.subscriptions.subscribe_to_notifications("mallory", "alice", received)
    unsubscribe()

    assert services.subscriptions.active_subscriptions == 0
    assert received.snapshots == []


@pytest.mark.asyncio
async def test_notification_stream_follows_writes(services, eventually) -> None:
    received = Recorder()
    unsubscribe = services.subscriptions.subscribe_to_notifications("alice", "alice", received)
    try:
        await eventually(lambda: len(received.snapshots) >= 1)
        assert received.latest == []

        await services.notifications.add(
            NotificationDraft(
                user_id="alice",
                type=NotificationType.SYSTEM,
                title="Maintenance tonight",
                message="The marketplace will be read-only from 02:00.",
                priority=NotificationPriority.LOW,
            )
        )

        await eventually(lambda: len(received.latest) == 1)
        assert received.latest[0].title == "Maintenance tonight"
    finally:
        unsubscribe()


@pytest.mark.asyncio
async def test_unsubscribe_stops_emissions(services, eventually) -> None:
    received = Recorder()
    unsubscribe = services.subscriptions.subscribe_to_conversation_list("alice", "alice", received)
    await eventually(lambda: len(received.snapshots) >= 1)

    unsubscribe()
    await eventually(lambda: services.subscriptions.active_subscriptions == 0)
    await services.conversations.create_or_get_conversation("alice", "bob")

    assert len(received.snapshots) == 1


@pytest.mark.asyncio
async def test_read_failure_emits_empty_list_then_recovers(
    services, mocker, eventually
) -> None:
    conversation_id = await services.conversations.create_or_get_conversation("alice", "bob")
    services.subscriptions.retry_seconds = 0.05
    real_read = services.subscriptions._read
    attempts = {"n": 0}

    def flaky_read(name, load):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise TransientStoreError("store down")
        return real_read(name, load)

    mocker.patch.object(services.subscriptions, "_read", side_effect=flaky_read)
    received = Recorder()

    unsubscribe = services.subscriptions.subscribe_to_conversation_list("alice", "alice", received)
    try:
        await eventually(lambda: len(received.snapshots) >= 1)
        assert received.snapshots[0] == []

        await eventually(lambda: len(received.latest) == 1)
        assert received.latest[0].id == conversation_id
    finally:
        unsubscribe()


@pytest.mark.asyncio
async def test_unexpected_snapshot_error_is_logged_and_retried(
    services, mocker, eventually, caplog
) -> None:
    conversation_id = await services.conversations.create_or_get_conversation("alice", "bob")
    services.subscriptions.retry_seconds = 0.05
    real_read = services.subscriptions._read
    attempts = {"n": 0}

    def broken_read(name, load):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise ValueError("profile row failed validation")
        return real_read(name, load)

    mocker.patch.object(services.subscriptions, "_read", side_effect=broken_read)
    received = Recorder()

    unsubscribe = services.subscriptions.subscribe_to_conversation_list("alice", "alice", received)
    try:
        await eventually(lambda: len(received.snapshots) >= 1)
        assert received.snapshots[0] == []
        assert "failed to build a snapshot" in caplog.text

        await eventually(lambda: len(received.latest) == 1)
        assert received.latest[0].id == conversation_id
    finally:
        unsubscribe()


@pytest.mark.asyncio
async def test_failing_callback_does_not_kill_stream(services, eventually) -> None:
    calls: list[int] = []

    def on_update(items: list) -> None:
        calls.append(len(items))
        if len(calls) == 1:
            raise RuntimeError("render failed")

    unsubscribe = services.subscriptions.subscribe_to_conversation_list("alice", "alice", on_update)
    try:
        await eventually(lambda: len(calls) >= 1)
        await services.conversations.create_or_get_conversation("alice", "bob")
        await eventually(lambda: calls[-1] == 1)
    finally:
        unsubscribe()


@pytest.mark.asyncio
async def test_close_cancels_every_subscription(services, eventually) -> None:
    services.subscriptions.subscribe_to_conversation_list("alice", "alice", Recorder())
    services.subscriptions.subscribe_to_notifications("bob", "bob", Recorder())
    await eventually(lambda: services.subscriptions.active_subscriptions == 2)

    await services.subscriptions.close()

    assert services.subscriptions.active_subscriptions == 0
