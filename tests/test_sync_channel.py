"""Tests for the cross-context sync channel."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from src.device.enums import SyncMessageType
from src.device.sync_channel import BroadcastBus, SyncChannel, SyncMessage
from src.schemas.snapshot import LocalSnapshot, SnapshotReminder

CAPTURED = datetime(2026, 4, 1, 12, 0, tzinfo=UTC)
SNAPSHOT = LocalSnapshot(
    captured_at=CAPTURED,
    reminders=[SnapshotReminder(id=1, text="Stretch", due_time=CAPTURED + timedelta(minutes=1))],
)


@pytest.mark.asyncio
async def test_request_gets_foreground_snapshot():
    bus = BroadcastBus()
    foreground = SyncChannel(bus.connect())
    background = SyncChannel(bus.connect(), timeout=1)
    server = asyncio.create_task(foreground.serve(lambda: SNAPSHOT))

    try:
        snapshot = await background.request_pending_reminders()
    finally:
        server.cancel()

    assert snapshot == SNAPSHOT
    assert snapshot is not SNAPSHOT


@pytest.mark.asyncio
async def test_request_times_out_without_foreground():
    bus = BroadcastBus()
    background = SyncChannel(bus.connect(), timeout=0.05)

    assert await background.request_pending_reminders() is None


@pytest.mark.asyncio
async def test_empty_foreground_answer():
    bus = BroadcastBus()
    server = asyncio.create_task(SyncChannel(bus.connect()).serve(lambda: None))

    try:
        assert await SyncChannel(bus.connect(), timeout=1).request_pending_reminders() is None
    finally:
        server.cancel()


@pytest.mark.asyncio
async def test_response_for_other_request_is_ignored():
    bus = BroadcastBus()
    stranger = bus.connect()
    background = SyncChannel(bus.connect(), timeout=0.1)
    stale = SyncMessage(
        type=SyncMessageType.PENDING_REMINDERS_RESPONSE, request_id="someone-else", snapshot=SNAPSHOT
    )
    stranger.post(stale.model_dump_json())

    assert await background.request_pending_reminders() is None


@pytest.mark.asyncio
async def test_malformed_messages_are_dropped():
    bus = BroadcastBus()
    noisy = bus.connect()
    foreground = SyncChannel(bus.connect())
    background = SyncChannel(bus.connect(), timeout=1)
    noisy.post("not json at all")
    noisy.post('{"type": "SOMETHING_ELSE"}')
    server = asyncio.create_task(foreground.serve(lambda: SNAPSHOT))

    try:
        assert await background.request_pending_reminders() == SNAPSHOT
    finally:
        server.cancel()


@pytest.mark.asyncio
async def test_concurrent_requests_each_get_an_answer():
    bus = BroadcastBus()
    server = asyncio.create_task(SyncChannel(bus.connect()).serve(lambda: SNAPSHOT))
    background = SyncChannel(bus.connect(), timeout=1)

    try:
        results = await asyncio.gather(
            background.request_pending_reminders(),
            background.request_pending_reminders(),
        )
    finally:
        server.cancel()

    assert results == [SNAPSHOT, SNAPSHOT]


def test_sender_does_not_receive_own_message():
    bus = BroadcastBus()
    sender = bus.connect()
    receiver = bus.connect()

    sender.post("hello")

    assert sender._queue.empty()
    assert receiver._queue.get_nowait() == "hello"


def test_closed_port_receives_nothing():
    bus = BroadcastBus()
    sender = bus.connect()
    closed = bus.connect()
    closed.close()

    sender.post("hello")

    assert closed._queue.empty()


@pytest.mark.asyncio
async def test_task_action_is_handled_and_acknowledged():
    bus = BroadcastBus()
    received: list[SyncMessage] = []

    async def on_task_action(message):
        received.append(message)

    server = asyncio.create_task(SyncChannel(bus.connect()).serve(lambda: None, on_task_action))
    background = SyncChannel(bus.connect(), timeout=1)

    try:
        acked = await background.send_task_action(SyncMessageType.SNOOZE_TASK, 7, snooze_minutes=15)
    finally:
        server.cancel()

    assert acked is True
    assert [(m.type, m.reminder_id, m.snooze_minutes) for m in received] == [
        (SyncMessageType.SNOOZE_TASK, 7, 15)
    ]


@pytest.mark.asyncio
async def test_task_action_without_handler_is_not_acknowledged():
    bus = BroadcastBus()
    server = asyncio.create_task(SyncChannel(bus.connect()).serve(lambda: SNAPSHOT))
    background = SyncChannel(bus.connect(), timeout=0.05)

    try:
        assert await background.send_task_action(SyncMessageType.COMPLETE_TASK, 7) is False
        # Snapshot requests on the same port still work afterwards
        background.timeout = 1
        assert await background.request_pending_reminders() == SNAPSHOT
    finally:
        server.cancel()


@pytest.mark.asyncio
async def test_failing_task_handler_is_not_acknowledged():
    bus = BroadcastBus()

    async def on_task_action(message):
        raise RuntimeError("task store offline")

    server = asyncio.create_task(SyncChannel(bus.connect()).serve(lambda: None, on_task_action))
    background = SyncChannel(bus.connect(), timeout=0.05)

    try:
        assert await background.send_task_action(SyncMessageType.COMPLETE_TASK, 7) is False
    finally:
        server.cancel()


@pytest.mark.asyncio
async def test_send_task_action_rejects_other_types():
    channel = SyncChannel(BroadcastBus().connect())

    with pytest.raises(ValueError):
        await channel.send_task_action(SyncMessageType.REQUEST_PENDING_REMINDERS, 7)
