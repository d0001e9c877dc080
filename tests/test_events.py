"""Tests for the EventBus."""
import asyncio

import pytest

from coinage_sync.events import EventBus, EventType, SyncEvent, get_default_bus


@pytest.mark.asyncio
async def test_event_bus_subscribe_and_emit():
    """Test basic subscribe and emit functionality."""
    bus = EventBus()
    received_events = []

    async def handler(event: SyncEvent):
        received_events.append(event)

    bus.subscribe("notifications.*", handler)

    await bus.emit(
        EventType.NOTIFICATIONS_CHANGED,
        data={"user_id": "usr_1", "delivered": 2},
    )

    assert len(received_events) == 1
    assert received_events[0].event_type == EventType.NOTIFICATIONS_CHANGED
    assert received_events[0].data["delivered"] == 2


@pytest.mark.asyncio
async def test_wildcard_pattern_matching():
    """Test wildcard pattern matching."""
    bus = EventBus()
    deposit_events = []
    all_events = []

    bus.subscribe("deposit.*", deposit_events.append)
    bus.subscribe("*", all_events.append)

    await bus.emit(EventType.DEPOSIT_STATUS_CHANGED, data={"transaction_id": "tx_1"})
    await bus.emit(EventType.BALANCES_CHANGED, data={"user_id": "usr_1"})

    assert len(deposit_events) == 1
    assert len(all_events) == 2
    assert deposit_events[0].event_type == EventType.DEPOSIT_STATUS_CHANGED


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received_events = []

    bus.subscribe("balances.*", received_events.append)
    await bus.emit(EventType.BALANCES_CHANGED, data={"n": 1})

    bus.unsubscribe("balances.*", received_events.append)
    await bus.emit(EventType.BALANCES_CHANGED, data={"n": 2})

    assert len(received_events) == 1


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others():
    bus = EventBus()
    received_events = []

    def broken(event: SyncEvent):
        raise RuntimeError("boom")

    bus.subscribe("notifications.changed", broken)
    bus.subscribe("notifications.changed", received_events.append)

    await bus.emit(EventType.NOTIFICATIONS_CHANGED)

    assert len(received_events) == 1


@pytest.mark.asyncio
async def test_fire_and_forget_runs_in_background():
    bus = EventBus()
    received_events = []
    release = asyncio.Event()

    async def slow_handler(event: SyncEvent):
        await release.wait()
        received_events.append(event)

    bus.subscribe("balances.*", slow_handler)

    await bus.emit(EventType.BALANCES_CHANGED, fire_and_forget=True)
    assert received_events == []

    release.set()
    await bus.wait_for_background_tasks(timeout=1)

    assert len(received_events) == 1


def test_default_bus_is_shared():
    bus = get_default_bus()
    bus.clear_subscribers()

    assert get_default_bus() is bus


def test_event_types():
    assert {e.value for e in EventType} == {
        "notifications.changed",
        "balances.changed",
        "deposit.status_changed",
    }
