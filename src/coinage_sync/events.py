"""Process-wide event bus for coinage-sync signals.

Decouples producers (the notifier, the refresh scheduler, deposit pollers)
from consumers such as a notification list that needs to re-fetch when new
notifications exist.
"""
from __future__ import annotations

import asyncio
import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    NOTIFICATIONS_CHANGED = "notifications.changed"
    BALANCES_CHANGED = "balances.changed"
    DEPOSIT_STATUS_CHANGED = "deposit.status_changed"


@dataclass(frozen=True)
class SyncEvent:
    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class EventBus:
    """Central event bus.

    Example:
        bus = EventBus()

        bus.subscribe("notifications.*", refresh_notification_list)

        await bus.emit(
            EventType.NOTIFICATIONS_CHANGED,
            data={"user_id": "usr_1", "count": 2},
        )
    """

    _subscribers: dict[str, list[Callable]] = field(default_factory=dict)
    _background_tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    def subscribe(self, event_pattern: str, handler: Callable) -> None:
        """Subscribe to events matching a pattern.

        Args:
            event_pattern: Event type or wildcard pattern like 'deposit.*'
            handler: Sync or async callable receiving the SyncEvent
        """
        handlers = self._subscribers.setdefault(event_pattern, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("Subscribed %s to %s", getattr(handler, "__name__", handler), event_pattern)

    def unsubscribe(self, event_pattern: str, handler: Callable) -> None:
        handlers = self._subscribers.get(event_pattern)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._subscribers[event_pattern]

    async def emit(
        self,
        event_type: EventType,
        data: Optional[dict[str, Any]] = None,
        fire_and_forget: bool = False,
    ) -> SyncEvent:
        """Emit an event to all matching subscribers.

        With fire_and_forget the handlers run in a tracked background task and
        emit returns immediately.
        """
        event = SyncEvent(event_type=event_type, data=dict(data or {}))

        matching_handlers = []
        for pattern, handlers in self._subscribers.items():
            if fnmatch.fnmatch(event_type.value, pattern):
                matching_handlers.extend(handlers)

        if matching_handlers:
            if fire_and_forget:
                self._schedule_background(self._execute_handlers(event, matching_handlers))
            else:
                await self._execute_handlers(event, matching_handlers)

        logger.debug("Emitted %s to %d handlers", event_type.value, len(matching_handlers))
        return event

    async def _execute_handlers(self, event: SyncEvent, handlers: list[Callable]) -> None:
        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    "Handler %s failed for %s: %s",
                    getattr(handler, "__name__", handler),
                    event.event_type.value,
                    e,
                    exc_info=True,
                )

    def _schedule_background(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_task_done)

    def _on_background_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.error("Event bus background task failed", exc_info=task.exception())

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> None:
        if not self._background_tasks:
            return
        pending = list(self._background_tasks)
        await asyncio.wait_for(asyncio.gather(*pending, return_exceptions=True), timeout=timeout)

    def clear_subscribers(self) -> None:
        """Clear all subscriptions (useful for testing)."""
        self._subscribers.clear()


_default_bus: Optional[EventBus] = None


def get_default_bus() -> EventBus:
    """Get or create the process-wide event bus."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus
