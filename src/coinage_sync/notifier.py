"""Turns balance change records into user notifications."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from .client import NotificationSink
from .config import CoinageSyncSettings
from .constants import SyncDefaults
from .differ import ChangeKind, ChangeRecord
from .events import EventBus, EventType, get_default_bus
from .exceptions import NotificationEmitError
from .logging import get_logger
from .snapshots import Network, format_balance

logger = get_logger(__name__)

_NOTIFICATION_TYPES = {
    ChangeKind.INCREASE: "balance_increase",
    ChangeKind.DECREASE: "balance_decrease",
    ChangeKind.NEW: "new_token",
}


@dataclass(frozen=True, slots=True)
class Notification:
    """A user-facing message describing one balance change."""

    user_id: str
    title: str
    message: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @property
    def notification_type(self) -> str:
        return str(self.payload.get("type", ""))


def build_notification(
    record: ChangeRecord,
    *,
    user_id: str,
    network: Network,
    detected_at_login: bool = False,
) -> Notification:
    """Render the title, message and payload for a change record."""
    label = network.label
    token = record.token
    amount = format_balance(abs(record.delta))
    new_balance = format_balance(record.new_value)
    prefix = "Detected at login: " if detected_at_login else ""

    if record.kind is ChangeKind.INCREASE:
        title = f"Balance increased - {token} ({label})"
        message = f"{prefix}Your {token} balance increased by {amount} on {label}. New balance: {new_balance}"
    elif record.kind is ChangeKind.DECREASE:
        title = f"Balance decreased - {token} ({label})"
        message = f"{prefix}Your {token} balance decreased by {amount} on {label}. New balance: {new_balance}"
    else:
        title = f"New token received - {token} ({label})"
        message = f"{prefix}You received {new_balance} {token} in your wallet on {label}"

    payload = record.to_dict()
    payload.update(
        {
            "type": _NOTIFICATION_TYPES[record.kind],
            "network": network.value,
            "networkLabel": label,
            "detectedAtLogin": detected_at_login,
        }
    )
    return Notification(user_id=user_id, title=title, message=message, payload=payload)


@dataclass
class _TokenKeys:
    keys: list[str] = field(default_factory=list)
    touched_at: float = 0.0


class NotificationDedupCache:
    """Remembers recently delivered notifications per token.

    A token's entry expires as a whole once it has not been written for
    ``ttl_seconds``; only the newest ``max_keys_per_token`` keys are kept.
    """

    def __init__(
        self,
        ttl_seconds: float = SyncDefaults.DEDUP_TTL,
        max_keys_per_token: int = SyncDefaults.DEDUP_MAX_KEYS_PER_TOKEN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_keys = max_keys_per_token
        self._clock = clock
        self._entries: dict[str, _TokenKeys] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_keys_per_token(self) -> int:
        return self._max_keys

    def _live_entry(self, token: str) -> Optional[_TokenKeys]:
        entry = self._entries.get(token)
        if entry is None:
            return None
        if self._clock() - entry.touched_at > self._ttl:
            del self._entries[token]
            return None
        return entry

    def seen(self, record: ChangeRecord) -> bool:
        entry = self._live_entry(record.token)
        return entry is not None and record.dedup_key() in entry.keys

    def mark(self, record: ChangeRecord) -> None:
        entry = self._live_entry(record.token)
        if entry is None:
            entry = self._entries[record.token] = _TokenKeys()
        key = record.dedup_key()
        if key in entry.keys:
            return
        entry.keys.append(key)
        entry.touched_at = self._clock()
        if len(entry.keys) > self._max_keys:
            del entry.keys[: len(entry.keys) - self._max_keys]

    def keys_for(self, token: str) -> list[str]:
        entry = self._live_entry(token)
        return list(entry.keys) if entry else []

    def clear(self) -> None:
        self._entries.clear()


@dataclass
class NotifyReport:
    """Outcome of one notify() call."""

    delivered: list[Notification] = field(default_factory=list)
    failed: list[tuple[ChangeRecord, NotificationEmitError]] = field(default_factory=list)
    skipped: list[ChangeRecord] = field(default_factory=list)
    signalled: bool = False

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)


class BalanceNotifier:
    """Emits one notification per change record, then one bus signal.

    Emissions are best effort: a failing record is logged and the rest of
    the batch still goes out. Records are never retried.
    """

    def __init__(
        self,
        sink: NotificationSink,
        *,
        bus: Optional[EventBus] = None,
        spacing_seconds: float = SyncDefaults.NOTIFICATION_SPACING,
        dedup: Optional[NotificationDedupCache] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._sink = sink
        self._bus = bus or get_default_bus()
        self._spacing = spacing_seconds
        self._dedup = dedup if dedup is not None else NotificationDedupCache()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        sink: NotificationSink,
        settings: CoinageSyncSettings,
        *,
        bus: Optional[EventBus] = None,
    ) -> "BalanceNotifier":
        return cls(
            sink,
            bus=bus,
            spacing_seconds=settings.notification_spacing_seconds,
            dedup=NotificationDedupCache(
                ttl_seconds=settings.notification_dedup_ttl_seconds,
                max_keys_per_token=settings.notification_dedup_max_keys,
            ),
        )

    @property
    def spacing_seconds(self) -> float:
        return self._spacing

    @property
    def dedup(self) -> NotificationDedupCache:
        return self._dedup

    async def notify(
        self,
        records: Sequence[ChangeRecord],
        *,
        user_id: str,
        network: Network = Network.TESTNET,
        detected_at_login: bool = False,
    ) -> NotifyReport:
        report = NotifyReport()
        if not records:
            return report

        emitted_any = False
        for record in records:
            if self._dedup.seen(record):
                report.skipped.append(record)
                logger.debug("Skipping duplicate notification", token=record.token, kind=record.kind.value)
                continue

            if emitted_any and self._spacing > 0:
                await self._sleep(self._spacing)
            emitted_any = True

            notification = build_notification(
                record,
                user_id=user_id,
                network=network,
                detected_at_login=detected_at_login,
            )
            try:
                await self._sink.emit_notification(
                    notification.user_id,
                    notification.title,
                    notification.message,
                    notification.payload,
                )
            except NotificationEmitError as exc:
                report.failed.append((record, exc))
                logger.warning("Balance notification failed", token=record.token, error=exc.message)
                continue
            except Exception as exc:
                wrapped = NotificationEmitError(str(exc) or type(exc).__name__, token=record.token)
                report.failed.append((record, wrapped))
                logger.warning("Balance notification failed", token=record.token, error=wrapped.message)
                continue

            self._dedup.mark(record)
            report.delivered.append(notification)

        await self._bus.emit(
            EventType.NOTIFICATIONS_CHANGED,
            data={
                "user_id": user_id,
                "delivered": len(report.delivered),
                "failed": len(report.failed),
                "skipped": len(report.skipped),
            },
        )
        report.signalled = True

        logger.info(
            "Balance notifications sent",
            delivered=len(report.delivered),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )
        return report
