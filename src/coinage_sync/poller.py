"""Deposit status polling.

Each PollHandle owns one asyncio task that fetches a transaction's status
immediately and then on a fixed interval, until the deposit is confirmed or
failed, the attempt budget runs out, or the caller stops it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from .client import StatusFetcher
from .config import CoinageSyncSettings, load_settings
from .events import EventBus, EventType, get_default_bus
from .exceptions import CoinageSyncError, FetchError, FetchTimeoutError
from .logging import get_logger
from .models import DepositStatus, TransactionStatus

logger = get_logger(__name__)

FetchStatusCallable = Callable[[str], Awaitable[TransactionStatus]]
StatusCallback = Callable[[TransactionStatus], Any]


@dataclass
class PollSession:
    """Mutable progress of one transaction's poll, owned by its PollHandle."""

    transaction_id: str
    status: DepositStatus = DepositStatus.PENDING
    attempts: int = 0
    last_polled_at: Optional[datetime] = None
    last_result: Optional[TransactionStatus] = None
    last_error: Optional[CoinageSyncError] = None
    timed_out: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class PollHandle:
    """Handle for one running status poll.

    stop() is idempotent and safe to call after the poll ended by itself.
    """

    def __init__(
        self,
        transaction_id: str,
        fetch_status: FetchStatusCallable,
        *,
        interval_seconds: float,
        max_attempts: int,
        fetch_timeout_seconds: float,
        on_status_change: Optional[StatusCallback] = None,
        on_terminal: Optional[StatusCallback] = None,
        bus: Optional[EventBus] = None,
        on_finished: Optional[Callable[["PollHandle"], None]] = None,
    ) -> None:
        self._session = PollSession(transaction_id=transaction_id)
        self._fetch_status = fetch_status
        self._interval = interval_seconds
        self._max_attempts = max_attempts
        self._fetch_timeout = fetch_timeout_seconds
        self._on_status_change = on_status_change
        self._on_terminal = on_terminal
        self._bus = bus
        self._on_finished = on_finished

        self._stopped = False
        self._in_flight = False
        self._reported: set[DepositStatus] = set()
        self._terminal_notified = False
        self._finished = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def transaction_id(self) -> str:
        return self._session.transaction_id

    @property
    def session(self) -> PollSession:
        return self._session

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    def start(self) -> None:
        if self._task is not None or self._stopped:
            return
        self._task = asyncio.create_task(self._run(), name=f"deposit-poll-{self.transaction_id}")

    def stop(self) -> None:
        if self._stopped and self.done:
            return
        self._stopped = True
        if self._session.is_terminal:
            # terminal callbacks may still be running; they finish the handle
            return
        self._cancel_task()
        self._finish()

    async def wait(self, timeout: Optional[float] = None) -> PollSession:
        await asyncio.wait_for(self._finished.wait(), timeout=timeout)
        return self._session

    async def check_now(self) -> Optional[TransactionStatus]:
        """Fetch the status outside the schedule.

        Returns None without fetching when the poll has ended or a fetch is
        already in flight.
        """
        if self._stopped:
            return None
        return await self._poll_once(scheduled=False)

    async def _run(self) -> None:
        try:
            while not self._stopped:
                await self._poll_once(scheduled=True)
                if self._stopped:
                    break
                if self._session.attempts >= self._max_attempts:
                    self._session.timed_out = True
                    logger.warning(
                        "Deposit status polling gave up",
                        transaction_id=self.transaction_id,
                        attempts=self._session.attempts,
                    )
                    break
                await asyncio.sleep(self._interval)
        finally:
            self._stopped = True
            # a terminal result finishes the handle after on_terminal has run
            if not self._session.is_terminal:
                self._finish()

    async def _poll_once(self, *, scheduled: bool) -> Optional[TransactionStatus]:
        if self._in_flight:
            return None
        self._in_flight = True
        if scheduled:
            self._session.attempts += 1
        self._session.last_polled_at = datetime.now(timezone.utc)
        try:
            result = await asyncio.wait_for(
                self._fetch_status(self.transaction_id),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError:
            self._record_error(
                FetchTimeoutError(
                    "deposit status fetch timed out",
                    resource="deposit_status",
                    timeout=self._fetch_timeout,
                )
            )
            return None
        except CoinageSyncError as exc:
            self._record_error(exc)
            return None
        except Exception as exc:
            logger.exception("Unexpected deposit status failure", transaction_id=self.transaction_id)
            self._record_error(FetchError(str(exc) or type(exc).__name__, resource="deposit_status"))
            return None
        finally:
            self._in_flight = False

        if self._stopped:
            return result
        await self._apply(result)
        return result

    def _record_error(self, error: CoinageSyncError) -> None:
        self._session.last_error = error
        logger.warning(
            "Deposit status fetch failed, retrying on next tick",
            transaction_id=self.transaction_id,
            error=error.to_dict(),
        )

    async def _apply(self, result: TransactionStatus) -> None:
        self._session.status = result.status
        self._session.last_result = result
        self._session.last_error = None

        if result.is_terminal:
            # stop before any callback so nothing can schedule another fetch
            self._stopped = True
            self._cancel_task()

        if result.status not in self._reported:
            self._reported.add(result.status)
            await self._invoke(self._on_status_change, result)
            if self._bus is not None:
                await self._bus.emit(
                    EventType.DEPOSIT_STATUS_CHANGED,
                    data={
                        "transaction_id": self.transaction_id,
                        "status": result.status.value,
                        "block_number": result.block_number,
                        "tx_hash": result.tx_hash,
                    },
                )

        if result.is_terminal and not self._terminal_notified:
            self._terminal_notified = True
            logger.info(
                "Deposit reached terminal status",
                transaction_id=self.transaction_id,
                status=result.status.value,
                attempts=self._session.attempts,
            )
            await self._invoke(self._on_terminal, result)
            self._finish()

    async def _invoke(self, callback: Optional[StatusCallback], result: TransactionStatus) -> None:
        if callback is None:
            return
        try:
            outcome = callback(result)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception:
            logger.exception(
                "Deposit status callback failed",
                transaction_id=self.transaction_id,
                callback=getattr(callback, "__name__", repr(callback)),
            )

    def _cancel_task(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    def _finish(self) -> None:
        if self._finished.is_set():
            return
        self._finished.set()
        if self._on_finished is not None:
            self._on_finished(self)


class StatusPoller:
    """Registry that keeps at most one active poll per transaction id."""

    def __init__(
        self,
        fetcher: Optional[StatusFetcher] = None,
        *,
        settings: Optional[CoinageSyncSettings] = None,
        interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        settings = settings or load_settings()
        self._fetcher = fetcher
        self._interval = interval_seconds if interval_seconds is not None else settings.status_poll_interval_seconds
        self._max_attempts = max_attempts if max_attempts is not None else settings.status_poll_max_attempts
        self._fetch_timeout = settings.fetch_timeout_seconds
        self._bus = bus or get_default_bus()
        self._active: dict[str, PollHandle] = {}

    def poll(
        self,
        transaction_id: str,
        fetch_status: Optional[FetchStatusCallable] = None,
        *,
        on_status_change: Optional[StatusCallback] = None,
        on_terminal: Optional[StatusCallback] = None,
    ) -> PollHandle:
        """Start polling a transaction, replacing any poll already running for it."""
        if not transaction_id:
            raise ValueError("transaction_id is required")
        if fetch_status is None:
            if self._fetcher is None:
                raise ValueError("fetch_status is required when no StatusFetcher is configured")
            fetch_status = self._fetcher.fetch_transaction_status

        existing = self._active.pop(transaction_id, None)
        if existing is not None:
            logger.debug("Replacing running poll", transaction_id=transaction_id)
            existing.stop()

        handle = PollHandle(
            transaction_id,
            fetch_status,
            interval_seconds=self._interval,
            max_attempts=self._max_attempts,
            fetch_timeout_seconds=self._fetch_timeout,
            on_status_change=on_status_change,
            on_terminal=on_terminal,
            bus=self._bus,
            on_finished=self._forget,
        )
        self._active[transaction_id] = handle
        handle.start()
        return handle

    def get(self, transaction_id: str) -> Optional[PollHandle]:
        return self._active.get(transaction_id)

    @property
    def active_ids(self) -> list[str]:
        return list(self._active)

    def stop(self, transaction_id: str) -> None:
        handle = self._active.pop(transaction_id, None)
        if handle is not None:
            handle.stop()

    def stop_all(self) -> None:
        for handle in list(self._active.values()):
            handle.stop()
        self._active.clear()

    def _forget(self, handle: PollHandle) -> None:
        if self._active.get(handle.transaction_id) is handle:
            del self._active[handle.transaction_id]
