"""Balance refresh scheduling for one signed-in session.

Runs the fetch -> diff -> notify -> replace cycle on three triggers:

- initial: when the session identity becomes available
- manual: user-requested, always fetches
- silent: timer-driven, interval picked from the user's plan

Only one fetch is in flight at a time; triggers that arrive meanwhile are
dropped rather than queued. The silent timer is an APScheduler interval job
that exists only while the plan is known.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .client import BalanceFetcher
from .config import CoinageSyncSettings, load_settings
from .differ import ChangeRecord, diff
from .events import EventBus, EventType, get_default_bus
from .exceptions import (
    AuthExpiredError,
    CoinageSyncError,
    FetchError,
    FetchTimeoutError,
    MismatchedIdentityError,
)
from .logging import get_logger, mask_address
from .models import SessionIdentity
from .notifier import BalanceNotifier, NotifyReport
from .snapshots import BalanceSnapshot, Network, SnapshotStore

logger = get_logger(__name__)

FetchCallable = Callable[[SessionIdentity, Network], Awaitable[BalanceSnapshot]]


class TriggerKind(str, Enum):
    INITIAL = "initial"
    MANUAL = "manual"
    SILENT = "silent"


class SchedulerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class RefreshStatus(str, Enum):
    COMPLETED = "completed"
    DROPPED = "dropped"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RefreshResult:
    """Outcome of one schedule() call."""

    trigger: TriggerKind
    status: RefreshStatus
    changes: list[ChangeRecord] = field(default_factory=list)
    snapshot: Optional[BalanceSnapshot] = None
    report: Optional[NotifyReport] = None
    error: Optional[CoinageSyncError] = None

    @property
    def dropped(self) -> bool:
        return self.status is RefreshStatus.DROPPED

    @property
    def ok(self) -> bool:
        return self.status is RefreshStatus.COMPLETED


class RefreshScheduler:
    """Owns the snapshot store, the silent refresh timer and the fetch guard."""

    JOB_ID = "coinage-silent-refresh"

    def __init__(
        self,
        fetcher: BalanceFetcher,
        notifier: BalanceNotifier,
        *,
        store: Optional[SnapshotStore] = None,
        settings: Optional[CoinageSyncSettings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._fetcher = fetcher
        self._notifier = notifier
        self._store = store or SnapshotStore(Network(self._settings.default_network))
        self._bus = bus or get_default_bus()

        self._owns_scheduler = scheduler is None
        if scheduler is None:
            scheduler = AsyncIOScheduler(
                executors={"default": AsyncIOExecutor()},
                job_defaults={"coalesce": True, "max_instances": 1},
                timezone="UTC",
            )
        self._scheduler = scheduler

        self._state = SchedulerState.IDLE
        self._identity: Optional[SessionIdentity] = None
        self._generation = 0
        self._loaded_for: Optional[str] = None
        self._loading = False
        self._refreshing = False
        self._flash_handle: Optional[asyncio.TimerHandle] = None
        self._last_error: Optional[CoinageSyncError] = None
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def identity(self) -> Optional[SessionIdentity]:
        return self._identity

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    @property
    def last_error(self) -> Optional[CoinageSyncError]:
        return self._last_error

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    @property
    def interval_seconds(self) -> Optional[float]:
        if self._identity is None or not self._identity.plan:
            return None
        return self._settings.interval_for_plan(self._identity.plan)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._owns_scheduler and not self._scheduler.running:
            self._scheduler.start()
            logger.info("Refresh scheduler started")

    async def close(self) -> None:
        """Remove the timer and cancel pending flash and background work."""
        if self._closed:
            return
        self._closed = True
        self._remove_timer()
        self._cancel_flash()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        tasks = [t for t in self._background_tasks if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Refresh scheduler closed")

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> None:
        while self._background_tasks:
            pending = list(self._background_tasks)
            await asyncio.wait_for(asyncio.gather(*pending, return_exceptions=True), timeout=timeout)

    # ------------------------------------------------------------------
    # Identity and plan
    # ------------------------------------------------------------------

    async def set_identity(self, identity: Optional[SessionIdentity]) -> Optional[RefreshResult]:
        """Switch the active session and run the initial refresh for it.

        Passing None signs out: the store resets to the empty snapshot of the
        default network and the silent timer is removed.
        """
        self._identity = identity
        self._generation += 1
        self._loaded_for = None
        self._last_error = None

        if identity is None:
            self._store.reset()
            self._remove_timer()
            self._cancel_flash()
            self._loading = False
            logger.info("Session identity cleared")
            return None

        current = self._store.current
        if current is not None and not current.belongs_to(identity.public_key):
            self._store.reset()

        self._configure_timer()
        logger.info(
            "Session identity set",
            user_id=identity.user_id,
            address=mask_address(identity.public_key),
            plan=identity.plan,
        )
        return await self.schedule(TriggerKind.INITIAL)

    def set_plan(self, plan: Optional[str]) -> None:
        """Apply a plan change; the silent timer is replaced with the new interval."""
        if self._identity is None:
            return
        self._identity = self._identity.with_plan(plan)
        self._configure_timer()

    def _configure_timer(self) -> None:
        interval = self.interval_seconds
        if interval is None or self._closed:
            self._remove_timer()
            return
        # a stopped scheduler queues jobs without honouring replace_existing
        self._remove_timer()
        self._scheduler.add_job(
            self._silent_tick,
            "interval",
            id=self.JOB_ID,
            seconds=interval,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info(f"Silent refresh every {interval:g}s", plan=self._identity.plan if self._identity else None)

    def _remove_timer(self) -> None:
        if self._scheduler.get_job(self.JOB_ID) is not None:
            self._scheduler.remove_job(self.JOB_ID)

    async def _silent_tick(self) -> None:
        await self.schedule(TriggerKind.SILENT)

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    async def schedule(
        self,
        trigger: TriggerKind | str,
        fetch: Optional[FetchCallable] = None,
    ) -> RefreshResult:
        """Run one refresh cycle unless another is already in flight."""
        return await self._refresh(TriggerKind(trigger), fetch, corrective=False)

    async def _refresh(
        self,
        trigger: TriggerKind,
        fetch: Optional[FetchCallable],
        *,
        corrective: bool,
    ) -> RefreshResult:
        if self._state is SchedulerState.FETCHING:
            logger.debug("Refresh already in flight, dropping trigger", trigger=trigger.value)
            return RefreshResult(trigger=trigger, status=RefreshStatus.DROPPED)

        identity = self._identity
        if identity is None or self._closed:
            return RefreshResult(trigger=trigger, status=RefreshStatus.SKIPPED)
        if trigger is TriggerKind.INITIAL and self._loaded_for == identity.user_id:
            return RefreshResult(trigger=trigger, status=RefreshStatus.SKIPPED)

        self._state = SchedulerState.FETCHING
        generation = self._generation
        if trigger is not TriggerKind.SILENT:
            self._loading = True
        try:
            snapshot: Optional[BalanceSnapshot] = None
            error: Optional[CoinageSyncError] = None
            try:
                snapshot = await self._fetch(identity, fetch)
            except CoinageSyncError as exc:
                error = exc
            except Exception as exc:
                logger.exception("Unexpected balance fetch failure", trigger=trigger.value)
                error = FetchError(str(exc) or type(exc).__name__, resource="balances")

            if generation != self._generation:
                # identity switched while the fetch was in flight; its outcome is stale
                self._spawn_background(self.schedule(TriggerKind.INITIAL))
                return RefreshResult(trigger=trigger, status=RefreshStatus.SKIPPED)

            if error is not None:
                if isinstance(error, AuthExpiredError) and trigger is TriggerKind.SILENT:
                    return RefreshResult(trigger=trigger, status=RefreshStatus.FAILED, error=error)
                return self._failed(trigger, error)

            if not snapshot.belongs_to(identity.public_key):
                self._store.reset()
                self._loaded_for = None
                error = MismatchedIdentityError(expected=identity.public_key, actual=snapshot.owner)
                if not corrective:
                    self._spawn_background(self._refresh(trigger, fetch, corrective=True))
                return self._failed(trigger, error)

            return await self._apply(trigger, identity, snapshot)
        finally:
            self._state = SchedulerState.IDLE
            self._loading = False

    async def _fetch(self, identity: SessionIdentity, fetch: Optional[FetchCallable]) -> BalanceSnapshot:
        call = fetch or self._fetcher.fetch_balances
        timeout = self._settings.fetch_timeout_seconds
        try:
            return await asyncio.wait_for(call(identity, self._store.default_network), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise FetchTimeoutError("balance fetch timed out", resource="balances", timeout=timeout) from exc

    async def _apply(
        self,
        trigger: TriggerKind,
        identity: SessionIdentity,
        snapshot: BalanceSnapshot,
    ) -> RefreshResult:
        previous = self._store.current
        changes = diff(previous, snapshot, self._settings.tolerance)

        report = None
        if previous is not None and changes:
            report = await self._notifier.notify(
                changes,
                user_id=identity.user_id,
                network=snapshot.network,
                detected_at_login=trigger is TriggerKind.INITIAL,
            )

        self._store.replace(snapshot)
        self._loaded_for = identity.user_id
        self._last_error = None

        if changes:
            await self._bus.emit(
                EventType.BALANCES_CHANGED,
                data={
                    "user_id": identity.user_id,
                    "trigger": trigger.value,
                    "changes": [change.to_dict() for change in changes],
                },
            )
            if trigger is TriggerKind.SILENT:
                self._flash_refreshing()

        logger.info(
            "Balance refresh completed",
            trigger=trigger.value,
            token_count=len(snapshot.balances),
            changes=len(changes),
        )
        return RefreshResult(
            trigger=trigger,
            status=RefreshStatus.COMPLETED,
            changes=changes,
            snapshot=snapshot,
            report=report,
        )

    def _failed(self, trigger: TriggerKind, error: CoinageSyncError) -> RefreshResult:
        logger.warning("Balance refresh failed", trigger=trigger.value, error=error.to_dict())
        if trigger is not TriggerKind.SILENT:
            self._last_error = error
        return RefreshResult(trigger=trigger, status=RefreshStatus.FAILED, error=error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _flash_refreshing(self) -> None:
        self._cancel_flash()
        self._refreshing = True
        loop = asyncio.get_running_loop()
        self._flash_handle = loop.call_later(self._settings.refresh_flash_seconds, self._clear_refreshing)

    def _clear_refreshing(self) -> None:
        self._refreshing = False
        self._flash_handle = None

    def _cancel_flash(self) -> None:
        if self._flash_handle is not None:
            self._flash_handle.cancel()
            self._flash_handle = None
        self._refreshing = False

    def _spawn_background(self, coro: Any) -> None:
        if self._closed:
            coro.close()
            return
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
