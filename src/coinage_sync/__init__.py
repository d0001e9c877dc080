"""Balance change detection, notifications and deposit polling for Coinage wallets."""

from .config import CoinageSyncSettings, load_settings
from .snapshots import BalanceSnapshot, Network, SnapshotStore, format_balance, native_symbol
from .differ import ChangeKind, ChangeRecord, diff
from .models import DepositStatus, Plan, SessionIdentity, TransactionStatus
from .events import EventBus, EventType, SyncEvent, get_default_bus
from .client import BalanceFetcher, CoinageApiClient, NotificationSink, StatusFetcher
from .notifier import (
    BalanceNotifier,
    Notification,
    NotificationDedupCache,
    NotifyReport,
    build_notification,
)
from .scheduler import RefreshResult, RefreshScheduler, RefreshStatus, SchedulerState, TriggerKind
from .poller import PollHandle, PollSession, StatusPoller
from .exceptions import (
    AuthExpiredError,
    CoinageSyncError,
    ConfigurationError,
    FetchError,
    FetchTimeoutError,
    MismatchedIdentityError,
    NotificationEmitError,
    SnapshotParseError,
)

__version__ = "0.1.0"

__all__ = [
    "CoinageSyncSettings",
    "load_settings",
    "BalanceSnapshot",
    "Network",
    "SnapshotStore",
    "format_balance",
    "native_symbol",
    "ChangeKind",
    "ChangeRecord",
    "diff",
    "DepositStatus",
    "Plan",
    "SessionIdentity",
    "TransactionStatus",
    "EventBus",
    "EventType",
    "SyncEvent",
    "get_default_bus",
    "BalanceFetcher",
    "CoinageApiClient",
    "NotificationSink",
    "StatusFetcher",
    "BalanceNotifier",
    "Notification",
    "NotificationDedupCache",
    "NotifyReport",
    "build_notification",
    "RefreshResult",
    "RefreshScheduler",
    "RefreshStatus",
    "SchedulerState",
    "TriggerKind",
    "PollHandle",
    "PollSession",
    "StatusPoller",
    "AuthExpiredError",
    "CoinageSyncError",
    "ConfigurationError",
    "FetchError",
    "FetchTimeoutError",
    "MismatchedIdentityError",
    "NotificationEmitError",
    "SnapshotParseError",
]
