"""
Centralized constants and default values for coinage-sync.

Timeouts, polling cadences, tolerances and logging limits used by the
balance sync session and the deposit status poller live here so that
configuration defaults and tests share one source of truth.

Usage:
    from coinage_sync.constants import Timeouts, SyncDefaults, PlanIntervals
"""
from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Final


# =============================================================================
# Timeout Constants (in seconds)
# =============================================================================

class Timeouts:
    """Network timeouts for calls against the Coinage API."""

    # Upper bound for a single balance or status fetch
    FETCH: Final[float] = 10.0

    # httpx client timeouts
    HTTP_DEFAULT: Final[float] = 15.0
    HTTP_CONNECT: Final[float] = 5.0


# =============================================================================
# Balance Sync
# =============================================================================

class SyncDefaults:
    """Defaults for snapshot diffing and the notification fan-out."""

    # Smallest balance delta treated as a real change
    TOLERANCE: Final[Decimal] = Decimal("0.000001")

    # Pause between two notification emissions of the same batch
    NOTIFICATION_SPACING: Final[float] = 0.1

    # How long the "refreshing" hint stays on after a silent refresh found changes
    REFRESH_FLASH: Final[float] = 1.0

    # Duplicate suppression for delivered balance notifications
    DEDUP_TTL: Final[int] = 60 * 60
    DEDUP_MAX_KEYS_PER_TOKEN: Final[int] = 50

    # Balances are rendered with this many decimal places
    DISPLAY_DECIMALS: Final[int] = 6


class PlanIntervals:
    """Silent refresh interval per subscription plan, in seconds."""

    BASIC: Final[int] = 5 * 60
    PRO: Final[int] = 2 * 60
    PREMIUM: Final[int] = 60

    @classmethod
    def as_dict(cls) -> dict[str, int]:
        return {"BASIC": cls.BASIC, "PRO": cls.PRO, "PREMIUM": cls.PREMIUM}


# =============================================================================
# Deposit Status Polling
# =============================================================================

class PollDefaults:
    """Deposit confirmation polling."""

    INTERVAL: Final[float] = 3.0
    # 120 attempts at 3s is ten minutes of polling
    MAX_ATTEMPTS: Final[int] = 120


# =============================================================================
# Logging Configuration
# =============================================================================

class LoggingConfig:
    """Logging-related constants."""

    SENSITIVE_FIELDS: Final[frozenset[str]] = frozenset({
        "password",
        "secret",
        "api_key",
        "apiKey",
        "access_token",
        "accessToken",
        "refresh_token",
        "refreshToken",
        "authorization",
        "cpf",
        "pix_key",
        "pixKey",
        "private_key",
        "privateKey",
    })

    MASK_PATTERN: Final[str] = "***REDACTED***"

    MAX_LOG_MESSAGE_LENGTH: Final[int] = 10000

    MAX_RESPONSE_BODY_LOG_LENGTH: Final[int] = 500


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes(StrEnum):
    """Machine-readable error codes carried by coinage-sync exceptions."""

    SYNC_ERROR = "SYNC_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    FETCH_ERROR = "FETCH_ERROR"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    NOTIFICATION_EMIT_FAILED = "NOTIFICATION_EMIT_FAILED"
    IDENTITY_MISMATCH = "IDENTITY_MISMATCH"
    SNAPSHOT_INVALID = "SNAPSHOT_INVALID"
