"""Exception hierarchy for coinage-sync.

All errors raised by the sync session, the status poller and the REST
client inherit from CoinageSyncError, so callers can catch one type at the
boundary of a refresh or poll cycle.

Usage:
    from coinage_sync.exceptions import FetchError, AuthExpiredError

    try:
        snapshot = await client.fetch_balances(identity, network)
    except AuthExpiredError:
        ...  # the session layer refreshes credentials
    except FetchError as e:
        logger.warning("balance fetch failed: %s", e.to_dict())

All exceptions have:
- error_code: Machine-readable error code (e.g., "FETCH_ERROR")
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to a plain dict for logs and UI error state
"""
from __future__ import annotations

from typing import Any, Optional

from .constants import ErrorCodes


class CoinageSyncError(Exception):
    """Base exception for all coinage-sync errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = ErrorCodes.SYNC_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result = {
            "error": str(self.error_code),
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(CoinageSyncError):
    """Invalid or missing configuration."""

    error_code = ErrorCodes.CONFIGURATION_ERROR


# =============================================================================
# Fetch Errors
# =============================================================================

class FetchError(CoinageSyncError):
    """Transport or server failure while retrieving balances or a status."""

    error_code = ErrorCodes.FETCH_ERROR

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if resource:
            details["resource"] = resource
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details)
        self.resource = resource
        self.status_code = status_code


class AuthExpiredError(FetchError):
    """The session credentials were rejected (HTTP 401)."""

    error_code = ErrorCodes.AUTH_EXPIRED


class FetchTimeoutError(FetchError):
    """A fetch did not complete within the configured bound."""

    error_code = ErrorCodes.FETCH_TIMEOUT

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        timeout: Optional[float] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if timeout is not None:
            details["timeout_seconds"] = timeout
        super().__init__(message, resource=resource, details=details)


# =============================================================================
# Notification & Snapshot Errors
# =============================================================================

class NotificationEmitError(CoinageSyncError):
    """Emitting a single balance notification failed."""

    error_code = ErrorCodes.NOTIFICATION_EMIT_FAILED

    def __init__(
        self,
        message: str,
        token: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if token:
            details["token"] = token
        super().__init__(message, details=details)


class MismatchedIdentityError(CoinageSyncError):
    """A fetched snapshot belongs to a different wallet than the active session."""

    error_code = ErrorCodes.IDENTITY_MISMATCH

    def __init__(
        self,
        expected: str,
        actual: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["expected"] = expected
        details["actual"] = actual
        super().__init__(
            f"snapshot owner '{actual}' does not match active identity '{expected}'",
            details=details,
        )
        self.expected = expected
        self.actual = actual


class SnapshotParseError(CoinageSyncError):
    """A balances payload could not be turned into a snapshot."""

    error_code = ErrorCodes.SNAPSHOT_INVALID

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


__all__ = [
    "CoinageSyncError",
    "ConfigurationError",
    "FetchError",
    "AuthExpiredError",
    "FetchTimeoutError",
    "NotificationEmitError",
    "MismatchedIdentityError",
    "SnapshotParseError",
]
