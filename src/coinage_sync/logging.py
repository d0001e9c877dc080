"""
Logging utilities for coinage-sync with sensitive data masking.

Balance sync logs carry wallet addresses, user ids and API tokens. This
module keeps those out of log output while still giving enough context to
trace a refresh cycle or a deposit poll.

Usage:
    from coinage_sync.logging import get_logger, mask_sensitive_data

    logger = get_logger(__name__)

    with logger.context("balance_refresh", user_id="usr_1", trigger="silent"):
        logger.info("Fetched balances", tokens=3)

    # Request/response logging for the REST client
    log_request(logger, "GET", url, headers)
    log_response(logger, 200, body, duration_ms)
"""
from __future__ import annotations

import json
import logging
import re
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Sequence, Union

from .constants import LoggingConfig


# =============================================================================
# Sensitive Data Masking
# =============================================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """Mask a sensitive value, showing only the first/last characters.

    Args:
        value: The value to mask
        show_chars: Number of characters to show at start and end

    Returns:
        Masked string
    """
    if not value or len(value) <= show_chars * 2:
        return LoggingConfig.MASK_PATTERN

    return f"{value[:show_chars]}...{value[-show_chars:]}"


def mask_address(address: Optional[str]) -> str:
    """Shorten a wallet address for log output (0x1234...abcd)."""
    if not address:
        return "-"
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


_SENSITIVE_FIELDS_LOWER = frozenset(name.lower() for name in LoggingConfig.SENSITIVE_FIELDS)


def is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates sensitive data.

    A bare "token" is a coin symbol here; only credential-style names such as
    access_token or apiToken are treated as secrets.
    """
    key_lower = key.lower().replace("-", "_")
    if key_lower in _SENSITIVE_FIELDS_LOWER:
        return True
    if key_lower.endswith(("_token", "accesstoken", "refreshtoken", "apitoken")):
        return True
    return any(
        sensitive in key_lower
        for sensitive in ("secret", "password", "credential", "authorization", "private_key", "privatekey")
    )


def mask_sensitive_data(
    data: Any,
    additional_fields: Optional[Sequence[str]] = None,
    mask_pattern: str = LoggingConfig.MASK_PATTERN,
    _depth: int = 0,
    _max_depth: int = 10,
) -> Any:
    """Recursively mask sensitive data in a data structure.

    Args:
        data: The data structure to mask (dict, list, or scalar)
        additional_fields: Additional field names to mask
        mask_pattern: Pattern to replace sensitive values with

    Returns:
        Copy of data with sensitive values masked
    """
    if _depth > _max_depth:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_sensitive_key(str(key)):
                result[key] = mask_pattern
            elif additional_fields and key in additional_fields:
                result[key] = mask_pattern
            else:
                result[key] = mask_sensitive_data(
                    value, additional_fields, mask_pattern, _depth + 1, _max_depth
                )
        return result

    if isinstance(data, (list, tuple)):
        return type(data)(
            mask_sensitive_data(item, additional_fields, mask_pattern, _depth + 1, _max_depth)
            for item in data
        )

    if isinstance(data, str):
        return _mask_inline_patterns(data)

    return data


_INLINE_PATTERNS = [
    (re.compile(r"(Bearer\s+)[a-zA-Z0-9._-]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"(https?://)[^:/\s]+:[^@/\s]+@", re.IGNORECASE), r"\1***:***@"),
    (re.compile(r"\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\b"), "***JWT***"),
]


def _mask_inline_patterns(text: str) -> str:
    """Mask bearer tokens, JWTs and URL credentials embedded in free text."""
    if len(text) > LoggingConfig.MAX_LOG_MESSAGE_LENGTH:
        text = text[: LoggingConfig.MAX_LOG_MESSAGE_LENGTH] + "...[truncated]"

    for pattern, replacement in _INLINE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask sensitive HTTP headers."""
    sensitive_headers = {"authorization", "x-api-key", "cookie", "set-cookie"}
    return {
        key: (LoggingConfig.MASK_PATTERN if key.lower() in sensitive_headers else value)
        for key, value in headers.items()
    }


# =============================================================================
# Structured Logging
# =============================================================================

@dataclass
class SyncContext:
    """Context for one refresh cycle or poll session."""

    operation: str = ""
    context_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: Optional[str] = None
    address: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def elapsed_ms(self) -> float:
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "context_id": self.context_id,
            "operation": self.operation,
            "elapsed_ms": round(self.elapsed_ms(), 1),
        }
        if self.user_id:
            result["user_id"] = self.user_id
        if self.address:
            result["address"] = mask_address(self.address)
        if self.extra:
            result.update(mask_sensitive_data(self.extra))
        return result


class StructuredLogger:
    """Logger wrapper that attaches masked keyword context to records.

    Usage:
        logger = StructuredLogger(__name__)
        logger.info("Balances fetched", tokens=4, network="testnet")

        with logger.context("deposit_poll", transaction_id="tx_1"):
            logger.debug("Polling")
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)
        self._context_stack: list[SyncContext] = []

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def current_context(self) -> Optional[SyncContext]:
        return self._context_stack[-1] if self._context_stack else None

    @contextmanager
    def context(
        self,
        operation: str,
        user_id: Optional[str] = None,
        address: Optional[str] = None,
        **extra: Any,
    ) -> Iterator[SyncContext]:
        """Push a logging context for the duration of an operation."""
        ctx = SyncContext(operation=operation, user_id=user_id, address=address, extra=extra)
        self._context_stack.append(ctx)
        try:
            self.debug(f"Starting {operation}")
            yield ctx
            self.debug(f"Completed {operation}")
        except Exception as e:
            self.error(f"Failed {operation}: {type(e).__name__}", error=str(e))
            raise
        finally:
            self._context_stack.remove(ctx)

    def _build_extra(self, **kwargs: Any) -> Dict[str, Any]:
        extra = mask_sensitive_data(kwargs)
        if self.current_context:
            extra.update(self.current_context.to_dict())
        return extra

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, extra={"data": self._build_extra(**kwargs)})

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, extra={"data": self._build_extra(**kwargs)})

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, extra={"data": self._build_extra(**kwargs)})

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, extra={"data": self._build_extra(**kwargs)})

    def exception(self, message: str, **kwargs: Any) -> None:
        self._logger.exception(message, extra={"data": self._build_extra(**kwargs)})


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given name."""
    return StructuredLogger(name)


# =============================================================================
# Request/Response Logging
# =============================================================================

def _truncate_body(body: Any) -> str:
    body_str = json.dumps(mask_sensitive_data(body), default=str)
    if len(body_str) > LoggingConfig.MAX_RESPONSE_BODY_LOG_LENGTH:
        body_str = body_str[: LoggingConfig.MAX_RESPONSE_BODY_LOG_LENGTH] + "..."
    return body_str


def log_request(
    logger: Union[logging.Logger, StructuredLogger],
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
) -> None:
    """Log an outgoing HTTP request with masked headers and body."""
    log_data: Dict[str, Any] = {
        "direction": "request",
        "method": method,
        "url": _mask_inline_patterns(url),
    }
    if headers:
        log_data["headers"] = mask_headers(headers)
    if body is not None:
        log_data["body"] = _truncate_body(body)

    if isinstance(logger, StructuredLogger):
        logger.debug(f"HTTP {method} {url}", **log_data)
    else:
        logger.debug(f"HTTP {method} {url}", extra={"data": log_data})


def log_response(
    logger: Union[logging.Logger, StructuredLogger],
    status_code: int,
    body: Optional[Any] = None,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
) -> None:
    """Log an HTTP response; 4xx/5xx are logged at WARNING."""
    log_data: Dict[str, Any] = {"direction": "response", "status_code": status_code}
    if duration_ms is not None:
        log_data["duration_ms"] = duration_ms
    if error:
        log_data["error"] = error
    if body is not None:
        log_data["body"] = _truncate_body(body)

    message = f"HTTP {status_code}"
    if duration_ms is not None:
        message += f" ({duration_ms:.0f}ms)"

    if isinstance(logger, StructuredLogger):
        if status_code >= 400:
            logger.warning(message, **log_data)
        else:
            logger.debug(message, **log_data)
    else:
        level = logging.DEBUG if status_code < 400 else logging.WARNING
        logger.log(level, message, extra={"data": log_data})


# =============================================================================
# JSON Formatter
# =============================================================================

class JsonFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if getattr(record, "data", None):
            log_data["data"] = record.data
        return json.dumps(log_data, default=str)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure root logging for an application embedding coinage-sync.

    Args:
        level: Logging level
        json_format: Whether to use JSON formatting on the console
        log_file: Optional file path; file output is always JSON
    """
    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    if json_format:
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


__all__ = [
    "mask_value",
    "mask_address",
    "mask_headers",
    "mask_sensitive_data",
    "is_sensitive_key",
    "SyncContext",
    "StructuredLogger",
    "get_logger",
    "log_request",
    "log_response",
    "JsonFormatter",
    "configure_logging",
]
