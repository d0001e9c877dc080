"""
Tests for coinage_sync.logging.

Tests cover:
- Sensitive data masking
- Structured logging with context
- Request/response logging
- JSON formatter
"""
from __future__ import annotations

import json
import logging

import pytest

from coinage_sync.logging import (
    JsonFormatter,
    StructuredLogger,
    configure_logging,
    get_logger,
    is_sensitive_key,
    log_request,
    log_response,
    mask_address,
    mask_headers,
    mask_sensitive_data,
    mask_value,
)


class TestMaskValue:
    def test_mask_normal_value(self):
        assert mask_value("secrettoken12345", show_chars=4) == "secr...2345"

    def test_mask_short_value(self):
        assert "***" in mask_value("abc", show_chars=4)

    def test_mask_address(self):
        assert mask_address("0x1234567890123456789012345678901234567890") == "0x1234...7890"
        assert mask_address(None) == "-"


class TestIsSensitiveKey:
    def test_credential_keys(self):
        for key in ("password", "api_key", "access_token", "accessToken", "Authorization", "pixKey", "api_token"):
            assert is_sensitive_key(key), key

    def test_coin_token_fields_are_not_secrets(self):
        for key in ("token", "token_count", "tokens", "balancesTable", "network"):
            assert not is_sensitive_key(key), key


class TestMaskSensitiveData:
    def test_nested_structures(self):
        data = {
            "userId": "usr_1",
            "auth": {"access_token": "abc", "refreshToken": "def"},
            "items": [{"password": "x"}, {"token": "cBRL"}],
        }

        masked = mask_sensitive_data(data)

        assert masked["userId"] == "usr_1"
        assert masked["auth"]["access_token"] == "***REDACTED***"
        assert masked["auth"]["refreshToken"] == "***REDACTED***"
        assert masked["items"][0]["password"] == "***REDACTED***"
        assert masked["items"][1]["token"] == "cBRL"

    def test_inline_bearer_token(self):
        masked = mask_sensitive_data("header was Bearer abc.def-ghi")

        assert "abc.def-ghi" not in masked
        assert "Bearer ***" in masked

    def test_mask_headers(self):
        headers = mask_headers({"Authorization": "Bearer abc", "Accept": "application/json"})

        assert headers["Authorization"] == "***REDACTED***"
        assert headers["Accept"] == "application/json"


class TestStructuredLogger:
    def test_context_fields_attached(self, caplog):
        logger = get_logger("coinage_sync.tests.structured")

        with caplog.at_level(logging.DEBUG, logger="coinage_sync.tests.structured"):
            with logger.context("balance_refresh", user_id="usr_1", address="0x1234567890123456789012345678901234567890"):
                logger.info("Fetched balances", token_count=3)

        record = next(r for r in caplog.records if r.getMessage() == "Fetched balances")
        assert record.data["token_count"] == 3
        assert record.data["operation"] == "balance_refresh"
        assert record.data["user_id"] == "usr_1"
        assert record.data["address"] == "0x1234...7890"

    def test_context_logs_failure_and_reraises(self, caplog):
        logger = StructuredLogger("coinage_sync.tests.failing")

        with caplog.at_level(logging.DEBUG, logger="coinage_sync.tests.failing"):
            with pytest.raises(RuntimeError):
                with logger.context("deposit_poll"):
                    raise RuntimeError("boom")

        assert any(r.levelno == logging.ERROR and "Failed deposit_poll" in r.getMessage() for r in caplog.records)
        assert logger.current_context is None

    def test_sensitive_kwargs_are_masked(self, caplog):
        logger = get_logger("coinage_sync.tests.masking")

        with caplog.at_level(logging.INFO, logger="coinage_sync.tests.masking"):
            logger.info("Configured client", api_token="super-secret")

        assert caplog.records[-1].data["api_token"] == "***REDACTED***"


class TestRequestResponseLogging:
    def test_log_request_masks_headers(self, caplog):
        logger = get_logger("coinage_sync.tests.http")

        with caplog.at_level(logging.DEBUG, logger="coinage_sync.tests.http"):
            log_request(logger, "GET", "https://api.coinage.test/api/balance-sync/fresh", {"Authorization": "Bearer abc"})

        data = caplog.records[-1].data
        assert data["direction"] == "request"
        assert data["headers"]["Authorization"] == "***REDACTED***"

    def test_error_response_logged_as_warning(self, caplog):
        logger = logging.getLogger("coinage_sync.tests.http_plain")

        with caplog.at_level(logging.DEBUG, logger="coinage_sync.tests.http_plain"):
            log_response(logger, 503, body={"message": "down"}, duration_ms=12.5)

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.data["status_code"] == 503
        assert "(12ms)" in record.getMessage() or "(13ms)" in record.getMessage()


class TestJsonFormatter:
    def test_formats_record_as_json(self):
        record = logging.LogRecord("coinage_sync", logging.INFO, __file__, 1, "hello", None, None)
        record.data = {"trigger": "silent"}

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["data"] == {"trigger": "silent"}

    def test_configure_logging_installs_json_handler(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

        configure_logging(level=logging.DEBUG, json_format=True)

        assert captured["force"] is True
        assert captured["level"] == logging.DEBUG
        assert isinstance(captured["handlers"][0].formatter, JsonFormatter)
