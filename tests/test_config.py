"""Tests for CoinageSyncSettings."""
from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from coinage_sync.config import CoinageSyncSettings, load_settings


def test_defaults():
    settings = CoinageSyncSettings(_env_file=None)

    assert settings.tolerance == Decimal("0.000001")
    assert settings.notification_spacing_seconds == 0.1
    assert settings.fetch_timeout_seconds == 10.0
    assert settings.status_poll_interval_seconds == 3.0
    assert settings.status_poll_max_attempts == 120
    assert settings.plan_intervals == {"BASIC": 300, "PRO": 120, "PREMIUM": 60}


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("COINAGE_API_BASE_URL", "https://api.coinage.test/")
    monkeypatch.setenv("COINAGE_DEFAULT_NETWORK", "mainnet")
    monkeypatch.setenv("COINAGE_FETCH_TIMEOUT_SECONDS", "4.5")

    settings = CoinageSyncSettings(_env_file=None)

    assert settings.api_base_url == "https://api.coinage.test"
    assert settings.default_network == "mainnet"
    assert settings.fetch_timeout_seconds == 4.5


def test_plan_intervals_from_env_json(monkeypatch):
    monkeypatch.setenv("COINAGE_PLAN_INTERVALS", '{"basic": 600, "pro": 90}')

    settings = CoinageSyncSettings(_env_file=None)

    assert settings.plan_intervals == {"BASIC": 600, "PRO": 90}


def test_plan_intervals_from_pairs():
    settings = CoinageSyncSettings(_env_file=None, plan_intervals="BASIC=240, premium=30")

    assert settings.plan_intervals == {"BASIC": 240, "PREMIUM": 30}


def test_plan_intervals_from_env_pairs(monkeypatch):
    monkeypatch.setenv("COINAGE_PLAN_INTERVALS", "basic=300, pro=120, premium=0.5")

    settings = CoinageSyncSettings(_env_file=None)

    assert settings.plan_intervals == {"BASIC": 300, "PRO": 120, "PREMIUM": 0.5}
    assert settings.interval_for_plan("premium") == 0.5


def test_rejects_non_positive_interval():
    with pytest.raises(ValidationError):
        CoinageSyncSettings(_env_file=None, plan_intervals={"BASIC": 0})

    with pytest.raises(ValidationError):
        CoinageSyncSettings(_env_file=None, status_poll_interval_seconds=0)

    with pytest.raises(ValidationError):
        CoinageSyncSettings(_env_file=None, status_poll_max_attempts=0)


def test_rejects_negative_tolerance_and_spacing():
    with pytest.raises(ValidationError):
        CoinageSyncSettings(_env_file=None, tolerance=Decimal("-1"))

    with pytest.raises(ValidationError):
        CoinageSyncSettings(_env_file=None, notification_spacing_seconds=-0.1)


def test_interval_for_plan_falls_back_to_default_plan():
    settings = CoinageSyncSettings(_env_file=None)

    assert settings.interval_for_plan("premium") == 60
    assert settings.interval_for_plan("ENTERPRISE") == 300
    assert settings.interval_for_plan(None) == 300


def test_load_settings_is_cached():
    load_settings.cache_clear()
    try:
        assert load_settings() is load_settings()
    finally:
        load_settings.cache_clear()
