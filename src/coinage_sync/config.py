"""Configuration surface for the Coinage balance sync and deposit poller."""
from __future__ import annotations

import json
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Dict, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .constants import PlanIntervals, PollDefaults, SyncDefaults, Timeouts


class CoinageSyncSettings(BaseSettings):
    """Main coinage-sync configuration."""

    model_config = SettingsConfigDict(
        env_prefix="COINAGE_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    # Environment
    environment: Literal["dev", "sandbox", "prod"] = "dev"

    # API
    api_base_url: str = "http://localhost:8800"
    api_token: str = ""
    default_network: Literal["testnet", "mainnet"] = "testnet"

    # Balance diffing and notifications
    tolerance: Decimal = SyncDefaults.TOLERANCE
    notification_spacing_seconds: float = SyncDefaults.NOTIFICATION_SPACING
    notification_dedup_ttl_seconds: int = SyncDefaults.DEDUP_TTL
    notification_dedup_max_keys: int = SyncDefaults.DEDUP_MAX_KEYS_PER_TOKEN

    # Refresh scheduling
    fetch_timeout_seconds: float = Timeouts.FETCH
    refresh_flash_seconds: float = SyncDefaults.REFRESH_FLASH
    plan_intervals: Annotated[Dict[str, float], NoDecode] = Field(default_factory=PlanIntervals.as_dict)
    default_plan: str = "BASIC"

    # Deposit status polling
    status_poll_interval_seconds: float = PollDefaults.INTERVAL
    status_poll_max_attempts: int = PollDefaults.MAX_ATTEMPTS

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("plan_intervals", mode="before")
    @classmethod
    def parse_plan_intervals(cls, v):
        """Accept "BASIC=300,PRO=120" strings as well as JSON objects."""
        if isinstance(v, str):
            if v.strip().startswith("{"):
                v = json.loads(v)
            else:
                parsed: dict[str, float] = {}
                for item in v.split(","):
                    if not item.strip():
                        continue
                    plan, _, seconds = item.partition("=")
                    parsed[plan.strip().upper()] = float(seconds)
                return parsed
        if isinstance(v, dict):
            return {str(k).upper(): val for k, val in v.items()}
        return v

    @field_validator("plan_intervals")
    @classmethod
    def validate_plan_intervals(cls, v: Dict[str, float]) -> Dict[str, float]:
        for plan, seconds in v.items():
            if seconds <= 0:
                raise ValueError(f"refresh interval for plan {plan} must be positive")
        return v

    @field_validator("default_plan")
    @classmethod
    def normalize_plan(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator(
        "fetch_timeout_seconds",
        "status_poll_interval_seconds",
        "refresh_flash_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("status_poll_max_attempts", "notification_dedup_max_keys")
    @classmethod
    def validate_positive_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("notification_spacing_seconds")
    @classmethod
    def validate_spacing(cls, v: float) -> float:
        if v < 0:
            raise ValueError("notification spacing cannot be negative")
        return v

    @field_validator("tolerance")
    @classmethod
    def validate_tolerance(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("tolerance cannot be negative")
        return v

    def interval_for_plan(self, plan: str | None) -> float:
        """Silent refresh interval for a plan, falling back to the default plan."""
        key = (plan or self.default_plan).upper()
        if key in self.plan_intervals:
            return self.plan_intervals[key]
        return self.plan_intervals.get(self.default_plan, PlanIntervals.BASIC)


@lru_cache
def load_settings(env_file: str | None = None) -> CoinageSyncSettings:
    """Load CoinageSyncSettings once per process."""
    env_path = Path(env_file) if env_file else None
    return CoinageSyncSettings(_env_file=env_path)
