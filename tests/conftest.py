"""
Pytest configuration for coinage-sync tests.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

# Set test environment
os.environ.setdefault("COINAGE_ENVIRONMENT", "dev")
os.environ.setdefault("COINAGE_API_BASE_URL", "http://coinage.test")

from coinage_sync.config import CoinageSyncSettings  # noqa: E402
from coinage_sync.events import EventBus  # noqa: E402
from coinage_sync.models import SessionIdentity  # noqa: E402


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def sample_address():
    """Valid wallet address for testing."""
    return "0x1234567890123456789012345678901234567890"


@pytest.fixture
def identity(sample_address):
    return SessionIdentity(user_id="usr_1", public_key=sample_address, email="ana@coinage.test", plan="PREMIUM")


@pytest.fixture
def settings():
    """Fast timings so scheduler and poller tests finish quickly."""
    return CoinageSyncSettings(
        _env_file=None,
        api_base_url="http://coinage.test",
        notification_spacing_seconds=0,
        fetch_timeout_seconds=0.5,
        refresh_flash_seconds=0.05,
        status_poll_interval_seconds=0.01,
    )


@pytest.fixture
def bus():
    return EventBus()
