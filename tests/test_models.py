from __future__ import annotations

import pytest

from coinage_sync.exceptions import CoinageSyncError, SnapshotParseError
from coinage_sync.models import DepositStatus, Plan, SessionIdentity, TransactionStatus


def test_transaction_status_from_payload():
    status = TransactionStatus.from_payload("tx_1", {"status": "PENDING", "blockNumber": "10"})

    assert status.status is DepositStatus.PENDING
    assert status.block_number == 10
    assert status.tx_hash is None
    assert not status.is_terminal


def test_unknown_deposit_status_is_rejected():
    with pytest.raises(SnapshotParseError) as exc_info:
        TransactionStatus.from_payload("tx_1", {"status": "paid"})

    assert isinstance(exc_info.value, CoinageSyncError)
    assert exc_info.value.to_dict()["error"] == "SNAPSHOT_INVALID"


def test_terminal_statuses():
    assert DepositStatus.CONFIRMED.is_terminal
    assert DepositStatus.FAILED.is_terminal
    assert not DepositStatus.PENDING.is_terminal


def test_identity_with_plan_normalizes():
    identity = SessionIdentity(user_id="usr_1", public_key="0xabc")

    upgraded = identity.with_plan("premium")

    assert upgraded.plan == Plan.PREMIUM.value
    assert identity.plan is None
    assert identity.with_plan(None).plan is None
