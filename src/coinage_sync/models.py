"""Value types shared by the REST client, the refresh scheduler and the poller."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from .exceptions import SnapshotParseError


class Plan(str, Enum):
    BASIC = "BASIC"
    PRO = "PRO"
    PREMIUM = "PREMIUM"


class DepositStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DepositStatus.PENDING


@dataclass(frozen=True, slots=True)
class SessionIdentity:
    """The signed-in user whose balances are being synchronised."""

    user_id: str
    public_key: str
    email: str = ""
    plan: Optional[str] = None

    def with_plan(self, plan: Optional[str]) -> "SessionIdentity":
        return SessionIdentity(
            user_id=self.user_id,
            public_key=self.public_key,
            email=self.email,
            plan=plan.upper() if plan else None,
        )


@dataclass(frozen=True, slots=True)
class TransactionStatus:
    """Status of one deposit transaction as reported by the API."""

    transaction_id: str
    status: DepositStatus
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_payload(cls, transaction_id: str, payload: Mapping[str, Any]) -> "TransactionStatus":
        """Parse ``{"status": ..., "blockNumber": ..., "txHash": ...}``."""
        raw_status = str(payload.get("status") or "").lower()
        try:
            status = DepositStatus(raw_status)
        except ValueError as exc:
            raise SnapshotParseError(f"unknown deposit status {raw_status!r}", field="status") from exc

        block_number = payload.get("blockNumber")
        return cls(
            transaction_id=transaction_id,
            status=status,
            block_number=int(block_number) if block_number is not None else None,
            tx_hash=payload.get("txHash") or None,
            raw=dict(payload),
        )
