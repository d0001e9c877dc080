"""Snapshot diffing: turns two balance snapshots into change records."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .constants import SyncDefaults
from .snapshots import ZERO, BalanceSnapshot, format_balance


class ChangeKind(str, Enum):
    NEW = "new"
    INCREASE = "increase"
    DECREASE = "decrease"


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    """One token's balance movement between two snapshots."""

    token: str
    previous_value: Decimal
    new_value: Decimal
    kind: ChangeKind

    @property
    def delta(self) -> Decimal:
        return self.new_value - self.previous_value

    def dedup_key(self) -> str:
        return f"{self.token}_{self.kind.value}_{format_balance(self.delta)}_{format_balance(self.new_value)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "kind": self.kind.value,
            "previousValue": format_balance(self.previous_value),
            "newValue": format_balance(self.new_value),
            "delta": format_balance(self.delta),
        }


def _classify(previous: Decimal, new: Decimal) -> ChangeKind:
    if previous == ZERO and new > ZERO:
        return ChangeKind.NEW
    return ChangeKind.INCREASE if new > previous else ChangeKind.DECREASE


def diff(
    previous: Optional[BalanceSnapshot],
    next_snapshot: BalanceSnapshot,
    tolerance: Decimal = SyncDefaults.TOLERANCE,
) -> list[ChangeRecord]:
    """Compare two snapshots and return the material changes.

    With no previous snapshot there is no baseline, so nothing is reported;
    this keeps the first load from announcing every token as new.

    Records follow the token order of ``next_snapshot``; tokens that vanished
    from it are appended afterwards as decreases to zero.
    """
    if previous is None:
        return []

    changes: list[ChangeRecord] = []
    before = previous.balances
    after = next_snapshot.balances

    for token, new_value in after.items():
        old_value = before.get(token, ZERO)
        if abs(new_value - old_value) > tolerance:
            changes.append(
                ChangeRecord(
                    token=token,
                    previous_value=old_value,
                    new_value=new_value,
                    kind=_classify(old_value, new_value),
                )
            )

    for token, old_value in before.items():
        if token in after:
            continue
        if abs(old_value) > tolerance:
            changes.append(
                ChangeRecord(
                    token=token,
                    previous_value=old_value,
                    new_value=ZERO,
                    kind=ChangeKind.DECREASE,
                )
            )

    return changes

