"""Balance snapshots and the store that holds the latest one."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .constants import SyncDefaults
from .exceptions import SnapshotParseError

ZERO = Decimal("0")


class Network(str, Enum):
    """Chain environment a snapshot was read from."""

    TESTNET = "testnet"
    MAINNET = "mainnet"

    @property
    def label(self) -> str:
        return "Mainnet" if self is Network.MAINNET else "Testnet"


def native_symbol(network: Network) -> str:
    """Symbol of the native AZE coin on a network."""
    return "AZE" if network is Network.MAINNET else "AZE-t"


def to_decimal(value: Any, *, token: str = "") -> Decimal:
    """Parse an API amount ("12.500000", 12.5, None) into a Decimal."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats keep their printed value
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise SnapshotParseError(
            f"invalid balance {value!r} for token {token or '?'}",
            field="balancesTable",
        ) from exc
    if not amount.is_finite():
        raise SnapshotParseError(f"non-finite balance for token {token or '?'}", field="balancesTable")
    return amount


def format_balance(value: Any, decimals: int = SyncDefaults.DISPLAY_DECIMALS) -> str:
    """Render a balance with a fixed number of decimal places."""
    amount = to_decimal(value)
    quantum = Decimal(1).scaleb(-decimals)
    return str(amount.quantize(quantum))


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Immutable point-in-time mapping of token balances for one wallet."""

    owner: str
    network: Network
    balances: Mapping[str, Decimal] = field(default_factory=dict)
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        # Copy then freeze so a caller keeping the source dict can't mutate us
        frozen = MappingProxyType(dict(self.balances))
        object.__setattr__(self, "balances", frozen)

    @classmethod
    def empty(cls, network: Network = Network.TESTNET, owner: str = "") -> "BalanceSnapshot":
        return cls(owner=owner, network=network, balances={})

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        owner: Optional[str] = None,
        network: Optional[Network] = None,
    ) -> "BalanceSnapshot":
        """Build a snapshot from the API shape.

        Expected payload::

            {"network": "testnet", "address": "0xabc...",
             "balancesTable": {"AZE-t": "1.000000", "cBRL": "50.000000"}}
        """
        if not isinstance(payload, Mapping):
            raise SnapshotParseError("balances payload must be an object")

        table = payload.get("balancesTable") or {}
        if not isinstance(table, Mapping):
            raise SnapshotParseError("balancesTable must be an object", field="balancesTable")

        raw_network = payload.get("network") or (network.value if network else Network.TESTNET.value)
        try:
            parsed_network = Network(str(raw_network).lower())
        except ValueError as exc:
            raise SnapshotParseError(f"unknown network {raw_network!r}", field="network") from exc

        balances = {str(symbol): to_decimal(amount, token=str(symbol)) for symbol, amount in table.items()}
        return cls(
            owner=str(payload.get("address") or owner or ""),
            network=parsed_network,
            balances=balances,
        )

    @property
    def is_empty(self) -> bool:
        return not self.balances

    def get_balance(self, symbol: str) -> Decimal:
        """Balance for a symbol; "AZE" resolves to this network's native symbol."""
        if symbol == "AZE":
            candidates: tuple[str, ...] = (native_symbol(self.network), "AZE", "AZE-t")
        else:
            candidates = (symbol,)
        for candidate in candidates:
            if candidate in self.balances:
                return self.balances[candidate]
        return ZERO

    def belongs_to(self, address: str) -> bool:
        """Addresses are hex, compare case-insensitively."""
        return self.owner.lower() == (address or "").lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "network": self.network.value,
            "balancesTable": {symbol: format_balance(amount) for symbol, amount in self.balances.items()},
            "capturedAt": self.captured_at.isoformat(),
        }


class SnapshotStore:
    """Holds the last known snapshot for a session.

    `current` is None until the first successful fetch; that absence is what
    tells the differ there is no baseline yet.
    """

    def __init__(self, default_network: Network = Network.TESTNET) -> None:
        self._default_network = default_network
        self._current: Optional[BalanceSnapshot] = None
        self._version = 0

    @property
    def current(self) -> Optional[BalanceSnapshot]:
        return self._current

    @property
    def version(self) -> int:
        return self._version

    @property
    def default_network(self) -> Network:
        return self._default_network

    @property
    def balances(self) -> BalanceSnapshot:
        """Current snapshot, or an empty one on the default network."""
        if self._current is None:
            return BalanceSnapshot.empty(self._default_network)
        return self._current

    def replace(self, snapshot: BalanceSnapshot) -> None:
        self._current = snapshot
        self._version += 1

    def reset(self) -> None:
        self._current = None
        self._version += 1
