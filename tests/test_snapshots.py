"""Tests for balance snapshots and the snapshot store."""
from __future__ import annotations

from decimal import Decimal

import pytest

from coinage_sync.exceptions import SnapshotParseError
from coinage_sync.snapshots import (
    BalanceSnapshot,
    Network,
    SnapshotStore,
    format_balance,
    native_symbol,
    to_decimal,
)

from sync_helpers import make_snapshot


def test_from_payload_parses_balances_table(sample_address):
    snapshot = BalanceSnapshot.from_payload(
        {
            "network": "testnet",
            "address": sample_address,
            "balancesTable": {"AZE-t": "1.500000", "cBRL": 50, "PCN": None},
        }
    )

    assert snapshot.owner == sample_address
    assert snapshot.network is Network.TESTNET
    assert snapshot.balances["AZE-t"] == Decimal("1.5")
    assert snapshot.balances["cBRL"] == Decimal("50")
    assert snapshot.balances["PCN"] == Decimal("0")


def test_from_payload_falls_back_to_requested_owner_and_network():
    snapshot = BalanceSnapshot.from_payload(
        {"balancesTable": {"AZE": "2"}},
        owner="0xfeed",
        network=Network.MAINNET,
    )

    assert snapshot.owner == "0xfeed"
    assert snapshot.network is Network.MAINNET


def test_from_payload_rejects_invalid_amount():
    with pytest.raises(SnapshotParseError) as exc_info:
        BalanceSnapshot.from_payload({"balancesTable": {"cBRL": "lots"}})

    assert exc_info.value.details["field"] == "balancesTable"


def test_from_payload_rejects_unknown_network():
    with pytest.raises(SnapshotParseError):
        BalanceSnapshot.from_payload({"network": "devnet", "balancesTable": {}})


def test_to_decimal_rejects_non_finite():
    with pytest.raises(SnapshotParseError):
        to_decimal("NaN", token="cBRL")


def test_to_decimal_keeps_float_printed_value():
    assert to_decimal(0.1) == Decimal("0.1")


def test_snapshot_is_immutable(sample_address):
    source = {"cBRL": Decimal("10")}
    snapshot = BalanceSnapshot(owner=sample_address, network=Network.TESTNET, balances=source)

    source["cBRL"] = Decimal("99")

    assert snapshot.balances["cBRL"] == Decimal("10")
    with pytest.raises(TypeError):
        snapshot.balances["cBRL"] = Decimal("1")  # type: ignore[index]
    with pytest.raises(AttributeError):
        snapshot.owner = "0xother"  # type: ignore[misc]


def test_get_balance_resolves_native_alias(sample_address):
    testnet = make_snapshot(sample_address, {"AZE-t": 3})
    mainnet = make_snapshot(sample_address, {"AZE": 7}, network=Network.MAINNET)

    assert testnet.get_balance("AZE") == Decimal("3")
    assert mainnet.get_balance("AZE") == Decimal("7")
    assert testnet.get_balance("PCN") == Decimal("0")


def test_native_symbol_per_network():
    assert native_symbol(Network.TESTNET) == "AZE-t"
    assert native_symbol(Network.MAINNET) == "AZE"
    assert Network.MAINNET.label == "Mainnet"


def test_belongs_to_is_case_insensitive():
    snapshot = make_snapshot("0xABCDEF0000000000000000000000000000000001", {})

    assert snapshot.belongs_to("0xabcdef0000000000000000000000000000000001")
    assert not snapshot.belongs_to("0x0000000000000000000000000000000000000000")


def test_format_balance_uses_six_decimals():
    assert format_balance(Decimal("12.5")) == "12.500000"
    assert format_balance("0.0000004") == "0.000000"


def test_to_dict(sample_address):
    snapshot = make_snapshot(sample_address, {"cBRL": "1.25"})

    data = snapshot.to_dict()

    assert data["network"] == "testnet"
    assert data["balancesTable"] == {"cBRL": "1.250000"}


def test_store_starts_without_baseline():
    store = SnapshotStore(Network.MAINNET)

    assert store.current is None
    assert store.version == 0
    assert store.balances.is_empty
    assert store.balances.network is Network.MAINNET


def test_store_replace_and_reset_bump_version(sample_address):
    store = SnapshotStore()
    snapshot = make_snapshot(sample_address, {"cBRL": 1})

    store.replace(snapshot)
    assert store.current is snapshot
    assert store.version == 1

    store.reset()
    assert store.current is None
    assert store.version == 2
    assert store.balances.network is Network.TESTNET
