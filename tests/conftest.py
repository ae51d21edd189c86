"""Shared fixtures for pmarket tests."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from web3 import Web3

from pmarket.config import PmarketConfig
from pmarket.models import FeeData, Position

COND_A = "0x" + "11" * 32
COND_B = "0x" + "22" * 32
WALLET = "0x" + "ab" * 20


def make_position(**overrides) -> Position:
    fields = dict(
        asset="123456",
        condition_id=COND_A,
        outcome="Yes",
        size=Decimal("10"),
        redeemable=True,
        title="Test Market",
    )
    fields.update(overrides)
    return Position(**fields)


def make_pending(tx_hash: str = "0xabc123", status: int = 1, block: int = 42) -> MagicMock:
    pending = MagicMock()
    pending.hash = tx_hash
    pending.wait.return_value = {"status": status, "blockNumber": block}
    return pending


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("POLYMARKET_PRIVATE_KEY", "POLYGON_RPC_URL", "PMARKET_CONFIG_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cfg() -> PmarketConfig:
    return PmarketConfig()


@pytest.fixture
def chain() -> MagicMock:
    """Chain client double: operator already approved, every tx mines."""
    c = MagicMock()
    c.address = Web3.to_checksum_address(WALLET)
    c.get_fee_data.return_value = FeeData(
        suggested_priority_fee=Web3.to_wei(35, "gwei"),
        last_base_fee=Web3.to_wei(50, "gwei"),
    )
    c.call.return_value = True
    c.send.side_effect = lambda *a, **kw: make_pending(f"0x{c.send.call_count:064x}")
    return c
