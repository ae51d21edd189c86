"""Data structures shared by the pmarket commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

ZERO = Decimal("0")


class RedemptionPath(Enum):
    STANDARD = "standard"
    ADAPTER_MEDIATED = "adapter_mediated"


@dataclass(frozen=True)
class Position:
    """One held outcome share as reported by the positions API."""
    asset: str
    condition_id: str
    outcome: str  # "Yes" / "No"
    size: Decimal
    redeemable: bool
    title: str
    cur_price: Decimal = ZERO
    current_value: Decimal = ZERO
    cash_pnl: Decimal = ZERO
    outcome_index: Optional[int] = None  # slot in the condition, 0 = first outcome


@dataclass
class GroupedRedemptionUnit:
    condition_id: str
    title: str
    yes_size: Decimal = field(default_factory=lambda: Decimal("0"))
    no_size: Decimal = field(default_factory=lambda: Decimal("0"))
    yes_asset: str = ""
    no_asset: str = ""
    yes_index: int = 0
    no_index: int = 1

    def reference_asset(self) -> tuple[str, int]:
        """(token id, index set) of one held outcome, YES preferred.

        Binary index sets: outcome index 0 is index set 1, outcome index 1 is 2.
        """
        if self.yes_asset:
            return self.yes_asset, self.yes_index + 1
        return self.no_asset, self.no_index + 1


@dataclass(frozen=True)
class FeeData:
    """Raw fee-market readings; either field may be missing."""
    suggested_priority_fee: Optional[int] = None
    last_base_fee: Optional[int] = None


@dataclass(frozen=True)
class FeeSchedule:
    max_priority_fee_per_gas: int  # wei
    max_fee_per_gas: int  # wei
    gas_limit: int

    def with_gas_limit(self, gas_limit: int) -> FeeSchedule:
        return FeeSchedule(self.max_priority_fee_per_gas, self.max_fee_per_gas, gas_limit)

    def tx_params(self) -> dict[str, int]:
        return {
            "gas": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }


@dataclass(frozen=True)
class AllowanceResult:
    ctf_tx_hash: str
    neg_risk_tx_hash: str
    adapter_tx_hash: str
    adapter_pending: Any = None  # chain.PendingTx, confirmation left to the caller


@dataclass(frozen=True)
class RedeemSummary:
    redeemed: int
    total: int
    failures: tuple[tuple[str, str], ...] = ()  # (condition_id, message)


@dataclass(frozen=True)
class Market:
    condition_id: str
    question: str
    description: str = ""
    category: str = ""
    end_date_iso: str = ""
    active: bool = False
    closed: bool = False
    yes_token_id: str = ""
    no_token_id: str = ""
    yes_outcome: str = "Yes"
    no_outcome: str = "No"

    @classmethod
    def from_clob(cls, raw: dict[str, Any]) -> Market:
        """Build from a CLOB /markets item (two-token binary market)."""
        tokens = raw.get("tokens") or []
        yes = tokens[0] if len(tokens) > 0 else {}
        no = tokens[1] if len(tokens) > 1 else {}
        return cls(
            condition_id=raw.get("condition_id", ""),
            question=raw.get("question", ""),
            description=raw.get("description") or "",
            category=raw.get("category") or "",
            end_date_iso=raw.get("end_date_iso") or "",
            active=bool(raw.get("active", False)),
            closed=bool(raw.get("closed", False)),
            yes_token_id=yes.get("token_id", ""),
            no_token_id=no.get("token_id", ""),
            yes_outcome=yes.get("outcome", "Yes"),
            no_outcome=no.get("outcome", "No"),
        )
