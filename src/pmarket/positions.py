"""Position parsing and grouping into per-condition redemption units."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from pmarket.models import GroupedRedemptionUnit, Position

log = logging.getLogger("pm.positions")


def _dec(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else 0))


def parse_position(item: dict[str, Any]) -> Position | None:
    """Parse a data-api /positions item into a Position."""
    try:
        return Position(
            asset=str(item.get("asset", "")),
            condition_id=item.get("conditionId", ""),
            outcome=item.get("outcome", ""),
            size=_dec(item.get("size")),
            redeemable=bool(item.get("redeemable", False)),
            title=item.get("title", ""),
            cur_price=_dec(item.get("curPrice")),
            current_value=_dec(item.get("currentValue")),
            cash_pnl=_dec(item.get("cashPnl")),
            outcome_index=int(item["outcomeIndex"]) if item.get("outcomeIndex") is not None else None,
        )
    except (InvalidOperation, ValueError, TypeError) as exc:
        log.debug("POS_PARSE_FAIL │ %s │ item=%s", exc, item)
        return None


def group_positions(positions: Iterable[Position]) -> dict[str, GroupedRedemptionUnit]:
    """Group redeemable positions into one unit per condition id.

    Non-redeemable positions are dropped. A "Yes" row sets yes_size, any
    other outcome sets no_size; a duplicate row for the same outcome
    overwrites the earlier one. Keys keep first-seen order. Each held
    token keeps the API outcome index (label order is not slot order in
    Up/Down markets), falling back to 0 for "Yes" and 1 otherwise.
    """
    grouped: dict[str, GroupedRedemptionUnit] = {}
    for pos in positions:
        if not pos.redeemable:
            continue
        unit = grouped.get(pos.condition_id)
        if unit is None:
            unit = GroupedRedemptionUnit(condition_id=pos.condition_id, title=pos.title)
            grouped[pos.condition_id] = unit
        if pos.outcome == "Yes":
            unit.yes_size = pos.size
            unit.yes_asset = pos.asset
            unit.yes_index = pos.outcome_index if pos.outcome_index is not None else 0
        else:
            unit.no_size = pos.size
            unit.no_asset = pos.asset
            unit.no_index = pos.outcome_index if pos.outcome_index is not None else 1
    return grouped
