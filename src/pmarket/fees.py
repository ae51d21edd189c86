"""EIP-1559 fee schedule for Polygon transactions."""

from __future__ import annotations

import logging

from web3 import Web3

from pmarket.config import PmarketConfig
from pmarket.models import FeeSchedule

log = logging.getLogger("pm.fees")


def estimate_fees(source, cfg: PmarketConfig, gas_limit: int | None = None) -> FeeSchedule:
    """Derive (priority fee, max fee, gas limit) from *source*.get_fee_data().

    The tip never drops below cfg.min_priority_fee_gwei, and the fee cap
    covers one full base-fee doubling: base * 2 + tip. If the fee source
    fails, both components fall back to the configured floors.
    """
    min_tip = Web3.to_wei(cfg.min_priority_fee_gwei, "gwei")
    fallback_base = Web3.to_wei(cfg.fallback_base_fee_gwei, "gwei")
    gas_limit = gas_limit or cfg.approve_gas_limit

    suggested = None
    base_fee = None
    try:
        data = source.get_fee_data()
        suggested = data.suggested_priority_fee
        base_fee = data.last_base_fee
    except Exception as exc:
        log.warning("FEE_DATA_UNAVAILABLE │ using floors │ %s", exc)

    tip = max(suggested or 0, min_tip)
    base = base_fee if base_fee else fallback_base
    max_fee = base * 2 + tip

    log.debug("FEES tip=%.1f gwei │ base=%.1f gwei │ maxFee=%.1f gwei │ gas=%d",
              tip / 1e9, base / 1e9, max_fee / 1e9, gas_limit)
    return FeeSchedule(max_priority_fee_per_gas=tip, max_fee_per_gas=max_fee, gas_limit=gas_limit)
