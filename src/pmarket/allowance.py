"""USDC.e allowances for the exchange contracts.

Approvals go out one per spender in ALLOWANCE_SPENDERS order. Every
approval but the last is mined before the next is sent, with a pacing
delay in between (the public Polygon RPC rate-limits per time window).
The last approval is returned pending; the caller awaits it.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Callable

from web3 import Web3

from pmarket.config import PmarketConfig
from pmarket.contracts import ALLOWANCE_SPENDERS, ERC20_APPROVE_ABI, USDC_ADDRESS, to_base_units
from pmarket.fees import estimate_fees
from pmarket.models import AllowanceResult
from pmarket.pacing import build_pacing

log = logging.getLogger("pm.allowance")


def set_allowance(
    chain,
    cfg: PmarketConfig,
    amount: Decimal,
    sleep: Callable[[float], None] = time.sleep,
    pacing=None,
) -> AllowanceResult:
    """Approve *amount* USDC for every exchange spender.

    Any failed submission or revert aborts the remaining approvals and
    propagates. Spenders approved before the failure stay approved;
    re-running sends all approvals again.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValueError(f"allowance amount must be > 0, got {amount}")

    value = to_base_units(amount)
    pacing = pacing or build_pacing(cfg, cfg.allowance_pace_sec)
    log.info("ALLOWANCE_INIT amount=%s USDC │ base_units=%d │ spenders=%d",
             amount, value, len(ALLOWANCE_SPENDERS))

    hashes: list[str] = []
    pending = None
    last = len(ALLOWANCE_SPENDERS) - 1
    for i, (name, spender) in enumerate(ALLOWANCE_SPENDERS):
        if i > 0:
            delay = pacing.pace(i)
            log.info("ALLOWANCE_PACE %.1fs before %s", delay, name)
            sleep(delay)

        fees = estimate_fees(chain, cfg, cfg.approve_gas_limit)
        pending = chain.send(
            USDC_ADDRESS,
            ERC20_APPROVE_ABI,
            "approve",
            [Web3.to_checksum_address(spender), value],
            fees,
            label=f"approve:{name}",
        )
        hashes.append(pending.hash)

        if i < last:
            receipt = pending.wait()
            log.info("ALLOWANCE_CONFIRMED %s │ tx=%s │ block=%s",
                     name, pending.hash, receipt.get("blockNumber", "?"))
        else:
            log.info("ALLOWANCE_PENDING %s │ tx=%s", name, pending.hash)

    ctf_hash, neg_risk_hash, adapter_hash = hashes
    return AllowanceResult(
        ctf_tx_hash=ctf_hash,
        neg_risk_tx_hash=neg_risk_hash,
        adapter_tx_hash=adapter_hash,
        adapter_pending=pending,
    )
