"""On-chain redemption of resolved Polymarket positions.

Positions are grouped per condition, then each condition is classified
and redeemed one at a time:

  STANDARD          CTF.redeemPositions(USDC.e, 0x0, conditionId, [1, 2])
  ADAPTER_MEDIATED  CTF.setApprovalForAll(adapter) once per wallet, then
                    NegRiskAdapter.redeemPositions(conditionId, [yes, no])

A failure inside one unit is logged and the batch moves on. Only a
missing wallet or an unreadable positions API aborts the command.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from web3 import Web3

from pmarket.classifier import classify as classify_condition
from pmarket.config import PmarketConfig
from pmarket.contracts import (
    CTF_ABI,
    CTF_ADDRESS,
    INDEX_SETS,
    NEG_RISK_ADAPTER,
    NEG_RISK_REDEEM_ABI,
    PARENT_COLLECTION_ID,
    USDC_ADDRESS,
    condition_bytes,
    to_base_units,
)
from pmarket.errors import WalletNotInitialized
from pmarket.fees import estimate_fees
from pmarket.models import GroupedRedemptionUnit, RedeemSummary, RedemptionPath
from pmarket.pacing import build_pacing
from pmarket.positions import group_positions

log = logging.getLogger("pm.redeem")


def ensure_operator_approval(chain, cfg: PmarketConfig, operator: str = NEG_RISK_ADAPTER) -> bool:
    """Approve *operator* for the wallet's conditional tokens if not already.

    Returns True when an approval transaction was sent and mined.
    """
    operator_checksum = Web3.to_checksum_address(operator)
    approved = chain.call(CTF_ADDRESS, CTF_ABI, "isApprovedForAll", [chain.address, operator_checksum])
    if approved:
        log.debug("OPERATOR_APPROVED already │ %s", operator_checksum)
        return False

    log.info("OPERATOR_APPROVE setting %s as ERC1155 operator for %s", operator_checksum, chain.address)
    fees = estimate_fees(chain, cfg, cfg.operator_approval_gas_limit)
    pending = chain.send(
        CTF_ADDRESS, CTF_ABI, "setApprovalForAll", [operator_checksum, True], fees,
        label="setApprovalForAll",
    )
    pending.wait()
    log.info("OPERATOR_APPROVED %s tx=%s", operator_checksum, pending.hash)
    return True


def redeem_standard(chain, cfg: PmarketConfig, unit: GroupedRedemptionUnit) -> str:
    """Redeem both outcome slots of a USDC-backed condition. Returns tx hash."""
    fees = estimate_fees(chain, cfg, cfg.redeem_gas_limit)
    pending = chain.send(
        CTF_ADDRESS,
        CTF_ABI,
        "redeemPositions",
        [
            Web3.to_checksum_address(USDC_ADDRESS),
            PARENT_COLLECTION_ID,
            condition_bytes(unit.condition_id),
            INDEX_SETS,
        ],
        fees,
        label="redeem:ctf",
    )
    log.info("REDEEM_SENT tx=%s │ condition=%s │ target=CTF", pending.hash, unit.condition_id[:18])
    pending.wait()
    return pending.hash


def redeem_neg_risk(chain, cfg: PmarketConfig, unit: GroupedRedemptionUnit) -> str:
    """Redeem through the NegRiskAdapter with explicit [yes, no] amounts. Returns tx hash."""
    ensure_operator_approval(chain, cfg, NEG_RISK_ADAPTER)

    amounts = [to_base_units(unit.yes_size), to_base_units(unit.no_size)]
    fees = estimate_fees(chain, cfg, cfg.redeem_gas_limit)
    pending = chain.send(
        NEG_RISK_ADAPTER,
        NEG_RISK_REDEEM_ABI,
        "redeemPositions",
        [condition_bytes(unit.condition_id), amounts],
        fees,
        label="redeem:neg_risk",
    )
    log.info("REDEEM_SENT tx=%s │ condition=%s │ target=NegRiskAdapter │ amounts=%s",
             pending.hash, unit.condition_id[:18], amounts)
    pending.wait()
    return pending.hash


_REDEEMERS = {
    RedemptionPath.STANDARD: redeem_standard,
    RedemptionPath.ADAPTER_MEDIATED: redeem_neg_risk,
}

# on_progress(event, unit, detail) events, in order for one unit:
#   "redeeming" (detail "")  "classified" (path value)
#   then "redeemed" (tx hash) or "failed" (error message)
ProgressCallback = Callable[[str, GroupedRedemptionUnit, str], None]


def _no_progress(event: str, unit: GroupedRedemptionUnit, detail: str) -> None:
    pass


def redeem_unit(
    chain,
    cfg: PmarketConfig,
    unit: GroupedRedemptionUnit,
    classify=classify_condition,
    on_progress: ProgressCallback = _no_progress,
) -> str:
    """Classify then redeem one condition. Raises on any failure."""
    asset, index_set = unit.reference_asset()
    path = classify(chain, unit.condition_id, asset, index_set)
    on_progress("classified", unit, path.value)
    tx_hash = _REDEEMERS[path](chain, cfg, unit)
    log.info("REDEEMED %s │ path=%s │ tx=%s", unit.condition_id[:18], path.value, tx_hash)
    return tx_hash


def redeem_all(
    chain,
    source,
    cfg: PmarketConfig,
    classify=classify_condition,
    sleep: Callable[[float], None] = time.sleep,
    pacing=None,
    on_grouped: Optional[Callable[[dict[str, GroupedRedemptionUnit]], None]] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> RedeemSummary:
    """Redeem every redeemable position held by the chain client's wallet.

    *source* provides get_positions(address). Units run strictly one at
    a time so each transaction is mined before the next nonce is used.
    """
    if chain is None:
        raise WalletNotInitialized("Wallet not initialized. Please check your private key.")

    address = chain.address
    log.info("REDEEM_INIT wallet=%s", address)
    positions = source.get_positions(address)
    grouped = group_positions(positions)

    if not grouped:
        log.info("REDEEM_NONE no redeemable positions for %s", address)
        return RedeemSummary(redeemed=0, total=0)

    if on_grouped is not None:
        on_grouped(grouped)

    progress = on_progress or _no_progress
    pacing = pacing or build_pacing(cfg, cfg.redeem_pace_sec)
    total = len(grouped)
    redeemed = 0
    failures: list[tuple[str, str]] = []

    for n, (condition_id, unit) in enumerate(grouped.items(), start=1):
        progress("redeeming", unit, "")
        log.info("REDEEM_UNIT %d/%d │ %s │ yes=%s no=%s",
                 n, total, condition_id[:18], unit.yes_size, unit.no_size)
        try:
            tx_hash = redeem_unit(chain, cfg, unit, classify=classify, on_progress=progress)
        except Exception as exc:
            log.error("REDEEM_FAIL %s │ Failed to redeem: %s", condition_id[:18], exc)
            progress("failed", unit, str(exc))
            failures.append((condition_id, str(exc)))
            continue

        redeemed += 1
        progress("redeemed", unit, tx_hash)
        if total > 1:
            delay = pacing.pace(n)
            log.debug("REDEEM_PACE %.1fs", delay)
            sleep(delay)

    log.info("REDEEM_DONE %d/%d │ failed=%d", redeemed, total, len(failures))
    return RedeemSummary(redeemed=redeemed, total=total, failures=tuple(failures))
