"""Decide whether a resolved condition redeems through CTF or the NegRiskAdapter.

Standard conditions pay out in USDC.e, so the held outcome token is the
CTF position backed by USDC.e. Neg-risk conditions are collateralised by
the adapter's wrapped collateral and their outcome tokens have different
position ids. One getCollectionId read per condition tells them apart;
the position id itself is a plain keccak computed locally.

Nothing is cached: market state is only authoritative at call time.
"""

from __future__ import annotations

import logging

from pmarket.contracts import (
    CTF_ABI,
    CTF_ADDRESS,
    PARENT_COLLECTION_ID,
    compute_position_id,
    condition_bytes,
)
from pmarket.errors import ClassificationError
from pmarket.models import RedemptionPath

log = logging.getLogger("pm.classifier")


def classify(chain, condition_id: str, asset: str, index_set: int) -> RedemptionPath:
    """Redemption path for *condition_id*, given one held outcome token.

    *asset* is the held token id for outcome *index_set* (1 = YES, 2 = NO).
    Raises ClassificationError on RPC errors, reverts or malformed ids.
    """
    try:
        cond = condition_bytes(condition_id)
        held_id = int(asset)
        collection_id = chain.call(
            CTF_ADDRESS, CTF_ABI, "getCollectionId",
            [PARENT_COLLECTION_ID, cond, index_set],
        )
        standard_id = compute_position_id(bytes(collection_id))
    except Exception as exc:
        raise ClassificationError(str(exc)) from exc

    path = RedemptionPath.STANDARD if held_id == standard_id else RedemptionPath.ADAPTER_MEDIATED
    log.info("CLASSIFY %s │ index_set=%d │ %s", condition_id[:18], index_set, path.value)
    return path
