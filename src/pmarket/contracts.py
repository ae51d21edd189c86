"""Polygon contract addresses, minimal ABIs and fixed-point helpers."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

from web3 import Web3

# ── Contract addresses (Polygon mainnet) ──
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"  # USDC.e, not native USDC
CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
CTF_EXCHANGE = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
NEG_RISK_EXCHANGE = "0xC5d563A36AE78145C45a50134d48A1215220f80a"
NEG_RISK_ADAPTER = "0xd91E80cF2E7be2e162c6513ceD06f1dD0dA35296"

# Spenders that need USDC allowance, in approval order
ALLOWANCE_SPENDERS = (
    ("CTFExchange", CTF_EXCHANGE),
    ("NegRiskExchange", NEG_RISK_EXCHANGE),
    ("NegRiskAdapter", NEG_RISK_ADAPTER),
)

# Null parent collection ID (standard for Polymarket top-level conditions)
PARENT_COLLECTION_ID = bytes(32)

# Binary outcome index sets: 0b01 = YES, 0b10 = NO
INDEX_SETS = [1, 2]

# USDC.e and CTF position amounts both use 6 decimals on Polygon
USDC_DECIMALS = 6

POLYGONSCAN_TX = "https://polygonscan.com/tx/"

# ── ABIs ──

ERC20_APPROVE_ABI = [
    {
        "name": "approve",
        "type": "function",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    }
]

CTF_ABI = [
    {
        "name": "redeemPositions",
        "type": "function",
        "inputs": [
            {"name": "collateralToken", "type": "address"},
            {"name": "parentCollectionId", "type": "bytes32"},
            {"name": "conditionId", "type": "bytes32"},
            {"name": "indexSets", "type": "uint256[]"},
        ],
        "outputs": [],
    },
    {
        "name": "getCollectionId",
        "type": "function",
        "inputs": [
            {"name": "parentCollectionId", "type": "bytes32"},
            {"name": "conditionId", "type": "bytes32"},
            {"name": "indexSet", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
    },
    {
        "name": "isApprovedForAll",
        "type": "function",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "operator", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
    },
    {
        "name": "setApprovalForAll",
        "type": "function",
        "inputs": [
            {"name": "operator", "type": "address"},
            {"name": "approved", "type": "bool"},
        ],
        "outputs": [],
    },
]

NEG_RISK_REDEEM_ABI = [
    {
        "name": "redeemPositions",
        "type": "function",
        "inputs": [
            {"name": "_conditionId", "type": "bytes32"},
            {"name": "_amounts", "type": "uint256[]"},
        ],
        "outputs": [],
    }
]


# ── Helpers ──

def to_base_units(amount: Decimal | int | str | float) -> int:
    """Convert a decimal share/USDC amount to 6-decimal fixed point, truncating."""
    scaled = Decimal(str(amount)) * (10 ** USDC_DECIMALS)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def condition_bytes(condition_id: str) -> bytes:
    """Parse a 0x-prefixed bytes32 condition id."""
    if not condition_id:
        raise ValueError("condition_id is empty")
    raw = bytes.fromhex(condition_id.removeprefix("0x"))
    if len(raw) != 32:
        raise ValueError(f"condition_id must be 32 bytes, got {len(raw)}: {condition_id}")
    return raw


def compute_position_id(collection_id: bytes, collateral: str = USDC_ADDRESS) -> int:
    """ERC1155 token ID of the CTF position for *collection_id* backed by *collateral*.

    Mirrors CTHelpers.getPositionId, which is a plain keccak (unlike
    getCollectionId, whose curve arithmetic is left to the contract).
    """
    position_id = Web3.solidity_keccak(
        ["address", "bytes32"],
        [Web3.to_checksum_address(collateral), collection_id],
    )
    return int.from_bytes(position_id, "big")
