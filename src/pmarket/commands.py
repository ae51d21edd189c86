"""Command handlers. Each takes the invocation Context and parsed args, returns an exit code."""

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation

from pmarket.allowance import set_allowance
from pmarket.cache import MarketCache
from pmarket.chain import ChainClient
from pmarket.config import ConfigStore, PmarketConfig
from pmarket.contracts import ALLOWANCE_SPENDERS, POLYGONSCAN_TX
from pmarket.errors import PmarketError
from pmarket.models import GroupedRedemptionUnit, Position, RedemptionPath
from pmarket.polymarket import PolymarketService
from pmarket.redeem import redeem_all

log = logging.getLogger("pm.commands")


class Context:
    """Collaborators for one command invocation, built on first use."""

    def __init__(self, store: ConfigStore, cfg: PmarketConfig | None = None) -> None:
        self.store = store
        self.cfg = cfg or store.settings()
        self._service: PolymarketService | None = None
        self._chain: ChainClient | None = None
        self._cache: MarketCache | None = None

    @property
    def service(self) -> PolymarketService:
        if self._service is None:
            self._service = PolymarketService(self.store)
        return self._service

    @property
    def chain(self) -> ChainClient:
        if self._chain is None:
            self._chain = ChainClient.connect(
                self.store.private_key(),
                self.cfg.rpc_url,
                chain_id=self.cfg.chain_id,
                receipt_timeout=self.cfg.receipt_timeout_sec,
            )
        return self._chain

    @property
    def cache(self) -> MarketCache:
        if self._cache is None:
            self._cache = MarketCache(self.store.cache_path, ttl_sec=self.cfg.cache_ttl_sec)
        return self._cache

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()


def _decimal(value: str, name: str) -> Decimal:
    try:
        result = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if not result.is_finite() or result <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return result


def cmd_init(ctx: Context, args: argparse.Namespace) -> int:
    try:
        address = ctx.store.save_private_key(args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        print()
        print("Make sure you provide a valid Ethereum private key.")
        print("Example: pmarket-cli init 0x1234567890abcdef...")
        return 1

    print("Configuration saved successfully!")
    print()
    print(f"Wallet address: {address}")
    print(f"Config file: {ctx.store.config_path}")
    print()
    print("Next steps:")
    print("  1. Fund your wallet with POL (for gas) and USDC.e (for trading)")
    print("     IMPORTANT: Use USDC.e (bridged USDC at 0x2791...), NOT native USDC!")
    print("  2. Set USDC allowance: pmarket-cli allowance 500")
    print("  3. Refresh market cache: pmarket-cli refresh")
    print('  4. List markets: pmarket-cli list "Bitcoin"')
    return 0


def cmd_refresh(ctx: Context, args: argparse.Namespace) -> int:
    print("Fetching market data from Polymarket...")
    markets = ctx.service.fetch_all_markets()
    ctx.cache.store_markets(markets)
    active = sum(1 for m in markets if m.active and not m.closed)
    print(f"Cache refreshed: {len(markets)} total markets, {active} active.")
    return 0


def cmd_list(ctx: Context, args: argparse.Namespace) -> int:
    cache = ctx.cache
    if not cache.has_cache():
        print("No cached market data found.")
        print('Run "pmarket-cli refresh" to fetch market data first.')
        return 0

    age = cache.cache_age()
    found = cache.cached_markets(args.filter)
    if not found:
        print(f"No markets found matching filter: {args.filter}")
        print(f'\nCache last updated: {age}. Run "pmarket-cli refresh" to refresh.')
        return 0

    if not cache.is_valid():
        log.warning("CACHE_STALE last refresh %s", age)

    for m in found:
        print(m.question)
        print(f"  {m.yes_outcome}: {m.yes_token_id}")
        print(f"  {m.no_outcome}: {m.no_token_id}")
    print(f"\nFound {len(found)} market(s). Cache last updated: {age}.")
    print('Run "pmarket-cli refresh" to refresh cache.')
    return 0


def _cmd_order(ctx: Context, args: argparse.Namespace, side: str) -> int:
    size = _decimal(args.size, "size")
    price = _decimal(args.price, "price")
    resp = ctx.service.place_order(args.token_id, side, size, price)
    print(resp)
    return 0


def cmd_buy(ctx: Context, args: argparse.Namespace) -> int:
    return _cmd_order(ctx, args, "BUY")


def cmd_sell(ctx: Context, args: argparse.Namespace) -> int:
    return _cmd_order(ctx, args, "SELL")


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text.ljust(width)
    return text[: width - 3] + "..."


def _fmt_pnl(pnl: Decimal) -> str:
    sign = "+" if pnl >= 0 else "-"
    return f"{sign}${abs(pnl):.2f}".rjust(9)


def print_positions(positions: list[Position]) -> None:
    total_value = sum((p.current_value for p in positions), Decimal("0"))
    total_pnl = sum((p.cash_pnl for p in positions), Decimal("0"))

    header = f"{'Market':<50} │ {'Side':<6} │ {'Size':>9} │ {'Price':>7} │ {'Value':>9} │ {'P&L':>9}"
    print(header)
    print("─" * len(header))
    for p in positions:
        print(
            f"{_truncate(p.title, 50)} │ {p.outcome:<6} │ {p.size:>9.2f} │ "
            f"{'$' + format(p.cur_price, '.2f'):>7} │ {'$' + format(p.current_value, '.2f'):>9} │ "
            f"{_fmt_pnl(p.cash_pnl)}"
        )
    print("─" * len(header))
    print(f"{'TOTAL':<50} │ {'':<6} │ {'':>9} │ {'':>7} │ "
          f"{'$' + format(total_value, '.2f'):>9} │ {_fmt_pnl(total_pnl)}")


def cmd_positions(ctx: Context, args: argparse.Namespace) -> int:
    address = ctx.store.wallet_address()
    if not address:
        raise PmarketError("Wallet not initialized. Please check your private key.")
    print(f"Fetching positions for {address}...")
    print()
    positions = ctx.service.get_positions(address)
    if not positions:
        print("No open positions found.")
        return 0
    print_positions(positions)
    print()
    print(f"{len(positions)} position(s) found.")
    return 0


def cmd_orderbook(ctx: Context, args: argparse.Namespace) -> int:
    print(ctx.service.get_order_book(args.token_id))
    return 0


def cmd_cancel_all(ctx: Context, args: argparse.Namespace) -> int:
    print(ctx.service.cancel_all())
    return 0


def cmd_keys(ctx: Context, args: argparse.Namespace) -> int:
    creds = ctx.service.get_api_keys()
    print("API credentials ready.")
    print(f"  key:        {creds.api_key}")
    print(f"  secret:     {creds.api_secret}")
    print(f"  passphrase: {creds.api_passphrase}")
    return 0


def cmd_allowance(ctx: Context, args: argparse.Namespace) -> int:
    amount = _decimal(args.amount, "amount")
    print(f"Setting USDC allowance to {amount} for all exchanges...")
    print()

    result = set_allowance(ctx.chain, ctx.cfg, amount)
    print(f"CTFExchange tx: {POLYGONSCAN_TX}{result.ctf_tx_hash}")
    print(f"NegRiskExchange tx: {POLYGONSCAN_TX}{result.neg_risk_tx_hash}")
    print(f"NegRiskAdapter tx: {POLYGONSCAN_TX}{result.adapter_tx_hash}")
    print("Waiting for NegRiskAdapter confirmation...")
    receipt = result.adapter_pending.wait()
    print(f"NegRiskAdapter allowance confirmed! Block: {receipt.get('blockNumber', '?')}")
    print()
    print("Allowance set successfully for all exchanges!")
    print(f"  Amount: {amount} USDC")
    print("  Contracts:")
    for name, address in ALLOWANCE_SPENDERS:
        print(f"    - {name}: {address}")
    return 0


def _print_units(grouped: dict[str, GroupedRedemptionUnit]) -> None:
    print(f"Found {len(grouped)} resolved market(s) with redeemable positions:")
    print()
    for condition_id, unit in grouped.items():
        sizes = []
        if unit.yes_size > 0:
            sizes.append(f"Yes: {unit.yes_size:.2f}")
        if unit.no_size > 0:
            sizes.append(f"No: {unit.no_size:.2f}")
        print(f"  {unit.title}")
        print(f"  Condition: {condition_id}")
        print(f"  Shares: {', '.join(sizes)}")
        print()
    print("Redeeming positions...")
    print()


_PATH_LABELS = {
    RedemptionPath.STANDARD.value: "standard",
    RedemptionPath.ADAPTER_MEDIATED.value: "neg_risk",
}


def _print_progress(event: str, unit: GroupedRedemptionUnit, detail: str) -> None:
    if event == "redeeming":
        print(f"Redeeming: {unit.title}")
    elif event == "classified":
        print(f"  Detected: {_PATH_LABELS.get(detail, detail)} market")
    elif event == "redeemed":
        print(f"  Confirmed: {POLYGONSCAN_TX}{detail}")
    elif event == "failed":
        print(f"  Failed to redeem: {detail}", file=sys.stderr)


def cmd_redeem(ctx: Context, args: argparse.Namespace) -> int:
    chain = ctx.chain
    print(f"Fetching redeemable positions for {chain.address}...")
    print()
    summary = redeem_all(chain, ctx.service, ctx.cfg, on_grouped=_print_units, on_progress=_print_progress)
    if summary.total == 0:
        print("No redeemable positions found.")
        return 0
    print()
    print(f"Redeemed {summary.redeemed}/{summary.total} market(s). "
          "USDC.e has been returned to your wallet.")
    for condition_id, message in summary.failures:
        print(f"  retry later: {condition_id} ({message})")
    return 0


# Verb used in "Failed to <verb>: <message>"
COMMANDS = {
    "init": (cmd_init, "initialize config"),
    "refresh": (cmd_refresh, "refresh markets"),
    "list": (cmd_list, "list markets"),
    "buy": (cmd_buy, "place buy order"),
    "sell": (cmd_sell, "place sell order"),
    "positions": (cmd_positions, "fetch positions"),
    "orderbook": (cmd_orderbook, "fetch order book"),
    "cancel-all": (cmd_cancel_all, "cancel orders"),
    "keys": (cmd_keys, "get API keys"),
    "allowance": (cmd_allowance, "set allowance"),
    "redeem": (cmd_redeem, "redeem positions"),
}
