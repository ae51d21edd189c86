"""
pmarket-cli - command line interface for Polymarket.

Commands:
  pmarket-cli init <privateKey>              Save the wallet key
  pmarket-cli refresh                        Refresh the local market cache
  pmarket-cli list [filter]                  List cached markets
  pmarket-cli buy|sell <token> <size> <px>   Place a GTC limit order
  pmarket-cli positions                      Show current positions
  pmarket-cli orderbook <token>              Show the order book of a token
  pmarket-cli cancel-all                     Cancel all open orders
  pmarket-cli keys                           Get or derive API keys
  pmarket-cli allowance <amount>             Approve USDC.e for the exchanges
  pmarket-cli redeem                         Redeem resolved positions
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv
from py_clob_client.exceptions import PolyApiException

from pmarket import __version__
from pmarket.commands import COMMANDS, Context
from pmarket.config import ConfigStore
from pmarket.errors import PmarketError

log = logging.getLogger("pm.cli")

LOG_FORMAT = "%(asctime)s │ %(name)-16s │ %(message)s"


class _ColorFormatter(logging.Formatter):
    """Dim DEBUG lines on the console for visual hierarchy."""
    _DIM = "\033[2m"
    _RESET = "\033[0m"

    def format(self, record):
        result = super().format(record)
        if record.levelno <= logging.DEBUG:
            return f"{self._DIM}{result}{self._RESET}"
        return result


def setup_logging(level_str: str = "WARNING") -> None:
    level = getattr(logging, level_str.upper(), logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", force=True)

    for h in logging.getLogger().handlers:
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            h.setFormatter(_ColorFormatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S"))

    for noisy in ("httpx", "httpcore", "urllib3", "py_clob_client", "web3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pmarket-cli",
        description="Command line interface for Polymarket",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "debug", "info", "warning", "error"],
        help="Root log level (default: WARNING)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Shortcut for --log-level INFO")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p = subparsers.add_parser("init", help="Initialize config with your private key")
    p.add_argument("private_key", help="Hex private key (0x prefix optional)")

    subparsers.add_parser("refresh", help="Refresh locally cached market data")

    p = subparsers.add_parser("list", help="List available markets matching a question filter")
    p.add_argument("filter", nargs="?", default="", help="Case-insensitive question filter")

    for side in ("buy", "sell"):
        p = subparsers.add_parser(side, help=f"Place a {side} limit order")
        p.add_argument("token_id")
        p.add_argument("size", help="Number of shares")
        p.add_argument("price", help="Limit price in USDC")

    subparsers.add_parser("positions", help="Show current token positions")

    p = subparsers.add_parser("orderbook", help="Show order book for a token id")
    p.add_argument("token_id")

    subparsers.add_parser("cancel-all", help="Cancel all open orders")
    subparsers.add_parser("keys", help="Get or generate API keys")

    p = subparsers.add_parser("allowance", help="Set USDC allowance for the exchange contracts")
    p.add_argument("amount", help="Amount in USDC")

    subparsers.add_parser("redeem", help="Redeem positions of resolved markets")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging("INFO" if args.verbose and args.log_level.upper() == "WARNING" else args.log_level)
    load_dotenv()

    handler, verb = COMMANDS[args.command]
    ctx = None
    try:
        ctx = Context(ConfigStore())
        return handler(ctx, args)
    except (PmarketError, PolyApiException, ValueError) as e:
        log.debug("COMMAND_FAIL %s", args.command, exc_info=True)
        print(f"Failed to {verb}: {e}", file=sys.stderr)
        return 1
    finally:
        if ctx is not None:
            ctx.close()


if __name__ == "__main__":
    sys.exit(main())
