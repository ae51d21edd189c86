"""Polymarket exchange access: CLOB client (markets, orders) and the positions API."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import requests
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, OrderArgs, OrderType, PartialCreateOrderOptions
from py_clob_client.order_builder.constants import BUY, SELL

from pmarket.config import ConfigStore
from pmarket.errors import PositionFetchError, WalletNotInitialized
from pmarket.models import Market, Position
from pmarket.positions import parse_position

log = logging.getLogger("pm.polymarket")

CLOB_HOST = "https://clob.polymarket.com"
DATA_API_HOST = "https://data-api.polymarket.com"
CHAIN_ID = 137

FIRST_CURSOR = "MA=="
END_CURSOR = "LTE="

SIGNATURE_TYPE_EOA = 0


class PolymarketService:
    """Lazily authenticated CLOB client plus the public data API."""

    def __init__(self, store: ConfigStore, host: str = CLOB_HOST, timeout: float = 10) -> None:
        self._store = store
        self._host = host
        self._timeout = timeout
        self._client: ClobClient | None = None
        self._authenticated = False

    def _private_key(self) -> str:
        key = self._store.private_key()
        if not key or not self._store.wallet_address():
            raise WalletNotInitialized("Wallet not initialized. Please check your private key.")
        return key

    def _ensure_client(self, require_creds: bool = False) -> ClobClient:
        if self._client is not None and (self._authenticated or not require_creds):
            return self._client

        key = self._private_key()
        creds = self._store.get_creds()
        client = ClobClient(
            self._host,
            key=key,
            chain_id=CHAIN_ID,
            signature_type=SIGNATURE_TYPE_EOA,
            funder=self._store.wallet_address(),
            creds=creds,
        )

        if require_creds and creds is None:
            log.info("CREDS_DERIVE no stored API credentials, deriving")
            print("API credentials required. Deriving credentials...")
            creds = client.create_or_derive_api_creds()
            if not (creds and creds.api_key and creds.api_secret and creds.api_passphrase):
                raise WalletNotInitialized("Failed to create API credentials - missing required fields")
            self._store.save_credentials(creds)
            client.set_api_creds(creds)

        self._client = client
        self._authenticated = creds is not None
        return client

    # ── Markets ──

    def fetch_all_markets(self) -> list[Market]:
        """Page through every CLOB market."""
        client = self._ensure_client()
        markets: list[Market] = []
        cursor = FIRST_CURSOR
        while True:
            resp = client.get_markets(next_cursor=cursor)
            markets.extend(Market.from_clob(m) for m in resp.get("data", []))
            cursor = resp.get("next_cursor")
            log.debug("MARKETS_PAGE total=%d │ next=%s", len(markets), cursor)
            if not cursor or cursor == END_CURSOR:
                break
        log.info("MARKETS_FETCHED %d", len(markets))
        return markets

    def get_order_book(self, token_id: str) -> Any:
        return self._ensure_client().get_order_book(token_id)

    # ── Orders ──

    def place_order(self, token_id: str, side: str, size: Decimal, price: Decimal) -> Any:
        """GTC limit order; neg-risk markets are signed for the neg-risk exchange."""
        client = self._ensure_client(require_creds=True)
        neg_risk = bool(client.get_neg_risk(token_id))
        clob_side = SELL if side.upper() == "SELL" else BUY
        log.info("PLACE %s %s x%s @ %s%s", clob_side, token_id[:16], size, price,
                 " (neg_risk)" if neg_risk else "")
        print(f"Creating {clob_side} order: {size} shares at ${price}"
              f"{' (neg_risk market)' if neg_risk else ''}")
        order = client.create_order(
            OrderArgs(token_id=token_id, price=float(price), size=float(size), side=clob_side),
            PartialCreateOrderOptions(neg_risk=neg_risk),
        )
        return client.post_order(order, OrderType.GTC)

    def cancel_all(self) -> Any:
        return self._ensure_client(require_creds=True).cancel_all()

    def get_api_keys(self) -> ApiCreds:
        self._ensure_client(require_creds=True)
        creds = self._store.get_creds()
        if creds is None:
            raise WalletNotInitialized("Failed to derive API credentials")
        return creds

    # ── Positions ──

    def get_positions(self, address: str) -> list[Position]:
        """Current positions of *address*. Raises PositionFetchError on any API failure."""
        try:
            resp = requests.get(
                f"{DATA_API_HOST}/positions",
                params={
                    "user": address,
                    "sizeThreshold": 0.01,
                    "sortBy": "CURRENT",
                    "sortDirection": "DESC",
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
            items: list[dict[str, Any]] = resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("POS_FETCH_FAIL │ %s", exc)
            raise PositionFetchError(f"Failed to fetch positions: {exc}") from exc

        positions = [p for p in (parse_position(item) for item in items) if p is not None]
        log.info("POS_FETCHED %d │ %s", len(positions), address)
        return positions
