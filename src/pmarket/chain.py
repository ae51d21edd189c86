"""Polygon access through web3: signed submissions, read calls, fee data.

One ChainClient is built per command invocation and passed to the
orchestrators. Submissions are strictly one at a time; each takes the
wallet's pending nonce, so callers must wait (or give up) on a
transaction before sending the next.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence
from urllib.parse import urlparse

from eth_account import Account
from web3 import Web3

from pmarket.errors import TransactionFailed, WalletNotInitialized
from pmarket.models import FeeData, FeeSchedule

log = logging.getLogger("pm.chain")


def _rpc_display(rpc_url: str) -> str:
    parsed = urlparse(rpc_url)
    if parsed.path and len(parsed.path) > 1:
        return f"{parsed.scheme}://{parsed.hostname}...{parsed.path[-6:]}"
    return f"{parsed.scheme}://{parsed.hostname}"


class PendingTx:
    """A broadcast transaction whose receipt has not been awaited yet."""

    def __init__(self, w3: Web3, tx_hash: str, label: str = "", timeout: int = 120) -> None:
        self._w3 = w3
        self.hash = tx_hash
        self.label = label
        self._timeout = timeout
        self._receipt: dict | None = None

    def wait(self) -> dict:
        """Block until mined. Raises TransactionFailed on revert or timeout."""
        if self._receipt is not None:
            return self._receipt
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(self.hash, timeout=self._timeout)
        except Exception as exc:
            raise TransactionFailed(
                f"{self.label or 'tx'} {self.hash} not confirmed: {exc}", tx_hash=self.hash,
            ) from exc

        log.info("TX_RECEIPT %s │ status=%s │ block=%s │ gasUsed=%s",
                 self.label, receipt["status"], receipt.get("blockNumber", "?"),
                 receipt.get("gasUsed", "?"))
        if receipt["status"] != 1:
            raise TransactionFailed(f"{self.label or 'tx'} reverted: {self.hash}", tx_hash=self.hash)
        self._receipt = receipt
        return receipt

    def __repr__(self) -> str:
        return f"PendingTx({self.label!r}, {self.hash})"


class ChainClient:
    """Signing/submission and read-only call facility for one wallet."""

    def __init__(self, w3: Web3, account, chain_id: int = 137, receipt_timeout: int = 120) -> None:
        self.w3 = w3
        self._account = account
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout

    @classmethod
    def connect(
        cls,
        private_key: str | None,
        rpc_url: str,
        chain_id: int = 137,
        receipt_timeout: int = 120,
    ) -> ChainClient:
        """Build a client for *private_key* on *rpc_url*."""
        if not private_key:
            raise WalletNotInitialized("Wallet not initialized. Please check your private key.")
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as exc:
            raise WalletNotInitialized(
                "Wallet not initialized. Please check your private key."
            ) from exc

        w3 = Web3(Web3.HTTPProvider(rpc_url))
        log.info("CHAIN_INIT rpc=%s │ chain=%d │ wallet=%s",
                 _rpc_display(rpc_url), chain_id, account.address)
        return cls(w3, account, chain_id=chain_id, receipt_timeout=receipt_timeout)

    @property
    def address(self) -> str:
        return self._account.address

    def _contract(self, address: str, abi: list[dict]):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def get_fee_data(self) -> FeeData:
        """Current suggested priority fee and latest base fee (wei)."""
        priority = self.w3.eth.max_priority_fee
        block = self.w3.eth.get_block("latest")
        base_fee = block.get("baseFeePerGas")
        return FeeData(
            suggested_priority_fee=int(priority) if priority is not None else None,
            last_base_fee=int(base_fee) if base_fee is not None else None,
        )

    def call(self, address: str, abi: list[dict], fn_name: str, args: Sequence[Any] = ()) -> Any:
        """Read-only contract call. Errors from the node propagate unchanged."""
        contract = self._contract(address, abi)
        return getattr(contract.functions, fn_name)(*args).call()

    def send(
        self,
        address: str,
        abi: list[dict],
        fn_name: str,
        args: Sequence[Any],
        fees: FeeSchedule,
        label: str = "",
    ) -> PendingTx:
        """Sign and broadcast a contract call. Returns without waiting for a receipt."""
        label = label or fn_name
        contract = self._contract(address, abi)
        try:
            nonce = self.w3.eth.get_transaction_count(self._account.address, "pending")
            tx = getattr(contract.functions, fn_name)(*args).build_transaction({
                "from": self._account.address,
                "chainId": self._chain_id,
                "nonce": nonce,
                **fees.tx_params(),
            })
            signed = self._account.sign_transaction(tx)
            raw_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            raise TransactionFailed(f"{label} submission failed: {exc}") from exc

        tx_hash = Web3.to_hex(raw_hash)
        log.info("TX_SENT %s │ tx=%s │ nonce=%d │ gas=%d │ maxFee=%d │ tip=%d",
                 label, tx_hash, nonce, fees.gas_limit,
                 fees.max_fee_per_gas, fees.max_priority_fee_per_gas)
        return PendingTx(self.w3, tx_hash, label=label, timeout=self._receipt_timeout)
