"""Exceptions raised by the pmarket client."""


class PmarketError(Exception):
    """Base exception for pmarket errors."""
    pass


class WalletNotInitialized(PmarketError):
    """Raised when no valid private key is configured."""
    pass


class PositionFetchError(PmarketError):
    """Raised when the positions API cannot be read."""
    pass


class ClassificationError(PmarketError):
    """Raised when the redemption path of a condition cannot be determined."""
    pass


class TransactionFailed(PmarketError):
    """Raised when a transaction cannot be submitted, reverts or times out."""

    def __init__(self, message: str, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash
