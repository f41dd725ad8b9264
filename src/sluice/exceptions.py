"""Internal exceptions for SLUICE.

These never cross the service boundary: FaucetService catches them and
downgrades them to typed results.
"""


class SluiceError(Exception):
    """Base exception for SLUICE errors."""


class StoreError(SluiceError):
    """Raised when the key-value store cannot complete an operation."""


class ConcurrentUpdateError(StoreError):
    """Raised when an optimistic update keeps losing to concurrent writers."""

    def __init__(self, key: str, attempts: int):
        super().__init__(f"Gave up updating {key!r} after {attempts} conflicting attempts")
        self.key = key
        self.attempts = attempts


class LedgerError(SluiceError):
    """Raised when a ledger transfer is rejected or does not confirm."""

    def __init__(self, message: str, *, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class IdentityError(SluiceError):
    """Raised when the identity provider returns an unusable response."""
