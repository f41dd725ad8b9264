"""Transfer executor for SLUICE faucet.

Sends the fixed airdrop amount from the funding wallet and waits for the
transfer to confirm. Every failure after address validation is reported
to the caller as the same generic message; the cause is only logged.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sluice.ledger import LedgerClient, validate_address
from sluice.observability.metrics import TOKENS_DISTRIBUTED, TRANSFER_DURATION

logger = logging.getLogger(__name__)

TRANSFER_FAILED_MESSAGE = "Airdrop failed"
INVALID_ADDRESS_MESSAGE = "Invalid address format"


class DistributionStatus(str, Enum):
    """Distribution result status."""

    SUCCESS = "success"
    INVALID_ADDRESS = "invalid_address"
    TRANSACTION_FAILED = "transaction_failed"


@dataclass
class DistributionResult:
    """Result of a distribution attempt."""

    success: bool
    status: DistributionStatus
    tx_hash: str | None
    amount: Decimal
    message: str


class TransferExecutor:
    """Pays the configured amount to a destination address.

    Parameters
    ----------
    client : LedgerClient
        Ledger client holding the funding wallet.
    amount : Decimal
        Fixed amount sent per distribution.
    confirm_timeout : int
        Seconds to wait for the transfer to confirm.
    """

    def __init__(
        self,
        client: LedgerClient,
        amount: Decimal,
        confirm_timeout: int = 120,
    ):
        if amount <= 0:
            raise ValueError("Airdrop amount must be positive")
        self._client = client
        self._amount = amount
        self._confirm_timeout = confirm_timeout

    @property
    def amount(self) -> Decimal:
        """Amount sent per distribution."""
        return self._amount

    async def get_balance(self) -> Decimal:
        """Funding wallet balance."""
        return await asyncio.to_thread(self._client.get_balance)

    async def distribute(self, address: str) -> DistributionResult:
        """Send the airdrop amount to ``address`` and wait for confirmation.

        Parameters
        ----------
        address : str
            Destination account address.

        Returns
        -------
        DistributionResult
            Success with the transaction hash, or a failure. Malformed
            addresses never reach the ledger.
        """
        if not validate_address(address):
            return DistributionResult(
                success=False,
                status=DistributionStatus.INVALID_ADDRESS,
                tx_hash=None,
                amount=self._amount,
                message=INVALID_ADDRESS_MESSAGE,
            )

        started = time.monotonic()
        try:
            # The RPC client is synchronous; keep the event loop free while we wait
            tx_hash = await asyncio.to_thread(
                self._client.send_and_confirm,
                address,
                self._amount,
                self._confirm_timeout,
            )
        except Exception as e:
            logger.error(
                "Distribution failed",
                extra={
                    "recipient": address,
                    "amount": str(self._amount),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return DistributionResult(
                success=False,
                status=DistributionStatus.TRANSACTION_FAILED,
                tx_hash=getattr(e, "tx_hash", None),
                amount=self._amount,
                message=TRANSFER_FAILED_MESSAGE,
            )

        TRANSFER_DURATION.observe(time.monotonic() - started)
        TOKENS_DISTRIBUTED.inc(float(self._amount))
        logger.info(
            "Distribution confirmed",
            extra={"tx_hash": tx_hash, "recipient": address, "amount": str(self._amount)},
        )
        return DistributionResult(
            success=True,
            status=DistributionStatus.SUCCESS,
            tx_hash=tx_hash,
            amount=self._amount,
            message=f"Successfully sent {self._amount}",
        )
