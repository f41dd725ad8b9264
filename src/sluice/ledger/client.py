"""Ledger client wrapper for SLUICE transfers."""

import logging
import time
from decimal import Decimal

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from sluice.exceptions import LedgerError

from .wallet import WalletProvider

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000

CONFIRMED_STATUSES = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


def validate_address(address: str) -> bool:
    """Check that ``address`` is a base58 account public key."""
    if not isinstance(address, str):
        return False
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True


def to_lamports(amount: Decimal) -> int:
    """Whole-coin amount to lamports, dropping sub-lamport dust."""
    return int(amount * LAMPORTS_PER_SOL)


class LedgerClient:
    """Native SOL transfers on a Solana cluster.

    Parameters
    ----------
    rpc_endpoint : str
        JSON-RPC endpoint URL, e.g. ``https://api.devnet.solana.com``.
    wallet : WalletProvider
        Funding account used to sign transfers.
    request_timeout : float
        Timeout in seconds for each RPC call.
    poll_interval : float
        Seconds between signature status polls while confirming.
    """

    def __init__(
        self,
        rpc_endpoint: str,
        wallet: WalletProvider,
        request_timeout: float = 10.0,
        poll_interval: float = 0.5,
    ):
        self._client = Client(rpc_endpoint, commitment=Confirmed, timeout=request_timeout)
        self._wallet = wallet
        self._poll_interval = poll_interval

    @property
    def connected(self) -> bool:
        """True if the RPC endpoint answers."""
        return self._client.is_connected()

    @property
    def genesis_hash(self) -> str:
        """Identifies the cluster (devnet, testnet, ...)."""
        return str(self._client.get_genesis_hash().value)

    @property
    def wallet_address(self) -> str:
        return self._wallet.address

    def get_balance(self, address: str | None = None) -> Decimal:
        """Balance in whole SOL (defaults to the funding account)."""
        pubkey = Pubkey.from_string(address or self._wallet.address)
        lamports = self._client.get_balance(pubkey).value
        return Decimal(lamports) / LAMPORTS_PER_SOL

    def transfer(self, to: str, amount: Decimal) -> str:
        """Sign and submit a system transfer from the funding account.

        Returns
        -------
        str
            The base58 transaction signature.
        """
        keypair = self._wallet.get_keypair()
        instruction = transfer(
            TransferParams(
                from_pubkey=keypair.pubkey(),
                to_pubkey=Pubkey.from_string(to),
                lamports=to_lamports(amount),
            )
        )
        blockhash = self._client.get_latest_blockhash().value.blockhash
        message = Message.new_with_blockhash([instruction], keypair.pubkey(), blockhash)
        tx = Transaction([keypair], message, blockhash)

        resp = self._client.send_raw_transaction(
            bytes(tx), opts=TxOpts(preflight_commitment=Confirmed)
        )
        signature = str(resp.value)

        logger.info(
            "Transfer submitted",
            extra={"tx_hash": signature, "to": to, "amount": str(amount)},
        )
        return signature

    def wait_for_confirmation(self, signature: str, timeout: int = 120) -> None:
        """Block until the transaction is confirmed or ``timeout`` seconds pass.

        Raises
        ------
        LedgerError
            If the transaction failed on chain or did not confirm in time.
        """
        sig = Signature.from_string(signature)
        deadline = time.monotonic() + timeout
        while True:
            status = self._client.get_signature_statuses([sig]).value[0]
            if status is not None:
                if status.err is not None:
                    raise LedgerError(f"Transfer failed: {status.err}", tx_hash=signature)
                if status.confirmation_status in CONFIRMED_STATUSES:
                    return
            if time.monotonic() >= deadline:
                raise LedgerError("Transfer not confirmed in time", tx_hash=signature)
            time.sleep(self._poll_interval)

    def send_and_confirm(self, to: str, amount: Decimal, timeout: int = 120) -> str:
        """Submit a transfer and wait for it to confirm."""
        signature = self.transfer(to, amount)
        self.wait_for_confirmation(signature, timeout=timeout)
        return signature
