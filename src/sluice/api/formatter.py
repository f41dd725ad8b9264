"""JSON payloads for the SLUICE HTTP API."""

from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any

from sluice.faucet.service import AdminResult, FaucetResult, FaucetStatus
from sluice.models import DistributionRecord


def _jsonable(value: Any) -> Any:
    """Convert results into plain JSON values."""
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    return value


class ResponseFormatter:
    """Formats faucet results as JSON response bodies.

    Parameters
    ----------
    explorer_url : str | None
        Block explorer base URL for transaction and address links.
    """

    def __init__(self, explorer_url: str | None = None):
        self._explorer_url = None
        self._explorer_query = ""
        if explorer_url:
            # Keep a query such as "?cluster=devnet" at the end of every link
            base, _, query = explorer_url.partition("?")
            self._explorer_url = base.rstrip("/")
            self._explorer_query = f"?{query}" if query else ""

    def _link(self, kind: str, value: str) -> str:
        return f"{self._explorer_url}/{kind}/{value}{self._explorer_query}"

    def tx_url(self, tx_hash: str | None) -> str | None:
        """Explorer link for a transaction, if an explorer is configured."""
        if not self._explorer_url or not tx_hash:
            return None
        return self._link("tx", tx_hash)

    def address_url(self, address: str) -> str | None:
        """Explorer link for an account."""
        if not self._explorer_url:
            return None
        return self._link("address", address)

    def format_airdrop(self, result: FaucetResult) -> dict:
        """Format an airdrop result.

        Parameters
        ----------
        result : FaucetResult
            The airdrop result.

        Returns
        -------
        dict
            Response body.
        """
        body: dict[str, Any] = {
            "success": result.success,
            "outcome": result.outcome.value,
            "message": result.message,
        }
        if result.success:
            body["tx_hash"] = result.tx_hash
            body["amount"] = str(result.amount)
            body["explorer_url"] = self.tx_url(result.tx_hash)
        if result.minutes_remaining is not None:
            body["minutes_remaining"] = result.minutes_remaining
        return body

    def format_admin(self, result: AdminResult) -> dict:
        body: dict[str, Any] = {
            "success": result.success,
            "outcome": result.outcome.value,
            "message": result.message,
        }
        if result.data is not None:
            body["data"] = _jsonable(result.data)
        return body

    def format_history(self, records: list[DistributionRecord]) -> dict:
        """Format the public history feed."""
        entries = []
        for record in records:
            entry = record.to_public_dict()
            entry["explorer_url"] = self.tx_url(record.tx_hash)
            entries.append(entry)
        return {"history": entries}

    def format_status(self, status: FaucetStatus) -> dict:
        return {
            "healthy": status.healthy,
            "message": status.message,
            "balance": str(status.balance) if status.balance is not None else None,
            "amount": str(status.amount),
            "cooldown_hours": status.cooldown_hours,
            "store_durable": status.store_durable,
        }

    def format_error(self, message: str) -> dict:
        return {"success": False, "message": message}
