"""Faucet Service for SLUICE.

Coordinates all faucet components:
- Eligibility oracle (allowlist and reference set)
- Cooldown gate
- Transfer executor
- History ledger
- Access request workflow (admin verbs)

Every policy failure comes back as a typed result. Store and ledger faults
are caught here and reported as a generic failure, leaving no cooldown mark
and no history entry behind.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from sluice.exceptions import SluiceError
from sluice.identity import VerifiedIdentity, is_admin
from sluice.ledger import validate_address
from sluice.models import DistributionRecord
from sluice.observability.metrics import FUNDING_BALANCE, REQUESTS

from .cooldown import CooldownGate
from .distributor import (
    INVALID_ADDRESS_MESSAGE,
    TRANSFER_FAILED_MESSAGE,
    DistributionStatus,
    TransferExecutor,
)
from .eligibility import EligibilityOracle, matches_reference
from .history import HistoryLedger
from .workflow import AccessWorkflow, SubmissionStatus

logger = logging.getLogger(__name__)

AUTH_REQUIRED_MESSAGE = "Please sign in with GitHub first"
NOT_ELIGIBLE_MESSAGE = "No qualifying repository found. You can request access instead."
IN_PROGRESS_MESSAGE = "An airdrop for this account is already in progress"
UNAUTHORIZED_MESSAGE = "Unauthorized"
UNAVAILABLE_MESSAGE = "Service temporarily unavailable, please try again"


class FaucetOutcome(str, Enum):
    """Outcome of a faucet operation."""

    SUCCESS = "success"
    AUTH_REQUIRED = "auth_required"
    NOT_ELIGIBLE = "not_eligible"
    THROTTLED = "throttled"
    INVALID_INPUT = "invalid_input"
    TRANSFER_FAILED = "transfer_failed"
    UNAUTHORIZED = "unauthorized"
    UNAVAILABLE = "unavailable"


@dataclass
class FaucetResult:
    """Result of an airdrop request."""

    outcome: FaucetOutcome
    message: str
    tx_hash: str | None = None
    amount: Decimal | None = None
    minutes_remaining: int | None = None

    @property
    def success(self) -> bool:
        return self.outcome == FaucetOutcome.SUCCESS


@dataclass
class AdminResult:
    """Result of an access-request or admin operation."""

    outcome: FaucetOutcome
    message: str
    data: Any = None

    @property
    def success(self) -> bool:
        return self.outcome == FaucetOutcome.SUCCESS


@dataclass
class FaucetStatus:
    """Current faucet status."""

    healthy: bool
    balance: Decimal | None
    amount: Decimal
    cooldown_hours: float
    store_durable: bool
    message: str
    details: dict = field(default_factory=dict)


class FaucetService:
    """Main faucet service orchestrating all components.

    Parameters
    ----------
    oracle : EligibilityOracle
        Allowlist / reference-set eligibility.
    cooldown : CooldownGate
        Per-identity cooldown and lease.
    executor : TransferExecutor
        Ledger transfer step.
    history : HistoryLedger
        Completed distribution feed.
    workflow : AccessWorkflow
        Access request state machine.
    admin_email : str | None
        Email of the single admin; None disables admin operations.
    store_durable : Callable[[], bool] | None
        Reports whether state currently lands in durable storage.
    clock : callable
        Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        oracle: EligibilityOracle,
        cooldown: CooldownGate,
        executor: TransferExecutor,
        history: HistoryLedger,
        workflow: AccessWorkflow,
        admin_email: str | None = None,
        store_durable: Callable[[], bool] | None = None,
        clock=time.time,
    ):
        self._oracle = oracle
        self._cooldown = cooldown
        self._executor = executor
        self._history = history
        self._workflow = workflow
        self._admin_email = admin_email
        self._store_durable = store_durable or (lambda: True)
        self._clock = clock

    def _finish(self, result: FaucetResult, handle: str | None = None) -> FaucetResult:
        REQUESTS.labels(outcome=result.outcome.value).inc()
        logger.info(
            "Airdrop request handled",
            extra={"identity": handle, "outcome": result.outcome.value},
        )
        return result

    async def request_airdrop(
        self,
        identity: VerifiedIdentity | None,
        address: str | None,
        anonymous: bool = False,
    ) -> FaucetResult:
        """Distribute the configured amount to ``address`` for ``identity``.

        Parameters
        ----------
        identity : VerifiedIdentity | None
            Verified caller; None if the caller is not signed in.
        address : str | None
            Destination account address.
        anonymous : bool
            Hide this distribution from the public history feed.

        Returns
        -------
        FaucetResult
            The outcome. Only SUCCESS writes a cooldown mark and a history
            entry.
        """
        if identity is None:
            return self._finish(FaucetResult(FaucetOutcome.AUTH_REQUIRED, AUTH_REQUIRED_MESSAGE))

        handle = identity.handle
        address = (address or "").strip()
        if not address:
            return self._finish(
                FaucetResult(FaucetOutcome.INVALID_INPUT, "Wallet address is required"), handle
            )
        if not validate_address(address):
            return self._finish(
                FaucetResult(FaucetOutcome.INVALID_INPUT, INVALID_ADDRESS_MESSAGE), handle
            )

        try:
            eligible = await self._oracle.is_eligible(handle)
        except SluiceError as e:
            logger.error("Eligibility check failed", extra={"identity": handle, "error": str(e)})
            return self._finish(
                FaucetResult(FaucetOutcome.TRANSFER_FAILED, TRANSFER_FAILED_MESSAGE), handle
            )
        if not eligible:
            return self._finish(
                FaucetResult(FaucetOutcome.NOT_ELIGIBLE, NOT_ELIGIBLE_MESSAGE), handle
            )

        try:
            lease = await self._cooldown.acquire(handle)
        except SluiceError as e:
            logger.error("Lease acquisition failed", extra={"identity": handle, "error": str(e)})
            return self._finish(
                FaucetResult(FaucetOutcome.TRANSFER_FAILED, TRANSFER_FAILED_MESSAGE), handle
            )
        if lease is None:
            return self._finish(FaucetResult(FaucetOutcome.THROTTLED, IN_PROGRESS_MESSAGE), handle)

        try:
            result = await self._distribute_leased(handle, address, anonymous)
        finally:
            try:
                await self._cooldown.release(handle, lease)
            except SluiceError as e:
                logger.warning("Lease release failed", extra={"identity": handle, "error": str(e)})
        return self._finish(result, handle)

    async def _distribute_leased(self, handle: str, address: str, anonymous: bool) -> FaucetResult:
        try:
            gate = await self._cooldown.check(handle)
        except SluiceError as e:
            logger.error("Cooldown check failed", extra={"identity": handle, "error": str(e)})
            return FaucetResult(FaucetOutcome.TRANSFER_FAILED, TRANSFER_FAILED_MESSAGE)
        if not gate.allowed:
            return FaucetResult(
                FaucetOutcome.THROTTLED,
                gate.reason or "Rate limit exceeded",
                minutes_remaining=gate.minutes_remaining,
            )

        distribution = await self._executor.distribute(address)
        if not distribution.success:
            outcome = (
                FaucetOutcome.INVALID_INPUT
                if distribution.status == DistributionStatus.INVALID_ADDRESS
                else FaucetOutcome.TRANSFER_FAILED
            )
            return FaucetResult(outcome, distribution.message, amount=distribution.amount)

        await self._record_success(handle, address, anonymous, distribution.tx_hash)
        return FaucetResult(
            FaucetOutcome.SUCCESS,
            "Airdrop successful",
            tx_hash=distribution.tx_hash,
            amount=distribution.amount,
        )

    async def _record_success(
        self, handle: str, address: str, anonymous: bool, tx_hash: str | None
    ) -> None:
        """Write the cooldown mark and history entry for a confirmed transfer.

        The transfer already happened, so bookkeeping failures are logged
        and the success is still reported.
        """
        now = self._clock()
        try:
            await self._cooldown.record(handle, now=now)
        except SluiceError as e:
            logger.error(
                "Cooldown mark not written after confirmed transfer",
                extra={"identity": handle, "tx_hash": tx_hash, "error": str(e)},
            )
        try:
            await self._history.record(
                DistributionRecord(
                    identity=handle,
                    address=address,
                    completed_at=now,
                    anonymous=anonymous,
                    tx_hash=tx_hash,
                )
            )
        except SluiceError as e:
            logger.error(
                "History entry not written after confirmed transfer",
                extra={"identity": handle, "tx_hash": tx_hash, "error": str(e)},
            )

    async def submit_access_request(
        self, identity: VerifiedIdentity | None, reason: str | None
    ) -> AdminResult:
        """Ask an admin to allowlist the caller."""
        if identity is None:
            return AdminResult(FaucetOutcome.AUTH_REQUIRED, AUTH_REQUIRED_MESSAGE)
        try:
            result = await self._workflow.submit_request(identity.handle, reason or "")
        except SluiceError as e:
            logger.error(
                "Access request not stored", extra={"identity": identity.handle, "error": str(e)}
            )
            return AdminResult(FaucetOutcome.UNAVAILABLE, UNAVAILABLE_MESSAGE)

        outcome = FaucetOutcome.SUCCESS if result.accepted else FaucetOutcome.INVALID_INPUT
        return AdminResult(outcome, result.message, data={"status": result.status.value})

    async def public_history(self, limit: int = 10) -> list[DistributionRecord]:
        """Recent distributions excluding anonymous ones."""
        try:
            return await self._history.public(limit)
        except SluiceError as e:
            logger.error("History read failed", extra={"error": str(e)})
            return []

    # Admin operations

    def _authorize(self, identity: VerifiedIdentity | None) -> AdminResult | None:
        if identity is None:
            return AdminResult(FaucetOutcome.AUTH_REQUIRED, AUTH_REQUIRED_MESSAGE)
        if not is_admin(identity, self._admin_email):
            logger.warning("Unauthorized admin call", extra={"identity": identity.handle})
            return AdminResult(FaucetOutcome.UNAUTHORIZED, UNAUTHORIZED_MESSAGE)
        return None

    async def _admin_call(
        self,
        identity: VerifiedIdentity | None,
        operation: Callable[[], Awaitable[Any]],
        message: str = "ok",
    ) -> AdminResult:
        denied = self._authorize(identity)
        if denied:
            return denied
        try:
            data = await operation()
        except SluiceError as e:
            logger.error("Admin operation failed", extra={"error": str(e)})
            return AdminResult(FaucetOutcome.UNAVAILABLE, UNAVAILABLE_MESSAGE)
        return AdminResult(FaucetOutcome.SUCCESS, message, data=data)

    async def _admin_transition(
        self,
        identity: VerifiedIdentity | None,
        target: str | None,
        transition: Callable[[str], Awaitable[Any]],
    ) -> AdminResult:
        denied = self._authorize(identity)
        if denied:
            return denied
        target = (target or "").strip()
        if not target:
            return AdminResult(FaucetOutcome.INVALID_INPUT, "Username is required")
        return await self._admin_call(identity, lambda: transition(target))

    async def list_pending(self, identity: VerifiedIdentity | None) -> AdminResult:
        return await self._admin_call(identity, self._workflow.pending_requests)

    async def list_allowlisted(self, identity: VerifiedIdentity | None) -> AdminResult:
        return await self._admin_call(identity, self._workflow.allowlisted)

    async def list_rejected(self, identity: VerifiedIdentity | None) -> AdminResult:
        return await self._admin_call(identity, self._workflow.rejected)

    async def recent_history(
        self, identity: VerifiedIdentity | None, limit: int = 10
    ) -> AdminResult:
        """Recent distributions including anonymous ones."""
        return await self._admin_call(identity, lambda: self._history.recent(limit))

    async def approve(self, identity: VerifiedIdentity | None, target: str | None) -> AdminResult:
        return await self._admin_transition(identity, target, self._workflow.approve)

    async def reject(self, identity: VerifiedIdentity | None, target: str | None) -> AdminResult:
        return await self._admin_transition(identity, target, self._workflow.reject)

    async def approve_rejected(
        self, identity: VerifiedIdentity | None, target: str | None
    ) -> AdminResult:
        return await self._admin_transition(identity, target, self._workflow.approve_rejected)

    async def reject_allowed(
        self, identity: VerifiedIdentity | None, target: str | None
    ) -> AdminResult:
        return await self._admin_transition(identity, target, self._workflow.reject_allowed)

    async def dedupe(self, identity: VerifiedIdentity | None) -> AdminResult:
        return await self._admin_call(identity, self._workflow.dedupe)

    async def reset_cooldown(
        self, identity: VerifiedIdentity | None, target: str | None
    ) -> AdminResult:
        return await self._admin_transition(identity, target, self._cooldown.reset)

    async def explain_eligibility(
        self, identity: VerifiedIdentity | None, target: str | None
    ) -> AdminResult:
        """Report why ``target`` is or is not eligible."""

        async def explain(handle: str) -> dict:
            allowlisted = await self._oracle.is_allowlisted(handle)
            member = matches_reference(handle, await self._oracle.reference_handles())
            gate = await self._cooldown.check(handle)
            return {
                "identity": handle,
                "allowlisted": allowlisted,
                "reference_member": member,
                "eligible": allowlisted or member,
                "cooldown_minutes_remaining": gate.minutes_remaining,
            }

        return await self._admin_transition(identity, target, explain)

    async def get_status(self) -> FaucetStatus:
        """Get current faucet status."""
        durable = self._store_durable()
        try:
            balance = await self._executor.get_balance()
        except Exception as e:
            logger.warning("Funding balance unavailable", extra={"error": str(e)})
            balance = None
        else:
            FUNDING_BALANCE.set(float(balance))

        healthy = True
        message = "Faucet operational"
        if balance is None:
            healthy = False
            message = "Ledger unreachable"
        elif balance < self._executor.amount:
            healthy = False
            message = "Funding wallet cannot cover another airdrop"
        elif not durable:
            message = "Faucet operational (non-durable storage)"

        return FaucetStatus(
            healthy=healthy,
            balance=balance,
            amount=self._executor.amount,
            cooldown_hours=self._cooldown.window_seconds / 3600,
            store_durable=durable,
            message=message,
        )
