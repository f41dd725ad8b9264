"""Faucet components for SLUICE."""

from .cooldown import CooldownGate, CooldownResult
from .distributor import DistributionResult, DistributionStatus, TransferExecutor
from .eligibility import EligibilityOracle, ReferenceSetSource
from .history import HistoryLedger
from .service import AdminResult, FaucetOutcome, FaucetResult, FaucetService, FaucetStatus
from .workflow import AccessWorkflow, SubmissionResult, SubmissionStatus

__all__ = [
    "AccessWorkflow",
    "AdminResult",
    "CooldownGate",
    "CooldownResult",
    "DistributionResult",
    "DistributionStatus",
    "EligibilityOracle",
    "FaucetOutcome",
    "FaucetResult",
    "FaucetService",
    "FaucetStatus",
    "HistoryLedger",
    "ReferenceSetSource",
    "SubmissionResult",
    "SubmissionStatus",
    "TransferExecutor",
]
