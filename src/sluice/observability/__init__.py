"""Observability module for SLUICE faucet."""

from .health import (
    HealthCheck,
    HealthServer,
    HealthStatus,
    LedgerHealthCheck,
    StoreHealthCheck,
)
from .logging import clear_request_id, configure_logging, get_logger, set_request_id
from .metrics import (
    FUNDING_BALANCE,
    REFERENCE_FETCHES,
    REQUESTS,
    STORE_FALLBACKS,
    TOKENS_DISTRIBUTED,
    TRANSFER_DURATION,
    WORKFLOW_ACTIONS,
)

__all__ = [
    # Health
    "HealthCheck",
    "HealthServer",
    "HealthStatus",
    "LedgerHealthCheck",
    "StoreHealthCheck",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "set_request_id",
    # Metrics
    "FUNDING_BALANCE",
    "REFERENCE_FETCHES",
    "REQUESTS",
    "STORE_FALLBACKS",
    "TOKENS_DISTRIBUTED",
    "TRANSFER_DURATION",
    "WORKFLOW_ACTIONS",
]
