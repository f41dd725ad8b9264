"""HTTP API for SLUICE faucet."""

from .formatter import ResponseFormatter
from .routes import OUTCOME_STATUS, FaucetRoutes, bearer_token, request_context_middleware
from .server import ApiServer, create_app

__all__ = [
    "ApiServer",
    "FaucetRoutes",
    "OUTCOME_STATUS",
    "ResponseFormatter",
    "bearer_token",
    "create_app",
    "request_context_middleware",
]
