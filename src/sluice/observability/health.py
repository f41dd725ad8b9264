"""Health check endpoints for SLUICE faucet.

Endpoints:
- /health: Liveness check (200 if process is alive)
- /ready: Readiness check (200 if every registered check passes)
- /metrics: Prometheus metrics endpoint
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from aiohttp import web
from prometheus_client import REGISTRY, generate_latest

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health check status values."""

    OK = "ok"
    ERROR = "error"
    NOT_READY = "not_ready"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str | None = None


@dataclass
class HealthResult:
    """Combined health check result."""

    status: HealthStatus
    checks: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        result = {"status": self.status.value}
        if self.checks:
            result["checks"] = self.checks
        return result


class HealthCheck(ABC):
    """Abstract base class for readiness checks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the health check."""
        ...

    @abstractmethod
    async def check(self) -> CheckResult:
        """Perform the health check."""
        ...


class StoreHealthCheck(HealthCheck):
    """Reports whether the backing store answers a ping."""

    def __init__(self, store):
        self._store = store

    @property
    def name(self) -> str:
        return "store"

    async def check(self) -> CheckResult:
        if await self._store.ping():
            return CheckResult(self.name, HealthStatus.OK)
        return CheckResult(self.name, HealthStatus.ERROR, "durable store unreachable")


class LedgerHealthCheck(HealthCheck):
    """Reports whether the ledger RPC endpoint is reachable."""

    def __init__(self, client, timeout_seconds: float = 5.0):
        self._client = client
        self._timeout = timeout_seconds

    @property
    def name(self) -> str:
        return "ledger"

    async def check(self) -> CheckResult:
        try:
            connected = await asyncio.wait_for(
                asyncio.to_thread(lambda: self._client.connected), self._timeout
            )
        except asyncio.TimeoutError:
            return CheckResult(self.name, HealthStatus.ERROR, "rpc timeout")
        if connected:
            return CheckResult(self.name, HealthStatus.OK)
        return CheckResult(self.name, HealthStatus.ERROR, "rpc unreachable")


class HealthServer:
    """HTTP server for health and metrics endpoints.

    Parameters
    ----------
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 8080):  # noqa: S104
        self._host = host
        self._port = port
        self._checks: list[HealthCheck] = []
        self._runner: web.AppRunner | None = None

    def add_check(self, check: HealthCheck) -> None:
        """Register a readiness check."""
        self._checks.append(check)

    def build_app(self) -> web.Application:
        """Create the aiohttp application serving the health endpoints."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/ready", self._handle_ready)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self) -> None:
        """Start the health server."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()

        logger.info(
            "Health server started",
            extra={"host": self._host, "port": self._port},
        )

    async def stop(self) -> None:
        """Stop the health server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Health server stopped")

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _handle_ready(self, _request: web.Request) -> web.Response:
        result = await self._check_readiness()
        status_code = 200 if result.status == HealthStatus.OK else 503
        return web.json_response(result.to_dict(), status=status_code)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(REGISTRY),
            content_type="text/plain",
            charset="utf-8",
        )

    async def _check_readiness(self) -> HealthResult:
        """Run all readiness checks."""
        if not self._checks:
            return HealthResult(status=HealthStatus.OK)

        checks: dict[str, str] = {}
        all_ok = True

        for check in self._checks:
            try:
                result = await check.check()
            except Exception as e:
                logger.exception("Health check failed", extra={"check": check.name})
                checks[check.name] = f"error: {type(e).__name__}: {e}"
                all_ok = False
                continue
            if result.status == HealthStatus.OK:
                checks[result.name] = "ok"
            else:
                checks[result.name] = result.message or "error"
                all_ok = False

        return HealthResult(
            status=HealthStatus.OK if all_ok else HealthStatus.NOT_READY,
            checks=checks,
        )
