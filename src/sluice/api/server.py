"""HTTP API server for SLUICE faucet."""

import logging

from aiohttp import web

from sluice.faucet.service import FaucetService
from sluice.identity import IdentityVerifier

from .formatter import ResponseFormatter
from .routes import FaucetRoutes, request_context_middleware

logger = logging.getLogger(__name__)


def create_app(
    faucet: FaucetService,
    verifier: IdentityVerifier,
    explorer_url: str | None = None,
) -> web.Application:
    """Build the aiohttp application serving the faucet API."""
    app = web.Application(middlewares=[request_context_middleware])
    FaucetRoutes(faucet, verifier, ResponseFormatter(explorer_url)).register(app)
    return app


class ApiServer:
    """Runs the faucet API on its own TCP site.

    Parameters
    ----------
    app : web.Application
        Application from :func:`create_app`.
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    """

    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 8000):  # noqa: S104
        self._app = app
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start serving requests."""
        if self._runner:
            logger.warning("API server already running")
            return

        runner = web.AppRunner(self._app)
        await runner.setup()
        try:
            await web.TCPSite(runner, self._host, self._port).start()
        except OSError as e:
            logger.error("Failed to bind API server", extra={"port": self._port, "error": str(e)})
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info("API server started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Stop serving requests."""
        if not self._runner:
            return
        logger.info("Stopping API server")
        await self._runner.cleanup()
        self._runner = None
        logger.info("API server stopped")
