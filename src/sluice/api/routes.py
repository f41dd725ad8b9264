"""HTTP handlers for SLUICE faucet.

Routes:
- POST /api/airdrop - Request an airdrop ({"address", "anonymous"})
- POST /api/access-requests - Ask to be allowlisted ({"reason"})
- GET  /api/history - Public distribution history
- GET  /api/status - Faucet status
- GET  /api/admin/access-requests - Pending requests (admin)
- GET  /api/admin/allowlisted-users - Allowlist (admin)
- GET  /api/admin/rejected-users - Rejected identities (admin)
- POST /api/admin/approve, reject-request, approve-rejected,
  reject-allowlisted - Workflow transitions ({"username"}, admin)
- POST /api/admin/dedupe-requests - Collapse duplicate requests (admin)

Callers authenticate with ``Authorization: Bearer <GitHub OAuth token>``.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable

from aiohttp import web

from sluice.faucet.service import AdminResult, FaucetOutcome, FaucetService
from sluice.identity import IdentityVerifier, VerifiedIdentity
from sluice.observability.logging import clear_request_id, set_request_id

from .formatter import ResponseFormatter

logger = logging.getLogger(__name__)

OUTCOME_STATUS = {
    FaucetOutcome.SUCCESS: 200,
    FaucetOutcome.AUTH_REQUIRED: 401,
    FaucetOutcome.UNAUTHORIZED: 401,
    FaucetOutcome.INVALID_INPUT: 400,
    FaucetOutcome.NOT_ELIGIBLE: 403,
    FaucetOutcome.THROTTLED: 429,
    FaucetOutcome.TRANSFER_FAILED: 502,
    FaucetOutcome.UNAVAILABLE: 503,
}

REQUEST_ID_HEADER = "X-Request-ID"
MAX_HISTORY_LIMIT = 100


def bearer_token(request: web.Request) -> str | None:
    """Extract the bearer credential from the Authorization header."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@web.middleware
async def request_context_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Bind a request id to the logging context and turn crashes into 500s."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    set_request_id(request_id)
    try:
        try:
            response = await handler(request)
        except web.HTTPException:
            raise
        except Exception:
            logger.exception(
                "Unhandled error in request handler",
                extra={"path": request.path, "method": request.method},
            )
            response = web.json_response(
                {"success": False, "message": "An unexpected error occurred. Please try again."},
                status=500,
            )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_request_id()


class FaucetRoutes:
    """Binds faucet operations to HTTP routes.

    Parameters
    ----------
    faucet : FaucetService
        Faucet service handling requests.
    verifier : IdentityVerifier
        Resolves bearer tokens into verified identities.
    formatter : ResponseFormatter | None
        Builds response bodies.
    """

    def __init__(
        self,
        faucet: FaucetService,
        verifier: IdentityVerifier,
        formatter: ResponseFormatter | None = None,
    ):
        self._faucet = faucet
        self._verifier = verifier
        self._formatter = formatter or ResponseFormatter()

    def register(self, app: web.Application) -> None:
        """Add all faucet routes to ``app``."""
        app.router.add_post("/api/airdrop", self.handle_airdrop)
        app.router.add_post("/api/access-requests", self.handle_access_request)
        app.router.add_get("/api/history", self.handle_history)
        app.router.add_get("/api/status", self.handle_status)

        app.router.add_get(
            "/api/admin/access-requests", self._admin_list(self._faucet.list_pending)
        )
        app.router.add_get(
            "/api/admin/allowlisted-users", self._admin_list(self._faucet.list_allowlisted)
        )
        app.router.add_get(
            "/api/admin/rejected-users", self._admin_list(self._faucet.list_rejected)
        )
        app.router.add_post("/api/admin/approve", self._admin_transition(self._faucet.approve))
        app.router.add_post(
            "/api/admin/reject-request", self._admin_transition(self._faucet.reject)
        )
        app.router.add_post(
            "/api/admin/approve-rejected", self._admin_transition(self._faucet.approve_rejected)
        )
        app.router.add_post(
            "/api/admin/reject-allowlisted", self._admin_transition(self._faucet.reject_allowed)
        )
        app.router.add_post("/api/admin/dedupe-requests", self._admin_list(self._faucet.dedupe))

    async def _identity(self, request: web.Request) -> VerifiedIdentity | None:
        return await self._verifier.verify(bearer_token(request))

    async def _read_body(self, request: web.Request) -> dict | None:
        """Decode a JSON object body; None if the body is not one."""
        if not request.can_read_body:
            return {}
        try:
            body = await request.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    def _invalid_body(self) -> web.Response:
        return web.json_response(
            self._formatter.format_error("Request body must be a JSON object"), status=400
        )

    def _admin_response(self, result: AdminResult) -> web.Response:
        return web.json_response(
            self._formatter.format_admin(result), status=OUTCOME_STATUS[result.outcome]
        )

    async def handle_airdrop(self, request: web.Request) -> web.Response:
        """Handle POST /api/airdrop."""
        body = await self._read_body(request)
        if body is None:
            return self._invalid_body()

        identity = await self._identity(request)
        address = body.get("address")
        result = await self._faucet.request_airdrop(
            identity,
            address if isinstance(address, str) else None,
            anonymous=bool(body.get("anonymous", False)),
        )
        return web.json_response(
            self._formatter.format_airdrop(result), status=OUTCOME_STATUS[result.outcome]
        )

    async def handle_access_request(self, request: web.Request) -> web.Response:
        """Handle POST /api/access-requests."""
        body = await self._read_body(request)
        if body is None:
            return self._invalid_body()

        reason = body.get("reason")
        result = await self._faucet.submit_access_request(
            await self._identity(request), reason if isinstance(reason, str) else None
        )
        return self._admin_response(result)

    async def handle_history(self, request: web.Request) -> web.Response:
        """Handle GET /api/history?limit=N."""
        try:
            limit = int(request.query.get("limit", "10"))
        except ValueError:
            return web.json_response(
                self._formatter.format_error("limit must be an integer"), status=400
            )
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))

        records = await self._faucet.public_history(limit)
        return web.json_response(self._formatter.format_history(records))

    async def handle_status(self, _request: web.Request) -> web.Response:
        status = await self._faucet.get_status()
        return web.json_response(self._formatter.format_status(status))

    def _admin_list(
        self, operation: Callable[[VerifiedIdentity | None], Awaitable[AdminResult]]
    ) -> Callable[[web.Request], Awaitable[web.Response]]:
        async def handler(request: web.Request) -> web.Response:
            result = await operation(await self._identity(request))
            return self._admin_response(result)

        return handler

    def _admin_transition(
        self, operation: Callable[[VerifiedIdentity | None, str | None], Awaitable[AdminResult]]
    ) -> Callable[[web.Request], Awaitable[web.Response]]:
        async def handler(request: web.Request) -> web.Response:
            body = await self._read_body(request)
            if body is None:
                return self._invalid_body()
            username = body.get("username")
            result = await operation(
                await self._identity(request), username if isinstance(username, str) else None
            )
            logger.info(
                "Admin transition handled",
                extra={
                    "path": request.path,
                    "target": username,
                    "outcome": result.outcome.value,
                },
            )
            return self._admin_response(result)

        return handler
