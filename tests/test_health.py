"""Tests for health check endpoints."""

import time
from unittest.mock import AsyncMock, MagicMock, PropertyMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from sluice.observability.health import (
    CheckResult,
    HealthCheck,
    HealthResult,
    HealthServer,
    HealthStatus,
    LedgerHealthCheck,
    StoreHealthCheck,
)


class TestHealthResult:
    """Tests for HealthResult dataclass."""

    def test_health_result_ok(self):
        """HealthResult to_dict for OK status."""
        assert HealthResult(status=HealthStatus.OK).to_dict() == {"status": "ok"}

    def test_health_result_with_checks(self):
        """HealthResult to_dict includes checks."""
        result = HealthResult(
            status=HealthStatus.NOT_READY,
            checks={"store": "ok", "ledger": "rpc timeout"},
        )
        assert result.to_dict() == {
            "status": "not_ready",
            "checks": {"store": "ok", "ledger": "rpc timeout"},
        }


class StaticHealthCheck(HealthCheck):
    """Health check returning a fixed result."""

    def __init__(self, name: str, status: HealthStatus, message: str | None = None):
        self._name = name
        self._status = status
        self._message = message

    @property
    def name(self) -> str:
        return self._name

    async def check(self) -> CheckResult:
        return CheckResult(name=self._name, status=self._status, message=self._message)


class FailingHealthCheck(HealthCheck):
    """Health check that raises an exception."""

    @property
    def name(self) -> str:
        return "failing"

    async def check(self) -> CheckResult:
        raise RuntimeError("Check failed")


class TestStoreHealthCheck:
    """Tests for StoreHealthCheck."""

    @pytest.mark.asyncio
    async def test_reachable(self):
        """A pinging store is OK."""
        store = MagicMock()
        store.ping = AsyncMock(return_value=True)

        result = await StoreHealthCheck(store).check()

        assert result.status == HealthStatus.OK

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """A silent store is an error."""
        store = MagicMock()
        store.ping = AsyncMock(return_value=False)

        result = await StoreHealthCheck(store).check()

        assert result.status == HealthStatus.ERROR
        assert result.message == "durable store unreachable"


class TestLedgerHealthCheck:
    """Tests for LedgerHealthCheck."""

    @pytest.mark.asyncio
    async def test_connected(self):
        """A connected client is OK."""
        client = MagicMock()
        client.connected = True

        result = await LedgerHealthCheck(client).check()

        assert result.status == HealthStatus.OK

    @pytest.mark.asyncio
    async def test_disconnected(self):
        """A disconnected client is an error."""
        client = MagicMock()
        client.connected = False

        result = await LedgerHealthCheck(client).check()

        assert result.message == "rpc unreachable"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """A hanging RPC is reported as a timeout."""
        client = MagicMock()
        type(client).connected = PropertyMock(side_effect=lambda: time.sleep(0.5) or True)

        result = await LedgerHealthCheck(client, timeout_seconds=0.05).check()

        assert result.status == HealthStatus.ERROR
        assert result.message == "rpc timeout"


class TestHealthServer:
    """Tests for HealthServer endpoints."""

    @pytest.fixture
    async def app_client(self):
        """Create test client with the HealthServer app."""
        health_server = HealthServer()
        client = TestClient(TestServer(health_server.build_app()))
        await client.start_server()
        yield client, health_server
        await client.close()

    @pytest.mark.asyncio
    async def test_health_endpoint_returns_ok(self, app_client):
        """GET /health returns 200 OK."""
        client, _ = app_client
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_no_checks(self, app_client):
        """GET /ready returns 200 when no checks configured."""
        client, _ = app_client
        resp = await client.get("/ready")
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_ready_endpoint_check_fails(self, app_client):
        """GET /ready returns 503 when a check fails."""
        client, server = app_client
        server.add_check(StaticHealthCheck("store", HealthStatus.OK))
        server.add_check(StaticHealthCheck("ledger", HealthStatus.ERROR, "rpc unreachable"))

        resp = await client.get("/ready")
        assert resp.status == 503
        data = await resp.json()
        assert data["status"] == "not_ready"
        assert data["checks"] == {"store": "ok", "ledger": "rpc unreachable"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_check_raises(self, app_client):
        """GET /ready reports check exceptions."""
        client, server = app_client
        server.add_check(FailingHealthCheck())

        resp = await client.get("/ready")
        assert resp.status == 503
        data = await resp.json()
        assert "RuntimeError" in data["checks"]["failing"]
        assert "Check failed" in data["checks"]["failing"]

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, app_client):
        """GET /metrics returns Prometheus metrics."""
        client, _ = app_client
        resp = await client.get("/metrics")
        assert resp.status == 200
        assert "text/plain" in resp.content_type
        assert "sluice_requests_total" in await resp.text()


@pytest.mark.asyncio
async def test_health_server_lifecycle():
    """HealthServer start and stop lifecycle."""
    server = HealthServer(host="127.0.0.1", port=0)

    await server.start()
    assert server._runner is not None

    await server.stop()
    assert server._runner is None
