"""Tests for the FastAPI app: health, dispatcher status and payables.

Verifies that:
- GET /health returns service metadata and reports a tripped circuit
- GET /dispatcher/status exposes queue depth and breaker state
- Every response carries X-Request-ID
- POST /ledger/payables validates input and maps gateway errors to
  structured responses
"""

import pytest
from httpx import ASGITransport, AsyncClient

import src.main as main
from src.core.errors import CircuitOpenError, LedgerRejectedError, LedgerRequestError
from src.resilience.circuit_breaker import CircuitBreaker

PAYABLE = {
    "due_date": "10/04/2025",
    "amount": 42.5,
    "category": "Transporte",
    "description": "UBER *TRIP",
    "supplier": "Uber",
}


@pytest.fixture
def app():
    """Import and return the FastAPI app."""
    return main.app


@pytest.fixture
async def client(app):
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac


@pytest.fixture
def tripped_breaker(monkeypatch):
    """Swap in an open circuit breaker for the app's dispatcher."""
    breaker = CircuitBreaker(failure_threshold=1, cooldown=60.0)
    breaker.record_failure()
    monkeypatch.setattr(main.dispatcher, "circuit_breaker", breaker)
    return breaker


class TestHealthEndpoint:
    """GET /health returns service metadata."""

    async def test_health_returns_200(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"

    async def test_health_contains_metadata(self, client):
        data = (await client.get("/health")).json()
        assert data["service"] == "ledger-gateway"
        assert data["version"] == "0.1.0"
        assert data["status"] == "healthy"
        assert data["uptime_seconds"] >= 0

    async def test_health_degraded_while_circuit_open(self, client, tripped_breaker):
        data = (await client.get("/health")).json()
        assert data["status"] == "degraded"


class TestDispatcherStatus:
    """GET /dispatcher/status reports queue and circuit state."""

    async def test_idle_status(self, client):
        response = await client.get("/dispatcher/status")
        assert response.status_code == 200
        data = response.json()
        assert data["queue_size"] == 0
        assert data["is_processing"] is False
        assert data["circuit_breaker"]["state"] == "closed"
        assert data["circuit_breaker"]["failure_threshold"] == main.settings.CIRCUIT_BREAKER_THRESHOLD

    async def test_open_circuit_reports_remaining_block(self, client, tripped_breaker):
        breaker = (await client.get("/dispatcher/status")).json()["circuit_breaker"]
        assert breaker["state"] == "open"
        assert 0 < breaker["remaining_block_ms"] <= 60_000
        assert breaker["total_failures"] == 1


class TestAppImport:
    def test_app_is_fastapi_instance(self):
        from fastapi import FastAPI

        assert isinstance(main.app, FastAPI)

    def test_single_dispatcher_shared_with_client(self):
        assert main.ledger_client._dispatcher is main.dispatcher


class TestRequestID:
    """Every response includes X-Request-ID."""

    async def test_health_has_request_id(self, client):
        response = await client.get("/health")
        assert len(response.headers["x-request-id"]) == 36  # UUID v4 format

    async def test_request_ids_are_unique(self, client):
        r1 = await client.get("/health")
        r2 = await client.get("/health")
        assert r1.headers["x-request-id"] != r2.headers["x-request-id"]

    async def test_client_request_id_preserved(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "client-req-999"})
        assert response.headers["x-request-id"] == "client-req-999"


class TestCreatePayable:
    """POST /ledger/payables books a payable through the ledger client."""

    async def test_created(self, client, monkeypatch):
        received = []

        async def fake_include(entry):
            received.append(entry)
            return "98765"

        monkeypatch.setattr(main.ledger_client, "include_payable", fake_include)
        response = await client.post("/ledger/payables", json=PAYABLE)

        assert response.status_code == 201
        assert response.json() == {"id": "98765"}
        assert received[0].supplier == "Uber"
        assert received[0].amount == 42.5

    async def test_invalid_payload_is_422(self, client):
        response = await client.post("/ledger/payables", json={**PAYABLE, "due_date": "2025-04-10"})
        assert response.status_code == 422

    async def test_non_positive_amount_is_422(self, client):
        response = await client.post("/ledger/payables", json={**PAYABLE, "amount": 0})
        assert response.status_code == 422

    async def test_circuit_open_is_503(self, client, monkeypatch):
        async def refuse(entry):
            raise CircuitOpenError(41.2)

        monkeypatch.setattr(main.ledger_client, "include_payable", refuse)
        response = await client.post(
            "/ledger/payables",
            json=PAYABLE,
            headers={"X-Request-ID": "req-open"},
        )

        assert response.status_code == 503
        assert response.headers["retry-after"] == "42"
        assert response.json() == {
            "error": "Ledger API unavailable, retry after 42 seconds",
            "code": "CIRCUIT_OPEN",
            "request_id": "req-open",
        }

    async def test_ledger_rejection_is_502(self, client, monkeypatch):
        async def reject(entry):
            raise LedgerRejectedError("conta.pagar.incluir.php", ["Categoria não encontrada"])

        monkeypatch.setattr(main.ledger_client, "include_payable", reject)
        response = await client.post("/ledger/payables", json=PAYABLE)

        assert response.status_code == 502
        data = response.json()
        assert data["code"] == "LEDGER_REJECTED"
        assert "Categoria não encontrada" in data["error"]
        assert data["request_id"] == response.headers["x-request-id"]

    async def test_ledger_http_failure_is_502(self, client, monkeypatch):
        async def fail(entry):
            raise LedgerRequestError("conta.pagar.incluir.php", 401)

        monkeypatch.setattr(main.ledger_client, "include_payable", fail)
        response = await client.post("/ledger/payables", json=PAYABLE)

        assert response.status_code == 502
        assert response.json()["code"] == "LEDGER_REQUEST_FAILED"
