import asyncio

import pytest
from unittest.mock import patch
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from geoadmin.core.health import HealthStatus, check_database, get_status_message, get_system_health
from geoadmin.core.middleware import DatabaseErrorMiddleware
from geoadmin.main import app as geoadmin_app
from geoadmin.services.store.base import StoreUnavailableError

# Setup mock app
app = FastAPI()
app.add_middleware(DatabaseErrorMiddleware)


@app.get("/test-db-error")
def trigger_db_error():
    raise OperationalError("SELECT 1", {}, "Mock DB Error")


@app.get("/test-store-error")
def trigger_store_error():
    raise StoreUnavailableError("store is down")


@app.get("/test-generic-error")
def trigger_generic_error():
    raise Exception("Boom")


@app.get("/test-ok")
def ok():
    return {"ok": True}


client = TestClient(app)


def run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def test_database_error_middleware():
    """Test that middleware catches DB errors and returns 503"""
    response = client.get("/test-db-error")
    assert response.status_code == 503
    data = response.json()
    assert data["error"] == "Service unavailable"
    assert "Database connection failed" in data["message"]


def test_store_unavailable_is_503():
    response = client.get("/test-store-error")
    assert response.status_code == 503
    assert response.json()["status"] == "unavailable"


def test_generic_error_middleware():
    """Test that middleware catches generic errors and returns 500"""
    response = client.get("/test-generic-error")
    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Internal server error"


def test_passthrough():
    assert client.get("/test-ok").json() == {"ok": True}


@patch("geoadmin.core.health.check_database")
@patch("geoadmin.core.health.check_cache")
def test_health_check_unhealthy(mock_cache, mock_db):
    """Test health check when DB is down"""
    mock_db.return_value = {"status": HealthStatus.UNHEALTHY, "component": "database"}
    mock_cache.return_value = {"status": HealthStatus.HEALTHY, "component": "cache"}

    health = run(get_system_health())

    assert health["status"] == HealthStatus.UNHEALTHY
    assert health["message"] == get_status_message(HealthStatus.UNHEALTHY)


@patch("geoadmin.core.health.check_database")
@patch("geoadmin.core.health.check_cache")
def test_health_check_degraded_without_cache(mock_cache, mock_db):
    mock_db.return_value = {"status": HealthStatus.HEALTHY, "component": "database"}
    mock_cache.return_value = {"status": HealthStatus.DEGRADED, "component": "cache"}

    assert run(get_system_health())["status"] == HealthStatus.DEGRADED


def test_memory_backend_is_healthy():
    # conftest selects STORE_BACKEND=memory
    result = run(check_database())
    assert result["status"] == HealthStatus.HEALTHY


class TestHealthEndpoints:

    geoadmin_client = TestClient(geoadmin_app)

    @pytest.mark.parametrize("status,code", [
        (HealthStatus.HEALTHY, 200),
        (HealthStatus.DEGRADED, 200),
        (HealthStatus.UNHEALTHY, 503),
    ])
    def test_health_status_codes(self, status, code):
        health = {"status": status, "message": get_status_message(status), "components": {}}
        with patch("geoadmin.api.endpoints.health.get_system_health", return_value=health):
            response = self.geoadmin_client.get("/health")
        assert response.status_code == code
        assert response.json()["status"] == status

    def test_readiness_when_store_down(self):
        health = {"status": HealthStatus.UNHEALTHY, "message": "down", "components": {}}
        with patch("geoadmin.api.endpoints.health.get_system_health", return_value=health):
            response = self.geoadmin_client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["ready"] is False

    def test_liveness(self):
        assert self.geoadmin_client.get("/health/live").json()["alive"] is True
