"""Tests for health endpoints."""

from fastapi.testclient import TestClient

from src.main import app


def test_liveness(client: TestClient) -> None:
    """Test the liveness endpoint."""
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness_without_database(client: TestClient) -> None:
    """Readiness fails until the progression services are wired."""
    app.state.progression = None
    response = client.get("/health/ready")
    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "unavailable"
    assert data["database"] is False


def test_readiness(client: TestClient, services) -> None:
    """Test the readiness endpoint."""
    app.state.progression = services
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert "environment" in data
    assert "redis" in data


def test_health(client: TestClient) -> None:
    """Test the general health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["app_name"] == "certify"
    assert "version" in data
    assert data["environment"] == "testing"


def test_root(client: TestClient) -> None:
    """Test the root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "Certify" in data["message"]
    assert "version" in data


def test_request_id_header(client: TestClient) -> None:
    """Every response carries the request id."""
    response = client.get("/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers.get("X-Request-ID") == "req-123"
