"""Integration tests for health check endpoints."""

from unittest.mock import AsyncMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.core.config import Settings, get_settings


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        """Test that /health endpoint returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        """Test that /health endpoint returns healthy status."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["timestamp"] is not None
        assert data["version"] == "0.1.0"


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_returns_200_when_healthy(self, client: TestClient) -> None:
        """Test that /health/ready returns 200 when all dependencies are healthy."""
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert {check["name"] for check in data["checks"]} == {"job_store", "printnode"}

    def test_readiness_returns_503_when_store_unreachable(self, client: TestClient) -> None:
        """Test that an unreachable job store makes the service unready."""
        with patch(
            "src.services.job_repository.InMemoryJobRepository.check_connection",
            new=AsyncMock(return_value={"healthy": False, "error": "connection refused"}),
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        checks = {check["name"]: check for check in response.json()["checks"]}
        assert checks["job_store"]["error"] == "connection refused"

    def test_readiness_returns_503_without_printnode_key(self, app: FastAPI, test_settings: Settings) -> None:
        """Test that a missing PrintNode key makes the service unready."""
        settings = test_settings.model_copy(update={"printnode_api_key": ""})
        app.dependency_overrides[get_settings] = lambda: settings

        with TestClient(app) as client:
            response = client.get("/health/ready")

        assert response.status_code == 503
        checks = {check["name"]: check for check in response.json()["checks"]}
        assert checks["printnode"]["healthy"] is False


class TestSchedulerStats:
    """Tests for /health/scheduler endpoint."""

    def test_reports_scheduler_limit(self, client: TestClient) -> None:
        """Test that scheduler statistics are reported."""
        response = client.get("/health/scheduler")

        assert response.status_code == 200
        data = response.json()
        assert data["limit"] == 3
        assert data["running"] == 0
        assert data["orders_in_flight"] == []
