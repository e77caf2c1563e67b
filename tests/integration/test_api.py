"""Integration tests for API endpoints."""

import csv
import io

import pytest
from httpx import AsyncClient

from shipwright.core.events import get_event_bus
from shipwright.models.monitoring import AlertConfig
from shipwright.monitoring.monitor import DeploymentMonitor
from shipwright.monitoring.registry import get_monitor_registry


def metric_body(**overrides) -> dict:
    return {
        "environment": "staging",
        "deployment_id": "deploy-staging-1",
        "phase": "validation",
        "status": "started",
        **overrides,
    }


@pytest.fixture
def staging_monitor() -> DeploymentMonitor:
    """An enabled staging monitor installed in the registry."""
    monitor = DeploymentMonitor(
        AlertConfig(environment="staging", enabled=True),
        channels={},
        events=get_event_bus(),
    )
    get_monitor_registry().register(monitor)
    return monitor


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test health check returns healthy status."""
        response = await client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "environment" in data
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_request_headers(self, client: AsyncClient):
        response = await client.get("/v1/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
        assert response.headers["X-Response-Time"].endswith("ms")


class TestMonitoringEndpoints:
    """Tests for deployment monitoring endpoints."""

    @pytest.mark.asyncio
    async def test_record_and_stats(self, client: AsyncClient):
        response = await client.post("/v1/monitoring/metrics", json=metric_body())
        assert response.status_code == 200
        assert response.json()["success"] is True

        await client.post(
            "/v1/monitoring/metrics",
            json=metric_body(phase="verification", status="success", duration=100),
        )

        response = await client.get("/v1/monitoring/stats", params={"environment": "staging"})

        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["environment"] == "staging"
        assert stats["deployment_count"] == 1
        assert stats["successful_deployments"] == 1
        assert stats["success_rate"] == 1

    @pytest.mark.asyncio
    async def test_record_missing_fields(self, client: AsyncClient):
        response = await client.post(
            "/v1/monitoring/metrics",
            json={"environment": "staging", "phase": "validation"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_record_invalid_phase(self, client: AsyncClient):
        response = await client.post("/v1/monitoring/metrics", json=metric_body(phase="packaging"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_record_unknown_environment(self, client: AsyncClient):
        response = await client.post("/v1/monitoring/metrics", json=metric_body(environment="qa"))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_stats_unknown_environment(self, client: AsyncClient):
        response = await client.get("/v1/monitoring/stats", params={"environment": "qa"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_export_json(self, client: AsyncClient):
        await client.post("/v1/monitoring/metrics", json=metric_body(duration=5))

        response = await client.get("/v1/monitoring/metrics", params={"environment": "staging"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["deployment_id"] == "deploy-staging-1"

    @pytest.mark.asyncio
    async def test_export_csv(self, client: AsyncClient):
        await client.post("/v1/monitoring/metrics", json=metric_body())
        await client.post("/v1/monitoring/metrics", json=metric_body(phase="backup", status="success"))

        response = await client.get(
            "/v1/monitoring/metrics",
            params={"environment": "staging", "format": "csv"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["timestamp", "environment", "deploymentId", "phase", "status", "duration", "error"]
        assert len(rows) == 3

    @pytest.mark.asyncio
    async def test_export_unknown_format(self, client: AsyncClient):
        response = await client.get("/v1/monitoring/metrics", params={"format": "xml"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_alerts_and_resolve(self, client: AsyncClient, staging_monitor: DeploymentMonitor):
        await client.post(
            "/v1/monitoring/metrics",
            json=metric_body(phase="migration", status="failed", error="lock timeout"),
        )

        response = await client.get("/v1/monitoring/alerts", params={"environment": "staging"})
        alerts = response.json()["data"]
        assert response.json()["total"] == 1
        assert alerts[0]["severity"] == "critical"

        alert_id = alerts[0]["id"]
        response = await client.post(
            f"/v1/monitoring/alerts/{alert_id}/resolve",
            params={"environment": "staging"},
            json={"resolution": "Lock released"},
        )
        assert response.status_code == 200

        response = await client.get(
            "/v1/monitoring/alerts",
            params={"environment": "staging", "unresolved": True},
        )
        unresolved = response.json()["data"]
        assert len(unresolved) == 1
        assert unresolved[0]["severity"] == "info"
        assert unresolved[0]["title"].startswith("Alert Resolved:")

    @pytest.mark.asyncio
    async def test_resolve_without_body(self, client: AsyncClient, staging_monitor: DeploymentMonitor):
        await client.post("/v1/monitoring/metrics", json=metric_body(status="failed"))
        alert_id = staging_monitor.get_alerts()[0].id

        response = await client.post(
            f"/v1/monitoring/alerts/{alert_id}/resolve",
            params={"environment": "staging"},
        )

        assert response.status_code == 200
        assert len(staging_monitor.get_alerts()) == 1

    @pytest.mark.asyncio
    async def test_resolve_unknown_alert(self, client: AsyncClient):
        response = await client.post(
            "/v1/monitoring/alerts/alert-missing/resolve",
            params={"environment": "staging"},
            json={},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_monitoring_health(self, client: AsyncClient, staging_monitor: DeploymentMonitor):
        response = await client.get("/v1/monitoring/health", params={"environment": "staging"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["monitor"]["environment"] == "staging"
        assert data["monitor"]["enabled"] is True
        assert "staging" in data["environments"]

    @pytest.mark.asyncio
    async def test_disabled_fallback_monitor(self, client: AsyncClient):
        await client.post(
            "/v1/monitoring/metrics",
            json=metric_body(environment="production", status="failed"),
        )

        response = await client.get("/v1/monitoring/alerts", params={"environment": "production"})

        assert response.json()["total"] == 0
