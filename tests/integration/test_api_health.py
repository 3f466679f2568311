"""Integration tests for /health routes."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from synctrack.api.main import create_app
from synctrack.health.aggregator import HealthAggregator
from synctrack.models.health import IntegrationHealthSnapshot
from synctrack.models.types import HealthStatus


@pytest.fixture(name="client")
def client_fixture(engine, clock):
    app = create_app(engine=engine, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def snapshots(engine, clock):
    """Three crm snapshots an hour apart (healthy, degraded, down) and one ledger snapshot."""
    statuses = [HealthStatus.HEALTHY, HealthStatus.DEGRADED, HealthStatus.DOWN]
    with Session(engine) as s:
        for i, status in enumerate(statuses):
            s.add(
                IntegrationHealthSnapshot(
                    id=f"crm-{i}",
                    timestamp=clock.now() + timedelta(hours=i),
                    integration="crm",
                    status=status,
                    consecutive_failures=i,
                )
            )
        s.add(
            IntegrationHealthSnapshot(
                id="ledger-0",
                timestamp=clock.now(),
                integration="accounting-ledger",
                status=HealthStatus.HEALTHY,
            )
        )
        s.commit()


class TestCurrentHealth:
    def test_latest_per_integration(self, client, snapshots):
        resp = client.get("/health/")
        assert resp.status_code == 200
        latest = {s["integration"]: s for s in resp.json()}
        assert set(latest) == {"crm", "accounting-ledger"}
        assert latest["crm"]["status"] == "down"
        assert latest["crm"]["consecutive_failures"] == 2

    def test_empty_when_nothing_aggregated(self, client):
        assert client.get("/health/").json() == []

    def test_single_integration(self, client, snapshots):
        resp = client.get("/health/crm")
        assert resp.status_code == 200
        assert resp.json()["id"] == "crm-2"

    def test_unknown_integration_is_422(self, client):
        assert client.get("/health/fax-gateway").status_code == 422
        assert client.get("/health/fax-gateway/history").status_code == 422

    def test_no_snapshot_yet_is_404(self, client, snapshots):
        assert client.get("/health/ad-platform").status_code == 404


class TestHistory:
    def test_oldest_first(self, client, snapshots):
        resp = client.get("/health/crm/history")
        assert resp.status_code == 200
        assert [s["status"] for s in resp.json()] == ["healthy", "degraded", "down"]

    def test_since_and_limit(self, client, snapshots):
        resp = client.get("/health/crm/history", params={"since": "2025-03-10T13:00:00"})
        assert [s["id"] for s in resp.json()] == ["crm-1", "crm-2"]

        resp = client.get("/health/crm/history", params={"limit": 1})
        assert [s["id"] for s in resp.json()] == ["crm-2"]

    def test_end_to_end_tick(self, client, engine, clock):
        run = client.post("/runs/", json={"integration": "crm"}).json()
        clock.advance(seconds=30)
        client.post(
            f"/runs/{run['id']}/complete",
            json={"status": "success", "counts": {"processed": 12, "created": 12}},
        )
        HealthAggregator(engine, clock=clock).tick()

        resp = client.get("/health/crm")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["total_records_today"] == 12
        assert body["avg_sync_duration_ms"] == 30000
