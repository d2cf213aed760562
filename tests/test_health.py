"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response wrapped in the success envelope with status, version, and components
  - components.database reports 'ok' when the store answers
  - status is 'degraded' (still 200) when the store does not answer
"""

from __future__ import annotations

from core.errors import StoreError


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_metadata(api_client):
    """Envelope metadata names the system source and carries the pinned clock."""
    client, _, _ = api_client
    metadata = client.get("/api/v1/health").json()["metadata"]
    assert metadata["source"] == "system"
    assert metadata["version"] == "1.0.0"
    assert metadata["timestamp"].startswith("2025-06-15T12:00:00")


def test_health_degraded_when_store_down(api_client, monkeypatch):
    """A failing store ping is reported in components, not as a 5xx."""
    client, feeds, _ = api_client

    def broken_ping():
        raise StoreError("ping")

    monkeypatch.setattr(feeds, "ping", broken_ping)
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "error"
