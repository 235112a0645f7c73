"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' when both stores answer SELECT 1
  - No authentication required
"""

from __future__ import annotations

from conftest import ApiContext


def test_health_returns_200_with_components(api: ApiContext) -> None:
    """Health endpoint returns 200 with status, version, and components."""
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api: ApiContext) -> None:
    """Health endpoint is accessible without any authentication headers."""
    resp = api.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_health_reports_database_error(api: ApiContext, monkeypatch) -> None:
    """A failing database check degrades the component instead of failing the request."""

    def broken_connect():
        raise RuntimeError("database is gone")

    monkeypatch.setattr(api.placement_store.engine, "connect", broken_connect)
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["components"]["database"] == "error"
