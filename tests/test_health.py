"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against the test database
  - No authentication required
"""

from __future__ import annotations

from api.main import __version__


def test_health_returns_200_with_components(api):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == __version__
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api):
    """Health endpoint is accessible without any cookie or Authorization header."""
    resp = api.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
