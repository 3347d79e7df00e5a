"""
tests/test_health.py -- Integration tests for GET /health.

Covers:
  - 200 response with status, users, secret_set and uptime
  - No authentication required
  - Non-GET methods get 405 instead of a forward-auth decision
  - 503 "unhealthy" when no users are loaded
"""

from __future__ import annotations

from conftest import LOGIN_PAGE, SECRET, serve

from api.main import _format_uptime
from auth.engine import ForwardAuthEngine


def test_health_returns_200_with_summary(client):
    """Health endpoint reports users, secret state and uptime."""
    http, engine = client
    resp = http.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["users"] == len(engine.store)
    assert data["secret_set"] is True
    assert data["uptime"].endswith("s")
    assert "error" not in data


def test_health_no_auth_required(client):
    """Health endpoint is accessible without credentials and sets no auth headers."""
    http, _ = client
    resp = http.get("/health", headers={})
    assert resp.status_code == 200
    assert "x-simpleauth-authentication" not in resp.headers


def test_health_rejects_other_methods(client):
    http, _ = client
    resp = http.post("/health")
    assert resp.status_code == 405
    assert resp.text == "Method not allowed"


def test_health_unhealthy_without_users():
    engine = ForwardAuthEngine(SECRET, {}, LOGIN_PAGE)
    with serve(engine) as http:
        resp = http.get("/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "unhealthy"
    assert data["error"] == "no users configured"
    assert data["users"] == 0


def test_format_uptime():
    assert _format_uptime(0) == "0s"
    assert _format_uptime(2.5) == "2.5s"
    assert _format_uptime(61) == "1m1s"
    assert _format_uptime(3723.25) == "1h2m3.25s"
