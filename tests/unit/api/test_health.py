"""
Name: Health & Metrics Endpoint Tests

Responsibilities:
  - /healthz reports storage mode without a token
  - /metrics requires system.settings unless METRICS_REQUIRE_AUTH=0
  - X-Request-Id is echoed back (or generated)
"""

import pytest
from fastapi.testclient import TestClient

from ledger_auth.api.main import create_app
from ledger_auth.crosscutting.config import get_settings
from ledger_auth.crosscutting.middleware import REQUEST_ID_HEADER
from ledger_auth.identity.roles import UserRole

pytestmark = pytest.mark.unit


def test_healthz_reports_memory_store(client):
    response = client.get("/healthz", headers={REQUEST_ID_HEADER: "health-1"})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "db": "memory", "request_id": "health-1"}
    assert response.headers[REQUEST_ID_HEADER] == "health-1"


def test_request_id_is_generated_when_missing(client):
    response = client.get("/healthz")
    assert response.headers[REQUEST_ID_HEADER]
    assert response.json()["request_id"] == response.headers[REQUEST_ID_HEADER]


class TestMetricsEndpoint:
    def test_requires_token(self, client):
        response = client.get("/metrics")
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"

    def test_admin_is_not_enough(self, client, seed_user, auth_headers):
        response = client.get(
            "/metrics", headers=auth_headers(seed_user(UserRole.ADMIN))
        )
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PRIVILEGE"

    def test_super_admin_reads_exposition(self, client, seed_user, auth_headers):
        client.get("/api/v1/wfp/getcategories.php")

        response = client.get(
            "/metrics", headers=auth_headers(seed_user(UserRole.SUPER_ADMIN))
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "ledger_auth_requests_total" in response.text
        assert "ledger_auth_decisions_total" in response.text

    def test_public_when_auth_disabled(self, monkeypatch):
        monkeypatch.setenv("METRICS_REQUIRE_AUTH", "0")
        get_settings.cache_clear()

        response = TestClient(create_app()).get("/metrics")

        assert response.status_code == 200
        assert "ledger_auth_requests_total" in response.text
