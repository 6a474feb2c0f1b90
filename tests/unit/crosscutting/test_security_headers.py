"""
Name: Security Headers Tests

Responsibilities:
  - Ensure every response carries the hardening headers (denials included)
  - Ensure token-bearing auth routes are never cached
  - Ensure CSP is strict for the API and relaxed only for dev docs
  - Ensure HSTS only in production over HTTPS
"""

from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ledger_auth.api.main import create_app
from ledger_auth.crosscutting import config
from ledger_auth.crosscutting.security import (
    API_CSP,
    DOCS_CSP,
    HSTS_VALUE,
    SecurityHeadersMiddleware,
)

pytestmark = pytest.mark.unit


def _bare_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware, no_store_prefix="/api/v1/auth")

    @app.get("/healthz")
    def _healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.post("/api/v1/auth/login")
    def _login() -> dict[str, str]:
        return {"access_token": "t"}

    return app


def _as_production(monkeypatch) -> None:
    monkeypatch.setattr(
        config, "get_settings", lambda: SimpleNamespace(is_production=lambda: True)
    )


def test_hardening_headers_on_healthz():
    response = TestClient(create_app()).get("/healthz")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Referrer-Policy"] == "no-referrer"
    assert response.headers["Content-Security-Policy"] == API_CSP
    assert "Strict-Transport-Security" not in response.headers
    assert "Cache-Control" not in response.headers


def test_denied_requests_carry_headers():
    response = TestClient(create_app()).get("/api/v1/wfp/getcategories.php")

    assert response.status_code == 401
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_auth_routes_are_not_cached():
    response = TestClient(create_app()).post(
        "/api/v1/auth/login", json={"email": "nobody@example.org", "password": "x"}
    )

    assert response.status_code == 401
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["Pragma"] == "no-cache"


def test_docs_get_relaxed_csp_outside_production():
    response = TestClient(create_app()).get("/docs")

    assert response.status_code == 200
    assert response.headers["Content-Security-Policy"] == DOCS_CSP


def test_docs_csp_strict_in_production(monkeypatch):
    _as_production(monkeypatch)

    response = TestClient(_bare_app()).get("/docs")

    assert response.headers["Content-Security-Policy"] == API_CSP


def test_hsts_only_over_https_in_production(monkeypatch):
    _as_production(monkeypatch)
    client = TestClient(_bare_app())

    plain = client.get("/healthz")
    forwarded = client.get("/healthz", headers={"X-Forwarded-Proto": "https"})

    assert "Strict-Transport-Security" not in plain.headers
    assert forwarded.headers["Strict-Transport-Security"] == HSTS_VALUE


def test_no_store_prefix_is_configurable():
    client = TestClient(_bare_app())

    assert client.post("/api/v1/auth/login").headers["Cache-Control"] == "no-store"
    assert "Cache-Control" not in client.get("/healthz").headers
