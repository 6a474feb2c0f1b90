"""
Name: Auth Routes Tests

Responsibilities:
  - Validate registration rules (self-service roles, duplicate email)
  - Validate login, refresh exchange and replay detection over HTTP
  - Validate logout, logout-all, profile and password flows
  - Validate that each sensitive action leaves an audit event
"""

from unittest.mock import patch

import pytest

from ledger_auth import container
from ledger_auth.crosscutting.exceptions import DatabaseError
from ledger_auth.domain.entities import TokenKind
from ledger_auth.identity.roles import UserRole

pytestmark = pytest.mark.unit

API = "/api/v1"
PASSWORD = "correct-horse-battery"


def _register(client, **overrides):
    payload = {
        "email": "Viewer@Example.org",
        "password": PASSWORD,
        "name": "Wfp Viewer",
        "role": "wfp_viewer",
    }
    payload.update(overrides)
    return client.post(f"{API}/auth/register", json=payload)


def _reasons(response) -> list[str]:
    return [item["reason"] for item in response.json().get("errors", []) if "reason" in item]


class TestRegister:
    def test_module_role_gets_its_module(self, client):
        response = _register(client)

        assert response.status_code == 201
        body = response.json()
        assert body["user"]["email"] == "viewer@example.org"
        assert body["user"]["role"] == "wfp_viewer"
        assert body["user"]["modules"] == ["wfp"]
        assert body["tokens"]["token_type"] == "bearer"
        assert "password_hash" not in body["user"]

    @pytest.mark.parametrize("role", ["admin", "super_admin", "dube_admin", "wfp_health_officer"])
    def test_privileged_roles_rejected(self, client, role):
        response = _register(client, role=role)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
        assert _reasons(response) == ["role_not_allowed"]

    def test_duplicate_email_conflict(self, client):
        assert _register(client).status_code == 201
        response = _register(client, email="VIEWER@example.org")
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_short_password_is_validation_error(self, client):
        response = _register(client, password="short")
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestLogin:
    def test_login_ok_records_audit(self, client, seed_user):
        user = seed_user(UserRole.DUBE_VIEWER)

        response = client.post(
            f"{API}/auth/login",
            json={"email": user.email.upper(), "password": PASSWORD},
        )

        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(user.id)
        assert "auth.login" in container.get_audit_repository().actions()

    def test_wrong_password(self, client, seed_user):
        user = seed_user()

        response = client.post(
            f"{API}/auth/login", json={"email": user.email, "password": "nope"}
        )

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"
        assert _reasons(response) == ["invalid_credentials"]
        assert "auth.login_failed" in container.get_audit_repository().actions()

    def test_inactive_user_forbidden(self, client, seed_user):
        user = seed_user()
        container.get_user_repository().set_user_active(user.id, False)

        response = client.post(
            f"{API}/auth/login", json={"email": user.email, "password": PASSWORD}
        )
        assert response.status_code == 403


class TestRefresh:
    def test_exchange_then_replay(self, client, seed_user, login):
        tokens = login(seed_user())

        first = client.post(
            f"{API}/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]}
        )
        assert first.status_code == 200
        rotated = first.json()["tokens"]["refresh_token"]
        assert rotated != tokens["refresh_token"]

        replay = client.post(
            f"{API}/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]}
        )
        assert replay.status_code == 401
        assert replay.json()["code"] == "TOKEN_REPLAY"
        assert "token.replay" in container.get_audit_repository().actions()

        # R: el replay revocó también el token rotado.
        after = client.post(f"{API}/auth/refresh-token", json={"refresh_token": rotated})
        assert after.status_code == 401
        assert _reasons(after) == ["revoked"]

    def test_access_token_is_not_a_refresh_token(self, client, seed_user, login):
        tokens = login(seed_user())
        response = client.post(
            f"{API}/auth/refresh-token", json={"refresh_token": tokens["access_token"]}
        )
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"


class TestLogout:
    def test_logout_revokes_refresh_token(self, client, seed_user, login):
        tokens = login(seed_user())

        response = client.post(
            f"{API}/auth/logout", json={"refresh_token": tokens["refresh_token"]}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "revoked": 1}

        refresh = client.post(
            f"{API}/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]}
        )
        assert refresh.status_code == 401
        assert _reasons(refresh) == ["revoked"]

    def test_logout_without_token_is_ok(self, client):
        response = client.post(f"{API}/auth/logout", json={})
        assert response.status_code == 200
        assert response.json()["revoked"] == 0

    def test_logout_all_revokes_every_session(self, client, seed_user, login):
        user = seed_user()
        first, second = login(user), login(user)

        response = client.post(
            f"{API}/auth/logout-all",
            headers={"Authorization": f"Bearer {first['access_token']}"},
        )
        assert response.status_code == 200
        assert response.json()["revoked"] == 2

        for tokens in (first, second):
            refresh = client.post(
                f"{API}/auth/refresh-token",
                json={"refresh_token": tokens["refresh_token"]},
            )
            assert refresh.status_code == 401

    def test_logout_all_requires_token(self, client):
        response = client.post(f"{API}/auth/logout-all")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"


class TestProfile:
    def test_me_requires_token(self, client):
        response = client.get(f"{API}/auth/me")
        assert response.status_code == 401
        assert _reasons(response) == ["missing_token"]

    def test_me_and_update(self, client, seed_user, auth_headers):
        user = seed_user(UserRole.DUBE_FIELD_AGENT)
        headers = auth_headers(user)

        me = client.get(f"{API}/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["modules"] == ["dube"]

        updated = client.put(
            f"{API}/auth/me",
            headers=headers,
            json={"name": "  Field Agent  ", "country_code": "KE", "role": "admin"},
        )
        assert updated.status_code == 200
        body = updated.json()
        assert body["name"] == "Field Agent"
        assert body["country_code"] == "KE"
        assert body["role"] == "dube_field_agent"

    @pytest.mark.parametrize(
        "role,expected",
        [
            (UserRole.USER, []),
            (UserRole.WFP_VIEWER, ["wfp.beneficiary.view"]),
            (
                UserRole.DUBE_FIELD_AGENT,
                ["dube.customer.create", "dube.customer.view"],
            ),
            (
                UserRole.ADMIN,
                [
                    "dube.customer.create",
                    "dube.customer.view",
                    "dube.merchant.create",
                    "dube.merchant.view",
                    "user.manage",
                    "wfp.beneficiary.create",
                    "wfp.beneficiary.view",
                ],
            ),
        ],
    )
    def test_me_lists_granted_permissions(
        self, client, seed_user, auth_headers, role, expected
    ):
        response = client.get(f"{API}/auth/me", headers=auth_headers(seed_user(role)))

        assert response.status_code == 200
        assert response.json()["permissions"] == expected

    def test_permissions_require_module_access(self, client, seed_user, auth_headers):
        viewer = seed_user(UserRole.WFP_VIEWER, modules=[])

        response = client.get(f"{API}/auth/me", headers=auth_headers(viewer))

        assert response.json()["permissions"] == []

    def test_session_reports_remaining_lifetime(self, client, seed_user, auth_headers):
        user = seed_user(UserRole.WFP_VIEWER)

        response = client.get(f"{API}/auth/session", headers=auth_headers(user))

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == str(user.id)
        assert 0 < body["expires_in"] <= 15 * 60


class TestPasswords:
    def test_change_password_revokes_previous_sessions(self, client, seed_user, login):
        user = seed_user()
        tokens = login(user)

        response = client.post(
            f"{API}/auth/change-password",
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
            json={"current_password": PASSWORD, "new_password": "a-brand-new-pass"},
        )
        assert response.status_code == 200
        assert response.json()["revoked"] >= 1

        refresh = client.post(
            f"{API}/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]}
        )
        assert refresh.status_code == 401
        assert _reasons(refresh) == ["revoked"]

        assert login(user, "a-brand-new-pass")["access_token"]

    def test_change_password_wrong_current(self, client, seed_user, auth_headers):
        user = seed_user()
        response = client.post(
            f"{API}/auth/change-password",
            headers=auth_headers(user),
            json={"current_password": "wrong", "new_password": "a-brand-new-pass"},
        )
        assert response.status_code == 401
        assert _reasons(response) == ["invalid_credentials"]

    def test_reset_password_is_single_use(self, client, seed_user, login):
        user = seed_user()
        reset = container.get_token_service().issue_single_use_token(user, TokenKind.RESET)

        first = client.post(
            f"{API}/auth/reset-password",
            json={"reset_token": reset, "new_password": "reset-pass-123"},
        )
        assert first.status_code == 200

        second = client.post(
            f"{API}/auth/reset-password",
            json={"reset_token": reset, "new_password": "another-pass-123"},
        )
        # R: el reset revoca todo lo del sujeto, incluido el propio reset token.
        assert second.status_code == 401
        assert second.json()["code"] == "INVALID_TOKEN"
        assert _reasons(second) == ["revoked"]

        assert login(user, "reset-pass-123")["access_token"]


def test_storage_failure_is_not_reported_as_auth_failure(client, seed_user, auth_headers):
    headers = auth_headers(seed_user())
    users = container.get_user_repository()

    with patch.object(users, "get_user_by_id", side_effect=DatabaseError("store down")):
        response = client.get(f"{API}/auth/me", headers=headers)

    assert response.status_code == 500
    assert response.json()["code"] == "DATABASE_ERROR"
