"""
Name: API Test Fixtures

Responsibilities:
  - Build the full FastAPI app over in-memory stores
  - Seed identities straight into the container's user store
  - Log in through the HTTP surface and build bearer headers
"""

from typing import Callable

import pytest
from fastapi.testclient import TestClient

from ledger_auth import container
from ledger_auth.api.main import create_app
from ledger_auth.identity.auth_users import hash_password
from ledger_auth.identity.roles import UserRole, default_modules_for_role
from ledger_auth.identity.users import User

API = "/api/v1"
PASSWORD = "correct-horse-battery"


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def seed_user() -> Callable[..., User]:
    counter = {"n": 0}

    def _seed(
        role: UserRole = UserRole.USER,
        *,
        email: str | None = None,
        modules=None,
        resource_assignments: dict | None = None,
    ) -> User:
        counter["n"] += 1
        return container.get_user_repository().create_user(
            email=email or f"{role.value}.{counter['n']}@example.org",
            password_hash=hash_password(PASSWORD),
            role=role,
            name=f"Seeded {role.value}",
            modules=(
                frozenset(modules)
                if modules is not None
                else default_modules_for_role(role)
            ),
            resource_assignments=resource_assignments,
        )

    return _seed


@pytest.fixture
def login(client) -> Callable[..., dict]:
    """R: POST /auth/login and return the token block."""

    def _login(user: User, password: str = PASSWORD) -> dict:
        response = client.post(
            f"{API}/auth/login", json={"email": user.email, "password": password}
        )
        assert response.status_code == 200, response.text
        return response.json()["tokens"]

    return _login


@pytest.fixture
def auth_headers(login) -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {login(user)['access_token']}"}

    return _headers
