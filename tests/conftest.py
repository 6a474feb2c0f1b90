"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure the test environment before any ledger_auth import
  - Provide in-memory stores, AuthConfig and TokenService fixtures
  - Provide a user factory with real Argon2 hashes
  - Reset container singletons between tests

Collaborators:
  - pytest: Test framework
  - ledger_auth.container: composition root (reset per test)
  - ledger_auth.infrastructure.repositories.in_memory: stores

Notes:
  - APP_ENV must be set before Settings is first loaded (logger import)
  - Secrets are distinct per token kind, as production requires
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

os.environ.setdefault("APP_ENV", "test")

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from ledger_auth.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

from ledger_auth import container  # noqa: E402
from ledger_auth.crosscutting.config import AuthConfig  # noqa: E402
from ledger_auth.identity.auth_users import hash_password  # noqa: E402
from ledger_auth.identity.roles import (  # noqa: E402
    ModuleScope,
    UserRole,
    default_modules_for_role,
)
from ledger_auth.identity.tokens import TokenService  # noqa: E402
from ledger_auth.identity.users import User  # noqa: E402
from ledger_auth.infrastructure.repositories.in_memory import (  # noqa: E402
    InMemoryAuditEventRepository,
    InMemoryCredentialRepository,
    InMemoryUserRepository,
)

DEFAULT_PASSWORD = "correct-horse-battery"


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


@pytest.fixture(autouse=True)
def _fresh_container():
    """R: New singletons (and stores) per test."""
    app_config.get_settings.cache_clear()
    container.reset_container()
    yield
    container.reset_container()
    app_config.get_settings.cache_clear()


# ============================================================================
# Stores
# ============================================================================


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def credential_repo() -> InMemoryCredentialRepository:
    return InMemoryCredentialRepository()


@pytest.fixture
def audit_repo() -> InMemoryAuditEventRepository:
    return InMemoryAuditEventRepository()


# ============================================================================
# Token service
# ============================================================================


@pytest.fixture
def auth_config() -> AuthConfig:
    """R: Distinct secrets per kind (>= 32 chars)."""
    return AuthConfig(
        access_secret="test-access-secret-0123456789abcdef",
        refresh_secret="test-refresh-secret-0123456789abcdef",
        reset_secret="test-reset-secret-0123456789abcdef",
        verify_secret="test-verify-secret-0123456789abcdef",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        reset_ttl=timedelta(minutes=10),
        verify_ttl=timedelta(hours=24),
        issuer="ledger-auth-test",
    )


class FakeClock:
    """R: Controllable clock (tz-aware UTC)."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_service(auth_config, credential_repo, user_repo) -> TokenService:
    """R: TokenService on the real clock (PyJWT validates exp on wall time)."""
    return TokenService(auth_config, credential_repo, user_repo)


# ============================================================================
# Test Data Factories
# ============================================================================


@pytest.fixture
def make_user(user_repo) -> Callable[..., User]:
    """
    R: Persist a user in user_repo.

    Module roles get their module unless `modules` is given explicitly.
    """
    counter = {"n": 0}

    def _make(
        role: UserRole = UserRole.USER,
        *,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        modules: frozenset[ModuleScope] | None = None,
        resource_assignments: dict | None = None,
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        return user_repo.create_user(
            email=email or f"{role.value}-{counter['n']}@example.org",
            password_hash=hash_password(password),
            role=role,
            name=f"{role.value} {counter['n']}",
            modules=(
                modules if modules is not None else default_modules_for_role(role)
            ),
            resource_assignments=resource_assignments,
            is_active=is_active,
        )

    return _make
