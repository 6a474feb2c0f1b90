"""
===============================================================================
TARJETA CRC — ledger_auth/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer stores (identidades, credenciales, auditoría), TokenService y
    AuthenticationGate.
  - Exponer factories para FastAPI (Depends) y para tareas de mantenimiento.
  - Mantener singletons con lru_cache.
  - Elegir implementación según Settings: in-memory en test o sin
    DATABASE_URL; Postgres en runtime.

Colaboradores:
  - crosscutting.config.get_settings / AuthConfig
  - domain.repositories.* (puertos)
  - infrastructure.repositories.* (implementaciones)
  - identity.tokens.TokenService / identity.gate.AuthenticationGate

Notas:
  - Sin lógica de negocio y sin dependencia de FastAPI.
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache

from .crosscutting.config import get_settings
from .domain.repositories import (
    AuditEventRepository,
    CredentialRepository,
    UserRepository,
)
from .identity.gate import AuthenticationGate
from .identity.tokens import TokenService
from .infrastructure.repositories import (
    InMemoryAuditEventRepository,
    InMemoryCredentialRepository,
    InMemoryUserRepository,
    PostgresAuditEventRepository,
    PostgresCredentialRepository,
    PostgresUserRepository,
)


def _use_in_memory_stores() -> bool:
    """app_env ∈ {test, testing, ci} o sin DATABASE_URL => stores in-memory."""
    settings = get_settings()
    return settings.is_test() or not settings.database_url.strip()


# =============================================================================
# Repositorios (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_user_repository() -> UserRepository:
    if _use_in_memory_stores():
        return InMemoryUserRepository()
    return PostgresUserRepository()


@lru_cache(maxsize=1)
def get_credential_repository() -> CredentialRepository:
    if _use_in_memory_stores():
        return InMemoryCredentialRepository()
    return PostgresCredentialRepository()


@lru_cache(maxsize=1)
def get_audit_repository() -> AuditEventRepository:
    if _use_in_memory_stores():
        return InMemoryAuditEventRepository()
    return PostgresAuditEventRepository()


# =============================================================================
# Servicios
# =============================================================================


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    return TokenService(
        get_settings().auth_config(),
        get_credential_repository(),
        get_user_repository(),
    )


@lru_cache(maxsize=1)
def get_authentication_gate() -> AuthenticationGate:
    return AuthenticationGate(get_token_service(), get_user_repository())


def reset_container() -> None:
    """Descarta los singletons (tests: stores nuevos por caso)."""
    for factory in (
        get_user_repository,
        get_credential_repository,
        get_audit_repository,
        get_token_service,
        get_authentication_gate,
    ):
        factory.cache_clear()
