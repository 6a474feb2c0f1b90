"""
===============================================================================
TARJETA CRC — domain/entities.py
===============================================================================

Módulo:
    Entidades del Credential Store

Responsabilidades:
    - TokenKind: tipos de credencial (access, refresh, reset, verify).
    - Credential: registro persistido de una credencial single-use.

Colaboradores:
    - identity.tokens: crea/consume Credential.
    - domain.repositories.CredentialRepository: contrato de persistencia.

Notas:
    - Los access tokens son stateless: nunca se persisten.
    - Se guarda SOLO el hash (sha256) del token, nunca el token en claro.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    RESET = "reset"
    VERIFY = "verify"


# R: tipos que se persisten y se consumen una única vez.
SINGLE_USE_KINDS = frozenset({TokenKind.REFRESH, TokenKind.RESET, TokenKind.VERIFY})


@dataclass(frozen=True, slots=True)
class Credential:
    """Credencial emitida (refresh/reset/verify)."""

    id: UUID
    subject_id: UUID
    kind: TokenKind
    token_hash: str
    session_id: UUID
    issued_at: datetime
    expires_at: datetime
    used_at: datetime | None = None
    revoked_at: datetime | None = None
    revoked_reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def used(self) -> bool:
        return self.used_at is not None

    @property
    def revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_active(self, now: datetime) -> bool:
        return not self.used and not self.revoked and not self.is_expired(now)
