"""
===============================================================================
TARJETA CRC — identity/errors.py
===============================================================================

Módulo:
    Taxonomía de fallos de autenticación/autorización

Responsabilidades:
    - Definir AuthErrorKind (cerrado) con su status HTTP (401 / 403).
    - Definir FailureReason: causa fina (expired, revoked, already_used, ...).
    - Definir AuthError: excepción de dominio, independiente de FastAPI.

Colaboradores:
    - identity.tokens / identity.gate: lanzan AuthError.
    - identity.authorization: Decision.deny(kind) -> AuthError en el borde HTTP.
    - crosscutting.error_responses.from_auth_error: AuthError -> RFC 7807.

Reglas:
    - 401: UNAUTHENTICATED, INVALID_TOKEN, EXPIRED_TOKEN, TOKEN_REPLAY.
    - 403: FORBIDDEN, INSUFFICIENT_PRIVILEGE, MODULE_NOT_ACCESSIBLE,
      RESOURCE_NOT_ASSIGNED.
    - Errores de storage NO son AuthError (ver crosscutting.exceptions).
===============================================================================
"""

from __future__ import annotations

from enum import Enum


class AuthErrorKind(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PRIVILEGE = "INSUFFICIENT_PRIVILEGE"
    MODULE_NOT_ACCESSIBLE = "MODULE_NOT_ACCESSIBLE"
    RESOURCE_NOT_ASSIGNED = "RESOURCE_NOT_ASSIGNED"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_REPLAY = "TOKEN_REPLAY"

    @property
    def status_code(self) -> int:
        return 401 if self in _UNAUTHORIZED_KINDS else 403


_UNAUTHORIZED_KINDS = frozenset(
    {
        AuthErrorKind.UNAUTHENTICATED,
        AuthErrorKind.INVALID_TOKEN,
        AuthErrorKind.EXPIRED_TOKEN,
        AuthErrorKind.TOKEN_REPLAY,
    }
)


class FailureReason(str, Enum):
    """Causa fina de un fallo (viaja en errors[].reason)."""

    MISSING_TOKEN = "missing_token"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    KIND_MISMATCH = "kind_mismatch"
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    ALREADY_USED = "already_used"
    SUBJECT_NOT_FOUND = "subject_not_found"
    SUBJECT_INACTIVE = "subject_inactive"
    INVALID_CREDENTIALS = "invalid_credentials"
    ROLE_NOT_ALLOWED = "role_not_allowed"
    MODULE_NOT_ASSIGNED = "module_not_assigned"
    RESOURCE_NOT_ASSIGNED = "resource_not_assigned"


_DEFAULT_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.UNAUTHENTICATED: "Autenticación requerida.",
    AuthErrorKind.FORBIDDEN: "La cuenta está bloqueada.",
    AuthErrorKind.INSUFFICIENT_PRIVILEGE: "Rol insuficiente.",
    AuthErrorKind.MODULE_NOT_ACCESSIBLE: "Sin acceso al módulo.",
    AuthErrorKind.RESOURCE_NOT_ASSIGNED: "Recurso no asignado.",
    AuthErrorKind.EXPIRED_TOKEN: "Token expirado.",
    AuthErrorKind.INVALID_TOKEN: "Token inválido.",
    AuthErrorKind.TOKEN_REPLAY: "Token ya utilizado.",
}


class AuthError(Exception):
    """Fallo de autenticación/autorización con kind estable y reason fina."""

    def __init__(
        self,
        kind: AuthErrorKind,
        reason: FailureReason | None = None,
        message: str | None = None,
    ):
        self.kind = kind
        self.reason = reason
        self.message = message or _DEFAULT_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def __repr__(self) -> str:
        reason = self.reason.value if self.reason else None
        return f"AuthError(kind={self.kind.value}, reason={reason})"
