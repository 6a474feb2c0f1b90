"""
===============================================================================
TARJETA CRC — identity/gate.py
===============================================================================

Módulo:
    Authentication Gate

Responsabilidades:
    - Extraer el token de `Authorization: Bearer <token>`.
    - Verificarlo como access token (TokenService.verify).
    - Resolver el estado ACTUAL de la identidad (repo) y bloquear inactivos.
    - Devolver un Principal normalizado, o None en la variante opcional.

Colaboradores:
    - identity.tokens.TokenService
    - domain.repositories.UserRepository
    - identity.principal.Principal
    - identity.dependencies: adapta el gate a dependencias FastAPI.

Reglas:
    - Sin token -> UNAUTHENTICATED (fail closed).
    - Usuario inexistente -> UNAUTHENTICATED.
    - Usuario inactivo -> FORBIDDEN (token válido, cuenta bloqueada).
    - La variante opcional absorbe AuthError, NUNCA errores de storage.
===============================================================================
"""

from __future__ import annotations

from ..crosscutting.logger import logger
from ..domain.entities import TokenKind
from ..domain.repositories import UserRepository
from .errors import AuthError, AuthErrorKind, FailureReason
from .principal import Principal
from .tokens import TokenService

BEARER_SCHEME = "bearer"


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extrae token desde `Authorization: Bearer <token>` (scheme case-insensitive)."""
    if not authorization:
        return None
    parts = authorization.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != BEARER_SCHEME:
        return None
    token = parts[1].strip()
    return token or None


class AuthenticationGate:
    """Token -> identidad actual -> Principal."""

    def __init__(self, tokens: TokenService, users: UserRepository) -> None:
        self._tokens = tokens
        self._users = users

    def authenticate(self, authorization: str | None) -> Principal:
        token = extract_bearer_token(authorization)
        if not token:
            raise AuthError(
                AuthErrorKind.UNAUTHENTICATED,
                FailureReason.MISSING_TOKEN,
                "Falta token Bearer.",
            )

        claims = self._tokens.verify(token, TokenKind.ACCESS)

        user = self._users.get_user_by_id(claims.subject_id)
        if user is None:
            raise AuthError(
                AuthErrorKind.UNAUTHENTICATED, FailureReason.SUBJECT_NOT_FOUND
            )
        if not user.is_active:
            logger.warning(
                "Acceso bloqueado: usuario inactivo",
                extra={"subject_id": str(user.id)},
            )
            raise AuthError(AuthErrorKind.FORBIDDEN, FailureReason.SUBJECT_INACTIVE)

        return Principal.from_user(user)

    def authenticate_optional(self, authorization: str | None) -> Principal | None:
        """Igual que authenticate(), pero sin principal ante cualquier AuthError."""
        try:
            return self.authenticate(authorization)
        except AuthError:
            return None
