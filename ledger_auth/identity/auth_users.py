"""
===============================================================================
TARJETA CRC — identity/auth_users.py
===============================================================================

Módulo:
    Credenciales de usuario (password)

Responsabilidades:
    - Hashear/verificar passwords (Argon2, caja negra).
    - Validar email + password contra el Identity Store.
    - Registrar last_login en login exitoso.

Colaboradores:
    - domain.repositories.UserRepository
    - identity.errors.AuthError (cuenta inactiva)
    - api.auth_routes: login / change-password / reset-password.

Decisiones:
    - No diferenciamos "usuario no existe" vs "password incorrecto" (None).
    - Cuenta inactiva con password correcto -> FORBIDDEN explícito.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timezone

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..crosscutting.logger import logger
from ..domain.repositories import UserRepository
from .errors import AuthError, AuthErrorKind, FailureReason
from .users import User, normalize_email

_password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hashea un password usando Argon2."""
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verifica password vs hash almacenado."""
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def authenticate_user(users: UserRepository, email: str, password: str) -> User | None:
    """Valida credenciales y retorna el usuario activo o None."""
    normalized_email = normalize_email(email)
    if not normalized_email:
        return None

    user = users.get_user_by_email(normalized_email)
    if user is None or not verify_password(password, user.password_hash):
        return None

    if not user.is_active:
        logger.warning("Login rechazado: usuario inactivo", extra={"user_id": str(user.id)})
        raise AuthError(
            AuthErrorKind.FORBIDDEN,
            FailureReason.SUBJECT_INACTIVE,
            "El usuario está inactivo.",
        )

    users.touch_last_login(user.id, datetime.now(timezone.utc))
    return user
