"""
===============================================================================
TARJETA CRC — identity/tokens.py
===============================================================================

Módulo:
    Token Service (JWT access / refresh / reset / verify)

Responsabilidades:
    - Emitir tokens firmados con secreto y expiración propios por tipo.
    - Verificar firma, expiración y tipo (claim `kind`) contra el esperado.
    - Persistir credenciales single-use (refresh/reset/verify) como hash.
    - Intercambiar refresh tokens de forma atómica (mark-used condicional).
    - Detectar replay: revocar todas las credenciales del sujeto.
    - Revocar (logout / logout-all / cambio de password) y limpiar expirados.

Colaboradores:
    - crosscutting.config.AuthConfig: secretos y TTLs (inyectado, inmutable).
    - domain.repositories.CredentialRepository: store de credenciales.
    - domain.repositories.UserRepository: estado actual del sujeto.
    - identity.errors.AuthError: fallos tipados (sin FastAPI).
    - crosscutting.metrics / crosscutting.logger: eventos de seguridad.

Decisiones:
    - PyJWT HS256; la firma es una llamada de librería.
    - Claims: sub, role, kind, iat, exp, jti (+ iss si está configurado).
    - Un token se verifica SIEMPRE con el secreto de su tipo esperado: un
      refresh presentado como access falla por firma; con secretos iguales
      falla por `kind` (defensa en profundidad).
    - Nunca se loguea un token ni su hash.
===============================================================================
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID, uuid4

import jwt

from ..crosscutting.config import AuthConfig
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_token_event
from ..domain.entities import SINGLE_USE_KINDS, Credential, TokenKind
from ..domain.repositories import CredentialRepository, UserRepository
from .errors import AuthError, AuthErrorKind, FailureReason
from .roles import UserRole
from .users import User

# ---------------------------------------------------------------------------
# Constantes (claims)
# ---------------------------------------------------------------------------

CLAIM_SUB = "sub"
CLAIM_ROLE = "role"
CLAIM_KIND = "kind"
CLAIM_IAT = "iat"
CLAIM_EXP = "exp"
CLAIM_JTI = "jti"
CLAIM_ISS = "iss"

_REQUIRED_CLAIMS = [CLAIM_SUB, CLAIM_KIND, CLAIM_IAT, CLAIM_EXP]

REASON_LOGOUT = "logout"
REASON_REFRESH_REUSE = "refresh_token_reuse"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_token(token: str) -> str:
    """Hash estable del token para el store (sha256 hex)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Contratos
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Claims verificados de un token."""

    subject_id: UUID
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: str | None = None
    role: UserRole | None = None


@dataclass(frozen=True, slots=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int
    token_type: str = "bearer"


class TokenService:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      TokenService

    Responsabilidades:
      - issue_* / verify / exchange_refresh / revoke / revoke_all
      - consume_single_use_token (reset/verify)
      - cleanup_expired / remaining_lifetime

    Colaboradores:
      - CredentialRepository, UserRepository, AuthConfig
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        config: AuthConfig,
        credentials: CredentialRepository,
        users: UserRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._users = users
        self._clock = clock

    # =========================================================
    # Helpers internos
    # =========================================================
    def _secret_for(self, kind: TokenKind) -> str:
        return {
            TokenKind.ACCESS: self._config.access_secret,
            TokenKind.REFRESH: self._config.refresh_secret,
            TokenKind.RESET: self._config.reset_secret,
            TokenKind.VERIFY: self._config.verify_secret,
        }[kind]

    def _ttl_for(self, kind: TokenKind) -> timedelta:
        return {
            TokenKind.ACCESS: self._config.access_ttl,
            TokenKind.REFRESH: self._config.refresh_ttl,
            TokenKind.RESET: self._config.reset_ttl,
            TokenKind.VERIFY: self._config.verify_ttl,
        }[kind]

    def _encode(self, user: User, kind: TokenKind) -> tuple[str, datetime, datetime]:
        issued_at = self._clock()
        expires_at = issued_at + self._ttl_for(kind)
        payload: dict[str, Any] = {
            CLAIM_SUB: str(user.id),
            CLAIM_ROLE: user.role.value,
            CLAIM_KIND: kind.value,
            CLAIM_IAT: int(issued_at.timestamp()),
            CLAIM_EXP: int(expires_at.timestamp()),
            CLAIM_JTI: uuid4().hex,
        }
        if self._config.issuer:
            payload[CLAIM_ISS] = self._config.issuer

        token = jwt.encode(
            payload, self._secret_for(kind), algorithm=self._config.algorithm
        )
        return token, issued_at, expires_at

    def _issue_single_use(
        self,
        user: User,
        kind: TokenKind,
        *,
        session_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        token, issued_at, expires_at = self._encode(user, kind)
        self._credentials.create(
            Credential(
                id=uuid4(),
                subject_id=user.id,
                kind=kind,
                token_hash=hash_token(token),
                session_id=session_id or uuid4(),
                issued_at=issued_at,
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        record_token_event(f"{kind.value}_issued")
        return token

    # =========================================================
    # Emisión
    # =========================================================
    def issue_access_token(self, user: User) -> str:
        """Access token stateless (sin efectos laterales)."""
        token, _, _ = self._encode(user, TokenKind.ACCESS)
        record_token_event("access_issued")
        return token

    def issue_refresh_token(
        self,
        user: User,
        *,
        session_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """Refresh token; persiste la credencial como unused/unrevoked."""
        return self._issue_single_use(
            user,
            TokenKind.REFRESH,
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def issue_token_pair(
        self,
        user: User,
        *,
        session_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user),
            refresh_token=self.issue_refresh_token(
                user,
                session_id=session_id,
                ip_address=ip_address,
                user_agent=user_agent,
            ),
            expires_in=int(self._config.access_ttl.total_seconds()),
            refresh_expires_in=int(self._config.refresh_ttl.total_seconds()),
        )

    def issue_single_use_token(self, user: User, kind: TokenKind) -> str:
        """Token de reset de password o verificación de email."""
        if kind not in (TokenKind.RESET, TokenKind.VERIFY):
            raise ValueError(f"Not a one-time token kind: {kind.value}")
        return self._issue_single_use(user, kind)

    # =========================================================
    # Verificación
    # =========================================================
    def verify(self, token: str, expected_kind: TokenKind) -> TokenClaims:
        """
        Verifica firma, expiración y tipo.

        Errores (AuthError):
            - EXPIRED_TOKEN / expired
            - INVALID_TOKEN / invalid_signature | malformed | kind_mismatch
        """
        if not token:
            raise AuthError(AuthErrorKind.UNAUTHENTICATED, FailureReason.MISSING_TOKEN)

        try:
            payload = jwt.decode(
                token,
                self._secret_for(expected_kind),
                algorithms=[self._config.algorithm],
                issuer=self._config.issuer or None,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError(
                AuthErrorKind.EXPIRED_TOKEN, FailureReason.EXPIRED
            ) from exc
        except jwt.InvalidSignatureError as exc:
            raise AuthError(
                AuthErrorKind.INVALID_TOKEN, FailureReason.INVALID_SIGNATURE
            ) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError(AuthErrorKind.INVALID_TOKEN, FailureReason.MALFORMED) from exc

        if payload.get(CLAIM_KIND) != expected_kind.value:
            raise AuthError(
                AuthErrorKind.INVALID_TOKEN,
                FailureReason.KIND_MISMATCH,
                "Tipo de token inválido.",
            )

        try:
            subject_id = UUID(str(payload[CLAIM_SUB]))
            role_value = payload.get(CLAIM_ROLE)
            role = UserRole(role_value) if role_value is not None else None
        except ValueError as exc:
            raise AuthError(AuthErrorKind.INVALID_TOKEN, FailureReason.MALFORMED) from exc

        return TokenClaims(
            subject_id=subject_id,
            kind=expected_kind,
            issued_at=datetime.fromtimestamp(payload[CLAIM_IAT], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload[CLAIM_EXP], tz=timezone.utc),
            token_id=payload.get(CLAIM_JTI),
            role=role,
        )

    # =========================================================
    # Single-use (refresh / reset / verify)
    # =========================================================
    def _load_record(self, token: str, claims: TokenClaims) -> Credential:
        record = self._credentials.get_by_token_hash(hash_token(token))
        if (
            record is None
            or record.subject_id != claims.subject_id
            or record.kind != claims.kind
        ):
            raise AuthError(AuthErrorKind.INVALID_TOKEN, FailureReason.NOT_FOUND)
        if record.revoked:
            raise AuthError(
                AuthErrorKind.INVALID_TOKEN,
                FailureReason.REVOKED,
                "Token revocado.",
            )
        if record.used:
            self._on_reuse(record)
            raise AuthError(AuthErrorKind.TOKEN_REPLAY, FailureReason.ALREADY_USED)
        return record

    def _resolve_subject(self, subject_id: UUID) -> User:
        user = self._users.get_user_by_id(subject_id)
        if user is None:
            raise AuthError(
                AuthErrorKind.UNAUTHENTICATED, FailureReason.SUBJECT_NOT_FOUND
            )
        if not user.is_active:
            raise AuthError(AuthErrorKind.FORBIDDEN, FailureReason.SUBJECT_INACTIVE)
        return user

    def _commit_use(self, record: Credential) -> None:
        """Commit point: mark-used condicional. Solo un llamador gana."""
        if self._credentials.mark_used(record.id, self._clock()):
            return

        # Perdimos la carrera: otro request lo usó (o lo revocó) primero.
        current = self._credentials.get_by_token_hash(record.token_hash)
        if current is not None and current.revoked and not current.used:
            raise AuthError(
                AuthErrorKind.INVALID_TOKEN, FailureReason.REVOKED, "Token revocado."
            )
        self._on_reuse(record)
        raise AuthError(AuthErrorKind.TOKEN_REPLAY, FailureReason.ALREADY_USED)

    def _on_reuse(self, record: Credential) -> None:
        """Reuso = señal de compromiso: revocar todo lo del sujeto (solo refresh)."""
        record_token_event(f"{record.kind.value}_replay")
        if record.kind != TokenKind.REFRESH:
            logger.warning(
                "Reuso de token single-use",
                extra={"subject_id": str(record.subject_id), "kind": record.kind.value},
            )
            return

        revoked = self.revoke_all(record.subject_id, REASON_REFRESH_REUSE)
        logger.warning(
            "Reuso de refresh token detectado; credenciales del sujeto revocadas",
            extra={
                "subject_id": str(record.subject_id),
                "session_id": str(record.session_id),
                "revoked": revoked,
            },
        )

    def exchange_refresh(
        self,
        token: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[TokenPair, User]:
        """
        Intercambia un refresh token por un par nuevo (misma sesión).

        Errores (AuthError):
            - EXPIRED_TOKEN / INVALID_TOKEN (firma, tipo, not_found, revoked)
            - TOKEN_REPLAY (already_used) + revocación defensiva
            - UNAUTHENTICATED (subject_not_found) / FORBIDDEN (subject_inactive)
        """
        claims = self.verify(token, TokenKind.REFRESH)
        record = self._load_record(token, claims)
        user = self._resolve_subject(claims.subject_id)
        self._commit_use(record)

        pair = self.issue_token_pair(
            user,
            session_id=record.session_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        record_token_event("refresh_exchanged")
        return pair, user

    def consume_single_use_token(self, token: str, kind: TokenKind) -> User:
        """Consume un token de reset/verify (una sola vez) y devuelve el sujeto."""
        if kind not in SINGLE_USE_KINDS or kind == TokenKind.REFRESH:
            raise ValueError(f"Not a one-time token kind: {kind.value}")
        claims = self.verify(token, kind)
        record = self._load_record(token, claims)
        user = self._resolve_subject(claims.subject_id)
        self._commit_use(record)
        record_token_event(f"{kind.value}_consumed")
        return user

    # =========================================================
    # Revocación / limpieza
    # =========================================================
    def revoke(self, token: str, reason: str = REASON_LOGOUT) -> bool:
        """
        Revoca la credencial de un token (idempotente).

        No exige que el token siga vigente: un logout con refresh expirado
        igual marca el registro.
        """
        record = self._credentials.get_by_token_hash(hash_token(token))
        if record is None:
            return False
        self._credentials.mark_revoked(record.id, self._clock(), reason)
        record_token_event("revoked")
        return True

    def revoke_all(self, subject_id: UUID, reason: str) -> int:
        """Revoca todas las credenciales del sujeto (idempotente)."""
        count = self._credentials.revoke_all_for_subject(
            subject_id, self._clock(), reason
        )
        if count:
            record_token_event("revoked_all")
        logger.info(
            "Credenciales revocadas",
            extra={"subject_id": str(subject_id), "reason": reason, "count": count},
        )
        return count

    def cleanup_expired(self, now: datetime | None = None) -> int:
        """Borra credenciales expiradas (higiene de storage)."""
        deleted = self._credentials.delete_expired(now or self._clock())
        logger.info("Limpieza de credenciales expiradas", extra={"deleted": deleted})
        return deleted

    def remaining_lifetime(self, token: str) -> int | None:
        """Segundos de vida restantes (sin validar firma). None si no se puede leer."""
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
            exp = int(payload[CLAIM_EXP])
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
            return None
        return max(0, exp - int(self._clock().timestamp()))
