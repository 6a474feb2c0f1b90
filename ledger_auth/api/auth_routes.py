"""
===============================================================================
TARJETA CRC — ledger_auth/api/auth_routes.py (Autenticación de usuarios)
===============================================================================

Responsabilidades:
  - Registro self-service (roles acotados) y login con par de tokens.
  - Intercambio de refresh token (single-use, con detección de replay).
  - Logout (una sesión) y logout-all (todas las credenciales del sujeto).
  - Perfil propio (/me), cambio y reset de password (revocan todo).
  - Vida restante del access token (/session).
  - Emitir auditoría best-effort en cada acción sensible.

Patrones aplicados:
  - Presentation Layer: traduce HTTP <-> TokenService / UserRepository.
  - Fail closed: cualquier AuthError corta el request (handler 401/403).

Colaboradores:
  - identity.tokens.TokenService (vía container)
  - identity.auth_users: authenticate_user / hash_password / verify_password
  - identity.dependencies: current_principal / optional_principal
  - audit.emit_audit_event
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request, status
from pydantic import BaseModel, Field, field_validator

from ..audit import emit_audit_event
from ..container import get_audit_repository, get_token_service, get_user_repository
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES, conflict, not_found
from ..crosscutting.logger import logger
from ..domain.audit import AuditAction
from ..domain.entities import TokenKind
from ..domain.repositories import AuditEventRepository, UserRepository
from ..identity.auth_users import authenticate_user, hash_password, verify_password
from ..identity.authorization import Permission, has_permission, permission_module
from ..identity.dependencies import current_principal, optional_principal
from ..identity.errors import AuthError, AuthErrorKind, FailureReason
from ..identity.gate import extract_bearer_token
from ..identity.principal import Principal
from ..identity.roles import (
    DEFAULT_ROLE,
    SELF_REGISTRATION_ROLES,
    UserRole,
    default_modules_for_role,
)
from ..identity.tokens import REASON_LOGOUT, TokenPair, TokenService
from ..identity.users import CountryCode, User, normalize_email

router = APIRouter(responses=OPENAPI_ERROR_RESPONSES)

REASON_LOGOUT_ALL = "logout_all"
REASON_PASSWORD_CHANGED = "password_changed"
REASON_PASSWORD_RESET = "password_reset"


# -----------------------------------------------------------------------------
# Modelos HTTP (DTOs)
# -----------------------------------------------------------------------------


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: str
    role: UserRole
    modules: list[str]
    resource_assignments: dict[str, list[str]]
    is_active: bool
    country_code: CountryCode | None = None
    phone_number: str | None = None
    created_at: datetime | None = None
    last_login: datetime | None = None
    permissions: list[str] = Field(default_factory=list)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenResponse


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=512)
    name: str = Field(..., min_length=2, max_length=100)
    role: UserRole = Field(default=DEFAULT_ROLE)
    country_code: CountryCode | None = None
    phone_number: str | None = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def normalizar_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("name")
    @classmethod
    def limpiar_nombre(cls, v: str) -> str:
        return v.strip()


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=512)

    @field_validator("email")
    @classmethod
    def normalizar_email(cls, v: str) -> str:
        return normalize_email(v)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str | None = None


class UpdateProfileRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    phone_number: str | None = Field(default=None, max_length=32)
    country_code: CountryCode | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=512)
    new_password: str = Field(..., min_length=8, max_length=512)


class ResetPasswordRequest(BaseModel):
    reset_token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=512)


class SessionResponse(BaseModel):
    user_id: UUID
    role: UserRole
    modules: list[str]
    expires_in: int | None


class OkResponse(BaseModel):
    success: bool = True
    revoked: int | None = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def granted_permissions(user: User) -> list[str]:
    """Permisos nombrados efectivos (módulo accesible + membresía del rol)."""
    granted: list[str] = []
    for perm in Permission:
        module = permission_module(perm)
        if module is not None and not user.can_access_module(module):
            continue
        if has_permission(user.role, perm):
            granted.append(perm.value)
    return sorted(granted)


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        modules=sorted(m.value for m in user.modules),
        resource_assignments={
            k: sorted(v) for k, v in sorted(user.resource_assignments.items())
        },
        is_active=user.is_active,
        country_code=user.country_code,
        phone_number=user.phone_number,
        created_at=user.created_at,
        last_login=user.last_login,
        permissions=granted_permissions(user),
    )


def _to_token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
        refresh_expires_in=pair.refresh_expires_in,
    )


def _client_info(request: Request) -> tuple[str | None, str | None]:
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


def _current_user(users: UserRepository, principal: Principal) -> User:
    user = users.get_user_by_id(principal.id)
    if user is None:
        raise not_found("Usuario", str(principal.id))
    return user


# -----------------------------------------------------------------------------
# Registro / login / refresh
# -----------------------------------------------------------------------------


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["auth"],
)
def register(
    req: RegisterRequest,
    request: Request,
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """
    Auto-registro.

    - Solo roles de SELF_REGISTRATION_ROLES (nunca admins ni fieldworkers).
    - Un rol de módulo recibe su módulo asignado automáticamente.
    """
    if req.role not in SELF_REGISTRATION_ROLES:
        raise AuthError(
            AuthErrorKind.FORBIDDEN,
            FailureReason.ROLE_NOT_ALLOWED,
            "Rol no permitido en el registro.",
        )
    if users.get_user_by_email(req.email) is not None:
        raise conflict("El usuario ya existe.")

    user = users.create_user(
        email=req.email,
        password_hash=hash_password(req.password),
        role=req.role,
        name=req.name,
        modules=default_modules_for_role(req.role),
        country_code=req.country_code,
        phone_number=req.phone_number,
    )

    ip_address, user_agent = _client_info(request)
    pair = tokens.issue_token_pair(user, ip_address=ip_address, user_agent=user_agent)

    emit_audit_event(
        audit_repo,
        action=AuditAction.REGISTER,
        actor=f"user:{user.id}",
        target_id=user.id,
        metadata={"role": user.role.value},
    )
    logger.info("Usuario registrado", extra={"user_id": str(user.id)})

    return AuthResponse(user=to_user_response(user), tokens=_to_token_response(pair))


@router.post("/login", response_model=AuthResponse, tags=["auth"])
def login(
    req: LoginRequest,
    request: Request,
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Login: credenciales -> par de tokens (nueva sesión)."""
    user = authenticate_user(users, req.email, req.password)
    if user is None:
        emit_audit_event(
            audit_repo,
            action=AuditAction.LOGIN_FAILED,
            metadata={"reason": FailureReason.INVALID_CREDENTIALS.value},
        )
        raise AuthError(
            AuthErrorKind.UNAUTHENTICATED,
            FailureReason.INVALID_CREDENTIALS,
            "Credenciales inválidas.",
        )

    ip_address, user_agent = _client_info(request)
    pair = tokens.issue_token_pair(user, ip_address=ip_address, user_agent=user_agent)

    emit_audit_event(
        audit_repo,
        action=AuditAction.LOGIN,
        actor=f"user:{user.id}",
        target_id=user.id,
        metadata={"role": user.role.value},
    )
    return AuthResponse(user=to_user_response(user), tokens=_to_token_response(pair))


@router.post("/refresh-token", response_model=AuthResponse, tags=["auth"])
def refresh_token(
    req: RefreshRequest,
    request: Request,
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """
    Intercambia un refresh token por un par nuevo.

    Reuso de un token ya usado => TOKEN_REPLAY y revocación de todo el sujeto.
    """
    ip_address, user_agent = _client_info(request)
    try:
        pair, user = tokens.exchange_refresh(
            req.refresh_token, ip_address=ip_address, user_agent=user_agent
        )
    except AuthError as exc:
        if exc.kind == AuthErrorKind.TOKEN_REPLAY:
            emit_audit_event(
                audit_repo,
                action=AuditAction.TOKEN_REPLAY,
                metadata={"ip_address": ip_address},
            )
        raise

    return AuthResponse(user=to_user_response(user), tokens=_to_token_response(pair))


# -----------------------------------------------------------------------------
# Logout
# -----------------------------------------------------------------------------


@router.post("/logout", response_model=OkResponse, tags=["auth"])
def logout(
    req: LogoutRequest,
    principal: Principal | None = Depends(optional_principal),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """
    Cierra una sesión revocando su refresh token.

    Idempotente: sin token o con token desconocido igual responde ok.
    """
    revoked = 0
    if req.refresh_token:
        revoked = int(tokens.revoke(req.refresh_token, REASON_LOGOUT))

    emit_audit_event(
        audit_repo,
        action=AuditAction.LOGOUT,
        principal=principal,
        metadata={"revoked": revoked},
    )
    return OkResponse(revoked=revoked)


@router.post("/logout-all", response_model=OkResponse, tags=["auth"])
def logout_all(
    principal: Principal = Depends(current_principal),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Revoca todas las credenciales del usuario (todas las sesiones)."""
    revoked = tokens.revoke_all(principal.id, REASON_LOGOUT_ALL)
    emit_audit_event(
        audit_repo,
        action=AuditAction.LOGOUT_ALL,
        principal=principal,
        target_id=principal.id,
        metadata={"revoked": revoked},
    )
    return OkResponse(revoked=revoked)


# -----------------------------------------------------------------------------
# Perfil / password
# -----------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse, tags=["auth"])
def me(
    principal: Principal = Depends(current_principal),
    users: UserRepository = Depends(get_user_repository),
):
    return to_user_response(_current_user(users, principal))


@router.put("/me", response_model=UserResponse, tags=["auth"])
def update_me(
    req: UpdateProfileRequest,
    principal: Principal = Depends(current_principal),
    users: UserRepository = Depends(get_user_repository),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Solo campos de perfil: rol y módulos NO son editables acá."""
    updated = users.update_user(
        principal.id,
        name=req.name.strip() if req.name else None,
        phone_number=req.phone_number,
        country_code=req.country_code,
    )
    if updated is None:
        raise not_found("Usuario", str(principal.id))

    emit_audit_event(
        audit_repo,
        action=AuditAction.PROFILE_UPDATED,
        principal=principal,
        target_id=principal.id,
        metadata={"fields": sorted(req.model_dump(exclude_none=True))},
    )
    return to_user_response(updated)


@router.post("/change-password", response_model=OkResponse, tags=["auth"])
def change_password(
    req: ChangePasswordRequest,
    principal: Principal = Depends(current_principal),
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Cambia el password y revoca todas las credenciales del usuario."""
    user = _current_user(users, principal)
    if not verify_password(req.current_password, user.password_hash):
        raise AuthError(
            AuthErrorKind.UNAUTHENTICATED,
            FailureReason.INVALID_CREDENTIALS,
            "El password actual es incorrecto.",
        )

    users.update_user_password(user.id, hash_password(req.new_password))
    revoked = tokens.revoke_all(user.id, REASON_PASSWORD_CHANGED)

    emit_audit_event(
        audit_repo,
        action=AuditAction.PASSWORD_CHANGED,
        principal=principal,
        target_id=user.id,
        metadata={"revoked": revoked},
    )
    return OkResponse(revoked=revoked)


@router.post("/reset-password", response_model=OkResponse, tags=["auth"])
def reset_password(
    req: ResetPasswordRequest,
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Consume un reset token (una vez), fija el password y revoca todo."""
    user = tokens.consume_single_use_token(req.reset_token, TokenKind.RESET)
    users.update_user_password(user.id, hash_password(req.new_password))
    revoked = tokens.revoke_all(user.id, REASON_PASSWORD_RESET)

    emit_audit_event(
        audit_repo,
        action=AuditAction.PASSWORD_RESET,
        actor=f"user:{user.id}",
        target_id=user.id,
        metadata={"revoked": revoked},
    )
    return OkResponse(revoked=revoked)


@router.get("/session", response_model=SessionResponse, tags=["auth"])
def session(
    principal: Principal = Depends(current_principal),
    authorization: str | None = Header(None, alias="Authorization"),
    tokens: TokenService = Depends(get_token_service),
):
    """Segundos de vida restantes del access token presentado."""
    token = extract_bearer_token(authorization) or ""
    return SessionResponse(
        user_id=principal.id,
        role=principal.role,
        modules=sorted(m.value for m in principal.modules),
        expires_in=tokens.remaining_lifetime(token),
    )
