"""
===============================================================================
TARJETA CRC — ledger_auth/api/admin_routes.py (Administración de identidades)
===============================================================================

Responsabilidades:
  - Listar y provisionar usuarios (permiso user.manage).
  - Cambiar acceso: rol, módulos y asignaciones de recursos.
  - Desactivar (revoca todas las credenciales) y reactivar cuentas.
  - Emitir reset tokens (la entrega por email es externa).
  - Limpieza de credenciales expiradas (permiso system.settings).
  - Consultar la auditoría de seguridad.

Reglas de escalamiento:
  - Un actor solo otorga roles de rango MENOR al propio (super_admin: todos).
  - Un actor solo modifica usuarios de rango MENOR al propio (super_admin: todos).

Colaboradores:
  - identity.dependencies.require_permission
  - identity.roles: outranks / default_modules_for_role
  - identity.tokens.TokenService: revoke_all / issue_single_use_token / cleanup
  - audit.emit_audit_event
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from ..audit import emit_audit_event
from ..container import get_audit_repository, get_token_service, get_user_repository
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES, conflict, not_found
from ..domain.audit import AuditAction
from ..domain.entities import TokenKind
from ..domain.repositories import AuditEventRepository, UserRepository
from ..identity.auth_users import hash_password
from ..identity.authorization import Permission
from ..identity.dependencies import require_permission
from ..identity.errors import AuthError, AuthErrorKind, FailureReason
from ..identity.principal import Principal
from ..identity.roles import (
    TOP_ROLE,
    ModuleScope,
    UserRole,
    default_modules_for_role,
    outranks,
)
from ..identity.tokens import TokenService
from ..identity.users import CountryCode, User, normalize_assignments, normalize_email
from .auth_routes import OkResponse, UserResponse, to_user_response

router = APIRouter(responses=OPENAPI_ERROR_RESPONSES, tags=["admin"])

REASON_DEACTIVATED = "account_deactivated"

_manage_users = require_permission(Permission.USER_MANAGE)
_system_settings = require_permission(Permission.SYSTEM_SETTINGS)


# -----------------------------------------------------------------------------
# DTOs
# -----------------------------------------------------------------------------


class ProvisionUserRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=512)
    name: str = Field(default="", max_length=100)
    role: UserRole = Field(default=UserRole.USER)
    modules: list[ModuleScope] = Field(default_factory=list)
    resource_assignments: dict[str, list[str]] = Field(default_factory=dict)
    country_code: CountryCode | None = None
    phone_number: str | None = Field(default=None, max_length=32)
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def normalizar_email(cls, v: str) -> str:
        return normalize_email(v)


class UpdateAccessRequest(BaseModel):
    role: UserRole | None = None
    modules: list[ModuleScope] | None = None
    resource_assignments: dict[str, list[str]] | None = None


class ResetTokenResponse(BaseModel):
    user_id: UUID
    reset_token: str
    expires_in: int


class CleanupResponse(BaseModel):
    deleted: int


class AuditEventResponse(BaseModel):
    id: UUID
    actor: str
    action: str
    target_id: UUID | None = None
    metadata: dict[str, Any]
    created_at: datetime | None = None


# -----------------------------------------------------------------------------
# Helpers (reglas de escalamiento)
# -----------------------------------------------------------------------------


def _ensure_can_grant(actor: Principal, role: UserRole) -> None:
    if actor.role == TOP_ROLE or outranks(actor.role, role):
        return
    raise AuthError(
        AuthErrorKind.INSUFFICIENT_PRIVILEGE,
        FailureReason.ROLE_NOT_ALLOWED,
        f"No podés otorgar el rol {role.value}.",
    )


def _ensure_can_manage(actor: Principal, target: User) -> None:
    if actor.role == TOP_ROLE or outranks(actor.role, target.role):
        return
    raise AuthError(
        AuthErrorKind.INSUFFICIENT_PRIVILEGE,
        FailureReason.ROLE_NOT_ALLOWED,
        "No podés administrar un usuario de rango igual o superior.",
    )


def _load_target(users: UserRepository, user_id: UUID) -> User:
    user = users.get_user_by_id(user_id)
    if user is None:
        raise not_found("Usuario", str(user_id))
    return user


# -----------------------------------------------------------------------------
# Usuarios
# -----------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
def list_users(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _: Principal = Depends(_manage_users),
    users: UserRepository = Depends(get_user_repository),
):
    return [to_user_response(u) for u in users.list_users(limit=limit, offset=offset)]


@router.post(
    "/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED
)
def provision_user(
    req: ProvisionUserRequest,
    actor: Principal = Depends(_manage_users),
    users: UserRepository = Depends(get_user_repository),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Alta administrativa (cualquier rol por debajo del actor)."""
    _ensure_can_grant(actor, req.role)
    if users.get_user_by_email(req.email) is not None:
        raise conflict("El usuario ya existe.")

    user = users.create_user(
        email=req.email,
        password_hash=hash_password(req.password),
        role=req.role,
        name=req.name.strip(),
        modules=frozenset(req.modules) | default_modules_for_role(req.role),
        resource_assignments=normalize_assignments(req.resource_assignments),
        country_code=req.country_code,
        phone_number=req.phone_number,
        is_active=req.is_active,
    )

    emit_audit_event(
        audit_repo,
        action=AuditAction.USER_PROVISIONED,
        principal=actor,
        target_id=user.id,
        metadata={"role": user.role.value, "modules": user.modules},
    )
    return to_user_response(user)


@router.patch("/users/{user_id}/access", response_model=UserResponse)
def update_access(
    user_id: UUID,
    req: UpdateAccessRequest,
    actor: Principal = Depends(_manage_users),
    users: UserRepository = Depends(get_user_repository),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Cambia rol / módulos / asignaciones. Campos ausentes no cambian."""
    target = _load_target(users, user_id)
    _ensure_can_manage(actor, target)
    if req.role is not None:
        _ensure_can_grant(actor, req.role)

    # R: mismo criterio que el alta: un rol de módulo siempre incluye su módulo.
    modules = frozenset(req.modules) if req.modules is not None else None
    if req.role is not None:
        modules = (modules if modules is not None else target.modules) | (
            default_modules_for_role(req.role)
        )

    updated = users.update_user(
        user_id,
        role=req.role,
        modules=modules,
        resource_assignments=(
            normalize_assignments(req.resource_assignments)
            if req.resource_assignments is not None
            else None
        ),
    )
    if updated is None:
        raise not_found("Usuario", str(user_id))

    emit_audit_event(
        audit_repo,
        action=AuditAction.ACCESS_UPDATED,
        principal=actor,
        target_id=user_id,
        metadata={
            "previous_role": target.role.value,
            "role": updated.role.value,
            "modules": updated.modules,
        },
    )
    return to_user_response(updated)


@router.post("/users/{user_id}/deactivate", response_model=OkResponse)
def deactivate_user(
    user_id: UUID,
    actor: Principal = Depends(_manage_users),
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Baja lógica: is_active=False y revocación de todas las credenciales."""
    if user_id == actor.id:
        raise conflict("No podés desactivar tu propia cuenta.")
    target = _load_target(users, user_id)
    _ensure_can_manage(actor, target)

    users.set_user_active(user_id, False)
    revoked = tokens.revoke_all(user_id, REASON_DEACTIVATED)

    emit_audit_event(
        audit_repo,
        action=AuditAction.USER_DEACTIVATED,
        principal=actor,
        target_id=user_id,
        metadata={"revoked": revoked},
    )
    return OkResponse(revoked=revoked)


@router.post("/users/{user_id}/activate", response_model=UserResponse)
def activate_user(
    user_id: UUID,
    actor: Principal = Depends(_manage_users),
    users: UserRepository = Depends(get_user_repository),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    target = _load_target(users, user_id)
    _ensure_can_manage(actor, target)

    updated = users.set_user_active(user_id, True)
    if updated is None:
        raise not_found("Usuario", str(user_id))

    emit_audit_event(
        audit_repo,
        action=AuditAction.USER_ACTIVATED,
        principal=actor,
        target_id=user_id,
    )
    return to_user_response(updated)


@router.post("/users/{user_id}/reset-token", response_model=ResetTokenResponse)
def issue_reset_token(
    user_id: UUID,
    actor: Principal = Depends(_manage_users),
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    """Emite un reset token single-use para entregar por un canal externo."""
    target = _load_target(users, user_id)
    _ensure_can_manage(actor, target)

    token = tokens.issue_single_use_token(target, TokenKind.RESET)

    emit_audit_event(
        audit_repo,
        action=AuditAction.RESET_ISSUED,
        principal=actor,
        target_id=user_id,
    )
    return ResetTokenResponse(
        user_id=user_id,
        reset_token=token,
        expires_in=tokens.remaining_lifetime(token) or 0,
    )


# -----------------------------------------------------------------------------
# Mantenimiento / auditoría
# -----------------------------------------------------------------------------


@router.post("/tokens/cleanup", response_model=CleanupResponse)
def cleanup_tokens(
    actor: Principal = Depends(_system_settings),
    tokens: TokenService = Depends(get_token_service),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    deleted = tokens.cleanup_expired()
    emit_audit_event(
        audit_repo,
        action=AuditAction.TOKENS_CLEANUP,
        principal=actor,
        metadata={"deleted": deleted},
    )
    return CleanupResponse(deleted=deleted)


@router.get("/audit-events", response_model=list[AuditEventResponse])
def list_audit_events(
    actor_id: str | None = Query(default=None, max_length=128),
    action_prefix: str | None = Query(default=None, max_length=64),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _: Principal = Depends(_manage_users),
    audit_repo: AuditEventRepository = Depends(get_audit_repository),
):
    events = audit_repo.list_events(
        actor_id=actor_id, action_prefix=action_prefix, limit=limit, offset=offset
    )
    return [
        AuditEventResponse(
            id=e.id,
            actor=e.actor,
            action=e.action,
            target_id=e.target_id,
            metadata=e.metadata,
            created_at=e.created_at,
        )
        for e in events
    ]
