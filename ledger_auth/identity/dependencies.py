"""
===============================================================================
TARJETA CRC — identity/dependencies.py
===============================================================================

Módulo:
    Adaptadores FastAPI del gate y del motor de autorización

Responsabilidades:
    - current_principal / optional_principal: Authorization -> Principal.
    - require_access(roles, module, guard): requisito declarativo por endpoint.
    - require_permission(permission): permiso nombrado.
    - require_metrics_permission(): /metrics con system.settings (configurable).
    - Traducir Decision(Deny) -> AuthError (el handler HTTP arma el 401/403).
    - Registrar cada decisión en métricas y el user_id en el contexto de logs.

Colaboradores:
    - container.get_authentication_gate
    - identity.authorization: authorize / authorize_permission / RequestView
    - crosscutting.metrics.record_auth_decision
    - context.set_user_context

Notas:
    - El body JSON se lee solo si el requisito declara un guard de recurso.
    - Body no-JSON o inválido => vista vacía (la validación es del endpoint).
===============================================================================
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from fastapi import Depends, Header, Request

from ..container import get_authentication_gate
from ..context import set_user_context
from ..crosscutting.metrics import record_auth_decision
from .authorization import (
    Decision,
    Permission,
    RequestView,
    ResourceGuard,
    authorize,
    authorize_permission,
    requirement,
)
from .errors import AuthError, AuthErrorKind, FailureReason
from .gate import AuthenticationGate
from .principal import Principal
from .roles import ModuleScope, UserRole

_DENY_REASONS: dict[AuthErrorKind, FailureReason] = {
    AuthErrorKind.UNAUTHENTICATED: FailureReason.MISSING_TOKEN,
    AuthErrorKind.INSUFFICIENT_PRIVILEGE: FailureReason.ROLE_NOT_ALLOWED,
    AuthErrorKind.MODULE_NOT_ACCESSIBLE: FailureReason.MODULE_NOT_ASSIGNED,
    AuthErrorKind.RESOURCE_NOT_ASSIGNED: FailureReason.RESOURCE_NOT_ASSIGNED,
}


def _bind(request: Request, principal: Principal) -> None:
    request.state.principal = principal
    set_user_context(str(principal.id))


def enforce(decision: Decision) -> None:
    """Allow -> métrica y listo; Deny -> AuthError tipado."""
    if decision.allowed:
        record_auth_decision(True)
        return
    kind = decision.reason or AuthErrorKind.FORBIDDEN
    record_auth_decision(False, kind.value)
    raise AuthError(kind, _DENY_REASONS.get(kind), decision.detail or None)


async def build_request_view(request: Request) -> RequestView:
    """Vista neutral del request para los guards."""
    body: dict[str, Any] = {}
    if "application/json" in request.headers.get("content-type", ""):
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            body = payload
    return RequestView(
        path_params=dict(request.path_params),
        query_params=dict(request.query_params),
        body=body,
    )


# ---------------------------------------------------------------------------
# Autenticación
# ---------------------------------------------------------------------------


async def current_principal(
    request: Request,
    authorization: str | None = Header(None, alias="Authorization"),
    gate: AuthenticationGate = Depends(get_authentication_gate),
) -> Principal:
    """Principal obligatorio (fail closed)."""
    try:
        principal = gate.authenticate(authorization)
    except AuthError as exc:
        record_auth_decision(False, exc.kind.value)
        raise
    _bind(request, principal)
    return principal


async def optional_principal(
    request: Request,
    authorization: str | None = Header(None, alias="Authorization"),
    gate: AuthenticationGate = Depends(get_authentication_gate),
) -> Principal | None:
    """Principal opcional: token ausente/inválido => None; storage caído => error."""
    principal = gate.authenticate_optional(authorization)
    if principal is not None:
        _bind(request, principal)
    return principal


# ---------------------------------------------------------------------------
# Autorización
# ---------------------------------------------------------------------------


def require_access(
    roles: Iterable[UserRole | str] = (),
    module: ModuleScope | str | None = None,
    guard: ResourceGuard | None = None,
) -> Callable:
    """
    Dependency FastAPI: autentica y evalúa el requisito del endpoint.

    Uso:
        @router.get("/x", dependencies=[Depends(require_access([...], "wfp"))])
    """
    declared = requirement(roles, module, guard)

    async def dependency(
        request: Request, principal: Principal = Depends(current_principal)
    ) -> Principal:
        view = (
            await build_request_view(request)
            if declared.resource_guard is not None
            else RequestView()
        )
        enforce(authorize(principal, declared, view))
        return principal

    dependency.requirement = declared
    return dependency


def require_permission(permission: Permission | str) -> Callable:
    """Dependency FastAPI: permiso nombrado (ValueError si no existe)."""
    perm = Permission(permission)

    async def dependency(principal: Principal = Depends(current_principal)) -> Principal:
        enforce(authorize_permission(principal, perm))
        return principal

    dependency.permission = perm
    return dependency


def require_metrics_permission() -> Callable:
    """Auth para /metrics según settings (metrics_require_auth)."""

    async def dependency(
        request: Request,
        authorization: str | None = Header(None, alias="Authorization"),
        gate: AuthenticationGate = Depends(get_authentication_gate),
    ) -> None:
        from ..crosscutting.config import get_settings

        if not get_settings().metrics_require_auth:
            return None

        principal = await current_principal(request, authorization, gate)
        enforce(authorize_permission(principal, Permission.SYSTEM_SETTINGS))
        return None

    return dependency
