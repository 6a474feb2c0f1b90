"""
===============================================================================
TARJETA CRC — identity/authorization.py
===============================================================================

Módulo:
    Authorization Engine

Responsabilidades:
    - Definir AuthorizationRequirement (roles permitidos + módulo + guard).
    - Decidir authorize(principal, requirement) -> Decision (Allow / Deny).
    - Mapa de permisos nombrados (permission -> roles) y su evaluación.

Colaboradores:
    - identity.roles: ROLE_RANK, admins de módulo, TOP_ROLE.
    - identity.principal.Principal
    - identity.guards: predicados de asignación de recursos.
    - identity.dependencies: traduce Deny -> AuthError en el borde HTTP.

Orden de evaluación (cada paso corta):
    1. sin principal            -> Deny(UNAUTHENTICATED)
    2. super_admin              -> Allow
    3. aislamiento de módulo    -> Deny(MODULE_NOT_ACCESSIBLE)
    4. admin del módulo pedido  -> Allow (admin global = admin de todo módulo)
    5. rango vs roles pedidos   -> Deny(INSUFFICIENT_PRIVILEGE)
    6. guard de recurso         -> Deny(RESOURCE_NOT_ASSIGNED)

    El paso 3 va ANTES del 5: un rol alto de otro módulo nunca entra por rango.

Notas:
    - Funciones puras: sin I/O, sin FastAPI, testeables de forma aislada.
    - El umbral del paso 5 es el rango del rol permitido MÁS BAJO: cualquier
      rol igual o superior en la jerarquía también pasa (monotonía).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from .errors import AuthErrorKind
from .principal import Principal
from .roles import (
    TOP_ROLE,
    ModuleScope,
    UserRole,
    is_admin_for_module,
    rank,
)

@dataclass(frozen=True, slots=True)
class RequestView:
    """Vista neutral del request para los guards (path, query, body)."""

    path_params: Mapping[str, Any] = field(default_factory=dict)
    query_params: Mapping[str, Any] = field(default_factory=dict)
    body: Mapping[str, Any] = field(default_factory=dict)


ResourceGuard = Callable[[Principal, RequestView], bool]


@dataclass(frozen=True, slots=True)
class AuthorizationRequirement:
    """Descriptor estático declarado por cada endpoint protegido."""

    allowed_roles: frozenset[UserRole] = field(default_factory=frozenset)
    module: ModuleScope | None = None
    resource_guard: ResourceGuard | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "allowed_roles", frozenset(UserRole(r) for r in self.allowed_roles)
        )

    @property
    def min_required_rank(self) -> int | None:
        if not self.allowed_roles:
            return None
        return min(rank(role) for role in self.allowed_roles)


def requirement(
    roles: Iterable[UserRole | str] = (),
    module: ModuleScope | str | None = None,
    guard: ResourceGuard | None = None,
) -> AuthorizationRequirement:
    """Atajo para declarar requisitos en tablas de rutas."""
    return AuthorizationRequirement(
        allowed_roles=frozenset(UserRole(r) for r in roles),
        module=ModuleScope(module) if module is not None else None,
        resource_guard=guard,
    )


@dataclass(frozen=True, slots=True)
class Decision:
    """Resultado de autorización."""

    allowed: bool
    reason: AuthErrorKind | None = None
    detail: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: AuthErrorKind, detail: str = "") -> "Decision":
        return cls(allowed=False, reason=reason, detail=detail)


def _module_denied(principal: Principal, module: ModuleScope | None) -> bool:
    if module is None:
        return False
    if is_admin_for_module(principal.role, module):
        return False
    return module not in principal.modules


def authorize(
    principal: Principal | None,
    requirement: AuthorizationRequirement,
    request: RequestView | None = None,
) -> Decision:
    """Decide si el principal cumple el requisito (ver orden en la tarjeta)."""
    # 1. Autenticación
    if principal is None:
        return Decision.deny(AuthErrorKind.UNAUTHENTICATED, "Autenticación requerida.")

    # 2. Escape hatch
    if principal.role == TOP_ROLE:
        return Decision.allow()

    module = requirement.module

    # 3. Aislamiento de módulo
    if _module_denied(principal, module):
        return Decision.deny(
            AuthErrorKind.MODULE_NOT_ACCESSIBLE,
            f"Sin acceso al módulo {module.value}.",
        )

    # 4. Admin del módulo: derechos completos dentro de su módulo
    if (
        requirement.allowed_roles
        and module is not None
        and is_admin_for_module(principal.role, module)
    ):
        return Decision.allow()

    # 5. Jerarquía de roles
    required = requirement.min_required_rank
    if required is not None and rank(principal.role) < required:
        return Decision.deny(
            AuthErrorKind.INSUFFICIENT_PRIVILEGE,
            "Rol insuficiente.",
        )

    # 6. Asignación de recurso
    if requirement.resource_guard is not None:
        if not requirement.resource_guard(principal, request or RequestView()):
            return Decision.deny(
                AuthErrorKind.RESOURCE_NOT_ASSIGNED,
                "Recurso no asignado al usuario.",
            )

    return Decision.allow()


# ---------------------------------------------------------------------------
# Permisos nombrados
# ---------------------------------------------------------------------------


class Permission(str, Enum):
    DUBE_MERCHANT_CREATE = "dube.merchant.create"
    DUBE_MERCHANT_VIEW = "dube.merchant.view"
    DUBE_CUSTOMER_CREATE = "dube.customer.create"
    DUBE_CUSTOMER_VIEW = "dube.customer.view"
    WFP_BENEFICIARY_CREATE = "wfp.beneficiary.create"
    WFP_BENEFICIARY_VIEW = "wfp.beneficiary.view"
    USER_MANAGE = "user.manage"
    SYSTEM_SETTINGS = "system.settings"


PERMISSION_ROLES: Mapping[Permission, frozenset[UserRole]] = MappingProxyType(
    {
        Permission.DUBE_MERCHANT_CREATE: frozenset(
            {UserRole.DUBE_ADMIN, UserRole.ADMIN}
        ),
        Permission.DUBE_MERCHANT_VIEW: frozenset(
            {UserRole.DUBE_ADMIN, UserRole.DUBE_VIEWER, UserRole.ADMIN}
        ),
        Permission.DUBE_CUSTOMER_CREATE: frozenset(
            {UserRole.DUBE_ADMIN, UserRole.DUBE_FIELD_AGENT, UserRole.ADMIN}
        ),
        Permission.DUBE_CUSTOMER_VIEW: frozenset(
            {
                UserRole.DUBE_ADMIN,
                UserRole.DUBE_VIEWER,
                UserRole.DUBE_FIELD_AGENT,
                UserRole.ADMIN,
            }
        ),
        Permission.WFP_BENEFICIARY_CREATE: frozenset(
            {UserRole.WFP_ADMIN, UserRole.WFP_HEALTH_OFFICER, UserRole.ADMIN}
        ),
        Permission.WFP_BENEFICIARY_VIEW: frozenset(
            {
                UserRole.WFP_ADMIN,
                UserRole.WFP_VIEWER,
                UserRole.WFP_HEALTH_OFFICER,
                UserRole.ADMIN,
            }
        ),
        Permission.USER_MANAGE: frozenset({UserRole.ADMIN}),
        # R: solo super_admin (vía escape hatch).
        Permission.SYSTEM_SETTINGS: frozenset(),
    }
)


def permission_module(permission: Permission) -> ModuleScope | None:
    """Módulo implícito en el prefijo del permiso ("wfp.x.y" -> WFP)."""
    prefix = permission.value.split(".", 1)[0]
    try:
        return ModuleScope(prefix)
    except ValueError:
        return None


def authorize_permission(
    principal: Principal | None, permission: Permission | str
) -> Decision:
    """
    Evalúa un permiso nombrado.

    Mismos pasos 1-3 que authorize(); luego membresía EXPLÍCITA del rol
    (los permisos son grants puntuales, no umbrales de rango).
    """
    perm = Permission(permission)

    if principal is None:
        return Decision.deny(AuthErrorKind.UNAUTHENTICATED, "Autenticación requerida.")
    if principal.role == TOP_ROLE:
        return Decision.allow()

    module = permission_module(perm)
    if _module_denied(principal, module):
        return Decision.deny(
            AuthErrorKind.MODULE_NOT_ACCESSIBLE,
            f"Sin acceso al módulo {module.value}.",
        )

    if principal.role in PERMISSION_ROLES[perm]:
        return Decision.allow()
    return Decision.deny(
        AuthErrorKind.INSUFFICIENT_PRIVILEGE,
        f"Falta el permiso: {perm.value}",
    )


def has_permission(role: UserRole, permission: Permission | str) -> bool:
    """Consulta rápida rol -> permiso (sin módulo); útil para UI/perfil."""
    perm = Permission(permission)
    return role == TOP_ROLE or role in PERMISSION_ROLES[perm]
