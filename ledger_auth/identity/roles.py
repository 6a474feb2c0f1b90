"""
===============================================================================
TARJETA CRC — identity/roles.py
===============================================================================

Módulo:
    Roles, módulos y tabla de jerarquía

Responsabilidades:
    - Definir el enum cerrado de roles (UserRole) y de módulos (ModuleScope).
    - Mantener la ÚNICA tabla de rango (ROLE_RANK) consumida por el motor
      de autorización.
    - Resolver relaciones rol ↔ módulo (admin de módulo, módulo implícito).

Colaboradores:
    - identity.authorization: compara rangos y aplica aislamiento de módulo.
    - identity.guards: bypass de asignaciones para roles admin.
    - api.auth_routes / api.admin_routes: validación de roles asignables.

Notas:
    - Orden total: super_admin > admin > admin de módulo > viewer >
      fieldworker > user.
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Final, Iterable


class ModuleScope(str, Enum):
    """Dominios de negocio protegidos."""

    WFP = "wfp"
    DUBE = "dube"


class UserRole(str, Enum):
    """Roles del sistema (un único rol por identidad)."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    DUBE_ADMIN = "dube_admin"
    WFP_ADMIN = "wfp_admin"
    DUBE_VIEWER = "dube_viewer"
    WFP_VIEWER = "wfp_viewer"
    DUBE_FIELD_AGENT = "dube_field_agent"
    WFP_HEALTH_OFFICER = "wfp_health_officer"
    USER = "user"


TOP_ROLE: Final[UserRole] = UserRole.SUPER_ADMIN
GLOBAL_ADMIN_ROLE: Final[UserRole] = UserRole.ADMIN
DEFAULT_ROLE: Final[UserRole] = UserRole.USER

ROLE_RANK: Final[dict[UserRole, int]] = {
    UserRole.SUPER_ADMIN: 100,
    UserRole.ADMIN: 90,
    UserRole.DUBE_ADMIN: 80,
    UserRole.WFP_ADMIN: 80,
    UserRole.DUBE_VIEWER: 70,
    UserRole.WFP_VIEWER: 70,
    UserRole.DUBE_FIELD_AGENT: 60,
    UserRole.WFP_HEALTH_OFFICER: 60,
    UserRole.USER: 0,
}

MODULE_ADMIN_ROLES: Final[dict[ModuleScope, UserRole]] = {
    ModuleScope.WFP: UserRole.WFP_ADMIN,
    ModuleScope.DUBE: UserRole.DUBE_ADMIN,
}

# R: módulo "natural" de cada rol de módulo (para asignación automática).
ROLE_MODULE: Final[dict[UserRole, ModuleScope]] = {
    UserRole.WFP_ADMIN: ModuleScope.WFP,
    UserRole.WFP_VIEWER: ModuleScope.WFP,
    UserRole.WFP_HEALTH_OFFICER: ModuleScope.WFP,
    UserRole.DUBE_ADMIN: ModuleScope.DUBE,
    UserRole.DUBE_VIEWER: ModuleScope.DUBE,
    UserRole.DUBE_FIELD_AGENT: ModuleScope.DUBE,
}

# Roles permitidos en auto-registro (sin admin).
SELF_REGISTRATION_ROLES: Final[frozenset[UserRole]] = frozenset(
    {UserRole.USER, UserRole.DUBE_VIEWER, UserRole.WFP_VIEWER}
)


def rank(role: UserRole) -> int:
    return ROLE_RANK[role]


def outranks(role: UserRole, other: UserRole) -> bool:
    """True si role está estrictamente por encima de other."""
    return rank(role) > rank(other)


def is_module_admin(role: UserRole, module: ModuleScope | None = None) -> bool:
    """
    True si role es admin de módulo.

    Con module=None acepta el admin de cualquier módulo.
    """
    if module is None:
        return role in MODULE_ADMIN_ROLES.values()
    return MODULE_ADMIN_ROLES[module] == role


def is_admin_for_module(role: UserRole, module: ModuleScope | None) -> bool:
    """Admin global, o admin del módulo indicado (cualquiera si module=None)."""
    return role == GLOBAL_ADMIN_ROLE or is_module_admin(role, module)


def default_modules_for_role(role: UserRole) -> frozenset[ModuleScope]:
    """Módulos asignados implícitamente a un rol de módulo."""
    module = ROLE_MODULE.get(role)
    return frozenset({module}) if module else frozenset()


def parse_modules(values: Iterable[str | ModuleScope]) -> frozenset[ModuleScope]:
    """Normaliza una colección de tags a ModuleScope (ValueError si no existe)."""
    return frozenset(
        v if isinstance(v, ModuleScope) else ModuleScope(v.strip().lower())
        for v in values
    )
