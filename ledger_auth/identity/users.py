"""
===============================================================================
TARJETA CRC — identity/users.py
===============================================================================

Módulo:
    Modelo de Identidad (User)

Responsabilidades:
    - Definir el dataclass User que persiste el Credential Store.
    - Definir CountryCode (países operativos de los ledgers).
    - Normalizar email (case-insensitive) en un único lugar.

Colaboradores:
    - identity/roles.py: UserRole / ModuleScope.
    - identity/principal.py: proyecta User -> Principal.
    - infrastructure/repositories/*/user.py: mapean User <-> almacenamiento.

Notas:
    - Solo "shapes" de datos; la política vive en identity/authorization.py.
    - Nunca se borra un usuario: se desactiva (is_active=False).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping
from uuid import UUID

from .roles import DEFAULT_ROLE, TOP_ROLE, ModuleScope, UserRole, is_admin_for_module


class CountryCode(str, Enum):
    """Países soportados por los módulos."""

    ET = "ET"
    KE = "KE"
    SN = "SN"
    UG = "UG"
    TZ = "TZ"
    RW = "RW"
    BI = "BI"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True, slots=True)
class User:
    """Identidad persistida (nunca se serializa password_hash hacia afuera)."""

    id: UUID
    email: str
    password_hash: str
    role: UserRole = DEFAULT_ROLE
    is_active: bool = True
    name: str = ""
    modules: frozenset[ModuleScope] = field(default_factory=frozenset)
    resource_assignments: Mapping[str, frozenset[str]] = field(default_factory=dict)
    country_code: CountryCode | None = None
    phone_number: str | None = None
    created_at: datetime | None = None
    last_login: datetime | None = None

    def can_access_module(self, module: ModuleScope) -> bool:
        """Mismo criterio que los pasos 2-3 de authorize() (perfil / permisos)."""
        if self.role == TOP_ROLE or is_admin_for_module(self.role, module):
            return True
        return module in self.modules


def normalize_assignments(
    assignments: Mapping[str, object] | None,
) -> dict[str, frozenset[str]]:
    """
    Normaliza asignaciones de recursos: {"cycle": [..], "region": [..]}.

    Claves en minúscula; ids como strings sin espacios; vacíos descartados.
    """
    normalized: dict[str, frozenset[str]] = {}
    for kind, ids in (assignments or {}).items():
        values = frozenset(
            str(value).strip() for value in (ids or ()) if str(value).strip()
        )
        if values:
            normalized[str(kind).strip().lower()] = values
    return normalized
