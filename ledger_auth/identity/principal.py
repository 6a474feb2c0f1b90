"""
===============================================================================
TARJETA CRC — identity/principal.py
===============================================================================

Módulo:
    Principal normalizado del request

Responsabilidades:
    - Representar la identidad autenticada con forma FIJA:
      id + role + modules + resource_assignments (+ email para auditoría).
    - Construirse siempre desde el estado actual del User (no desde claims).

Colaboradores:
    - identity.gate: crea el Principal tras verificar el token.
    - identity.authorization / identity.guards: lo consumen.
    - audit.py: actor/metadata de auditoría.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

from .roles import ModuleScope, UserRole
from .users import User


@dataclass(frozen=True, slots=True)
class Principal:
    """Identidad resuelta por el Authentication Gate."""

    id: UUID
    role: UserRole
    modules: frozenset[ModuleScope] = frozenset()
    resource_assignments: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    email: str = ""

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            role=user.role,
            modules=frozenset(user.modules),
            resource_assignments=MappingProxyType(
                {k: frozenset(v) for k, v in user.resource_assignments.items()}
            ),
            email=user.email,
        )

    def assigned(self, resource: str) -> frozenset[str]:
        """Ids asignados para un tipo de recurso (vacío si no hay)."""
        return self.resource_assignments.get(resource, frozenset())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "email": self.email,
            "role": self.role.value,
            "modules": sorted(m.value for m in self.modules),
            "resource_assignments": {
                k: sorted(v) for k, v in sorted(self.resource_assignments.items())
            },
        }
