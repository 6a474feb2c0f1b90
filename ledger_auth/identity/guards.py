"""
===============================================================================
TARJETA CRC — identity/guards.py
===============================================================================

Módulo:
    Resource-Scoped Guards

Responsabilidades:
    - Construir predicados (principal, request) -> bool para restringir un rol
      a los recursos asignados (ciclos operativos, regiones, ...).
    - Extraer el id del recurso desde path / body / query.

Colaboradores:
    - identity.authorization: evalúa el guard en el último paso.
    - identity.roles.is_admin_for_module: bypass de admins.
    - api.module_routes: ciclos y regiones WFP.

Reglas:
    - Admin del módulo (o admin global) -> siempre pasa.
    - Sin id de recurso en el request -> no aplica (pasa).
    - Con id -> debe estar en principal.resource_assignments[recurso].
===============================================================================
"""

from __future__ import annotations

from typing import Any, Iterable

from .authorization import RequestView, ResourceGuard
from .principal import Principal
from .roles import ModuleScope, is_admin_for_module

RESOURCE_CYCLE = "cycle"
RESOURCE_REGION = "region"

_DEFAULT_SOURCES = ("path", "body", "query")


def extract_resource_id(
    request: RequestView, param: str, sources: Iterable[str] = _DEFAULT_SOURCES
) -> str | None:
    """Primer valor no vacío de `param` en las fuentes indicadas (en orden)."""
    by_source = {
        "path": request.path_params,
        "body": request.body,
        "query": request.query_params,
    }
    for source in sources:
        value: Any = by_source[source].get(param)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def assignment_guard(
    resource: str,
    param: str,
    *,
    module: ModuleScope | None = None,
    case_insensitive: bool = False,
    sources: Iterable[str] = _DEFAULT_SOURCES,
) -> ResourceGuard:
    """Guard genérico de asignación de recursos."""
    ordered_sources = tuple(sources)

    def guard(principal: Principal, request: RequestView) -> bool:
        if is_admin_for_module(principal.role, module):
            return True

        resource_id = extract_resource_id(request, param, ordered_sources)
        if resource_id is None:
            return True

        assigned = principal.assigned(resource)
        if case_insensitive:
            return resource_id.lower() in {value.lower() for value in assigned}
        return resource_id in assigned

    guard.__name__ = f"assigned_{resource}_guard"
    return guard


# R: guards del módulo WFP (ciclos por path/body/query; región por query/body).
can_manage_cycle = assignment_guard(
    RESOURCE_CYCLE, "cycle_id", module=ModuleScope.WFP
)
can_view_region = assignment_guard(
    RESOURCE_REGION,
    "region",
    module=ModuleScope.WFP,
    case_insensitive=True,
    sources=("query", "body"),
)
