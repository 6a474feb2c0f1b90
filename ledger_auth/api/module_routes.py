"""
===============================================================================
TARJETA CRC — ledger_auth/api/module_routes.py (Superficie protegida WFP / DUBE)
===============================================================================

Responsabilidades:
  - Declarar la tabla de endpoints de cada módulo con su requisito
    (roles permitidos + módulo + guard de recurso opcional).
  - Registrar cada endpoint con require_access(...) como dependencia.
  - Responder con el acceso concedido; los handlers de negocio (listados,
    altas de categorías, ciclos, comercios, etc.) son colaboradores externos.

Colaboradores:
  - identity.dependencies.require_access
  - identity.guards: can_manage_cycle / can_view_region

Notas:
  - Los paths conservan el contrato histórico de los clientes (*.php).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from ..identity.authorization import ResourceGuard
from ..identity.dependencies import require_access
from ..identity.guards import can_manage_cycle, can_view_region
from ..identity.principal import Principal
from ..identity.roles import ModuleScope, UserRole

_R = UserRole


@dataclass(frozen=True, slots=True)
class ModuleEndpoint:
    method: str
    path: str
    operation: str
    roles: tuple[UserRole, ...]
    guard: ResourceGuard | None = None


WFP_ENDPOINTS: tuple[ModuleEndpoint, ...] = (
    ModuleEndpoint("GET", "/getcategories.php", "list_categories",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER)),
    ModuleEndpoint("POST", "/registercategory.php", "register_category",
                   (_R.WFP_ADMIN,)),
    ModuleEndpoint("GET", "/getbeneficiarylist.php", "list_beneficiaries",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER, _R.WFP_HEALTH_OFFICER)),
    # R: umbral = rango mínimo listado (60), así que wfp_viewer (70) también pasa.
    ModuleEndpoint("POST", "/registerbeneficiary.php", "register_beneficiary",
                   (_R.WFP_ADMIN, _R.WFP_HEALTH_OFFICER)),
    ModuleEndpoint("GET", "/getvoucherslist.php", "list_vouchers",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER)),
    ModuleEndpoint("POST", "/registervoucher.php", "register_voucher",
                   (_R.WFP_ADMIN,)),
    ModuleEndpoint("GET", "/getallcycles.php", "list_cycles",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER)),
    ModuleEndpoint("POST", "/registerCycle", "register_cycle",
                   (_R.WFP_ADMIN,)),
    ModuleEndpoint("GET", "/getonboardingagentlist.php", "list_onboarding_agents",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER)),
    ModuleEndpoint("GET", "/gethealthofficerlist.php", "list_health_officers",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER, _R.WFP_HEALTH_OFFICER)),
    # Endpoints acotados por asignación de recurso.
    ModuleEndpoint("GET", "/cycles/{cycle_id}", "get_cycle",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER, _R.WFP_HEALTH_OFFICER),
                   can_manage_cycle),
    ModuleEndpoint("POST", "/cycles/{cycle_id}/beneficiaries", "enroll_beneficiary",
                   (_R.WFP_ADMIN, _R.WFP_HEALTH_OFFICER),
                   can_manage_cycle),
    ModuleEndpoint("GET", "/regions/report", "region_report",
                   (_R.WFP_ADMIN, _R.WFP_VIEWER, _R.WFP_HEALTH_OFFICER),
                   can_view_region),
)

DUBE_ENDPOINTS: tuple[ModuleEndpoint, ...] = (
    ModuleEndpoint("GET", "/international/getmerchantlist.php", "list_merchants",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("GET", "/international/getcustomerlist.php", "list_customers",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("GET", "/international/getallinvoices.php", "list_invoices",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("POST", "/international/registerproject.php", "register_project",
                   (_R.DUBE_ADMIN,)),
    ModuleEndpoint("GET", "/international/getprojectlist.php", "list_projects",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("GET", "/international/getsupplierlist.php", "list_suppliers",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("POST", "/international/registersupplier.php", "register_supplier",
                   (_R.DUBE_ADMIN,)),
    ModuleEndpoint("POST", "/international/customerselfregistration.php",
                   "register_customer", (_R.DUBE_ADMIN, _R.DUBE_FIELD_AGENT)),
    ModuleEndpoint("GET", "/international/gettotals.php", "get_totals",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("GET", "/gettopuphistory.php", "topup_history",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("POST", "/international/changephonenumber.php",
                   "change_phone_number", (_R.DUBE_ADMIN,)),
    ModuleEndpoint("POST", "/changename.php", "change_name", (_R.DUBE_ADMIN,)),
    ModuleEndpoint("GET", "/international/getreceiptlist.php", "list_receipts",
                   (_R.DUBE_ADMIN, _R.DUBE_VIEWER)),
    ModuleEndpoint("POST", "/international/updatereceiptstatus.php",
                   "update_receipt_status", (_R.DUBE_ADMIN,)),
)


class AccessGrantedResponse(BaseModel):
    module: ModuleScope
    operation: str
    role: UserRole
    user_id: str


def _handler(module: ModuleScope, endpoint: ModuleEndpoint) -> Callable:
    access = require_access(endpoint.roles, module, endpoint.guard)

    def handler(principal: Principal = Depends(access)) -> AccessGrantedResponse:
        return AccessGrantedResponse(
            module=module,
            operation=endpoint.operation,
            role=principal.role,
            user_id=str(principal.id),
        )

    handler.__name__ = f"{module.value}_{endpoint.operation}"
    return handler


def build_module_router(
    module: ModuleScope, endpoints: tuple[ModuleEndpoint, ...]
) -> APIRouter:
    router = APIRouter(
        prefix=f"/{module.value}",
        tags=[module.value],
        responses=OPENAPI_ERROR_RESPONSES,
    )
    for endpoint in endpoints:
        router.add_api_route(
            endpoint.path,
            _handler(module, endpoint),
            methods=[endpoint.method],
            response_model=AccessGrantedResponse,
            name=f"{module.value}:{endpoint.operation}",
        )
    return router


wfp_router = build_module_router(ModuleScope.WFP, WFP_ENDPOINTS)
dube_router = build_module_router(ModuleScope.DUBE, DUBE_ENDPOINTS)
