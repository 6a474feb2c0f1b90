"""
===============================================================================
TARJETA CRC — ledger_auth/audit.py (Emisión de auditoría)
===============================================================================

Responsabilidades:
  - Construir eventos de auditoría de seguridad (login, logout, replay,
    cambios de rol/módulos, desactivaciones) con formato consistente.
  - Derivar actor y metadata mínima desde el Principal.
  - Persistir vía AuditEventRepository (best-effort: nunca rompe el request).

Colaboradores:
  - domain.audit.AuditEvent
  - domain.repositories.AuditEventRepository
  - identity.principal.Principal
  - crosscutting.logger

Decisiones de seguridad:
  - No guardamos email ni tokens; solo ids, rol y módulos.
  - Metadata se sanitiza a valores serializables.
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from .crosscutting.logger import logger
from .domain.audit import AuditEvent
from .domain.repositories import AuditEventRepository
from .identity.principal import Principal

ANONYMOUS_ACTOR = "anonymous"


def actor_for(principal: Principal | None) -> str:
    """Formato: `user:{uuid}` o `anonymous`."""
    if principal is None:
        return ANONYMOUS_ACTOR
    return f"user:{principal.id}"


def _metadata_from_principal(principal: Principal | None) -> dict[str, Any]:
    if principal is None:
        return {"principal_type": ANONYMOUS_ACTOR}
    return {
        "principal_type": "user",
        "role": principal.role.value,
        "modules": sorted(module.value for module in principal.modules),
    }


def _sanitize(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _sanitize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_sanitize(v) for v in value]
        return sorted(items, key=str) if isinstance(value, (set, frozenset)) else items
    return str(value)


def emit_audit_event(
    repository: AuditEventRepository | None,
    *,
    action: str,
    principal: Principal | None = None,
    actor: str | None = None,
    target_id: UUID | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """
    Emite un evento de auditoría.

    Si repository es None o la escritura falla, se loguea y se sigue.
    """
    if repository is None:
        return

    payload = _sanitize({**_metadata_from_principal(principal), **(metadata or {})})

    event = AuditEvent(
        id=uuid4(),
        actor=actor or actor_for(principal),
        action=action,
        target_id=target_id,
        metadata=payload,
    )

    try:
        repository.record_event(event)
    except Exception as exc:
        logger.warning(
            "Falló la escritura del evento de auditoría",
            extra={"action": action, "error": str(exc)},
        )
