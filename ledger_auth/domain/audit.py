"""
===============================================================================
TARJETA CRC — domain/audit.py
===============================================================================

Módulo:
    Eventos de auditoría de seguridad

Responsabilidades:
    - Definir AuditEvent (actor, acción, objetivo, metadata).
    - Catalogar las acciones auditadas (AuditAction) con prefijos estables
      para filtrar por familia ("auth.", "admin.", "token.").

Colaboradores:
    - domain.repositories.AuditEventRepository: persiste y lista eventos.
    - ledger_auth/audit.py: construye y emite eventos.
    - infrastructure.repositories: mapean hacia/desde storage.

Notas:
    - Append-only: un evento no se edita ni se borra.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID


class AuditAction:
    LOGIN = "auth.login"
    LOGIN_FAILED = "auth.login_failed"
    LOGOUT = "auth.logout"
    LOGOUT_ALL = "auth.logout_all"
    REGISTER = "auth.register"
    PASSWORD_CHANGED = "auth.password_changed"
    PASSWORD_RESET = "auth.password_reset"
    PROFILE_UPDATED = "auth.profile_updated"

    TOKEN_REPLAY = "token.replay"
    TOKENS_CLEANUP = "token.cleanup"

    USER_PROVISIONED = "admin.user_provisioned"
    ACCESS_UPDATED = "admin.access_updated"
    USER_DEACTIVATED = "admin.user_deactivated"
    USER_ACTIVATED = "admin.user_activated"
    RESET_ISSUED = "admin.reset_issued"


@dataclass(slots=True)
class AuditEvent:
    """Evento de auditoría."""

    id: UUID
    actor: str
    action: str
    target_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
