"""
===============================================================================
TARJETA CRC — domain/__init__.py
===============================================================================

Módulo:
    Exportaciones de la Capa de Dominio

Responsabilidades:
    - Centralizar exports (credenciales, auditoría, puertos de persistencia).

Reglas:
    - Solo re-exporta contratos/entidades del dominio.
    - No importar infraestructura aquí.
===============================================================================
"""

from .audit import AuditAction, AuditEvent
from .entities import SINGLE_USE_KINDS, Credential, TokenKind
from .repositories import (
    AuditEventRepository,
    CredentialRepository,
    UserRepository,
)

__all__ = [
    # Entities
    "Credential",
    "TokenKind",
    "SINGLE_USE_KINDS",
    "AuditEvent",
    "AuditAction",
    # Repository Interfaces (Ports)
    "UserRepository",
    "CredentialRepository",
    "AuditEventRepository",
]
