"""
============================================================
TARJETA CRC
============================================================
Class: ledger_auth.infrastructure.repositories (Package exports)

Responsibilities:
- Exponer implementaciones concretas de los stores (Postgres e InMemory)
  en un único punto de importación.

Collaborators:
- Repositorios Postgres (SQL crudo)
- Repositorios InMemory (tests / entornos sin DATABASE_URL)
============================================================
"""

from .in_memory import (
    InMemoryAuditEventRepository,
    InMemoryCredentialRepository,
    InMemoryUserRepository,
)
from .postgres import (
    PostgresAuditEventRepository,
    PostgresCredentialRepository,
    PostgresUserRepository,
)

__all__ = [
    # Postgres
    "PostgresUserRepository",
    "PostgresCredentialRepository",
    "PostgresAuditEventRepository",
    # In-memory
    "InMemoryUserRepository",
    "InMemoryCredentialRepository",
    "InMemoryAuditEventRepository",
]
