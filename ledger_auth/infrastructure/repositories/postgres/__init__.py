"""
PostgreSQL Repository Implementations.

Raw parameterized SQL over the shared psycopg pool.
"""

from .audit_event import PostgresAuditEventRepository
from .credential import PostgresCredentialRepository
from .user import PostgresUserRepository

__all__ = [
    "PostgresUserRepository",
    "PostgresCredentialRepository",
    "PostgresAuditEventRepository",
]
