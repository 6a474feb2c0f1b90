"""
===============================================================================
CRC CARD — infrastructure/db/errors.py
===============================================================================

Componente:
  Errores tipados del pool / conectividad

Responsabilidades:
  - Semántica clara: "no inicializado", "ya inicializado", "sin conexión".
  - Heredar de DatabaseError: cualquier falla de storage termina en
    500 DATABASE_ERROR y nunca se confunde con un 401/403.
===============================================================================
"""

from ...crosscutting.exceptions import DatabaseError


class DatabasePoolError(DatabaseError):
    """Base de errores de pool de base de datos."""


class PoolAlreadyInitializedError(DatabasePoolError):
    """Se intentó inicializar el pool más de una vez."""


class PoolNotInitializedError(DatabasePoolError):
    """Se intentó usar el pool sin init_pool()."""


class DatabaseConnectionError(DatabasePoolError):
    """Error al adquirir o validar una conexión del pool."""
