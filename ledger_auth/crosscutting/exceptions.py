"""
===============================================================================
MÓDULO: Excepciones tipadas de infraestructura (errores internos)
===============================================================================

Objetivo
--------
Errores internos coherentes, con:
- error_code estable
- error_id para correlación con logs
- message "humana" (sin filtrar secretos)

Los errores de autenticación/autorización NO viven acá: ver identity/errors.py.
Un DatabaseError nunca se traduce a 401/403 (un store caído no significa
credenciales inválidas).

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  LedgerAuthError + subclases

Responsabilidades:
  - Estandarizar errores internos que luego se mapean a HTTP 5xx
  - Generar error_id para rastreo

Colaboradores:
  - api/exception_handlers.py (mapea a AppHTTPException)
  - infrastructure/repositories/postgres/* (lanzan DatabaseError)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Estructura mínima para responder errores internos."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class LedgerAuthError(Exception):
    """Base para errores internos del servicio."""

    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class DatabaseError(LedgerAuthError):
    """Errores del store de identidades/credenciales (conexión, query, pool)."""

    error_code: str = "DATABASE_ERROR"


class ConfigurationError(LedgerAuthError):
    """Configuración inválida detectada en runtime (p.ej. pool sin DATABASE_URL)."""

    error_code: str = "CONFIGURATION_ERROR"
