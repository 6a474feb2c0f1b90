# ledger_auth/crosscutting/error_responses.py
"""
===============================================================================
MÓDULO: Respuestas de error estándar (RFC 7807 / Problem Details)
===============================================================================

Objetivo
--------
Uniformar TODOS los errores HTTP para que:
- El cliente pueda manejar por "code" (p.ej. reintentar login ante 401,
  no reintentar ante 403)
- El backend pueda correlacionar por request_id / error_id

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  AppHTTPException + handlers

Responsabilidades:
  - Definir catálogo de códigos de error (ErrorCode), incluyendo los kinds
    de autenticación/autorización
  - Construir payload RFC7807 (ErrorDetail)
  - Proveer factories de errores frecuentes (incl. from_auth_error)
  - Proveer handler FastAPI que devuelve application/problem+json

Colaboradores:
  - identity/errors.py (AuthError -> AppHTTPException)
  - api/exception_handlers.py (registro de handlers)
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..identity.errors import AuthError


class ErrorCode(str, Enum):
    # 4xx (autenticación / autorización)
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"
    TOKEN_REPLAY = "TOKEN_REPLAY"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PRIVILEGE = "INSUFFICIENT_PRIVILEGE"
    MODULE_NOT_ACCESSIBLE = "MODULE_NOT_ACCESSIBLE"
    RESOURCE_NOT_ASSIGNED = "RESOURCE_NOT_ASSIGNED"

    # 4xx (genéricos)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # 5xx
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


class ErrorDetail(BaseModel):
    """
    Modelo RFC 7807 (Problem Details).

    Campos extra:
    - code: error code estable para clientes
    - errors: lista opcional de detalles (ej: [{"reason":"revoked"}])
    """

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    code: ErrorCode
    instance: str | None = None
    errors: list[dict[str, Any]] | None = None


PROBLEM_JSON_MEDIA_TYPE = "application/problem+json"

_OPENAPI_ERROR_CONTENT = {
    PROBLEM_JSON_MEDIA_TYPE: {"schema": {"$ref": "#/components/schemas/ErrorDetail"}}
}


def _problem(description: str) -> dict[str, Any]:
    return {
        "description": f"{description} (RFC7807)",
        "model": ErrorDetail,
        "content": _OPENAPI_ERROR_CONTENT,
    }


OPENAPI_ERROR_RESPONSES = {
    "401": _problem("Unauthenticated / invalid, expired or replayed token"),
    "403": _problem("Forbidden / insufficient privilege / module or resource denied"),
    "404": _problem("Not Found"),
    "409": _problem("Conflict"),
    "422": _problem("Validation Error"),
    "default": _problem("Error"),
}


class AppHTTPException(HTTPException):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      AppHTTPException

    Responsabilidades:
      - Adjuntar un ErrorCode estable
      - Transportar detalles (errors[]) como reason o campos inválidos
      - Permitir headers custom (WWW-Authenticate)

    Colaboradores:
      - app_exception_handler()
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        errors: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code
        self.errors = errors


# ---------------------------------------------------------------------------
# Factories de error (helpers)
# ---------------------------------------------------------------------------
def validation_error(
    detail: str, errors: list[dict[str, Any]] | None = None
) -> AppHTTPException:
    return AppHTTPException(422, ErrorCode.VALIDATION_ERROR, detail, errors)


def not_found(resource: str, identifier: str) -> AppHTTPException:
    return AppHTTPException(
        404, ErrorCode.NOT_FOUND, f"{resource} '{identifier}' no encontrado"
    )


def conflict(detail: str) -> AppHTTPException:
    return AppHTTPException(409, ErrorCode.CONFLICT, detail)


def unauthorized(detail: str = "Autenticación requerida") -> AppHTTPException:
    return AppHTTPException(
        401,
        ErrorCode.UNAUTHENTICATED,
        detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden(detail: str = "Acceso denegado") -> AppHTTPException:
    return AppHTTPException(403, ErrorCode.FORBIDDEN, detail)


def internal_error(detail: str = "Ocurrió un error inesperado") -> AppHTTPException:
    return AppHTTPException(500, ErrorCode.INTERNAL_ERROR, detail)


def database_error(
    detail: str = "Falla en operación de base de datos",
) -> AppHTTPException:
    return AppHTTPException(500, ErrorCode.DATABASE_ERROR, detail)


def from_auth_error(exc: AuthError) -> AppHTTPException:
    """AuthError (dominio) -> AppHTTPException (401/403 con reason)."""
    errors = [{"reason": exc.reason.value}] if exc.reason else None
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return AppHTTPException(
        exc.status_code,
        ErrorCode(exc.kind.value),
        exc.message,
        errors=errors,
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Handler FastAPI
# ---------------------------------------------------------------------------
async def app_exception_handler(
    request: Request, exc: AppHTTPException
) -> JSONResponse:
    """
    Handler para AppHTTPException.

    Incluye instance (URL), request_id y propaga headers opcionales.
    """
    request_id = getattr(request.state, "request_id", None)

    errors = exc.errors or []
    if request_id:
        errors = [*errors, {"request_id": request_id}]

    error = ErrorDetail(
        type=f"about:blank/{exc.code.value.lower()}",
        title=exc.code.value.replace("_", " ").title(),
        status=exc.status_code,
        detail=str(exc.detail),
        code=exc.code,
        instance=str(request.url),
        errors=errors or None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error.model_dump(mode="json", exclude_none=True),
        headers=exc.headers,
        media_type=PROBLEM_JSON_MEDIA_TYPE,
    )
