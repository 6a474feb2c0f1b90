"""
===============================================================================
TARJETA CRC — ledger_auth/api/exception_handlers.py (Manejo Centralizado)
===============================================================================

Responsabilidades:
  - Traducir AuthError a 401/403 RFC7807 (code = kind, errors[].reason).
  - Traducir errores de storage a 500 DATABASE_ERROR (nunca a 401/403).
  - Normalizar errores de validación de FastAPI a VALIDATION_ERROR.
  - Fallback: cualquier excepción no tipada -> INTERNAL_ERROR (con logging).

Colaboradores:
  - crosscutting.error_responses: AppHTTPException, ErrorCode, from_auth_error
  - crosscutting.exceptions: LedgerAuthError / DatabaseError
  - identity.errors: AuthError
  - crosscutting.config.get_settings (nivel de detalle en 500)
===============================================================================
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
    from_auth_error,
    validation_error,
)
from ..crosscutting.exceptions import DatabaseError, LedgerAuthError
from ..crosscutting.logger import logger
from ..identity.errors import AuthError


def _request_id_from(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.info(
        "Solicitud rechazada",
        extra={
            "kind": exc.kind.value,
            "reason": exc.reason.value if exc.reason else None,
            "status_code": exc.status_code,
        },
    )
    return await app_exception_handler(request, from_auth_error(exc))


async def _handle_service_error(
    request: Request, *, exc: LedgerAuthError, code: ErrorCode
) -> JSONResponse:
    """Errores internos tipados: siempre 500 con error_id para correlación."""
    request_id = _request_id_from(request)
    logger.error(
        "Error de servicio",
        exc_info=exc.original_error or exc,
        extra={
            "code": code.value,
            "error_id": exc.error_id,
            "request_id": request_id,
        },
    )
    detail = exc.message if not get_settings().is_production() else "Error interno."
    app_exc = AppHTTPException(
        status_code=500,
        code=code,
        detail=detail,
        errors=[{"error_id": exc.error_id}],
    )
    return await app_exception_handler(request, app_exc)


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    return await _handle_service_error(request, exc=exc, code=ErrorCode.DATABASE_ERROR)


async def service_error_handler(
    request: Request, exc: LedgerAuthError
) -> JSONResponse:
    return await _handle_service_error(request, exc=exc, code=ErrorCode.INTERNAL_ERROR)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "msg": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return await app_exception_handler(
        request, validation_error("Request inválido.", errors)
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler para excepciones no tipadas.

    - Log completo (stacktrace).
    - Respuesta genérica (evita filtrar internos en producción).
    """
    logger.error(
        "Excepción no controlada",
        exc_info=exc,
        extra={"request_id": _request_id_from(request)},
    )
    detail = str(exc) if not get_settings().is_production() else "Error interno."
    return await app_exception_handler(
        request, AppHTTPException(500, ErrorCode.INTERNAL_ERROR, detail)
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Registra handlers en la app FastAPI.

    Importante:
      - Starlette resuelve por MRO: DatabaseError gana sobre LedgerAuthError.
      - Exception genérica queda como fallback (ServerErrorMiddleware).
    """
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(LedgerAuthError, service_error_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers"]
