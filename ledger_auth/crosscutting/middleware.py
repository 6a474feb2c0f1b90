# ledger_auth/crosscutting/middleware.py
"""
===============================================================================
MÓDULO: Middleware HTTP de contexto de request
===============================================================================

Objetivo
--------
- Generar/propagar X-Request-Id
- Setear contextvars (method/path) para los logs de auth
- Log y métricas por request

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  RequestContextMiddleware

Responsabilidades:
  - Observabilidad (request_id + logs + métricas)
  - Garantizar clear_context() para evitar leaks entre requests

Colaboradores:
  - ledger_auth/context.py
  - crosscutting/metrics.py
  - crosscutting/logger.py
===============================================================================
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..context import clear_context, set_request_context
from .logger import logger
from .metrics import record_request_metrics

REQUEST_ID_HEADER = "X-Request-Id"
_MAX_REQUEST_ID_LENGTH = 128


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id + contexto de logs + métricas HTTP."""

    _QUIET_PATHS = {"/healthz", "/metrics"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        request_id = (
            incoming
            if incoming and len(incoming) <= _MAX_REQUEST_ID_LENGTH
            else str(uuid.uuid4())
        )

        set_request_context(
            request_id=request_id, method=request.method, path=request.url.path
        )
        request.state.request_id = request_id

        start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        except Exception:
            logger.exception(
                "request falló",
                extra={
                    "status_code": 500,
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            raise
        finally:
            latency = time.perf_counter() - start
            record_request_metrics(
                endpoint=request.url.path,
                method=request.method,
                status_code=status_code,
                latency_seconds=latency,
            )
            if request.url.path not in self._QUIET_PATHS:
                logger.info(
                    "request completado",
                    extra={
                        "status_code": status_code,
                        "latency_ms": round(latency * 1000, 2),
                    },
                )
            clear_context()
