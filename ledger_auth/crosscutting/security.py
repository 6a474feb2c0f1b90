"""
===============================================================================
MÓDULO: Security headers (hardening HTTP)
===============================================================================

Objetivo
--------
Agregar headers de seguridad a todas las respuestas de la API de auth:
- CSP (la API solo devuelve JSON; /docs necesita assets inline)
- HSTS (solo producción + HTTPS)
- Anti-clickjacking, anti-sniffing, referrer
- Cache-Control: no-store en rutas que emiten o aceptan credenciales

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  SecurityHeadersMiddleware

Responsabilidades:
  - Añadir headers de hardening sin romper Swagger en dev
  - Evitar que proxies/navegadores cacheen tokens

Colaboradores:
  - crosscutting.config.get_settings
===============================================================================
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

API_CSP = "default-src 'none'; frame-ancestors 'none'"

# Swagger UI (solo fuera de producción) carga scripts/estilos inline y del CDN.
DOCS_CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "img-src 'self' data: https://fastapi.tiangolo.com; "
    "frame-ancestors 'none'"
)

HSTS_VALUE = "max-age=31536000; includeSubDomains"

_DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


def _build_csp(path: str, is_production: bool) -> str:
    if not is_production and path.startswith(_DOCS_PATHS):
        return DOCS_CSP
    return API_CSP


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      SecurityHeadersMiddleware

    Responsabilidades:
      - Agregar headers de seguridad a toda respuesta (incluidos 401/403)
      - HSTS solo si producción y request por HTTPS
      - no-store bajo el prefijo de auth

    Colaboradores:
      - crosscutting.config
    ----------------------------------------------------------------------------
    """

    def __init__(self, app, *, no_store_prefix: str = "/api/v1/auth"):
        super().__init__(app)
        from .config import get_settings

        self._is_production = get_settings().is_production()
        self._no_store_prefix = no_store_prefix

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        path = request.url.path

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["Content-Security-Policy"] = _build_csp(
            path, self._is_production
        )

        if path.startswith(self._no_store_prefix):
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"

        # HSTS: solo si prod + HTTPS (directo o detrás de proxy)
        if self._is_production:
            proto = (
                request.headers.get("x-forwarded-proto") or request.url.scheme or ""
            ).lower()
            if proto == "https":
                response.headers["Strict-Transport-Security"] = HSTS_VALUE

        return response
