"""
===============================================================================
MÓDULO: Logger estructurado (JSON) con contexto de request
===============================================================================

Objetivo
--------
Loguear eventos de autenticación/autorización de forma parseable y
correlacionable, sin filtrar nunca tokens, passwords ni secretos JWT.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  JSONFormatter + setup_logger()

Responsabilidades:
  - Formatear logs como JSON (una línea por evento)
  - Enriquecer con contexto (request_id, method, path, user_id)
  - Redactar campos sensibles y limitar tamaños

Colaboradores:
  - ledger_auth/context.py (ContextVars)
  - crosscutting/config.py (nivel y formato)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

LOGGER_NAME = "ledger-auth"

# Atributos estándar de LogRecord: no se copian como "extra".
_RESERVED_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}

REDACTED = "***REDACTADO***"


class _Redactor:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      _Redactor

    Responsabilidades:
      - Redactar claves sensibles (tokens, passwords, secretos)
      - Recortar strings enormes y estructuras profundas

    Colaboradores:
      - JSONFormatter
    ----------------------------------------------------------------------------
    """

    SENSITIVE_KEYS = frozenset(
        {
            "password",
            "new_password",
            "current_password",
            "password_hash",
            "secret",
            "token",
            "access_token",
            "refresh_token",
            "reset_token",
            "authorization",
            "jwt_access_secret",
            "jwt_refresh_secret",
            "jwt_reset_secret",
            "jwt_verify_secret",
            "database_url",
        }
    )

    def __init__(self, max_str: int = 4_000, max_depth: int = 4):
        self._max_str = max_str
        self._max_depth = max_depth

    def sanitize(self, value: Any, *, depth: int = 0, key: str | None = None) -> Any:
        if key and key.lower() in self.SENSITIVE_KEYS:
            return REDACTED
        if depth > self._max_depth:
            return "***TRUNCADO***"

        if isinstance(value, str):
            if len(value) <= self._max_str:
                return value
            return value[: self._max_str] + "…(truncado)"
        if isinstance(value, (bytes, bytearray)):
            return f"<bytes {len(value)}B>"
        if isinstance(value, dict):
            return {
                str(k): self.sanitize(v, depth=depth + 1, key=str(k))
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.sanitize(v, depth=depth + 1, key=key) for v in value]
        if value is None or isinstance(value, (int, float, bool)):
            return value
        return str(value)


class JSONFormatter(logging.Formatter):
    """LogRecord -> JSON con contexto de request y stacktrace serializable."""

    def __init__(self):
        super().__init__()
        self._redactor = _Redactor()

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "pid": os.getpid(),
        }

        from ..context import get_context_dict

        payload.update(get_context_dict())

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            payload[key] = self._redactor.sanitize(value, key=key)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(
            payload, ensure_ascii=False, default=str, separators=(",", ":")
        )


def setup_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """
    Crea y configura el logger del servicio.

    - Evita duplicar handlers en reimport
    - Respeta log_level / log_json de Settings
    """
    from .config import get_settings

    settings = get_settings()
    log = logging.getLogger(name)
    log.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if settings.log_json
            else logging.Formatter("%(levelname)s %(name)s %(message)s")
        )
        log.addHandler(handler)

    return log


# Instancia global (import-friendly)
logger = setup_logger()
