"""
===============================================================================
ARCHIVO: crosscutting/metrics.py
===============================================================================

CRC CARD (Módulo)
-------------------------------------------------------------------------------
Nombre:
    Métricas (Prometheus) del servicio de autenticación

Responsabilidades:
    - Definir métricas Prometheus en un registry propio.
    - Proveer funciones pequeñas y estables para registrar eventos.
    - Cuidar cardinalidad (NO user_id, NO tokens, NO ids dinámicos en labels).
    - Exponer helpers para generar la respuesta /metrics.

Colaboradores:
    - crosscutting.middleware: latencia y conteo HTTP.
    - identity.dependencies: decisiones de autorización (allow/deny + kind).
    - identity.tokens: emisión, intercambio, replay y revocación de tokens.
    - infrastructure/db/pool: duración de queries.
===============================================================================
"""

from __future__ import annotations

import re

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_registry = CollectorRegistry()

# ------------------------
# HTTP
# ------------------------
_requests_total = Counter(
    "ledger_auth_requests_total",
    "Total de requests HTTP",
    ["endpoint", "method", "status"],
    registry=_registry,
)

_request_latency = Histogram(
    "ledger_auth_request_latency_seconds",
    "Latencia de requests HTTP (segundos)",
    ["endpoint", "method"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    registry=_registry,
)

# ------------------------
# Autorización / tokens
# ------------------------
_auth_decisions_total = Counter(
    "ledger_auth_decisions_total",
    "Decisiones del gate/motor de autorización",
    ["outcome", "reason"],
    registry=_registry,
)

_token_events_total = Counter(
    "ledger_auth_token_events_total",
    "Eventos del token service (emisión, intercambio, replay, revocación)",
    ["event"],
    registry=_registry,
)

# ------------------------
# DB (baja cardinalidad)
# ------------------------
_db_query_duration = Histogram(
    "ledger_auth_db_query_duration_seconds",
    "Duración de queries a la base (segundos)",
    ["kind"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
    registry=_registry,
)


# -----------------------------------------------------------------------------
# API pública (helpers de registro)
# -----------------------------------------------------------------------------


def record_request_metrics(
    endpoint: str,
    method: str,
    status_code: int,
    latency_seconds: float,
) -> None:
    """Registra métricas HTTP (endpoint normalizado, status agrupado)."""
    normalized = _normalize_endpoint(endpoint)
    _requests_total.labels(
        endpoint=normalized, method=method, status=_status_bucket(status_code)
    ).inc()
    _request_latency.labels(endpoint=normalized, method=method).observe(
        latency_seconds
    )


def record_auth_decision(allowed: bool, reason: str | None = None) -> None:
    """reason: AuthErrorKind.value (o "none" si se permitió)."""
    _auth_decisions_total.labels(
        outcome="allow" if allowed else "deny", reason=reason or "none"
    ).inc()


def record_token_event(event: str) -> None:
    _token_events_total.labels(event=event).inc()


def observe_db_query_duration(kind: str, seconds: float) -> None:
    _db_query_duration.labels(kind=kind).observe(seconds)


# -----------------------------------------------------------------------------
# Helpers internos
# -----------------------------------------------------------------------------


def _normalize_endpoint(path: str) -> str:
    """Reemplaza UUIDs e ids numéricos por `{id}` para acotar cardinalidad."""
    path = re.sub(
        r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
        "{id}",
        path,
        flags=re.IGNORECASE,
    )
    path = re.sub(r"/cycles/[^/]+", "/cycles/{cycle_id}", path)
    return re.sub(r"/\d+", "/{id}", path)


def _status_bucket(code: int) -> str:
    """Agrupa status code para baja cardinalidad."""
    if 200 <= code < 300:
        return "2xx"
    if 400 <= code < 500:
        return "4xx"
    if 500 <= code < 600:
        return "5xx"
    return "other"


# -----------------------------------------------------------------------------
# Exposición del endpoint /metrics
# -----------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Genera el body y content-type para /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST
