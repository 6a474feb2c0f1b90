"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Build the FastAPI application (title, version, lifespan)
  - Configure middleware (security headers, request context, CORS)
  - Mount auth, admin and module routers under the API prefix
  - Expose health check and Prometheus metrics endpoints
  - Register the RFC 7807 exception handlers

Collaborators:
  - crosscutting.config.get_settings: prefix, CORS, pool sizing
  - crosscutting.middleware.RequestContextMiddleware: request id + logs
  - crosscutting.security.SecurityHeadersMiddleware: hardening headers
  - infrastructure.db.pool: init/close the PostgreSQL pool
  - api.auth_routes / api.admin_routes / api.module_routes

Notes:
  - The pool only opens when DATABASE_URL is set and the env is not test.
  - Middleware order matters: SecurityHeaders wraps RequestContext wraps CORS.
  - /healthz follows the Kubernetes convention; it never requires a token.
  - /metrics requires system.settings unless METRICS_REQUIRE_AUTH=0.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from ..crosscutting.middleware import RequestContextMiddleware
from ..crosscutting.security import SecurityHeadersMiddleware
from ..identity.dependencies import require_metrics_permission
from ..infrastructure.db.pool import close_pool, get_pool, init_pool
from .admin_routes import router as admin_router
from .auth_routes import router as auth_router
from .exception_handlers import register_exception_handlers
from .module_routes import dube_router, wfp_router


def _uses_database() -> bool:
    settings = get_settings()
    return bool(settings.database_url.strip()) and not settings.is_test()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown. Settings are validated when first loaded."""
    settings = get_settings()

    if _uses_database():
        init_pool(
            database_url=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )

    logger.info(
        "ledger-auth API starting up",
        extra={
            "app_env": settings.app_env,
            "storage": "postgres" if _uses_database() else "memory",
            "access_ttl_minutes": settings.jwt_access_ttl_minutes,
            "refresh_ttl_days": settings.jwt_refresh_ttl_days,
        },
    )
    try:
        yield
    finally:
        close_pool()
        logger.info("ledger-auth API shutting down")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Ledger Auth API",
        version="1.0.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "auth", "description": "Login, refresh and session management"},
            {"name": "admin", "description": "Identity administration (user.manage)"},
            {"name": "wfp", "description": "WFP module (module + role scoped)"},
            {"name": "dube", "description": "DUBE module (module + role scoped)"},
        ],
    )

    # R: last added = outermost.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-Id"],
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        SecurityHeadersMiddleware, no_store_prefix=f"{settings.api_prefix}/auth"
    )

    prefix = settings.api_prefix
    app.include_router(auth_router, prefix=f"{prefix}/auth")
    app.include_router(admin_router, prefix=f"{prefix}/admin")
    app.include_router(wfp_router, prefix=prefix)
    app.include_router(dube_router, prefix=prefix)

    register_exception_handlers(app)

    @app.get("/healthz", tags=["health"])
    def healthz(request: Request):
        """
        Liveness + storage status.

        db: "connected" | "disconnected" | "memory"
        """
        db_status = "memory"
        if _uses_database():
            db_status = "disconnected"
            try:
                with get_pool().connection() as conn:
                    conn.execute("SELECT 1")
                db_status = "connected"
            except Exception as exc:
                logger.warning("Health check: DB unavailable", extra={"error": str(exc)})

        return {
            "ok": db_status != "disconnected",
            "db": db_status,
            "request_id": getattr(request.state, "request_id", None),
        }

    @app.get("/metrics", tags=["health"])
    def metrics(_auth: None = Depends(require_metrics_permission())):
        """Prometheus text format (system.settings salvo METRICS_REQUIRE_AUTH=0)."""
        body, content_type = get_metrics_response()
        return Response(content=body, media_type=content_type)

    return app


app = create_app()
