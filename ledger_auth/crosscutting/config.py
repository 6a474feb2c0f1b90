"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Build the immutable AuthConfig snapshot handed to the token service

Collaborators:
  - api/main.py: reads settings for CORS, prefix and startup validation
  - container.py: reads settings for storage backend and AuthConfig
  - infrastructure/db/pool.py: pool sizing and statement timeout

Constraints:
  - Lives in API/infrastructure layer, NOT in domain/application
  - No business logic, pure configuration

Notes:
  - Uses pydantic-settings for env parsing and validation
  - Singleton via lru_cache
  - Insecure JWT secrets are fatal in production and a warning elsewhere
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_log = logging.getLogger("ledger-auth.config")

# R: Valores que nunca deberían llegar a producción.
INSECURE_SECRETS = frozenset(
    {
        "",
        "dev-secret",
        "dev-access-secret",
        "dev-refresh-secret",
        "dev-reset-secret",
        "dev-verify-secret",
        "changeme",
        "change-me",
        "password",
    }
)
MIN_SECRET_LENGTH = 32


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """
    Immutable token configuration.

    Built once from Settings (or directly in tests) and injected into
    TokenService. Business code never reads the environment.
    """

    access_secret: str
    refresh_secret: str
    reset_secret: str
    verify_secret: str
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    reset_ttl: timedelta = timedelta(minutes=10)
    verify_ttl: timedelta = timedelta(hours=24)
    algorithm: str = "HS256"
    issuer: str = ""


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_env: Application environment (development/test/production)
        log_level: Root log level (default: INFO)
        log_json: Emit JSON logs (default: True)
        database_url: PostgreSQL connection string (empty => in-memory stores)
        allowed_origins: Comma-separated CORS origins
        api_prefix: Prefix for versioned routes (default: /api/v1)
        metrics_require_auth: /metrics requires system.settings (default: True)
        jwt_access_secret: Secret for access tokens
        jwt_refresh_secret: Secret for refresh tokens (must differ from access)
        jwt_reset_secret: Secret for password reset tokens
        jwt_verify_secret: Secret for email verification tokens
        jwt_access_ttl_minutes: Access token TTL (default: 15)
        jwt_refresh_ttl_days: Refresh token TTL (default: 7)
        jwt_reset_ttl_minutes: Reset token TTL (default: 10)
        jwt_verify_ttl_hours: Verify token TTL (default: 24)
        jwt_issuer: Optional `iss` claim
    """

    # Environment
    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # Database
    database_url: str = ""
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_statement_timeout_ms: int = 30000  # 30 seconds
    db_slow_query_seconds: float = 0.25
    db_healthcheck_on_acquire: bool = True

    # HTTP
    allowed_origins: str = "http://localhost:3000"
    api_prefix: str = "/api/v1"
    metrics_require_auth: bool = True

    # Security - JWT
    jwt_access_secret: str = "dev-access-secret"
    jwt_refresh_secret: str = "dev-refresh-secret"
    jwt_reset_secret: str = "dev-reset-secret"
    jwt_verify_secret: str = "dev-verify-secret"
    jwt_access_ttl_minutes: int = 15
    jwt_refresh_ttl_days: int = 7
    jwt_reset_ttl_minutes: int = 10
    jwt_verify_ttl_hours: int = 24
    jwt_issuer: str = "ledger-auth"

    @field_validator(
        "jwt_access_ttl_minutes",
        "jwt_refresh_ttl_days",
        "jwt_reset_ttl_minutes",
        "jwt_verify_ttl_hours",
    )
    @classmethod
    def ttl_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("token TTLs must be greater than 0")
        return v

    @field_validator("api_prefix")
    @classmethod
    def api_prefix_normalized(cls, v: str) -> str:
        prefix = (v or "").strip().rstrip("/")
        if prefix and not prefix.startswith("/"):
            prefix = f"/{prefix}"
        return prefix

    def jwt_config_problems(self) -> list[str]:
        """List insecure JWT settings (empty when the config is safe)."""
        problems: list[str] = []
        secrets = {
            "JWT_ACCESS_SECRET": self.jwt_access_secret,
            "JWT_REFRESH_SECRET": self.jwt_refresh_secret,
            "JWT_RESET_SECRET": self.jwt_reset_secret,
            "JWT_VERIFY_SECRET": self.jwt_verify_secret,
        }
        for name, value in secrets.items():
            secret = (value or "").strip()
            if secret in INSECURE_SECRETS:
                problems.append(f"{name} is not set or is using a default value")
            elif len(secret) < MIN_SECRET_LENGTH:
                problems.append(
                    f"{name} must be at least {MIN_SECRET_LENGTH} characters"
                )
        if self.jwt_access_secret == self.jwt_refresh_secret:
            problems.append("access and refresh tokens are using the same secret")
        return problems

    @model_validator(mode="after")
    def validate_security_requirements(self):
        problems = self.jwt_config_problems()
        if not problems:
            return self
        if self.is_production():
            raise ValueError(f"JWT configuration errors: {', '.join(problems)}")
        # R: fuera de producción solo avisamos (dev/test usan defaults).
        if not self.is_test():
            _log.warning("JWT configuration warnings: %s", "; ".join(problems))
        return self

    def get_allowed_origins_list(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def is_test(self) -> bool:
        return self.app_env.strip().lower() in {"test", "testing", "ci"}

    def auth_config(self) -> AuthConfig:
        """Snapshot inmutable para TokenService."""
        return AuthConfig(
            access_secret=self.jwt_access_secret,
            refresh_secret=self.jwt_refresh_secret,
            reset_secret=self.jwt_reset_secret,
            verify_secret=self.jwt_verify_secret,
            access_ttl=timedelta(minutes=self.jwt_access_ttl_minutes),
            refresh_ttl=timedelta(days=self.jwt_refresh_ttl_days),
            reset_ttl=timedelta(minutes=self.jwt_reset_ttl_minutes),
            verify_ttl=timedelta(hours=self.jwt_verify_ttl_hours),
            issuer=self.jwt_issuer,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid (or insecure in production)
    """
    return Settings()
