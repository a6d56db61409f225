"""
DocGuard Backend - Application Configuration
==============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by the application factory and the services.
When:  Loaded once at module import time.

The gatekeeper does not read `settings` directly. The application factory
passes the relevant values in, so tests can build apps with other limits.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults suitable for development. Attributes are
    grouped by concern.
    """

    app_name: str = Field(default="DocGuard API")

    # ── Gatekeeper ────────────────────────────────────────────────────────
    # What: Path prefix that marks rate-limited, always-audited API routes
    api_prefix: str = Field(default="/api/")

    # What: Fixed-window limit applied per client address + route
    rate_limit_requests: int = Field(default=50, ge=0, le=100_000)
    rate_limit_window_ms: int = Field(default=60_000, gt=0, le=86_400_000)

    # What: Seconds between sweeps that drop expired rate windows
    rate_limit_cleanup_interval: float = Field(default=60.0, gt=0, le=3600)

    # ── Audit Trail ───────────────────────────────────────────────────────
    # What: Pending records buffered between the request path and the sink
    audit_queue_size: int = Field(default=1000, ge=1, le=1_000_000)

    # What: JSON-lines file for audit records. Unset = write to the log stream
    audit_log_path: Optional[str] = Field(default=None)

    # What: Write attempts per record before the file sink gives up
    audit_retry_attempts: int = Field(default=3, ge=1, le=10)

    # ── File Storage ──────────────────────────────────────────────────────
    storage_root: str = Field(default="./storage")

    # Default: 10MB = 10 * 1024 * 1024
    max_file_size: int = Field(default=10_485_760, ge=1024, le=52_428_800)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated URLs
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # What: Lets uvicorn emit its own `server` header. Off by default because
    # the security header policy forbids server-identifying headers.
    server_header: bool = Field(default=False)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        """Normalizes the prefix to `/name/` so `/api/x` matches and `/apix` does not."""
        stripped = v.strip("/")
        if not stripped:
            raise ValueError("api_prefix must name a path segment, e.g. '/api/'")
        return f"/{stripped}/"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Singleton instance, imported throughout the application
settings = Settings()
