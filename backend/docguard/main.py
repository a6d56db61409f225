"""
DocGuard Backend - FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() is the composition root: it builds the rate limiter,
       audit logger, header policy and services once, stores them on
       app.state and hands them to the gatekeeper middleware.
Who:   uvicorn (docguard.main:app), the `docguard` console script, tests.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌────────────┐ ┌────────┐ ┌─────────┐ ┌─────────┐  │
    │  │ Gatekeeper │→│ Req ID │→│ Logging │→│GZip/CORS│  │
    │  └────────────┘ └────────┘ └─────────┘ └─────────┘  │
    │                                                     │
    │  Routes:                                            │
    │  /api/upload  /api/extract  /api/verify  /api/qa    │
    │  /health                                            │
    │                                                     │
    │  Exception Handlers:                                │
    │  ValidationError→400 │ DocGuardError→500 │ *→500    │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, audit drain task, rate-limit sweeper
    Shutdown: stop the sweeper, flush and close the audit trail
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from docguard import __version__
from docguard.config import Settings, settings as default_settings
from docguard.exceptions import DocGuardError
from docguard.middleware.gatekeeper import GatekeeperMiddleware, server_error_response
from docguard.middleware.logging import RequestLoggingMiddleware
from docguard.middleware.request_id import RequestIDMiddleware, request_id_var
from docguard.routes import extract, health, qa, upload, verify
from docguard.security.audit import (
    AuditLogger,
    AuditSink,
    JsonLinesAuditSink,
    LoggingAuditSink,
    RiskLevel,
)
from docguard.security.headers import SecurityHeaderPolicy
from docguard.security.identity import client_identity
from docguard.security.rate_limiter import RateLimiter, RateLimitSweeper
from docguard.services.extraction_service import ExtractionService
from docguard.services.qa_service import QAService
from docguard.services.upload_service import UploadService
from docguard.services.verification_service import VerificationService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once, at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s

    Audit records arrive on `docguard.audit`, alerts on `docguard.security`
    and access lines on `docguard.access`, so a log shipper can route them
    by logger name.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def build_audit_sink(config: Settings) -> AuditSink:
    if config.audit_log_path:
        return JsonLinesAuditSink(config.audit_log_path, attempts=config.audit_retry_attempts)
    return LoggingAuditSink()


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings
    setup_logging(config.log_level)
    logger.info("DocGuard %s starting up", __version__)

    audit_logger: AuditLogger = app.state.audit_logger
    audit_logger.start()

    sweeper = RateLimitSweeper(app.state.rate_limiter, config.rate_limit_cleanup_interval)
    sweeper.start()

    logger.info(
        "Gatekeeper: %d requests / %d ms per client+route under %s",
        config.rate_limit_requests,
        config.rate_limit_window_ms,
        config.api_prefix,
    )

    yield

    logger.info("DocGuard shutting down...")
    await sweeper.stop()
    await audit_logger.shutdown()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _record_failure(request: Request, exc: DocGuardError) -> None:
    if not exc.audit_action:
        return
    try:
        identity = client_identity(request)
        request.app.state.audit_logger.log(
            action=exc.audit_action,
            source_ip=identity.source_ip,
            user_agent=identity.user_agent,
            risk_level=RiskLevel(exc.risk_level),
            details=exc.audit_details,
        )
    except Exception:
        logger.exception("Could not audit %s", exc.audit_action)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map DocGuardError subclasses to JSON error bodies.

    Client errors (4xx) echo the exception context as `details`; server
    errors return a generic message and keep the context in the log. Every
    exception carrying an audit_action is recorded in the audit trail.
    """

    @app.exception_handler(DocGuardError)
    async def handle_docguard_error(request: Request, exc: DocGuardError):
        rid = request_id_var.get("")
        _record_failure(request, exc)

        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
            details = None
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
            details = exc.context or None

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": details,
                "request_id": rid,
            },
        )

    # Route exceptions are converted by GatekeeperMiddleware; this only sees
    # failures raised by the gatekeeper itself
    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = getattr(request.state, "request_id", "") or request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return server_error_response(rid)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[Settings] = None,
    rate_limiter: Optional[RateLimiter] = None,
    audit_logger: Optional[AuditLogger] = None,
    header_policy: Optional[SecurityHeaderPolicy] = None,
    upload_service: Optional[UploadService] = None,
    verification_service: Optional[VerificationService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every stateful component can be injected; whatever is not passed in is
    built from `config` (the process settings by default).
    """
    config = config or default_settings

    app = FastAPI(
        title=config.app_name,
        description="Document upload and verification API behind a rate-limiting, auditing gatekeeper.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.rate_limiter = rate_limiter or RateLimiter()
    app.state.audit_logger = audit_logger or AuditLogger(
        build_audit_sink(config), queue_size=config.audit_queue_size
    )
    app.state.header_policy = header_policy or SecurityHeaderPolicy()
    app.state.upload_service = upload_service or UploadService(
        storage_root=config.storage_root, max_file_size=config.max_file_size
    )
    app.state.extraction_service = ExtractionService()
    app.state.verification_service = verification_service or VerificationService()
    app.state.qa_service = QAService()

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: Gatekeeper → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "Retry-After",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        GatekeeperMiddleware,
        rate_limiter=app.state.rate_limiter,
        audit_logger=app.state.audit_logger,
        header_policy=app.state.header_policy,
        api_prefix=config.api_prefix,
        max_requests=config.rate_limit_requests,
        window_ms=config.rate_limit_window_ms,
    )

    register_exception_handlers(app)

    app.include_router(upload.router)
    app.include_router(extract.router)
    app.include_router(verify.router)
    app.include_router(qa.router)
    app.include_router(health.router)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve `app` with uvicorn's server header disabled."""
    uvicorn.run(
        "docguard.main:app",
        host=default_settings.backend_host,
        port=default_settings.backend_port,
        server_header=default_settings.server_header,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
