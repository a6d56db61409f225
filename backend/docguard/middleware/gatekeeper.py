"""
DocGuard Backend - Gatekeeper Middleware
==========================================

What:  Single entry point every request passes through before the routes.
Why:   Admission, header hardening and auditing have to agree on one view
       of the request, including requests the routes blow up on.
How:   Resolves the client identity, applies the rate limiter to API routes,
       forwards admitted requests, hardens the response headers and writes
       the access audit record.
Who:   Registered by create_app() with the app's limiter, audit logger and
       header policy.

Per-request flow:
    identity -> [API route?] rate limit check
                  ├── limited  -> audit "rate_limit_exceeded" -> 429 (REJECTED)
                  └── admitted -> call_next -> headers -> audit -> response (FORWARDED)
                                   └── raised -> audit "<route>_error" -> 500

A rejected request never reaches the downstream handler. An exception that
escapes the routes is turned into the generic 500 body here, so the error
response is hardened and audited like any other. Header and audit failures
are logged and absorbed; only the admission decision changes the outcome of
a request.
"""

import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import ASGIApp

from docguard.security.audit import AuditLogger, RiskLevel
from docguard.security.headers import SecurityHeaderPolicy
from docguard.security.identity import ClientIdentity, extract_identity
from docguard.security.rate_limiter import RateLimiter, RateLimitStatus

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded"
INTERNAL_ERROR_MESSAGE = "An unexpected error occurred. Please try again or contact support."


def server_error_response(request_id: str) -> JSONResponse:
    """Generic 500 body; the exception itself only goes to the log."""
    response = JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": INTERNAL_ERROR_MESSAGE,
            "details": None,
            "request_id": request_id,
        },
    )
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


class GatekeeperMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting, security headers and access auditing for every request.

    Args:
        rate_limiter:  Shared RateLimiter instance.
        audit_logger:  Shared AuditLogger instance.
        header_policy: Header policy applied to every response.
        api_prefix:    Paths starting with this are rate limited and always
                       audited.
        max_requests:  Requests admitted per identifier per window.
        window_ms:     Window length in milliseconds.
    """

    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: RateLimiter,
        audit_logger: AuditLogger,
        header_policy: Optional[SecurityHeaderPolicy] = None,
        api_prefix: str = "/api/",
        max_requests: int = 50,
        window_ms: int = 60_000,
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.audit_logger = audit_logger
        self.header_policy = header_policy or SecurityHeaderPolicy()
        self.api_prefix = api_prefix
        self.max_requests = max_requests
        self.window_ms = window_ms

    def is_api_path(self, path: str) -> bool:
        return path.startswith(self.api_prefix)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        identity = extract_identity(request)
        request.state.identity = identity
        path = request.url.path
        is_api = self.is_api_path(path)

        rate_status: Optional[RateLimitStatus] = None
        if is_api:
            identifier = f"{identity.source_ip}:{path}"
            if self.rate_limiter.is_rate_limited(identifier, self.max_requests, self.window_ms):
                return self._reject(identity, identifier, path)
            rate_status = self.rate_limiter.status(identifier, self.max_requests)

        try:
            response = await call_next(request)
        except Exception as exc:
            response = self._fail(request, identity, path, exc)

        self._harden(response, rate_status)

        if request.method != "GET" or is_api:
            self._audit(identity, f"{request.method}_{path}", RiskLevel.LOW)

        return response

    def error_action(self, path: str) -> str:
        """`upload_error` for /api/upload/..., `server_error` off the API."""
        if not self.is_api_path(path):
            return "server_error"
        route = path[len(self.api_prefix):].split("/", 1)[0]
        return f"{route}_error" if route else "server_error"

    def _fail(
        self, request: Request, identity: ClientIdentity, path: str, exc: Exception
    ) -> Response:
        # RequestIDMiddleware has already reset its ContextVar by the time the
        # exception gets here; request.state shares the scope and still has it
        rid = getattr(request.state, "request_id", "")
        logger.error("[%s] Unexpected error on %s %s: %s", rid, request.method, path, exc, exc_info=exc)
        self._audit(
            identity,
            self.error_action(path),
            RiskLevel.MEDIUM,
            {"error": str(exc) or type(exc).__name__},
        )
        return server_error_response(rid)

    def _reject(self, identity: ClientIdentity, identifier: str, path: str) -> Response:
        logger.warning("Rate limit exceeded for %s", identifier)
        self._audit(identity, "rate_limit_exceeded", RiskLevel.MEDIUM, {"path": path})

        status = self.rate_limiter.status(identifier, self.max_requests)
        response = PlainTextResponse(
            RATE_LIMIT_MESSAGE,
            status_code=429,
            headers={"Retry-After": str(status.retry_after_seconds)},
        )
        self._harden(response, None)
        return response

    def _harden(self, response: Response, rate_status: Optional[RateLimitStatus]) -> None:
        try:
            self.header_policy.apply(response.headers, rate_status)
        except Exception:
            logger.exception("Failed to apply security headers")

    def _audit(
        self,
        identity: ClientIdentity,
        action: str,
        risk_level: RiskLevel,
        details: Optional[dict] = None,
    ) -> None:
        # AuditLogger.log already absorbs its own failures; this guards
        # against a replaced logger that does not
        try:
            self.audit_logger.log(
                action=action,
                source_ip=identity.source_ip,
                user_agent=identity.user_agent,
                risk_level=risk_level,
                details=details,
            )
        except Exception:
            logger.exception("Audit logging failed for %s", action)
