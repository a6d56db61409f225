"""
DocGuard Backend - Request Logging Middleware
===============================================

What:  One access log line per request: method, path, status, duration,
       request ID and client address.
Why:   The audit trail records who did what; this log records how long it
       took and how it ended, which is what latency and error alerts read.
How:   Log level follows the status class (5xx ERROR, 4xx WARNING, else
       INFO) so alerting can key on severity.

Request bodies and uploaded file contents are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from docguard.middleware.request_id import request_id_var
from docguard.security.identity import client_identity

logger = logging.getLogger("docguard.access")

QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("") or getattr(request.state, "request_id", "")
        source_ip = client_identity(request).source_ip
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            source_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": source_ip,
            },
        )
        return response
