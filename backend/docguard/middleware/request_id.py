"""
DocGuard Backend - Request ID Middleware
==========================================

What:  Assigns a correlation ID to each request and echoes it in the response.
Why:   Lets a client quote one ID that matches the access line, the error
       body and any server-side traceback for the same request.
How:   Uses the client's X-Request-ID when present, otherwise a short UUID.
       The ID lives in a ContextVar for loggers and exception handlers and on
       request.state for route handlers.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

MAX_CLIENT_ID_LENGTH = 64


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags every request/response pair with X-Request-ID."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get("X-Request-ID", "").strip()
        rid = supplied[:MAX_CLIENT_ID_LENGTH] or new_request_id()

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
