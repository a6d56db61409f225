"""
DocGuard Backend - Security Header Policy
===========================================

What:  The hardening headers attached to every outbound response, plus the
       rate-limit disclosure headers for API routes.
Why:   Browsers only enforce framing, sniffing and script-source rules the
       server asks for; leaving one off a single response leaves that page open.
How:   A static, ordered mapping. The only per-request input is the caller's
       remaining rate-limit budget.
Who:   GatekeeperMiddleware applies it to forwarded and rejected responses.

Server-identifying headers (Server, X-Powered-By) are removed from the
response. uvicorn adds its own `server` header below the ASGI app, so
main.run() also starts uvicorn with server_header=False.
"""

from typing import Dict, Optional

from starlette.datastructures import MutableHeaders

from docguard.security.rate_limiter import RateLimitStatus

CSP_DIRECTIVES = (
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' 'unsafe-eval'",
    "style-src 'self' 'unsafe-inline'",
    "img-src 'self' data: blob:",
    "font-src 'self'",
    "connect-src 'self'",
    "media-src 'self'",
    "object-src 'none'",
    "base-uri 'self'",
    "form-action 'self'",
    "frame-ancestors 'none'",
    "upgrade-insecure-requests",
)

CSP_HEADER = "; ".join(CSP_DIRECTIVES)

HSTS_MAX_AGE = 31_536_000  # one year

STATIC_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": CSP_HEADER,
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Strict-Transport-Security": f"max-age={HSTS_MAX_AGE}; includeSubDomains",
}

STRIPPED_HEADERS = ("Server", "X-Powered-By")


class SecurityHeaderPolicy:
    """Computes and applies the response header set."""

    def headers(self, rate_limit: Optional[RateLimitStatus] = None) -> Dict[str, str]:
        """
        Ordered header set for one response.

        Args:
            rate_limit: Budget of the request's rate window. When given, the
                        X-RateLimit-Limit / X-RateLimit-Remaining pair is
                        appended.
        """
        result = dict(STATIC_HEADERS)
        if rate_limit is not None:
            result["X-RateLimit-Limit"] = str(rate_limit.limit)
            result["X-RateLimit-Remaining"] = str(max(0, rate_limit.remaining))
        return result

    def apply(
        self,
        headers: MutableHeaders,
        rate_limit: Optional[RateLimitStatus] = None,
    ) -> None:
        """Overwrite the policy headers on `headers` and strip server identity."""
        for name, value in self.headers(rate_limit).items():
            headers[name] = value
        for name in STRIPPED_HEADERS:
            if name in headers:
                del headers[name]
