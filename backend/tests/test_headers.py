"""
DocGuard Backend - Security Header Policy Tests
=================================================
"""

from starlette.datastructures import MutableHeaders

from docguard.security.headers import CSP_HEADER, SecurityHeaderPolicy
from docguard.security.rate_limiter import RateLimitStatus

EXPECTED_CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' 'unsafe-eval'; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: blob:; "
    "font-src 'self'; "
    "connect-src 'self'; "
    "media-src 'self'; "
    "object-src 'none'; "
    "base-uri 'self'; "
    "form-action 'self'; "
    "frame-ancestors 'none'; "
    "upgrade-insecure-requests"
)


def test_csp_value_is_exact():
    assert CSP_HEADER == EXPECTED_CSP


def test_static_header_values():
    headers = SecurityHeaderPolicy().headers()
    assert headers == {
        "Content-Security-Policy": EXPECTED_CSP,
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    }
    assert list(headers)[0] == "Content-Security-Policy"


def test_rate_limit_headers_only_with_status():
    policy = SecurityHeaderPolicy()
    assert "X-RateLimit-Limit" not in policy.headers()

    headers = policy.headers(RateLimitStatus(limit=50, remaining=49, reset_after_ms=60_000))
    assert headers["X-RateLimit-Limit"] == "50"
    assert headers["X-RateLimit-Remaining"] == "49"
    assert list(headers)[-2:] == ["X-RateLimit-Limit", "X-RateLimit-Remaining"]


def test_remaining_is_never_negative():
    headers = SecurityHeaderPolicy().headers(RateLimitStatus(limit=5, remaining=-3, reset_after_ms=0))
    assert headers["X-RateLimit-Remaining"] == "0"


def test_apply_overwrites_and_strips_server_identity():
    headers = MutableHeaders(
        raw=[
            (b"content-type", b"application/json"),
            (b"server", b"uvicorn"),
            (b"x-powered-by", b"Express"),
            (b"x-frame-options", b"SAMEORIGIN"),
        ]
    )
    SecurityHeaderPolicy().apply(headers)

    assert "server" not in headers
    assert "x-powered-by" not in headers
    assert headers["x-frame-options"] == "DENY"
    assert headers.getlist("x-frame-options") == ["DENY"]
    assert headers["content-type"] == "application/json"
    assert headers["strict-transport-security"] == "max-age=31536000; includeSubDomains"


def test_apply_without_server_headers_is_harmless():
    headers = MutableHeaders()
    SecurityHeaderPolicy().apply(headers, RateLimitStatus(limit=2, remaining=1, reset_after_ms=10))
    assert headers["x-ratelimit-remaining"] == "1"
