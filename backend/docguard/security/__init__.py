"""
DocGuard Backend - Security Primitives
========================================

What:  The building blocks the gatekeeper composes.

Inventory:
    - rate_limiter: RateLimiter (fixed window per identifier), RateLimitSweeper
    - audit:        AuditLogger, AuditEvent, RiskLevel, audit sinks
    - headers:      SecurityHeaderPolicy, CSP_HEADER
    - identity:     ClientIdentity, extract_identity
    - content:      file type, file name and script-injection checks

None of these hold module-level state. The application factory creates one
instance of each stateful component and hands it to whoever needs it.
"""

from docguard.security.audit import AuditEvent, AuditLogger, AuditSink, RiskLevel
from docguard.security.headers import CSP_HEADER, SecurityHeaderPolicy
from docguard.security.identity import ClientIdentity, extract_identity
from docguard.security.rate_limiter import RateLimiter, RateLimitStatus, RateLimitSweeper

__all__ = [
    "AuditEvent",
    "AuditLogger",
    "AuditSink",
    "CSP_HEADER",
    "ClientIdentity",
    "RateLimitStatus",
    "RateLimitSweeper",
    "RateLimiter",
    "RiskLevel",
    "SecurityHeaderPolicy",
    "extract_identity",
]
