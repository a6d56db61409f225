"""
DocGuard Backend - Application Package
========================================

What: Document upload and verification API guarded by a request gatekeeper.
Who:  Imported by uvicorn (docguard.main:app), pytest and the CLI entry point.

Architecture Note:

    ┌─────────────────────────────────────┐
    │      Middleware (Gatekeeper)        │  <- rate limit, headers, audit
    ├─────────────────────────────────────┤
    │           Routes (API Layer)        │  <- HTTP concerns only
    ├─────────────────────────────────────┤
    │       Services (Business Logic)     │  <- upload, extract, verify, Q&A
    ├─────────────────────────────────────┤
    │        Security (Core Primitives)   │  <- limiter, audit, header policy
    └─────────────────────────────────────┘

    The security layer has no FastAPI dependency apart from header types, so
    each primitive is testable on its own. The gatekeeper composes them and
    the application factory owns the instances.
"""

__version__ = "1.0.0"
