"""
DocGuard Backend - Health Check Route
=======================================

What:  Liveness probe for Docker and load balancers.
How:   Reports uptime plus the gatekeeper's own state: tracked rate windows
       and the audit dispatcher counters. Status is "degraded" while audit
       records are failing or being dropped; the service keeps serving.
"""

import time

from fastapi import APIRouter, Request

from docguard import __version__
from docguard.schemas.document import HealthResponse

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request) -> HealthResponse:
    audit_stats = request.app.state.audit_logger.stats()
    status = "healthy"
    if audit_stats["failed"] or audit_stats["dropped"]:
        status = "degraded"

    return HealthResponse(
        status=status,
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        rate_limit_windows=len(request.app.state.rate_limiter),
        audit=audit_stats,
    )
