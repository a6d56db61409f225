"""
FastAPI dependencies resolving the per-app components from `app.state`.

create_app() is the only place these objects are built; routes receive
them through Depends() so tests can swap any of them per app.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request

from docguard.security.audit import AuditLogger, RiskLevel
from docguard.security.identity import ClientIdentity, client_identity
from docguard.services.extraction_service import ExtractionService
from docguard.services.qa_service import QAService
from docguard.services.upload_service import UploadService
from docguard.services.verification_service import VerificationService


@dataclass
class RequestAudit:
    """Audit logger bound to the identity of the current request."""

    audit_logger: AuditLogger
    identity: ClientIdentity

    def record(
        self,
        action: str,
        risk_level: RiskLevel = RiskLevel.LOW,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.audit_logger.log(
            action=action,
            source_ip=self.identity.source_ip,
            user_agent=self.identity.user_agent,
            risk_level=risk_level,
            details=details,
        )


def get_request_audit(request: Request) -> RequestAudit:
    return RequestAudit(
        audit_logger=request.app.state.audit_logger,
        identity=client_identity(request),
    )


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


def get_extraction_service(request: Request) -> ExtractionService:
    return request.app.state.extraction_service


def get_verification_service(request: Request) -> VerificationService:
    return request.app.state.verification_service


def get_qa_service(request: Request) -> QAService:
    return request.app.state.qa_service
