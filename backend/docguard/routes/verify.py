"""POST /api/verify: simulated authenticity check of extracted data."""

from fastapi import APIRouter, Depends

from docguard.dependencies import RequestAudit, get_request_audit, get_verification_service
from docguard.schemas.document import ErrorResponse, VerificationResponse, VerifyRequest
from docguard.services.verification_service import VerificationService

router = APIRouter(prefix="/api", tags=["Verification"])


@router.post(
    "/verify",
    response_model=VerificationResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Verify extracted document data",
)
async def verify_document(
    body: VerifyRequest,
    audit: RequestAudit = Depends(get_request_audit),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    result, risk_level = service.verify(body)
    # An invalid document is audited as high risk and raises a security alert
    audit.record(
        "verify_complete",
        risk_level=risk_level,
        details={
            "document_type": body.document_type,
            "status": result.status,
            "verification_id": result.verification.verification_id,
            "risk_score": result.verification.risk_score,
        },
    )
    return result
