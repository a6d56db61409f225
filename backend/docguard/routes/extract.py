"""POST /api/extract: mock field extraction for an uploaded document."""

from fastapi import APIRouter, Depends

from docguard.dependencies import RequestAudit, get_extraction_service, get_request_audit
from docguard.schemas.document import ErrorResponse, ExtractionResponse, ExtractRequest
from docguard.services.extraction_service import ExtractionService

router = APIRouter(prefix="/api", tags=["Extraction"])


@router.post(
    "/extract",
    response_model=ExtractionResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Extract document fields",
)
async def extract_document(
    body: ExtractRequest,
    audit: RequestAudit = Depends(get_request_audit),
    service: ExtractionService = Depends(get_extraction_service),
) -> ExtractionResponse:
    result = service.extract(body)
    audit.record(
        "extract_success",
        details={
            "file_name": body.file_name,
            "document_type": result.extracted_data.document_type,
            "confidence": result.extracted_data.confidence,
        },
    )
    return result
