"""POST /api/qa: canned answers about the verification process."""

from fastapi import APIRouter, Depends

from docguard.dependencies import RequestAudit, get_qa_service, get_request_audit
from docguard.schemas.document import ErrorResponse, QARequest, QAResponse
from docguard.services.qa_service import QAService

router = APIRouter(prefix="/api", tags=["Q&A"])


@router.post(
    "/qa",
    response_model=QAResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Ask the help assistant",
)
async def ask_question(
    body: QARequest,
    audit: RequestAudit = Depends(get_request_audit),
    service: QAService = Depends(get_qa_service),
) -> QAResponse:
    result = service.answer(body.question, body.language)
    audit.record(
        "qa_success",
        details={
            "language": result.language,
            "question_length": len(body.question or ""),
            "response_length": len(result.answer),
        },
    )
    return result
