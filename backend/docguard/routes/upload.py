"""
DocGuard Backend - Upload Route
=================================

What:  POST /api/upload, multipart form with `file` and optional `password`.
How:   Reads the file, delegates to UploadService, audits the result.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from docguard.dependencies import RequestAudit, get_request_audit, get_upload_service
from docguard.exceptions import ValidationError
from docguard.schemas.document import ErrorResponse, UploadResponse
from docguard.services.upload_service import UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Upload"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"description": "Missing file, bad type/size or password required", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Upload could not be stored", "model": ErrorResponse},
    },
    summary="Upload an identity document",
)
async def upload_document(
    file: Optional[UploadFile] = File(default=None, description="JPEG, PNG or PDF, max 10MB"),
    password: Optional[str] = Form(default=None, description="Password for an encrypted PDF"),
    audit: RequestAudit = Depends(get_request_audit),
    service: UploadService = Depends(get_upload_service),
) -> UploadResponse:
    if file is None:
        raise ValidationError(
            message="No file provided",
            field="file",
            audit_action="upload_no_file",
        )

    try:
        content = await file.read()
        logger.info("Received upload: filename=%s, size=%d bytes", file.filename or "unknown", len(content))
        stored = await service.process_upload(
            file_name=file.filename or "upload",
            mime_type=file.content_type,
            content=content,
            password=password,
        )
    finally:
        await file.close()

    result = stored.response
    if stored.password_hash:
        audit.record(
            "upload_password_provided",
            details={"file_name": result.file_name, "password_hash": stored.password_hash},
        )

    audit.record(
        "upload_success",
        details={
            "file_id": result.file_id,
            "file_name": result.file_name,
            "file_size": result.file_size,
            "file_type": result.file_type,
            "is_password_protected": result.is_password_protected,
        },
    )
    return result
