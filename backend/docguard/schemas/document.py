"""
DocGuard Backend - Pydantic Request/Response Schemas
======================================================

What:  The API contract between the frontend and the document endpoints.
How:   FastAPI validates request bodies against these models and serializes
       responses through them (and builds the OpenAPI docs from them).
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Upload
# ══════════════════════════════════════════════════════════════════════════

class UploadResponse(BaseModel):
    """
    Returned by POST /api/upload.

    base64_data is handed back so the client can submit it to
    /api/extract without a second upload.
    """
    success: bool = True
    file_id: str = Field(description="Opaque identifier of the stored upload")
    file_name: str = Field(description="Sanitized original file name")
    file_size: int = Field(description="Size in bytes")
    file_type: str = Field(description="Declared MIME type")
    is_password_protected: bool = Field(description="PDF requires a password to open")
    base64_data: str = Field(description="File content, base64 encoded")


# ══════════════════════════════════════════════════════════════════════════
# Extraction
# ══════════════════════════════════════════════════════════════════════════

class ExtractRequest(BaseModel):
    base64_data: Optional[str] = Field(default=None, description="Uploaded file, base64 encoded")
    file_type: Optional[str] = Field(default=None, description="MIME type of the file")
    file_name: str = Field(default="", description="Original file name")


class ExtractedData(BaseModel):
    name: str
    id_number: str
    document_type: str
    issuing_authority: str
    purpose: str
    date_of_issue: str
    date_of_expiry: str
    address: str
    confidence: float = Field(ge=0.0, le=1.0)


class ExtractionResponse(BaseModel):
    success: bool = True
    extracted_data: ExtractedData
    processing_time: str


# ══════════════════════════════════════════════════════════════════════════
# Verification
# ══════════════════════════════════════════════════════════════════════════

class VerifyRequest(BaseModel):
    extracted_data: Optional[Dict[str, Any]] = Field(default=None)
    document_type: Optional[str] = Field(default=None)


class SecurityFeatures(BaseModel):
    hologram: bool
    watermark: bool
    microtext: bool
    digital_signature: bool


class VerificationResult(BaseModel):
    is_valid: bool
    is_expired: bool
    is_authentic: bool
    security_features: SecurityFeatures
    risk_score: float = Field(ge=0.0, le=1.0)
    verification_timestamp: str
    verification_id: str


VerificationStatus = Literal["valid", "invalid", "expired"]


class VerificationResponse(BaseModel):
    success: bool = True
    verification: VerificationResult
    status: VerificationStatus
    message: str


# ══════════════════════════════════════════════════════════════════════════
# Q&A
# ══════════════════════════════════════════════════════════════════════════

class QARequest(BaseModel):
    question: Optional[str] = Field(default=None)
    language: str = Field(default="English")
    context: Optional[Any] = Field(default=None, description="Ignored by the canned assistant")


class QAResponse(BaseModel):
    success: bool = True
    answer: str
    language: str
    timestamp: str


# ══════════════════════════════════════════════════════════════════════════
# Errors and Health
# ══════════════════════════════════════════════════════════════════════════

class ErrorResponse(BaseModel):
    """
    Standardized error body.

    Example:
        {
            "error": "validation_error",
            "message": "Invalid file type",
            "details": {"field": "file"},
            "request_id": "1f2e3d4c"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status")
    version: str = Field(description="Application version")
    uptime_seconds: float = Field(description="Seconds since the process started")
    rate_limit_windows: int = Field(description="Identifiers currently tracked by the rate limiter")
    audit: Dict[str, int] = Field(description="Audit dispatcher counters")
