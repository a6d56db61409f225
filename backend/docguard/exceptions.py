"""
DocGuard Backend - Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for the error scenarios of the API.
How:   Each exception carries a user-safe message, a context dict for the
       server log, and optionally the audit action to record for it.
       Global exception handlers (registered in main.py) turn them into JSON
       error responses and write the audit record.
Who:   Raised by services and sinks; caught by global handlers or the
       audit logger.

Exception Hierarchy:
    DocGuardError (base)
    ├── ValidationError          -> 400 Bad Request
    │   ├── PasswordRequiredError -> 400 Bad Request (PDF needs a password)
    │   └── MaliciousContentError -> 400 Bad Request (high-risk audit)
    ├── FileStorageError         -> 500 Internal Server Error
    └── AuditSinkError           -> never reaches a client

Risk levels are plain strings ("low", "medium", "high") here so that this
module stays import-free; the handler converts them to RiskLevel.
"""

from typing import Any, Dict, Optional


class DocGuardError(Exception):
    """
    Base exception for all DocGuard application errors.

    Attributes:
        message:       User-facing error description (safe to return)
        context:       Debug info, logged but not returned to the client
        audit_action:  Action tag recorded by the exception handler, if any
        risk_level:    Risk level of that audit record
    """

    error_code = "server_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
        audit_action: Optional[str] = None,
        risk_level: str = "low",
        audit_details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        self.audit_action = audit_action
        self.risk_level = risk_level
        self.audit_details = audit_details
        super().__init__(self.message)


class ValidationError(DocGuardError):
    """
    Raised when client input fails validation.

    HTTP: 400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Invalid file type",
            "details": {"field": "file"}
        }
    """

    error_code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        audit_action: Optional[str] = None,
        risk_level: str = "low",
        audit_details: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(
            message=message,
            context=ctx,
            audit_action=audit_action,
            risk_level=risk_level,
            audit_details=audit_details,
        )
        self.field = field


class PasswordRequiredError(ValidationError):
    """Raised when an uploaded PDF is encrypted and no password was sent."""

    error_code = "password_required"

    def __init__(self, file_name: str):
        super().__init__(
            message="Password required",
            field="password",
            context={"is_password_protected": True},
            audit_action="upload_password_required",
            risk_level="low",
            audit_details={"file_name": file_name},
        )


class MaliciousContentError(ValidationError):
    """
    Raised when input or generated output matches a script-injection pattern.

    Always audited as high risk, which triggers the security alert path.
    """

    error_code = "malicious_content"

    def __init__(
        self,
        message: str = "Malicious content detected",
        audit_action: str = "malicious_content_detected",
        audit_details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            audit_action=audit_action,
            risk_level="high",
            audit_details=audit_details,
        )


class FileStorageError(DocGuardError):
    """
    Raised when file system operations fail.

    HTTP: 500 Internal Server Error. The client gets a generic message; the
    path and OS error stay in the server log.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            context=context,
            audit_action="upload_error",
            risk_level="medium",
        )


class AuditSinkError(DocGuardError):
    """
    Raised by an audit sink that could not persist a record.

    The audit logger absorbs it: auditing is best-effort and never fails
    the request path.
    """

    def __init__(
        self,
        message: str = "Audit record could not be written",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
