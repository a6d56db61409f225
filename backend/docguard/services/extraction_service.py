"""
DocGuard Backend - Mock Extraction Service
============================================

What:  Produces document fields for an uploaded file.
How:   The document type is inferred from the file name; all other fields
       are fixed sample values. There is no OCR or model behind this.
Who:   POST /api/extract.
"""

import base64
import binascii
import json
import logging
import time
from typing import Tuple

from docguard.exceptions import MaliciousContentError, ValidationError
from docguard.schemas.document import ExtractedData, ExtractionResponse, ExtractRequest
from docguard.security.content import (
    is_valid_file_type,
    sanitize_file_name,
    scan_for_malicious_content,
)

logger = logging.getLogger(__name__)

GENERIC_DOCUMENT = "Government Document"

# (file name keywords, document type, sample ID number, issuing authority)
DOCUMENT_CATALOG: Tuple[Tuple[Tuple[str, ...], str, str, str], ...] = (
    (("pan",), "PAN Card", "ABCDE1234F", "Income Tax Department"),
    (("aadhaar", "aadhar"), "Aadhaar Card", "1234 5678 9012",
     "Unique Identification Authority of India (UIDAI)"),
    (("passport",), "Passport", "A1234567", "Ministry of External Affairs"),
    (("voter",), "Voter ID Card", "ABC1234567", "Election Commission of India"),
    (("driving", "license"), "Driving License", "MH0120200012345",
     "Regional Transport Office (RTO)"),
)


def detect_document_type(file_name: str) -> str:
    name = file_name.lower()
    for keywords, document_type, _, _ in DOCUMENT_CATALOG:
        if any(keyword in name for keyword in keywords):
            return document_type
    return GENERIC_DOCUMENT


def _catalog_entry(document_type: str):
    for entry in DOCUMENT_CATALOG:
        if entry[1] == document_type:
            return entry
    return None


def mock_id_number(document_type: str) -> str:
    entry = _catalog_entry(document_type)
    return entry[2] if entry else "DOC123456789"


def issuing_authority(document_type: str) -> str:
    entry = _catalog_entry(document_type)
    return entry[3] if entry else "Government of India"


class ExtractionService:
    def extract(self, request: ExtractRequest) -> ExtractionResponse:
        """
        Validate the submitted file and return mock extracted fields.

        Raises:
            ValidationError:       missing/undecodable data or bad file type
            MaliciousContentError: extracted fields contain script patterns
        """
        started = time.perf_counter()

        if not request.base64_data:
            raise ValidationError(
                message="No file data provided",
                field="base64_data",
                audit_action="extract_no_data",
            )

        if not is_valid_file_type(request.file_type):
            raise ValidationError(
                message="Invalid file type",
                field="file_type",
                audit_action="extract_invalid_file_type",
                risk_level="medium",
                audit_details={"file_type": request.file_type, "file_name": request.file_name},
            )

        try:
            base64.b64decode(request.base64_data, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError(
                message="File data is not valid base64",
                field="base64_data",
                audit_action="extract_invalid_data",
                audit_details={"file_name": request.file_name},
            )

        document_type = detect_document_type(request.file_name)
        data = ExtractedData(
            name=sanitize_file_name("Rajesh Kumar Singh"),
            id_number=mock_id_number(document_type),
            document_type=document_type,
            issuing_authority=issuing_authority(document_type),
            purpose="Identity Verification",
            date_of_issue="2020-03-15",
            date_of_expiry="2030-03-14",
            address="123 Main Street, Mumbai, Maharashtra 400001",
            confidence=0.95,
        )

        if scan_for_malicious_content(json.dumps(data.model_dump())):
            raise MaliciousContentError(
                message="Malicious content detected in extracted data",
                audit_action="extract_malicious_data_detected",
                audit_details={"file_name": request.file_name},
            )

        elapsed = time.perf_counter() - started
        logger.info("Extracted %s fields from %s", document_type, request.file_name or "<unnamed>")
        return ExtractionResponse(extracted_data=data, processing_time=f"{elapsed:.1f}s")
