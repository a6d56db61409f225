"""
DocGuard Backend - Content Safety Checks
==========================================

What:  Stateless checks applied to uploaded files and user-supplied text.
Why:   File names, declared types and extracted fields all come from the
       client and end up in paths, logs or responses.
Who:   UploadService, ExtractionService and QAService.

Checks:
    - is_valid_file_type:       MIME whitelist (JPEG, PNG, PDF)
    - sanitize_file_name:       strips everything but [A-Za-z0-9.-]
    - scan_for_malicious_content: script tags and inline handlers
    - is_password_protected_pdf: encryption dictionary + password entries
    - hash_secret:              salted SHA-256 for logging secrets safely
"""

import hashlib
import re
import secrets
from typing import Optional, Tuple

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "application/pdf"})

MAX_FILE_NAME_LENGTH = 255

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")

MALICIOUS_PATTERNS = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"onload\s*=", re.IGNORECASE),
    re.compile(r"onerror\s*=", re.IGNORECASE),
    re.compile(r"onclick\s*=", re.IGNORECASE),
)


def is_valid_file_type(mime_type: Optional[str]) -> bool:
    return (mime_type or "").lower() in ALLOWED_MIME_TYPES


def sanitize_file_name(file_name: str) -> str:
    """
    Make a client-supplied name safe to echo back and log.

    >>> sanitize_file_name("my passport (1).pdf")
    'my_passport_1_.pdf'
    """
    cleaned = _UNSAFE_NAME_CHARS.sub("_", file_name)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    return cleaned[:MAX_FILE_NAME_LENGTH]


def scan_for_malicious_content(content: str) -> bool:
    """True if `content` contains a script tag, script URL or inline handler."""
    return any(pattern.search(content) for pattern in MALICIOUS_PATTERNS)


def is_password_protected_pdf(content: bytes) -> bool:
    """
    Heuristic check for a PDF that needs a password to open.

    Requires an /Encrypt dictionary, a user or owner password entry, and
    filtered, length-prefixed streams. Documents that only carry an owner
    password for permissions usually fail the last check and are accepted.
    """
    text = content.decode("latin-1")
    if "/Encrypt" not in text:
        return False
    has_user_password = "/U " in text or "/UE " in text
    has_owner_password = "/O " in text or "/OE " in text
    if not (has_user_password or has_owner_password):
        return False
    return "/Filter" in text and "/Length" in text


def hash_secret(value: str, salt: Optional[str] = None) -> Tuple[str, str]:
    """
    Salted SHA-256 digest of `value`.

    Returns:
        (hex digest, salt). A random 16-byte hex salt is generated when none
        is given.
    """
    salt_value = salt or secrets.token_hex(16)
    digest = hashlib.sha256((value + salt_value).encode("utf-8")).hexdigest()
    return digest, salt_value

