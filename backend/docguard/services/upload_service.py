"""
DocGuard Backend - Upload Service
===================================

What:  Validates, screens and stores uploaded identity documents.
How:   MIME whitelist, size limit, file name sanitization, PDF password
       detection, then an async write into a date-organized directory.
Who:   Called by the POST /api/upload route.

Validation order (cheapest first):
    1. Declared MIME type (no bytes read)
    2. Size
    3. PDF password detection (PDF only)
    4. Store to disk

Directory Structure:
    storage/
    └── 2024/
        └── 01/
            └── 15/
                ├── 6f1c...e2.pdf
                └── a9d0...41.png

Stored names are UUIDs, so no client input ever reaches a file path.
"""

import base64
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from docguard.exceptions import FileStorageError, PasswordRequiredError, ValidationError
from docguard.schemas.document import UploadResponse
from docguard.security.content import (
    hash_secret,
    is_password_protected_pdf,
    is_valid_file_type,
    sanitize_file_name,
)

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "application/pdf": ".pdf",
}


@dataclass
class StoredUpload:
    """Outcome of a successful upload, plus what the route needs to audit."""

    response: UploadResponse
    relative_path: str
    password_hash: Optional[str] = None


class UploadService:
    """
    Upload validation and storage lifecycle.

    Args:
        storage_root:  Directory uploads are written under (created if missing).
        max_file_size: Largest accepted upload in bytes.
    """

    def __init__(self, storage_root: str, max_file_size: int):
        self.storage_root = Path(storage_root).resolve()
        self.max_file_size = max_file_size
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("UploadService initialized with storage_root=%s", self.storage_root)

    def validate_file_type(self, mime_type: Optional[str], file_name: str) -> str:
        if not is_valid_file_type(mime_type):
            raise ValidationError(
                message="Invalid file type",
                field="file",
                audit_action="upload_invalid_file_type",
                risk_level="medium",
                audit_details={"file_type": mime_type, "file_name": file_name},
            )
        return mime_type.lower()

    def validate_size(self, size: int, file_name: str) -> None:
        if size > self.max_file_size:
            raise ValidationError(
                message="File too large",
                field="file",
                context={"max_size": self.max_file_size},
                audit_action="upload_file_too_large",
                risk_level="medium",
                audit_details={"file_size": size, "file_name": file_name},
            )
        if size == 0:
            raise ValidationError(
                message="Uploaded file is empty",
                field="file",
                audit_action="upload_empty_file",
                risk_level="low",
                audit_details={"file_name": file_name},
            )

    def _generate_storage_path(self, file_id: str, extension: str) -> Tuple[Path, str]:
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative_path = f"{date_dir}/{file_id}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, file_id: str, content: bytes, extension: str) -> Tuple[str, str]:
        """
        Write validated content to disk.

        Returns:
            (absolute_path, relative_path)

        Raises:
            FileStorageError if the directory or file cannot be written. Any
            partially written file is removed first.
        """
        absolute_path, relative_path = self._generate_storage_path(file_id, extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store upload at %s: %s", absolute_path, e)
            # A write that failed midway leaves a truncated file behind
            await self.cleanup_file(str(absolute_path))
            raise FileStorageError(
                message="Upload failed",
                context={"path": str(absolute_path), "os_error": str(e)},
            )

        logger.info("Upload stored: %s (%d bytes)", relative_path, len(content))
        return str(absolute_path), relative_path

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort removal of a stored or partially written upload. Never raises."""
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up upload: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up upload %s: %s", file_path, e)

    async def process_upload(
        self,
        file_name: str,
        mime_type: Optional[str],
        content: bytes,
        password: Optional[str] = None,
    ) -> StoredUpload:
        """
        Full upload pipeline: validate, screen, store.

        Raises:
            ValidationError:       type or size rejected
            PasswordRequiredError: encrypted PDF without a password
            FileStorageError:      disk write failed
        """
        safe_name = sanitize_file_name(file_name)
        file_type = self.validate_file_type(mime_type, file_name)
        self.validate_size(len(content), file_name)

        is_protected = False
        password_hash = None
        if file_type == "application/pdf":
            is_protected = is_password_protected_pdf(content)
            if is_protected and not password:
                raise PasswordRequiredError(safe_name)
            if password:
                password_hash, _ = hash_secret(password)

        file_id = str(uuid.uuid4())
        _, relative_path = await self.store_file(file_id, content, EXTENSIONS[file_type])

        return StoredUpload(
            response=UploadResponse(
                file_id=file_id,
                file_name=safe_name,
                file_size=len(content),
                file_type=file_type,
                is_password_protected=is_protected,
                base64_data=base64.b64encode(content).decode("ascii"),
            ),
            relative_path=relative_path,
            password_hash=password_hash,
        )
