"""
DocGuard Backend - Mock Verification Service
==============================================

What:  Simulated authenticity check for extracted document data.
How:   Draws validity, authenticity and security-feature flags from a
       random source (80% valid, 90% authentic) and checks the expiry date.
       The random source is injectable so tests can seed it.
Who:   POST /api/verify.

Status and audit risk:
    invalid or not authentic -> "invalid"  (high)
    expired                  -> "expired"  (medium)
    otherwise                -> "valid"    (low)
"""

import random
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, Tuple

from docguard.exceptions import ValidationError
from docguard.schemas.document import (
    SecurityFeatures,
    VerificationResponse,
    VerificationResult,
    VerifyRequest,
)
from docguard.security.audit import RiskLevel, format_timestamp

STATUS_MESSAGES = {
    "valid": "Document is authentic and valid",
    "invalid": "Document failed verification checks",
    "expired": "Document is authentic but expired",
}


def is_expired(expiry: Any, today: date) -> bool:
    """True if `expiry` is an ISO date before `today`. Unparseable -> False."""
    if not expiry or not isinstance(expiry, str):
        return False
    try:
        expiry_date = date.fromisoformat(expiry[:10])
    except ValueError:
        return False
    return expiry_date < today


class VerificationService:
    """
    Args:
        rng:   Random source for the simulated checks.
        today: Returns the current UTC date (used for expiry).
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.rng = rng or random.Random()
        self.today = today or (lambda: datetime.now(timezone.utc).date())

    def verify(self, request: VerifyRequest) -> Tuple[VerificationResponse, RiskLevel]:
        """
        Returns:
            The response body and the risk level to audit it with.

        Raises:
            ValidationError if no extracted data was sent.
        """
        if not request.extracted_data:
            raise ValidationError(
                message="No data to verify",
                field="extracted_data",
                audit_action="verify_no_data",
            )

        rng = self.rng
        result = VerificationResult(
            is_valid=rng.random() > 0.2,
            is_expired=is_expired(request.extracted_data.get("date_of_expiry"), self.today()),
            is_authentic=rng.random() > 0.1,
            security_features=SecurityFeatures(
                hologram=rng.random() > 0.3,
                watermark=rng.random() > 0.2,
                microtext=rng.random() > 0.4,
                digital_signature=rng.random() > 0.1,
            ),
            risk_score=rng.random() * 0.3,
            verification_timestamp=format_timestamp(datetime.now(timezone.utc)),
            verification_id=f"VER_{int(time.time() * 1000)}",
        )

        if not result.is_valid or not result.is_authentic:
            status, risk = "invalid", RiskLevel.HIGH
        elif result.is_expired:
            status, risk = "expired", RiskLevel.MEDIUM
        else:
            status, risk = "valid", RiskLevel.LOW

        response = VerificationResponse(
            verification=result,
            status=status,
            message=STATUS_MESSAGES[status],
        )
        return response, risk
