"""
DocGuard Backend - Help Assistant
===================================

What:  Canned answers to common questions about the verification process,
       in English or Hindi.
How:   Keyword match on the lower-cased question; first rule wins.
Who:   POST /api/qa.

Input screening happens before matching: script patterns are rejected as
high risk, overlong questions as medium risk.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

from docguard.exceptions import DocGuardError, MaliciousContentError, ValidationError
from docguard.schemas.document import QAResponse
from docguard.security.audit import format_timestamp
from docguard.security.content import scan_for_malicious_content

MAX_QUESTION_LENGTH = 1000
HINDI = "हिंदी"

# (predicate on the lower-cased question, English answer, Hindi answer)
_RULES: Tuple[Tuple, ...] = (
    (
        lambda q: "how" in q and "upload" in q,
        "You can upload your document by dragging and dropping it into the upload zone "
        "or clicking the upload button. We support JPG, PNG, and PDF files.",
        "आप अपने दस्तावेज़ को ड्रैग एंड ड्रॉप करके या अपलोड बटन पर क्लिक करके अपलोड कर सकते हैं। "
        "हम JPG, PNG और PDF फाइलों को सपोर्ट करते हैं।",
    ),
    (
        lambda q: "secure" in q or "safe" in q,
        "Yes, your documents are completely secure. We use end-to-end encryption and "
        "automatically delete files after verification.",
        "हाँ, आपके दस्तावेज़ पूरी तरह से सुरक्षित हैं। हम एंड-टू-एंड एन्क्रिप्शन का उपयोग करते हैं "
        "और वेरिफिकेशन के बाद फाइलों को तुरंत डिलीट कर देते हैं।",
    ),
    (
        lambda q: "time" in q or "long" in q,
        "Document verification typically takes 30 seconds to 2 minutes, depending on "
        "file size and complexity.",
        "दस्तावेज़ वेरिफिकेशन में आमतौर पर 30 सेकंड से 2 मिनट का समय लगता है, "
        "फाइल के साइज़ और जटिलता के आधार पर।",
    ),
    (
        lambda q: "support" in q or "document" in q,
        "We support all major Indian government documents including Aadhaar Card, "
        "PAN Card, Passport, Voter ID, and Driving License.",
        "हम आधार कार्ड, पैन कार्ड, पासपोर्ट, वोटर आईडी और ड्राइविंग लाइसेंस जैसे सभी प्रमुख "
        "भारतीय सरकारी दस्तावेज़ों को सपोर्ट करते हैं।",
    ),
)

_DEFAULT_ANSWER = (
    "I'm here to help you with document verification. Please feel free to ask me any "
    "specific questions about the process.",
    "मैं आपकी दस्तावेज़ वेरिफिकेशन में मदद करने के लिए यहाँ हूँ। कृपया अपना प्रश्न और "
    "स्पष्ट रूप से पूछें।",
)


def canned_answer(question: str, language: str) -> str:
    q = question.lower()
    english, hindi = _DEFAULT_ANSWER
    for matches, rule_english, rule_hindi in _RULES:
        if matches(q):
            english, hindi = rule_english, rule_hindi
            break
    return hindi if language == HINDI else english


class QAService:
    def answer(self, question: Optional[str], language: str = "English") -> QAResponse:
        """
        Raises:
            ValidationError:       no question, or longer than MAX_QUESTION_LENGTH
            MaliciousContentError: question contains script patterns
            DocGuardError:         generated answer failed the content scan
        """
        if not question:
            raise ValidationError(
                message="No question provided",
                field="question",
                audit_action="qa_no_question",
            )

        if scan_for_malicious_content(question):
            raise MaliciousContentError(
                message="Invalid question content",
                audit_action="qa_malicious_question",
                audit_details={"question": question[:100]},
            )

        if len(question) > MAX_QUESTION_LENGTH:
            raise ValidationError(
                message="Question too long",
                field="question",
                context={"max_length": MAX_QUESTION_LENGTH},
                audit_action="qa_question_too_long",
                risk_level="medium",
                audit_details={"question_length": len(question)},
            )

        answer = canned_answer(question, language)
        if scan_for_malicious_content(answer):
            raise DocGuardError(
                message="Response generation failed",
                audit_action="qa_malicious_response_detected",
                risk_level="high",
            )

        return QAResponse(
            answer=answer,
            language=language,
            timestamp=format_timestamp(datetime.now(timezone.utc)),
        )
