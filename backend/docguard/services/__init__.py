"""
DocGuard Backend - Services Layer
===================================

What:  Business logic between the routes (HTTP) and the security primitives.

Service Inventory:
    - UploadService:       file validation, PDF password detection, storage
    - ExtractionService:   mock field extraction keyed on the file name
    - VerificationService: simulated authenticity checks
    - QAService:           canned help answers

Services raise DocGuardError subclasses carrying the audit action for the
failure; the global exception handlers record it. Successful outcomes are
audited by the routes.
"""
