# Routes package init
"""
DocGuard Backend - API Routes Package
=======================================

Route Inventory:
    - upload.py:  POST /api/upload   (validate and store a document)
    - extract.py: POST /api/extract  (mock field extraction)
    - verify.py:  POST /api/verify   (simulated authenticity check)
    - qa.py:      POST /api/qa       (canned help answers)
    - health.py:  GET  /health       (liveness, limiter and audit counters)

Routes stay thin: pull data out of the request, call the service, record the
successful outcome in the audit trail. Failures are raised as DocGuardError
and audited by the global exception handlers.
"""
