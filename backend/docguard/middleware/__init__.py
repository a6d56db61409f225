"""
DocGuard Backend - Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request -> [Gatekeeper] -> [Request ID] -> [Logging] -> [GZip] -> [CORS] -> Route

    1. Gatekeeper: rejects over-limit API calls before any other work, then
       hardens headers and audits on the way out
    2. Request ID: correlation ID for logs and error bodies
    3. Logging: access line with status and duration
    4. GZip / CORS: provided by Starlette

Starlette runs middleware in reverse order of registration, so create_app()
adds them from the innermost to the outermost.
"""
