# Middleware package init
"""
Catalog Media Backend — Middleware Package
===========================================

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Rate Limit first: reject abusive upload bursts before reading bodies
    2. Request ID: correlation ID for logs and error bodies
    3. Logging: access line with status and duration
"""
