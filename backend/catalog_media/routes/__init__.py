# Routes package init
"""
Catalog Media Backend — API Routes Package
===========================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - uploads.py: GET  /api/uploads/policies
                  POST /api/uploads/reclaim
                  POST /api/uploads/{namespace}
                  POST /api/uploads/{namespace}/replace
    - health.py:  GET  /health

Routes stay thin: read the request, call the MediaPipeline, shape the
response. Errors are mapped to HTTP by the handlers in main.py.
"""
