"""
Catalog Media Backend — Request ID Middleware
==============================================

What:  Assigns a short ID to each incoming request and echoes it in the response.
How:   Reuses a client-supplied X-Request-ID or generates one, stores it in a
       ContextVar for loggers and error handlers, returns it as a header.
Who:   Applied to every request via Starlette middleware.

An upload that fails with a 5xx carries the same ID in its response body
and in every server-side log line, which is how a failed image upload in
the admin panel is matched to its WriteFailedError context.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local storage for the current request ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID header if present
        2. Otherwise generate an 8-character ID
        3. Store in ContextVar and request.state
        4. Add to response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
