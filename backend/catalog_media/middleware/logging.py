"""
Catalog Media Backend — Request Logging Middleware
===================================================

What:  One access log line per HTTP request with status and duration.
How:   Measures from middleware entry to response return; picks the log level
       from the status code (5xx ERROR, 4xx WARNING, otherwise INFO).
Who:   Applied to every request via Starlette middleware.

Typical durations:
    - GET /health:                1-5ms
    - POST /api/uploads/services: 100-800ms (decode + quality search dominates)
    - GET /uploads/...:           static files are not logged here

Never logged: request bodies (image bytes) or authorization headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from catalog_media.middleware.request_id import request_id_var

logger = logging.getLogger("catalog_media.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status, duration, request ID and client IP.

    Args:
        skip_prefixes: Path prefixes that are served but not logged
                       (health probes, the static uploads tree)
    """

    def __init__(self, app, skip_prefixes=("/health",), **kwargs):
        super().__init__(app, **kwargs)
        self.skip_prefixes = tuple(skip_prefixes)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path.startswith(self.skip_prefixes):
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        rid = request_id_var.get("")

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
