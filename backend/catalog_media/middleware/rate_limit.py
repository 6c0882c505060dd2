"""
Catalog Media Backend — Rate Limiting Middleware
=================================================

What:  Per-IP sliding window rate limiter for the upload API.
How:   Tracks request timestamps per IP in memory; only paths under the
       limited prefix (/api) count, so static image fetches and health
       probes are never throttled.
Who:   Applied to every request via Starlette middleware.

Algorithm: Sliding Window Counter
    1. Each IP gets a list of request timestamps
    2. On each request, drop timestamps older than the window
    3. If remaining count >= limit, reject with 429 + Retry-After
    4. Otherwise record the current timestamp and allow through

Single-process only: state lives in this middleware instance.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        max_requests: Max requests per window per IP
        window_seconds: Window duration in seconds
        limited_prefix: Only paths starting with this prefix are counted
        clock: Time source (tests substitute a fake one)
    """

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: int = 3600,
        limited_prefix: str = "/api",
        clock: Callable[[], float] = time.time,
        **kwargs,
    ):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.limited_prefix = limited_prefix
        self.clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith(self.limited_prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        now = self.clock()
        window_start = now - self.window_seconds

        # ── Sliding Window: Clean old entries ─────────────────────────────
        self._requests[client_ip] = [
            ts for ts in self._requests[client_ip] if ts > window_start
        ]

        # ── Check rate limit ──────────────────────────────────────────────
        if len(self._requests[client_ip]) >= self.max_requests:
            oldest = self._requests[client_ip][0]
            retry_after = int(oldest + self.window_seconds - now) + 1

            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(self._requests[client_ip]),
                self.window_seconds,
            )

            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please wait {retry_after} seconds before retrying.",
                    "details": {"retry_after": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        # ── Record this request ───────────────────────────────────────────
        self._requests[client_ip].append(now)

        # Drop inactive IPs every 1000 requests
        self._seen += 1
        if self._seen % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
