"""
Catalog Media Backend — Health Check Route
===========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   The only critical dependency is a writable storage root; it is checked
       with os.access (no test file is written on every probe).
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Status levels:
    - healthy:   storage root exists and is writable (HTTP 200)
    - unhealthy: uploads would fail with WriteFailedError (HTTP 503)
"""

import logging
import os
import time

from fastapi import APIRouter, Depends, Response

from catalog_media import __version__
from catalog_media.routes.uploads import get_pipeline
from catalog_media.schemas.media import HealthResponse
from catalog_media.services.media_service import MediaPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Track when the service started for uptime reporting
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    response: Response,
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> HealthResponse:
    root = pipeline.storage_root
    if root.is_dir() and os.access(root, os.W_OK | os.X_OK):
        storage_status = "writable"
        overall = "healthy"
    else:
        storage_status = "not_writable"
        overall = "unhealthy"
        response.status_code = 503
        logger.warning("Health check: storage root not writable: %s", root)

    return HealthResponse(
        status=overall,
        version=__version__,
        storage=storage_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
