"""
Catalog Media Backend — FastAPI Application Factory
====================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() builds Settings (unless given), the
       MediaPipeline, middleware, exception handlers, routes and the static
       mount for the uploads tree.
Who:   Called by uvicorn (uvicorn catalog_media.main:app) and by tests.

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                    FastAPI App                       │
    │                                                      │
    │  Middleware Chain:                                   │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────────────┐   │
    │  │  Rate Limit  │→│ Req ID   │→│  Logging        │   │
    │  └──────────────┘ └──────────┘ └─────────────────┘   │
    │                                                      │
    │  Routes:                                             │
    │  ┌──────────────────┐ ┌──────────┐ ┌──────────────┐  │
    │  │ /api/uploads/... │ │ /health  │ │ /uploads (static)│
    │  └──────────────────┘ └──────────┘ └──────────────┘  │
    │                                                      │
    │  Exception Handlers:                                 │
    │  415 type │ 413 size │ 400 input │ 404 ns │ 422 image │ 500 disk
    └──────────────────────────────────────────────────────┘

The MediaPipeline lives on app.state; there is no process-wide instance.
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from catalog_media import __version__
from catalog_media.config import Settings, get_settings
from catalog_media.exceptions import (
    CatalogMediaError,
    FileStorageError,
    PayloadTooLargeError,
    ProcessingFailedError,
    UnknownNamespaceError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from catalog_media.middleware.logging import RequestLoggingMiddleware
from catalog_media.middleware.rate_limit import RateLimitMiddleware
from catalog_media.middleware.request_id import RequestIDMiddleware, request_id_var
from catalog_media.routes import health, uploads
from catalog_media.services.media_service import MediaPipeline

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:  logging, storage root check, log policy summary.
    Shutdown: nothing to release (no pools, no open handles).
    """
    settings: Settings = app.state.settings
    pipeline: MediaPipeline = app.state.media_pipeline

    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("Catalog Media Backend %s starting up...", __version__)

    # Namespace directories are created lazily by the writer; only the root here
    try:
        pipeline.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("Storage root: %s", pipeline.storage_root)
    except OSError as e:
        logger.error("Cannot create storage root %s: %s", pipeline.storage_root, e)

    for namespace, policy in pipeline.policies.items():
        logger.info(
            "Policy %-10s → %s",
            namespace,
            ", ".join(
                f"{v.name} {v.target_width}x{v.target_height}" for v in policy.variants
            ),
        )

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Catalog Media Backend shutting down.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    content = {
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and response bodies.

    Handler hierarchy (most specific class wins):
        UnsupportedMediaTypeError → 415
        PayloadTooLargeError      → 413
        ValidationError           → 400
        UnknownNamespaceError     → 404
        ProcessingFailedError     → 422
        FileStorageError          → 500 (context logged, not returned)
        CatalogMediaError (base)  → 500
        Exception (fallback)      → 500
    """

    @app.exception_handler(UnsupportedMediaTypeError)
    async def handle_unsupported_type(request: Request, exc: UnsupportedMediaTypeError):
        logger.warning("[%s] Rejected upload: %s", request_id_var.get(""), exc.message)
        return _error_response(415, "unsupported_media_type", exc.message, exc.context)

    @app.exception_handler(PayloadTooLargeError)
    async def handle_too_large(request: Request, exc: PayloadTooLargeError):
        logger.warning("[%s] Rejected upload: %s", request_id_var.get(""), exc.message)
        return _error_response(413, "payload_too_large", exc.message, exc.context)

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(UnknownNamespaceError)
    async def handle_unknown_namespace(request: Request, exc: UnknownNamespaceError):
        return _error_response(404, "not_found", exc.message, exc.context)

    @app.exception_handler(ProcessingFailedError)
    async def handle_processing_failed(request: Request, exc: ProcessingFailedError):
        logger.warning(
            "[%s] Image processing failed: %s", request_id_var.get(""), exc.context
        )
        return _error_response(422, "processing_failed", exc.message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "write_failed", exc.message)

    @app.exception_handler(CatalogMediaError)
    async def handle_app_error(request: Request, exc: CatalogMediaError):
        logger.error(
            "[%s] Application error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[MediaPipeline] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Explicit configuration (default: loaded from the environment)
        pipeline: Pre-built MediaPipeline (default: built from settings)
    """
    settings = settings or get_settings()
    pipeline = pipeline or MediaPipeline.from_settings(settings)

    app = FastAPI(
        title="Catalog Media API",
        description=(
            "Image ingestion for the salon catalog: upload, crop to the entity's "
            "variant sizes, compress under a byte budget, store, and reclaim."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.media_pipeline = pipeline

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added = first to execute
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        RequestLoggingMiddleware,
        skip_prefixes=("/health", settings.uploads_url_prefix + "/"),
    )
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window,
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(uploads.router)
    app.include_router(health.router)

    # Public exposure of stored variants; check_dir=False because the root
    # may only be created by the lifespan hook or the first upload
    app.mount(
        settings.uploads_url_prefix,
        StaticFiles(directory=Path(settings.storage_root), check_dir=False),
        name="uploads",
    )

    return app


app = create_app()
