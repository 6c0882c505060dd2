"""
Catalog Media Backend — Upload Route Handlers
==============================================

What:  HTTP surface of the media pipeline.
How:   Reads multipart uploads into memory, wraps them as UploadCandidates and
       delegates to the MediaPipeline attached to app.state.
Who:   Called by the admin panel when a catalog record's image is set,
       replaced or removed.

Routes:
    GET  /api/uploads/policies               list namespaces and their variants
    POST /api/uploads/reclaim                delete previously returned paths
    POST /api/uploads/{namespace}            store a new image
    POST /api/uploads/{namespace}/replace    store a new image, reclaim old paths

    /reclaim and /policies are registered before /{namespace} so they are
    never captured by the namespace parameter.

Error responses are produced by the global handlers in main.py.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from catalog_media.schemas.media import (
    ErrorResponse,
    PolicyInfo,
    ReclaimReport,
    ReclaimRequest,
    ReplaceResponse,
    UploadCandidate,
    UploadResponse,
)
from catalog_media.services.media_service import MediaPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["Uploads"])

UPLOAD_ERRORS = {
    400: {"description": "Missing, empty or duplicate file", "model": ErrorResponse},
    404: {"description": "Unknown namespace", "model": ErrorResponse},
    413: {"description": "File too large", "model": ErrorResponse},
    415: {"description": "Unsupported media type", "model": ErrorResponse},
    422: {"description": "Image could not be processed", "model": ErrorResponse},
    500: {"description": "Storage failure", "model": ErrorResponse},
}


def get_pipeline(request: Request) -> MediaPipeline:
    return request.app.state.media_pipeline


async def read_candidates(files: Optional[List[UploadFile]]) -> List[UploadCandidate]:
    """Read every uploaded part into memory and close it."""
    candidates = []
    for upload in files or []:
        try:
            content = await upload.read()
        finally:
            await upload.close()
        candidates.append(
            UploadCandidate(
                raw_bytes=content,
                declared_media_type=upload.content_type or "",
                declared_byte_size=upload.size,
                filename=upload.filename,
            )
        )
    return candidates


@router.get(
    "/policies",
    response_model=List[PolicyInfo],
    summary="List upload policies",
)
async def list_policies(pipeline: MediaPipeline = Depends(get_pipeline)) -> List[PolicyInfo]:
    return [
        PolicyInfo(
            namespace=namespace,
            output_format=policy.output_format,
            max_input_bytes=policy.max_input_bytes,
            allowed_media_types=sorted(policy.allowed_media_types),
            variants=list(policy.variants),
        )
        for namespace, policy in pipeline.policies.items()
    ]


@router.post(
    "/reclaim",
    response_model=ReclaimReport,
    summary="Delete previously stored images",
    description=(
        "Deletes the files behind paths returned by an earlier upload. "
        "Missing files count as success; per-path failures are reported, not raised."
    ),
)
async def reclaim_paths(
    body: ReclaimRequest,
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> ReclaimReport:
    report = await pipeline.discard(body.paths)
    if not report.ok:
        logger.warning("Reclaim request left %d file(s) behind", report.failed)
    return report


@router.post(
    "/{namespace}",
    status_code=201,
    response_model=UploadResponse,
    responses={201: {"description": "Image stored", "model": UploadResponse}, **UPLOAD_ERRORS},
    summary="Upload an image for a catalog entity",
    description=(
        "Upload one image (JPG, PNG, WebP, AVIF, HEIC, max 5MB). It is cropped "
        "to each size of the namespace's policy, compressed to WebP and stored."
    ),
)
async def upload_image(
    namespace: str,
    file: Optional[List[UploadFile]] = File(default=None, description="Exactly one image file"),
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> UploadResponse:
    candidates = await read_candidates(file)
    logger.info(
        "Received upload for %s: %s",
        namespace,
        ", ".join(f"{c.filename or 'unknown'} ({c.measured_size} bytes)" for c in candidates)
        or "no file",
    )
    stored = await pipeline.ingest_files(namespace, candidates)
    return UploadResponse(namespace=namespace, variants=stored)


@router.post(
    "/{namespace}/replace",
    status_code=201,
    response_model=ReplaceResponse,
    responses={201: {"description": "Image replaced", "model": ReplaceResponse}, **UPLOAD_ERRORS},
    summary="Replace a catalog entity's image",
)
async def replace_image(
    namespace: str,
    file: Optional[List[UploadFile]] = File(default=None, description="Exactly one image file"),
    old_paths: List[str] = Form(default=[], description="Paths of the image being replaced"),
    pipeline: MediaPipeline = Depends(get_pipeline),
) -> ReplaceResponse:
    candidates = await read_candidates(file)
    candidate = pipeline.acceptor_for(namespace).accept_single(candidates)
    stored, report = await pipeline.replace(namespace, candidate, old_paths)
    return ReplaceResponse(namespace=namespace, variants=stored, reclaimed=report)
