"""
Catalog Media Backend — Pipeline Values and API Schemas
========================================================

What:  The transient values that flow through the ingestion pipeline, plus the
       Pydantic models defining the HTTP contract.
How:   Policy and result types are Pydantic models (validated, serializable,
       shown in OpenAPI docs). The two byte-carrying values, UploadCandidate
       and EncodedVariant, are plain frozen dataclasses: they never cross the
       HTTP boundary and should not be copied or validated field by field.
Who:   Built by policies.py and the routes; consumed by every service.

Lifecycle:
    UploadCandidate ──accept──▶ UploadCandidate ──transcode──▶ [EncodedVariant]
        ──store──▶ [StoredVariant]   (the only thing callers persist)

    [relative_path] ──reclaim──▶ ReclaimReport
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


# ══════════════════════════════════════════════════════════════════════════
# Upload Policy: declarative configuration for the acceptor and transcoder
# ══════════════════════════════════════════════════════════════════════════


class VariantSpec(BaseModel):
    """
    One output rendition of an uploaded image.

    The byte budget is a target: when quality reaches `min_quality` and the
    buffer is still larger than `max_bytes`, the over-budget buffer is kept.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        pattern=r"^[a-z0-9_-]+$",
        description="Variant name, e.g. large/medium/thumb/default; used in filenames",
    )
    target_width: int = Field(gt=0, description="Output width in pixels")
    target_height: int = Field(gt=0, description="Output height in pixels")
    initial_quality: int = Field(ge=1, le=100, description="First encode quality")
    max_bytes: int = Field(gt=0, description="Byte budget for the encoded output")
    min_quality: int = Field(ge=1, le=100, description="Floor for the quality search")

    @model_validator(mode="after")
    def check_quality_range(self) -> "VariantSpec":
        if self.min_quality > self.initial_quality:
            raise ValueError(
                f"min_quality ({self.min_quality}) must not exceed "
                f"initial_quality ({self.initial_quality})"
            )
        return self


class UploadPolicy(BaseModel):
    """
    Everything the acceptor and transcoder need to know about one entity type.

    A policy holds an ordered list of variants: one entry for single-image
    entities, three (large/medium/thumb) for multi-size entities. The
    pipeline does not care which; the variant list is data.
    """

    model_config = ConfigDict(frozen=True)

    allowed_media_types: FrozenSet[str]
    max_input_bytes: int = Field(gt=0)
    variants: Tuple[VariantSpec, ...] = Field(min_length=1)
    quality_step: int = Field(default=5, gt=0)
    output_format: str = Field(default="WEBP")

    @model_validator(mode="after")
    def check_variant_names(self) -> "UploadPolicy":
        names = [v.name for v in self.variants]
        if len(names) != len(set(names)):
            raise ValueError(f"Variant names must be unique, got {names}")
        return self


# ══════════════════════════════════════════════════════════════════════════
# Transient byte carriers (never serialized)
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class UploadCandidate:
    """
    An uploaded file as received from the client.

    `declared_byte_size` comes from the client (Content-Length or the
    multipart part size) and is informational only. The acceptor measures
    `len(raw_bytes)` itself.
    """

    raw_bytes: bytes
    declared_media_type: str
    declared_byte_size: Optional[int] = None
    filename: Optional[str] = None

    @property
    def measured_size(self) -> int:
        return len(self.raw_bytes)


@dataclass(frozen=True)
class EncodedVariant:
    """Output of the transcoder for one VariantSpec."""

    spec_name: str
    data: bytes
    width: int
    height: int
    quality: int
    attempts: int
    max_bytes: int
    extension: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def within_budget(self) -> bool:
        return len(self.data) <= self.max_bytes


# ══════════════════════════════════════════════════════════════════════════
# Pipeline results
# ══════════════════════════════════════════════════════════════════════════


class StoredVariant(BaseModel):
    """
    A durably written variant.

    `relative_path` is an opaque capability: show it, hand it back to the
    reclaimer, never parse it for meaning.
    """

    spec_name: str = Field(description="Name of the VariantSpec this file was produced from")
    relative_path: str = Field(description="Public path, e.g. /uploads/services/<token>.webp")


class ReclaimOutcome(str, Enum):
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    DELETE_FAILED = "delete_failed"


class ReclaimResult(BaseModel):
    path: str
    outcome: ReclaimOutcome
    reason: Optional[str] = None


class ReclaimReport(BaseModel):
    """
    Per-path outcome of a reclaim batch.

    A failed deletion leaves a dangling file, never a dangling reference, so
    callers should log `failed` entries and carry on with their update.
    """

    results: List[ReclaimResult] = Field(default_factory=list)

    @computed_field
    @property
    def deleted(self) -> int:
        return sum(1 for r in self.results if r.outcome == ReclaimOutcome.DELETED)

    @computed_field
    @property
    def already_absent(self) -> int:
        return sum(1 for r in self.results if r.outcome == ReclaimOutcome.ALREADY_ABSENT)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome == ReclaimOutcome.DELETE_FAILED)

    @computed_field
    @property
    def ok(self) -> bool:
        return self.failed == 0

    def outcome_for(self, path: str) -> Optional[ReclaimOutcome]:
        """Outcome of the last entry for `path`, or None if it was not processed."""
        for result in reversed(self.results):
            if result.path == path:
                return result.outcome
        return None


# ══════════════════════════════════════════════════════════════════════════
# HTTP Request/Response Models
# ══════════════════════════════════════════════════════════════════════════


class UploadResponse(BaseModel):
    """Returned by POST /api/uploads/{namespace} with HTTP 201 Created."""

    namespace: str = Field(description="Storage namespace the files were written to")
    variants: List[StoredVariant] = Field(description="One entry per policy variant")


class ReplaceResponse(UploadResponse):
    """Returned by POST /api/uploads/{namespace}/replace."""

    reclaimed: ReclaimReport = Field(description="Cleanup outcome for the previous paths")


class ReclaimRequest(BaseModel):
    paths: List[Optional[str]] = Field(
        default_factory=list,
        max_length=100,
        description="Paths previously returned by an upload",
    )


class PolicyInfo(BaseModel):
    namespace: str
    output_format: str
    max_input_bytes: int
    allowed_media_types: List[str]
    variants: List[VariantSpec]


class HealthResponse(BaseModel):
    """
    What:  Service health status.
    Who:   Returned by GET /health for monitoring.
    """

    status: str = Field(description="Overall status: healthy or unhealthy")
    version: str = Field(description="Application version")
    storage: str = Field(description="Storage root status: writable, not_writable")
    uptime_seconds: float = Field(description="Seconds since service started")


class ErrorResponse(BaseModel):
    """
    What:  Consistent error response format for all error scenarios.
    Who:   Returned by global exception handlers in main.py.
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request ID for support")
