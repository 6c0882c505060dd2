"""
Catalog Media Backend — Upload Acceptor
========================================

What:  Gate that checks an uploaded file against its UploadPolicy before any
       transcoding work begins.
How:   Cheap checks only: declared media type, measured size, file count.
Who:   Called by MediaPipeline as the first step of every ingest.

Validation order (rejection precedence):
    1. Media type: an upload that is both the wrong type AND too large is
       reported as UnsupportedMediaTypeError
    2. Empty payload
    3. Measured size against policy.max_input_bytes (len == limit passes)

The declared byte size sent by the client is never trusted; only
len(raw_bytes) counts.
"""

import logging
from typing import Sequence

from catalog_media.exceptions import (
    EmptyUploadError,
    MissingUploadError,
    PayloadTooLargeError,
    TooManyFilesError,
    UnsupportedMediaTypeError,
)
from catalog_media.schemas.media import UploadCandidate, UploadPolicy

logger = logging.getLogger(__name__)


def normalize_media_type(media_type: str) -> str:
    """
    Lowercase and drop parameters: 'image/JPEG; q=1' → 'image/jpeg'.
    """
    return (media_type or "").split(";", 1)[0].strip().lower()


class UploadAcceptor:
    """
    Pure validation against one policy; no side effects.

    Raises:
        UnsupportedMediaTypeError, EmptyUploadError, PayloadTooLargeError
        (and MissingUploadError / TooManyFilesError from accept_single)
    """

    def __init__(self, policy: UploadPolicy):
        self.policy = policy

    def validate_media_type(self, candidate: UploadCandidate) -> str:
        media_type = normalize_media_type(candidate.declared_media_type)
        if media_type not in self.policy.allowed_media_types:
            raise UnsupportedMediaTypeError(
                candidate.declared_media_type, self.policy.allowed_media_types
            )
        return media_type

    def validate_size(self, candidate: UploadCandidate) -> int:
        actual = candidate.measured_size
        if actual == 0:
            raise EmptyUploadError()
        if actual > self.policy.max_input_bytes:
            raise PayloadTooLargeError(actual=actual, limit=self.policy.max_input_bytes)
        if candidate.declared_byte_size is not None and candidate.declared_byte_size != actual:
            logger.debug(
                "Declared size %d differs from measured size %d (%s)",
                candidate.declared_byte_size,
                actual,
                candidate.filename or "unnamed",
            )
        return actual

    def accept(self, candidate: UploadCandidate) -> UploadCandidate:
        """Return the candidate unchanged if it passes every check."""
        self.validate_media_type(candidate)
        self.validate_size(candidate)
        return candidate

    def accept_single(self, candidates: Sequence[UploadCandidate]) -> UploadCandidate:
        """Exactly one file is expected; zero or several are rejected."""
        if not candidates:
            raise MissingUploadError()
        if len(candidates) > 1:
            raise TooManyFilesError(len(candidates))
        return self.accept(candidates[0])
