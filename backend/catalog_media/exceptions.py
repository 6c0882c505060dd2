"""
Catalog Media Backend — Custom Exception Hierarchy
===================================================

What:  Application-specific exceptions for every way an upload can fail.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by the pipeline services; caught by global handlers or by
       callers that embed the pipeline directly.

Exception Hierarchy:
    CatalogMediaError (base)                 → 500
    ├── ValidationError                      → 400
    │   ├── UploadRejectedError
    │   │   ├── UnsupportedMediaTypeError    → 415
    │   │   ├── PayloadTooLargeError         → 413
    │   │   ├── EmptyUploadError             → 400
    │   │   ├── MissingUploadError           → 400
    │   │   └── TooManyFilesError            → 400
    │   └── InvalidNamespaceError            → 400
    ├── UnknownNamespaceError                → 404
    ├── ProcessingFailedError                → 422
    └── FileStorageError                     → 500
        └── WriteFailedError                 → 500

Deletion failures are NOT exceptions: the reclaimer reports them per path
in a ReclaimReport (see schemas/media.py) and never raises for them.
"""

from typing import Any, Dict, Iterable, Optional


class CatalogMediaError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only by 4xx handlers)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CatalogMediaError):
    """
    Raised when client input fails validation.

    HTTP:    400 Bad Request (subclasses may narrow the status code)
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


# ══════════════════════════════════════════════════════════════════════════
# Upload Gate Rejections
# ══════════════════════════════════════════════════════════════════════════


class UploadRejectedError(ValidationError):
    """Base for everything the upload acceptor refuses before transcoding."""


class UnsupportedMediaTypeError(UploadRejectedError):
    """
    Declared media type is not in the policy allow-list.

    HTTP:    415 Unsupported Media Type
    Context: media_type (offending value), allowed (sorted list)
    """

    def __init__(self, media_type: str, allowed: Iterable[str]):
        allowed_list = sorted(allowed)
        super().__init__(
            message=(
                f"File type '{media_type or 'unknown'}' is not supported. "
                f"Allowed types: {', '.join(allowed_list)}"
            ),
            field="file",
            context={"media_type": media_type, "allowed": allowed_list},
        )
        self.media_type = media_type
        self.allowed = allowed_list


class PayloadTooLargeError(UploadRejectedError):
    """
    Measured upload size exceeds the policy limit.

    HTTP:    413 Payload Too Large
    Context: limit and actual size in bytes, plus the limit in MB for display
    """

    def __init__(self, actual: int, limit: int):
        limit_mb = limit / (1024 * 1024)
        super().__init__(
            message=(
                f"File size ({actual / (1024 * 1024):.1f}MB) exceeds maximum "
                f"of {limit_mb:.0f}MB."
            ),
            field="file",
            context={"limit": limit, "actual": actual, "max_size_mb": limit_mb},
        )
        self.actual = actual
        self.limit = limit


class EmptyUploadError(UploadRejectedError):
    def __init__(self):
        super().__init__(message="Uploaded file is empty.", field="file")


class MissingUploadError(UploadRejectedError):
    def __init__(self):
        super().__init__(message="An image file is required.", field="file")


class TooManyFilesError(UploadRejectedError):
    """More than one file supplied where exactly one is expected."""

    def __init__(self, count: int):
        super().__init__(
            message=f"Exactly one image is expected, got {count}.",
            field="file",
            context={"count": count, "expected": 1},
        )
        self.count = count


class InvalidNamespaceError(ValidationError):
    """Namespace tag contains characters that could not be a directory name."""

    def __init__(self, namespace: str):
        super().__init__(
            message=f"Invalid storage namespace '{namespace}'.",
            field="namespace",
            context={"namespace": namespace},
        )


# ══════════════════════════════════════════════════════════════════════════
# Pipeline Failures
# ══════════════════════════════════════════════════════════════════════════


class UnknownNamespaceError(CatalogMediaError):
    """
    No upload policy is registered for the requested namespace.

    HTTP:    404 Not Found
    """

    def __init__(self, namespace: str, known: Iterable[str] = ()):
        known_list = sorted(known)
        super().__init__(
            message=f"No upload policy for namespace '{namespace}'.",
            context={"namespace": namespace, "known": known_list},
        )
        self.namespace = namespace


class ProcessingFailedError(CatalogMediaError):
    """
    The buffer could not be decoded or transcoded.

    What:    Corrupt data, or a format that passed the media type check but
             fails to parse (e.g. HEIC without a decoder plugin).
    HTTP:    422 Unprocessable Entity
    Fatal for the whole upload: no variant from the call is valid.
    """

    def __init__(
        self,
        message: str = "The uploaded image could not be processed.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(CatalogMediaError):
    """
    Raised when file system operations fail.

    HTTP:    500 Internal Server Error
    The message returned to the client never contains file system paths;
    those go to the context dict, which is logged server-side only.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class WriteFailedError(FileStorageError):
    """
    Storage rejected a variant write (disk full, permission denied).

    By the time this is raised the writer has already removed every file it
    wrote during the same call.
    """

    def __init__(
        self,
        message: str = "Failed to save uploaded image. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

