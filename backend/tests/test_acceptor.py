"""
Catalog Media Backend — Upload Acceptor Unit Tests
===================================================

What:  Tests for the media type / emptiness / size gate.
Why:   The acceptor is the security boundary in front of the image decoder.
How:   Pure unit tests against a small policy; no files or images needed.

Test Strategy:
    ✅ Allowed and rejected media types, including normalization
    ✅ Size boundary (limit passes, limit + 1 fails)
    ✅ Rejection precedence when several checks fail
    ✅ Declared size is never trusted
    ✅ Exactly-one-file rule
"""

import pytest

from catalog_media.exceptions import (
    EmptyUploadError,
    MissingUploadError,
    PayloadTooLargeError,
    TooManyFilesError,
    UnsupportedMediaTypeError,
    UploadRejectedError,
)
from catalog_media.schemas.media import UploadCandidate, UploadPolicy, VariantSpec
from catalog_media.services.acceptor import UploadAcceptor, normalize_media_type

LIMIT = 1000


def make_policy(limit=LIMIT):
    return UploadPolicy(
        allowed_media_types=frozenset({"image/jpeg", "image/png", "image/webp"}),
        max_input_bytes=limit,
        variants=(
            VariantSpec(
                name="default",
                target_width=100,
                target_height=100,
                initial_quality=80,
                max_bytes=10_000,
                min_quality=20,
            ),
        ),
    )


def candidate(size=10, media_type="image/jpeg", declared=None):
    return UploadCandidate(
        raw_bytes=b"x" * size,
        declared_media_type=media_type,
        declared_byte_size=declared,
        filename="photo.jpg",
    )


class TestMediaTypeValidation:
    """Declared media type against the allow-list."""

    def setup_method(self):
        self.acceptor = UploadAcceptor(make_policy())

    def test_allowed_types_pass(self):
        for media_type in ("image/jpeg", "image/png", "image/webp"):
            assert self.acceptor.accept(candidate(media_type=media_type))

    def test_type_check_is_case_insensitive(self):
        """'image/JPEG' is the same type as 'image/jpeg'."""
        self.acceptor.accept(candidate(media_type="image/JPEG"))

    def test_parameters_are_ignored(self):
        self.acceptor.accept(candidate(media_type="image/png; charset=binary"))

    def test_gif_rejected(self):
        with pytest.raises(UnsupportedMediaTypeError, match="not supported") as exc_info:
            self.acceptor.accept(candidate(media_type="image/gif"))
        assert exc_info.value.media_type == "image/gif"
        assert exc_info.value.allowed == ["image/jpeg", "image/png", "image/webp"]

    def test_missing_type_rejected(self):
        with pytest.raises(UnsupportedMediaTypeError, match="unknown"):
            self.acceptor.accept(candidate(media_type=""))

    def test_normalize_media_type(self):
        assert normalize_media_type(" Image/WebP ; q=1") == "image/webp"
        assert normalize_media_type(None) == ""


class TestSizeValidation:
    """Measured size against policy.max_input_bytes."""

    def setup_method(self):
        self.acceptor = UploadAcceptor(make_policy())

    def test_size_at_limit_passes(self):
        """Files exactly at the limit should pass."""
        self.acceptor.accept(candidate(size=LIMIT))

    def test_size_over_limit_rejected(self):
        with pytest.raises(PayloadTooLargeError) as exc_info:
            self.acceptor.accept(candidate(size=LIMIT + 1))
        assert exc_info.value.actual == LIMIT + 1
        assert exc_info.value.limit == LIMIT
        assert exc_info.value.context["limit"] == LIMIT

    def test_empty_file_rejected(self):
        with pytest.raises(EmptyUploadError, match="empty"):
            self.acceptor.accept(candidate(size=0))

    def test_declared_size_is_not_trusted(self):
        """A client claiming a small size still gets its real size checked."""
        with pytest.raises(PayloadTooLargeError):
            self.acceptor.accept(candidate(size=LIMIT + 1, declared=10))

    def test_declared_size_mismatch_alone_is_accepted(self):
        self.acceptor.accept(candidate(size=10, declared=LIMIT * 5))


class TestRejectionPrecedence:
    """When several checks fail, the media type wins, then emptiness."""

    def setup_method(self):
        self.acceptor = UploadAcceptor(make_policy())

    def test_wrong_type_and_too_large_reports_type(self):
        with pytest.raises(UnsupportedMediaTypeError):
            self.acceptor.accept(candidate(size=LIMIT * 3, media_type="application/pdf"))

    def test_wrong_type_and_empty_reports_type(self):
        with pytest.raises(UnsupportedMediaTypeError):
            self.acceptor.accept(candidate(size=0, media_type="text/plain"))

    def test_all_rejections_share_a_base(self):
        for bad in (candidate(size=0), candidate(size=LIMIT + 1), candidate(media_type="x/y")):
            with pytest.raises(UploadRejectedError):
                self.acceptor.accept(bad)


class TestAcceptSingle:
    """Forms must carry exactly one file."""

    def setup_method(self):
        self.acceptor = UploadAcceptor(make_policy())

    def test_single_file_returned(self):
        one = candidate()
        assert self.acceptor.accept_single([one]) is one

    def test_no_file_rejected(self):
        with pytest.raises(MissingUploadError):
            self.acceptor.accept_single([])

    def test_two_files_rejected(self):
        with pytest.raises(TooManyFilesError) as exc_info:
            self.acceptor.accept_single([candidate(), candidate()])
        assert exc_info.value.count == 2

    def test_single_file_still_validated(self):
        with pytest.raises(EmptyUploadError):
            self.acceptor.accept_single([candidate(size=0)])
