"""
Catalog Media Backend — Storage Reclaimer
==========================================

What:  Deletes previously stored variant files when the owning record drops
       or replaces its image.
How:   Maps each public path back onto the storage root, refuses anything
       that would land outside it, unlinks, and records a per-path outcome.
Who:   Called by MediaPipeline.replace()/discard() and the reclaim route.

Outcomes:
    deleted         file existed and was removed
    already_absent  nothing to remove (second call, or never written)
    delete_failed   refused (outside the root, or a symlink) or the OS said no

Error handling:
    Never raises for a single path. A failed delete leaves a dangling file,
    which is harmless; refusing the caller's record update would not be.
    Failures are logged here and returned in the ReclaimReport.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Union

from catalog_media.schemas.media import ReclaimOutcome, ReclaimReport, ReclaimResult

logger = logging.getLogger(__name__)

OUTSIDE_ROOT = "outside storage root"
SYMLINK_REFUSED = "symbolic link"


class StorageReclaimer:
    """
    Idempotent, traversal-safe deletion of stored variants.

    Args:
        storage_root: Filesystem directory of the uploads tree
        url_prefix: Prefix every reclaimable path must start with
    """

    def __init__(self, storage_root: Union[str, Path], url_prefix: str = "/uploads"):
        self.storage_root = Path(storage_root).resolve()
        self.url_prefix = "/" + url_prefix.strip("/")

    def resolve(self, relative_path: str) -> Optional[Path]:
        """
        Translate '/uploads/<ns>/<file>' into an absolute path under the root.

        Returns None when the path does not carry the prefix, contains a
        parent reference or a NUL byte, or its directory resolves (symlinks
        included) outside the root. The final component is not followed, so
        a symlink entry maps to the link itself.
        """
        prefix = self.url_prefix + "/"
        if not relative_path.startswith(prefix) or "\x00" in relative_path:
            return None

        remainder = PurePosixPath(relative_path[len(prefix):])
        if remainder.is_absolute() or ".." in remainder.parts or not remainder.parts:
            return None

        try:
            parent = (self.storage_root / Path(*remainder.parts[:-1])).resolve()
        except (OSError, ValueError):
            return None
        candidate = parent / remainder.parts[-1]
        if candidate == self.storage_root or self.storage_root not in candidate.parents:
            return None
        return candidate

    def reclaim_one(self, relative_path: str) -> ReclaimResult:
        target = self.resolve(relative_path)
        if target is None:
            logger.warning("Refusing to reclaim %r: %s", relative_path, OUTSIDE_ROOT)
            return ReclaimResult(
                path=relative_path,
                outcome=ReclaimOutcome.DELETE_FAILED,
                reason=OUTSIDE_ROOT,
            )

        if target.is_symlink():
            logger.warning("Refusing to reclaim %r: %s", relative_path, SYMLINK_REFUSED)
            return ReclaimResult(
                path=relative_path,
                outcome=ReclaimOutcome.DELETE_FAILED,
                reason=SYMLINK_REFUSED,
            )

        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug("Reclaim: file already gone: %s", relative_path)
            return ReclaimResult(path=relative_path, outcome=ReclaimOutcome.ALREADY_ABSENT)
        except (OSError, ValueError) as e:
            logger.warning("Failed to reclaim %s: %s", relative_path, e)
            return ReclaimResult(
                path=relative_path,
                outcome=ReclaimOutcome.DELETE_FAILED,
                reason=f"{type(e).__name__}: {getattr(e, 'strerror', None) or e}",
            )

        logger.info("Reclaimed file: %s", relative_path)
        return ReclaimResult(path=relative_path, outcome=ReclaimOutcome.DELETED)

    async def reclaim(self, paths: Iterable[Optional[str]]) -> ReclaimReport:
        """
        Delete every path in the batch, continuing past individual failures.

        Blank entries (records without an image) are skipped silently.
        """
        report = ReclaimReport()
        for path in paths:
            if not path or not path.strip():
                continue
            report.results.append(self.reclaim_one(path.strip()))

        if report.failed:
            logger.warning(
                "Reclaim finished with %d failure(s) out of %d path(s)",
                report.failed,
                len(report.results),
            )
        return report
