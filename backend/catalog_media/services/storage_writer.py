"""
Catalog Media Backend — Storage Writer
=======================================

What:  Persists the encoded variants of one upload under a namespace directory
       and returns their public paths.
How:   One random 128-bit token per upload, one file per variant, each written
       to a ".part" file with aiofiles and moved into place with os.replace.
Who:   Called by MediaPipeline after the transcoder.

Directory Structure:
    <storage_root>/
    ├── services/
    │   └── 9f1c0d...e2.webp                  (single variant)
    └── works/
        ├── 51aa7b...03-800.webp              (large)
        ├── 51aa7b...03-400.webp              (medium)
        └── 51aa7b...03-150.webp              (thumb)

All-or-nothing:
    A file only appears under its final name once it is completely written.
    If any variant of the call fails, every variant already written by the
    same call is removed before WriteFailedError is raised, so no caller can
    end up holding a path to a missing or half-written file.
"""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import List, Sequence, Tuple, Union

import aiofiles

from catalog_media.exceptions import InvalidNamespaceError, WriteFailedError
from catalog_media.schemas.media import EncodedVariant, StoredVariant

logger = logging.getLogger(__name__)

# Namespaces are fixed per-entity tags chosen by the caller, never user input
NAMESPACE_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{0,63}$")

PARTIAL_SUFFIX = ".part"


def validate_namespace(namespace: str) -> str:
    if not NAMESPACE_PATTERN.match(namespace or ""):
        raise InvalidNamespaceError(namespace)
    return namespace


class StorageWriter:
    """
    Writes variant files under <storage_root>/<namespace>/.

    Args:
        storage_root: Filesystem directory of the uploads tree
        url_prefix: Public prefix of returned paths (default /uploads)
    """

    def __init__(self, storage_root: Union[str, Path], url_prefix: str = "/uploads"):
        self.storage_root = Path(storage_root).resolve()
        self.url_prefix = "/" + url_prefix.strip("/")

    def ensure_namespace(self, namespace: str) -> Path:
        """
        Create the namespace directory if missing.

        exist_ok=True makes this safe when concurrent uploads race to create
        the same directory.
        """
        directory = self.storage_root / validate_namespace(namespace)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    @staticmethod
    def build_filenames(token: str, variants: Sequence[EncodedVariant]) -> List[str]:
        """
        <token><ext> for a single variant, <token>-<width><ext> for several.

        When two variants share a width the variant name is used instead so
        every file of the upload still gets a distinct name.
        """
        if len(variants) == 1:
            return [f"{token}{variants[0].extension}"]

        widths = [v.width for v in variants]
        unique_widths = len(set(widths)) == len(widths)
        names = []
        for variant in variants:
            suffix = str(variant.width) if unique_widths else variant.spec_name
            names.append(f"{token}-{suffix}{variant.extension}")
        return names

    def public_path(self, namespace: str, filename: str) -> str:
        return f"{self.url_prefix}/{namespace}/{filename}"

    async def _write_file(self, path: Path, data: bytes) -> None:
        """Write to <path>.part, then atomically move it to <path>."""
        partial = path.with_name(path.name + PARTIAL_SUFFIX)
        try:
            async with aiofiles.open(partial, "wb") as f:
                await f.write(data)
            os.replace(partial, path)
        except OSError:
            self._remove_quietly(partial)
            raise

    @staticmethod
    def _remove_quietly(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Rollback could not remove %s: %s", path, e)
            return False

    def _rollback(self, written: Sequence[Path]) -> int:
        removed = 0
        for path in written:
            if self._remove_quietly(path):
                removed += 1
        return removed

    async def store(
        self, namespace: str, variants: Sequence[EncodedVariant]
    ) -> List[StoredVariant]:
        """
        Write every variant of one upload, or none of them.

        Returns:
            One StoredVariant per input variant, in input order.

        Raises:
            InvalidNamespaceError: namespace is not a plain lowercase tag
            WriteFailedError: a directory or file write failed (already rolled back)
        """
        if not variants:
            return []

        try:
            directory = self.ensure_namespace(namespace)
        except OSError as e:
            logger.error("Cannot create namespace directory %s: %s", namespace, e)
            raise WriteFailedError(
                context={"namespace": namespace, "os_error": str(e)},
            ) from e

        token = uuid.uuid4().hex
        filenames = self.build_filenames(token, variants)
        written: List[Path] = []
        stored: List[Tuple[str, str]] = []

        for variant, filename in zip(variants, filenames):
            target = directory / filename
            try:
                await self._write_file(target, variant.data)
            except OSError as e:
                removed = self._rollback(written)
                logger.error(
                    "Failed to store variant '%s' at %s: %s (rolled back %d file(s))",
                    variant.spec_name,
                    target,
                    e,
                    removed,
                )
                raise WriteFailedError(
                    context={
                        "namespace": namespace,
                        "variant": variant.spec_name,
                        "os_error": str(e),
                        "rolled_back": removed,
                    },
                ) from e
            written.append(target)
            stored.append((variant.spec_name, self.public_path(namespace, filename)))

        logger.info(
            "Stored %d variant(s) in %s: %s (%d bytes)",
            len(stored),
            namespace,
            ", ".join(path for _, path in stored),
            sum(v.size for v in variants),
        )
        return [StoredVariant(spec_name=name, relative_path=path) for name, path in stored]
