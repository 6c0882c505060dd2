"""
Catalog Media Backend — Media Pipeline (Orchestrator)
======================================================

What:  The single entry point callers use to turn an upload into stored paths,
       and to give those paths back when a record changes.
How:   Composes UploadAcceptor, VariantTranscoder, StorageWriter and
       StorageReclaimer. Holds no per-request state.
Who:   Built by the app factory (main.py) and attached to app.state; route
       handlers fetch it through a dependency.

Orchestration Flow (ingest):
    ┌──────────┐    ┌──────────┐    ┌────────────┐    ┌──────────┐
    │  Policy  │───▶│  Accept  │───▶│ Transcode  │───▶│  Store   │
    │  lookup  │    │  (gate)  │    │ (thread)   │    │ (atomic) │
    └──────────┘    └──────────┘    └────────────┘    └──────────┘

    Failure at any step raises a typed CatalogMediaError and nothing is
    left on disk for this call.

Record update (replace):
    New image is ingested first. Only after it is safely stored are the old
    paths reclaimed, so a failed upload never costs the record its image.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from catalog_media.config import Settings
from catalog_media.policies import PolicyRegistry
from catalog_media.schemas.media import (
    ReclaimReport,
    StoredVariant,
    UploadCandidate,
    UploadPolicy,
)
from catalog_media.services.acceptor import UploadAcceptor
from catalog_media.services.reclaimer import StorageReclaimer
from catalog_media.services.storage_writer import StorageWriter
from catalog_media.services.transcoder import ImageEncoder, PillowEncoder, VariantTranscoder

logger = logging.getLogger(__name__)

EncoderFactory = Callable[[str], ImageEncoder]


class MediaPipeline:
    """
    Upload → variants → stored paths, and stored paths → reclaimed.

    Args:
        policies: Namespace → UploadPolicy lookup
        writer: StorageWriter for the uploads tree
        reclaimer: StorageReclaimer for the same tree
        encoder_factory: Builds an ImageEncoder for a policy's output format
    """

    def __init__(
        self,
        policies: PolicyRegistry,
        writer: StorageWriter,
        reclaimer: StorageReclaimer,
        encoder_factory: EncoderFactory = PillowEncoder,
    ):
        self.policies = policies
        self.writer = writer
        self.reclaimer = reclaimer
        self.encoder_factory = encoder_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaPipeline":
        return build_pipeline(
            settings.storage_root,
            PolicyRegistry.from_settings(settings),
            url_prefix=settings.uploads_url_prefix,
        )

    @property
    def storage_root(self) -> Path:
        return self.writer.storage_root

    def acceptor_for(self, namespace: str) -> UploadAcceptor:
        return UploadAcceptor(self.policies.get(namespace))

    def transcoder_for(self, policy: UploadPolicy) -> VariantTranscoder:
        return VariantTranscoder(
            encoder=self.encoder_factory(policy.output_format),
            quality_step=policy.quality_step,
        )

    async def ingest(self, namespace: str, candidate: UploadCandidate) -> List[StoredVariant]:
        """
        Validate, transcode and store one upload.

        Raises:
            UnknownNamespaceError: no policy for the namespace
            UploadRejectedError subclasses: the acceptor refused the file
            ProcessingFailedError: the image could not be decoded/encoded
            WriteFailedError: storage failed (already rolled back)
        """
        acceptor = self.acceptor_for(namespace)
        acceptor.accept(candidate)
        return await self._transcode_and_store(namespace, acceptor.policy, candidate)

    async def ingest_files(
        self, namespace: str, candidates: Sequence[UploadCandidate]
    ) -> List[StoredVariant]:
        """Like ingest(), for a form that must carry exactly one file."""
        acceptor = self.acceptor_for(namespace)
        candidate = acceptor.accept_single(candidates)
        return await self._transcode_and_store(namespace, acceptor.policy, candidate)

    async def _transcode_and_store(
        self, namespace: str, policy: UploadPolicy, candidate: UploadCandidate
    ) -> List[StoredVariant]:
        transcoder = self.transcoder_for(policy)
        # Decode/resize/encode is CPU-bound; keep the event loop responsive
        variants = await asyncio.to_thread(
            transcoder.transcode, candidate.raw_bytes, policy.variants
        )
        stored = await self.writer.store(namespace, variants)

        logger.info(
            "Ingested %s upload: %d → %d bytes across %d variant(s)%s",
            namespace,
            candidate.measured_size,
            sum(v.size for v in variants),
            len(variants),
            "" if all(v.within_budget for v in variants) else " (over budget)",
        )
        return stored

    async def replace(
        self,
        namespace: str,
        candidate: UploadCandidate,
        old_paths: Iterable[Optional[str]],
    ) -> Tuple[List[StoredVariant], ReclaimReport]:
        """
        Store a new image for a record, then reclaim its previous files.

        If ingest raises, old_paths are left untouched.
        """
        stored = await self.ingest(namespace, candidate)
        new_paths = {s.relative_path for s in stored}
        report = await self.reclaimer.reclaim(p for p in old_paths if p not in new_paths)
        return stored, report

    async def discard(self, paths: Iterable[Optional[str]]) -> ReclaimReport:
        """Reclaim the files of a deleted record (or any stale paths)."""
        return await self.reclaimer.reclaim(paths)


def build_pipeline(
    storage_root: Union[str, Path],
    policies: PolicyRegistry,
    url_prefix: str = "/uploads",
    encoder_factory: EncoderFactory = PillowEncoder,
) -> MediaPipeline:
    """Assemble a pipeline for an explicit storage root (handy outside the app)."""
    return MediaPipeline(
        policies=policies,
        writer=StorageWriter(storage_root, url_prefix),
        reclaimer=StorageReclaimer(storage_root, url_prefix),
        encoder_factory=encoder_factory,
    )
