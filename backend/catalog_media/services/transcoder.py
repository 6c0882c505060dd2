"""
Catalog Media Backend — Variant Transcoder
===========================================

What:  Turns one raw image buffer into N encoded variants, each resized with a
       cover fit and squeezed under a byte budget by lowering quality.
How:   Pillow decodes once, then for every VariantSpec independently:
       cover-fit resize → encode at initial_quality → while over budget and
       above min_quality: drop quality by a fixed step and re-encode.
Who:   Called by MediaPipeline between the acceptor and the storage writer.

Quality search:
    q = initial_quality
    data = encode(q)
    while len(data) > max_bytes and q > min_quality:
        q = max(q - step, min_quality)
        data = encode(q)

    The step is fixed regardless of how far over budget the buffer is.
    The clamp to min_quality means the last over-budget attempt is always
    made exactly at the floor, and the loop runs at most
    ceil((initial_quality - min_quality) / step) + 1 encodes.
    An over-budget buffer at the floor is returned, not rejected.

Failure model:
    Any decode or encode error fails the whole call with ProcessingFailedError.
    Callers never see a partial variant list.
"""

import io
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from catalog_media.exceptions import ProcessingFailedError
from catalog_media.schemas.media import EncodedVariant, VariantSpec

logger = logging.getLogger(__name__)

DEFAULT_QUALITY_STEP = 5

# Errors Pillow raises for corrupt, truncated or unsupported input
DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    ValueError,
    SyntaxError,
)


# ══════════════════════════════════════════════════════════════════════════
# Encoders
# ══════════════════════════════════════════════════════════════════════════


class ImageEncoder(ABC):
    """
    Strategy for turning a resized image into bytes at a given quality.

    Contract:
        - prepare() normalizes colour mode once per upload
        - encode() is called repeatedly by the quality search and must be
          deterministic for a given (image, quality)
        - errors are raised as OSError/ValueError; the transcoder wraps them
    """

    format: str = ""
    extension: str = ""

    def prepare(self, image: Image.Image) -> Image.Image:
        return image

    @abstractmethod
    def encode(self, image: Image.Image, quality: int) -> bytes:
        ...


def _has_meaningful_alpha(image: Image.Image) -> bool:
    return image.getchannel("A").getextrema()[0] < 255


class PillowEncoder(ImageEncoder):
    """
    Lossy WebP (default) or JPEG encoder backed by Pillow.

    Args:
        format: "WEBP" or "JPEG"
        method: WebP compression effort 0-6 (ignored for JPEG)
    """

    def __init__(self, format: str = "WEBP", method: int = 4):
        fmt = format.upper()
        if fmt not in ("WEBP", "JPEG"):
            raise ValueError(f"Unsupported output format '{format}'")
        self.format = fmt
        self.extension = ".jpg" if fmt == "JPEG" else ".webp"
        self.method = method

    def prepare(self, image: Image.Image) -> Image.Image:
        if image.mode in ("P", "PA"):
            image = image.convert("RGBA")
        elif image.mode == "LA":
            image = image.convert("RGBA")
        elif image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGB")

        if image.mode == "RGBA":
            if not _has_meaningful_alpha(image):
                image = image.convert("RGB")
            elif self.format == "JPEG":
                # JPEG has no alpha channel: flatten onto white
                background = Image.new("RGB", image.size, (255, 255, 255))
                background.paste(image, mask=image.getchannel("A"))
                image = background
        return image

    def encode(self, image: Image.Image, quality: int) -> bytes:
        buf = io.BytesIO()
        save_kwargs = {"quality": quality}
        if self.format == "WEBP":
            save_kwargs["method"] = self.method
        else:
            save_kwargs["optimize"] = True
        image.save(buf, format=self.format, **save_kwargs)
        return buf.getvalue()


# ══════════════════════════════════════════════════════════════════════════
# Transcoder
# ══════════════════════════════════════════════════════════════════════════


def fit_cover(image: Image.Image, width: int, height: int) -> Image.Image:
    """
    Resize to exactly (width, height), cropping the overflow around the centre.

    Aspect ratio is preserved; nothing is letterboxed. Smaller sources are
    scaled up.
    """
    if image.size == (width, height):
        return image.copy()
    return ImageOps.fit(
        image,
        (width, height),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )


class VariantTranscoder:
    """
    Produces every variant of one upload, or nothing.

    Args:
        encoder: ImageEncoder to use (default: PillowEncoder("WEBP"))
        quality_step: Fixed quality decrement of the budget search
    """

    def __init__(
        self,
        encoder: Optional[ImageEncoder] = None,
        quality_step: int = DEFAULT_QUALITY_STEP,
    ):
        if quality_step <= 0:
            raise ValueError("quality_step must be positive")
        self.encoder = encoder or PillowEncoder()
        self.quality_step = quality_step

    def decode(self, raw_bytes: bytes, specs: Sequence[VariantSpec]) -> Image.Image:
        """
        Decode, fully load and orient the source image.

        JPEG sources are decoded at a reduced scale (Image.draft) when every
        target is much smaller than the source; the draft never goes below
        the largest requested dimension.
        """
        largest = max(max(s.target_width, s.target_height) for s in specs)
        try:
            with Image.open(io.BytesIO(raw_bytes)) as source:
                source.draft("RGB", (largest, largest))
                source.load()
                image = ImageOps.exif_transpose(source)
                return self.encoder.prepare(image)
        except DECODE_ERRORS as e:
            logger.warning("Image decode failed: %s: %s", type(e).__name__, e)
            raise ProcessingFailedError(
                context={"stage": "decode", "error": f"{type(e).__name__}: {e}"},
            ) from e

    def encode_within_budget(self, image: Image.Image, spec: VariantSpec) -> EncodedVariant:
        """Run the fixed-step quality search for one already-resized image."""
        quality = spec.initial_quality
        data = self.encoder.encode(image, quality)
        attempts = 1

        while len(data) > spec.max_bytes and quality > spec.min_quality:
            quality = max(quality - self.quality_step, spec.min_quality)
            data = self.encoder.encode(image, quality)
            attempts += 1

        if len(data) > spec.max_bytes:
            logger.warning(
                "Variant '%s' still over budget at min quality %d: %d > %d bytes",
                spec.name,
                quality,
                len(data),
                spec.max_bytes,
            )

        return EncodedVariant(
            spec_name=spec.name,
            data=data,
            width=image.width,
            height=image.height,
            quality=quality,
            attempts=attempts,
            max_bytes=spec.max_bytes,
            extension=self.encoder.extension,
        )

    def transcode(self, raw_bytes: bytes, specs: Sequence[VariantSpec]) -> List[EncodedVariant]:
        """
        Produce one EncodedVariant per spec, in spec order.

        Raises:
            ProcessingFailedError: source cannot be decoded, or any variant
                                   fails to encode
        """
        if not specs:
            return []

        image = self.decode(raw_bytes, specs)
        source_size = image.size
        results: List[EncodedVariant] = []

        try:
            for spec in specs:
                resized = fit_cover(image, spec.target_width, spec.target_height)
                variant = self.encode_within_budget(resized, spec)
                logger.debug(
                    "Variant %s: %dx%d → %dx%d q=%d %d bytes in %d attempt(s)",
                    spec.name,
                    source_size[0],
                    source_size[1],
                    variant.width,
                    variant.height,
                    variant.quality,
                    variant.size,
                    variant.attempts,
                )
                results.append(variant)
        except (OSError, ValueError) as e:
            logger.warning("Image encode failed: %s: %s", type(e).__name__, e)
            raise ProcessingFailedError(
                context={"stage": "encode", "error": f"{type(e).__name__}: {e}"},
            ) from e
        finally:
            image.close()

        return results
