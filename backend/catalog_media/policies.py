"""
Catalog Media Backend — Reference Upload Policies
==================================================

What:  The two policy shapes the catalog uses, and the namespace → policy
       registry the pipeline looks policies up in.
How:   Plain functions build frozen UploadPolicy values from Settings.
       The registry is an ordinary object handed to the pipeline by the app
       factory; nothing here is a module-level mutable instance.

Policy shapes:
    single  → one "default" variant, 1200x900, q80, 100KB budget
              (services, masters, products)
    three   → large 800x800 / medium 400x400 / thumb 150x150
              (works: portfolio items shown in a grid and a lightbox)
"""

from typing import Dict, Mapping, Optional

from catalog_media.config import Settings
from catalog_media.exceptions import UnknownNamespaceError
from catalog_media.schemas.media import UploadPolicy, VariantSpec

# Reference byte budgets
KB = 1024

# Floor for the quality search in every reference variant
DEFAULT_MIN_QUALITY = 20

SINGLE_VARIANTS = (
    VariantSpec(
        name="default",
        target_width=1200,
        target_height=900,
        initial_quality=80,
        max_bytes=100 * KB,
        min_quality=DEFAULT_MIN_QUALITY,
    ),
)

THREE_VARIANTS = (
    VariantSpec(
        name="large",
        target_width=800,
        target_height=800,
        initial_quality=80,
        max_bytes=150 * KB,
        min_quality=DEFAULT_MIN_QUALITY,
    ),
    VariantSpec(
        name="medium",
        target_width=400,
        target_height=400,
        initial_quality=80,
        max_bytes=60 * KB,
        min_quality=DEFAULT_MIN_QUALITY,
    ),
    VariantSpec(
        name="thumb",
        target_width=150,
        target_height=150,
        initial_quality=80,
        max_bytes=15 * KB,
        min_quality=DEFAULT_MIN_QUALITY,
    ),
)


def _policy(settings: Settings, variants) -> UploadPolicy:
    return UploadPolicy(
        allowed_media_types=settings.allowed_media_types_set,
        max_input_bytes=settings.max_upload_bytes,
        variants=variants,
        quality_step=settings.quality_step,
        output_format=settings.output_format,
    )


def single_variant_policy(settings: Settings) -> UploadPolicy:
    return _policy(settings, SINGLE_VARIANTS)


def three_variant_policy(settings: Settings) -> UploadPolicy:
    return _policy(settings, THREE_VARIANTS)


def build_namespace_policies(settings: Settings) -> Dict[str, UploadPolicy]:
    """Map each entity namespace to the policy its uploads go through."""
    single = single_variant_policy(settings)
    return {
        "services": single,
        "masters": single,
        "products": single,
        "works": three_variant_policy(settings),
    }


class PolicyRegistry:
    """Read-only lookup of upload policies by namespace."""

    def __init__(self, policies: Mapping[str, UploadPolicy]):
        self._policies = dict(policies)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyRegistry":
        return cls(build_namespace_policies(settings))

    def get(self, namespace: str) -> UploadPolicy:
        policy: Optional[UploadPolicy] = self._policies.get(namespace)
        if policy is None:
            raise UnknownNamespaceError(namespace, known=self._policies.keys())
        return policy

    def items(self):
        return sorted(self._policies.items())
