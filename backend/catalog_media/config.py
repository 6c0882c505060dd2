"""
Catalog Media Backend — Application Configuration
==================================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and exposes them as a typed object.
Who:   Read by the app factory (main.py) and by policies.py when the upload
       policies are assembled.
When:  Built once by create_app(); tests build their own instance and pass it in.

Design Decision:
    There is no module-level `settings` object. Components receive their
    configuration explicitly (storage root, policies) from the app factory,
    so two apps with different storage roots can live in one process
    (the test suite relies on this).
"""

from typing import FrozenSet, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


# Image container formats the upload gate recognizes.
DEFAULT_ALLOWED_MEDIA_TYPES = (
    "image/jpeg,image/jpg,image/png,image/webp,image/avif,image/heic"
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development.
    Attributes are grouped by concern for readability.
    """

    # ── Storage ───────────────────────────────────────────────────────────
    # What: Directory holding one sub-directory per entity namespace
    # Layout: <storage_root>/<namespace>/<token>[-<width>].<ext>
    storage_root: str = Field(default="./public/uploads")

    # What: Public URL prefix the stored paths are returned under
    # Example: /uploads/services/0f3c...e1.webp
    uploads_url_prefix: str = Field(default="/uploads")

    # ── Upload Policy ─────────────────────────────────────────────────────
    # What: Maximum accepted upload size in bytes (measured, not declared)
    # Default: 5MB = 5 * 1024 * 1024 = 5242880
    max_upload_bytes: int = Field(default=5_242_880, ge=1024, le=52_428_800)

    # What: Comma-separated allow-list of declared media types
    allowed_media_types: str = Field(default=DEFAULT_ALLOWED_MEDIA_TYPES)

    # What: Quality decrement per step of the byte-budget search
    quality_step: int = Field(default=5, ge=1, le=50)

    # What: Pillow format name every variant is encoded to
    output_format: str = Field(default="WEBP")

    @property
    def allowed_media_types_set(self) -> FrozenSet[str]:
        """Split the comma-separated allow-list into a normalized set."""
        return frozenset(
            t.strip().lower() for t in self.allowed_media_types.split(",") if t.strip()
        )

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Only lossy formats with a quality knob work with the budget search."""
        upper = v.upper()
        if upper not in {"WEBP", "JPEG"}:
            raise ValueError(f"Invalid output_format '{v}'. Must be WEBP or JPEG")
        return upper

    @field_validator("uploads_url_prefix")
    @classmethod
    def validate_url_prefix(cls, v: str) -> str:
        stripped = "/" + v.strip("/")
        if stripped == "/":
            raise ValueError("uploads_url_prefix must not be the site root")
        return stripped

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated URLs (parsed by the property below)
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # What: Per-IP sliding window limit on upload/reclaim endpoints
    rate_limit_requests: int = Field(default=100, ge=10, le=10000)
    rate_limit_window: int = Field(default=3600, ge=60, le=86400)  # seconds

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


def get_settings() -> Settings:
    """Load a fresh Settings instance from the environment."""
    return Settings()
