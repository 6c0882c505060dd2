"""
Catalog Media Backend — Test Configuration (conftest.py)
=========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.
Who:   Used by all test files in the tests/ directory.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── temp_storage: Temporary uploads root
    ├── image_factory: Builds real encoded images with Pillow
    ├── sample_jpeg_bytes: 640x480 JPEG photo stand-in
    ├── test_settings: Settings pointing at temp_storage
    ├── pipeline: MediaPipeline built from test_settings
    └── test_client: HTTPX AsyncClient bound to a fresh app
"""

import io
import os
import random
import tempfile

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from PIL import Image


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings BEFORE any app imports: catalog_media.main builds a
# module-level app from the environment on import
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="catalog_media_test_")
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests

from catalog_media.config import Settings  # noqa: E402
from catalog_media.main import create_app  # noqa: E402
from catalog_media.services.media_service import MediaPipeline  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Image Helpers
# ══════════════════════════════════════════════════════════════════════════

def make_image(width, height, mode="RGB", pattern="gradient", seed=0):
    """
    Build an in-memory Pillow image.

    pattern:
        gradient  smooth content, compresses well
        noise     random pixels, close to incompressible
        photo     coarse colour blobs under fine grain; large as a JPEG,
                  compressible once downscaled
        solid     a single colour
    """
    if pattern == "noise":
        channels = len(mode)
        data = random.Random(seed).randbytes(width * height * channels)
        return Image.frombytes(mode, (width, height), data)
    if pattern == "photo":
        coarse = make_image(max(width // 50, 2), max(height // 50, 2), "RGB", "noise", seed)
        base = coarse.resize((width, height), Image.Resampling.BICUBIC)
        grain = Image.effect_noise((width, height), 40).convert("RGB")
        return Image.blend(base, grain, 0.25).convert(mode)
    if pattern == "solid":
        return Image.new(mode, (width, height), "#c0ffee" if mode == "RGB" else None)
    vertical = Image.linear_gradient("L").resize((width, height))
    horizontal = Image.linear_gradient("L").rotate(90).resize((width, height))
    return Image.merge("RGB", (vertical, horizontal, vertical)).convert(mode)


def encode_image(image, format="JPEG", **save_kwargs):
    buf = io.BytesIO()
    image.save(buf, format=format, **save_kwargs)
    return buf.getvalue()


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """
    Provides a temporary uploads root for file storage tests.

    Uses pytest's tmp_path fixture (automatically cleaned up).
    """
    storage_dir = tmp_path / "uploads"
    storage_dir.mkdir()
    return storage_dir


@pytest.fixture
def image_factory():
    """
    Provides a factory returning encoded image bytes.

    Usage:
        def test_x(image_factory):
            raw = image_factory(800, 600, format="PNG", pattern="noise")
    """
    def _factory(width, height, format="JPEG", mode="RGB", pattern="gradient", seed=0, **save_kwargs):
        return encode_image(make_image(width, height, mode, pattern, seed), format, **save_kwargs)

    return _factory


@pytest.fixture
def sample_jpeg_bytes(image_factory):
    """A 640x480 JPEG: small enough to be fast, large enough to be real."""
    return image_factory(640, 480, quality=90)


@pytest.fixture
def test_settings(temp_storage):
    """Settings bound to the per-test storage root."""
    return Settings(
        storage_root=str(temp_storage),
        uploads_url_prefix="/uploads",
        log_level="WARNING",
    )


@pytest.fixture
def pipeline(test_settings):
    return MediaPipeline.from_settings(test_settings)


@pytest.fixture
def stored_file(temp_storage):
    """
    Factory that drops a file into the uploads tree and returns its public path.
    """
    def _factory(namespace="services", filename="existing.webp", data=b"RIFF....WEBP"):
        directory = temp_storage / namespace
        directory.mkdir(parents=True, exist_ok=True)
        (directory / filename).write_bytes(data)
        return f"/uploads/{namespace}/{filename}"

    return _factory


def path_on_disk(storage_root, relative_path):
    """Map '/uploads/<ns>/<file>' back onto the storage root."""
    return storage_root / relative_path[len("/uploads/"):]


@pytest_asyncio.fixture
async def test_client(test_settings):
    """
    Provides an async HTTP test client for endpoint testing.

    What:    HTTPX AsyncClient configured to talk to a fresh FastAPI app.
    How:     Uses ASGITransport to route requests directly to the app.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    app = create_app(test_settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
