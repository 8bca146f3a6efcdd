"""
Pytest configuration and shared fixtures
"""
import io
import random
import sys
from pathlib import Path

import pytest

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

PILLOW_FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/webp": "WEBP",
    "image/avif": "AVIF",
}


def make_image_bytes(width: int = 100, height: int = 100, mime: str = "image/png", noise: int = 60) -> bytes:
    """
    Four coloured quadrants with deterministic per-pixel noise.
    Flat quadrants alone compress to almost nothing, so noise keeps sizes realistic.
    """
    from PIL import Image as PILImage  # type: ignore

    rng = random.Random(width * 7919 + height)
    quadrants = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0)]
    pixels = bytearray()
    for y in range(height):
        for x in range(width):
            base = quadrants[(y >= height // 2) * 2 + (x >= width // 2)]
            for c in base:
                pixels.append(max(0, min(255, c + rng.randint(-noise, noise))))

    img = PILImage.frombytes("RGB", (width, height), bytes(pixels))
    buf = io.BytesIO()
    fmt = PILLOW_FORMATS[mime]
    if fmt == "PNG":
        img.save(buf, format=fmt)
    else:
        img.save(buf, format=fmt, quality=90)
    return buf.getvalue()


@pytest.fixture(scope="session")
def png_200() -> bytes:
    """200x200 noisy PNG, well over 5KB"""
    return make_image_bytes(200, 200, "image/png")


@pytest.fixture
def image_factory():
    return make_image_bytes


@pytest.fixture
def client():
    """Create a test client for the FastAPI app"""
    from fastapi.testclient import TestClient

    from imgcap.main import app

    return TestClient(app)
