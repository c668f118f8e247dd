# Shared fixtures: small Pillow-generated images and settings for tests
import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from tryon_studio.config import Settings


def _make_image(mode: str = "RGB", size: tuple[int, int] = (64, 32), fmt: str = "PNG", color=None) -> bytes:
    if color is None:
        color = {"RGB": (200, 30, 30), "RGBA": (30, 200, 30, 255), "L": 128}.get(mode, 0)
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def make_image():
    """Factory for encoded image bytes: make_image(mode, size, fmt)."""
    return _make_image


@pytest.fixture
def png_bytes():
    return _make_image("RGB", (64, 32), "PNG")


@pytest.fixture
def rgba_png_bytes():
    return _make_image("RGBA", (64, 32), "PNG", color=(10, 20, 30, 128))


@pytest.fixture
def jpeg_bytes():
    return _make_image("RGB", (64, 32), "JPEG")


@pytest.fixture
def png_b64(png_bytes):
    return base64.b64encode(png_bytes).decode()


@pytest.fixture
def jpeg_b64(jpeg_bytes):
    return base64.b64encode(jpeg_bytes).decode()


@pytest.fixture
def png_data_url(png_b64):
    return f"data:image/png;base64,{png_b64}"


@pytest.fixture
def demo_image(tmp_path) -> Path:
    """A demo image on disk, as used by the mock model."""
    path = tmp_path / "tryon-demo.png"
    path.write_bytes(_make_image("RGB", (16, 24), "PNG", color=(1, 2, 3)))
    return path


@pytest.fixture
def settings(tmp_path, demo_image) -> Settings:
    return Settings(
        provider="OPENAI",
        openai_model="mock",
        stylize_model="mock",
        environment="test",
        mock_image_path=demo_image,
        uploads_dir=tmp_path / "uploads",
        base_url="https://tryon.example.com",
    )
