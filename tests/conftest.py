"""Shared fixtures: synthetic images built with Pillow, no files on disk needed."""

from io import BytesIO

import pytest
from PIL import Image

from ecolens.settings import ImageDimensions
from ecolens.source import SourceImage


def make_image_bytes(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    """Gradient image so encoders have something to compress."""
    im = Image.new(mode, (width, height))
    px = im.load()
    for y in range(height):
        for x in range(width):
            r = (x * 255) // max(1, width - 1)
            g = (y * 255) // max(1, height - 1)
            if mode == "RGBA":
                px[x, y] = (r, g, 128, 255 if x < width // 2 else 0)
            else:
                px[x, y] = (r, g, 128)
    buf = BytesIO()
    im.save(buf, format=fmt)
    return buf.getvalue()


def make_source(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> SourceImage:
    data = make_image_bytes(width, height, fmt, mode)
    return SourceImage(
        data=data,
        name=f"sample.{fmt.lower()}",
        mime_type=Image.MIME[fmt],
        dimensions=ImageDimensions(width, height),
    )


@pytest.fixture
def source_100() -> SourceImage:
    return make_source(100, 100)


@pytest.fixture
def wide_source() -> SourceImage:
    return make_source(200, 100)


@pytest.fixture
def sample_image_path(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(make_image_bytes(120, 80))
    return path
