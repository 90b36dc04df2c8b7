from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError
from .settings import ImageDimensions


@dataclass(frozen=True)
class SourceImage:
    """
    An image as it was handed to us (file picker, CLI argument, ...).

    data is the untouched encoded file; its length is the "original size"
    every savings figure is measured against.
    """

    data: bytes
    name: str
    mime_type: str
    dimensions: ImageDimensions

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def basename(self) -> str:
        return Path(self.name).stem


def read_dimensions(data: bytes) -> ImageDimensions:
    """Natural (orientation-corrected) size of an encoded image."""
    try:
        with Image.open(BytesIO(data)) as im:
            # Only the header is parsed here; EXIF rotation swaps the axes.
            w, h = im.size
            orientation = im.getexif().get(0x0112, 1)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as ex:
        raise DecodeError(f"cannot read image: {ex}") from ex

    if orientation in (5, 6, 7, 8):
        w, h = h, w
    return ImageDimensions(width=w, height=h)


def load_source(path: Path) -> SourceImage:
    path = Path(path)
    data = path.read_bytes()

    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        mime_type = _sniff_mime_type(data)

    return SourceImage(
        data=data,
        name=path.name,
        mime_type=mime_type,
        dimensions=read_dimensions(data),
    )


def _sniff_mime_type(data: bytes) -> str:
    try:
        with Image.open(BytesIO(data)) as im:
            fmt = im.format
    except (UnidentifiedImageError, OSError) as ex:
        raise DecodeError(f"cannot read image: {ex}") from ex
    return Image.MIME.get(fmt or "", "image/jpeg")


# Shared by the engine: the decoded, orientation-corrected image.
def open_image(data: bytes) -> Image.Image:
    try:
        im = Image.open(BytesIO(data))
        im.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as ex:
        raise DecodeError(f"cannot decode image: {ex}") from ex

    # Match what a browser shows: honour the EXIF orientation tag.
    return ImageOps.exif_transpose(im)
