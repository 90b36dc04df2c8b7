from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Union

from PIL import Image

from .errors import InvalidDimension, SurfaceUnavailable
from .results import EncodedPayload
from .settings import OutputFormat
from .source import SourceImage, open_image


log = logging.getLogger(__name__)

# Highest-quality filter Pillow has; never fall back to NEAREST.
RESAMPLE = Image.Resampling.LANCZOS

# JPEG has no alpha channel; transparent pixels are composited onto this.
JPEG_BACKGROUND = (255, 255, 255)

PNG_COMPRESS_LEVEL = 9
WEBP_METHOD = 4  # 0-6, higher = smaller but slower

SourceLike = Union[bytes, SourceImage]


async def rasterize(
    source: SourceLike,
    width: int,
    height: int,
    format: OutputFormat,
    quality: float,
) -> EncodedPayload:
    """
    Draw the source stretched to exactly width x height and encode it.

    The only suspension point is the decode, which runs in a worker
    thread. Drawing and encoding happen synchronously once it completes.

    Raises:
        InvalidDimension: width or height <= 0
        DecodeError: the source is not a readable image
        SurfaceUnavailable: no surface of the requested size
    """
    _check_size(width, height)

    data = source.data if isinstance(source, SourceImage) else source
    im = await asyncio.to_thread(decode_image, data)
    return render(im, width, height, format, quality)


def decode_image(data: bytes) -> Image.Image:
    return open_image(data)


def render(
    im: Image.Image,
    width: int,
    height: int,
    format: OutputFormat,
    quality: float,
) -> EncodedPayload:
    _check_size(width, height)

    mode = "RGB" if format is OutputFormat.JPEG else "RGBA"
    surface = _allocate_surface(mode, width, height)

    try:
        src = im.convert("RGBA")
        if src.size != (width, height):
            src = src.resize((width, height), RESAMPLE)
    except MemoryError as ex:
        raise SurfaceUnavailable(width, height, str(ex) or type(ex).__name__) from ex

    if mode == "RGB":
        # Flatten alpha onto background, no transparency in JPEG
        surface.paste(src, (0, 0), src)
    else:
        surface.paste(src, (0, 0))

    buf = BytesIO()
    surface.save(buf, format=format.pil_format, **_build_save_kwargs(format, quality))
    data = buf.getvalue()

    log.debug("rendered %dx%d %s q=%.2f -> %d bytes", width, height, format.extension, quality, len(data))

    return EncodedPayload(
        data=data,
        format=format,
        quality=quality,
        width=width,
        height=height,
    )


def _check_size(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise InvalidDimension(width, height)


def _allocate_surface(mode: str, width: int, height: int) -> Image.Image:
    if mode == "RGB":
        color = JPEG_BACKGROUND
    else:
        color = (0, 0, 0, 0)
    try:
        return Image.new(mode, (width, height), color)
    except (MemoryError, ValueError, Image.DecompressionBombError) as ex:
        raise SurfaceUnavailable(width, height, str(ex) or type(ex).__name__) from ex


def _build_save_kwargs(format: OutputFormat, quality: float) -> dict:
    kwargs: dict = {}

    # Pillow wants 1-100; we carry 0.1-1.0
    q = max(1, min(100, int(round(quality * 100))))

    if format is OutputFormat.JPEG:
        kwargs["quality"] = q
        kwargs["optimize"] = True
        kwargs["progressive"] = True

    elif format is OutputFormat.PNG:
        # Lossless: quality is accepted and ignored.
        kwargs["compress_level"] = PNG_COMPRESS_LEVEL
        kwargs["optimize"] = True

    elif format is OutputFormat.WEBP:
        kwargs["quality"] = q
        kwargs["lossless"] = False
        kwargs["method"] = WEBP_METHOD

    return kwargs
