from __future__ import annotations


class ResizeError(Exception):
    """Base class for failures of a single resize attempt."""


class DecodeError(ResizeError):
    """The source image could not be read (corrupt, truncated or unsupported)."""


class SurfaceUnavailable(ResizeError):
    """A drawing surface of the requested size could not be allocated."""

    def __init__(self, width: int, height: int, reason: str = "") -> None:
        msg = f"cannot process image here: no {width}x{height} surface"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.width = width
        self.height = height


class InvalidDimension(ResizeError):
    """Target width/height is zero or negative."""

    def __init__(self, width: int, height: int) -> None:
        super().__init__(f"invalid target size {width}x{height}")
        self.width = width
        self.height = height
