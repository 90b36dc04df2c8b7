from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResizeMode(str, Enum):
    PIXELS = "pixels"
    PERCENTAGE = "percentage"


class OutputFormat(str, Enum):
    """
    Encoders we can write to.

    Values are MIME types so a format can be handed straight to anything
    that wants a content type (data URLs, the analysis service, ...).
    """

    JPEG = "image/jpeg"
    PNG = "image/png"
    WEBP = "image/webp"

    @property
    def extension(self) -> str:
        # image/jpeg -> jpeg
        return self.value.split("/", 1)[1]

    @property
    def pil_format(self) -> str:
        return self.extension.upper()

    @property
    def supports_quality(self) -> bool:
        return self is not OutputFormat.PNG

    @classmethod
    def parse(cls, text: str) -> "OutputFormat":
        """
        Accept "image/webp", "webp", "WEBP", "jpg", ...
        """
        t = text.strip().lower()
        if t == "jpg":
            t = "jpeg"
        for fmt in cls:
            if t in (fmt.value, fmt.extension):
                return fmt
        raise ValueError(f"Unknown output format: {text}")


# Percentage scale is bounded on both sides; 0% would produce an empty surface.
MIN_PERCENTAGE = 1
MAX_PERCENTAGE = 500

MIN_QUALITY = 0.1
MAX_QUALITY = 1.0


@dataclass(frozen=True)
class ImageDimensions:
    """Natural size of a decoded source image."""

    width: int
    height: int


@dataclass(frozen=True)
class ResizeOptions:
    """
    All user-editable knobs for one open image.

    Pure data object; edits go through dataclasses.replace so every
    change produces a new value:
    - the dimension resolver stays a pure function
    - the scheduler can tell which run saw which options
    """

    # ----- Target size -----
    width: int = 0
    height: int = 0
    percentage: int = 100  # 1-500
    mode: ResizeMode = ResizeMode.PIXELS
    maintain_aspect_ratio: bool = True

    # ----- Encoding -----
    # 0.1-1.0, ignored by lossless formats (PNG)
    quality: float = 0.8
    format: OutputFormat = OutputFormat.JPEG

    @classmethod
    def for_dimensions(cls, dims: ImageDimensions, **overrides) -> "ResizeOptions":
        """Defaults reset to the image's natural size at 100%."""
        values = {"width": dims.width, "height": dims.height, "percentage": 100}
        values.update(overrides)
        return cls(**values)


DEFAULT_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class AnalyzerSettings:
    """
    Configuration for the image analysis service.

    Read from the environment by default:
      OPENAI_API_KEY       credentials (analysis falls back without it)
      ECOLENS_MODEL        chat model, default gpt-4o-mini
      ECOLENS_MAX_TOKENS   reply budget, default 400
      ECOLENS_TEMPERATURE  sampling temperature, default 0.4
    """

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 400
    temperature: float = 0.4

    @classmethod
    def from_env(cls) -> "AnalyzerSettings":
        return cls(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            model=os.getenv("ECOLENS_MODEL", DEFAULT_MODEL),
            max_tokens=int(os.getenv("ECOLENS_MAX_TOKENS", "400")),
            temperature=float(os.getenv("ECOLENS_TEMPERATURE", "0.4")),
        )
