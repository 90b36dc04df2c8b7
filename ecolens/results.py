from __future__ import annotations

import base64
import math
from dataclasses import dataclass
from typing import Optional

from .settings import OutputFormat


# Length of "data:image/png;base64," - the header the size estimate backs out.
DATA_URL_HEADER_LENGTH = 22

# base64 turns 3 bytes into 4 characters.
BASE64_CORRECTION = 0.75

# Grams of CO2 per MB transferred. A fixed figure, not derived from anything
# measured here.
ENERGY_COEFFICIENT = 0.35

# Roughly what one smartphone charge costs, in grams of CO2.
SMARTPHONE_CHARGE_GRAMS = 0.01


@dataclass(frozen=True)
class EncodedPayload:
    """
    Output of one rasterization run.

    Immutable; a new run produces a new payload and the old one is dropped.
    """
    data: bytes
    format: OutputFormat
    quality: float
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return self.format.value

    @property
    def byte_length(self) -> int:
        return len(self.data)

    @property
    def data_url(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{b64}"


@dataclass(frozen=True)
class SavingsEstimate:
    original_bytes: int
    estimated_new_bytes: int
    saved_bytes: int
    saved_co2_grams: float
    percent_of_original: int

    @property
    def smartphone_charges(self) -> int:
        if self.saved_co2_grams <= 0:
            return 0
        return math.ceil(self.saved_co2_grams / SMARTPHONE_CHARGE_GRAMS)


def estimate_payload_bytes(payload: EncodedPayload) -> int:
    """
    Approximate binary size from the data URL length.

    Deliberately an estimate: it subtracts a fixed header length whatever
    the MIME type and ignores base64 padding.
    """
    chars = len(payload.data_url) - DATA_URL_HEADER_LENGTH
    return max(0, int(math.floor(chars * BASE64_CORRECTION + 0.5)))


def estimate(
    original_bytes: int,
    payload: Optional[EncodedPayload] = None,
    *,
    exact: bool = False,
) -> SavingsEstimate:
    """
    Savings of payload versus an original of original_bytes.

    With no payload yet the new size is the original size. exact=True
    measures the real binary length instead of estimating it.
    Never raises.
    """
    original_bytes = max(0, int(original_bytes))

    if payload is None:
        new_bytes = original_bytes
    elif exact:
        new_bytes = payload.byte_length
    else:
        new_bytes = estimate_payload_bytes(payload)

    saved = max(0, original_bytes - new_bytes)
    co2 = saved / (1024 * 1024) * ENERGY_COEFFICIENT

    if original_bytes <= 0:
        percent = 0
    else:
        percent = int(math.floor(new_bytes / original_bytes * 100 + 0.5))

    return SavingsEstimate(
        original_bytes=original_bytes,
        estimated_new_bytes=new_bytes,
        saved_bytes=saved,
        saved_co2_grams=co2,
        percent_of_original=percent,
    )
