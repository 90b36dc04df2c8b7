from __future__ import annotations

import math
from dataclasses import replace
from enum import Enum

from .settings import MAX_PERCENTAGE, MIN_PERCENTAGE, ImageDimensions, ResizeOptions


class Axis(str, Enum):
    WIDTH = "width"
    HEIGHT = "height"
    PERCENTAGE = "percentage"


def round_half_up(x: float) -> int:
    # round(2.5) == 2 in Python; sizes should round 2.5 -> 3
    return int(math.floor(x + 0.5))


def clamp_percentage(value: float) -> int:
    return max(MIN_PERCENTAGE, min(MAX_PERCENTAGE, round_half_up(value)))


def scale_dimensions(original: ImageDimensions, percentage: float) -> ImageDimensions:
    return ImageDimensions(
        width=round_half_up(original.width * percentage / 100),
        height=round_half_up(original.height * percentage / 100),
    )


def resolve_dimension(
    original: ImageDimensions,
    options: ResizeOptions,
    changed_axis: Axis,
    new_value: float,
) -> ResizeOptions:
    """
    Apply one user edit to the target size and return the new options.

    - width/height edits below zero are ignored (options come back unchanged)
    - with the aspect-ratio lock on, the other axis follows the original ratio
    - percentage is always re-derived from width after a pixel edit
    - percentage edits are clamped to 1-500 and scale both axes, so the
      lock has nothing left to do in that case

    Pure: same input, same output.
    """
    if changed_axis is Axis.PERCENTAGE:
        pct = clamp_percentage(new_value)
        scaled = scale_dimensions(original, pct)
        return replace(options, percentage=pct, width=scaled.width, height=scaled.height)

    if new_value < 0:
        return options

    value = round_half_up(new_value)
    new_w = options.width
    new_h = options.height

    if changed_axis is Axis.WIDTH:
        new_w = value
        if options.maintain_aspect_ratio and original.width > 0:
            new_h = round_half_up(value * original.height / original.width)
    else:
        new_h = value
        if options.maintain_aspect_ratio and original.height > 0:
            new_w = round_half_up(value * original.width / original.height)

    if original.width > 0:
        pct = round_half_up(new_w / original.width * 100)
    else:
        pct = 0

    return replace(options, width=new_w, height=new_h, percentage=pct)
