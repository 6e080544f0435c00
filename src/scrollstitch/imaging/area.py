"""
Area Crop
=========

Crops a user-selected rectangle out of one visible-viewport capture.

The selection arrives in CSS pixels relative to the viewport and may
have negative width/height (dragged up or left) or extend past the
viewport edges. It is normalized, scaled into source pixels (floor the
origin, ceil the size) and cropped.
"""

import logging
import math
from typing import Tuple

from pydantic import BaseModel, Field

from scrollstitch.errors import InvalidPageGeometry, OutputTooLarge, SelectionTooSmall
from scrollstitch.imaging.codec import decode_image, encode_image
from scrollstitch.models.output import StitchResult


logger = logging.getLogger(__name__)

MIN_SELECTION_CSS = 2


class SelectionRect(BaseModel):
    """Selection rectangle in viewport CSS pixels."""

    x: float = Field(default=0.0, allow_inf_nan=False)
    y: float = Field(default=0.0, allow_inf_nan=False)
    width: float = Field(default=0.0, allow_inf_nan=False)
    height: float = Field(default=0.0, allow_inf_nan=False)


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def normalize_rect(rect: SelectionRect, viewport_width: float, viewport_height: float) -> SelectionRect:
    """Clamp a selection to the viewport and make its extent non-negative."""
    x1 = _clamp(rect.x, 0, viewport_width)
    y1 = _clamp(rect.y, 0, viewport_height)
    x2 = _clamp(rect.x + rect.width, 0, viewport_width)
    y2 = _clamp(rect.y + rect.height, 0, viewport_height)

    left, right = min(x1, x2), max(x1, x2)
    top, bottom = min(y1, y2), max(y1, y2)

    return SelectionRect(x=left, y=top, width=right - left, height=bottom - top)


def source_region(
    rect: SelectionRect,
    viewport_width: float,
    viewport_height: float,
    image_width: int,
    image_height: int,
) -> Tuple[int, int, int, int]:
    """Map a normalized CSS rect to (x, y, width, height) in image pixels."""
    scale_x = image_width / viewport_width
    scale_y = image_height / viewport_height

    x = int(_clamp(math.floor(rect.x * scale_x), 0, image_width - 1))
    y = int(_clamp(math.floor(rect.y * scale_y), 0, image_height - 1))
    width = int(_clamp(math.ceil(rect.width * scale_x), 1, image_width - x))
    height = int(_clamp(math.ceil(rect.height * scale_y), 1, image_height - y))

    return x, y, width, height


def crop_area(
    image: bytes,
    rect: SelectionRect,
    viewport_width: int,
    viewport_height: int,
    image_format: str = "png",
    quality: int = 92,
    max_surface_edge: int = 32767,
) -> StitchResult:
    """
    Crop a selection from a visible-viewport capture.

    Raises:
        InvalidPageGeometry: If the viewport has zero size
        SelectionTooSmall: If the normalized selection is under 2x2 CSS px
        OutputTooLarge: If the crop exceeds max_surface_edge
    """
    if viewport_width <= 0 or viewport_height <= 0:
        raise InvalidPageGeometry("Invalid viewport dimensions for area capture.")

    normalized = normalize_rect(rect, viewport_width, viewport_height)
    if normalized.width < MIN_SELECTION_CSS or normalized.height < MIN_SELECTION_CSS:
        raise SelectionTooSmall()

    pixels = decode_image(image, label="area capture")
    try:
        image_height, image_width = pixels.shape[:2]
        x, y, width, height = source_region(
            normalized, viewport_width, viewport_height, image_width, image_height
        )

        if width > max_surface_edge or height > max_surface_edge:
            raise OutputTooLarge("Selected area is too large to process.")

        cropped = pixels[y:y + height, x:x + width]
        encoded = encode_image(cropped, image_format, quality)
    finally:
        pixels = None

    logger.info(f"Cropped area {width}x{height} at ({x}, {y})")

    return StitchResult(
        image=encoded,
        image_format=image_format,
        width=width,
        height=height,
        frame_count=1,
    )
