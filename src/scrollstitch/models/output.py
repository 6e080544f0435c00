"""
Output Models
=============

Stitched image output handed to the external consumer and its download
name.

Filename format:
    screenshot_<mode>_YYYY-MM-DD_HH-MM-SS.<format>
    e.g. screenshot_extended_2026-10-19_14-03-22.png
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class StitchResult:
    """
    One composited, encoded image.

    Attributes:
        image: Encoded image bytes
        image_format: "png" or "jpeg"
        width: Output width in pixels
        height: Output height in pixels
        frame_count: Number of frames that contributed
    """

    image: bytes
    image_format: str
    width: int
    height: int
    frame_count: int

    @property
    def media_type(self) -> str:
        return "image/jpeg" if self.image_format == "jpeg" else "image/png"

    def __repr__(self) -> str:
        return (
            f"StitchResult({self.width}x{self.height}, "
            f"format={self.image_format}, frames={self.frame_count})"
        )


def build_filename(image_format: str = "png", mode: str = "visible", now: Optional[datetime] = None) -> str:
    """Build the download name for a capture, e.g. screenshot_extended_2026-10-19_14-03-22.png."""
    now = now or datetime.now()
    return f"screenshot_{mode}_{now:%Y-%m-%d_%H-%M-%S}.{image_format}"
