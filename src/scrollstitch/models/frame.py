"""
Frame Data Model
================

Internal representation of one raw viewport capture.

Design Rules:
    - Frames are immutable once stored
    - The image stays encoded; decoding happens only while stitching
    - Scroll position is the virtual scroll coordinate in CSS pixels
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One capture of the visible viewport.

    Attributes:
        scroll_position: Virtual scroll position (CSS px, >= 0) reported
            when the capture was taken
        image: Encoded raster bytes (PNG or JPEG) as returned by the
            capture backend
    """

    scroll_position: int
    image: bytes

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the image bytes."""
        return (
            f"Frame(scroll_position={self.scroll_position}, "
            f"image_bytes={len(self.image)})"
        )
