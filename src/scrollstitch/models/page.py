"""
Page Models
===========

Page geometry snapshots and capture options shared by sessions,
the full-page capturer and the service layer.
"""

from pydantic import BaseModel, Field


class PageSnapshot(BaseModel):
    """
    Geometry of a page at one instant.

    Attributes:
        full_height: Total scrollable document height (CSS px, 0 = unknown)
        viewport_width: Visible viewport width (CSS px)
        viewport_height: Visible viewport height (CSS px)
        scroll_x: Horizontal scroll offset
        scroll_y: Vertical (virtual) scroll offset
    """

    full_height: int = Field(default=0, ge=0)
    viewport_width: int = Field(..., ge=0)
    viewport_height: int = Field(..., ge=0)
    scroll_x: float = Field(default=0.0, allow_inf_nan=False)
    scroll_y: float = Field(default=0.0, allow_inf_nan=False)

    @property
    def has_geometry(self) -> bool:
        """True if both viewport dimensions are non-zero."""
        return self.viewport_width > 0 and self.viewport_height > 0


class CaptureOptions(BaseModel):
    """Encoding requested from the raw capture backend and for the output."""

    image_format: str = Field(default="png", pattern="^(png|jpeg)$")
    quality: int = Field(default=92, ge=1, le=100)
