"""
Scroll Observation Schema
=========================

Pydantic model for scroll observations pushed by the page tracker.

Input Contract (from the tab's scroll tracker):
    {
        "scroll_position": 1480,
        "virtual_scroll_position": 2210,
        "viewport_width": 1280,
        "viewport_height": 800
    }

The virtual scroll position folds nested scroll-container movement into
a single coordinate. When present it takes precedence over the window
scroll position.

Example:
    from scrollstitch.models.scroll import ScrollObservation

    observation = ScrollObservation.model_validate_json(raw)
    await session.on_scroll_observed(observation)
"""

from typing import Optional

from pydantic import BaseModel, Field


class ScrollObservation(BaseModel):
    """
    One meaningful scroll movement (or the settle flush after movement).

    Attributes:
        scroll_position: Window-level scroll offset in CSS px
        virtual_scroll_position: Combined window + nested container offset
        viewport_width: Current viewport width (0 or None = unknown)
        viewport_height: Current viewport height (0 or None = unknown)
    """

    scroll_position: float = Field(
        ...,
        allow_inf_nan=False,
        description="Window-level scroll offset (CSS px)",
    )

    virtual_scroll_position: Optional[float] = Field(
        default=None,
        allow_inf_nan=False,
        description="Window plus nested scroll container offset (CSS px)",
    )

    viewport_width: Optional[int] = Field(
        default=None,
        ge=0,
        description="Viewport width at observation time",
    )

    viewport_height: Optional[int] = Field(
        default=None,
        ge=0,
        description="Viewport height at observation time",
    )

    @property
    def effective_position(self) -> int:
        """Observed position, preferring the virtual coordinate, rounded and >= 0."""
        observed = (
            self.virtual_scroll_position
            if self.virtual_scroll_position is not None
            else self.scroll_position
        )
        return max(0, round(observed))
