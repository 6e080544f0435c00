"""
Full-Page Capture
=================

Automatic capture of a whole document: scroll through it one viewport at
a time, capture each position, restore the original scroll offset and
stitch.

Design Rules:
    - Captures go through the shared CaptureThrottle like any session
    - The original scroll position is restored on every exit path
    - The recorded position is the live one after scrolling (pages clamp
      or snap), falling back to the requested target
"""

import asyncio
import logging
from typing import List, Optional, Protocol

from scrollstitch.capture.store import dedupe_frames
from scrollstitch.capture.throttle import CaptureThrottle
from scrollstitch.errors import InvalidPageGeometry, NoFramesCaptured
from scrollstitch.imaging.stitcher import Stitcher
from scrollstitch.models.frame import Frame
from scrollstitch.models.output import StitchResult
from scrollstitch.models.page import CaptureOptions, PageSnapshot


logger = logging.getLogger(__name__)


class PageDriver(Protocol):
    """
    Protocol for reading and moving a tab's scroll position.
    """

    async def snapshot(self) -> Optional[PageSnapshot]:
        """Current page geometry, or None if the page cannot be queried."""
        ...

    async def scroll_to(self, x: float, y: float) -> None:
        """Scroll the window to an absolute offset."""
        ...


def plan_scroll_positions(full_height: int, viewport_height: int) -> List[int]:
    """
    Scroll targets covering the document: 0, vh, 2·vh, … and the final
    max scroll offset.
    """
    if viewport_height < 1:
        raise ValueError("viewport_height must be >= 1")

    max_scroll = max(full_height - viewport_height, 0)
    positions = list(range(0, max_scroll + 1, viewport_height))
    if positions[-1] != max_scroll:
        positions.append(max_scroll)
    return positions


async def capture_full_page(
    driver: PageDriver,
    throttle: CaptureThrottle,
    stitcher: Stitcher,
    window_ref: Optional[int] = None,
    options: Optional[CaptureOptions] = None,
    dedupe_radius: int = 24,
    settle_delay: float = 0.16,
) -> StitchResult:
    """
    Capture and stitch the whole document behind a page driver.

    Args:
        driver: Reads geometry and scrolls the tab
        throttle: Shared capture throttle
        stitcher: Stitcher for the collected frames
        window_ref: Window handle passed to the capture backend
        options: Requested encoding
        dedupe_radius: Duplicate threshold (CSS px)
        settle_delay: Seconds to wait after each scroll

    Returns:
        StitchResult

    Raises:
        InvalidPageGeometry: If the page reports no viewport
        NoFramesCaptured: If nothing was captured
        OutputTooLarge: If the document is too tall for one image
    """
    options = options or CaptureOptions()
    page = await driver.snapshot()

    if page is None or not page.has_geometry:
        raise InvalidPageGeometry("Unable to read page dimensions for full-page capture.")

    positions = plan_scroll_positions(page.full_height, page.viewport_height)
    viewport_width = page.viewport_width
    viewport_height = page.viewport_height
    frames: List[Frame] = []

    logger.info(
        f"Full-page capture: height={page.full_height}, "
        f"viewport={viewport_width}x{viewport_height}, positions={len(positions)}"
    )

    try:
        for target in positions:
            await driver.scroll_to(0, target)
            await asyncio.sleep(settle_delay)

            image = await throttle.capture(window_ref, options)

            try:
                live = await driver.snapshot()
            except Exception as e:
                logger.debug(f"Live snapshot failed after scrolling to {target}: {e}")
                live = None

            live_y = max(0, round(live.scroll_y)) if live is not None else target
            if live is not None and live.viewport_width > 0:
                viewport_width = live.viewport_width
            if live is not None and live.viewport_height > 0:
                viewport_height = live.viewport_height

            frames.append(Frame(scroll_position=live_y, image=image))
    finally:
        try:
            await driver.scroll_to(page.scroll_x, page.scroll_y)
        except Exception as e:
            logger.warning(f"Could not restore scroll position: {e}")

    if not frames:
        raise NoFramesCaptured("Could not capture full page.")

    return await asyncio.to_thread(
        stitcher.stitch,
        dedupe_frames(frames, dedupe_radius),
        viewport_width,
        viewport_height,
        options.image_format,
        options.quality,
    )
