"""
Frame Store
===========

Per-session frame storage keyed by scroll position.

Design Rules:
    - Frames are kept sorted by scroll position at all times
    - A frame within dedupe_radius of a stored one is rejected
    - Stored frames are never rescaled or modified
"""

import bisect
import logging
from typing import List, Sequence, Tuple

from scrollstitch.models.frame import Frame


logger = logging.getLogger(__name__)


def is_nearby(a: int, b: int, dedupe_radius: int) -> bool:
    """True if two scroll positions are duplicates of each other."""
    return abs(a - b) <= dedupe_radius


def dedupe_frames(frames: Sequence[Frame], dedupe_radius: int) -> List[Frame]:
    """
    Collapse near-duplicate frames.

    Sorts ascending by scroll position, then keeps a frame only if it is
    not within dedupe_radius of the last kept frame. Idempotent.

    Args:
        frames: Frames from any capture path
        dedupe_radius: Duplicate threshold (CSS px)

    Returns:
        Ordered, deduplicated list
    """
    kept: List[Frame] = []
    for frame in sorted(frames, key=lambda f: f.scroll_position):
        if kept and is_nearby(kept[-1].scroll_position, frame.scroll_position, dedupe_radius):
            continue
        kept.append(frame)
    return kept


class FrameStore:
    """
    Sorted, deduplicated frame set for one capture session.

    Attributes:
        dedupe_radius: Duplicate threshold (CSS px)

    Example:
        store = FrameStore(dedupe_radius=24)
        store.add(0, png_bytes)      # True
        store.add(10, png_bytes)     # False, within 24px of 0
        store.add(700, png_bytes)    # True
    """

    def __init__(self, dedupe_radius: int = 24) -> None:
        if dedupe_radius < 0:
            raise ValueError("dedupe_radius must be >= 0")

        self.dedupe_radius = dedupe_radius
        self._frames: List[Frame] = []
        self._positions: List[int] = []
        self._rejected_count: int = 0

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def frames(self) -> Tuple[Frame, ...]:
        """Stored frames in scroll order."""
        return tuple(self._frames)

    @property
    def rejected_count(self) -> int:
        """Frames rejected as duplicates."""
        return self._rejected_count

    def has_nearby(self, scroll_position: int) -> bool:
        """True if a stored frame lies within dedupe_radius of the position."""
        index = bisect.bisect_left(self._positions, scroll_position)
        for neighbor in (index - 1, index):
            if 0 <= neighbor < len(self._positions) and is_nearby(
                self._positions[neighbor], scroll_position, self.dedupe_radius
            ):
                return True
        return False

    def add(self, scroll_position: int, image: bytes) -> bool:
        """
        Store a frame unless a nearby one already exists.

        Args:
            scroll_position: Scroll position of the capture (CSS px)
            image: Encoded image bytes

        Returns:
            True if stored, False if rejected as a duplicate
        """
        if self.has_nearby(scroll_position):
            self._rejected_count += 1
            logger.debug(f"Rejected duplicate frame at scroll {scroll_position}")
            return False

        index = bisect.bisect_right(self._positions, scroll_position)
        self._positions.insert(index, scroll_position)
        self._frames.insert(index, Frame(scroll_position=scroll_position, image=image))
        return True

    def clear(self) -> int:
        """
        Release all frames.

        Returns:
            Number of frames released.
        """
        released = len(self._frames)
        self._frames.clear()
        self._positions.clear()
        return released
