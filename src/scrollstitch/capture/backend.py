"""
Capture Backends
================

The raw capture primitive is an external capability. This module
defines its protocol and a deterministic document-backed implementation.

Backends:
    - RawCapture: Protocol every backend implements
    - DocumentCapture: Renders viewport crops of a tall page image at a
      simulated scroll position (testing, demos, offline replays)

Design Rules:
    - Backends return encoded bytes; decoding happens only in stitching
    - Rate-limit rejections raise CaptureQuotaExceeded
    - Protected pages raise CaptureAccessDenied
"""

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

import cv2
import numpy as np

from scrollstitch.errors import ImageDecodeError
from scrollstitch.imaging.codec import encode_image
from scrollstitch.models.page import PageSnapshot
from scrollstitch.models.scroll import ScrollObservation


logger = logging.getLogger(__name__)


class RawCapture(Protocol):
    """
    Protocol for raw viewport capture backends.

    All implementations must provide an async `capture` method returning
    the visible viewport of the window as encoded image bytes.
    """

    async def capture(self, window_ref: Optional[int], image_format: str, quality: int) -> bytes:
        """
        Capture the visible viewport.

        Args:
            window_ref: Opaque window handle (None = current window)
            image_format: "png" or "jpeg"
            quality: JPEG quality 1-100

        Returns:
            Encoded image bytes

        Raises:
            CaptureQuotaExceeded: Transient rate-limit rejection
            CaptureAccessDenied: The page cannot be captured
        """
        ...


# Live scroll snapshot of a tab; None when the tab cannot be queried
ScrollProbe = Callable[[], Awaitable[Optional[ScrollObservation]]]


def synthetic_document(width: int = 1280, height: int = 4000, seed: int = 7) -> np.ndarray:
    """
    Build a textured page image with unambiguous rows.

    Horizontal bands of varying tone plus per-pixel noise, so any two
    windows of the page differ in luma.
    """
    rng = np.random.default_rng(seed)
    page = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    bands = (np.arange(height) // 37 % 5 * 40).astype(np.uint8)
    page[:, : width // 4] = bands[:, None, None]
    return page


class DocumentCapture:
    """
    Capture backend over a tall page image.

    Simulates a browser tab: holds a scroll position (CSS px), renders the
    viewport at that position, and follows scroll observations. Also acts
    as the page driver for full-page capture.

    Attributes:
        viewport_width: Viewport width (CSS px)
        viewport_height: Viewport height (CSS px)
        device_scale: Image pixels per CSS pixel
        capture_count: Number of captures served

    Example:
        backend = DocumentCapture(page_bgr, viewport_width=1280, viewport_height=800)
        await backend.scroll_to(0, 750)
        frame_bytes = await backend.capture(None, "png", 92)
    """

    def __init__(
        self,
        document: np.ndarray,
        viewport_width: int,
        viewport_height: int,
    ) -> None:
        if document.ndim != 3 or document.shape[2] != 3:
            raise ValueError(f"document must be (H, W, 3), got {document.shape}")
        if viewport_width < 1 or viewport_height < 1:
            raise ValueError("viewport dimensions must be >= 1")

        self.document = document
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.device_scale = document.shape[1] / viewport_width
        self.capture_count = 0
        self._scroll_y = 0

        logger.info(
            f"DocumentCapture initialized: document={document.shape[1]}x{document.shape[0]}px, "
            f"viewport={viewport_width}x{viewport_height}, scale={self.device_scale:.2f}"
        )

    @classmethod
    def from_file(cls, path: str, viewport_width: int, viewport_height: int) -> "DocumentCapture":
        """
        Load the page image from disk.

        Raises:
            ImageDecodeError: If the file cannot be read as an image
        """
        document = cv2.imread(str(Path(path)), cv2.IMREAD_COLOR)
        if document is None:
            raise ImageDecodeError(f"Failed to load document image: {path}")
        return cls(document, viewport_width, viewport_height)

    @property
    def full_height(self) -> int:
        """Document height in CSS px."""
        return int(self.document.shape[0] / self.device_scale)

    @property
    def max_scroll(self) -> int:
        return max(self.full_height - self.viewport_height, 0)

    @property
    def scroll_y(self) -> int:
        return self._scroll_y

    async def scroll_to(self, x: float, y: float) -> None:
        """Scroll the simulated tab (horizontal offset is ignored)."""
        self._scroll_y = int(min(max(round(y), 0), self.max_scroll))

    def follow(self, observation: ScrollObservation) -> None:
        """Move to the position reported by a scroll observation."""
        self._scroll_y = int(min(observation.effective_position, self.max_scroll))

    async def snapshot(self) -> PageSnapshot:
        """Current page geometry."""
        return PageSnapshot(
            full_height=self.full_height,
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
            scroll_x=0,
            scroll_y=self._scroll_y,
        )

    async def probe(self) -> ScrollObservation:
        """Live scroll snapshot, usable as a session ScrollProbe."""
        return ScrollObservation(
            scroll_position=self._scroll_y,
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
        )

    async def capture(self, window_ref: Optional[int], image_format: str, quality: int) -> bytes:
        """Render the viewport at the current scroll position."""
        top = round(self._scroll_y * self.device_scale)
        height = round(self.viewport_height * self.device_scale)
        view = self.document[top:top + height]

        if view.shape[0] < height:
            padded = np.zeros((height, self.document.shape[1], 3), dtype=np.uint8)
            padded[: view.shape[0]] = view
            view = padded

        self.capture_count += 1
        return encode_image(view, image_format, quality)


def create_capture_backend(settings) -> DocumentCapture:
    """
    Create the capture backend selected by config.

    Fails fast on unknown backends.
    """
    backend = settings.backend

    if backend.kind == "document":
        if backend.document_path:
            logger.info(f"Using DocumentCapture from {backend.document_path}")
            return DocumentCapture.from_file(
                backend.document_path, backend.viewport_width, backend.viewport_height
            )

        logger.info("Using DocumentCapture with a synthetic page")
        return DocumentCapture(
            synthetic_document(width=backend.viewport_width, height=backend.viewport_height * 5),
            backend.viewport_width,
            backend.viewport_height,
        )

    raise ValueError(f"Unknown capture backend: {backend.kind}")
