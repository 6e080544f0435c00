"""
Test Configuration
==================

Pytest fixtures and test configuration for ScrollStitch.

Pages are rendered at 320px wide with a 320x800 viewport, so source
pixels equal CSS pixels and luma samples are taken at full resolution.
"""

import asyncio
import time
from typing import List, Optional, Tuple

import numpy as np
import pytest

from scrollstitch.capture.backend import DocumentCapture, synthetic_document
from scrollstitch.errors import CaptureAccessDenied, CaptureQuotaExceeded
from scrollstitch.imaging.codec import decode_image, encode_image


VIEWPORT_WIDTH = 320
VIEWPORT_HEIGHT = 800


class RecordingCapture:
    """
    Fake capture backend that records call times and concurrency.

    Attributes:
        calls: (start, end) monotonic timestamps of each capture
        max_in_flight: Highest number of overlapping captures seen
        quota_failures: Number of upcoming calls to reject with a quota error
        deny_access: Reject every call as a protected page
    """

    def __init__(self, image: bytes, latency: float = 0.0) -> None:
        self.image = image
        self.latency = latency
        self.calls: List[Tuple[float, float]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.quota_failures = 0
        self.deny_access = False

    async def capture(self, window_ref: Optional[int], image_format: str, quality: int) -> bytes:
        started = time.monotonic()
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            if self.deny_access:
                raise CaptureAccessDenied("Cannot access a chrome:// URL")
            if self.quota_failures > 0:
                self.quota_failures -= 1
                raise CaptureQuotaExceeded("MAX_CAPTURE_VISIBLE_TAB_CALLS_PER_SECOND")
            return self.image
        finally:
            self.in_flight -= 1
            self.calls.append((started, time.monotonic()))


def encode(pixels: np.ndarray) -> bytes:
    """Lossless encode for building frames by hand."""
    return encode_image(pixels, "png")


def decode(data: bytes) -> np.ndarray:
    return decode_image(data, label="test output")


@pytest.fixture
def document() -> np.ndarray:
    """A 320x2400 textured page."""
    return synthetic_document(width=VIEWPORT_WIDTH, height=2400, seed=11)


@pytest.fixture
def document_backend(document) -> DocumentCapture:
    """Document backend with a 320x800 viewport."""
    return DocumentCapture(document, VIEWPORT_WIDTH, VIEWPORT_HEIGHT)


@pytest.fixture
def recording_backend(document) -> RecordingCapture:
    """Recording backend serving the first viewport of the document."""
    return RecordingCapture(encode(document[:VIEWPORT_HEIGHT]))
