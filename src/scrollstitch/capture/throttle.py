"""
Capture Throttle
================

Process-wide pacing of the raw capture primitive.

The browser's capture call is rate-limited per second across the whole
extension, not per tab, so every capture from every session goes
through one throttle.

Design Rules:
    - One raw capture in flight at a time, in FIFO order
    - At least min_interval seconds between captures, measured from the
      last successful capture
    - A quota rejection is retried once after retry_backoff seconds; a
      second rejection propagates
    - Access-denied and other failures propagate immediately
"""

import asyncio
import logging
import time
from typing import Optional

from scrollstitch.capture.backend import RawCapture
from scrollstitch.errors import CaptureQuotaExceeded
from scrollstitch.models.page import CaptureOptions


logger = logging.getLogger(__name__)


class CaptureThrottleMetrics:
    """Metrics for CaptureThrottle observability."""

    __slots__ = (
        "captures",
        "quota_retries",
        "failures",
        "total_wait_seconds",
    )

    def __init__(self) -> None:
        self.captures: int = 0
        self.quota_retries: int = 0
        self.failures: int = 0
        self.total_wait_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "captures": self.captures,
            "quota_retries": self.quota_retries,
            "failures": self.failures,
            "total_wait_seconds": round(self.total_wait_seconds, 3),
        }


class CaptureThrottle:
    """
    Serializing, rate-limiting wrapper around a RawCapture backend.

    Attributes:
        backend: The raw capture primitive
        min_interval: Minimum seconds between captures
        retry_backoff: Seconds to wait before retrying a quota rejection
        metrics: Operational metrics

    Example:
        throttle = CaptureThrottle(backend, min_interval=0.55, retry_backoff=0.8)
        image = await throttle.capture(window_ref, CaptureOptions())
    """

    def __init__(
        self,
        backend: RawCapture,
        min_interval: float = 0.55,
        retry_backoff: float = 0.8,
    ) -> None:
        if min_interval < 0 or retry_backoff < 0:
            raise ValueError("min_interval and retry_backoff must be >= 0")

        self.backend = backend
        self.min_interval = min_interval
        self.retry_backoff = retry_backoff
        self.metrics = CaptureThrottleMetrics()

        self._lock = asyncio.Lock()
        self._last_capture_at: Optional[float] = None

    async def capture(self, window_ref: Optional[int], options: CaptureOptions) -> bytes:
        """
        Perform one paced raw capture.

        Args:
            window_ref: Opaque window handle passed to the backend
            options: Requested encoding

        Returns:
            Encoded image bytes

        Raises:
            CaptureQuotaExceeded: If the retry is also rejected
            CaptureAccessDenied: If the page cannot be captured
        """
        async with self._lock:
            await self._wait_for_slot()

            try:
                image = await self.backend.capture(window_ref, options.image_format, options.quality)
            except CaptureQuotaExceeded:
                self.metrics.quota_retries += 1
                logger.warning(
                    f"Capture quota exceeded, retrying once in {self.retry_backoff:.2f}s"
                )
                await asyncio.sleep(self.retry_backoff)
                try:
                    image = await self.backend.capture(window_ref, options.image_format, options.quality)
                except Exception:
                    self.metrics.failures += 1
                    raise
            except Exception:
                self.metrics.failures += 1
                raise

            self._last_capture_at = time.monotonic()
            self.metrics.captures += 1
            return image

    async def _wait_for_slot(self) -> None:
        """Sleep out the remainder of the minimum interval."""
        if self._last_capture_at is None:
            return

        # Timers may fire slightly early
        remaining = self.min_interval - (time.monotonic() - self._last_capture_at)
        while remaining > 0:
            self.metrics.total_wait_seconds += remaining
            await asyncio.sleep(remaining)
            remaining = self.min_interval - (time.monotonic() - self._last_capture_at)
