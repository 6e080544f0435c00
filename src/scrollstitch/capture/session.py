"""
Capture Session
===============

Per-tab state machine that turns scroll observations into stored frames
and, on finish, into one stitched image.

Lifecycle:
    IDLE ──start()──▶ ACTIVE ──finish()──▶ FINISHING ──▶ TERMINATED
                        │
                        └──cancel()────────────────────▶ TERMINATED

Flow:
    on_scroll_observed() ─▶ CaptureRequestQueue (bounded) ─▶ capture worker
        ─▶ CaptureThrottle ─▶ FrameStore

Design Rules:
    - One worker task per session; scroll events coalesce into queue
      tokens, never into parallel captures
    - The dedupe check runs before paying for a raw capture
    - Per-frame capture failures are logged and counted, never fatal
    - Results arriving after cancellation are discarded silently
    - Frames are released on every exit path of finish() and cancel()
"""

import asyncio
import logging
from typing import Optional

from scrollstitch.capture.backend import ScrollProbe
from scrollstitch.capture.queue import CaptureRequestQueue
from scrollstitch.capture.store import FrameStore, dedupe_frames
from scrollstitch.capture.throttle import CaptureThrottle
from scrollstitch.errors import (
    CaptureAccessDenied,
    CaptureError,
    InvalidPageGeometry,
    NoFramesCaptured,
    SessionNotActive,
    to_user_error,
)
from scrollstitch.imaging.stitcher import Stitcher
from scrollstitch.models.output import StitchResult
from scrollstitch.models.page import CaptureOptions, PageSnapshot
from scrollstitch.models.scroll import ScrollObservation
from scrollstitch.models.session import SessionState, SessionStatus


logger = logging.getLogger(__name__)


class CaptureSessionMetrics:
    """Metrics for CaptureSession observability."""

    __slots__ = (
        "requests_enqueued",
        "frames_stored",
        "captures_skipped",
        "capture_failures",
        "results_discarded",
    )

    def __init__(self) -> None:
        self.requests_enqueued: int = 0
        self.frames_stored: int = 0
        self.captures_skipped: int = 0
        self.capture_failures: int = 0
        self.results_discarded: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "requests_enqueued": self.requests_enqueued,
            "frames_stored": self.frames_stored,
            "captures_skipped": self.captures_skipped,
            "capture_failures": self.capture_failures,
            "results_discarded": self.results_discarded,
        }


class CaptureSession:
    """
    Multi-frame capture session for one tab.

    Attributes:
        tab_id: Tab the session belongs to
        window_ref: Window handle passed to the capture backend
        options: Encoding for raw captures and the stitched output
        state: Current lifecycle state
        store: Frames captured so far
        viewport_width: Freshest known viewport width (CSS px)
        viewport_height: Freshest known viewport height (CSS px)
        last_known_scroll_position: Latest observed scroll position
        metrics: Operational metrics

    Example:
        session = CaptureSession(tab_id=7, throttle=throttle, stitcher=stitcher)
        await session.start(PageSnapshot(viewport_width=1280, viewport_height=800))

        await session.on_scroll_observed(ScrollObservation(scroll_position=700))
        ...
        result = await session.finish()
    """

    def __init__(
        self,
        tab_id: int,
        throttle: CaptureThrottle,
        stitcher: Stitcher,
        window_ref: Optional[int] = None,
        options: Optional[CaptureOptions] = None,
        dedupe_radius: int = 24,
        max_pending_requests: int = 20,
        scroll_probe: Optional[ScrollProbe] = None,
    ) -> None:
        self.tab_id = tab_id
        self.throttle = throttle
        self.stitcher = stitcher
        self.window_ref = window_ref
        self.options = options or CaptureOptions()
        self.scroll_probe = scroll_probe

        self.state = SessionState.IDLE
        self.store = FrameStore(dedupe_radius=dedupe_radius)
        self.viewport_width: int = 0
        self.viewport_height: int = 0
        self.last_known_scroll_position: int = 0
        self.metrics = CaptureSessionMetrics()

        self._requests = CaptureRequestQueue(maxsize=max_pending_requests)
        self._worker: Optional[asyncio.Task] = None
        self._capturing: bool = False
        self._last_error: Optional[CaptureError] = None

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    @property
    def frame_count(self) -> int:
        return len(self.store)

    @property
    def pending_request_count(self) -> int:
        return self._requests.size

    @property
    def is_capture_loop_running(self) -> bool:
        """Whether the worker is currently draining requests."""
        return self._capturing

    def queue_metrics(self) -> dict:
        """Backlog metrics of the capture request queue."""
        return self._requests.metrics()

    def status(self, message: str = "") -> SessionStatus:
        """Serializable snapshot of the session."""
        return SessionStatus(
            tab_id=self.tab_id,
            state=self.state,
            active=self.is_active,
            frame_count=self.frame_count,
            pending_request_count=self.pending_request_count,
            is_capture_loop_running=self._capturing,
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
            last_known_scroll_position=self.last_known_scroll_position,
            message=message,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, page: PageSnapshot) -> SessionStatus:
        """
        Enter ACTIVE and take the initial capture.

        Args:
            page: Page geometry at start

        Returns:
            Session status after the initial capture drained

        Raises:
            InvalidPageGeometry: If the viewport has zero width or height
            SessionNotActive: If the session already terminated, or was
                cancelled before the initial capture drained
        """
        if self.state == SessionState.ACTIVE:
            return self.status("Extended capture is already running on this tab.")
        if self.state != SessionState.IDLE:
            raise SessionNotActive(f"Session for tab {self.tab_id} is {self.state.value}")

        if not page.has_geometry:
            raise InvalidPageGeometry(
                f"Viewport {page.viewport_width}x{page.viewport_height} has no area"
            )

        self.viewport_width = page.viewport_width
        self.viewport_height = page.viewport_height
        self.last_known_scroll_position = max(0, round(page.scroll_y))
        self.state = SessionState.ACTIVE

        self._worker = asyncio.create_task(
            self._run_worker(),
            name=f"capture_worker_{self.tab_id}",
        )

        logger.info(
            f"Capture session started: tab={self.tab_id}, "
            f"viewport={self.viewport_width}x{self.viewport_height}, "
            f"scroll={self.last_known_scroll_position}"
        )

        self._enqueue()
        await self.wait_idle()

        if self.state != SessionState.ACTIVE:
            raise SessionNotActive(f"Session for tab {self.tab_id} was cancelled while starting")

        if self.frame_count == 0 and isinstance(self._last_error, CaptureAccessDenied):
            error = self._last_error
            await self._terminate()
            raise error

        return self.status("Extended capture started. Scroll the page, then finish.")

    async def on_scroll_observed(self, observation: ScrollObservation) -> None:
        """
        Record a scroll movement and queue a capture for it.

        Observations arriving outside ACTIVE are ignored.
        """
        if not self.is_active:
            return

        self._update_viewport(observation)
        self.last_known_scroll_position = observation.effective_position
        self._enqueue()

    async def wait_idle(self) -> None:
        """Wait until every queued capture request has been processed."""
        await self._requests.join()

    async def finish(
        self,
        image_format: Optional[str] = None,
        quality: Optional[int] = None,
    ) -> StitchResult:
        """
        Take a final capture, drain, deduplicate and stitch.

        The session is TERMINATED and its frames released afterwards,
        whether or not stitching succeeded.

        Raises:
            SessionNotActive: If the session is not ACTIVE, or was
                cancelled while finishing
            NoFramesCaptured: If no frame survived
            OutputTooLarge: If the stitched surface is too large
        """
        if not self.is_active:
            raise SessionNotActive(f"Session for tab {self.tab_id} is {self.state.value}")

        self.state = SessionState.FINISHING
        image_format = image_format or self.options.image_format
        quality = quality or self.options.quality

        try:
            self._enqueue()
            await self.wait_idle()

            if self.state == SessionState.TERMINATED:
                raise SessionNotActive(f"Session for tab {self.tab_id} was cancelled")

            await self._stop_worker()

            frames = dedupe_frames(self.store.frames, self.store.dedupe_radius)
            if not frames:
                raise NoFramesCaptured()

            logger.info(
                f"Finishing capture session: tab={self.tab_id}, frames={len(frames)}"
            )

            return await asyncio.to_thread(
                self.stitcher.stitch,
                frames,
                self.viewport_width,
                self.viewport_height,
                image_format,
                quality,
            )
        finally:
            await self._terminate()

    async def cancel(self) -> None:
        """Discard all frames and pending work and terminate without stitching."""
        if self.state == SessionState.TERMINATED:
            return

        logger.info(f"Capture session cancelled: tab={self.tab_id}, frames={self.frame_count}")
        await self._terminate()

    async def _terminate(self) -> None:
        self.state = SessionState.TERMINATED
        self._requests.clear()
        await self._stop_worker()
        released = self.store.clear()
        logger.debug(f"Released {released} frames for tab {self.tab_id}")

    # =========================================================================
    # Capture Worker
    # =========================================================================

    def _enqueue(self) -> None:
        self._requests.put(self.last_known_scroll_position)
        self.metrics.requests_enqueued += 1

    async def _run_worker(self) -> None:
        """Single consumer draining the request queue."""
        while True:
            await self._requests.get()
            self._capturing = True
            try:
                await self._capture_one()
            except CaptureError as e:
                self.metrics.capture_failures += 1
                self._last_error = e
                logger.warning(f"Capture failed (tab={self.tab_id}): {e}")
            except Exception as e:
                self.metrics.capture_failures += 1
                self._last_error = to_user_error(e)
                logger.error(f"Unexpected capture error (tab={self.tab_id}): {e}")
            finally:
                self._capturing = self._requests.size > 0
                self._requests.task_done()

    async def _capture_one(self) -> None:
        position = await self._live_position()

        if self.store.has_nearby(position):
            self.metrics.captures_skipped += 1
            return

        image = await self.throttle.capture(self.window_ref, self.options)

        if self.state not in (SessionState.ACTIVE, SessionState.FINISHING):
            self.metrics.results_discarded += 1
            return

        if self.store.add(position, image):
            self.metrics.frames_stored += 1
            logger.debug(
                f"Stored frame: tab={self.tab_id}, scroll={position}, "
                f"frames={self.frame_count}"
            )

    async def _live_position(self) -> int:
        """Scroll position at dequeue time, refreshed from the probe if available."""
        if self.scroll_probe is not None:
            try:
                live = await self.scroll_probe()
            except Exception as e:
                logger.debug(f"Scroll probe failed (tab={self.tab_id}): {e}")
                live = None

            if live is not None:
                self._update_viewport(live)
                self.last_known_scroll_position = live.effective_position

        return self.last_known_scroll_position

    def _update_viewport(self, observation: ScrollObservation) -> None:
        if observation.viewport_width:
            self.viewport_width = observation.viewport_width
        if observation.viewport_height:
            self.viewport_height = observation.viewport_height

    async def _stop_worker(self) -> None:
        worker, self._worker = self._worker, None
        self._capturing = False
        if worker is None or worker.done():
            return

        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
