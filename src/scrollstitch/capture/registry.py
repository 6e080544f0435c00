"""
Session Registry
================

Explicit tab → CaptureSession registry owned by the top-level controller.

Design Rules:
    - At most one session per tab
    - Starting on a tab with an active session is a no-op reporting its
      frame count
    - Tab navigation and tab close are explicit eviction calls
    - A finished or cancelled session is removed from the registry
"""

import logging
from typing import Dict, List, Optional

from scrollstitch.capture.backend import ScrollProbe
from scrollstitch.capture.session import CaptureSession
from scrollstitch.capture.throttle import CaptureThrottle
from scrollstitch.errors import SessionNotActive
from scrollstitch.imaging.stitcher import Stitcher
from scrollstitch.models.output import StitchResult
from scrollstitch.models.page import CaptureOptions, PageSnapshot
from scrollstitch.models.scroll import ScrollObservation
from scrollstitch.models.session import SessionState, SessionStatus


logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Owns every live capture session and the shared capture throttle.

    Attributes:
        throttle: Process-wide capture throttle shared by all sessions
        stitcher: Stitcher used at finish
        dedupe_radius: Duplicate threshold for new sessions (CSS px)
        max_pending_requests: Backlog ceiling for new sessions

    Example:
        registry = SessionRegistry(throttle, Stitcher())
        await registry.start(tab_id=3, page=snapshot)
        await registry.observe_scroll(3, observation)
        result = await registry.finish(3)
    """

    def __init__(
        self,
        throttle: CaptureThrottle,
        stitcher: Stitcher,
        dedupe_radius: int = 24,
        max_pending_requests: int = 20,
    ) -> None:
        self.throttle = throttle
        self.stitcher = stitcher
        self.dedupe_radius = dedupe_radius
        self.max_pending_requests = max_pending_requests
        self._sessions: Dict[int, CaptureSession] = {}

    @classmethod
    def from_settings(cls, settings, throttle: CaptureThrottle) -> "SessionRegistry":
        """Build a registry from a loaded Settings object."""
        return cls(
            throttle=throttle,
            stitcher=Stitcher.from_settings(settings),
            dedupe_radius=settings.session.dedupe_radius_px,
            max_pending_requests=settings.session.max_pending_requests,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._sessions

    @property
    def tab_ids(self) -> List[int]:
        return list(self._sessions)

    def get(self, tab_id: int) -> Optional[CaptureSession]:
        return self._sessions.get(tab_id)

    def status(self, tab_id: int) -> SessionStatus:
        """Status of the tab's session, or an inactive status if there is none."""
        session = self._sessions.get(tab_id)
        if session is None:
            return SessionStatus(tab_id=tab_id, state=SessionState.IDLE, active=False)
        return session.status()

    async def start(
        self,
        tab_id: int,
        page: PageSnapshot,
        window_ref: Optional[int] = None,
        options: Optional[CaptureOptions] = None,
        scroll_probe: Optional[ScrollProbe] = None,
    ) -> SessionStatus:
        """
        Start a capture session for a tab.

        Returns:
            Status of the new session, or of the existing one if the tab
            already has an active session

        Raises:
            InvalidPageGeometry: If the viewport has zero size
            CaptureAccessDenied: If the page refuses the initial capture
        """
        existing = self._sessions.get(tab_id)
        if existing is not None and existing.state in (SessionState.ACTIVE, SessionState.FINISHING):
            return existing.status("Extended capture is already running on this tab.")

        session = CaptureSession(
            tab_id=tab_id,
            throttle=self.throttle,
            stitcher=self.stitcher,
            window_ref=window_ref,
            options=options,
            dedupe_radius=self.dedupe_radius,
            max_pending_requests=self.max_pending_requests,
            scroll_probe=scroll_probe,
        )
        self._sessions[tab_id] = session

        try:
            return await session.start(page)
        except BaseException:
            self._evict(tab_id, session)
            await session.cancel()
            raise

    async def observe_scroll(self, tab_id: int, observation: ScrollObservation) -> bool:
        """
        Route a scroll observation to the tab's session.

        Returns:
            True if an active session received it, False otherwise
        """
        session = self._sessions.get(tab_id)
        if session is None or not session.is_active:
            return False

        await session.on_scroll_observed(observation)
        return True

    async def finish(
        self,
        tab_id: int,
        image_format: Optional[str] = None,
        quality: Optional[int] = None,
    ) -> StitchResult:
        """
        Finish the tab's session and return the stitched image.

        The session is removed from the registry whatever the outcome. A
        session that is already finishing stays registered.

        Raises:
            SessionNotActive: If the tab has no active session or its
                session is already finishing
            NoFramesCaptured: If no frames were captured
            OutputTooLarge: If the stitched surface is too large
        """
        session = self._sessions.get(tab_id)
        if session is None:
            raise SessionNotActive()
        if not session.is_active:
            raise SessionNotActive(f"Session for tab {tab_id} is {session.state.value}")

        try:
            return await session.finish(image_format=image_format, quality=quality)
        finally:
            self._evict(tab_id, session)

    async def cancel(self, tab_id: int) -> bool:
        """
        Cancel the tab's session without stitching.

        Returns:
            True if a session was cancelled, False if there was none
        """
        session = self._sessions.pop(tab_id, None)
        if session is None:
            return False

        await session.cancel()
        return True

    async def on_tab_navigated(self, tab_id: int) -> bool:
        """Evict the session of a tab that navigated away."""
        evicted = await self.cancel(tab_id)
        if evicted:
            logger.info(f"Tab {tab_id} navigated, capture session discarded")
        return evicted

    async def on_tab_closed(self, tab_id: int) -> bool:
        """Evict the session of a closed tab."""
        evicted = await self.cancel(tab_id)
        if evicted:
            logger.info(f"Tab {tab_id} closed, capture session discarded")
        return evicted

    async def close(self) -> int:
        """
        Cancel every session.

        Returns:
            Number of sessions cancelled.
        """
        tab_ids = self.tab_ids
        for tab_id in tab_ids:
            await self.cancel(tab_id)
        return len(tab_ids)

    def metrics(self) -> dict:
        """Aggregate metrics for observability."""
        return {
            "active_sessions": len(self._sessions),
            "throttle": self.throttle.metrics.to_dict(),
            "sessions": {
                tab_id: {**session.metrics.to_dict(), "queue": session.queue_metrics()}
                for tab_id, session in self._sessions.items()
            },
        }

    def _evict(self, tab_id: int, session: CaptureSession) -> None:
        if self._sessions.get(tab_id) is session:
            del self._sessions[tab_id]
