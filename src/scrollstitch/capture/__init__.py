"""
Capture Module
==============

Session-level capture components.

This module provides the capture layer for ScrollStitch:
    - RawCapture / DocumentCapture: Raw viewport capture backends
    - FrameStore: Sorted, deduplicated frames of one session
    - CaptureThrottle: Process-wide serialized, paced raw capture
    - CaptureRequestQueue: Bounded request queue (coalesces oldest)
    - CaptureSession: Per-tab capture state machine
    - SessionRegistry: Tab → session registry with explicit eviction
    - capture_full_page: Automatic scroll-through capture

Example:
    from scrollstitch.capture import CaptureThrottle, SessionRegistry
    from scrollstitch.imaging import Stitcher

    throttle = CaptureThrottle(backend)
    registry = SessionRegistry(throttle, Stitcher())

    await registry.start(tab_id, page)
    await registry.observe_scroll(tab_id, observation)
    result = await registry.finish(tab_id)
"""

from scrollstitch.capture.backend import (
    DocumentCapture,
    RawCapture,
    ScrollProbe,
    create_capture_backend,
)
from scrollstitch.capture.store import FrameStore, dedupe_frames
from scrollstitch.capture.throttle import CaptureThrottle
from scrollstitch.capture.queue import CaptureRequestQueue
from scrollstitch.capture.session import CaptureSession
from scrollstitch.capture.registry import SessionRegistry
from scrollstitch.capture.fullpage import PageDriver, capture_full_page, plan_scroll_positions


__all__ = [
    "RawCapture",
    "ScrollProbe",
    "DocumentCapture",
    "create_capture_backend",
    "FrameStore",
    "dedupe_frames",
    "CaptureThrottle",
    "CaptureRequestQueue",
    "CaptureSession",
    "SessionRegistry",
    "PageDriver",
    "capture_full_page",
    "plan_scroll_positions",
]
