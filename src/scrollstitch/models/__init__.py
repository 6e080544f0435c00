"""
Data Models
===========

Data models for ScrollStitch.

This module re-exports all data models for convenient access.

Models:
    Frames:
        - Frame: One encoded viewport capture at a scroll position

    Input:
        - ScrollObservation: Scroll movement pushed by the page tracker
        - PageSnapshot: Page geometry at one instant
        - CaptureOptions: Requested encoding

    Session:
        - SessionState: Lifecycle states
        - SessionStatus: Serializable session snapshot

    Output:
        - StitchResult: Composited, encoded image
        - build_filename: Download name for a capture
"""

from scrollstitch.models.frame import Frame
from scrollstitch.models.scroll import ScrollObservation
from scrollstitch.models.page import CaptureOptions, PageSnapshot
from scrollstitch.models.session import SessionState, SessionStatus
from scrollstitch.models.output import StitchResult, build_filename

__all__ = [
    # Frames
    "Frame",
    # Input
    "ScrollObservation",
    "PageSnapshot",
    "CaptureOptions",
    # Session
    "SessionState",
    "SessionStatus",
    # Output
    "StitchResult",
    "build_filename",
]
