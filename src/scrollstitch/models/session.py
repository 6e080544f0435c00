"""
Session State Models
====================

Lifecycle states and status snapshots for capture sessions.

Lifecycle:
    IDLE → ACTIVE → FINISHING → TERMINATED
    ACTIVE → TERMINATED (cancel, tab navigation, tab close)

While ACTIVE, the session's capture worker is either running (draining
queued requests) or idle within the active state.
"""

from enum import Enum

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """
    Discrete capture session states.

    Attributes:
        IDLE: Created, not yet started
        ACTIVE: Accepting scroll observations and capturing frames
        FINISHING: Draining the final capture and stitching
        TERMINATED: Finished or cancelled; frames released
    """

    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    FINISHING = "FINISHING"
    TERMINATED = "TERMINATED"


class SessionStatus(BaseModel):
    """
    Point-in-time view of a capture session, safe to serialize.

    Attributes:
        tab_id: Tab the session belongs to
        state: Current lifecycle state
        active: Whether the session accepts scroll observations
        frame_count: Frames currently stored
        pending_request_count: Queued capture requests
        is_capture_loop_running: Whether the worker is processing requests
        viewport_width: Freshest known viewport width
        viewport_height: Freshest known viewport height
        last_known_scroll_position: Latest observed scroll position
        message: Human-readable note for the caller
    """

    tab_id: int
    state: SessionState
    active: bool
    frame_count: int = Field(default=0, ge=0)
    pending_request_count: int = Field(default=0, ge=0)
    is_capture_loop_running: bool = False
    viewport_width: int = Field(default=0, ge=0)
    viewport_height: int = Field(default=0, ge=0)
    last_known_scroll_position: int = Field(default=0, ge=0)
    message: str = ""
