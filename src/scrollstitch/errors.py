"""
Capture Errors
==============

Fixed error taxonomy for capture sessions and stitching.

Every failure that reaches a caller carries exactly ONE machine-readable
ErrorCode plus a short user-facing message. Alignment problems are not
errors: low-confidence seams fall back to the scroll-delta offset.

Rules:
    - Quota rejections are retried once by the throttle before surfacing
    - Access-denied failures are never retried
    - Per-frame failures inside a session never end the session
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """
    Machine-readable failure codes.

    Attributes:
        INVALID_PAGE_GEOMETRY: Viewport has zero width or height
        NO_FRAMES_CAPTURED: Session finished without any stored frame
        NO_FRAMES_TO_STITCH: Stitcher called with an empty frame list
        OUTPUT_TOO_LARGE: Output surface would exceed the maximum edge
        SELECTION_TOO_SMALL: Area selection below the minimum size
        CAPTURE_QUOTA_EXCEEDED: Raw capture rejected by rate limiting
        CAPTURE_ACCESS_DENIED: Page is not capturable
        SESSION_NOT_ACTIVE: No capture session for the tab
        IMAGE_DECODE_FAILED: Frame bytes could not be decoded
        CAPTURE_FAILED: Any other capture failure
    """

    INVALID_PAGE_GEOMETRY = "INVALID_PAGE_GEOMETRY"
    NO_FRAMES_CAPTURED = "NO_FRAMES_CAPTURED"
    NO_FRAMES_TO_STITCH = "NO_FRAMES_TO_STITCH"
    OUTPUT_TOO_LARGE = "OUTPUT_TOO_LARGE"
    SELECTION_TOO_SMALL = "SELECTION_TOO_SMALL"
    CAPTURE_QUOTA_EXCEEDED = "CAPTURE_QUOTA_EXCEEDED"
    CAPTURE_ACCESS_DENIED = "CAPTURE_ACCESS_DENIED"
    SESSION_NOT_ACTIVE = "SESSION_NOT_ACTIVE"
    IMAGE_DECODE_FAILED = "IMAGE_DECODE_FAILED"
    CAPTURE_FAILED = "CAPTURE_FAILED"


class CaptureError(Exception):
    """Base class for all capture and stitching failures."""

    code: ErrorCode = ErrorCode.CAPTURE_FAILED
    user_message: str = "Capture failed."

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


class InvalidPageGeometry(CaptureError):
    code = ErrorCode.INVALID_PAGE_GEOMETRY
    user_message = "Could not start capture on this page."


class NoFramesCaptured(CaptureError):
    code = ErrorCode.NO_FRAMES_CAPTURED
    user_message = "No frames were captured. Try scrolling a little and finishing again."


class NoFramesToStitch(CaptureError):
    code = ErrorCode.NO_FRAMES_TO_STITCH
    user_message = "No frames captured for stitching."


class OutputTooLarge(CaptureError):
    code = ErrorCode.OUTPUT_TOO_LARGE
    user_message = "Captured area is too large for a single stitched image."


class SelectionTooSmall(CaptureError):
    code = ErrorCode.SELECTION_TOO_SMALL
    user_message = "Selected area is too small."


class CaptureQuotaExceeded(CaptureError):
    code = ErrorCode.CAPTURE_QUOTA_EXCEEDED
    user_message = "Capture rate limit reached. Wait a moment and try again."


class CaptureAccessDenied(CaptureError):
    code = ErrorCode.CAPTURE_ACCESS_DENIED
    user_message = "This page cannot be captured. Open a normal website tab and try again."


class SessionNotActive(CaptureError):
    code = ErrorCode.SESSION_NOT_ACTIVE
    user_message = "Extended capture is not active on this tab."


class ImageDecodeError(CaptureError):
    """Raised when frame bytes cannot be decoded into pixels."""

    code = ErrorCode.IMAGE_DECODE_FAILED
    user_message = "Captured frame could not be decoded."


# Substrings the browser uses when a page refuses capture or scripting
_BLOCKED_PAGE_MARKERS = (
    "Cannot access a chrome:// URL",
    "Cannot access contents of url",
    "Cannot access contents of the page",
    "The extensions gallery cannot be scripted",
)


def to_user_error(error: BaseException) -> CaptureError:
    """
    Translate an arbitrary backend failure into the capture taxonomy.

    Args:
        error: Exception raised by a capture backend or page driver

    Returns:
        The error itself if it is already a CaptureError, otherwise
        CaptureAccessDenied for protected pages or a generic CaptureError.
    """
    if isinstance(error, CaptureError):
        return error

    message = str(error)
    if any(marker in message for marker in _BLOCKED_PAGE_MARKERS):
        return CaptureAccessDenied(message)

    return CaptureError(message or None)
