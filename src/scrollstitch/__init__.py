"""
ScrollStitch
============

Multi-frame scroll capture and seam-aligned stitching.

This package captures a browser tab as overlapping viewport frames while
the page is scrolled, then composites them into one seamless, vertically
elongated image.

Components:
    - capture: Sessions, frame store, capture throttle, session registry
    - imaging: Luma sampling, seam alignment, stitching, area crop
    - models: Frames, scroll observations, session status, outputs
    - main: FastAPI controller

Example:
    from scrollstitch.capture import CaptureThrottle, SessionRegistry
    from scrollstitch.imaging import Stitcher

    registry = SessionRegistry(CaptureThrottle(backend), Stitcher())
    await registry.start(tab_id, page)
    ...
    result = await registry.finish(tab_id)
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
