"""
ScrollStitch Main Application
=============================

FastAPI controller for capture sessions.

The application owns one capture backend, one process-wide CaptureThrottle
and one SessionRegistry. The browser-side glue pushes scroll observations
and lifecycle events; finished captures are returned as encoded images.

Endpoints:
    GET    /                                - Service information
    GET    /health                          - Liveness probe
    GET    /metrics                         - Throttle and session metrics
    GET    /tabs/{tab_id}/capture           - Session status
    POST   /tabs/{tab_id}/capture/start     - Start an extended capture
    POST   /tabs/{tab_id}/scroll            - Push one scroll observation
    WS     /ws/tabs/{tab_id}/scroll         - Stream scroll observations
    POST   /tabs/{tab_id}/capture/finish    - Finish and return the image
    POST   /tabs/{tab_id}/capture/cancel    - Cancel without stitching
    POST   /tabs/{tab_id}/capture/full-page - Automatic full-page capture
    POST   /tabs/{tab_id}/capture/area      - Crop a selection of the viewport
    POST   /tabs/{tab_id}/navigated         - Tab navigated (evicts session)
    DELETE /tabs/{tab_id}                   - Tab closed (evicts session)
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Query, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from scrollstitch import __version__
from scrollstitch.capture import (
    CaptureThrottle,
    RawCapture,
    SessionRegistry,
    capture_full_page,
    create_capture_backend,
)
from scrollstitch.config import Settings, settings as default_settings
from scrollstitch.errors import CaptureError, ErrorCode, InvalidPageGeometry, to_user_error
from scrollstitch.imaging import SelectionRect, crop_area
from scrollstitch.models import (
    CaptureOptions,
    PageSnapshot,
    ScrollObservation,
    StitchResult,
    build_filename,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Request Models
# =============================================================================

class StartRequest(BaseModel):
    """Body of POST /tabs/{tab_id}/capture/start."""

    window_ref: Optional[int] = None
    viewport_width: Optional[int] = Field(default=None, ge=0)
    viewport_height: Optional[int] = Field(default=None, ge=0)
    scroll_y: float = Field(default=0.0, allow_inf_nan=False)
    image_format: Optional[str] = Field(default=None, pattern="^(png|jpeg)$")
    quality: Optional[int] = Field(default=None, ge=1, le=100)


class FullPageRequest(BaseModel):
    """Body of POST /tabs/{tab_id}/capture/full-page."""

    window_ref: Optional[int] = None
    image_format: Optional[str] = Field(default=None, pattern="^(png|jpeg)$")
    quality: Optional[int] = Field(default=None, ge=1, le=100)


class AreaRequest(BaseModel):
    """Body of POST /tabs/{tab_id}/capture/area."""

    rect: SelectionRect
    viewport_width: int = Field(..., ge=0)
    viewport_height: int = Field(..., ge=0)
    window_ref: Optional[int] = None
    image_format: Optional[str] = Field(default=None, pattern="^(png|jpeg)$")
    quality: Optional[int] = Field(default=None, ge=1, le=100)


# HTTP status for each failure code
_ERROR_STATUS = {
    ErrorCode.INVALID_PAGE_GEOMETRY: 422,
    ErrorCode.NO_FRAMES_CAPTURED: 409,
    ErrorCode.NO_FRAMES_TO_STITCH: 409,
    ErrorCode.OUTPUT_TOO_LARGE: 413,
    ErrorCode.SELECTION_TOO_SMALL: 422,
    ErrorCode.CAPTURE_QUOTA_EXCEEDED: 429,
    ErrorCode.CAPTURE_ACCESS_DENIED: 403,
    ErrorCode.SESSION_NOT_ACTIVE: 404,
    ErrorCode.IMAGE_DECODE_FAILED: 500,
    ErrorCode.CAPTURE_FAILED: 502,
}


def _image_response(result: StitchResult, mode: str) -> Response:
    filename = build_filename(result.image_format, mode)
    return Response(
        content=result.image,
        media_type=result.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Frame-Count": str(result.frame_count),
            "X-Image-Width": str(result.width),
            "X-Image-Height": str(result.height),
        },
    )


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    backend: Optional[RawCapture] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        backend: Raw capture backend. None = create from config.
        app_settings: Settings to use. None = module-level settings.

    Returns:
        Configured FastAPI app
    """
    cfg = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager with graceful shutdown."""
        app.state.startup_time = time.time()
        app.state.backend = backend or create_capture_backend(cfg)
        app.state.throttle = CaptureThrottle(
            app.state.backend,
            min_interval=cfg.throttle.min_interval_seconds,
            retry_backoff=cfg.throttle.retry_backoff_seconds,
        )
        app.state.registry = SessionRegistry.from_settings(cfg, app.state.throttle)

        logger.info(
            f"ScrollStitch {__version__} started: "
            f"throttle={cfg.throttle.min_interval_seconds}s, "
            f"dedupe={cfg.session.dedupe_radius_px}px, "
            f"max_pending={cfg.session.max_pending_requests}"
        )

        yield

        logger.info("Shutting down gracefully...")
        cancelled = await app.state.registry.close()
        logger.info(f"Shutdown complete ({cancelled} sessions cancelled)")

    app = FastAPI(
        title="ScrollStitch",
        description="Multi-frame scroll capture and seam-aligned stitching",
        version=__version__,
        lifespan=lifespan,
    )

    def options_for(image_format: Optional[str], quality: Optional[int]) -> CaptureOptions:
        return CaptureOptions(
            image_format=image_format or cfg.capture.default_format,
            quality=quality or cfg.capture.default_quality,
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @app.exception_handler(CaptureError)
    async def capture_error_handler(request: Request, exc: CaptureError) -> JSONResponse:
        status_code = _ERROR_STATUS.get(exc.code, 500)
        logger.warning(f"{request.method} {request.url.path} failed: {exc.code.value}: {exc.detail}")
        return JSONResponse(
            {
                "error_code": exc.code.value,
                "message": exc.user_message,
                "detail": exc.detail,
            },
            status_code=status_code,
        )

    # =========================================================================
    # HTTP Endpoints
    # =========================================================================

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "ScrollStitch",
            "version": __version__,
            "status": "running",
            "backend": cfg.backend.kind,
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness probe. Always returns 200 if the service is running."""
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
        })

    @app.get("/metrics")
    async def metrics() -> JSONResponse:
        """Throttle and per-session metrics for observability."""
        return JSONResponse({
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
            **app.state.registry.metrics(),
        })

    @app.get("/tabs/{tab_id}/capture")
    async def capture_status(tab_id: int) -> JSONResponse:
        """Status of the tab's capture session."""
        return JSONResponse(app.state.registry.status(tab_id).model_dump(mode="json"))

    @app.post("/tabs/{tab_id}/capture/start")
    async def start_capture(tab_id: int, body: StartRequest) -> JSONResponse:
        """Start an extended capture; a no-op if one is already running."""
        if body.viewport_width is None or body.viewport_height is None:
            snapshot = getattr(app.state.backend, "snapshot", None)
            if snapshot is None:
                raise InvalidPageGeometry("Viewport dimensions are required for this backend.")
            page = await snapshot()
        else:
            page = PageSnapshot(
                viewport_width=body.viewport_width,
                viewport_height=body.viewport_height,
                scroll_y=body.scroll_y,
            )

        status = await app.state.registry.start(
            tab_id,
            page,
            window_ref=body.window_ref,
            options=options_for(body.image_format, body.quality),
            scroll_probe=getattr(app.state.backend, "probe", None),
        )
        return JSONResponse(status.model_dump(mode="json"))

    @app.post("/tabs/{tab_id}/scroll")
    async def scroll(tab_id: int, observation: ScrollObservation) -> JSONResponse:
        """Push one scroll observation."""
        accepted = await _route_scroll(tab_id, observation)
        return JSONResponse({
            "accepted": accepted,
            "frame_count": app.state.registry.status(tab_id).frame_count,
        })

    @app.post("/tabs/{tab_id}/capture/finish")
    async def finish_capture(
        tab_id: int,
        image_format: Optional[str] = Query(default=None, pattern="^(png|jpeg)$"),
        quality: Optional[int] = Query(default=None, ge=1, le=100),
    ) -> Response:
        """Finish the session and return the stitched image."""
        result = await app.state.registry.finish(tab_id, image_format=image_format, quality=quality)
        return _image_response(result, "extended")

    @app.post("/tabs/{tab_id}/capture/cancel")
    async def cancel_capture(tab_id: int) -> JSONResponse:
        """Cancel the session without stitching."""
        cancelled = await app.state.registry.cancel(tab_id)
        return JSONResponse({"cancelled": cancelled, "active": False})

    @app.post("/tabs/{tab_id}/capture/full-page")
    async def full_page_capture(tab_id: int, body: FullPageRequest) -> Response:
        """Scroll through the whole page, capture and stitch."""
        try:
            result = await capture_full_page(
                app.state.backend,
                app.state.throttle,
                app.state.registry.stitcher,
                window_ref=body.window_ref,
                options=options_for(body.image_format, body.quality),
                dedupe_radius=cfg.session.dedupe_radius_px,
                settle_delay=cfg.full_page.settle_delay_seconds,
            )
        except CaptureError:
            raise
        except Exception as e:
            raise to_user_error(e) from e
        return _image_response(result, "fullpage")

    @app.post("/tabs/{tab_id}/capture/area")
    async def area_capture(tab_id: int, body: AreaRequest) -> Response:
        """Capture the viewport and crop the selected rectangle."""
        options = options_for(body.image_format, body.quality)
        try:
            image = await app.state.throttle.capture(body.window_ref, options)
        except CaptureError:
            raise
        except Exception as e:
            raise to_user_error(e) from e
        result = crop_area(
            image,
            body.rect,
            body.viewport_width,
            body.viewport_height,
            image_format=options.image_format,
            quality=options.quality,
            max_surface_edge=cfg.stitch.max_surface_edge,
        )
        return _image_response(result, "area")

    @app.post("/tabs/{tab_id}/navigated")
    async def tab_navigated(tab_id: int) -> JSONResponse:
        """Tab navigated away; its session is discarded."""
        evicted = await app.state.registry.on_tab_navigated(tab_id)
        return JSONResponse({"evicted": evicted})

    @app.delete("/tabs/{tab_id}")
    async def tab_closed(tab_id: int) -> JSONResponse:
        """Tab closed; its session is discarded."""
        evicted = await app.state.registry.on_tab_closed(tab_id)
        return JSONResponse({"evicted": evicted})

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/ws/tabs/{tab_id}/scroll")
    async def scroll_stream(websocket: WebSocket, tab_id: int) -> None:
        """Scroll feed: one JSON ScrollObservation per message."""
        await websocket.accept()
        logger.info(f"Scroll feed connected for tab {tab_id}")

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    observation = ScrollObservation.model_validate_json(raw)
                except ValidationError as e:
                    logger.warning(f"Invalid scroll observation for tab {tab_id}: {e}")
                    await websocket.send_json({"accepted": False, "error": "invalid observation"})
                    continue

                accepted = await _route_scroll(tab_id, observation)
                await websocket.send_json({
                    "accepted": accepted,
                    "frame_count": app.state.registry.status(tab_id).frame_count,
                })
        except WebSocketDisconnect:
            pass
        finally:
            logger.info(f"Scroll feed disconnected for tab {tab_id}")

    async def _route_scroll(tab_id: int, observation: ScrollObservation) -> bool:
        follow = getattr(app.state.backend, "follow", None)
        if follow is not None:
            follow(observation)
        return await app.state.registry.observe_scroll(tab_id, observation)

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "scrollstitch.main:app",
        host=default_settings.server.host,
        port=default_settings.server.port,
        reload=False,
    )
