"""
ScrollStitch Configuration
==========================

This module handles configuration loading for the capture and stitching engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SCROLLSTITCH_DEDUPE_RADIUS       -> session.dedupe_radius_px
    SCROLLSTITCH_MAX_PENDING         -> session.max_pending_requests
    SCROLLSTITCH_THROTTLE_INTERVAL   -> throttle.min_interval_seconds
    SCROLLSTITCH_RETRY_BACKOFF       -> throttle.retry_backoff_seconds
    SCROLLSTITCH_PENALTY_WEIGHT      -> alignment.penalty_weight
    SCROLLSTITCH_BAD_SCORE           -> alignment.bad_score_threshold
    SCROLLSTITCH_MAX_SURFACE_EDGE    -> stitch.max_surface_edge
    SCROLLSTITCH_BACKEND             -> backend.kind
    SCROLLSTITCH_DOCUMENT_PATH       -> backend.document_path
    SCROLLSTITCH_PORT                -> server.port
    SCROLLSTITCH_LOG_LEVEL           -> logging.level
    PORT                             -> server.port (container platforms)

Example:
    from scrollstitch.config import settings

    print(settings.session.dedupe_radius_px)
    print(settings.throttle.min_interval_seconds)
    print(settings.alignment.penalty_weight)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class CaptureConfig(BaseModel):
    """Default output encoding for captures."""

    default_format: str = Field(
        default="png",
        pattern="^(png|jpeg)$",
        description="Output format: 'png' (lossless) or 'jpeg' (lossy)",
    )
    default_quality: int = Field(
        default=92,
        ge=1,
        le=100,
        description="JPEG quality used when none is requested",
    )


class ThrottleConfig(BaseModel):
    """Raw capture pacing configuration."""

    min_interval_seconds: float = Field(
        default=0.55,
        ge=0,
        description="Minimum time between two raw captures (process-wide)",
    )
    retry_backoff_seconds: float = Field(
        default=0.8,
        ge=0,
        description="Wait before the single retry after a quota rejection",
    )


class SessionConfig(BaseModel):
    """Capture session configuration."""

    dedupe_radius_px: int = Field(
        default=24,
        ge=0,
        description="Frames closer than this (CSS px) are duplicates",
    )
    max_pending_requests: int = Field(
        default=20,
        ge=1,
        description="Backlog ceiling for queued capture requests",
    )


class AlignmentConfig(BaseModel):
    """
    Seam alignment tuning.

    penalty_weight and bad_score_threshold are empirical; validate
    against real scroll captures before changing them.
    """

    sample_width: int = Field(
        default=320,
        ge=8,
        description="Maximum luma sample width in pixels",
    )
    column_stride: int = Field(
        default=3,
        ge=1,
        description="Compare every Nth column when scoring overlaps",
    )
    penalty_weight: float = Field(
        default=0.18,
        ge=0,
        description="Score penalty per row of distance from the expected overlap",
    )
    bad_score_threshold: float = Field(
        default=28.0,
        gt=0,
        description="Mean luma difference above which a match is rejected",
    )
    backtrack_css: int = Field(
        default=96,
        ge=0,
        description="Maximum upward correction of the expected seam (CSS px)",
    )
    forward_css: int = Field(
        default=96,
        ge=0,
        description="Maximum downward correction of the expected seam (CSS px)",
    )


class StitchConfig(BaseModel):
    """Compositing limits."""

    min_step_px: int = Field(
        default=1,
        ge=1,
        description="Smallest scroll delta counted between adjacent frames",
    )
    max_surface_edge: int = Field(
        default=32767,
        ge=1,
        description="Largest output width or height in pixels",
    )


class FullPageConfig(BaseModel):
    """Automatic full-page capture configuration."""

    settle_delay_seconds: float = Field(
        default=0.16,
        ge=0,
        description="Wait after each programmatic scroll before capturing",
    )


class BackendConfig(BaseModel):
    """Raw capture backend selection."""

    kind: str = Field(
        default="document",
        description="Capture backend: 'document' (renders from an image file)",
    )
    document_path: Optional[str] = Field(
        default=None,
        description="Tall page image rendered by the document backend",
    )
    viewport_width: int = Field(default=1280, ge=1, description="Document viewport width")
    viewport_height: int = Field(default=800, ge=1, description="Document viewport height")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8010, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for ScrollStitch.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    alignment: AlignmentConfig = Field(default_factory=AlignmentConfig)
    stitch: StitchConfig = Field(default_factory=StitchConfig)
    full_page: FullPageConfig = Field(default_factory=FullPageConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Session settings
    if env_radius := os.environ.get("SCROLLSTITCH_DEDUPE_RADIUS"):
        config_data.setdefault("session", {})["dedupe_radius_px"] = int(env_radius)
    if env_pending := os.environ.get("SCROLLSTITCH_MAX_PENDING"):
        config_data.setdefault("session", {})["max_pending_requests"] = int(env_pending)

    # Throttle settings
    if env_interval := os.environ.get("SCROLLSTITCH_THROTTLE_INTERVAL"):
        config_data.setdefault("throttle", {})["min_interval_seconds"] = float(env_interval)
    if env_backoff := os.environ.get("SCROLLSTITCH_RETRY_BACKOFF"):
        config_data.setdefault("throttle", {})["retry_backoff_seconds"] = float(env_backoff)

    # Alignment tuning
    if env_penalty := os.environ.get("SCROLLSTITCH_PENALTY_WEIGHT"):
        config_data.setdefault("alignment", {})["penalty_weight"] = float(env_penalty)
    if env_bad := os.environ.get("SCROLLSTITCH_BAD_SCORE"):
        config_data.setdefault("alignment", {})["bad_score_threshold"] = float(env_bad)

    # Stitch limits
    if env_edge := os.environ.get("SCROLLSTITCH_MAX_SURFACE_EDGE"):
        config_data.setdefault("stitch", {})["max_surface_edge"] = int(env_edge)

    # Backend selection
    if env_backend := os.environ.get("SCROLLSTITCH_BACKEND"):
        config_data.setdefault("backend", {})["kind"] = env_backend
    if env_doc := os.environ.get("SCROLLSTITCH_DOCUMENT_PATH"):
        config_data.setdefault("backend", {})["document_path"] = env_doc

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("SCROLLSTITCH_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("SCROLLSTITCH_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
