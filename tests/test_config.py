"""
Configuration and Model Tests
=============================

Tests for config loading, the error taxonomy and the data models.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError

from scrollstitch.config import Settings, load_config
from scrollstitch.errors import (
    CaptureAccessDenied,
    CaptureError,
    ErrorCode,
    OutputTooLarge,
    to_user_error,
)
from scrollstitch.models import CaptureOptions, ScrollObservation, build_filename


class TestConfig:
    """Tests for load_config."""

    def test_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "missing.yaml"))

        assert cfg.session.dedupe_radius_px == 24
        assert cfg.session.max_pending_requests == 20
        assert cfg.throttle.min_interval_seconds == 0.55
        assert cfg.throttle.retry_backoff_seconds == 0.8
        assert cfg.alignment.penalty_weight == 0.18
        assert cfg.alignment.sample_width == 320
        assert cfg.alignment.column_stride == 3
        assert cfg.stitch.max_surface_edge == 32767

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("session:\n  dedupe_radius_px: 12\nalignment:\n  bad_score_threshold: 20.5\n")

        cfg = load_config(str(path))

        assert cfg.session.dedupe_radius_px == 12
        assert cfg.alignment.bad_score_threshold == 20.5
        assert cfg.throttle.min_interval_seconds == 0.55

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("session:\n  dedupe_radius_px: 12\n")
        monkeypatch.setenv("SCROLLSTITCH_DEDUPE_RADIUS", "30")
        monkeypatch.setenv("SCROLLSTITCH_THROTTLE_INTERVAL", "0.25")
        monkeypatch.setenv("SCROLLSTITCH_LOG_LEVEL", "DEBUG")

        cfg = load_config(str(path))

        assert cfg.session.dedupe_radius_px == 30
        assert cfg.throttle.min_interval_seconds == 0.25
        assert cfg.logging.level == "DEBUG"

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"session": {"max_pending_requests": 0}})


class TestErrors:
    """Tests for the capture error taxonomy."""

    def test_each_error_has_code_and_message(self):
        error = OutputTooLarge("surface 320x40000")

        assert error.code == ErrorCode.OUTPUT_TOO_LARGE
        assert error.detail == "surface 320x40000"
        assert error.user_message

    def test_blocked_page_becomes_access_denied(self):
        error = to_user_error(RuntimeError("Cannot access a chrome:// URL"))
        assert isinstance(error, CaptureAccessDenied)

    def test_other_failures_are_generic(self):
        error = to_user_error(RuntimeError("boom"))
        assert type(error) is CaptureError
        assert error.code == ErrorCode.CAPTURE_FAILED

    def test_capture_errors_pass_through(self):
        original = OutputTooLarge()
        assert to_user_error(original) is original


class TestModels:
    """Tests for input and output models."""

    def test_virtual_position_preferred(self):
        observation = ScrollObservation(scroll_position=100, virtual_scroll_position=340.6)
        assert observation.effective_position == 341

    def test_position_never_negative(self):
        assert ScrollObservation(scroll_position=-12).effective_position == 0

    def test_capture_options_validation(self):
        with pytest.raises(ValidationError):
            CaptureOptions(image_format="gif")
        with pytest.raises(ValidationError):
            CaptureOptions(quality=0)

    def test_build_filename(self):
        when = datetime(2026, 10, 19, 14, 3, 22)
        assert build_filename("png", "extended", when) == "screenshot_extended_2026-10-19_14-03-22.png"
        assert build_filename("jpeg", "fullpage", when).endswith(".jpeg")
