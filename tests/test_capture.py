"""
Capture Layer Tests
===================

Tests for the frame store, the capture request queue and the
process-wide capture throttle.
"""

import asyncio

import pytest

from conftest import RecordingCapture
from scrollstitch.capture.queue import CaptureRequestQueue
from scrollstitch.capture.store import FrameStore, dedupe_frames, is_nearby
from scrollstitch.capture.throttle import CaptureThrottle
from scrollstitch.errors import CaptureAccessDenied, CaptureQuotaExceeded
from scrollstitch.models.frame import Frame
from scrollstitch.models.page import CaptureOptions


class TestFrameStore:
    """Tests for FrameStore."""

    def test_rejects_nearby_positions(self):
        store = FrameStore(dedupe_radius=24)

        assert store.add(0, b"a")
        assert not store.add(24, b"b")
        assert store.add(25, b"c")
        assert not store.add(40, b"d")

        assert [f.scroll_position for f in store.frames] == [0, 25]
        assert store.rejected_count == 2

    def test_frames_are_sorted(self):
        store = FrameStore(dedupe_radius=24)
        for position in (1600, 0, 800, 2400):
            store.add(position, b"x")

        assert [f.scroll_position for f in store.frames] == [0, 800, 1600, 2400]

    def test_has_nearby_checks_both_neighbours(self):
        store = FrameStore(dedupe_radius=24)
        store.add(100, b"x")
        store.add(500, b"y")

        assert store.has_nearby(80)
        assert store.has_nearby(520)
        assert not store.has_nearby(300)

    def test_clear_releases_frames(self):
        store = FrameStore()
        store.add(0, b"x")
        store.add(800, b"y")

        assert store.clear() == 2
        assert len(store) == 0
        assert not store.has_nearby(0)

    def test_negative_radius(self):
        with pytest.raises(ValueError):
            FrameStore(dedupe_radius=-1)


class TestDedupeFrames:
    """Tests for dedupe_frames."""

    def test_keeps_first_of_each_cluster(self):
        frames = [Frame(p, b"") for p in (30, 0, 10, 800, 790, 1600)]

        kept = dedupe_frames(frames, 24)

        assert [f.scroll_position for f in kept] == [0, 30, 790, 1600]

    def test_idempotent(self):
        frames = [Frame(p, b"") for p in (0, 10, 20, 30, 40, 50, 100)]

        once = dedupe_frames(frames, 24)

        assert dedupe_frames(once, 24) == once

    def test_is_nearby_is_inclusive(self):
        assert is_nearby(0, 24, 24)
        assert not is_nearby(0, 25, 24)


class TestCaptureRequestQueue:
    """Tests for CaptureRequestQueue."""

    def test_drops_oldest_when_full(self):
        async def scenario():
            queue = CaptureRequestQueue(maxsize=3)
            for position in range(5):
                queue.put(position)

            items = [await queue.get() for _ in range(3)]
            return queue, items

        queue, items = asyncio.run(scenario())

        assert items == [2, 3, 4]
        assert queue.coalesced_count == 2
        assert queue.total_put == 5

    def test_join_after_clear(self):
        """Verify cleared requests count as processed."""
        async def scenario():
            queue = CaptureRequestQueue(maxsize=5)
            queue.put(1)
            queue.put(2)
            cleared = queue.clear()
            await asyncio.wait_for(queue.join(), timeout=1.0)
            return cleared, queue.metrics()

        cleared, metrics = asyncio.run(scenario())

        assert cleared == 2
        assert metrics["size"] == 0

    def test_invalid_maxsize(self):
        with pytest.raises(ValueError):
            CaptureRequestQueue(maxsize=0)


class TestCaptureThrottle:
    """Tests for CaptureThrottle."""

    def test_enforces_minimum_interval(self, recording_backend):
        async def scenario():
            throttle = CaptureThrottle(recording_backend, min_interval=0.05, retry_backoff=0.01)
            for _ in range(3):
                await throttle.capture(None, CaptureOptions())

        asyncio.run(scenario())

        calls = recording_backend.calls
        assert len(calls) == 3
        for (_, previous_end), (next_start, _) in zip(calls, calls[1:]):
            assert next_start - previous_end >= 0.05 - 1e-3

    def test_serializes_concurrent_callers(self, recording_backend):
        recording_backend.latency = 0.02

        async def scenario():
            throttle = CaptureThrottle(recording_backend, min_interval=0.0, retry_backoff=0.01)
            return await asyncio.gather(
                *(throttle.capture(None, CaptureOptions()) for _ in range(4))
            )

        images = asyncio.run(scenario())

        assert len(images) == 4
        assert recording_backend.max_in_flight == 1

    def test_retries_quota_once(self, recording_backend):
        recording_backend.quota_failures = 1

        async def scenario():
            throttle = CaptureThrottle(recording_backend, min_interval=0.0, retry_backoff=0.01)
            image = await throttle.capture(None, CaptureOptions())
            return throttle, image

        throttle, image = asyncio.run(scenario())

        assert image == recording_backend.image
        assert len(recording_backend.calls) == 2
        assert throttle.metrics.quota_retries == 1
        assert throttle.metrics.captures == 1

    def test_second_quota_failure_propagates(self, recording_backend):
        recording_backend.quota_failures = 2

        async def scenario():
            throttle = CaptureThrottle(recording_backend, min_interval=0.0, retry_backoff=0.01)
            with pytest.raises(CaptureQuotaExceeded):
                await throttle.capture(None, CaptureOptions())
            return throttle

        throttle = asyncio.run(scenario())

        assert len(recording_backend.calls) == 2
        assert throttle.metrics.failures == 1

    def test_access_denied_is_not_retried(self, recording_backend):
        recording_backend.deny_access = True

        async def scenario():
            throttle = CaptureThrottle(recording_backend, min_interval=0.0, retry_backoff=0.01)
            with pytest.raises(CaptureAccessDenied):
                await throttle.capture(None, CaptureOptions())

        asyncio.run(scenario())

        assert len(recording_backend.calls) == 1

    def test_invalid_interval(self, recording_backend):
        with pytest.raises(ValueError):
            CaptureThrottle(recording_backend, min_interval=-1)
