"""
Stitcher Tests
==============

End-to-end compositing on a textured page with lossless frames.
"""

import cv2
import numpy as np
import pytest

from conftest import VIEWPORT_HEIGHT, VIEWPORT_WIDTH, decode, encode
from scrollstitch.errors import NoFramesToStitch, OutputTooLarge
from scrollstitch.imaging.stitcher import Stitcher, clamp
from scrollstitch.models.frame import Frame


def frame_at(document: np.ndarray, position: int, captured_at: int = None) -> Frame:
    """Frame reporting `position` whose pixels were taken at `captured_at`."""
    top = position if captured_at is None else captured_at
    return Frame(scroll_position=position, image=encode(document[top:top + VIEWPORT_HEIGHT]))


class TestStitcher:
    """Tests for Stitcher."""

    def setup_method(self):
        self.stitcher = Stitcher()

    def test_single_frame_is_unchanged(self, document):
        result = self.stitcher.stitch([frame_at(document, 0)], VIEWPORT_WIDTH, VIEWPORT_HEIGHT)

        assert (result.width, result.height, result.frame_count) == (320, 800, 1)
        assert np.array_equal(decode(result.image), document[:800])

    def test_two_frames_reconstruct_page(self, document):
        """Verify frames at 0 and 750 give exactly 1550 rows of the page."""
        result = self.stitcher.stitch(
            [frame_at(document, 0), frame_at(document, 750)],
            VIEWPORT_WIDTH,
            VIEWPORT_HEIGHT,
        )

        assert result.height == 1550
        assert result.frame_count == 2
        assert np.array_equal(decode(result.image), document[:1550])

    def test_misreported_delta_is_corrected(self, document):
        """Verify a 10px scroll reporting error leaves no seam artefact."""
        result = self.stitcher.stitch(
            [frame_at(document, 0), frame_at(document, 740, captured_at=750)],
            VIEWPORT_WIDTH,
            VIEWPORT_HEIGHT,
        )

        assert result.height == 1540
        assert np.array_equal(decode(result.image), document[:1540])

    def test_seam_is_clamped_to_search_window(self, document):
        """Verify a true overlap outside the window is cut at the window edge."""
        frames = [frame_at(document, 0), frame_at(document, 740, captured_at=760)]

        unbounded = Stitcher().stitch(frames, VIEWPORT_WIDTH, VIEWPORT_HEIGHT)
        bounded = Stitcher(backtrack_css=5, forward_css=5).stitch(
            frames, VIEWPORT_WIDTH, VIEWPORT_HEIGHT
        )

        # True overlap is 40 rows; expected is 60, so the window is [55, 65]
        assert np.array_equal(decode(unbounded.image), document[:1540])
        seamed = decode(bounded.image)
        assert bounded.height == 1540
        assert np.array_equal(seamed[:800], document[:800])
        assert np.array_equal(seamed[800:], document[815:1555])

    def test_frame_order_does_not_matter(self, document):
        frames = [frame_at(document, 1600), frame_at(document, 0), frame_at(document, 800)]

        result = self.stitcher.stitch(frames, VIEWPORT_WIDTH, VIEWPORT_HEIGHT)

        assert np.array_equal(decode(result.image), document[:2400])

    def test_unknown_viewport_uses_frame_size(self, document):
        result = self.stitcher.stitch([frame_at(document, 0), frame_at(document, 750)], 0, 0)
        assert np.array_equal(decode(result.image), document[:1550])

    def test_width_follows_first_frame(self, document):
        """Verify mismatched frame widths are fitted to the first frame."""
        narrow = cv2.resize(document[750:1550], (300, 800), interpolation=cv2.INTER_LINEAR)
        frames = [frame_at(document, 0), Frame(scroll_position=750, image=encode(narrow))]

        result = self.stitcher.stitch(frames, VIEWPORT_WIDTH, VIEWPORT_HEIGHT)

        assert result.width == 320
        assert result.height == 1550
        assert np.array_equal(decode(result.image)[:800], document[:800])

    def test_backwards_delta_is_clamped_to_min_step(self, document):
        """Verify duplicate positions still add at least one row."""
        frames = [frame_at(document, 0), frame_at(document, 0)]
        assert self.stitcher.normalized_deltas(frames, VIEWPORT_HEIGHT) == [1]

    def test_large_delta_is_clamped_to_viewport(self, document):
        frames = [frame_at(document, 0), frame_at(document, 1500)]
        assert self.stitcher.normalized_deltas(frames, VIEWPORT_HEIGHT) == [800]

    def test_jpeg_output(self, document):
        result = self.stitcher.stitch(
            [frame_at(document, 0)], VIEWPORT_WIDTH, VIEWPORT_HEIGHT, image_format="jpeg", quality=70
        )
        assert result.image_format == "jpeg"
        assert result.media_type == "image/jpeg"
        assert result.image[:2] == b"\xff\xd8"

    def test_output_too_large(self, document):
        stitcher = Stitcher(max_surface_edge=1000)

        with pytest.raises(OutputTooLarge):
            stitcher.stitch(
                [frame_at(document, 0), frame_at(document, 750)],
                VIEWPORT_WIDTH,
                VIEWPORT_HEIGHT,
            )

    def test_no_frames(self):
        with pytest.raises(NoFramesToStitch):
            self.stitcher.stitch([], VIEWPORT_WIDTH, VIEWPORT_HEIGHT)


class TestClamp:
    def test_clamp(self):
        assert clamp(-5, 0, 10) == 0
        assert clamp(15, 0, 10) == 10
        assert clamp(7, 0, 10) == 7
