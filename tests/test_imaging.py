"""
Imaging Tests
=============

Tests for luma sampling, seam alignment, the image codec and area crops.
"""

import numpy as np
import pytest

from conftest import decode, encode
from scrollstitch.errors import ImageDecodeError, InvalidPageGeometry, SelectionTooSmall
from scrollstitch.imaging.alignment import SeamAligner
from scrollstitch.imaging.area import SelectionRect, crop_area, normalize_rect, source_region
from scrollstitch.imaging.codec import decode_image, decoded_frame, encode_image
from scrollstitch.imaging.luma import LumaSampler
from scrollstitch.models.frame import Frame


def solid(height: int, width: int, bgr) -> np.ndarray:
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:] = bgr
    return pixels


class TestLumaSampler:
    """Tests for LumaSampler."""

    def test_perceptual_weights(self):
        """Verify fixed-point weights on pure channels (BGR input)."""
        sampler = LumaSampler(sample_width=16)

        red = sampler.sample(solid(4, 4, (0, 0, 255)))
        green = sampler.sample(solid(4, 4, (0, 255, 0)))
        blue = sampler.sample(solid(4, 4, (255, 0, 0)))
        white = sampler.sample(solid(4, 4, (255, 255, 255)))

        assert red.intensities[0, 0] == (255 * 77) >> 8
        assert green.intensities[0, 0] == (255 * 150) >> 8
        assert blue.intensities[0, 0] == (255 * 29) >> 8
        assert white.intensities[0, 0] == 255

    def test_width_is_bounded(self):
        """Verify wide frames are downscaled with aspect ratio kept."""
        sample = LumaSampler(sample_width=320).sample(solid(100, 1280, (10, 20, 30)))

        assert sample.width == 320
        assert sample.height == 25
        assert sample.vertical_scale == pytest.approx(0.25)
        assert sample.intensities.shape == (25, 320)
        assert sample.intensities.dtype == np.uint8

    def test_narrow_frame_not_upscaled(self):
        """Verify frames narrower than the sample width keep their size."""
        sample = LumaSampler(sample_width=320).sample(solid(50, 100, (0, 0, 0)))

        assert (sample.width, sample.height) == (100, 50)
        assert sample.vertical_scale == 1.0

    def test_bgra_input(self):
        """Verify the alpha channel is ignored."""
        pixels = np.zeros((4, 4, 4), dtype=np.uint8)
        pixels[:, :, :3] = 255
        sample = LumaSampler().sample(pixels)
        assert sample.intensities[0, 0] == 255

    def test_empty_surface_returns_none(self):
        """Verify unusable inputs yield no sample."""
        sampler = LumaSampler()

        assert sampler.sample(None) is None
        assert sampler.sample(np.zeros((0, 10, 3), dtype=np.uint8)) is None
        assert sampler.sample(np.zeros((10, 10), dtype=np.uint8)) is None


class TestSeamAligner:
    """Tests for SeamAligner."""

    def setup_method(self):
        self.sampler = LumaSampler(sample_width=320)
        self.aligner = SeamAligner()

    def test_finds_true_overlap(self, document):
        """Verify the exact overlap is found when the delta is right."""
        prev = self.sampler.sample(document[0:800])
        nxt = self.sampler.sample(document[750:1550])

        result = self.aligner.align(prev, nxt, expected_offset=50)

        assert result.source_offset == 50
        assert not result.fell_back
        assert result.confidence_score == pytest.approx(1.0)

    def test_corrects_misreported_delta(self, document):
        """Verify a few pixels of scroll error are corrected."""
        prev = self.sampler.sample(document[0:800])
        nxt = self.sampler.sample(document[750:1550])

        result = self.aligner.align(prev, nxt, expected_offset=60)

        assert result.source_offset == 50
        assert not result.fell_back
        assert 0.0 < result.confidence_score < 1.0

    def test_missing_sample_returns_expected(self, document):
        """Verify alignment falls back when a sample is absent."""
        prev = self.sampler.sample(document[0:800])

        result = self.aligner.align(prev, None, expected_offset=42)

        assert result.source_offset == 42
        assert result.fell_back
        assert result.confidence_score == 0.0

        both_absent = self.aligner.align(None, None, expected_offset=42)
        assert both_absent.source_offset == 42
        assert both_absent.fell_back

    def test_tiny_samples_return_expected(self):
        """Verify there is no candidate when samples are too short."""
        tiny = self.sampler.sample(solid(2, 8, (1, 2, 3)))

        result = self.aligner.align(tiny, tiny, expected_offset=1)

        assert result.source_offset == 1
        assert result.fell_back

    def test_unrelated_frames_fall_back(self):
        """Verify a bad best score keeps the expected offset."""
        rng = np.random.default_rng(3)
        prev = self.sampler.sample(rng.integers(0, 256, size=(200, 320, 3), dtype=np.uint8))
        nxt = self.sampler.sample(rng.integers(0, 256, size=(200, 320, 3), dtype=np.uint8))

        result = self.aligner.align(prev, nxt, expected_offset=30)

        assert result.source_offset == 30
        assert result.fell_back
        assert result.raw_score > self.aligner.bad_score_threshold

    def test_scales_back_to_source_pixels(self, document):
        """Verify offsets found on downscaled samples map back to source rows."""
        wide = np.repeat(document, 2, axis=1)
        prev = self.sampler.sample(wide[0:800])
        nxt = self.sampler.sample(wide[600:1400])

        result = self.aligner.align(prev, nxt, expected_offset=200)

        assert nxt.vertical_scale == pytest.approx(0.5)
        assert result.source_offset == 200
        assert not result.fell_back

    def test_invalid_parameters(self):
        """Verify constructor validation."""
        with pytest.raises(ValueError):
            SeamAligner(column_stride=0)
        with pytest.raises(ValueError):
            SeamAligner(bad_score_threshold=0)


class TestCodec:
    """Tests for image encoding and decoding."""

    def test_png_is_lossless(self, document):
        pixels = document[:100]
        assert np.array_equal(decode_image(encode_image(pixels, "png")), pixels)

    def test_jpeg_encoding(self, document):
        data = encode_image(document[:100], "jpeg", quality=80)
        assert data[:2] == b"\xff\xd8"
        assert decode_image(data).shape == (100, 320, 3)

    def test_unknown_format(self, document):
        with pytest.raises(ValueError):
            encode_image(document[:10], "webp")

    def test_corrupt_bytes(self):
        with pytest.raises(ImageDecodeError):
            decode_image(b"not an image")
        with pytest.raises(ImageDecodeError):
            decode_image(b"")

    def test_decoded_frame_scope(self, document):
        """Verify the context manager yields the decoded pixels."""
        frame = Frame(scroll_position=0, image=encode(document[:50]))
        with decoded_frame(frame) as pixels:
            assert pixels.shape == (50, 320, 3)


class TestAreaCrop:
    """Tests for selection normalization and area crops."""

    def test_normalize_negative_extent(self):
        """Verify a selection dragged up-left is flipped."""
        rect = normalize_rect(SelectionRect(x=110, y=70, width=-100, height=-50), 320, 800)
        assert (rect.x, rect.y, rect.width, rect.height) == (10, 20, 100, 50)

    def test_normalize_clamps_to_viewport(self):
        rect = normalize_rect(SelectionRect(x=-50, y=780, width=100, height=100), 320, 800)
        assert (rect.x, rect.y, rect.width, rect.height) == (0, 780, 50, 20)

    def test_source_region_floors_origin_and_ceils_size(self):
        rect = SelectionRect(x=10.4, y=20.6, width=100.2, height=50.1)
        assert source_region(rect, 320, 800, 640, 1600) == (20, 41, 201, 101)

    def test_crop_on_high_density_capture(self, document):
        """Verify CSS selections map through the device pixel ratio."""
        capture = np.repeat(np.repeat(document[:800], 2, axis=0), 2, axis=1)

        result = crop_area(
            encode(capture),
            SelectionRect(x=10, y=20, width=100, height=50),
            viewport_width=320,
            viewport_height=800,
        )

        assert (result.width, result.height, result.frame_count) == (200, 100, 1)
        assert np.array_equal(decode(result.image), capture[40:140, 20:220])

    def test_selection_too_small(self, document):
        with pytest.raises(SelectionTooSmall):
            crop_area(encode(document[:800]), SelectionRect(x=5, y=5, width=1, height=40), 320, 800)

    def test_invalid_viewport(self, document):
        with pytest.raises(InvalidPageGeometry):
            crop_area(encode(document[:800]), SelectionRect(x=5, y=5, width=40, height=40), 0, 800)
