"""
Stitcher
========

Composites an ordered frame list into one vertically elongated image.

Pipeline:
    1. Sort frames by scroll position
    2. Derive the device pixel scale from the first frame and viewport width
    3. Allocate the surface: viewport height + Σ clamp(delta, min_step, viewport)
    4. Reject surfaces larger than max_surface_edge (before any drawing)
    5. Draw the first frame in full
    6. For each next frame, refine the scroll-delta overlap with the
       SeamAligner, clamp it to [expected - backtrack, expected + forward],
       and append only the unseen rows
    7. Crop to the drawn height, encode

Design Rules:
    - All pixel arithmetic is in source pixels via the scale factor
    - Decoded frames live only inside `decoded_frame()` blocks
    - Alignment never fails a stitch; uncertain seams use the expected offset
"""

import logging
from typing import List, Optional, Sequence

import cv2
import numpy as np

from scrollstitch.errors import NoFramesToStitch, OutputTooLarge
from scrollstitch.imaging.alignment import SeamAligner
from scrollstitch.imaging.codec import decoded_frame, encode_image
from scrollstitch.imaging.luma import LumaSampler
from scrollstitch.models.frame import Frame
from scrollstitch.models.output import StitchResult


logger = logging.getLogger(__name__)


def clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


class Stitcher:
    """
    Seam-aligned vertical compositor.

    Attributes:
        sampler: LumaSampler used for both sides of every seam
        aligner: SeamAligner refining each seam
        min_step_px: Smallest scroll delta counted between frames (CSS px)
        max_surface_edge: Largest output width/height in pixels
        backtrack_css: Maximum upward seam correction (CSS px)
        forward_css: Maximum downward seam correction (CSS px)

    Example:
        stitcher = Stitcher()
        result = stitcher.stitch(frames, viewport_width=1280, viewport_height=800)
        print(result.width, result.height, result.frame_count)
    """

    def __init__(
        self,
        sampler: Optional[LumaSampler] = None,
        aligner: Optional[SeamAligner] = None,
        min_step_px: int = 1,
        max_surface_edge: int = 32767,
        backtrack_css: int = 96,
        forward_css: int = 96,
    ) -> None:
        self.sampler = sampler or LumaSampler()
        self.aligner = aligner or SeamAligner()
        self.min_step_px = max(1, min_step_px)
        self.max_surface_edge = max_surface_edge
        self.backtrack_css = max(0, backtrack_css)
        self.forward_css = max(0, forward_css)

    @classmethod
    def from_settings(cls, settings) -> "Stitcher":
        """Build a stitcher from a loaded Settings object."""
        return cls(
            sampler=LumaSampler(sample_width=settings.alignment.sample_width),
            aligner=SeamAligner(
                column_stride=settings.alignment.column_stride,
                penalty_weight=settings.alignment.penalty_weight,
                bad_score_threshold=settings.alignment.bad_score_threshold,
            ),
            min_step_px=settings.stitch.min_step_px,
            max_surface_edge=settings.stitch.max_surface_edge,
            backtrack_css=settings.alignment.backtrack_css,
            forward_css=settings.alignment.forward_css,
        )

    def normalized_deltas(self, frames: Sequence[Frame], viewport_height: int) -> List[int]:
        """Scroll deltas between adjacent frames, clamped to [min_step_px, viewport_height]."""
        return [
            clamp(nxt.scroll_position - prev.scroll_position, self.min_step_px, viewport_height)
            for prev, nxt in zip(frames, frames[1:])
        ]

    def stitch(
        self,
        frames: Sequence[Frame],
        viewport_width: int,
        viewport_height: int,
        image_format: str = "png",
        quality: int = 92,
    ) -> StitchResult:
        """
        Composite frames into one encoded image.

        Args:
            frames: Captured frames (any order)
            viewport_width: Logical viewport width (CSS px); <= 0 falls
                back to the first frame's pixel width
            viewport_height: Logical viewport height (CSS px); <= 0 falls
                back to the first frame's pixel height
            image_format: "png" or "jpeg"
            quality: JPEG quality 1-100

        Returns:
            StitchResult with the encoded image

        Raises:
            NoFramesToStitch: If frames is empty
            OutputTooLarge: If the surface would exceed max_surface_edge
            ImageDecodeError: If a frame cannot be decoded
        """
        if not frames:
            raise NoFramesToStitch()

        ordered = sorted(frames, key=lambda frame: frame.scroll_position)
        seams_aligned = 0
        seams_fell_back = 0

        with decoded_frame(ordered[0]) as first:
            first_height, first_width = first.shape[:2]
            viewport_width = viewport_width if viewport_width > 0 else first_width
            viewport_height = viewport_height if viewport_height > 0 else first_height
            scale = first_width / viewport_width

            deltas = self.normalized_deltas(ordered, viewport_height)
            canvas_width = first_width
            canvas_height = round((viewport_height + sum(deltas)) * scale)

            if canvas_width > self.max_surface_edge or canvas_height > self.max_surface_edge:
                raise OutputTooLarge(
                    f"Stitched surface {canvas_width}x{canvas_height} exceeds "
                    f"maximum edge {self.max_surface_edge}"
                )

            canvas = np.zeros((canvas_height, canvas_width, 3), dtype=np.uint8)
            drawn = min(first_height, canvas_height)
            canvas[:drawn] = first[:drawn]
            prev_sample = self.sampler.sample(first)

        backtrack_px = round(self.backtrack_css * scale)
        forward_px = round(self.forward_css * scale)

        for frame, delta in zip(ordered[1:], deltas):
            if drawn >= canvas_height:
                logger.debug(f"Surface full at {drawn}px, skipping remaining frames")
                break

            with decoded_frame(frame) as pixels:
                source = self._fit_width(pixels, canvas_width)
                source_height = source.shape[0]

                overlap_css = max(0, viewport_height - delta)
                expected = clamp(round(overlap_css * scale), 0, source_height - 1)

                next_sample = self.sampler.sample(source)
                result = self.aligner.align(prev_sample, next_sample, expected)
                if result.fell_back:
                    seams_fell_back += 1
                else:
                    seams_aligned += 1

                low = clamp(expected - backtrack_px, 0, source_height - 1)
                high = clamp(expected + forward_px, 0, source_height - 1)
                offset = clamp(result.source_offset, low, high)

                draw_height = min(source_height - offset, canvas_height - drawn)
                if draw_height > 0:
                    canvas[drawn:drawn + draw_height] = source[offset:offset + draw_height]
                    drawn += draw_height

                prev_sample = next_sample

        if 0 < drawn < canvas_height:
            canvas = canvas[:drawn]

        image = encode_image(canvas, image_format, quality)
        height, width = canvas.shape[:2]

        logger.info(
            f"Stitched {len(ordered)} frames into {width}x{height} "
            f"({seams_aligned} seams aligned, {seams_fell_back} fell back)"
        )

        return StitchResult(
            image=image,
            image_format=image_format,
            width=width,
            height=height,
            frame_count=len(ordered),
        )

    @staticmethod
    def _fit_width(pixels: np.ndarray, width: int) -> np.ndarray:
        """Stretch a frame horizontally to the surface width, keeping its height."""
        if pixels.shape[1] == width:
            return pixels
        return cv2.resize(pixels, (width, pixels.shape[0]), interpolation=cv2.INTER_LINEAR)
