"""
Luma Sampler
============

Downsamples a frame to a small grayscale grid for cheap comparison.

Luma uses fixed-point perceptual weights:

    Y = (77·R + 150·G + 29·B) >> 8

which approximates 0.30 / 0.59 / 0.11 and always fits in a byte.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LumaSample:
    """
    Downsampled intensity grid of one frame.

    Attributes:
        width: Sample width in pixels
        height: Sample height in pixels
        vertical_scale: sample_height / source_height
        intensities: uint8 array of shape (height, width)
    """

    width: int
    height: int
    vertical_scale: float
    intensities: np.ndarray

    def __repr__(self) -> str:
        return (
            f"LumaSample({self.width}x{self.height}, "
            f"vertical_scale={self.vertical_scale:.4f})"
        )


class LumaSampler:
    """
    Builds LumaSamples with a bounded width.

    Example:
        sampler = LumaSampler(sample_width=320)
        sample = sampler.sample(bgr)
        if sample is None:
            ...  # alignment unavailable for this frame
    """

    def __init__(self, sample_width: int = 320) -> None:
        if sample_width < 1:
            raise ValueError("sample_width must be >= 1")
        self.sample_width = sample_width

    def sample(self, pixels: Optional[np.ndarray]) -> Optional[LumaSample]:
        """
        Downscale and convert a BGR frame to luma.

        Args:
            pixels: BGR (H, W, 3) or BGRA (H, W, 4) uint8 matrix

        Returns:
            LumaSample, or None if there is no renderable surface
        """
        if pixels is None or pixels.ndim != 3 or pixels.shape[2] < 3:
            return None

        source_height, source_width = pixels.shape[:2]
        if source_height == 0 or source_width == 0:
            return None

        width = max(1, min(source_width, self.sample_width))
        height = max(1, round(source_height * (width / source_width)))

        color = np.ascontiguousarray(pixels[:, :, :3])
        if (width, height) != (source_width, source_height):
            resized = cv2.resize(color, (width, height), interpolation=cv2.INTER_AREA)
        else:
            resized = color

        # OpenCV channel order is BGR
        channels = resized.astype(np.uint32)
        luma = (
            channels[:, :, 2] * 77 + channels[:, :, 1] * 150 + channels[:, :, 0] * 29
        ) >> 8

        return LumaSample(
            width=width,
            height=height,
            vertical_scale=height / source_height,
            intensities=luma.astype(np.uint8),
        )
