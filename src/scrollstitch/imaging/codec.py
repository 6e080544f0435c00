"""
Image Codec
===========

Dedicated module for decoding captured frames into OpenCV matrices and
encoding composited output.

Design Rules:
    - This is the ONLY place in the codebase that decodes or encodes images
    - Validates shape and dtype
    - Fails fast on corrupt frames
    - Decoded buffers are scoped: use `decoded_frame()` so the matrix is
      released on every exit path
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import cv2
import numpy as np

from scrollstitch.errors import ImageDecodeError
from scrollstitch.models.frame import Frame


logger = logging.getLogger(__name__)


def decode_image(data: bytes, label: str = "image") -> np.ndarray:
    """
    Decode PNG/JPEG bytes to a BGR numpy array.

    Args:
        data: Encoded image bytes
        label: Name used in error messages

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or the image is invalid
    """
    if not data:
        raise ImageDecodeError(f"Failed to decode {label}: no image data")

    nparr = np.frombuffer(data, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise ImageDecodeError(
            f"Failed to decode {label}: cv2.imdecode returned None"
        )

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape for {label}: {bgr.shape}")

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype for {label}: {bgr.dtype}")

    return bgr


@contextmanager
def decoded_frame(frame: Frame) -> Iterator[np.ndarray]:
    """
    Decode a frame for the duration of a `with` block.

    Example:
        with decoded_frame(frame) as pixels:
            sample = sampler.sample(pixels)

    Raises:
        ImageDecodeError: If the frame cannot be decoded
    """
    pixels: Optional[np.ndarray] = decode_image(
        frame.image, label=f"frame at scroll {frame.scroll_position}"
    )
    try:
        yield pixels
    finally:
        pixels = None


def encode_image(pixels: np.ndarray, image_format: str = "png", quality: int = 92) -> bytes:
    """
    Encode a BGR matrix.

    Args:
        pixels: BGR image (H, W, 3), dtype=uint8
        image_format: "png" (lossless) or "jpeg" (lossy)
        quality: JPEG quality 1-100, ignored for PNG

    Returns:
        Encoded bytes

    Raises:
        ValueError: If the format is unknown or encoding fails
    """
    if image_format == "jpeg":
        ok, buf = cv2.imencode(
            ".jpg", pixels, [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
        )
    elif image_format == "png":
        ok, buf = cv2.imencode(".png", pixels)
    else:
        raise ValueError(f"Unknown image format: {image_format}")

    if not ok:
        raise ValueError(f"cv2.imencode failed for {pixels.shape} as {image_format}")

    return buf.tobytes()
