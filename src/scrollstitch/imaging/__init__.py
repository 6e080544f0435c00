"""
Imaging Module
==============

Pixel-level components: decoding, luma sampling, seam alignment and
compositing.

Components:
    - LumaSampler: Downsampled grayscale grids for cheap comparison
    - SeamAligner: Luma-correlation overlap search with distance penalty
    - Stitcher: Seam-aligned vertical compositor
    - crop_area: Area selection crop of a single capture

Example:
    from scrollstitch.imaging import Stitcher

    result = Stitcher().stitch(frames, viewport_width=1280, viewport_height=800)
"""

from scrollstitch.imaging.luma import LumaSample, LumaSampler
from scrollstitch.imaging.alignment import AlignmentResult, SeamAligner
from scrollstitch.imaging.stitcher import Stitcher
from scrollstitch.imaging.area import SelectionRect, crop_area, normalize_rect
from scrollstitch.imaging.codec import decode_image, decoded_frame, encode_image


__all__ = [
    "LumaSample",
    "LumaSampler",
    "AlignmentResult",
    "SeamAligner",
    "Stitcher",
    "SelectionRect",
    "crop_area",
    "normalize_rect",
    "decode_image",
    "decoded_frame",
    "encode_image",
]
