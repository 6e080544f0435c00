"""
Seam Aligner
============

Finds the true vertical overlap between two adjacent frames.

The nominal scroll delta is routinely off by a few pixels (sub-pixel
scrolling, lazy-loaded content, sticky headers, nested scroll containers
folded into one virtual coordinate). The aligner corrects it using the
frames' luma content.

Algorithm:
    For every candidate overlap k in [2, min(prev.height, next.height) - 1]:

        score(k) = mean |prev[-k:, ::stride] - next[:k, ::stride]|
                   + penalty_weight * |k - expected_rows|

    The lowest score wins. The distance penalty biases toward the
    scroll-delta prediction and suppresses false matches on repeating
    patterns (striped tables, grids).

Fallback:
    If either sample is missing, there is no candidate, or the best
    score exceeds bad_score_threshold, the expected offset is returned
    unchanged. Alignment never raises.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from scrollstitch.imaging.luma import LumaSample


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AlignmentResult:
    """
    Outcome of aligning one adjacent frame pair.

    Attributes:
        source_offset: Rows of the next frame (source px) already covered
            by the previous frame
        confidence_score: 1.0 for a perfect match, 0.0 for a fallback
        raw_score: Best penalized score (inf when no candidate was scored)
        fell_back: True if the expected offset was returned unchanged
    """

    source_offset: int
    confidence_score: float
    raw_score: float
    fell_back: bool


class SeamAligner:
    """
    Luma-correlation overlap search with a distance penalty.

    Attributes:
        column_stride: Compare every Nth column
        penalty_weight: Score added per row away from the expected overlap
        bad_score_threshold: Best score above this is treated as no match
    """

    MIN_OVERLAP_ROWS = 2

    def __init__(
        self,
        column_stride: int = 3,
        penalty_weight: float = 0.18,
        bad_score_threshold: float = 28.0,
    ) -> None:
        if column_stride < 1:
            raise ValueError("column_stride must be >= 1")
        if bad_score_threshold <= 0:
            raise ValueError("bad_score_threshold must be positive")

        self.column_stride = column_stride
        self.penalty_weight = penalty_weight
        self.bad_score_threshold = bad_score_threshold

    def align(
        self,
        prev_sample: Optional[LumaSample],
        next_sample: Optional[LumaSample],
        expected_offset: int,
    ) -> AlignmentResult:
        """
        Refine the expected overlap between two frames.

        Args:
            prev_sample: Luma sample of the frame above (may be None)
            next_sample: Luma sample of the frame below (may be None)
            expected_offset: Expected overlap in source pixels of the
                next frame, derived from the scroll delta

        Returns:
            AlignmentResult. source_offset is in source pixels and is not
            clamped; callers bound it to their search window.
        """
        if prev_sample is None or next_sample is None:
            return self._fallback(expected_offset)

        max_rows = min(prev_sample.height, next_sample.height) - 1
        if max_rows < self.MIN_OVERLAP_ROWS:
            return self._fallback(expected_offset)

        width = min(prev_sample.width, next_sample.width)
        prev_luma = prev_sample.intensities[:, :width:self.column_stride].astype(np.int16)
        next_luma = next_sample.intensities[:, :width:self.column_stride].astype(np.int16)

        expected_rows = round(expected_offset * next_sample.vertical_scale)

        best_rows = expected_rows
        best_score = float("inf")

        for rows in range(self.MIN_OVERLAP_ROWS, max_rows + 1):
            diff = np.abs(prev_luma[-rows:] - next_luma[:rows])
            score = float(diff.mean()) + self.penalty_weight * abs(rows - expected_rows)

            if score < best_score:
                best_score = score
                best_rows = rows

        if best_score > self.bad_score_threshold:
            logger.debug(
                f"Seam match rejected: score={best_score:.2f} > "
                f"{self.bad_score_threshold}, keeping expected offset {expected_offset}"
            )
            return self._fallback(expected_offset, raw_score=best_score)

        source_offset = round(best_rows / next_sample.vertical_scale)
        confidence = max(0.0, 1.0 - best_score / self.bad_score_threshold)

        logger.debug(
            f"Seam aligned: expected={expected_offset}px, "
            f"aligned={source_offset}px, score={best_score:.2f}"
        )

        return AlignmentResult(
            source_offset=source_offset,
            confidence_score=confidence,
            raw_score=best_score,
            fell_back=False,
        )

    @staticmethod
    def _fallback(expected_offset: int, raw_score: float = float("inf")) -> AlignmentResult:
        return AlignmentResult(
            source_offset=expected_offset,
            confidence_score=0.0,
            raw_score=raw_score,
            fell_back=True,
        )
