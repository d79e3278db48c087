"""
Motion Estimation Module

Coarse-to-fine block-matching optical flow between consecutive radar frames.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
from scipy import ndimage

from .config import (
    GRID_SIZE,
    CELL_SIZE_KM,
    PRECIP_THRESHOLD,
    MOTION_PARAMS,
    MOTION_SMOOTHING_KERNEL,
    MotionParams,
)
from .types import GridFrame, MotionField
from util.math_utils import box_downsample

logger = logging.getLogger(__name__)


class OpticalFlow:
    """
    Multiscale block-matching motion estimator.

    For every pyramid level (coarsest first) each precipitating cell is
    matched against a neighbourhood of the next frame by minimum mean squared
    patch difference. Matches with confidence 1 / (1 + error / 100) above the
    threshold are written into the full-resolution field; finer levels
    overwrite coarser ones. A 3x3 weighted smoothing pass runs last.
    """

    def __init__(self, params: Optional[MotionParams] = None):
        self.params = params if params is not None else MOTION_PARAMS

    def analyze_motion(
        self,
        frame1: np.ndarray,
        frame2: np.ndarray,
        interval_hours: float
    ) -> MotionField:
        """
        Estimate the motion field from frame1 to frame2.

        Args:
            frame1: Earlier grid
            frame2: Later grid
            interval_hours: Time between the frames in hours

        Returns:
            MotionField with u/v in km/h (v positive northward)
        """
        size = frame1.shape[0]
        field = MotionField.zeros(size)
        if interval_hours <= 0:
            logger.debug("Non-positive frame interval %.4f h, returning zero motion", interval_hours)
            return field

        for level in range(self.params.pyramid_levels - 1, -1, -1):
            scale = 2 ** level
            coarse1 = box_downsample(frame1, scale)
            coarse2 = box_downsample(frame2, scale)

            error, best_di, best_dj = self._block_match(
                coarse1, coarse2, self.params.search_radius * scale
            )
            confidence = 1.0 / (1.0 + error / self.params.error_scale)
            accepted = (coarse1 > PRECIP_THRESHOLD) & (confidence > self.params.min_confidence)

            rows, cols = np.nonzero(accepted)
            grid_rows = np.minimum(rows * scale, size - 1)
            grid_cols = np.minimum(cols * scale, size - 1)
            cell_km = CELL_SIZE_KM * scale
            field.u[grid_rows, grid_cols] = best_dj[rows, cols] * cell_km / interval_hours
            field.v[grid_rows, grid_cols] = -best_di[rows, cols] * cell_km / interval_hours
            field.match_confidence[grid_rows, grid_cols] = confidence[rows, cols]

            logger.debug("Pyramid scale %d: %d vectors accepted", scale, len(rows))

        return self._smooth(field)

    def _block_match(
        self,
        frame1: np.ndarray,
        frame2: np.ndarray,
        search_radius: int
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Exhaustive search for every cell at once.

        Candidates are visited row-major from (-R, -R); the first minimum wins.
        Patches are extracted with edge clamping; candidate centers must lie
        inside the frame.

        Returns:
            (min_error, best_di, best_dj) arrays shaped like frame1
        """
        n = frame1.shape[0]
        half = self.params.window_half
        window = 2 * half + 1
        radius = min(search_radius, n - 1)

        padded1 = np.pad(frame1, half, mode="edge")
        padded2 = np.pad(frame2, half + radius, mode="edge")
        index = np.arange(n)

        best_error = np.full((n, n), np.inf)
        best_di = np.zeros((n, n), dtype=int)
        best_dj = np.zeros((n, n), dtype=int)

        for di in range(-radius, radius + 1):
            valid_rows = ((index + di >= 0) & (index + di < n))[:, None]
            for dj in range(-radius, radius + 1):
                valid = valid_rows & ((index + dj >= 0) & (index + dj < n))[None, :]
                shifted = padded2[
                    radius + di:radius + di + n + 2 * half,
                    radius + dj:radius + dj + n + 2 * half,
                ]
                squared = (padded1 - shifted) ** 2
                error = ndimage.uniform_filter(squared, size=window, mode="constant")
                error = error[half:half + n, half:half + n]

                better = valid & (error < best_error)
                best_error[better] = error[better]
                best_di[better] = di
                best_dj[better] = dj

        return best_error, best_di, best_dj

    @staticmethod
    def _smooth(field: MotionField) -> MotionField:
        """3x3 weighted average over interior cells; border cells keep their raw values."""
        kernel = np.array(MOTION_SMOOTHING_KERNEL)
        smoothed = MotionField(
            u=field.u.copy(), v=field.v.copy(), match_confidence=field.match_confidence.copy()
        )
        for name in ("u", "v", "match_confidence"):
            source = getattr(field, name)
            target = getattr(smoothed, name)
            target[1:-1, 1:-1] = ndimage.correlate(source, kernel, mode="constant")[1:-1, 1:-1]
        return smoothed


def analyze_recent_motion(
    frames: List[GridFrame],
    flow: Optional[OpticalFlow] = None
) -> MotionField:
    """
    Motion field from the two most recent frames.

    Fewer than two frames yields an all-zero, zero-confidence field.
    """
    if len(frames) < 2:
        return MotionField.zeros(GRID_SIZE)

    flow = flow if flow is not None else OpticalFlow()
    previous, latest = frames[-2], frames[-1]
    interval_hours = (latest.timestamp - previous.timestamp).total_seconds() / 3600.0
    return flow.analyze_motion(previous.data, latest.data, interval_hours)
