"""
Mathematical Utility Functions

Grid filtering, resampling, and interpolation helpers for radar grids.
"""

import math
from typing import Tuple

import numpy as np
from scipy import ndimage


def polar_to_components(speed: float, direction_deg: float) -> Tuple[float, float]:
    """
    Convert a speed and math-convention direction to vector components.

    Args:
        speed: Vector magnitude
        direction_deg: Direction in degrees, counter-clockwise from east

    Returns:
        (u, v) tuple
    """
    theta = math.radians(direction_deg)
    return (speed * math.cos(theta), speed * math.sin(theta))


def gaussian_falloff(distance, radius: float):
    """
    Radial Gaussian falloff with sigma = radius / 3.

    Works on scalars and numpy arrays alike.
    """
    return np.exp(-distance * distance / (2.0 * radius * radius / 9.0))


def linear_interpolate(
    x: float,
    x1: float,
    x2: float,
    y1: float,
    y2: float
) -> float:
    """
    Linear interpolation between two points.

    Args:
        x: Input value
        x1, x2: X bounds
        y1, y2: Y values at bounds

    Returns:
        Interpolated y value, clamped to [y1, y2] range
    """
    if x <= x1:
        return y1
    if x >= x2:
        return y2
    t = (x - x1) / (x2 - x1)
    return y1 + t * (y2 - y1)


def clamp_index(index: float, size: int) -> int:
    """Clamp a (possibly fractional) index into [0, size - 1]."""
    return int(max(0, min(size - 1, index)))


def gaussian_kernel(sigma: float) -> np.ndarray:
    """
    Normalized square Gaussian kernel truncated at ceil(3 * sigma).

    Args:
        sigma: Standard deviation in cells

    Returns:
        (2r+1, 2r+1) kernel summing to 1
    """
    radius = int(math.ceil(sigma * 3))
    offsets = np.arange(-radius, radius + 1, dtype=float)
    di, dj = np.meshgrid(offsets, offsets, indexing="ij")
    kernel = np.exp(-(di * di + dj * dj) / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


def gaussian_smooth(grid: np.ndarray, sigma: float) -> np.ndarray:
    """
    Gaussian smoothing with edge-clamped borders.

    Samples outside the grid take the value of the nearest edge cell.
    """
    return ndimage.correlate(grid, gaussian_kernel(sigma), mode="nearest")


def box_downsample(grid: np.ndarray, scale: int) -> np.ndarray:
    """
    Downsample by averaging scale x scale blocks.

    Blocks that run past the edge reuse the last row / column.
    """
    if scale == 1:
        return grid.copy()
    rows, cols = grid.shape
    new_rows = -(-rows // scale)
    new_cols = -(-cols // scale)
    padded = np.pad(
        grid,
        ((0, new_rows * scale - rows), (0, new_cols * scale - cols)),
        mode="edge",
    )
    return padded.reshape(new_rows, scale, new_cols, scale).mean(axis=(1, 3))


def bilinear_sample(
    grid: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray
) -> np.ndarray:
    """
    Bilinearly interpolate `grid` at fractional (rows, cols).

    Callers must pass coordinates inside [0, size - 1]; upper neighbours are
    clamped to the last row / column.
    """
    n_rows, n_cols = grid.shape
    i0 = np.floor(rows).astype(int)
    j0 = np.floor(cols).astype(int)
    i1 = np.minimum(i0 + 1, n_rows - 1)
    j1 = np.minimum(j0 + 1, n_cols - 1)
    di = rows - i0
    dj = cols - j0

    return (
        (1 - di) * (1 - dj) * grid[i0, j0]
        + di * (1 - dj) * grid[i1, j0]
        + (1 - di) * dj * grid[i0, j1]
        + di * dj * grid[i1, j1]
    )


def positive_anomaly_sum(grid: np.ndarray, baseline: float) -> float:
    """Sum of max(0, value - baseline) over the grid."""
    return float(np.maximum(grid - baseline, 0.0).sum())
