"""
Uncertainty Quantification Module

Stochastic ensemble generation, ensemble statistics, and physical-constraint
enforcement applied to every forecast step.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .config import (
    GRID_SIZE,
    BASELINE_INTENSITY,
    MAX_INTENSITY,
    ENSEMBLE_PARAMS,
    EnsembleParams,
)
from .rng import SeededRNG
from util.math_utils import gaussian_smooth, positive_anomaly_sum

logger = logging.getLogger(__name__)

_ROWS, _COLS = np.indices((GRID_SIZE, GRID_SIZE))
_EDGE_DISTANCE = np.minimum.reduce([_ROWS, _COLS, GRID_SIZE - 1 - _ROWS, GRID_SIZE - 1 - _COLS])


@dataclass
class EnsembleResult:
    """
    Ensemble output for one forecast step.

    Attributes:
        frame: Constrained ensemble-mean grid
        uncertainty: min(1, spread / 50) per cell
        spread: Per-cell ensemble standard deviation (>= 0)
    """
    frame: np.ndarray
    uncertainty: np.ndarray
    spread: np.ndarray


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def generate_ensemble_members(
    frame: np.ndarray,
    uncertainty_level: float,
    rng: SeededRNG,
    params: Optional[EnsembleParams] = None
) -> List[np.ndarray]:
    """
    Perturbed copies of `frame`.

    Each member is circularly shifted by round(N(0, level x 5)) cells on both
    axes (wraparound) and its anomaly scaled by max(0, N(1, level x 0.3)).

    Args:
        frame: Candidate grid
        uncertainty_level: 1 - step confidence
        rng: Generation stream
        params: Ensemble parameters. Default from config.

    Returns:
        List of member grids
    """
    if params is None:
        params = ENSEMBLE_PARAMS

    members = []
    for _ in range(params.members):
        shift_i = _round_half_up(rng.normal(0, uncertainty_level * params.shift_scale))
        shift_j = _round_half_up(rng.normal(0, uncertainty_level * params.shift_scale))
        # member[i, j] = frame[(i + shift_i) % n, (j + shift_j) % n]
        shifted = np.roll(frame, (-shift_i, -shift_j), axis=(0, 1))

        factor = 1.0 + rng.normal(0, uncertainty_level * params.intensity_scale)
        members.append(BASELINE_INTENSITY + (shifted - BASELINE_INTENSITY) * max(0.0, factor))

    return members


def apply_boundary_decay(frame: np.ndarray, lead_minutes: float, params: Optional[EnsembleParams] = None) -> np.ndarray:
    """
    Decay anomalies linearly to baseline within a lead-time-scaled edge margin.

    width = min(10, lead / 30) cells; a cell at distance d < width from the
    nearest edge keeps d / width of its anomaly.
    """
    if params is None:
        params = ENSEMBLE_PARAMS

    width = min(params.boundary_max_width, lead_minutes / params.boundary_minutes_per_cell)
    result = frame.copy()
    if width <= 0:
        return result

    mask = _EDGE_DISTANCE < width
    decay = _EDGE_DISTANCE[mask] / width
    result[mask] = BASELINE_INTENSITY + (result[mask] - BASELINE_INTENSITY) * decay
    return result


def apply_physical_constraints(
    frame: np.ndarray,
    lead_minutes: float,
    params: Optional[EnsembleParams] = None
) -> np.ndarray:
    """
    Enforce physical plausibility on an ensemble-mean grid.

    In order: rescale total anomaly mass to its expected exponential decay
    (skipped when the total is zero), cap growth at 64 + 86 x 1.5^(t/60),
    smooth with sigma = 0.5 + t/240 beyond 120 min, decay toward baseline at
    the domain edges, and clamp to [64, 150].
    """
    if params is None:
        params = ENSEMBLE_PARAMS

    total = positive_anomaly_sum(frame, BASELINE_INTENSITY)
    target_total = total * math.exp(-params.mass_decay_rate * lead_minutes)

    constrained = frame
    if total > 0:
        scale = target_total / total
        constrained = BASELINE_INTENSITY + (frame - BASELINE_INTENSITY) * scale
        logger.debug("Mass rescale at %.0f min: factor %.4f", lead_minutes, scale)

    ceiling = BASELINE_INTENSITY + (MAX_INTENSITY - BASELINE_INTENSITY) * (
        params.growth_base ** (lead_minutes / 60.0)
    )
    constrained = np.minimum(constrained, ceiling)

    if lead_minutes > params.smoothing_lead:
        constrained = gaussian_smooth(constrained, 0.5 + lead_minutes / 240.0)

    constrained = apply_boundary_decay(constrained, lead_minutes, params)
    return np.clip(constrained, BASELINE_INTENSITY, MAX_INTENSITY)


def apply_ensemble_uncertainty(
    frame: np.ndarray,
    uncertainty_level: float,
    lead_minutes: float,
    rng: SeededRNG,
    params: Optional[EnsembleParams] = None
) -> EnsembleResult:
    """
    Ensemble a candidate frame and constrain its mean.

    Args:
        frame: Raw regime output
        uncertainty_level: 1 - step confidence
        lead_minutes: Forecast lead time
        rng: Generation stream
        params: Ensemble parameters. Default from config.

    Returns:
        EnsembleResult with constrained mean, uncertainty and spread grids
    """
    if params is None:
        params = ENSEMBLE_PARAMS

    members = np.stack(generate_ensemble_members(frame, uncertainty_level, rng, params))
    mean = members.mean(axis=0)
    spread = members.std(axis=0)
    uncertainty = np.minimum(1.0, spread / params.spread_normalizer)

    return EnsembleResult(
        frame=apply_physical_constraints(mean, lead_minutes, params),
        uncertainty=uncertainty,
        spread=spread,
    )
