"""
Regime Blending Module

Weights and grid blending for the transition between advection-based
nowcasting and explicit feature evolution.
"""

from dataclasses import dataclass

import numpy as np

from .config import NOWCAST_MAX_LEAD, BLENDED_MAX_LEAD
from util.math_utils import linear_interpolate


@dataclass(frozen=True)
class RegimeBlendWeights:
    """Weights for combining the advected and feature-evolved grids."""
    w_advection: float
    w_features: float


def compute_blend_weights(
    lead_minutes: float,
    start: float = NOWCAST_MAX_LEAD,
    end: float = BLENDED_MAX_LEAD
) -> RegimeBlendWeights:
    """
    Blend weights across the blended window.

    The feature weight rises linearly from 0 at `start` to 1 at `end`.

    Args:
        lead_minutes: Forecast lead time in minutes
        start: Lead time where the blended window opens
        end: Lead time where it closes

    Returns:
        RegimeBlendWeights summing to 1
    """
    w_features = linear_interpolate(lead_minutes, start, end, 0.0, 1.0)
    return RegimeBlendWeights(w_advection=1.0 - w_features, w_features=w_features)


def blend_frames(
    advected: np.ndarray,
    evolved: np.ndarray,
    weights: RegimeBlendWeights
) -> np.ndarray:
    """
    Linear blend of two grids.

    V_blend = w_a x advected + w_f x evolved
    """
    return weights.w_advection * advected + weights.w_features * evolved
