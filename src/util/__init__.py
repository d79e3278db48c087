"""RadarCast utility functions."""

from .math_utils import (
    polar_to_components,
    gaussian_falloff,
    linear_interpolate,
    clamp_index,
    gaussian_kernel,
    gaussian_smooth,
    box_downsample,
    bilinear_sample,
    positive_anomaly_sum,
)

__all__ = [
    "polar_to_components",
    "gaussian_falloff",
    "linear_interpolate",
    "clamp_index",
    "gaussian_kernel",
    "gaussian_smooth",
    "box_downsample",
    "bilinear_sample",
    "positive_anomaly_sum",
]
