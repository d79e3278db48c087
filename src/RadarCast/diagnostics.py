"""
Environmental Diagnostics Module

Time-of-day convective diagnostics and coarse synoptic classification used by
the blended and model forecast regimes.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

from .config import (
    BASELINE_INTENSITY,
    ACTIVE_PATTERN_ENERGY,
    FAVORABLE_ZONES,
)
from .types import GridFrame, RegionProfile
from util.math_utils import positive_anomaly_sum


@dataclass(frozen=True)
class SynopticPattern:
    """Coarse classification of the recent history."""
    pattern_type: str   # 'active' or 'quiet'
    mean_energy: float  # mean positive-anomaly sum per frame
    favorable_zones: Tuple[Tuple[int, int], ...] = FAVORABLE_ZONES


def solar_hour(when: datetime, longitude: float = 0.0) -> float:
    """
    Approximate local solar hour.

    Args:
        when: Time of day; aware values are converted to UTC, naive ones
            are taken as UTC
        longitude: Degrees east; shifts the clock by 1 h per 15 deg

    Returns:
        Hour of day in [0, 24)
    """
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    utc_hours = when.hour + when.minute / 60.0 + when.second / 3600.0
    return (utc_hours + longitude / 15.0) % 24.0


def convective_diurnal_factor(hour: float) -> float:
    """
    Step-wise diurnal modulation of convective initiation.

    Afternoon (12-20 h) peaks at 0.7, night (>= 20 h or <= 6 h) drops to 0.2,
    morning sits at 0.4.
    """
    if 12 <= hour <= 20:
        return 0.7
    if hour >= 20 or hour <= 6:
        return 0.2
    return 0.4


def estimate_instability(
    base_time: datetime,
    lead_minutes: float,
    profile: RegionProfile,
    longitude: float = 0.0
) -> float:
    """
    Convective instability at the valid time of a forecast step.

    instability = profile instability x diurnal factor(local solar hour)
    """
    valid_time = base_time + timedelta(minutes=lead_minutes)
    hour = solar_hour(valid_time, longitude)
    return profile.convective_instability * convective_diurnal_factor(hour)


def grid_diurnal_factor(hour: float) -> float:
    """
    Smooth whole-grid diurnal multiplier: 0.7 + 0.3 sin((hour - 6) pi / 12).

    Peaks at 12 h (1.0) and bottoms out at midnight (0.4).
    """
    return 0.7 + 0.3 * math.sin((hour - 6.0) * math.pi / 12.0)


def analyze_synoptic_pattern(frames: List[GridFrame]) -> SynopticPattern:
    """
    Classify the history as 'active' or 'quiet'.

    The mean over frames of the summed positive anomaly above baseline is
    compared against ACTIVE_PATTERN_ENERGY.
    """
    if not frames:
        return SynopticPattern(pattern_type="quiet", mean_energy=0.0)

    energy = sum(positive_anomaly_sum(f.data, BASELINE_INTENSITY) for f in frames) / len(frames)
    pattern_type = "active" if energy > ACTIVE_PATTERN_ENERGY else "quiet"
    return SynopticPattern(pattern_type=pattern_type, mean_energy=energy)
