"""
Forecast Generation Module

Three-regime multi-horizon precipitation forecasting:

- nowcast (lead <= 120 min): semi-Lagrangian advection along the estimated
  motion field plus scale-dependent cascade decay
- blended (120 < lead <= 360 min): advection blended with explicit feature
  evolution and stochastic convective initiation
- model (lead > 360 min): long-term feature decay, climatological features,
  and a diurnal cycle

Every raw regime frame is passed through the ensemble / constraint step.
"""

import dataclasses
import logging
import math
from datetime import datetime, timedelta
from typing import Iterator, List, Optional, Tuple

import numpy as np

from .config import (
    GRID_SIZE,
    BASELINE_INTENSITY,
    CELL_SIZE_KM,
    GRID_CENTER,
    NOWCAST_MAX_LEAD,
    BLENDED_MAX_LEAD,
    MODEL_SATURATION_LEAD,
    ADVECTION_DECAY_RATE,
    CASCADE_PARAMS,
    CascadeParams,
    TRACKER_PARAMS,
)
from .blending import compute_blend_weights, blend_frames
from .diagnostics import (
    SynopticPattern,
    analyze_synoptic_pattern,
    estimate_instability,
    grid_diurnal_factor,
    solar_hour,
)
from .generator import km_to_grid
from .optical_flow import OpticalFlow, analyze_recent_motion
from .rng import SeededRNG
from .tracking import FeatureTracker
from .types import (
    GridFrame,
    MotionField,
    PredictionFrame,
    RegionProfile,
    WeatherFeature,
    FeatureSample,
    Circular,
)
from .uncertainty import apply_ensemble_uncertainty
from util.math_utils import (
    bilinear_sample,
    clamp_index,
    gaussian_falloff,
    gaussian_smooth,
    linear_interpolate,
)

logger = logging.getLogger(__name__)

_ROWS, _COLS = np.indices((GRID_SIZE, GRID_SIZE))


# =============================================================================
# Regime selection
# =============================================================================

def select_regime(lead_minutes: float) -> str:
    """Forecast regime for a lead time: 'nowcast', 'blended' or 'model'."""
    if lead_minutes <= NOWCAST_MAX_LEAD:
        return "nowcast"
    if lead_minutes <= BLENDED_MAX_LEAD:
        return "blended"
    return "model"


def regime_confidence(lead_minutes: float) -> float:
    """
    Scalar step confidence, non-increasing in lead time within each regime.

    nowcast 1.0 -> 0.9, blended 0.9 -> 0.6, model 0.6 -> 0.2 (floor at 720 min).
    """
    regime = select_regime(lead_minutes)
    if regime == "nowcast":
        return 1.0 - 0.1 * (lead_minutes / NOWCAST_MAX_LEAD)
    if regime == "blended":
        return linear_interpolate(lead_minutes, NOWCAST_MAX_LEAD, BLENDED_MAX_LEAD, 0.9, 0.6)
    return linear_interpolate(lead_minutes, BLENDED_MAX_LEAD, MODEL_SATURATION_LEAD, 0.6, 0.2)


# =============================================================================
# Nowcast regime
# =============================================================================

def semi_lagrangian_advection(
    frame: np.ndarray,
    motion_field: MotionField,
    lead_minutes: float
) -> np.ndarray:
    """
    Advect `frame` along the motion field for `lead_minutes`.

    Each cell follows its local motion vector backwards, samples the source
    frame bilinearly and decays its anomaly by exp(-0.001 t). Cells whose
    source falls outside [0, 63) stay at baseline.
    """
    hours = lead_minutes / 60.0
    source_i = _ROWS + motion_field.v * hours / CELL_SIZE_KM
    source_j = _COLS - motion_field.u * hours / CELL_SIZE_KM

    last = GRID_SIZE - 1
    inside = (source_i >= 0) & (source_i < last) & (source_j >= 0) & (source_j < last)

    advected = np.full(frame.shape, BASELINE_INTENSITY)
    values = bilinear_sample(frame, source_i[inside], source_j[inside])
    decay = math.exp(-ADVECTION_DECAY_RATE * lead_minutes)
    advected[inside] = BASELINE_INTENSITY + (values - BASELINE_INTENSITY) * decay
    return advected


def apply_cascade_decay(
    frame: np.ndarray,
    lead_minutes: float,
    params: Optional[CascadeParams] = None
) -> np.ndarray:
    """
    Scale-dependent decay through a Gaussian-pyramid cascade.

    The frame is split into `levels` detail bands (sigma = 2^level) plus a
    residual. Band k decays by exp(-rate_k t), rate_k = 0.001 x 2^(levels-k)
    x (1 + t/120), so finer bands fade faster and longer leads fade more.
    """
    if params is None:
        params = CASCADE_PARAMS

    details = []
    current = frame
    for level in range(params.levels):
        smoothed = gaussian_smooth(current, 2.0 ** level)
        details.append(current - smoothed)
        current = smoothed

    reconstructed = current
    for level in range(params.levels - 1, -1, -1):
        rate = params.base_rate * 2 ** (params.levels - level) * (1.0 + lead_minutes / 120.0)
        reconstructed = reconstructed + details[level] * math.exp(-rate * lead_minutes)
    return reconstructed


def nowcast_prediction(
    frame: np.ndarray,
    motion_field: MotionField,
    lead_minutes: float
) -> np.ndarray:
    """Advected frame post-processed by the cascade decay."""
    advected = semi_lagrangian_advection(frame, motion_field, lead_minutes)
    return apply_cascade_decay(advected, lead_minutes)


# =============================================================================
# Feature evolution and rendering
# =============================================================================

def evolve_feature(
    feature: WeatherFeature,
    lead_minutes: float,
    valid_time: Optional[datetime] = None
) -> WeatherFeature:
    """
    Fresh copy of a feature advanced by `lead_minutes`.

    Position moves with its velocity. Intensity follows the stage:
    developing grows toward x1.5, mature oscillates by +/-10%, dissipating
    decays as exp(-0.01 t) down to x0.2, steady is unchanged. Size scales
    with the square root of the intensity multiplier.

    When `valid_time` is given the evolved state is also appended to the
    feature history (bounded by TRACKER_PARAMS.max_history).
    """
    elapsed_hours = lead_minutes / 60.0

    multiplier = 1.0
    if feature.stage == "developing":
        multiplier = min(1.5, 1.0 + feature.growth_rate * elapsed_hours)
    elif feature.stage == "mature":
        multiplier = 1.0 + 0.1 * math.sin(lead_minutes / 30.0)
    elif feature.stage == "dissipating":
        multiplier = max(0.2, math.exp(-0.01 * lead_minutes))

    evolved = dataclasses.replace(
        feature,
        x=feature.x + feature.velocity_x * elapsed_hours,
        y=feature.y + feature.velocity_y * elapsed_hours,
        current_intensity=feature.max_intensity * multiplier,
        size=feature.size * math.sqrt(multiplier),
    )
    if valid_time is None:
        return evolved

    area = (evolved.size / CELL_SIZE_KM) ** 2
    sample = FeatureSample(
        time=valid_time, x=evolved.x, y=evolved.y, intensity=evolved.current_intensity, area=area,
    )
    return evolved.with_sample(sample, TRACKER_PARAMS.max_history)


def long_term_evolution(feature: WeatherFeature, lead_minutes: float) -> WeatherFeature:
    """Exponential decay, linear spreading, forced dissipation."""
    return dataclasses.replace(
        feature,
        current_intensity=feature.max_intensity * math.exp(-0.005 * lead_minutes),
        size=feature.size * (1.0 + lead_minutes / 720.0),
        stage="dissipating",
    )


def uncertainty_spread(lead_minutes: float) -> float:
    """Extra render radius (km) for long-range features."""
    return min(10.0, 2.0 + lead_minutes / 60.0)


def _radial_offsets(feature: WeatherFeature, extra_km: float = 0.0) -> Tuple[np.ndarray, int]:
    center_i, center_j = km_to_grid(feature.x, feature.y)
    radius = math.ceil((feature.size + extra_km) / CELL_SIZE_KM)
    distance = np.sqrt((_ROWS - center_i) ** 2 + (_COLS - center_j) ** 2)
    return distance, radius


def render_evolved_feature(frame: np.ndarray, feature: WeatherFeature) -> None:
    """Radial Gaussian (sigma = r/3) max-composited onto `frame`."""
    distance, radius = _radial_offsets(feature)
    if radius <= 0:
        return
    mask = distance <= radius
    value = feature.current_intensity * gaussian_falloff(distance[mask], radius)
    frame[mask] = np.maximum(frame[mask], BASELINE_INTENSITY + value)


def render_uncertain_feature(frame: np.ndarray, feature: WeatherFeature, spread_km: float) -> None:
    """Widened, edge-tapered radial Gaussian for long-range features."""
    distance, radius = _radial_offsets(feature, spread_km)
    if radius <= 0:
        return
    mask = distance <= radius
    d = distance[mask]
    value = feature.current_intensity * gaussian_falloff(d, radius) * (1.0 - d / (radius * 2.0))
    frame[mask] = np.maximum(frame[mask], BASELINE_INTENSITY + value)


# =============================================================================
# Blended regime
# =============================================================================

def add_convective_initiation(
    frame: np.ndarray,
    lead_minutes: float,
    rng: SeededRNG,
    profile: RegionProfile,
    base_time: datetime,
    longitude: float = 0.0
) -> int:
    """
    Inject Poisson(2 x instability) new convective cells.

    Returns:
        Number of cells injected
    """
    instability = estimate_instability(base_time, lead_minutes, profile, longitude)
    count = rng.poisson(instability * 2)

    for _ in range(count):
        center_i = rng.uniform_int(10, 53)
        center_j = rng.uniform_int(10, 53)
        intensity = 70 + instability * 30 * rng.next()
        size = 2 + math.sqrt(lead_minutes / 60.0) * rng.next()

        di = -size
        while di <= size:
            dj = -size
            while dj <= size:
                dist = math.hypot(di, dj)
                if dist <= size:
                    fi = clamp_index(center_i + math.floor(di), GRID_SIZE)
                    fj = clamp_index(center_j + math.floor(dj), GRID_SIZE)
                    value = intensity * math.exp(-dist * dist / (2 * size * size))
                    frame[fi, fj] = max(frame[fi, fj], BASELINE_INTENSITY + value)
                dj += 1.0
            di += 1.0

    return count


def blended_prediction(
    frame: np.ndarray,
    features: List[WeatherFeature],
    motion_field: MotionField,
    lead_minutes: float,
    rng: SeededRNG,
    profile: RegionProfile,
    base_time: datetime,
    longitude: float = 0.0
) -> np.ndarray:
    """Advection blended with explicit feature evolution, plus new cells."""
    advected = nowcast_prediction(frame, motion_field, lead_minutes)

    valid_time = base_time + timedelta(minutes=lead_minutes)
    evolved_frame = np.full(frame.shape, BASELINE_INTENSITY)
    for feature in features:
        render_evolved_feature(evolved_frame, evolve_feature(feature, lead_minutes, valid_time))

    blended = blend_frames(advected, evolved_frame, compute_blend_weights(lead_minutes))
    new_cells = add_convective_initiation(blended, lead_minutes, rng, profile, base_time, longitude)
    logger.debug("Blended step %.0f min: %d features, %d new cells", lead_minutes, len(features), new_cells)
    return blended


# =============================================================================
# Model regime
# =============================================================================

def generate_synthetic_features(
    pattern: SynopticPattern,
    lead_minutes: float,
    rng: SeededRNG,
    base_time: datetime
) -> List[WeatherFeature]:
    """
    Climatological features in favourable zones.

    Development happens with probability 0.7 (active) / 0.3 (quiet) scaled by
    min(1, t / 360); then Poisson(2) features are placed near random zones.
    """
    features = []
    development_prob = 0.7 if pattern.pattern_type == "active" else 0.3

    if rng.next() < development_prob * min(1.0, lead_minutes / BLENDED_MAX_LEAD):
        count = rng.poisson(2)
        valid_time = base_time + timedelta(minutes=lead_minutes)

        for n in range(count):
            zone_i, zone_j = pattern.favorable_zones[rng.uniform_int(0, len(pattern.favorable_zones) - 1)]
            x = (zone_j - GRID_CENTER) * CELL_SIZE_KM + rng.uniform(-10, 10)
            y = (GRID_CENTER - zone_i) * CELL_SIZE_KM + rng.uniform(-10, 10)
            max_intensity = rng.uniform(70, 100)
            current_intensity = rng.uniform(60, 80)
            size = rng.uniform(10, 25)
            eccentricity = rng.uniform(0.5, 1.5)
            orientation = rng.uniform(0, 360)
            velocity_x = rng.uniform(-10, 10)
            velocity_y = rng.uniform(-10, 10)

            features.append(WeatherFeature(
                id=f"synthetic-{int(lead_minutes)}-{n}",
                x=x,
                y=y,
                size=size,
                eccentricity=eccentricity,
                orientation=orientation,
                velocity_x=velocity_x,
                velocity_y=velocity_y,
                max_intensity=max_intensity,
                current_intensity=current_intensity,
                birth_time=valid_time,
                peak_time=valid_time + timedelta(minutes=120),
                death_time=valid_time + timedelta(minutes=360),
                archetype=Circular(),
                stage="developing",
                growth_rate=0.2,
                area_change=0.1,
                convective_depth=0.5,
            ))

    return features


def model_based_prediction(
    features: List[WeatherFeature],
    history: List[GridFrame],
    lead_minutes: float,
    rng: SeededRNG,
    base_time: datetime,
    longitude: float = 0.0
) -> np.ndarray:
    """Decayed existing features plus climatology, under a diurnal cycle."""
    frame = np.full((GRID_SIZE, GRID_SIZE), BASELINE_INTENSITY)

    pattern = analyze_synoptic_pattern(history)
    synthetic = generate_synthetic_features(pattern, lead_minutes, rng, base_time)

    spread = uncertainty_spread(lead_minutes)
    for feature in features:
        render_uncertain_feature(frame, long_term_evolution(feature, lead_minutes), spread)
    for feature in synthetic:
        render_evolved_feature(frame, feature)

    hour = solar_hour(base_time + timedelta(minutes=lead_minutes), longitude)
    factor = grid_diurnal_factor(hour)
    logger.debug(
        "Model step %.0f min: pattern=%s, %d synthetic features, diurnal factor %.3f",
        lead_minutes, pattern.pattern_type, len(synthetic), factor,
    )
    return BASELINE_INTENSITY + (frame - BASELINE_INTENSITY) * factor


# =============================================================================
# Multi-horizon driver
# =============================================================================

def iter_predictions(
    history: List[GridFrame],
    horizon_hours: float,
    interval_minutes: float,
    profile: RegionProfile,
    rng: SeededRNG,
    longitude: float = 0.0,
    flow: Optional[OpticalFlow] = None,
    tracker: Optional[FeatureTracker] = None
) -> Iterator[PredictionFrame]:
    """
    Lazily yield prediction frames at interval, 2 x interval, ... <= horizon.

    Motion is estimated from the two most recent frames and features are
    extracted from the latest one before the first step is produced.

    Args:
        history: Recent frames, oldest first (at most the last 5 are useful)
        horizon_hours: Forecast horizon
        interval_minutes: Step spacing
        profile: Region profile of the site
        rng: Generation stream
        longitude: Site longitude, for local solar time
        flow: Motion estimator. Default OpticalFlow().
        tracker: Feature extractor. Default FeatureTracker().

    Raises:
        ValueError: If history is empty, the interval is not positive or the
            horizon is negative
    """
    if not history:
        raise ValueError("Cannot forecast from an empty frame history")
    if interval_minutes <= 0:
        raise ValueError(f"Step interval must be positive, got {interval_minutes}")
    if horizon_hours < 0:
        raise ValueError(f"Forecast horizon must be non-negative, got {horizon_hours}")

    tracker = tracker if tracker is not None else FeatureTracker()
    latest = history[-1]
    base_time = latest.timestamp

    motion_field = analyze_recent_motion(history, flow)
    features = tracker.extract_features(latest.data, rng, base_time, motion_field=motion_field)

    steps = int(math.floor(horizon_hours * 60.0 / interval_minutes + 1e-9))
    for step in range(1, steps + 1):
        lead = step * interval_minutes
        regime = select_regime(lead)
        logger.debug("Step %d: lead %.0f min, %s regime", step, lead, regime)

        if regime == "nowcast":
            raw = nowcast_prediction(latest.data, motion_field, lead)
        elif regime == "blended":
            raw = blended_prediction(
                latest.data, features, motion_field, lead, rng, profile, base_time, longitude
            )
        else:
            raw = model_based_prediction(features, history, lead, rng, base_time, longitude)

        confidence = regime_confidence(lead)
        ensemble = apply_ensemble_uncertainty(raw, 1.0 - confidence, lead, rng)

        yield PredictionFrame(
            lead_time=lead,
            timestamp=base_time + timedelta(minutes=lead),
            data=ensemble.frame,
            uncertainty=ensemble.uncertainty,
            confidence=confidence,
            ensemble_spread=ensemble.spread,
            regime=regime,
        )


def generate_predictions(
    history: List[GridFrame],
    horizon_hours: float,
    interval_minutes: float,
    profile: RegionProfile,
    rng: SeededRNG,
    longitude: float = 0.0,
    flow: Optional[OpticalFlow] = None,
    tracker: Optional[FeatureTracker] = None
) -> List[PredictionFrame]:
    """All prediction frames of `iter_predictions`, in lead-time order."""
    return list(iter_predictions(
        history, horizon_hours, interval_minutes, profile, rng,
        longitude=longitude, flow=flow, tracker=tracker,
    ))
