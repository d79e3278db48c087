"""
Synthetic Frame Generator

Feature instantiation from a region profile, lifecycle-dependent intensity,
archetype-specific rendering, and environmental effects.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, Tuple

import numpy as np

from .config import (
    GRID_SIZE,
    BASELINE_INTENSITY,
    MAX_INTENSITY,
    CELL_SIZE_KM,
    GRID_CENTER,
    STRUCTURE_TYPES,
    LIFECYCLE_STAGES,
    GENERATOR_GROWTH_RATES,
    GENERATOR_AREA_CHANGE,
    GENERATOR_PARAMS,
)
from .rng import SeededRNG
from .types import (
    RegionProfile,
    WeatherFeature,
    SubCell,
    Circular,
    Linear,
    SquallLine,
    Banded,
    Supercell,
    Cluster,
    Archetype,
)
from util.math_utils import (
    polar_to_components,
    gaussian_falloff,
    clamp_index,
)

logger = logging.getLogger(__name__)

_ROWS, _COLS = np.indices((GRID_SIZE, GRID_SIZE))


# -----------------------------------------------------------------------------
# Coordinates
# -----------------------------------------------------------------------------

def km_to_grid(x: float, y: float) -> Tuple[int, int]:
    """
    Nearest grid cell (row, col) for a domain-relative position in km.

    Rows grow southward, columns eastward; the domain center is (31.5, 31.5).
    """
    row = math.floor(GRID_CENTER - y / CELL_SIZE_KM + 0.5)
    col = math.floor(GRID_CENTER + x / CELL_SIZE_KM + 0.5)
    return (row, col)


def grid_to_km(row: float, col: float) -> Tuple[float, float]:
    """Domain-relative position (x east, y north) in km of a grid location."""
    return ((col - GRID_CENTER) * CELL_SIZE_KM, (GRID_CENTER - row) * CELL_SIZE_KM)


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------

def lifecycle_multiplier(feature: WeatherFeature, when: datetime) -> float:
    """
    Triangular lifecycle intensity multiplier.

    Rises as progress^0.7 from birth to peak, falls as 1 - 0.7 * progress from
    peak to death, and is exactly zero outside [birth_time, death_time].

    Args:
        feature: Feature whose lifecycle timestamps are used
        when: Render time

    Returns:
        Multiplier in [0, 1]
    """
    if not feature.is_alive(when):
        return 0.0

    if when < feature.peak_time:
        progress = _hours_between(feature.birth_time, when) / _hours_between(
            feature.birth_time, feature.peak_time
        )
        return progress ** 0.7

    span = _hours_between(feature.peak_time, feature.death_time)
    progress = _hours_between(feature.peak_time, when) / span if span > 0 else 1.0
    return 1.0 - 0.7 * progress


def feature_position(feature: WeatherFeature, when: datetime) -> Tuple[float, float]:
    """Position (km) of a generated feature after drifting from birth to `when`."""
    elapsed_hours = _hours_between(feature.birth_time, when)
    return (
        feature.x + feature.velocity_x * elapsed_hours,
        feature.y + feature.velocity_y * elapsed_hours,
    )


# -----------------------------------------------------------------------------
# Feature instantiation
# -----------------------------------------------------------------------------

def _make_archetype(structure: str, rng: SeededRNG) -> Archetype:
    if structure == "supercell":
        return Supercell(rotation_rate=rng.uniform(0.1, 0.3))
    if structure == "cluster":
        count = rng.uniform_int(3, 5)
        return Cluster(sub_cells=tuple(
            SubCell(
                offset_x=rng.uniform(-15, 15),
                offset_y=rng.uniform(-15, 15),
                intensity_factor=rng.uniform(0.5, 1.0),
            )
            for _ in range(count)
        ))
    if structure == "linear":
        return Linear()
    if structure == "squall_line":
        return SquallLine()
    if structure == "banded":
        return Banded()
    return Circular()


def generate_feature(
    timestamp: datetime,
    rng: SeededRNG,
    profile: RegionProfile
) -> WeatherFeature:
    """
    Instantiate one random feature around `timestamp` from a region profile.

    Args:
        timestamp: Frame time the feature is created for
        rng: Generation stream
        profile: Region profile supplying intensity and motion ranges

    Returns:
        New WeatherFeature anchored at its birth time
    """
    structure = rng.choice(STRUCTURE_TYPES)
    stage = rng.choice(LIFECYCLE_STAGES)

    speed = rng.uniform(*profile.speed_range)
    direction = rng.uniform(*profile.direction_range)
    velocity_x, velocity_y = polar_to_components(speed, direction)

    feature_id = f"feature-{int(timestamp.timestamp() * 1000)}-{rng.uniform_int(0, 1000)}"
    extent = GENERATOR_PARAMS.position_extent_km
    x = rng.uniform(-extent, extent)
    y = rng.uniform(-extent, extent)
    max_intensity = rng.uniform(*profile.storm_intensity)
    current_intensity = rng.uniform(70, 120) - BASELINE_INTENSITY
    size = rng.uniform(*GENERATOR_PARAMS.size_range)
    if structure in ("linear", "squall_line"):
        eccentricity = rng.uniform(2, 3)
    else:
        eccentricity = rng.uniform(0.8, 1.5)
    orientation = rng.uniform(0, 360)

    birth_time = timestamp - timedelta(hours=rng.uniform(1, 3))
    peak_time = timestamp + timedelta(hours=rng.uniform(-1, 2))
    death_time = timestamp + timedelta(hours=rng.uniform(2, 5))

    archetype = _make_archetype(structure, rng)
    convective_depth = rng.uniform(0.4, 0.9)

    return WeatherFeature(
        id=feature_id,
        x=x,
        y=y,
        size=size,
        eccentricity=eccentricity,
        orientation=orientation,
        velocity_x=velocity_x,
        velocity_y=velocity_y,
        max_intensity=max_intensity,
        current_intensity=current_intensity,
        birth_time=birth_time,
        peak_time=peak_time,
        death_time=death_time,
        archetype=archetype,
        stage=stage,
        growth_rate=GENERATOR_GROWTH_RATES.get(stage, 0.0),
        area_change=GENERATOR_AREA_CHANGE.get(stage, 0.0),
        convective_depth=convective_depth,
    )


# -----------------------------------------------------------------------------
# Archetype renderers (max-compositing onto the frame in place)
# -----------------------------------------------------------------------------

def _composite(frame: np.ndarray, mask: np.ndarray, value: np.ndarray) -> None:
    """Raise masked cells to baseline + value, never lowering a stronger cell."""
    frame[mask] = np.maximum(frame[mask], BASELINE_INTENSITY + value[mask])


def _rotated_offsets(center_i: int, center_j: int, orientation: float):
    di = (_ROWS - center_i).astype(float)
    dj = (_COLS - center_j).astype(float)
    angle = math.radians(orientation)
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    rot_x = dj * cos_a - di * sin_a
    rot_y = dj * sin_a + di * cos_a
    return di, dj, rot_x, rot_y


def render_circular(
    frame: np.ndarray,
    center_i: int,
    center_j: int,
    intensity: float,
    size: float,
    eccentricity: float,
    orientation: float
) -> None:
    """Anisotropic Gaussian blob stretched by `eccentricity` along `orientation`."""
    radius = math.ceil(size / CELL_SIZE_KM)
    di, dj, rot_x, rot_y = _rotated_offsets(center_i, center_j, orientation)
    window = (np.abs(di) <= 2 * radius) & (np.abs(dj) <= 2 * radius)
    effective = np.sqrt((rot_x / eccentricity) ** 2 + rot_y ** 2)
    value = intensity * gaussian_falloff(effective, radius)
    _composite(frame, window & (effective <= radius), value)


def render_squall_line(
    frame: np.ndarray,
    center_i: int,
    center_j: int,
    intensity: float,
    size: float,
    orientation: float,
    length_factor: float = 3.0
) -> None:
    """Rotated band, strongest along its axis and on its leading edge."""
    half_length = size * length_factor / CELL_SIZE_KM
    half_width = size * 0.5 / CELL_SIZE_KM
    _, _, rot_x, rot_y = _rotated_offsets(center_i, center_j, orientation)
    mask = (np.abs(rot_x) <= half_length) & (np.abs(rot_y) <= half_width)
    along_line = np.exp(-np.abs(rot_y) / half_width)
    leading_edge = np.where(rot_x > 0, 1.2, 0.8)
    _composite(frame, mask, intensity * along_line * leading_edge)


def render_supercell(
    frame: np.ndarray,
    center_i: int,
    center_j: int,
    intensity: float,
    size: float,
    rotation_rate: float
) -> None:
    """Radial Gaussian with spiral modulation and a hook-echo boost."""
    radius = math.ceil(size / CELL_SIZE_KM)
    di = (_ROWS - center_i).astype(float)
    dj = (_COLS - center_j).astype(float)
    distance = np.sqrt(di * di + dj * dj)
    angle = np.arctan2(dj, di)

    spiral = 0.7 + 0.3 * np.sin((angle + rotation_rate * distance) * 3)
    hook_start = math.pi / 4
    hook = np.where((angle > hook_start) & (angle < hook_start + math.pi / 2), 1.2, 1.0)

    value = intensity * gaussian_falloff(distance, radius) * spiral * hook
    _composite(frame, distance <= radius, value)


def render_cluster(
    frame: np.ndarray,
    center_i: int,
    center_j: int,
    intensity: float,
    size: float,
    sub_cells: Tuple[SubCell, ...]
) -> None:
    """Independent circular sub-cells at fixed offsets from the center."""
    for cell in sub_cells:
        cell_i = center_i - math.floor(cell.offset_y / CELL_SIZE_KM + 0.5)
        cell_j = center_j + math.floor(cell.offset_x / CELL_SIZE_KM + 0.5)
        render_circular(
            frame, cell_i, cell_j,
            intensity * cell.intensity_factor, size * 0.5, 1.0, 0.0,
        )


def render_banded(
    frame: np.ndarray,
    center_i: int,
    center_j: int,
    intensity: float,
    size: float,
    orientation: float
) -> None:
    """Radial exponential falloff with concentric intensity bands."""
    radius = math.ceil(size / CELL_SIZE_KM)
    _, _, rot_x, rot_y = _rotated_offsets(center_i, center_j, orientation)
    distance = np.sqrt(rot_x * rot_x + rot_y * rot_y)
    bands = 0.5 + 0.5 * np.sin(distance / (radius / 4.0))
    falloff = np.exp(-distance / radius)
    _composite(frame, distance <= radius, intensity * falloff * bands)


def render_feature(frame: np.ndarray, feature: WeatherFeature, when: datetime) -> bool:
    """
    Render a generated feature at time `when` onto `frame`.

    Returns:
        False if the feature contributes nothing at `when` (outside its lifecycle)
    """
    multiplier = lifecycle_multiplier(feature, when)
    if multiplier <= 0.0:
        return False

    intensity = feature.max_intensity * multiplier
    center_i, center_j = km_to_grid(*feature_position(feature, when))
    archetype = feature.archetype

    if isinstance(archetype, Supercell):
        render_supercell(frame, center_i, center_j, intensity, feature.size, archetype.rotation_rate)
    elif isinstance(archetype, SquallLine):
        render_squall_line(frame, center_i, center_j, intensity, feature.size, feature.orientation)
    elif isinstance(archetype, Linear):
        render_squall_line(
            frame, center_i, center_j, intensity, feature.size, feature.orientation,
            length_factor=feature.eccentricity,
        )
    elif isinstance(archetype, Cluster):
        render_cluster(frame, center_i, center_j, intensity, feature.size, archetype.sub_cells)
    elif isinstance(archetype, Banded):
        render_banded(frame, center_i, center_j, intensity, feature.size, feature.orientation)
    else:
        render_circular(
            frame, center_i, center_j, intensity, feature.size,
            feature.eccentricity, feature.orientation,
        )
    return True


# -----------------------------------------------------------------------------
# Environmental effects and frame assembly
# -----------------------------------------------------------------------------

def add_environmental_effects(frame: np.ndarray, rng: SeededRNG) -> None:
    """Add a fixed ground-clutter block and a few light-precipitation blobs."""
    start, stop = GENERATOR_PARAMS.clutter_span
    for i in range(start, stop):
        for j in range(start, stop):
            boost = rng.uniform(*GENERATOR_PARAMS.clutter_boost)
            frame[i, j] = max(frame[i, j], BASELINE_INTENSITY + boost)

    for _ in range(GENERATOR_PARAMS.light_precip_blobs):
        center_i = rng.uniform_int(5, GRID_SIZE - 6)
        center_j = rng.uniform_int(5, GRID_SIZE - 6)
        radius = rng.uniform(*GENERATOR_PARAMS.light_precip_radius)

        di = -radius
        while di <= radius:
            dj = -radius
            while dj <= radius:
                dist = math.hypot(di, dj)
                if dist <= radius:
                    fi = clamp_index(center_i + math.floor(di), GRID_SIZE)
                    fj = clamp_index(center_j + math.floor(dj), GRID_SIZE)
                    value = rng.uniform(*GENERATOR_PARAMS.light_precip_value) * math.exp(
                        -dist * dist / (2 * radius * radius)
                    )
                    frame[fi, fj] = max(frame[fi, fj], value)
                dj += 1.0
            di += 1.0


def generate_frame_features(
    timestamp: datetime,
    rng: SeededRNG,
    profile: RegionProfile
) -> List[WeatherFeature]:
    """Draw the 2-5 features that make up one frame."""
    count = rng.uniform_int(GENERATOR_PARAMS.min_features, GENERATOR_PARAMS.max_features)
    return [generate_feature(timestamp, rng, profile) for _ in range(count)]


def generate_frame_at_time(
    timestamp: datetime,
    rng: SeededRNG,
    profile: RegionProfile
) -> np.ndarray:
    """
    Synthesize one radar grid at `timestamp`.

    Args:
        timestamp: Frame time
        rng: Generation stream (advanced in place)
        profile: Region profile for feature parameters

    Returns:
        (64, 64) grid clamped to [64, 150]
    """
    frame = np.full((GRID_SIZE, GRID_SIZE), BASELINE_INTENSITY)

    features = generate_frame_features(timestamp, rng, profile)
    rendered = sum(render_feature(frame, feature, timestamp) for feature in features)
    add_environmental_effects(frame, rng)

    logger.debug("Frame %s: %d/%d features rendered", timestamp.isoformat(), rendered, len(features))
    return np.clip(frame, BASELINE_INTENSITY, MAX_INTENSITY)
