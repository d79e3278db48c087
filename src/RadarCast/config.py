"""
RadarCast Configuration Constants

All tunable parameters and default values for the RadarCast framework.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from .types import RegionProfile

# =============================================================================
# Grid Geometry
# =============================================================================
GRID_SIZE: int = 64
"""Cells per side of every radar grid."""

BASELINE_INTENSITY: float = 64.0
"""Intensity value meaning 'no precipitation'."""

MAX_INTENSITY: float = 150.0
"""Upper clamp for every generated or predicted cell."""

CELL_SIZE_KM: float = 4.6875
"""Physical width of one grid cell (150 km range / 32 cells)."""

GRID_CENTER: float = 31.5
"""Grid index of the radar site (domain center)."""

PRECIP_THRESHOLD: float = 70.0
"""Cells above this value count as precipitation for motion and tracking."""

# =============================================================================
# Feature Archetypes and Lifecycle Stages
# =============================================================================
STRUCTURE_TYPES: Tuple[str, ...] = (
    "circular",
    "linear",
    "cluster",
    "banded",
    "supercell",
    "squall_line",
)

LIFECYCLE_STAGES: Tuple[str, ...] = (
    "developing",
    "mature",
    "dissipating",
    "steady",
)

# Growth / area-change rates by stage (generator, tracker)
GENERATOR_GROWTH_RATES: Dict[str, float] = {"developing": 0.2, "dissipating": -0.15}
GENERATOR_AREA_CHANGE: Dict[str, float] = {"developing": 0.1, "dissipating": -0.1}
TRACKER_GROWTH_RATES: Dict[str, float] = {"developing": 0.2, "dissipating": -0.1}
TRACKER_AREA_CHANGE: Dict[str, float] = {"developing": 0.15, "dissipating": -0.15}

# =============================================================================
# Region Profiles
# =============================================================================
TROPICAL_LATITUDE_LIMIT: float = 30.0
"""Absolute latitude below which the tropical profile applies."""

TROPICAL_PROFILE = RegionProfile(
    region_type="tropical",
    storm_intensity=(90.0, 150.0),
    speed_range=(15.0, 30.0),
    direction_range=(250.0, 290.0),
    convective_instability=0.7,
    shear_strength=0.3,
)

TEMPERATE_PROFILE = RegionProfile(
    region_type="temperate",
    storm_intensity=(70.0, 120.0),
    speed_range=(30.0, 50.0),
    direction_range=(70.0, 110.0),
    convective_instability=0.5,
    shear_strength=0.6,
)

# =============================================================================
# Frame Generator
# =============================================================================
@dataclass(frozen=True)
class GeneratorParams:
    """Feature instantiation and environmental-effect parameters."""
    min_features: int
    max_features: int
    position_extent_km: float       # features spawn in +/- this extent
    size_range: Tuple[float, float]  # km
    clutter_span: Tuple[int, int]    # rows and cols, half-open [start, stop)
    clutter_boost: Tuple[float, float]
    light_precip_blobs: int
    light_precip_radius: Tuple[float, float]
    light_precip_value: Tuple[float, float]


GENERATOR_PARAMS = GeneratorParams(
    min_features=2,
    max_features=5,
    position_extent_km=100.0,
    size_range=(15.0, 40.0),
    clutter_span=(30, 34),
    clutter_boost=(5.0, 15.0),
    light_precip_blobs=3,
    light_precip_radius=(2.0, 5.0),
    light_precip_value=(65.0, 75.0),
)

# =============================================================================
# Motion Estimation
# =============================================================================
@dataclass(frozen=True)
class MotionParams:
    """Block-matching optical flow configuration."""
    pyramid_levels: int    # number of levels; scales 2**(levels-1) .. 1
    search_radius: int     # base radius in cells, multiplied by level scale
    window_half: int       # patch half-width (patch is 2*half+1 square)
    min_confidence: float  # accept threshold on 1/(1+error/error_scale)
    error_scale: float


MOTION_PARAMS = MotionParams(
    pyramid_levels=4,
    search_radius=5,
    window_half=3,
    min_confidence=0.5,
    error_scale=100.0,
)

MOTION_SMOOTHING_KERNEL: Tuple[Tuple[float, ...], ...] = (
    (0.0625, 0.125, 0.0625),
    (0.125, 0.25, 0.125),
    (0.0625, 0.125, 0.0625),
)

# =============================================================================
# Feature Tracking
# =============================================================================
@dataclass(frozen=True)
class TrackerParams:
    """Segmentation and classification thresholds."""
    min_pixels: int
    max_history: int
    birth_offset_hours: float
    peak_offset_hours: Tuple[float, float]
    death_offset_hours: Tuple[float, float]
    sub_cell_offset_km: float


TRACKER_PARAMS = TrackerParams(
    min_pixels=5,
    max_history=12,
    birth_offset_hours=2.0,
    peak_offset_hours=(0.0, 2.0),
    death_offset_hours=(2.0, 6.0),
    sub_cell_offset_km=20.0,
)

# =============================================================================
# Forecast Regimes
# =============================================================================
NOWCAST_MAX_LEAD: float = 120.0   # minutes
BLENDED_MAX_LEAD: float = 360.0   # minutes
MODEL_SATURATION_LEAD: float = 720.0
"""Lead time (minutes) at which model-regime confidence reaches its floor."""

ADVECTION_DECAY_RATE: float = 0.001   # per minute


@dataclass(frozen=True)
class CascadeParams:
    """Scale-dependent decay applied after advection."""
    levels: int
    base_rate: float


CASCADE_PARAMS = CascadeParams(levels=4, base_rate=0.001)

FAVORABLE_ZONES: Tuple[Tuple[int, int], ...] = ((20, 20), (40, 40))
"""Grid cells where synthetic climatological features develop."""

ACTIVE_PATTERN_ENERGY: float = 5000.0
"""Mean positive-anomaly sum per frame above which the pattern is 'active'."""

# =============================================================================
# Ensemble & Physical Constraints
# =============================================================================
@dataclass(frozen=True)
class EnsembleParams:
    """Ensemble perturbation and constraint parameters."""
    members: int
    shift_scale: float         # cells of shift per unit uncertainty
    intensity_scale: float     # multiplicative std per unit uncertainty
    spread_normalizer: float
    mass_decay_rate: float     # per minute
    growth_base: float         # allowed growth factor per hour
    smoothing_lead: float      # minutes beyond which extra smoothing applies
    boundary_max_width: float  # cells
    boundary_minutes_per_cell: float


ENSEMBLE_PARAMS = EnsembleParams(
    members=10,
    shift_scale=5.0,
    intensity_scale=0.3,
    spread_normalizer=50.0,
    mass_decay_rate=0.001,
    growth_base=1.5,
    smoothing_lead=120.0,
    boundary_max_width=10.0,
    boundary_minutes_per_cell=30.0,
)

# =============================================================================
# Orchestrator
# =============================================================================
@dataclass(frozen=True)
class EngineParams:
    """History construction and forecast request defaults."""
    frames_per_hour: int
    max_history_frames: int
    forecast_input_frames: int
    horizon_hours: float
    interval_minutes: float
    bundle_frames: int


ENGINE_PARAMS = EngineParams(
    frames_per_hour=12,
    max_history_frames=20,
    forecast_input_frames=5,
    horizon_hours=1.0,
    interval_minutes=10.0,
    bundle_frames=5,
)

# =============================================================================
# Output Coordinate Metadata
# =============================================================================
LAT_HALF_RANGE_DEG: float = 1.35
LON_HALF_RANGE_DEG: float = 1.5   # at the equator; divided by cos(lat)
RESOLUTION_DEG: float = 0.046
RESOLUTION_KM: float = 4.68
RANGE_KM: float = 150.0
PROJECTION: str = "PlateCarree"
INTENSITY_RANGE: Tuple[int, int] = (0, 150)

# =============================================================================
# Radar Sites
# =============================================================================
RADAR_SITES: Dict[str, Dict] = {
    "KAMX": {
        "site_id": "KAMX",
        "name": "Miami",
        "location": "Florida, USA",
        "coordinates": (25.6112, -80.4128),
        "description": "Southeast US, monitors Atlantic weather",
    },
    "KATX": {
        "site_id": "KATX",
        "name": "Seattle",
        "location": "Washington, USA",
        "coordinates": (48.1947, -122.4956),
        "description": "Pacific Northwest, monitors Pacific storms",
    },
}
