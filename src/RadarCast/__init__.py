"""
RadarCast: Synthetic Weather Radar Generation and Nowcasting

A deterministic framework that synthesizes 64 x 64 radar reflectivity
history for a site and forecasts it forward through nowcast, blended and
model-based regimes with ensemble uncertainty.
"""

from .types import (
    RadarSite,
    RegionProfile,
    WeatherFeature,
    MotionField,
    GridFrame,
    PredictionFrame,
    CoordinateMetadata,
)
from .config import (
    GRID_SIZE,
    BASELINE_INTENSITY,
    MAX_INTENSITY,
    MOTION_PARAMS,
    TRACKER_PARAMS,
    CASCADE_PARAMS,
    ENSEMBLE_PARAMS,
    ENGINE_PARAMS,
    RADAR_SITES,
)
from .rng import SeededRNG, daily_seed
from .region import determine_region_profile
from .generator import (
    generate_feature,
    generate_frame_at_time,
    lifecycle_multiplier,
)
from .optical_flow import OpticalFlow, analyze_recent_motion
from .tracking import FeatureTracker
from .uncertainty import apply_ensemble_uncertainty, apply_physical_constraints
from .forecast import (
    regime_confidence,
    select_regime,
    nowcast_prediction,
    generate_predictions,
    iter_predictions,
)
from .core import (
    RadarCastEngine,
    ForecastCache,
    GenerationResult,
    get_site,
)

__version__ = "0.1.0"
__all__ = [
    # Types
    "RadarSite",
    "RegionProfile",
    "WeatherFeature",
    "MotionField",
    "GridFrame",
    "PredictionFrame",
    "CoordinateMetadata",
    # Config
    "GRID_SIZE",
    "BASELINE_INTENSITY",
    "MAX_INTENSITY",
    "MOTION_PARAMS",
    "TRACKER_PARAMS",
    "CASCADE_PARAMS",
    "ENSEMBLE_PARAMS",
    "ENGINE_PARAMS",
    "RADAR_SITES",
    # Randomness and region
    "SeededRNG",
    "daily_seed",
    "determine_region_profile",
    # Generator
    "generate_feature",
    "generate_frame_at_time",
    "lifecycle_multiplier",
    # Motion and tracking
    "OpticalFlow",
    "analyze_recent_motion",
    "FeatureTracker",
    # Uncertainty
    "apply_ensemble_uncertainty",
    "apply_physical_constraints",
    # Forecast
    "regime_confidence",
    "select_regime",
    "nowcast_prediction",
    "generate_predictions",
    "iter_predictions",
    # Core
    "RadarCastEngine",
    "ForecastCache",
    "GenerationResult",
    "get_site",
]
