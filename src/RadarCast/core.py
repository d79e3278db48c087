"""
RadarCast Core Engine

Unified interface for synthetic radar history generation and short-range
forecasting, with a memoizing result cache and the JSON-ready output bundles
consumed by map overlays.
"""

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

import numpy as np

from .config import (
    ENGINE_PARAMS,
    EngineParams,
    LAT_HALF_RANGE_DEG,
    LON_HALF_RANGE_DEG,
    RESOLUTION_DEG,
    RESOLUTION_KM,
    PROJECTION,
    RANGE_KM,
    INTENSITY_RANGE,
    RADAR_SITES,
)
from .forecast import generate_predictions
from .generator import generate_frame_at_time
from .optical_flow import OpticalFlow
from .region import determine_region_profile
from .rng import SeededRNG, daily_seed
from .tracking import FeatureTracker
from .types import CoordinateMetadata, GridFrame, PredictionFrame, RadarSite

logger = logging.getLogger(__name__)


def get_site(site_id: str) -> RadarSite:
    """
    Look up a registered radar site.

    Raises:
        KeyError: If the site id is not registered
    """
    if site_id not in RADAR_SITES:
        raise KeyError(f"Unknown radar site {site_id!r}; known sites: {sorted(RADAR_SITES)}")
    return RadarSite.from_dict(RADAR_SITES[site_id])


def isoformat_utc(when: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a 'Z' suffix."""
    when = when.astimezone(timezone.utc)
    return when.strftime("%Y-%m-%dT%H:%M:%S") + f".{when.microsecond // 1000:03d}Z"


def build_coordinate_metadata(site: RadarSite) -> CoordinateMetadata:
    """Geographic bounds and resolution of the 64 x 64 grid around a site."""
    lat, lon = site.latitude, site.longitude
    lon_range = LON_HALF_RANGE_DEG / math.cos(math.radians(lat))
    return CoordinateMetadata(
        bounds=(lon - lon_range, lon + lon_range, lat - LAT_HALF_RANGE_DEG, lat + LAT_HALF_RANGE_DEG),
        center=(lat, lon),
        resolution_deg=RESOLUTION_DEG,
        resolution_km=RESOLUTION_KM,
        projection=PROJECTION,
        range_km=RANGE_KM,
    )


def _validate_request(site: RadarSite, hours_back: Any) -> None:
    if isinstance(hours_back, bool) or not isinstance(hours_back, (int, np.integer)):
        raise ValueError(f"hours_back must be an integer, got {hours_back!r}")
    if hours_back < 1:
        raise ValueError(f"hours_back must be at least 1, got {hours_back}")
    if not -90.0 < site.latitude < 90.0:
        raise ValueError(f"Site {site.site_id!r} latitude {site.latitude} outside (-90, 90)")
    if not -180.0 <= site.longitude <= 180.0:
        raise ValueError(f"Site {site.site_id!r} longitude {site.longitude} outside [-180, 180]")


@dataclass
class GenerationResult:
    """
    Output of one `generate` call.

    Attributes:
        historical: Historical bundle (JSON-ready dict)
        prediction: Prediction bundle (JSON-ready dict)
        frames: Full generated history, oldest first
        predictions: Forecast steps, in lead-time order
    """
    historical: Dict[str, Any]
    prediction: Dict[str, Any]
    frames: List[GridFrame]
    predictions: List[PredictionFrame]


class ForecastCache:
    """
    Process-lifetime memo of generation results.

    A lock guards the map; a per-key lock makes concurrent callers with the
    same key wait for a single computation.
    """

    def __init__(self):
        self._results: Dict[Hashable, GenerationResult] = {}
        self._key_locks: Dict[Hashable, threading.Lock] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def get(self, key: Hashable) -> Optional[GenerationResult]:
        with self._lock:
            return self._results.get(key)

    def get_or_create(
        self,
        key: Hashable,
        factory: Callable[[], GenerationResult]
    ) -> GenerationResult:
        """Cached result for `key`, computing it with `factory` on first use."""
        with self._lock:
            if key in self._results:
                logger.debug("Cache hit for %s", key)
                return self._results[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._results:
                    logger.debug("Cache hit for %s after wait", key)
                    return self._results[key]

            result = factory()

            with self._lock:
                self._results[key] = result
                self._key_locks.pop(key, None)
            return result


class RadarCastEngine:
    """
    Main entry point for RadarCast.

    Generates a deterministic synthetic radar history for a site, forecasts
    from its most recent frames, and memoizes both bundles per
    (site id, hours_back).
    """

    def __init__(
        self,
        params: Optional[EngineParams] = None,
        clock: Optional[Callable[[], datetime]] = None,
        cache: Optional[ForecastCache] = None,
        flow: Optional[OpticalFlow] = None,
        tracker: Optional[FeatureTracker] = None
    ):
        self.params = params if params is not None else ENGINE_PARAMS
        self.clock = clock if clock is not None else (lambda: datetime.now(timezone.utc))
        self.cache = cache if cache is not None else ForecastCache()
        self.flow = flow if flow is not None else OpticalFlow()
        self.tracker = tracker if tracker is not None else FeatureTracker()

        # Instrumentation: total synthetic frames produced by this engine
        self.frames_generated: int = 0
        self._counter_lock = threading.Lock()

    def generate(self, site: RadarSite, hours_back: int) -> GenerationResult:
        """
        Historical and prediction bundles for a site.

        Args:
            site: Radar site descriptor
            hours_back: Look-back window in whole hours (>= 1)

        Returns:
            GenerationResult; repeated calls with the same key return the
            cached instance

        Raises:
            ValueError: If hours_back is not a positive integer or the site
                coordinates are out of range
        """
        _validate_request(site, hours_back)
        key = (site.site_id, int(hours_back))
        return self.cache.get_or_create(key, lambda: self._generate(site, int(hours_back)))

    def generate_for_site_id(self, site_id: str, hours_back: int) -> GenerationResult:
        """`generate` for a registered site id (raises KeyError if unknown)."""
        return self.generate(get_site(site_id), hours_back)

    def build_history(
        self,
        site: RadarSite,
        hours_back: int,
        now: datetime,
        rng: SeededRNG
    ) -> List[GridFrame]:
        """Evenly spaced frames across [now - hours_back, now], oldest first."""
        profile = determine_region_profile(site.latitude)
        count = min(hours_back * self.params.frames_per_hour, self.params.max_history_frames)
        start = now - timedelta(hours=hours_back)
        span = now - start

        frames = []
        for k in range(count):
            timestamp = start + span * k / (count - 1) if count > 1 else now
            frames.append(GridFrame(timestamp=timestamp, data=generate_frame_at_time(timestamp, rng, profile)))

        with self._counter_lock:
            self.frames_generated += len(frames)
        return frames

    def _generate(self, site: RadarSite, hours_back: int) -> GenerationResult:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        now = now.astimezone(timezone.utc)

        seed = daily_seed(site.site_id, now.date())
        rng = SeededRNG(seed)
        profile = determine_region_profile(site.latitude)
        logger.info(
            "Generating %s (%s profile, %d h back, seed %d)",
            site.site_id, profile.region_type, hours_back, seed,
        )

        frames = self.build_history(site, hours_back, now, rng)
        predictions = generate_predictions(
            frames[-self.params.forecast_input_frames:],
            self.params.horizon_hours,
            self.params.interval_minutes,
            profile,
            rng,
            longitude=site.longitude,
            flow=self.flow,
            tracker=self.tracker,
        )

        logger.info(
            "Generated %s: %d frames, %d prediction steps",
            site.site_id, len(frames), len(predictions),
        )
        return GenerationResult(
            historical=self._historical_bundle(site, frames),
            prediction=self._prediction_bundle(site, predictions, now),
            frames=frames,
            predictions=predictions,
        )

    def _historical_bundle(self, site: RadarSite, frames: List[GridFrame]) -> Dict[str, Any]:
        coordinates = build_coordinate_metadata(site).to_dict()
        recent = frames[-self.params.bundle_frames:]
        return {
            "success": True,
            "site_info": site.to_dict(),
            "frames": [
                {
                    "timestamp": isoformat_utc(frame.timestamp),
                    "data": frame.data.tolist(),
                    "coordinates": coordinates,
                    "intensity_range": list(INTENSITY_RANGE),
                    "data_quality": "good",
                }
                for frame in recent
            ],
            "total_frames": len(recent),
            "time_range": {
                "start": isoformat_utc(recent[0].timestamp),
                "end": isoformat_utc(recent[-1].timestamp),
            },
        }

    def _prediction_bundle(
        self,
        site: RadarSite,
        predictions: List[PredictionFrame],
        now: datetime
    ) -> Dict[str, Any]:
        return {
            "success": True,
            "site_info": site.to_dict(),
            # [step][row][col][1]
            "prediction_frames": [p.data[:, :, np.newaxis].tolist() for p in predictions],
            "prediction_timestamp": isoformat_utc(now),
        }


def summarize_predictions(predictions: List[PredictionFrame]) -> List[Tuple[float, str, float, float]]:
    """(lead minutes, regime, confidence, peak intensity) per step."""
    return [(p.lead_time, p.regime, p.confidence, float(p.data.max())) for p in predictions]
