"""
RadarCast Core Data Types

Data structures for radar sites, region profiles, weather features, motion
fields, and grid / prediction frames.
"""

import dataclasses
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class RadarSite:
    """
    Radar site descriptor.

    Attributes:
        site_id: Station identifier (e.g. 'KAMX')
        name: Display name
        location: Human-readable location label
        coordinates: (latitude, longitude) in degrees
        description: Free-text description
    """
    site_id: str
    name: str
    location: str
    coordinates: Tuple[float, float]
    description: str = ""

    @property
    def latitude(self) -> float:
        return self.coordinates[0]

    @property
    def longitude(self) -> float:
        return self.coordinates[1]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RadarSite":
        """Build a site from its dictionary form, validating the coordinates."""
        coords = data.get("coordinates")
        if coords is None or len(coords) != 2:
            raise ValueError(f"Site {data.get('site_id')!r} needs [latitude, longitude] coordinates")
        return cls(
            site_id=str(data["site_id"]),
            name=str(data.get("name", data["site_id"])),
            location=str(data.get("location", "")),
            coordinates=(float(coords[0]), float(coords[1])),
            description=str(data.get("description", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "site_id": self.site_id,
            "name": self.name,
            "location": self.location,
            "coordinates": [self.latitude, self.longitude],
            "description": self.description,
        }


@dataclass(frozen=True)
class RegionProfile:
    """
    Climate-band parameter ranges used to instantiate features.

    Attributes:
        region_type: 'tropical' or 'temperate'
        storm_intensity: (min, max) intensity above baseline
        speed_range: (min, max) movement speed in km/h
        direction_range: (min, max) movement direction in degrees (math convention)
        convective_instability: Instability scalar in [0, 1]
        shear_strength: Shear scalar in [0, 1]
    """
    region_type: str
    storm_intensity: Tuple[float, float]
    speed_range: Tuple[float, float]
    direction_range: Tuple[float, float]
    convective_instability: float
    shear_strength: float


# -----------------------------------------------------------------------------
# Archetypes: one variant per structure, carrying only its own fields
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class SubCell:
    """Offset (km) and relative strength of one cell inside a cluster."""
    offset_x: float
    offset_y: float
    intensity_factor: float


@dataclass(frozen=True)
class Circular:
    kind: ClassVar[str] = "circular"


@dataclass(frozen=True)
class Linear:
    kind: ClassVar[str] = "linear"


@dataclass(frozen=True)
class SquallLine:
    kind: ClassVar[str] = "squall_line"


@dataclass(frozen=True)
class Banded:
    kind: ClassVar[str] = "banded"


@dataclass(frozen=True)
class Supercell:
    rotation_rate: float = 0.0
    kind: ClassVar[str] = "supercell"


@dataclass(frozen=True)
class Cluster:
    sub_cells: Tuple[SubCell, ...] = ()
    kind: ClassVar[str] = "cluster"


Archetype = Union[Circular, Linear, SquallLine, Banded, Supercell, Cluster]


@dataclass(frozen=True)
class FeatureSample:
    """One history sample of a tracked feature."""
    time: datetime
    x: float
    y: float
    intensity: float
    area: float


@dataclass(frozen=True)
class WeatherFeature:
    """
    Discrete precipitation entity.

    Positions are km relative to the domain center (x east, y north).
    Generated features are anchored at birth_time and drift with their
    velocity; tracked and evolved features are anchored at the time they
    were extracted or evolved to. Intensities are anomalies above the baseline.
    """
    id: str
    x: float
    y: float
    size: float
    eccentricity: float
    orientation: float  # degrees
    velocity_x: float   # km/h
    velocity_y: float   # km/h
    max_intensity: float
    current_intensity: float
    birth_time: datetime
    peak_time: datetime
    death_time: datetime
    archetype: Archetype
    stage: str
    growth_rate: float = 0.0
    area_change: float = 0.0
    convective_depth: float = 0.0
    history: Tuple[FeatureSample, ...] = ()

    @property
    def structure(self) -> str:
        return self.archetype.kind

    @property
    def rotation_rate(self) -> float:
        if isinstance(self.archetype, Supercell):
            return self.archetype.rotation_rate
        return 0.0

    @property
    def sub_cells(self) -> Tuple[SubCell, ...]:
        if isinstance(self.archetype, Cluster):
            return self.archetype.sub_cells
        return ()

    @property
    def speed(self) -> float:
        """Feature speed in km/h."""
        return math.hypot(self.velocity_x, self.velocity_y)

    def is_alive(self, when: datetime) -> bool:
        return self.birth_time <= when <= self.death_time

    def with_sample(self, sample: FeatureSample, max_history: int) -> "WeatherFeature":
        """Return a copy with `sample` appended to a bounded history."""
        history = (self.history + (sample,))[-max_history:]
        return dataclasses.replace(self, history=history)


@dataclass
class MotionField:
    """
    Per-cell motion estimate between two frames.

    Attributes:
        u: Eastward velocity (km/h)
        v: Northward velocity (km/h)
        match_confidence: Block-match confidence in [0, 1]
    """
    u: np.ndarray
    v: np.ndarray
    match_confidence: np.ndarray

    @classmethod
    def zeros(cls, size: int) -> "MotionField":
        return cls(
            u=np.zeros((size, size)),
            v=np.zeros((size, size)),
            match_confidence=np.zeros((size, size)),
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.u.shape


@dataclass
class GridFrame:
    """One radar grid at a timestamp."""
    timestamp: datetime
    data: np.ndarray


@dataclass
class PredictionFrame:
    """
    One forecast step.

    Attributes:
        lead_time: Minutes after the latest observed frame
        timestamp: Valid time
        data: Forecast grid
        uncertainty: Per-cell normalized uncertainty in [0, 1]
        confidence: Scalar regime confidence for this step
        ensemble_spread: Per-cell ensemble standard deviation
        regime: 'nowcast', 'blended' or 'model'
    """
    lead_time: float
    timestamp: datetime
    data: np.ndarray
    uncertainty: np.ndarray
    confidence: float
    ensemble_spread: Optional[np.ndarray] = None
    regime: str = ""


@dataclass(frozen=True)
class CoordinateMetadata:
    """Geographic description of a grid, as consumed by map overlays."""
    bounds: Tuple[float, float, float, float]  # west, east, south, north
    center: Tuple[float, float]                # lat, lon
    resolution_deg: float
    resolution_km: float
    projection: str
    range_km: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bounds": list(self.bounds),
            "center": list(self.center),
            "resolution_deg": self.resolution_deg,
            "resolution_km": self.resolution_km,
            "projection": self.projection,
            "range_km": self.range_km,
        }
