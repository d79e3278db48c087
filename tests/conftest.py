"""Shared fixtures for the RadarCast test suite."""

import dataclasses
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from RadarCast.config import GRID_SIZE, BASELINE_INTENSITY
from RadarCast.core import RadarCastEngine, get_site
from RadarCast.types import Circular, WeatherFeature

FIXED_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def engine():
    return RadarCastEngine(clock=lambda: FIXED_NOW)


@pytest.fixture
def kamx():
    return get_site("KAMX")


@pytest.fixture
def katx():
    return get_site("KATX")


@pytest.fixture
def flat_frame():
    return np.full((GRID_SIZE, GRID_SIZE), BASELINE_INTENSITY)


@pytest.fixture
def make_feature():
    """Factory for a steady circular feature centred on the domain at FIXED_NOW."""
    def _make(**overrides):
        feature = WeatherFeature(
            id="test-feature",
            x=0.0,
            y=0.0,
            size=20.0,
            eccentricity=1.0,
            orientation=0.0,
            velocity_x=0.0,
            velocity_y=0.0,
            max_intensity=50.0,
            current_intensity=50.0,
            birth_time=FIXED_NOW - timedelta(hours=1),
            peak_time=FIXED_NOW,
            death_time=FIXED_NOW + timedelta(hours=2),
            archetype=Circular(),
            stage="steady",
        )
        return dataclasses.replace(feature, **overrides)
    return _make
