import math
from datetime import timedelta

import numpy as np
import pytest

from RadarCast.config import (
    BASELINE_INTENSITY,
    GRID_SIZE,
    MAX_INTENSITY,
    TROPICAL_PROFILE,
    TEMPERATE_PROFILE,
    TRACKER_PARAMS,
)
from RadarCast.diagnostics import SynopticPattern
from RadarCast.forecast import (
    add_convective_initiation,
    apply_cascade_decay,
    evolve_feature,
    generate_predictions,
    generate_synthetic_features,
    iter_predictions,
    long_term_evolution,
    model_based_prediction,
    nowcast_prediction,
    regime_confidence,
    render_evolved_feature,
    select_regime,
    semi_lagrangian_advection,
    uncertainty_spread,
)
from RadarCast.generator import generate_frame_at_time, render_circular
from RadarCast.rng import SeededRNG
from RadarCast.types import GridFrame, MotionField


def _uniform_motion(u, v):
    return MotionField(
        u=np.full((GRID_SIZE, GRID_SIZE), float(u)),
        v=np.full((GRID_SIZE, GRID_SIZE), float(v)),
        match_confidence=np.ones((GRID_SIZE, GRID_SIZE)),
    )


def _history(fixed_now, profile=TROPICAL_PROFILE, count=5, seed=123):
    rng = SeededRNG(seed)
    frames = []
    for k in range(count):
        timestamp = fixed_now - timedelta(minutes=5 * (count - 1 - k))
        frames.append(GridFrame(timestamp=timestamp, data=generate_frame_at_time(timestamp, rng, profile)))
    return frames


# -----------------------------------------------------------------------------
# Regimes and confidence
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("lead,regime", [
    (10, "nowcast"), (120, "nowcast"), (121, "blended"), (360, "blended"), (361, "model"), (900, "model"),
])
def test_select_regime(lead, regime):
    assert select_regime(lead) == regime


@pytest.mark.parametrize("lead,expected", [
    (0, 1.0), (10, 1.0 - 0.1 * 10 / 120), (60, 0.95), (120, 0.9),
    (240, 0.75), (360, 0.6), (540, 0.4), (720, 0.2), (1440, 0.2),
])
def test_regime_confidence_values(lead, expected):
    assert regime_confidence(lead) == pytest.approx(expected)


def test_confidence_is_non_increasing_within_each_regime():
    for start, stop in ((0, 120), (121, 360), (361, 1440)):
        leads = np.linspace(start, stop, 50)
        values = [regime_confidence(t) for t in leads]
        assert all(b <= a for a, b in zip(values, values[1:]))


# -----------------------------------------------------------------------------
# Nowcast
# -----------------------------------------------------------------------------

def test_flat_frame_nowcasts_to_baseline(flat_frame):
    motion = MotionField.zeros(GRID_SIZE)
    for lead in (10, 60, 120):
        np.testing.assert_allclose(nowcast_prediction(flat_frame, motion, lead), BASELINE_INTENSITY)


def test_stationary_feature_keeps_its_peak(flat_frame):
    frame = flat_frame.copy()
    render_circular(frame, 32, 32, 50.0, 20.0, 1.0, 0.0)
    motion = MotionField.zeros(GRID_SIZE)
    for lead in (10, 30, 60, 90, 120):
        result = nowcast_prediction(frame, motion, lead)
        assert np.unravel_index(np.argmax(result), result.shape) == (32, 32)
        assert result[32, 32] <= frame[32, 32]


def test_advection_moves_features_downstream(flat_frame):
    frame = flat_frame.copy()
    render_circular(frame, 32, 28, 50.0, 20.0, 1.0, 0.0)
    # 18.75 km/h east = 4 cells per hour
    advected = semi_lagrangian_advection(frame, _uniform_motion(18.75, 0.0), 60)
    assert np.unravel_index(np.argmax(advected), advected.shape) == (32, 32)
    assert advected[32, 32] == pytest.approx(BASELINE_INTENSITY + 50.0 * math.exp(-0.06))


def test_northward_motion_moves_features_up(flat_frame):
    frame = flat_frame.copy()
    render_circular(frame, 36, 32, 50.0, 20.0, 1.0, 0.0)
    advected = semi_lagrangian_advection(frame, _uniform_motion(0.0, 18.75), 60)
    assert np.unravel_index(np.argmax(advected), advected.shape) == (32, 32)


def test_sources_outside_the_domain_stay_at_baseline(flat_frame):
    frame = np.full((GRID_SIZE, GRID_SIZE), 100.0)
    advected = semi_lagrangian_advection(frame, _uniform_motion(18.75 * 2, 0.0), 60)
    # Columns 0-7 trace back west of the grid
    np.testing.assert_array_equal(advected[:, :8], BASELINE_INTENSITY)
    assert advected[10, 20] > BASELINE_INTENSITY


def test_cascade_preserves_constant_fields(flat_frame):
    np.testing.assert_allclose(apply_cascade_decay(flat_frame + 10.0, 90), BASELINE_INTENSITY + 10.0)


def test_cascade_damps_fine_detail_more_at_long_leads(flat_frame):
    frame = flat_frame.copy()
    frame[32, 32] = 120.0
    short = apply_cascade_decay(frame, 10)
    long = apply_cascade_decay(frame, 120)
    assert long[32, 32] < short[32, 32] < frame[32, 32]


# -----------------------------------------------------------------------------
# Feature evolution
# -----------------------------------------------------------------------------

def test_evolve_feature_returns_new_value(make_feature):
    feature = make_feature(stage="developing", growth_rate=0.2, velocity_x=10.0, velocity_y=5.0)
    evolved = evolve_feature(feature, 180)

    assert evolved is not feature
    assert feature.x == 0.0 and feature.current_intensity == 50.0
    assert (evolved.x, evolved.y) == pytest.approx((30.0, 15.0))
    # 1 + 0.2 x 3 h is capped at 1.5
    assert evolved.current_intensity == pytest.approx(50.0 * 1.5)
    assert evolved.size == pytest.approx(feature.size * math.sqrt(1.5))


def test_evolve_feature_records_a_history_sample(make_feature, fixed_now):
    feature = make_feature(velocity_x=12.0)
    valid_time = fixed_now + timedelta(minutes=150)
    evolved = evolve_feature(feature, 150, valid_time)

    assert feature.history == ()
    assert len(evolved.history) == 1
    sample = evolved.history[-1]
    assert sample.time == valid_time
    assert sample.x == pytest.approx(30.0)
    assert sample.intensity == pytest.approx(50.0)

    for step in range(20):
        evolved = evolve_feature(evolved, 10, valid_time + timedelta(minutes=10 * step))
    assert len(evolved.history) == TRACKER_PARAMS.max_history


@pytest.mark.parametrize("stage,lead,multiplier", [
    ("mature", 150, 1.0 + 0.1 * math.sin(5.0)),
    ("dissipating", 150, math.exp(-1.5)),
    ("dissipating", 300, 0.2),
    ("steady", 200, 1.0),
])
def test_evolution_by_stage(make_feature, stage, lead, multiplier):
    evolved = evolve_feature(make_feature(stage=stage), lead)
    assert evolved.current_intensity == pytest.approx(50.0 * multiplier)


def test_long_term_evolution(make_feature):
    evolved = long_term_evolution(make_feature(stage="mature"), 720)
    assert evolved.stage == "dissipating"
    assert evolved.current_intensity == pytest.approx(50.0 * math.exp(-3.6))
    assert evolved.size == pytest.approx(40.0)
    assert uncertainty_spread(0) == 2.0
    assert uncertainty_spread(1000) == 10.0


def test_render_evolved_feature_max_composites(make_feature, flat_frame):
    frame = flat_frame.copy()
    frame[32, 32] = 140.0
    render_evolved_feature(frame, make_feature(current_intensity=30.0))
    assert frame[32, 32] == 140.0
    assert frame[32, 33] > BASELINE_INTENSITY
    assert frame[0, 0] == BASELINE_INTENSITY


# -----------------------------------------------------------------------------
# Blended and model regimes
# -----------------------------------------------------------------------------

def test_convective_initiation_only_raises_cells(flat_frame, fixed_now):
    frame = flat_frame.copy()
    count = add_convective_initiation(frame, 240, SeededRNG(5), TROPICAL_PROFILE, fixed_now, longitude=-80.0)
    assert count >= 0
    assert frame.min() >= BASELINE_INTENSITY
    if count == 0:
        np.testing.assert_array_equal(frame, flat_frame)


def test_synthetic_features_need_lead_time(fixed_now):
    pattern = SynopticPattern(pattern_type="active", mean_energy=1e6)
    assert generate_synthetic_features(pattern, 0, SeededRNG(1), fixed_now) == []


def test_synthetic_features_are_developing_circles(fixed_now):
    pattern = SynopticPattern(pattern_type="active", mean_energy=1e6)
    rng = SeededRNG(17)
    produced = []
    for _ in range(30):
        produced.extend(generate_synthetic_features(pattern, 720, rng, fixed_now))
    assert produced
    for feature in produced:
        assert feature.stage == "developing"
        assert feature.structure == "circular"
        assert 60.0 <= feature.current_intensity <= 80.0
        assert feature.birth_time == fixed_now + timedelta(minutes=720)


def test_model_prediction_stays_at_or_above_baseline(fixed_now, make_feature):
    history = _history(fixed_now)
    frame = model_based_prediction([make_feature()], history, 480, SeededRNG(9), fixed_now, longitude=-80.0)
    assert frame.shape == (GRID_SIZE, GRID_SIZE)
    assert frame.min() >= BASELINE_INTENSITY - 1e-9
    assert frame[32, 32] > BASELINE_INTENSITY


# -----------------------------------------------------------------------------
# Driver
# -----------------------------------------------------------------------------

def test_generate_predictions_rejects_bad_requests(fixed_now):
    history = _history(fixed_now)
    with pytest.raises(ValueError):
        generate_predictions([], 1, 10, TROPICAL_PROFILE, SeededRNG(1))
    with pytest.raises(ValueError):
        generate_predictions(history, 1, 0, TROPICAL_PROFILE, SeededRNG(1))
    with pytest.raises(ValueError):
        generate_predictions(history, -1, 10, TROPICAL_PROFILE, SeededRNG(1))


def test_one_hour_forecast_is_six_nowcast_steps(fixed_now):
    predictions = generate_predictions(_history(fixed_now), 1, 10, TROPICAL_PROFILE, SeededRNG(1))
    assert [p.lead_time for p in predictions] == [10, 20, 30, 40, 50, 60]
    assert {p.regime for p in predictions} == {"nowcast"}
    assert predictions[0].confidence == pytest.approx(0.991667, abs=1e-6)
    assert predictions[-1].confidence == pytest.approx(0.95)
    assert predictions[-1].timestamp == fixed_now + timedelta(minutes=60)


def test_predictions_replay_for_identical_inputs(fixed_now):
    history = _history(fixed_now)
    a = generate_predictions(history, 1, 10, TROPICAL_PROFILE, SeededRNG(55))
    b = list(iter_predictions(history, 1, 10, TROPICAL_PROFILE, SeededRNG(55)))
    for pa, pb in zip(a, b):
        np.testing.assert_array_equal(pa.data, pb.data)
        assert pa.confidence == pb.confidence


def test_long_horizon_covers_all_regimes_within_range(fixed_now):
    history = _history(fixed_now, TEMPERATE_PROFILE, seed=8)
    predictions = generate_predictions(history, 8, 60, TEMPERATE_PROFILE, SeededRNG(8), longitude=-122.5)
    assert [p.regime for p in predictions] == (
        ["nowcast"] * 2 + ["blended"] * 4 + ["model"] * 2
    )
    for p in predictions:
        assert p.data.min() >= BASELINE_INTENSITY
        assert p.data.max() <= MAX_INTENSITY
        assert p.ensemble_spread.min() >= 0.0
        assert 0.0 <= p.uncertainty.min() and p.uncertainty.max() <= 1.0


def test_single_frame_history_still_forecasts(fixed_now):
    predictions = generate_predictions(_history(fixed_now, count=1), 0.5, 10, TROPICAL_PROFILE, SeededRNG(2))
    assert len(predictions) == 3
