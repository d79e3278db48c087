import json
import threading
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

import RadarCast.core as core
from RadarCast.config import BASELINE_INTENSITY, MAX_INTENSITY
from RadarCast.core import (
    ForecastCache,
    RadarCastEngine,
    build_coordinate_metadata,
    get_site,
    isoformat_utc,
)
from RadarCast.types import RadarSite


def test_get_site_known_and_unknown():
    site = get_site("KAMX")
    assert site.coordinates == (25.6112, -80.4128)
    with pytest.raises(KeyError):
        get_site("XXXX")


def test_site_dict_round_trip_and_validation():
    site = get_site("KATX")
    assert RadarSite.from_dict(site.to_dict()) == site
    with pytest.raises(ValueError):
        RadarSite.from_dict({"site_id": "BAD", "coordinates": [1.0]})


def test_isoformat_utc_has_milliseconds_and_z():
    when = datetime(2026, 10, 17, 8, 5, 3, 123456, tzinfo=timezone.utc)
    assert isoformat_utc(when) == "2026-10-17T08:05:03.123Z"
    offset = datetime(2026, 10, 17, 10, 5, 3, tzinfo=timezone(timedelta(hours=2)))
    assert isoformat_utc(offset) == "2026-10-17T08:05:03.000Z"


def test_coordinate_metadata(kamx):
    meta = build_coordinate_metadata(kamx)
    west, east, south, north = meta.bounds
    assert south == pytest.approx(25.6112 - 1.35)
    assert north == pytest.approx(25.6112 + 1.35)
    assert east - west == pytest.approx(2 * 1.5 / np.cos(np.radians(25.6112)))
    assert (west + east) / 2 == pytest.approx(-80.4128)
    assert meta.projection == "PlateCarree"
    assert meta.to_dict()["center"] == [25.6112, -80.4128]


def test_scenario_tropical_one_hour(engine, kamx, fixed_now, monkeypatch):
    forwarded = []
    real = core.generate_predictions

    def spy(history, *args, **kwargs):
        forwarded.append(list(history))
        return real(history, *args, **kwargs)

    monkeypatch.setattr(core, "generate_predictions", spy)
    result = engine.generate(kamx, 1)

    assert len(result.frames) == 12
    assert result.frames[0].timestamp == fixed_now - timedelta(hours=1)
    assert result.frames[-1].timestamp == fixed_now
    assert len(forwarded[0]) == 5
    assert all(a is b for a, b in zip(forwarded[0], result.frames[-5:]))

    leads = [p.lead_time for p in result.predictions]
    assert leads == [10, 20, 30, 40, 50, 60]
    assert all(p.regime == "nowcast" for p in result.predictions)
    assert result.predictions[0].confidence == pytest.approx(1.0 - 0.1 * 10 / 120)
    assert result.predictions[-1].confidence == pytest.approx(0.95)


def test_bundles_have_the_expected_shape(engine, kamx, fixed_now):
    result = engine.generate(kamx, 1)
    historical, prediction = result.historical, result.prediction

    assert historical["success"] is True
    assert historical["site_info"]["site_id"] == "KAMX"
    assert historical["total_frames"] == 5
    assert len(historical["frames"]) == 5
    frame = historical["frames"][0]
    assert set(frame) == {"timestamp", "data", "coordinates", "intensity_range", "data_quality"}
    assert np.asarray(frame["data"]).shape == (64, 64)
    assert frame["intensity_range"] == [0, 150]
    assert frame["data_quality"] == "good"
    assert set(frame["coordinates"]) == {
        "bounds", "center", "resolution_deg", "resolution_km", "projection", "range_km",
    }
    assert historical["time_range"]["end"] == "2026-10-17T12:00:00.000Z"
    assert historical["time_range"]["start"] == historical["frames"][0]["timestamp"]

    assert prediction["success"] is True
    assert np.asarray(prediction["prediction_frames"]).shape == (6, 64, 64, 1)
    assert prediction["prediction_timestamp"] == isoformat_utc(fixed_now)

    # Bundles are plain JSON
    json.dumps(historical)
    json.dumps(prediction)


def test_generation_is_deterministic(kamx, fixed_now):
    a = RadarCastEngine(clock=lambda: fixed_now).generate(kamx, 2)
    b = RadarCastEngine(clock=lambda: fixed_now).generate(kamx, 2)
    for fa, fb in zip(a.frames, b.frames):
        np.testing.assert_array_equal(fa.data, fb.data)
    for pa, pb in zip(a.predictions, b.predictions):
        np.testing.assert_array_equal(pa.data, pb.data)
        assert pa.confidence == pb.confidence
    assert a.prediction == b.prediction


def test_non_utc_clock_gives_the_same_result(kamx, fixed_now):
    est = timezone(timedelta(hours=-5))
    utc = RadarCastEngine(clock=lambda: fixed_now).generate(kamx, 1)
    local = RadarCastEngine(clock=lambda: fixed_now.astimezone(est)).generate(kamx, 1)

    assert local.frames[-1].timestamp.utcoffset() == timedelta(0)
    assert local.prediction == utc.prediction
    assert local.historical == utc.historical
    for pa, pb in zip(local.predictions, utc.predictions):
        np.testing.assert_array_equal(pa.data, pb.data)


def test_different_days_give_different_history(kamx, fixed_now):
    a = RadarCastEngine(clock=lambda: fixed_now).generate(kamx, 1)
    b = RadarCastEngine(clock=lambda: fixed_now + timedelta(days=1)).generate(kamx, 1)
    assert not np.array_equal(a.frames[-1].data, b.frames[-1].data)


def test_all_grids_stay_in_range(engine, katx):
    result = engine.generate(katx, 2)
    for frame in result.frames:
        assert frame.data.min() >= BASELINE_INTENSITY
        assert frame.data.max() <= MAX_INTENSITY
    for p in result.predictions:
        assert p.data.min() >= BASELINE_INTENSITY
        assert p.data.max() <= MAX_INTENSITY
        assert p.ensemble_spread.min() >= 0.0


def test_history_is_capped_at_twenty_frames(engine, kamx, fixed_now):
    result = engine.generate(kamx, 3)
    assert len(result.frames) == 20
    assert result.frames[-1].timestamp - result.frames[0].timestamp == timedelta(hours=3)
    assert result.historical["total_frames"] == 5


def test_repeated_calls_hit_the_cache(engine, kamx):
    first = engine.generate(kamx, 1)
    generated = engine.frames_generated
    assert generated == 12

    second = engine.generate(kamx, 1)
    assert second is first
    assert engine.frames_generated == generated
    assert (kamx.site_id, 1) in engine.cache

    engine.generate(kamx, 2)
    assert engine.frames_generated == generated + 20
    assert len(engine.cache) == 2


def test_generate_for_site_id(engine):
    result = engine.generate_for_site_id("KATX", 1)
    assert result.historical["site_info"]["name"] == "Seattle"
    with pytest.raises(KeyError):
        engine.generate_for_site_id("NOPE", 1)


@pytest.mark.parametrize("hours_back", [0, -1, 1.5, "2", True, None])
def test_invalid_lookback_is_rejected(engine, kamx, hours_back):
    with pytest.raises(ValueError):
        engine.generate(kamx, hours_back)
    assert engine.frames_generated == 0


def test_out_of_range_site_is_rejected(engine):
    site = RadarSite(site_id="POLE", name="Pole", location="", coordinates=(90.0, 0.0))
    with pytest.raises(ValueError):
        engine.generate(site, 1)


def test_cache_computes_each_key_once_under_contention():
    cache = ForecastCache()
    calls = []
    release = threading.Event()

    def factory():
        calls.append(1)
        release.wait(timeout=5)
        return "result"

    results = []
    threads = [
        threading.Thread(target=lambda: results.append(cache.get_or_create("key", factory)))
        for _ in range(8)
    ]
    for thread in threads:
        thread.start()
    release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert len(calls) == 1
    assert results == ["result"] * 8
    assert cache.get("key") == "result"


def test_engines_can_share_a_cache(kamx, fixed_now):
    cache = ForecastCache()
    first = RadarCastEngine(clock=lambda: fixed_now, cache=cache)
    second = RadarCastEngine(clock=lambda: fixed_now, cache=cache)
    result = first.generate(kamx, 1)
    assert second.generate(kamx, 1) is result
    assert second.frames_generated == 0
