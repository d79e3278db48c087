from datetime import timedelta

import numpy as np
import pytest

from RadarCast.generator import render_circular
from RadarCast.optical_flow import OpticalFlow, analyze_recent_motion
from RadarCast.types import GridFrame, MotionField


def _blob(flat_frame, col):
    frame = flat_frame.copy()
    render_circular(frame, 32, col, 60.0, 20.0, 1.0, 0.0)
    return frame


def test_flat_frames_have_zero_match_confidence(flat_frame):
    field = OpticalFlow().analyze_motion(flat_frame, flat_frame.copy(), 1.0)
    assert not field.match_confidence.any()
    assert not field.u.any()
    assert not field.v.any()


def test_non_positive_interval_returns_zero_field(flat_frame):
    frame = _blob(flat_frame, 32)
    field = OpticalFlow().analyze_motion(frame, frame, 0.0)
    assert not field.match_confidence.any()


def test_fewer_than_two_frames_returns_zero_field(flat_frame, fixed_now):
    assert not analyze_recent_motion([]).match_confidence.any()
    single = [GridFrame(timestamp=fixed_now, data=_blob(flat_frame, 32))]
    field = analyze_recent_motion(single)
    assert field.shape == (64, 64)
    assert not field.u.any()


def test_eastward_shift_gives_positive_u(flat_frame):
    # Four cells east in one hour
    field = OpticalFlow().analyze_motion(_blob(flat_frame, 28), _blob(flat_frame, 32), 1.0)
    assert field.u[32, 28] == pytest.approx(4 * 4.6875)
    assert field.v[32, 28] == pytest.approx(0.0, abs=1e-9)
    assert field.match_confidence[32, 28] == pytest.approx(1.0)


def test_northward_shift_gives_positive_v(flat_frame):
    frame1 = flat_frame.copy()
    frame2 = flat_frame.copy()
    render_circular(frame1, 34, 32, 60.0, 20.0, 1.0, 0.0)
    render_circular(frame2, 31, 32, 60.0, 20.0, 1.0, 0.0)
    field = OpticalFlow().analyze_motion(frame1, frame2, 0.5)
    assert field.v[34, 32] == pytest.approx(3 * 4.6875 / 0.5)
    assert field.u[34, 32] == pytest.approx(0.0, abs=1e-9)


def test_smoothing_keeps_border_values():
    field = MotionField.zeros(8)
    field.u[0, :] = 5.0
    field.v[:, -1] = -3.0
    field.match_confidence[3, 3] = 1.0
    smoothed = OpticalFlow._smooth(field)

    np.testing.assert_array_equal(smoothed.u[0, :], 5.0)
    np.testing.assert_array_equal(smoothed.v[:, -1], -3.0)
    # Interior rows next to the border pick up part of its value
    assert smoothed.u[1, 3] == pytest.approx(5.0 * 4 / 16)
    assert smoothed.match_confidence[3, 3] == pytest.approx(4 / 16)
    assert smoothed.match_confidence[2, 2] == pytest.approx(1 / 16)
    # Source field is left as-is
    assert field.match_confidence[2, 2] == 0.0


def test_analyze_recent_motion_uses_last_two_frames(flat_frame, fixed_now):
    frames = [
        GridFrame(timestamp=fixed_now - timedelta(minutes=10), data=flat_frame.copy()),
        GridFrame(timestamp=fixed_now - timedelta(minutes=5), data=_blob(flat_frame, 28)),
        GridFrame(timestamp=fixed_now, data=_blob(flat_frame, 32)),
    ]
    field = analyze_recent_motion(frames)
    # 4 cells in 5 minutes
    assert field.u[32, 28] == pytest.approx(4 * 4.6875 * 12)
    assert np.all(field.match_confidence >= 0.0)
    assert np.all(field.match_confidence <= 1.0)
