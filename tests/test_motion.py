"""
Tests for FishMap motion model and orientation correction
=========================================================
pytest tests/test_motion.py -v
"""

import math

import pytest
import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fishmap.fishmap_config import MapperConfig
from fishmap.fishmap_motion import MotionPredictor, OrientationCorrector
from fishmap.fishmap_pose import Detection, Pose, Track


def make_track(points, heading=float("nan"), locked=False, start=1):
    """Track with one pose per consecutive frame."""
    track = Track(1)
    for k, (x, y) in enumerate(points):
        track.record(start + k, Pose(float(x), float(y), heading, heading_locked=locked))
    return track


@pytest.fixture
def predictor():
    return MotionPredictor(MapperConfig(average_speed=10.0))


@pytest.fixture
def corrector(predictor):
    return OrientationCorrector(predictor)


@pytest.fixture
def swimming_right():
    return make_track([(10.0 * k, 0.0) for k in range(5)], heading=0.0, locked=True)


# ============================================================
# SPEED & PREDICTION
# ============================================================

class TestCurrentSpeed:

    def test_constant_speed(self, predictor, swimming_right):
        assert predictor.current_speed(swimming_right, 5) == pytest.approx(10.0)

    def test_needs_four_frames(self, predictor):
        track = make_track([(0, 0), (10, 0), (20, 0)])
        assert math.isnan(predictor.current_speed(track, 3))

    def test_needs_consecutive_frames(self, predictor):
        track = make_track([(0, 0), (10, 0), (20, 0)])
        track.record(5, Pose(40.0, 0.0))
        assert math.isnan(predictor.current_speed(track, 5))

    def test_window(self, predictor):
        track = make_track([(0, 0), (2, 0), (4, 0), (14, 0), (24, 0)])
        assert predictor.current_speed(track, 5, smoothing_window=2) == pytest.approx(10.0)
        assert predictor.current_speed(track, 5, smoothing_window=4) == pytest.approx(6.0)


class TestPredict:

    def test_extrapolates_along_heading(self, predictor, swimming_right):
        predicted = predictor.predict(swimming_right, 5)
        assert predicted.x == pytest.approx(50.0)
        assert predicted.y == pytest.approx(0.0)
        assert predicted.orientation == pytest.approx(0.0)

    def test_image_y_axis_points_down(self, predictor):
        track = make_track([(0.0, 100.0 - 10.0 * k) for k in range(4)],
                           heading=math.pi / 2, locked=True)
        predicted = predictor.predict(track, 4)
        assert predicted.x == pytest.approx(0.0, abs=1e-9)
        assert predicted.y == pytest.approx(60.0)

    def test_unlocked_heading_gives_none(self, predictor):
        track = make_track([(10.0 * k, 0.0) for k in range(5)], heading=0.0)
        assert predictor.predict(track, 5) is None

    def test_short_history_gives_none(self, predictor):
        track = make_track([(0, 0), (10, 0)], heading=0.0, locked=True)
        assert predictor.predict(track, 2) is None

    def test_pose_for_mapping_falls_back(self, predictor):
        track = make_track([(0, 0), (10, 0)])
        pose = predictor.pose_for_mapping(track, 3)
        assert pose.x == 10.0 and pose.age == 2


class TestEstimateOrientation:

    def test_moving_right(self, predictor, swimming_right):
        estimate = predictor.estimate_orientation(swimming_right, 5)
        assert estimate.angle == pytest.approx(0.0)
        assert estimate.confidence == pytest.approx(1.0)

    def test_moving_up_the_image(self, predictor):
        track = make_track([(0.0, 100.0 - 5.0 * k) for k in range(4)])
        estimate = predictor.estimate_orientation(track, 4)
        assert estimate.angle == pytest.approx(math.pi / 2)

    def test_stationary_gives_none(self, predictor):
        track = make_track([(3.0, 3.0)] * 5)
        assert predictor.estimate_orientation(track, 5) is None

    def test_short_history_gives_none(self, predictor):
        track = make_track([(0, 0), (10, 0)])
        assert predictor.estimate_orientation(track, 2) is None

    def test_recent_steps_weigh_more(self, predictor):
        # long leftward history, then two steps up
        points = [(100.0 - 10.0 * k, 0.0) for k in range(6)] + [(50.0, -10.0), (50.0, -20.0)]
        estimate = predictor.estimate_orientation(make_track(points), 8)
        unweighted = math.atan2(20.0, -50.0)
        assert math.pi / 2 < estimate.angle < unweighted

    def test_slow_motion_confidence(self):
        predictor = MotionPredictor(MapperConfig(average_speed=1.0))
        track = make_track([(0.2 * k, 0.0) for k in range(4)])
        estimate = predictor.estimate_orientation(track, 4)
        # 0.2 px per 50 ms frame = 4 px/s
        assert estimate.confidence == pytest.approx(4.0 / 6.0)


# ============================================================
# ORIENTATION CORRECTION
# ============================================================

class TestOrientationCorrector:

    def test_no_reference_keeps_raw(self, corrector):
        track = make_track([(0.0, 0.0)])
        det = Detection(1.0, 0.0, 37.0)
        correction = corrector.correct(det, track, 1)
        assert not correction.corrected and not correction.confident
        assert correction.angle == pytest.approx(math.radians(37.0))
        assert det.angle_deg == 37.0

    def test_first_lock_flips_to_motion_direction(self, corrector):
        track = make_track([(0.0, 0.0), (5.0, 0.0), (10.0, 0.0)])
        det = Detection(15.0, 0.0, 178.0)
        correction = corrector.correct(det, track, 3)
        assert correction.confident and correction.corrected
        assert correction.angle == pytest.approx(0.0)
        assert det.angle_deg == pytest.approx(0.0)

    def test_locked_flip_keeps_small_deviation(self, corrector, swimming_right):
        det = Detection(50.0, 0.0, 170.0)
        correction = corrector.correct(det, swimming_right, 5)
        assert correction.confident
        assert correction.angle == pytest.approx(math.radians(350.0))
        assert det.angle_deg == pytest.approx(350.0)

    def test_large_deviation_is_damped(self, corrector):
        track = make_track([(0.0, 0.0)] * 3, heading=0.0, locked=True)
        det = Detection(0.0, 0.0, 60.0)
        correction = corrector.correct(det, track, 3)
        assert correction.angle == pytest.approx(math.radians(6.0))

    def test_zero_angle_snaps_back(self, corrector):
        heading = math.radians(50.0)
        track = make_track([(0.0, 0.0)] * 3, heading=heading, locked=True)
        correction = corrector.correct(Detection(0.0, 0.0, 0.0), track, 3)
        assert correction.angle == pytest.approx(heading)
        assert correction.confident

    def test_missing_angle_uses_reference(self, corrector, swimming_right):
        det = Detection(50.0, 0.0)
        correction = corrector.correct(det, swimming_right, 5)
        assert correction.corrected and not correction.confident
        assert correction.angle == pytest.approx(0.0)
        assert det.angle_deg == pytest.approx(0.0)

    def test_result_is_normalized(self, corrector, swimming_right):
        for raw in (-175.0, -5.0, 5.0, 185.0, 355.0, 721.0):
            correction = corrector.correct(Detection(50.0, 0.0, raw), swimming_right, 5)
            assert 0.0 <= correction.angle < 2 * math.pi
