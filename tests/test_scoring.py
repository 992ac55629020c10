"""
Tests for FishMap identity scoring and best-match selection
===========================================================
pytest tests/test_scoring.py -v
"""

import math

import numpy as np
import pytest
import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fishmap.fishmap_config import MapperConfig
from fishmap.fishmap_pose import Detection, Pose
from fishmap.fishmap_scoring import IdentityScorer, gaussian_falloff


@pytest.fixture
def scorer():
    return IdentityScorer(MapperConfig(average_speed=10.0, angle_importance=0.2))


@pytest.fixture
def distance_only():
    return IdentityScorer(MapperConfig(average_speed=10.0, angle_importance=0.0))


class TestGaussianFalloff:

    def test_peak_and_sigma(self):
        assert float(gaussian_falloff(2.0, 0.0)) == pytest.approx(1.0)
        assert float(gaussian_falloff(2.0, 2.0)) == pytest.approx(math.exp(-0.5))

    def test_vectorized(self):
        np.testing.assert_allclose(gaussian_falloff(1.0, [0.0, 1.0]),
                                   [1.0, math.exp(-0.5)])


class TestIdentityScore:
    """score = (1-a) * distance term + a * angle term."""

    def test_identical_is_one(self, scorer):
        assert scorer.score(Pose(5.0, 5.0, 1.0), Detection(5.0, 5.0, math.degrees(1.0))) == \
            pytest.approx(1.0)

    def test_average_speed_scores_66_percent(self, distance_only):
        assert distance_only.score(Pose(0.0, 0.0, 0.0), Detection(10.0, 0.0, 0.0)) == \
            pytest.approx(0.66)

    def test_distance_direction_irrelevant(self, scorer):
        query = Pose(0.0, 0.0, 0.0)
        scores = [scorer.score(query, Detection(x, y, 0.0))
                  for x, y in [(6.0, 0.0), (-6.0, 0.0), (0.0, 6.0), (0.0, -6.0)]]
        assert scores == pytest.approx([scores[0]] * 4)

    def test_angle_sign_irrelevant(self, scorer):
        query = Pose(0.0, 0.0, 0.0)
        plus = scorer.score(query, Detection(0.0, 0.0, 30.0))
        minus = scorer.score(query, Detection(0.0, 0.0, -30.0))
        assert plus == pytest.approx(minus)

    def test_head_tail_ambiguity(self, scorer):
        query = Pose(0.0, 0.0, 0.0)
        assert scorer.score(query, Detection(0.0, 0.0, 180.0)) == pytest.approx(1.0)
        assert scorer.score(query, Detection(0.0, 0.0, 190.0)) == \
            pytest.approx(scorer.score(query, Detection(0.0, 0.0, 10.0)))

    def test_nan_orientation_drops_angle_term(self, scorer):
        score = scorer.score(Pose(0.0, 0.0), Detection(0.0, 0.0, 0.0))
        assert score == pytest.approx(0.8)

    def test_nan_position_drops_distance_term(self, scorer):
        score = scorer.score(Pose(0.0, 0.0, 0.0), Detection(float("nan"), 0.0, 0.0))
        assert math.isfinite(score)
        assert score == pytest.approx(0.2)

    def test_bounded(self, scorer):
        rng = np.random.default_rng(3)
        query = Pose(100.0, 100.0, 0.7)
        others = [Detection(*rng.uniform(0, 200, 2), rng.uniform(-360, 360))
                  for _ in range(50)]
        scores = scorer.score_all(query, others)
        assert np.all(scores >= 0.0) and np.all(scores <= 1.0)

    def test_angle_importance_override(self, scorer):
        query = Pose(0.0, 0.0, 0.0)
        far_but_aligned = Detection(40.0, 0.0, 0.0)
        assert scorer.score(query, far_but_aligned, angle_importance=1.0) == pytest.approx(1.0)


class TestGating:

    def test_gate_excludes_far(self, scorer):
        dets = [Detection(10.0, 0.0), Detection(31.0, 0.0), Detection(0.0, -29.0)]
        np.testing.assert_array_equal(scorer.gate(Pose(0.0, 0.0), dets, 30.0), [0, 2])

    def test_gate_none_keeps_all(self, scorer):
        dets = [Detection(500.0, 0.0), Detection(0.0, 900.0)]
        np.testing.assert_array_equal(scorer.gate(Pose(0.0, 0.0), dets, None), [0, 1])

    def test_gate_skips_nan_positions(self, scorer):
        dets = [Detection(float("nan"), 0.0), Detection(1.0, 1.0)]
        np.testing.assert_array_equal(scorer.gate(Pose(0.0, 0.0), dets, 30.0), [1])


class TestSelectBest:
    """Best match plus confidence margin."""

    def test_empty(self, scorer):
        match = scorer.select_best(Pose(0.0, 0.0), [], age=1)
        assert not match.found

    def test_single_confidence_is_raw_score(self, distance_only):
        match = distance_only.select_best(Pose(0.0, 0.0), [Detection(10.0, 0.0)], age=1)
        assert match.index == 0
        assert match.confidence == pytest.approx(0.66)
        assert match.score == pytest.approx(0.66)

    def test_confidence_margin(self, distance_only):
        dets = [Detection(10.0, 0.0), Detection(0.0, 0.0)]
        match = distance_only.select_best(Pose(0.0, 0.0), dets, age=1)
        assert match.index == 1
        assert match.confidence == pytest.approx(2.0 * (1.0 / 1.66 - 0.5))

    def test_gate_blocks_then_age_opens(self, scorer):
        dets = [Detection(45.0, 0.0)]
        assert not scorer.select_best(Pose(0.0, 0.0), dets, age=1).found
        assert scorer.select_best(Pose(0.0, 0.0), dets, age=2).index == 0

    def test_no_age_means_no_gate(self, scorer):
        assert scorer.select_best(Pose(0.0, 0.0), [Detection(900.0, 0.0)]).index == 0

    def test_tie_goes_to_first(self, scorer):
        dets = [Detection(3.0, 0.0, 0.0), Detection(3.0, 0.0, 0.0)]
        match = scorer.select_best(Pose(0.0, 0.0, 0.0), dets, age=1)
        assert match.index == 0
        assert match.confidence == pytest.approx(0.0)

    def test_all_zero_scores(self, distance_only):
        dets = [Detection(5000.0, 0.0), Detection(-5000.0, 0.0)]
        match = distance_only.select_best(Pose(0.0, 0.0), dets)
        assert match.found
        assert match.confidence == 0.0

    def test_index_refers_to_full_list(self, scorer):
        dets = [Detection(300.0, 0.0), Detection(2.0, 0.0)]
        assert scorer.select_best(Pose(0.0, 0.0), dets, age=1).index == 1

    def test_fixed_gating(self):
        scorer = IdentityScorer(MapperConfig(average_speed=10.0, gating_mode="fixed",
                                             max_track_distance=20.0))
        dets = [Detection(25.0, 0.0)]
        assert not scorer.select_best(Pose(0.0, 0.0), dets, age=5).found
