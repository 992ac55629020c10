"""
FishMap Identity-Likelihood Scoring
===================================

Comparative affinity between where an identity is expected to be and a
candidate observation (or another identity's pose):

    score = (1 - a) * exp(-d^2 / 2 sigma_d^2) + a * exp(-dtheta^2 / 2 sigma_theta^2)

  d       — Euclidean distance [px]
  dtheta  — smaller of |theta1 - theta2| and |theta1 + pi - theta2|, since the
            detector reports a line, not a heading
  sigma_d — calibrated from the average speed (see ``MapperConfig``)
  a       — angle importance

Scores are not probabilities; they only rank alternatives. Degenerate terms
(NaN headings, NaN positions) contribute 0 instead of poisoning the result.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
from scipy.spatial import cKDTree

from .fishmap_config import MapperConfig
from .fishmap_pose import Detection, Pose, angle_difference_array

Observation = Union[Pose, Detection]


def gaussian_falloff(sigma: float, distance):
    """Unnormalized zero-mean Gaussian: 1 at 0, ~0.61 at one sigma."""
    distance = np.asarray(distance, dtype=float)
    return np.exp(-(distance * distance) / (2.0 * sigma * sigma))


def _as_array(observations: Sequence[Observation]) -> np.ndarray:
    """Nx3 [x, y, orientation_rad] for poses and detections alike."""
    if len(observations) == 0:
        return np.zeros((0, 3))
    return np.array([[o.x, o.y, o.orientation] for o in observations], dtype=float)


@dataclass(frozen=True)
class BestMatch:
    """Result of best-match selection.

    Attributes:
        index: Index into the candidate list, None if nothing passed the gate
        confidence: Margin over the runner-up (raw score when alone)
        score: Raw identity score of the winner
    """
    index: Optional[int]
    confidence: float = 0.0
    score: float = 0.0

    @property
    def found(self) -> bool:
        return self.index is not None


NO_MATCH = BestMatch(None, 0.0, 0.0)


class IdentityScorer:
    """Identity-likelihood scoring and gated best-match selection."""

    def __init__(self, config: Optional[MapperConfig] = None):
        self.config = config or MapperConfig()

    @property
    def angle_importance(self) -> float:
        return self.config.angle_importance

    def score_all(self, query: Pose, others: Sequence[Observation],
                  angle_importance: Optional[float] = None) -> np.ndarray:
        """Identity score of ``query`` against each observation."""
        if angle_importance is None:
            angle_importance = self.config.angle_importance
        data = _as_array(others)
        if data.shape[0] == 0:
            return np.zeros(0)

        distances = np.hypot(data[:, 0] - query.x, data[:, 1] - query.y)
        distance_term = gaussian_falloff(self.config.distance_sigma, distances)

        # heading direction is not assumed, so use the closer of both directions
        abs_angle = np.minimum(
            np.abs(angle_difference_array(query.orientation, data[:, 2])),
            np.abs(angle_difference_array(query.orientation + math.pi, data[:, 2])),
        )
        angle_term = gaussian_falloff(self.config.angle_sigma, abs_angle)

        distance_term = np.nan_to_num(distance_term, nan=0.0)
        angle_term = np.nan_to_num(angle_term, nan=0.0)
        scores = (1.0 - angle_importance) * distance_term + angle_importance * angle_term
        return np.clip(scores, 0.0, 1.0)

    def score(self, query: Pose, other: Observation,
              angle_importance: Optional[float] = None) -> float:
        """Identity score of ``query`` against a single observation."""
        return float(self.score_all(query, [other], angle_importance)[0])

    def gate(self, query: Pose, others: Sequence[Observation],
             radius: Optional[float]) -> np.ndarray:
        """Indices of observations within ``radius`` of the query, ascending."""
        n = len(others)
        if radius is None or n == 0:
            return np.arange(n)
        data = _as_array(others)
        finite = np.isfinite(data[:, :2]).all(axis=1)
        if not finite.any() or not (math.isfinite(query.x) and math.isfinite(query.y)):
            return np.zeros(0, dtype=int)
        finite_idx = np.flatnonzero(finite)
        tree = cKDTree(data[finite_idx, :2])
        nearby = tree.query_ball_point([query.x, query.y], radius)
        return np.sort(finite_idx[np.asarray(nearby, dtype=int)])

    def select_best(self, query: Pose, others: Sequence[Observation],
                    age: Optional[int] = None,
                    angle_importance: Optional[float] = None) -> BestMatch:
        """Pick the observation most likely to be the query's identity.

        Args:
            query: Predicted or last known pose of the identity
            others: Detections (or competing identity poses)
            age: Identity age for gating; None disables the gate
            angle_importance: Override of the configured weight

        Returns:
            BestMatch with the winning index and its confidence
        """
        radius = None if age is None else self.config.gating_radius(age)
        candidates = self.gate(query, others, radius)
        if candidates.size == 0:
            return NO_MATCH

        scores = self.score_all(query, [others[i] for i in candidates], angle_importance)
        # argmax takes the first maximum, so ties go to the earliest observation
        best_pos = int(np.argmax(scores))
        best = float(scores[best_pos])
        confidence = best
        if scores.size > 1:
            second = float(np.max(np.delete(scores, best_pos)))
            total = best + second
            confidence = 2.0 * (best / total - 0.5) if total > 0.0 else 0.0
        if not math.isfinite(confidence):
            confidence = 0.0
        return BestMatch(int(candidates[best_pos]), confidence, best)
