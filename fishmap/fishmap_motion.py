"""
FishMap Motion Model
====================

Short-horizon motion reasoning over one identity's pose history:

  MotionPredictor
    ├── current_speed        — mean displacement over the last few frames
    ├── predict              — constant-speed step along the locked heading
    ├── estimate_orientation — falloff-weighted direction of recent motion
    └── pose_for_mapping     — prediction, or the last known pose

  OrientationCorrector
    └── correct              — resolve the head/tail ambiguity of a raw
                               detection angle and smooth it against history

Image coordinates grow downwards, so headings use ``atan2(-dy, dx)`` and
steps use ``(cos h, -sin h)``.

Insufficient history is never an error: every estimate returns None (or NaN)
and callers fall back to simpler information.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from .fishmap_config import MapperConfig
from .fishmap_pose import (Detection, Pose, PoseHistory, angle_difference,
                           effective_pose, last_confident_heading,
                           normalize_angle)
from .log_config import get_logger

logger = get_logger(__name__)

# Consecutive frames needed before a position can be extrapolated
PREDICTION_MIN_FRAMES = 4
# Consecutive frames needed before a heading can be read from motion
ORIENTATION_MIN_FRAMES = 3


def _has_consecutive(identity: PoseHistory, frame: int, count: int) -> bool:
    return all(identity.has_pose_at(frame - k) for k in range(count))


@dataclass(frozen=True)
class OrientationEstimate:
    """Heading [rad] derived from recent motion, with confidence in (0, 1]."""
    angle: float
    confidence: float


@dataclass(frozen=True)
class AngleCorrection:
    """Outcome of orientation correction.

    Attributes:
        angle: Heading to store on the new pose [rad]
        confident: Heading may be locked
        corrected: A reference heading was available
    """
    angle: float
    confident: bool
    corrected: bool


class MotionPredictor:
    """Speed, heading and next-position estimates from pose history."""

    def __init__(self, config: Optional[MapperConfig] = None):
        self.config = config or MapperConfig()

    def current_speed(self, identity: PoseHistory, frame: int,
                      smoothing_window: Optional[int] = None) -> float:
        """Mean per-frame displacement over the last ``smoothing_window`` steps.

        Returns NaN unless the identity has poses at four consecutive frames
        ending at ``frame``.
        """
        if smoothing_window is None:
            smoothing_window = self.config.smoothing_window
        if smoothing_window < 1 or not _has_consecutive(identity, frame, PREDICTION_MIN_FRAMES):
            return float("nan")

        total = 0.0
        steps = 0
        current = frame
        while steps < smoothing_window and identity.has_pose_at(current - 1):
            newer = identity.pose_at(current)
            older = identity.pose_at(current - 1)
            total += math.hypot(newer.x - older.x, newer.y - older.y)
            steps += 1
            current -= 1

        speed = total / steps
        return speed if math.isfinite(speed) else float("nan")

    def predict(self, identity: PoseHistory, frame: int) -> Optional[Pose]:
        """Expected pose one frame after ``frame``, or None if unavailable."""
        if not _has_consecutive(identity, frame, PREDICTION_MIN_FRAMES):
            return None
        current = identity.pose_at(frame)
        heading = last_confident_heading(identity, frame)
        speed = self.current_speed(identity, frame)
        if not (math.isfinite(heading) and math.isfinite(speed)):
            return None
        if not (math.isfinite(current.x) and math.isfinite(current.y)):
            return None

        next_x = current.x + speed * math.cos(heading)
        next_y = current.y - speed * math.sin(heading)
        return replace(current, x=next_x, y=next_y, orientation=heading)

    def estimate_orientation(self, identity: PoseHistory,
                             frame: int) -> Optional[OrientationEstimate]:
        """Heading of recent motion, weighting the k-th newest step by falloff^k.

        Returns None with too little history, or when the averaged
        displacement is too small to tell from noise.
        """
        if not _has_consecutive(identity, frame, ORIENTATION_MIN_FRAMES):
            return None
        first_frame = identity.first_frame

        next_point = identity.pose_at(frame).position
        derivative = np.zeros(2)
        weight = 1.0
        weight_sum = 0.0
        for f in range(frame - 1, first_frame - 1, -1):
            pose = identity.pose_at(f)
            if pose is None:
                continue
            point = pose.position
            derivative += weight * (next_point - point)
            weight_sum += weight
            weight *= self.config.falloff
            if weight < self.config.falloff_margin:
                break
            next_point = point

        if weight_sum == 0.0:
            return None
        derivative /= weight_sum
        if not np.isfinite(derivative).all():
            return None

        distance = float(np.hypot(derivative[0], derivative[1]))
        normalized = 1000.0 * distance / self.config.ms_per_frame
        if normalized < self.config.orientation_min_speed:
            return None
        confidence = min(normalized / self.config.orientation_max_speed, 1.0)
        return OrientationEstimate(math.atan2(-derivative[1], derivative[0]), confidence)

    def pose_for_mapping(self, identity: PoseHistory, frame: int) -> Optional[Pose]:
        """Where to look for the identity in the frame after ``frame``."""
        predicted = self.predict(identity, frame)
        if predicted is not None:
            return predicted
        return effective_pose(identity, frame)


class OrientationCorrector:
    """Head/tail disambiguation and smoothing of detection orientations."""

    def __init__(self, predictor: MotionPredictor):
        self.predictor = predictor

    def correct(self, detection: Detection, identity: PoseHistory,
                frame: int) -> AngleCorrection:
        """Correct ``detection``'s orientation against ``identity``'s history.

        ``frame`` is the newest frame of history before the detection. When a
        reference heading exists the corrected angle is written back into
        ``detection.angle_deg``.
        """
        raw = detection.orientation
        estimate = self.predictor.estimate_orientation(identity, frame)
        history_angle = estimate.angle if estimate is not None else float("nan")
        last_confident = last_confident_heading(identity, frame)

        # motion says more than the old lock
        reference = history_angle if estimate is not None else last_confident
        if math.isnan(reference):
            return AngleCorrection(raw, False, False)

        if math.isnan(raw):
            detection.angle_deg = math.degrees(reference)
            return AngleCorrection(reference, False, True)

        proposed = raw
        if abs(angle_difference(proposed, reference)) > 0.5 * math.pi:
            proposed += math.pi

        if math.isnan(last_confident):
            proposed = history_angle
        else:
            deviation = angle_difference(last_confident, proposed)
            if abs(deviation) > 0.2 * math.pi:
                if raw == 0.0:
                    # a zero angle that deviates is most likely no measurement
                    proposed = last_confident
                else:
                    proposed = last_confident - 0.1 * deviation

        proposed = normalize_angle(proposed)
        detection.angle_deg = math.degrees(proposed)

        if not math.isnan(last_confident):
            return AngleCorrection(proposed, True, True)
        # first lock needs agreement with the motion direction
        confident = abs(angle_difference(proposed, history_angle)) < 0.25 * math.pi
        if confident:
            logger.debug("orientation.locked identity={} frame={} angle={:.3f}",
                         identity.id, frame, proposed)
        return AngleCorrection(proposed, confident, True)
