"""
FishMap Pose Model
==================

Value types shared by every part of the mapper:

  Detection  — one raw observation of the upstream detector (degrees)
  Pose       — what an identity looks like at one frame (radians)
  Track      — confirmed identity, history frame -> Pose
  Candidate  — probationary identity, history frame -> (Pose, score)

Track and Candidate are separate types; everything that only needs
"has poses over frames" is written against the ``PoseHistory`` protocol.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import (Any, Dict, Mapping, NamedTuple, Optional, Protocol,
                    Sequence, Tuple)

import numpy as np

from .exceptions import HistoryError, InvalidDetectionError

TWO_PI = 2.0 * math.pi

Color = Tuple[int, int, int]


# ===== ANGLE HELPERS =====

def angle_difference(alpha: float, beta: float) -> float:
    """Signed difference ``alpha - beta`` wrapped into [-pi, pi].

    NaN inputs propagate as NaN.
    """
    difference = alpha - beta
    if not math.isfinite(difference):
        return float("nan")
    difference = math.fmod(difference, TWO_PI)
    if difference > math.pi:
        difference -= TWO_PI
    elif difference < -math.pi:
        difference += TWO_PI
    return difference


def angle_difference_array(alpha: float, beta: np.ndarray) -> np.ndarray:
    """Vectorized ``angle_difference`` of one angle against many."""
    difference = alpha - np.asarray(beta, dtype=float)
    return (difference + np.pi) % TWO_PI - np.pi


def normalize_angle(angle: float) -> float:
    """Map an angle into [0, 2*pi)."""
    if not math.isfinite(angle):
        return float("nan")
    wrapped = math.fmod(angle, TWO_PI)
    if wrapped < 0.0:
        wrapped += TWO_PI
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


# ===== DETECTION =====

@dataclass
class Detection:
    """One object observed by the upstream detector in a single frame.

    ``angle_deg`` is a line orientation (the detector cannot tell head from
    tail); the orientation corrector rewrites it once the heading is resolved.
    """
    x: float
    y: float
    angle_deg: float = float("nan")
    width: float = 0.0
    height: float = 0.0

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    @property
    def orientation(self) -> float:
        """Orientation in radians."""
        return math.radians(self.angle_deg)

    @property
    def extent(self) -> Tuple[float, float]:
        return (self.width, self.height)

    @classmethod
    def from_rotated_rect(cls, rect: Sequence[Any]) -> "Detection":
        """Build from an OpenCV rotated rect ``((cx, cy), (w, h), angle)``."""
        (cx, cy), (w, h), angle = rect
        return cls(float(cx), float(cy), float(angle), float(w), float(h))


def coerce_detection(item: Any) -> Detection:
    """Interpret one upstream item as a ``Detection``.

    Accepts ``Detection`` objects, OpenCV rotated-rect tuples and mappings
    with ``center`` plus ``orientation_deg``/``angle`` and ``extent``/``size``.
    """
    if isinstance(item, Detection):
        return item
    try:
        if isinstance(item, Mapping):
            cx, cy = item["center"]
            angle = item.get("orientation_deg", item.get("angle", float("nan")))
            w, h = item.get("extent", item.get("size", (0.0, 0.0)))
            return Detection(float(cx), float(cy), float(angle), float(w), float(h))
        return Detection.from_rotated_rect(item)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidDetectionError(f"Cannot interpret {item!r} as a detection") from exc


# ===== POSE =====

@dataclass(frozen=True)
class Pose:
    """State of one identity at one frame.

    Attributes:
        x, y: Position [px]
        orientation: Heading [rad], NaN when unknown
        width, height: Extent of the detection the pose came from
        color: Display color (RGB), for renderers only
        age: Frames since a detection was last assigned (1 = this frame)
        heading_locked: Orientation was confidently resolved
        detected: Position came from a detection this frame
    """
    x: float
    y: float
    orientation: float = float("nan")
    width: float = 0.0
    height: float = 0.0
    color: Color = (0, 0, 0)
    age: int = 1
    heading_locked: bool = False
    detected: bool = True

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    @property
    def extent(self) -> Tuple[float, float]:
        return (self.width, self.height)

    @classmethod
    def from_detection(cls, detection: Detection, orientation: Optional[float] = None,
                       color: Color = (0, 0, 0), heading_locked: bool = False) -> "Pose":
        if orientation is None:
            orientation = detection.orientation
        return cls(detection.x, detection.y, orientation,
                   detection.width, detection.height, color, 1,
                   heading_locked, True)

    def unknown_successor(self) -> "Pose":
        """Pose for a frame without an assigned detection: same place, one older."""
        return replace(self, age=self.age + 1, detected=False)

    def __repr__(self):
        return (f"Pose(({self.x:.1f}, {self.y:.1f}), "
                f"{math.degrees(self.orientation):.1f}deg, age={self.age}"
                f"{', locked' if self.heading_locked else ''})")


# ===== IDENTITIES =====

class PoseHistory(Protocol):
    """Anything with an id and poses indexed by frame."""
    id: int

    def pose_at(self, frame: int) -> Optional[Pose]: ...

    def has_pose_at(self, frame: int) -> bool: ...

    def record(self, frame: int, pose: Pose) -> None: ...

    @property
    def first_frame(self) -> Optional[int]: ...

    @property
    def last_frame(self) -> Optional[int]: ...

    @property
    def last_pose(self) -> Optional[Pose]: ...


def _check_frame_order(identity_id: int, last_frame: Optional[int], frame: int) -> None:
    if last_frame is not None and frame <= last_frame:
        raise HistoryError(
            f"Identity {identity_id}: frame {frame} is not after {last_frame}",
            identity_id=identity_id, frame=frame)


@dataclass
class Track:
    """Confirmed identity."""
    id: int
    history: Dict[int, Pose] = field(default_factory=dict)

    def pose_at(self, frame: int) -> Optional[Pose]:
        return self.history.get(frame)

    def has_pose_at(self, frame: int) -> bool:
        return frame in self.history

    def record(self, frame: int, pose: Pose) -> None:
        _check_frame_order(self.id, self.last_frame, frame)
        self.history[frame] = pose

    @property
    def first_frame(self) -> Optional[int]:
        return next(iter(self.history), None)

    @property
    def last_frame(self) -> Optional[int]:
        return next(reversed(self.history), None) if self.history else None

    @property
    def last_pose(self) -> Optional[Pose]:
        frame = self.last_frame
        return None if frame is None else self.history[frame]

    def __repr__(self):
        return f"Track({self.id}, frames={len(self.history)}, last={self.last_pose!r})"


class CandidateEntry(NamedTuple):
    pose: Pose
    score: int


@dataclass
class Candidate:
    """Probationary identity accumulating evidence before promotion."""
    id: int
    history: Dict[int, CandidateEntry] = field(default_factory=dict)

    def pose_at(self, frame: int) -> Optional[Pose]:
        entry = self.history.get(frame)
        return None if entry is None else entry.pose

    def has_pose_at(self, frame: int) -> bool:
        return frame in self.history

    def record(self, frame: int, pose: Pose, score: Optional[int] = None) -> None:
        """Record a pose; the score carries over unless given."""
        _check_frame_order(self.id, self.last_frame, frame)
        if score is None:
            score = self.score
        self.history[frame] = CandidateEntry(pose, score)

    @property
    def score(self) -> int:
        frame = self.last_frame
        return 1 if frame is None else self.history[frame].score

    @property
    def first_frame(self) -> Optional[int]:
        return next(iter(self.history), None)

    @property
    def last_frame(self) -> Optional[int]:
        return next(reversed(self.history), None) if self.history else None

    @property
    def last_pose(self) -> Optional[Pose]:
        frame = self.last_frame
        return None if frame is None else self.history[frame].pose

    def to_track(self) -> Track:
        """Promote: same id, poses carried over without scores."""
        return Track(self.id, {f: entry.pose for f, entry in self.history.items()})

    def __repr__(self):
        return (f"Candidate({self.id}, score={self.score}, "
                f"frames={len(self.history)}, last={self.last_pose!r})")


def last_confident_heading(identity: PoseHistory, frame: int) -> float:
    """Locked orientation of the identity as of ``frame``, else NaN.

    A lock never goes away once set, so the pose in effect at ``frame``
    carries the newest locked heading.
    """
    pose = effective_pose(identity, frame)
    if pose is None:
        return float("nan")
    if pose.heading_locked and math.isfinite(pose.orientation):
        return pose.orientation
    return float("nan")


def effective_pose(identity: PoseHistory, frame: int) -> Optional[Pose]:
    """Pose at ``frame``; else the newest earlier pose aged by the gap."""
    pose = identity.pose_at(frame)
    if pose is not None:
        return pose
    last_frame = identity.last_frame
    if last_frame is None or last_frame > frame:
        return None
    last = identity.last_pose
    return replace(last, age=last.age + (frame - last_frame), detected=False)

