"""
FishMap Candidate Lifecycle
===========================

Probation for new identities:

  leftover detection ──spawn──▶ CANDIDATE (score 1)
                                  │  hit:  score + 1
                                  │  miss: unknown pose, score - penalty
                                  ├── score >= threshold ──▶ promoted to Track
                                  └── score < 0 / no pose ──▶ dropped

Promotion consumes confirmed-pool capacity. Without capacity the whole
candidate pool is cleared and leftover detections spawn nothing, also when
the last free slot was taken by a promotion in the same frame.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .fishmap_config import AssociationMethod, MapperConfig
from .fishmap_mapper import Mapper
from .fishmap_pose import Candidate, Color, Detection, Pose, Track, effective_pose
from .log_config import get_logger

logger = get_logger(__name__)


class IdAllocator:
    """Hands out increasing ids shared by tracks and candidates."""

    def __init__(self, start: int = 1):
        self._next_id = start

    def next_id(self) -> int:
        identity_id = self._next_id
        self._next_id += 1
        return identity_id

    def reserve(self, identity_id: int) -> None:
        """Make sure ``identity_id`` is never handed out."""
        self._next_id = max(self._next_id, identity_id + 1)

    @property
    def peek(self) -> int:
        return self._next_id


@dataclass
class LifecycleReport:
    """What happened to the candidate pool in one frame."""
    frame: int
    poses: Dict[int, Pose] = field(default_factory=dict)
    matched: int = 0
    promoted: List[Track] = field(default_factory=list)
    dropped: List[int] = field(default_factory=list)
    spawned: List[int] = field(default_factory=list)
    cleared: int = 0


def pool_order(identity) -> tuple:
    """Sort key: recently detected identities first, then by id."""
    last = identity.last_pose
    return (last.age if last is not None else 0, identity.id)


class CandidateManager:
    """Owns the candidate pool: spawn, score, promote, drop."""

    def __init__(self, config: Optional[MapperConfig] = None,
                 mapper: Optional[Mapper] = None,
                 ids: Optional[IdAllocator] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = config or MapperConfig()
        self.mapper = mapper or Mapper(self.config)
        self.ids = ids or IdAllocator()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.color_seed)
        self.candidates: List[Candidate] = []

    def __len__(self):
        return len(self.candidates)

    def clear(self) -> int:
        """Drop every candidate; returns how many there were."""
        n = len(self.candidates)
        self.candidates = []
        return n

    def random_color(self) -> Color:
        r, g, b = self.rng.integers(0, 256, size=3)
        return (int(r), int(g), int(b))

    def spawn(self, detection: Detection, frame: int) -> Candidate:
        """New candidate at ``detection`` with score 1."""
        candidate = Candidate(self.ids.next_id())
        candidate.record(frame, Pose.from_detection(detection, color=self.random_color()), 1)
        self.candidates.append(candidate)
        return candidate

    def step(self, detections: List[Detection], frame: int, capacity: int) -> LifecycleReport:
        """Run one frame of probation.

        Args:
            detections: Detections no track claimed; consumed ones are removed
            frame: Current frame
            capacity: Free slots in the confirmed pool

        Returns:
            LifecycleReport; promoted candidates are returned as tracks
        """
        report = LifecycleReport(frame)
        if capacity <= 0:
            report.cleared = self.clear()
            if report.cleared:
                logger.info("candidates.cleared frame={} count={} (confirmed pool full)",
                            frame, report.cleared)
            return report

        method = self.config.candidate_association
        pool = sorted(self.candidates, key=pool_order)
        result = self.mapper.assign(pool, detections, frame, method)
        report.matched = result.matched
        penalty = self.config.miss_penalty if method == AssociationMethod.NEAREST else 0

        for candidate in pool:
            pose = result.poses.get(candidate.id)
            if pose is not None:
                candidate.record(frame, pose, candidate.score + 1)
                continue
            last = effective_pose(candidate, frame - 1)
            if last is not None:
                candidate.record(frame, last.unknown_successor(), candidate.score - penalty)

        survivors = []
        for candidate in pool:
            if not candidate.has_pose_at(frame) or candidate.score < 0:
                report.dropped.append(candidate.id)
                logger.debug("candidate.dropped id={} frame={} score={}",
                             candidate.id, frame, candidate.score)
            elif candidate.score >= self.config.promotion_threshold and capacity > 0:
                track = candidate.to_track()
                report.promoted.append(track)
                capacity -= 1
                logger.info("candidate.promoted id={} frame={} score={}",
                            candidate.id, frame, candidate.score)
            else:
                survivors.append(candidate)
                report.poses[candidate.id] = candidate.pose_at(frame)
        self.candidates = survivors

        if report.promoted and capacity <= 0:
            # promotions filled the confirmed pool this frame
            for candidate in self.candidates:
                report.poses.pop(candidate.id, None)
            report.cleared = self.clear()
            if report.cleared:
                logger.info("candidates.cleared frame={} count={} (confirmed pool full)",
                            frame, report.cleared)
            return report

        for detection in detections:
            candidate = self.spawn(detection, frame)
            report.spawned.append(candidate.id)
            report.poses[candidate.id] = candidate.pose_at(frame)
        detections.clear()

        return report
