"""
FishMap Assignment Engine
=========================

Matches one frame's detections to a pool of identities (tracks or
candidates), one-to-one, without a global assignment solver.

Recursive method ("claim, then verify"):

  while identities and detections remain:
      A = first pending identity
      1. predict A's pose, pick A's best gated detection D
      2. ask which pending identity D looks most like
      3. A itself       -> A gets D; both leave their pools
         someone else B -> resolve B first (B never re-entered in this chain)

Every chain visits each identity at most once and every chain removes at
least one identity from the pool, so a frame costs at most O(n^2) scorer
calls for n identities. The answer is deterministic but not globally optimal.

Nearest method: each identity in pool order takes the nearest detection
center inside its gate. Kept for candidates, where it is cheaper and
penalizes misses.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

import numpy as np

from .fishmap_config import AssociationMethod, MapperConfig
from .fishmap_motion import MotionPredictor, OrientationCorrector
from .fishmap_pose import (Detection, Pose, PoseHistory, effective_pose,
                           last_confident_heading)
from .fishmap_scoring import IdentityScorer
from .log_config import get_logger

logger = get_logger(__name__)


@dataclass
class AssignmentResult:
    """Outcome of one association pass.

    Attributes:
        frame: Frame the poses belong to
        poses: Identity id -> new pose, or None when nothing was assigned
        matched: Number of detections consumed
        deferrals: Times an identity yielded its pick to a stronger claimant
    """
    frame: int
    poses: Dict[int, Optional[Pose]] = field(default_factory=dict)
    matched: int = 0
    deferrals: int = 0

    @property
    def updated_ids(self) -> List[int]:
        return [i for i, pose in self.poses.items() if pose is not None]

    @property
    def unseen_ids(self) -> List[int]:
        return [i for i, pose in self.poses.items() if pose is None]


class _FramePass:
    """Mutable state of one association pass."""

    def __init__(self, pool: Sequence[PoseHistory], detections: List[Detection],
                 frame: int):
        self.pending: List[PoseHistory] = list(pool)
        self.detections = detections
        self.frame = frame
        self.reference_frame = frame - 1
        self.result = AssignmentResult(frame)
        self._mapping_poses: Dict[int, Optional[Pose]] = {}

    def mapping_pose(self, identity: PoseHistory,
                     predictor: MotionPredictor) -> Optional[Pose]:
        if identity.id not in self._mapping_poses:
            self._mapping_poses[identity.id] = predictor.pose_for_mapping(
                identity, self.reference_frame)
        return self._mapping_poses[identity.id]

    def mark_unseen(self, identity: PoseHistory) -> None:
        self.result.poses[identity.id] = None
        self.pending.remove(identity)

    def assign(self, identity: PoseHistory, detection_index: int, pose: Pose) -> None:
        self.result.poses[identity.id] = pose
        self.result.matched += 1
        self.pending.remove(identity)
        del self.detections[detection_index]


class Mapper:
    """Per-frame detection-to-identity assignment."""

    def __init__(self, config: Optional[MapperConfig] = None,
                 scorer: Optional[IdentityScorer] = None,
                 predictor: Optional[MotionPredictor] = None,
                 corrector: Optional[OrientationCorrector] = None):
        self.config = config or MapperConfig()
        self.scorer = scorer or IdentityScorer(self.config)
        self.predictor = predictor or MotionPredictor(self.config)
        self.corrector = corrector or OrientationCorrector(self.predictor)

    def assign(self, pool: Sequence[PoseHistory], detections: List[Detection],
               frame: int, method: AssociationMethod = AssociationMethod.RECURSIVE
               ) -> AssignmentResult:
        """Assign detections of ``frame`` to identities of ``pool``.

        Args:
            pool: Identities in priority order (earlier ones win ties)
            detections: Detections of ``frame``; matched ones are removed in place
            frame: Current frame; identities are read at ``frame - 1``
            method: Association method

        Returns:
            AssignmentResult with an entry (pose or None) for every identity
        """
        state = _FramePass(pool, detections, frame)
        if method == AssociationMethod.NEAREST:
            self._assign_nearest(state)
        else:
            while state.pending and state.detections:
                self._resolve(state.pending[0], state, set())

        for identity in list(state.pending):
            state.mark_unseen(identity)

        result = state.result
        logger.debug(
            "mapper.assign frame={} method={} pool={} matched={} unseen={} deferrals={}",
            frame, method.value, len(pool), result.matched,
            len(result.unseen_ids), result.deferrals)
        return result

    # ----- recursive method -----

    def _resolve(self, identity: PoseHistory, state: _FramePass, visited: Set[int]) -> None:
        visited.add(identity.id)
        query = state.mapping_pose(identity, self.predictor)
        if query is None:
            state.mark_unseen(identity)
            return

        match = self.scorer.select_best(query, state.detections, age=query.age)
        if not match.found:
            state.mark_unseen(identity)
            return

        proposed = Pose.from_detection(state.detections[match.index], color=query.color)

        contenders = [identity]
        contender_poses = [query]
        for other in state.pending:
            if other is identity or not other.has_pose_at(state.reference_frame):
                continue
            pose = state.mapping_pose(other, self.predictor)
            if pose is not None:
                contenders.append(other)
                contender_poses.append(pose)

        claim = self.scorer.select_best(proposed, contender_poses)
        rival = contenders[claim.index]
        if rival is identity or rival.id in visited:
            self._confirm(identity, match.index, state)
            return

        state.result.deferrals += 1
        logger.debug("mapper.defer frame={} identity={} rival={}",
                     state.frame, identity.id, rival.id)
        self._resolve(rival, state, visited)

    # ----- nearest method -----

    def _assign_nearest(self, state: _FramePass) -> None:
        for identity in list(state.pending):
            if not state.detections:
                break
            last = effective_pose(identity, state.reference_frame)
            if last is None:
                state.mark_unseen(identity)
                continue
            radius = self.config.gating_radius(last.age)
            nearby = self.scorer.gate(last, state.detections, radius)
            if nearby.size == 0:
                state.mark_unseen(identity)
                continue
            distances = np.array([
                math.hypot(state.detections[i].x - last.x, state.detections[i].y - last.y)
                for i in nearby
            ])
            self._confirm(identity, int(nearby[int(np.argmin(distances))]), state)

    # ----- shared -----

    def _confirm(self, identity: PoseHistory, detection_index: int,
                 state: _FramePass) -> None:
        detection = state.detections[detection_index]
        reference = state.reference_frame
        correction = self.corrector.correct(detection, identity, reference)
        previous = effective_pose(identity, reference)
        color = previous.color if previous is not None else (0, 0, 0)
        locked = correction.confident or math.isfinite(
            last_confident_heading(identity, reference))
        pose = Pose.from_detection(detection, orientation=correction.angle,
                                   color=color, heading_locked=locked)
        state.assign(identity, detection_index, pose)
