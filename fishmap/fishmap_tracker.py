"""
FishMap Frame Tracker
=====================

Public per-frame entry point. Owns the confirmed pool, the candidate pool
and the shared id allocator, and runs one frame as an atomic step:

  1. ORDER tracks (recently detected first)
  2. ASSIGN detections to tracks
  3. RECORD new poses, unknown poses for unseen tracks
  4. PROBATION of candidates with the leftover detections
     (or clear the candidates when the confirmed pool is full)
  5. PROMOTE candidates into the confirmed pool

Usage:
    tracker = FishTracker(MapperConfig(target_track_count=5))
    for frame_no, ellipses in enumerate(detector_output, start=1):
        result = tracker.process_frame(ellipses, frame_no)
        for track_id, pose in result.track_poses.items():
            ...
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .exceptions import HistoryError
from .fishmap_config import MapperConfig
from .fishmap_lifecycle import CandidateManager, IdAllocator, pool_order
from .fishmap_mapper import Mapper
from .fishmap_motion import MotionPredictor, OrientationCorrector
from .fishmap_pose import (Candidate, Detection, Pose, Track, coerce_detection,
                           effective_pose)
from .fishmap_scoring import IdentityScorer
from .log_config import get_logger

logger = get_logger(__name__)


@dataclass
class FrameResult:
    """Everything that changed in one frame.

    Attributes:
        frame: Frame number
        track_poses: Track id -> pose recorded this frame
        candidate_poses: Candidate id -> pose recorded this frame
        matched_tracks: Track ids that received a detection
        promoted: Ids promoted from candidate to track
        dropped: Candidate ids removed
        spawned: Candidate ids created
        unmatched_detections: Detections neither tracks nor candidates used
    """
    frame: int
    track_poses: Dict[int, Pose] = field(default_factory=dict)
    candidate_poses: Dict[int, Pose] = field(default_factory=dict)
    matched_tracks: List[int] = field(default_factory=list)
    promoted: List[int] = field(default_factory=list)
    dropped: List[int] = field(default_factory=list)
    spawned: List[int] = field(default_factory=list)
    unmatched_detections: int = 0


class FishTracker:
    """Multi-fish identity tracker over per-frame detections."""

    def __init__(self, config: Optional[MapperConfig] = None):
        self._lock = threading.Lock()
        self._build(config or MapperConfig())
        self.ids = IdAllocator()
        self._tracks: List[Track] = []
        self.candidate_manager = CandidateManager(self.config, self.mapper, self.ids)
        self._frame: Optional[int] = None

        self.stats = {
            "frames_processed": 0,
            "tracks_confirmed": 0,
            "detections_seen": 0,
            "detections_matched": 0,
            "candidates_created": 0,
            "candidates_promoted": 0,
            "candidates_dropped": 0,
            "candidates_cleared": 0,
        }

    def _build(self, config: MapperConfig) -> None:
        self.config = config.validated()
        self.scorer = IdentityScorer(self.config)
        self.predictor = MotionPredictor(self.config)
        self.corrector = OrientationCorrector(self.predictor)
        self.mapper = Mapper(self.config, self.scorer, self.predictor, self.corrector)

    def reconfigure(self, config: MapperConfig) -> None:
        """Swap the configuration; takes effect from the next frame."""
        with self._lock:
            self._build(config)
            self.candidate_manager.config = self.config
            self.candidate_manager.mapper = self.mapper
            logger.info("tracker.reconfigured {}", self.config.to_dict())

    # ----- pools -----

    @property
    def tracks(self) -> List[Track]:
        """Snapshot of the confirmed pool."""
        with self._lock:
            return list(self._tracks)

    @property
    def candidates(self) -> List[Candidate]:
        """Snapshot of the candidate pool."""
        with self._lock:
            return list(self.candidate_manager.candidates)

    @property
    def current_frame(self) -> Optional[int]:
        return self._frame

    def add_track(self, pose: Pose, frame: int, track_id: Optional[int] = None) -> Track:
        """Seed a confirmed track, e.g. when resuming from saved state."""
        with self._lock:
            if track_id is None:
                track_id = self.ids.next_id()
            elif any(t.id == track_id for t in self._tracks) or any(
                    c.id == track_id for c in self.candidate_manager.candidates):
                raise HistoryError(f"Identity id {track_id} is already in use",
                                   identity_id=track_id, frame=frame)
            self.ids.reserve(track_id)
            track = Track(track_id)
            track.record(frame, pose)
            self._tracks.append(track)
            if self._frame is None or frame > self._frame:
                self._frame = frame
            return track

    def get_track(self, track_id: int) -> Optional[Track]:
        with self._lock:
            for track in self._tracks:
                if track.id == track_id:
                    return track
            return None

    # ----- per-frame processing -----

    def process_frame(self, detections: Iterable[Any],
                      frame: Optional[int] = None) -> FrameResult:
        """Process one frame of detections.

        Args:
            detections: ``Detection`` objects, OpenCV rotated rects or mappings
            frame: Frame number; defaults to the previous frame + 1

        Returns:
            FrameResult describing the updates of this frame

        Raises:
            HistoryError: ``frame`` is not after the last processed frame
            InvalidDetectionError: an item is not a detection
        """
        with self._lock:
            if frame is None:
                frame = 1 if self._frame is None else self._frame + 1
            if self._frame is not None and frame <= self._frame:
                raise HistoryError(
                    f"Frame {frame} is not after the last processed frame {self._frame}",
                    frame=frame)
            pending = [coerce_detection(d) for d in detections]
            return self._process(pending, frame)

    def _process(self, detections: List[Detection], frame: int) -> FrameResult:
        result = FrameResult(frame)
        n_detections = len(detections)

        # 1-3. confirmed tracks
        self._tracks.sort(key=pool_order)
        assignment = self.mapper.assign(self._tracks, detections, frame,
                                        self.config.track_association)
        for track in self._tracks:
            pose = assignment.poses.get(track.id)
            if pose is not None:
                result.matched_tracks.append(track.id)
            else:
                last = effective_pose(track, frame - 1)
                if last is None:
                    continue
                pose = last.unknown_successor()
            track.record(frame, pose)
            result.track_poses[track.id] = pose

        # 4-5. candidates
        capacity = self.config.target_track_count - len(self._tracks)
        report = self.candidate_manager.step(detections, frame, capacity)
        for track in report.promoted:
            self._tracks.append(track)
            result.track_poses[track.id] = track.pose_at(frame)
            result.promoted.append(track.id)
        result.candidate_poses = report.poses
        result.dropped = report.dropped
        result.spawned = report.spawned
        result.unmatched_detections = len(detections)

        self._frame = frame
        self.stats["frames_processed"] += 1
        self.stats["tracks_confirmed"] = len(self._tracks)
        self.stats["detections_seen"] += n_detections
        self.stats["detections_matched"] += assignment.matched + report.matched
        self.stats["candidates_created"] += len(report.spawned)
        self.stats["candidates_promoted"] += len(report.promoted)
        self.stats["candidates_dropped"] += len(report.dropped)
        self.stats["candidates_cleared"] += report.cleared

        logger.debug(
            "tracker.frame frame={} detections={} tracks={} matched={} candidates={} "
            "promoted={} dropped={} spawned={}",
            frame, n_detections, len(self._tracks), len(result.matched_tracks),
            len(self.candidate_manager.candidates), len(result.promoted), len(result.dropped),
            len(result.spawned))
        return result

    # ----- reporting -----
    # Readers take the frame lock so they never see a half-processed frame.

    def get_positions(self, frame: Optional[int] = None) -> Dict[int, np.ndarray]:
        """Track positions as {track_id: [x, y]} at ``frame`` (default: current)."""
        with self._lock:
            frame = self._frame if frame is None else frame
            positions = {}
            for track in self._tracks:
                pose = track.pose_at(frame) if frame is not None else None
                if pose is not None:
                    positions[track.id] = pose.position
            return positions

    def get_headings(self, frame: Optional[int] = None) -> Dict[int, float]:
        """Track headings [rad] at ``frame`` (default: current)."""
        with self._lock:
            frame = self._frame if frame is None else frame
            headings = {}
            for track in self._tracks:
                pose = track.pose_at(frame) if frame is not None else None
                if pose is not None:
                    headings[track.id] = pose.orientation
            return headings

    def summary(self) -> str:
        """Human-readable tracker summary."""
        with self._lock:
            lines = [f"FishMap — Frame {self._frame} — {len(self._tracks)} tracks, "
                     f"{len(self.candidate_manager.candidates)} candidates"]
            for track in sorted(self._tracks, key=lambda t: t.id):
                pose = track.last_pose
                lines.append(
                    f"  T{track.id:03d} pos=({pose.x:.1f}, {pose.y:.1f}) "
                    f"heading={np.degrees(pose.orientation):.1f}deg age={pose.age} "
                    f"{'locked' if pose.heading_locked else 'unlocked'} "
                    f"frames={len(track.history)}"
                )
            lines.append(f"  Stats: {dict(self.stats)}")
            return "\n".join(lines)

    def __repr__(self):
        with self._lock:
            return (f"FishTracker(tracks={len(self._tracks)}, "
                    f"candidates={len(self.candidate_manager.candidates)}, "
                    f"frame={self._frame})")
