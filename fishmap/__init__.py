"""FishMap: frame-by-frame identity mapping for multi-fish video tracking.

Assigns each frame's unlabeled detections (center, orientation, extent) to
persistent fish identities. New identities start as candidates and are
promoted once they have been seen often enough.

Quick Start::

    from fishmap import FishTracker, MapperConfig
    tracker = FishTracker(MapperConfig(target_track_count=5, average_speed=5.0))
    for frame_no, ellipses in enumerate(detector_output, start=1):
        result = tracker.process_frame(ellipses, frame_no)
"""

from loguru import logger as _logger

__version__ = "1.0.0"
__license__ = "AGPL-3.0-or-later"

# ---------------------------------------------------------------------------
# Core model
# ---------------------------------------------------------------------------
from .fishmap_pose import (
    Detection,
    Pose,
    PoseHistory,
    Track,
    Candidate,
    CandidateEntry,
    angle_difference,
    normalize_angle,
    coerce_detection,
    last_confident_heading,
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from .fishmap_config import (
    MapperConfig,
    GatingMode,
    AssociationMethod,
)

# ---------------------------------------------------------------------------
# Scoring, motion, assignment, lifecycle
# ---------------------------------------------------------------------------
from .fishmap_scoring import (
    IdentityScorer,
    BestMatch,
    gaussian_falloff,
)
from .fishmap_motion import (
    MotionPredictor,
    OrientationCorrector,
    OrientationEstimate,
    AngleCorrection,
)
from .fishmap_mapper import (
    Mapper,
    AssignmentResult,
)
from .fishmap_lifecycle import (
    CandidateManager,
    IdAllocator,
    LifecycleReport,
)
from .fishmap_tracker import (
    FishTracker,
    FrameResult,
)

# ---------------------------------------------------------------------------
# Simulation, errors, logging
# ---------------------------------------------------------------------------
from .fishmap_sim import (
    TankScenario,
    generate_tank_scenario,
    identity_purity,
)
from .exceptions import (
    FishMapError,
    ConfigError,
    InvalidConfigError,
    ConfigValidationError,
    HistoryError,
    DetectionError,
    InvalidDetectionError,
)
from .log_config import configure_logging, get_logger

# Library default: silent until the application opts in
_logger.disable("fishmap")

__all__ = [
    # Model
    "Detection", "Pose", "PoseHistory", "Track", "Candidate", "CandidateEntry",
    "angle_difference", "normalize_angle", "coerce_detection",
    "last_confident_heading",
    # Config
    "MapperConfig", "GatingMode", "AssociationMethod",
    # Engine
    "IdentityScorer", "BestMatch", "gaussian_falloff",
    "MotionPredictor", "OrientationCorrector", "OrientationEstimate",
    "AngleCorrection", "Mapper", "AssignmentResult",
    "CandidateManager", "IdAllocator", "LifecycleReport",
    "FishTracker", "FrameResult",
    # Simulation
    "TankScenario", "generate_tank_scenario", "identity_purity",
    # Errors & logging
    "FishMapError", "ConfigError", "InvalidConfigError", "ConfigValidationError",
    "HistoryError", "DetectionError", "InvalidDetectionError",
    "configure_logging", "get_logger",
]
