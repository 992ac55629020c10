"""
FishMap Configuration
=====================

Calibration and lifecycle settings for the mapper.

All tunables that the scorer, the motion predictor and the lifecycle manager
read live on one ``MapperConfig`` object that is handed to each component.
The frame tracker swaps the object only between frames (see
``FishTracker.reconfigure``).

Defaults suit a typical zebrafish tank recording: five fish, candidates
promoted after 30 hits, 5 px average displacement per frame.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .exceptions import ConfigValidationError, InvalidConfigError
from .log_config import get_logger

logger = get_logger(__name__)

# Relative likelihood assigned to a displacement equal to the average speed
SPEED_LIKELIHOOD_AT_AVERAGE = 0.66

# Fixed orientation sigma [rad] of the identity scorer
ANGLE_SIGMA = 10.0 * math.pi / 2.0 * 0.05


class GatingMode(Enum):
    """How the maximum plausible displacement of an identity is bounded."""
    AGE = "age"        # gate_factor * average_speed * age, capped
    FIXED = "fixed"    # max_track_distance regardless of age


class AssociationMethod(Enum):
    """Detection-to-identity association used for a pool."""
    RECURSIVE = "recursive"  # claim, then verify nobody wants it more
    NEAREST = "nearest"      # nearest center within the gate, first come


@dataclass
class MapperConfig:
    """Mapper, scorer and lifecycle configuration."""
    # Lifecycle
    target_track_count: int = 5        # Confirmed pool capacity
    promotion_threshold: int = 30      # Candidate score needed for promotion
    miss_penalty: int = 2              # Score lost per miss (nearest method only)

    # Scoring
    average_speed: float = 5.0         # Expected displacement per frame [px]
    angle_importance: float = 0.2      # Weight of the orientation term

    # Gating
    gating_mode: GatingMode = GatingMode.AGE
    gate_factor: float = 3.0           # Multiples of average_speed per frame of age
    max_track_distance: float = 1000.0 # Absolute gate cap [px]

    # Association
    track_association: AssociationMethod = AssociationMethod.RECURSIVE
    candidate_association: AssociationMethod = AssociationMethod.RECURSIVE

    # Motion model
    smoothing_window: int = 3          # Deltas averaged for the speed estimate
    ms_per_frame: float = 50.0         # Frame period used to normalize speed
    orientation_min_speed: float = 2.0 # Below this the heading is noise
    orientation_max_speed: float = 6.0 # At or above this confidence is 1
    falloff: float = 0.9               # Per-step weight decay of old deltas
    falloff_margin: float = 0.4        # Stop accumulating below this weight

    # Visualization
    color_seed: Optional[int] = 12345

    def __post_init__(self):
        if isinstance(self.gating_mode, str):
            self.gating_mode = GatingMode(self.gating_mode)
        if isinstance(self.track_association, str):
            self.track_association = AssociationMethod(self.track_association)
        if isinstance(self.candidate_association, str):
            self.candidate_association = AssociationMethod(self.candidate_association)

    @property
    def distance_sigma(self) -> float:
        """Sigma such that a displacement of ``average_speed`` scores ~66%."""
        return math.sqrt(-(self.average_speed ** 2 / 2.0)
                         / math.log(SPEED_LIKELIHOOD_AT_AVERAGE))

    @property
    def angle_sigma(self) -> float:
        return ANGLE_SIGMA

    def gating_radius(self, age: int) -> float:
        """Maximum plausible displacement for an identity unseen for ``age`` frames."""
        if self.gating_mode == GatingMode.FIXED:
            return self.max_track_distance
        return min(self.gate_factor * self.average_speed * max(age, 1),
                   self.max_track_distance)

    def validate(self) -> List[str]:
        """Return a list of human-readable problems (empty when valid)."""
        errors = []
        if self.target_track_count < 0:
            errors.append("target_track_count must be >= 0")
        if self.promotion_threshold < 1:
            errors.append("promotion_threshold must be >= 1")
        if self.miss_penalty < 0:
            errors.append("miss_penalty must be >= 0")
        if not (self.average_speed > 0 and math.isfinite(self.average_speed)):
            errors.append("average_speed must be a positive finite number")
        if not 0.0 <= self.angle_importance <= 1.0:
            errors.append("angle_importance must lie in [0, 1]")
        if self.gate_factor <= 0:
            errors.append("gate_factor must be > 0")
        if self.max_track_distance <= 0:
            errors.append("max_track_distance must be > 0")
        if self.smoothing_window < 1:
            errors.append("smoothing_window must be >= 1")
        if self.ms_per_frame <= 0:
            errors.append("ms_per_frame must be > 0")
        if self.orientation_min_speed < 0:
            errors.append("orientation_min_speed must be >= 0")
        if self.orientation_max_speed <= 0:
            errors.append("orientation_max_speed must be > 0")
        if not 0.0 < self.falloff < 1.0:
            errors.append("falloff must lie in (0, 1)")
        if not 0.0 < self.falloff_margin <= 1.0:
            errors.append("falloff_margin must lie in (0, 1]")
        return errors

    def validated(self) -> "MapperConfig":
        """Return ``self`` or raise ``ConfigValidationError``."""
        errors = self.validate()
        if errors:
            for error in errors:
                logger.error("config.invalid {}", error)
            raise ConfigValidationError(
                f"Mapper configuration has {len(errors)} error(s)", errors)
        return self

    def with_updates(self, **changes: Any) -> "MapperConfig":
        return replace(self, **changes).validated()

    # ----- serialization helpers -----

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["gating_mode"] = self.gating_mode.value
        data["track_association"] = self.track_association.value
        data["candidate_association"] = self.candidate_association.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MapperConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigValidationError(
                f"Unknown configuration keys: {', '.join(unknown)}", unknown)
        try:
            config = cls(**data)
        except (TypeError, ValueError) as exc:
            raise ConfigValidationError(f"Invalid configuration value: {exc}") from exc
        return config.validated()

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "MapperConfig":
        """Load a configuration from a YAML file.

        The file may hold the options at top level or under a ``mapper`` key.
        An optional ``preset`` key selects the base the other options override.
        """
        path = Path(path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise InvalidConfigError(f"Cannot read config {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidConfigError(f"Config {path} must contain a mapping")
        data = raw.get("mapper", raw)
        if not isinstance(data, dict):
            raise InvalidConfigError(f"'mapper' section of {path} must be a mapping")
        data = dict(data)
        preset = data.pop("preset", None)
        if preset is not None:
            base = cls.preset(preset).to_dict()
            base.update(data)
            data = base
        config = cls.from_dict(data)
        logger.info("config.loaded path={} preset={}", path, preset or "default")
        return config

    @classmethod
    def preset(cls, name: Optional[str]) -> "MapperConfig":
        """Named presets for common recording setups."""
        presets = {
            "default": cls(),
            "zebrafish": cls(
                target_track_count=5, promotion_threshold=30,
                average_speed=5.0, angle_importance=0.2,
            ),
            "zebrafish_larvae": cls(
                target_track_count=10, promotion_threshold=15,
                average_speed=2.0, angle_importance=0.1,
                max_track_distance=200.0,
            ),
            "guppy_shoal": cls(
                target_track_count=20, promotion_threshold=20,
                average_speed=8.0, angle_importance=0.3,
            ),
            "robofish": cls(
                target_track_count=2, promotion_threshold=10,
                average_speed=6.0, angle_importance=0.5,
                gating_mode=GatingMode.FIXED, max_track_distance=60.0,
            ),
        }
        if name is None:
            return presets["default"]
        if name not in presets:
            raise ConfigValidationError(
                f"Unknown preset '{name}' (known: {', '.join(sorted(presets))})")
        return presets[name]
