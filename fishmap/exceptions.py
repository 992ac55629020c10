"""Custom exception classes for FishMap.

Nothing inside a frame raises: the mapper degrades every anomaly to a
defined fallback. These exceptions cover misuse detected before a frame is
processed (bad configuration, unreadable detections, out-of-order frames).
"""

from __future__ import annotations

from typing import Optional


class FishMapError(Exception):
    """Base exception for all FishMap errors."""

    pass


class ConfigError(FishMapError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigError(ConfigError):
    """Raised when a configuration file cannot be read or parsed."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration values fail validation."""

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        self.validation_errors = validation_errors or []
        super().__init__(message)


class HistoryError(FishMapError):
    """Raised when a pose is recorded at a frame not after the last one."""

    def __init__(self, message: str, identity_id: Optional[int] = None,
                 frame: Optional[int] = None):
        self.identity_id = identity_id
        self.frame = frame
        super().__init__(message)


class DetectionError(FishMapError):
    """Base exception for detection input errors."""

    pass


class InvalidDetectionError(DetectionError):
    """Raised when an input item cannot be interpreted as a detection."""

    pass


__all__ = [
    "FishMapError",
    "ConfigError",
    "InvalidConfigError",
    "ConfigValidationError",
    "HistoryError",
    "DetectionError",
    "InvalidDetectionError",
]
