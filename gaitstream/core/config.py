"""
gaitstream/core/config.py

Dataclass configuration for every pipeline stage plus the YAML loader.

Each section validates itself eagerly (``validate()`` raises ConfigError);
nothing is clamped and nothing is re-checked while frames are processed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from gaitstream.schemas import KeypointName

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _check_unit(name: str, value: Any) -> None:
    if not _is_number(value) or not 0.0 <= value <= 1.0:
        raise ConfigError(name, value, "must be a number in [0, 1]")


def _check_positive(name: str, value: Any) -> None:
    if not _is_number(value) or value <= 0:
        raise ConfigError(name, value, "must be a number > 0")


def _check_non_negative(name: str, value: Any) -> None:
    if not _is_number(value) or value < 0:
        raise ConfigError(name, value, "must be a number >= 0")


def _check_int(name: str, value: Any, minimum: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise ConfigError(name, value, f"must be an integer >= {minimum}")


DEFAULT_REQUIRED_KEYPOINTS: Tuple[KeypointName, ...] = (
    KeypointName.NOSE,
    KeypointName.LEFT_SHOULDER,
    KeypointName.RIGHT_SHOULDER,
    KeypointName.LEFT_HIP,
    KeypointName.RIGHT_HIP,
)


@dataclass
class SmoothingConfig:
    """
    Keypoint smoothing filter settings.

    - smoothing_factor: weight of the prediction, 0 = raw passthrough,
                        1 = hold the previous value
    - min_confidence:   keypoints scored below this are dropped
    - max_distance:     jumps larger than this (px) are treated as outliers
    - enable_velocity_smoothing: predict with a constant-velocity model
    - history_size:     smoothed frames kept per (person, keypoint)
    - max_consecutive_outliers: after this many rejections in a row the next
                        out-of-gate sample re-seeds the keypoint
    """
    smoothing_factor: float = 0.6
    min_confidence: float = 0.3
    max_distance: float = 50.0
    enable_velocity_smoothing: bool = True
    history_size: int = 8
    max_consecutive_outliers: int = 5

    def validate(self) -> None:
        _check_unit("smoothing.smoothing_factor", self.smoothing_factor)
        _check_unit("smoothing.min_confidence", self.min_confidence)
        _check_positive("smoothing.max_distance", self.max_distance)
        _check_int("smoothing.history_size", self.history_size, 1)
        _check_int("smoothing.max_consecutive_outliers", self.max_consecutive_outliers, 1)
        if not isinstance(self.enable_velocity_smoothing, bool):
            raise ConfigError(
                "smoothing.enable_velocity_smoothing",
                self.enable_velocity_smoothing,
                "must be a bool",
            )


@dataclass
class ValidationConfig:
    """
    Pose validator settings.

    keypoint_floor is the per-point score a keypoint needs to count as
    visible (for min_visible_keypoints and required_keypoints). None means
    min_pose_confidence doubles as the floor.
    """
    min_pose_confidence: float = 0.4
    min_visible_keypoints: int = 3
    required_keypoints: Tuple[Union[KeypointName, str], ...] = DEFAULT_REQUIRED_KEYPOINTS
    max_keypoint_distance: float = 150.0
    enable_anatomical_validation: bool = False
    keypoint_floor: Optional[float] = None

    def required_names(self) -> Tuple[KeypointName, ...]:
        return tuple(KeypointName(n) for n in self.required_keypoints)

    def visibility_floor(self) -> float:
        if self.keypoint_floor is None:
            return self.min_pose_confidence
        return self.keypoint_floor

    def validate(self) -> None:
        _check_unit("validation.min_pose_confidence", self.min_pose_confidence)
        _check_int("validation.min_visible_keypoints", self.min_visible_keypoints, 0)
        _check_positive("validation.max_keypoint_distance", self.max_keypoint_distance)
        if self.keypoint_floor is not None:
            _check_unit("validation.keypoint_floor", self.keypoint_floor)
        if isinstance(self.required_keypoints, str):
            raise ConfigError(
                "validation.required_keypoints",
                self.required_keypoints,
                "must be a list of keypoint names",
            )
        try:
            self.required_names()
        except (TypeError, ValueError) as e:
            raise ConfigError(
                "validation.required_keypoints",
                self.required_keypoints,
                f"unknown keypoint name ({e})",
            ) from e


@dataclass
class TrackingConfig:
    """
    Person tracker settings.

    - max_match_distance: centroid distance (px) above which a pose cannot
                          be matched to an existing track
    - max_missed_frames:  grace period before an unseen track is evicted
    - velocity_decay:     per-frame damping of the centroid velocity used
                          for prediction while a track is unseen
    """
    max_match_distance: float = 150.0
    max_missed_frames: int = 15
    velocity_decay: float = 0.9

    def validate(self) -> None:
        _check_positive("tracking.max_match_distance", self.max_match_distance)
        _check_int("tracking.max_missed_frames", self.max_missed_frames, 0)
        _check_unit("tracking.velocity_decay", self.velocity_decay)


@dataclass
class EventDetectorConfig:
    """
    Gait event detector settings.

    The detector follows the signed left-right ankle separation along
    ``separation_axis``. A side only counts once |separation| exceeds
    ``min_amplitude`` (px deadband).
    """
    separation_axis: str = "x"
    min_amplitude: float = 5.0
    min_step_interval_ms: float = 250.0
    direction_window: int = 15
    direction_min_travel: float = 2.0

    def validate(self) -> None:
        if self.separation_axis not in ("x", "y"):
            raise ConfigError(
                "events.separation_axis", self.separation_axis, "must be 'x' or 'y'"
            )
        _check_non_negative("events.min_amplitude", self.min_amplitude)
        _check_non_negative("events.min_step_interval_ms", self.min_step_interval_ms)
        _check_int("events.direction_window", self.direction_window, 2)
        _check_non_negative("events.direction_min_travel", self.direction_min_travel)


@dataclass
class ParameterConfig:
    """Rolling window used by the gait parameter calculator."""
    window_ms: float = 10000.0
    max_events: int = 40
    symmetry_metric: str = "stride_time"  # "stride_time" or "stride_length"

    def validate(self) -> None:
        _check_positive("parameters.window_ms", self.window_ms)
        _check_int("parameters.max_events", self.max_events, 2)
        if self.symmetry_metric not in ("stride_time", "stride_length"):
            raise ConfigError(
                "parameters.symmetry_metric",
                self.symmetry_metric,
                "must be 'stride_time' or 'stride_length'",
            )


@dataclass
class CalibrationConfig:
    pixels_per_meter: Optional[float] = None
    estimate_min_score: float = 0.6

    def validate(self) -> None:
        if self.pixels_per_meter is not None:
            _check_positive("calibration.pixels_per_meter", self.pixels_per_meter)
        _check_unit("calibration.estimate_min_score", self.estimate_min_score)


@dataclass
class RuntimeConfig:
    snapshot_queue_size: int = 32
    metrics_window_sec: float = 5.0
    log_metrics: bool = False
    log_level: str = "INFO"

    def validate(self) -> None:
        _check_int("runtime.snapshot_queue_size", self.snapshot_queue_size, 1)
        _check_positive("runtime.metrics_window_sec", self.metrics_window_sec)
        if not isinstance(self.log_level, str) or not isinstance(
            logging.getLevelName(self.log_level.upper()), int
        ):
            raise ConfigError("runtime.log_level", self.log_level, "must be a logging level name")


@dataclass
class PathsConfig:
    logs_dir: Optional[str] = None

    def validate(self) -> None:
        pass


@dataclass
class GaitStreamConfig:
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    events: EventDetectorConfig = field(default_factory=EventDetectorConfig)
    parameters: ParameterConfig = field(default_factory=ParameterConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    def validate(self) -> None:
        for f in fields(self):
            getattr(self, f.name).validate()


def default_config() -> GaitStreamConfig:
    """Factory for the default configuration."""
    return GaitStreamConfig()


def _update_dataclass_from_dict(obj: Any, data: Dict[str, Any], section: str) -> Any:
    """
    Assign known keys of ``data`` onto the dataclass instance ``obj``.
    Unknown keys are ignored so older code can read newer files.
    """
    for key, value in data.items():
        if hasattr(obj, key):
            if isinstance(value, list):
                value = tuple(value)
            setattr(obj, key, value)
        else:
            logger.debug("Ignoring unknown config key %s.%s", section, key)
    return obj


def load_config(path: Union[str, Path] = "config/default.yaml") -> GaitStreamConfig:
    """
    Load a YAML config file and map it onto GaitStreamConfig.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ConfigError
        If the file is not a mapping or any value fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigError("<root>", type(raw).__name__, "config root must be a mapping")

    cfg = GaitStreamConfig()
    for f in fields(cfg):
        section_data = raw.get(f.name, {}) or {}
        if not isinstance(section_data, dict):
            raise ConfigError(f.name, section_data, "section must be a mapping")
        _update_dataclass_from_dict(getattr(cfg, f.name), section_data, f.name)

    cfg.validate()

    logger.info(
        "Config loaded from %s | smoothing_factor=%.2f, history_size=%d, "
        "max_match_distance=%.1f, calibrated=%s",
        path,
        cfg.smoothing.smoothing_factor,
        cfg.smoothing.history_size,
        cfg.tracking.max_match_distance,
        cfg.calibration.pixels_per_meter is not None,
    )
    return cfg
