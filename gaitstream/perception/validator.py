"""
gaitstream/perception/validator.py

Pose gatekeeper in front of the tracker.

A pose is accepted only if no error kind applies. Rejection is never an
exception: the pipeline counts rejected poses and moves on.
"""

from __future__ import annotations

import copy
import logging
import math
from enum import Enum
from typing import Dict, Iterable, Optional, Set, Tuple

import numpy as np

from gaitstream.core.config import ValidationConfig
from gaitstream.core.interfaces import BasePoseValidator
from gaitstream.schemas import Keypoint, KeypointName, Pose

logger = logging.getLogger(__name__)

K = KeypointName

# Limb segments checked against 1.5 x max_keypoint_distance.
LIMB_SEGMENTS: Tuple[Tuple[KeypointName, KeypointName], ...] = (
    (K.LEFT_HIP, K.LEFT_KNEE),
    (K.LEFT_KNEE, K.LEFT_ANKLE),
    (K.RIGHT_HIP, K.RIGHT_KNEE),
    (K.RIGHT_KNEE, K.RIGHT_ANKLE),
    (K.LEFT_SHOULDER, K.LEFT_ELBOW),
    (K.LEFT_ELBOW, K.LEFT_WRIST),
    (K.RIGHT_SHOULDER, K.RIGHT_ELBOW),
    (K.RIGHT_ELBOW, K.RIGHT_WRIST),
)
LIMB_SEGMENT_FACTOR = 1.5

# (proximal, joint, distal) triples whose inner angle must lie in the range.
JOINT_ANGLES: Tuple[Tuple[KeypointName, KeypointName, KeypointName], ...] = (
    (K.LEFT_HIP, K.LEFT_KNEE, K.LEFT_ANKLE),
    (K.RIGHT_HIP, K.RIGHT_KNEE, K.RIGHT_ANKLE),
    (K.LEFT_SHOULDER, K.LEFT_ELBOW, K.LEFT_WRIST),
    (K.RIGHT_SHOULDER, K.RIGHT_ELBOW, K.RIGHT_WRIST),
)
MIN_JOINT_ANGLE_DEG = 30.0
MAX_JOINT_ANGLE_DEG = 180.0

# Left/right pairs may differ vertically by at most this share of their distance.
SYMMETRY_TOLERANCE = 0.5


class ValidationErrorKind(str, Enum):
    LOW_CONFIDENCE = "low_confidence"
    INSUFFICIENT_KEYPOINTS = "insufficient_keypoints"
    MISSING_REQUIRED_KEYPOINT = "missing_required_keypoint"
    INVALID_KEYPOINT = "invalid_keypoint"
    IMPLAUSIBLE_DISTANCE = "implausible_distance"
    ANATOMICALLY_IMPLAUSIBLE = "anatomically_implausible"


def _distance(a: Keypoint, b: Keypoint) -> float:
    return float(np.hypot(a.x - b.x, a.y - b.y))


def _joint_angle_deg(a: Keypoint, joint: Keypoint, c: Keypoint) -> Optional[float]:
    v1 = np.array([a.x - joint.x, a.y - joint.y], dtype=np.float64)
    v2 = np.array([c.x - joint.x, c.y - joint.y], dtype=np.float64)
    n1 = np.linalg.norm(v1)
    n2 = np.linalg.norm(v2)
    if n1 < 1e-6 or n2 < 1e-6:
        return None
    cos = float(np.clip(np.dot(v1, v2) / (n1 * n2), -1.0, 1.0))
    return math.degrees(math.acos(cos))


class PoseValidator(BasePoseValidator):
    """
    Stateless apart from the held ValidationConfig.

    Usage:
        validator = PoseValidator(cfg.validation)
        accepted = [p for p in poses if validator.validate(p)]
    """

    def __init__(self, config: Optional[ValidationConfig] = None) -> None:
        config = config or ValidationConfig()
        config.validate()
        config = copy.deepcopy(config)
        self._config = config
        self._required = config.required_names()
        logger.info(
            "PoseValidator initialised | min_pose_conf=%.2f min_visible=%d "
            "required=%d anatomical=%s",
            config.min_pose_confidence,
            config.min_visible_keypoints,
            len(self._required),
            config.enable_anatomical_validation,
        )

    @property
    def config(self) -> ValidationConfig:
        """Copy of the active config; changes go through update_config."""
        return copy.deepcopy(self._config)

    def update_config(self, config: ValidationConfig) -> None:
        """
        Swap the active config for subsequent calls.

        Raises ConfigError and keeps the current config if ``config`` is invalid.
        """
        try:
            config.validate()
        except ValueError:
            logger.warning("Rejected validation config update; keeping previous config")
            raise
        config = copy.deepcopy(config)
        self._required = config.required_names()
        self._config = config
        logger.info("Validation config updated")

    def validate(self, pose: Pose) -> bool:
        errors = self.validation_errors(pose)
        if errors:
            logger.debug(
                "Pose %s rejected: %s",
                pose.detection_id,
                ",".join(sorted(e.value for e in errors)),
            )
            return False
        return True

    def validation_errors(self, pose: Pose) -> Set[ValidationErrorKind]:
        """Every error kind that applies to ``pose``; empty set when it is valid."""
        cfg = self._config
        errors: Set[ValidationErrorKind] = set()

        if not self._score_ok(pose.score) or pose.score < cfg.min_pose_confidence:
            errors.add(ValidationErrorKind.LOW_CONFIDENCE)

        if not self._keypoint_properties_ok(pose.keypoints):
            errors.add(ValidationErrorKind.INVALID_KEYPOINT)

        visible = self._visible(pose.keypoints)
        if len(visible) < cfg.min_visible_keypoints:
            errors.add(ValidationErrorKind.INSUFFICIENT_KEYPOINTS)

        if any(name not in visible for name in self._required):
            errors.add(ValidationErrorKind.MISSING_REQUIRED_KEYPOINT)

        if not self._distances_ok(visible):
            errors.add(ValidationErrorKind.IMPLAUSIBLE_DISTANCE)

        if cfg.enable_anatomical_validation and not self._anatomy_ok(visible):
            errors.add(ValidationErrorKind.ANATOMICALLY_IMPLAUSIBLE)

        return errors

    # --------------------------------------------------------------
    # Checks
    # --------------------------------------------------------------

    @staticmethod
    def _score_ok(score: float) -> bool:
        return isinstance(score, (int, float)) and math.isfinite(score) and 0.0 <= score <= 1.0

    def _keypoint_properties_ok(self, keypoints: Iterable[Keypoint]) -> bool:
        seen: Set[KeypointName] = set()
        for kp in keypoints:
            if kp.name in seen:
                return False
            seen.add(kp.name)
            if not (math.isfinite(kp.x) and math.isfinite(kp.y)):
                return False
            if not self._score_ok(kp.score):
                return False
        return True

    def _visible(self, keypoints: Iterable[Keypoint]) -> Dict[KeypointName, Keypoint]:
        """Keypoints at or above the visibility floor, keyed by name."""
        floor = self._config.visibility_floor()
        out: Dict[KeypointName, Keypoint] = {}
        for kp in keypoints:
            if self._score_ok(kp.score) and kp.score >= floor:
                out.setdefault(kp.name, kp)
        return out

    def _distances_ok(self, kps: Dict[KeypointName, Keypoint]) -> bool:
        max_width = self._config.max_keypoint_distance
        for left, right in ((K.LEFT_HIP, K.RIGHT_HIP), (K.LEFT_SHOULDER, K.RIGHT_SHOULDER)):
            if left in kps and right in kps and _distance(kps[left], kps[right]) > max_width:
                return False

        max_segment = max_width * LIMB_SEGMENT_FACTOR
        for a, b in LIMB_SEGMENTS:
            if a in kps and b in kps and _distance(kps[a], kps[b]) > max_segment:
                return False
        return True

    def _anatomy_ok(self, kps: Dict[KeypointName, Keypoint]) -> bool:
        return (
            self._vertical_order_ok(kps)
            and self._symmetry_ok(kps)
            and self._joint_angles_ok(kps)
        )

    @staticmethod
    def _vertical_order_ok(kps: Dict[KeypointName, Keypoint]) -> bool:
        # Image y grows downwards: head < shoulders < hips < knees < ankles.
        def mid_y(a: KeypointName, b: KeypointName) -> Optional[float]:
            if a in kps and b in kps:
                return (kps[a].y + kps[b].y) / 2.0
            return None

        shoulders = mid_y(K.LEFT_SHOULDER, K.RIGHT_SHOULDER)
        hips = mid_y(K.LEFT_HIP, K.RIGHT_HIP)

        if K.NOSE in kps and shoulders is not None and kps[K.NOSE].y > shoulders:
            return False
        if shoulders is not None and hips is not None and shoulders > hips:
            return False

        for hip, knee, ankle in (
            (K.LEFT_HIP, K.LEFT_KNEE, K.LEFT_ANKLE),
            (K.RIGHT_HIP, K.RIGHT_KNEE, K.RIGHT_ANKLE),
        ):
            if hip in kps and knee in kps and kps[hip].y > kps[knee].y:
                return False
            if knee in kps and ankle in kps and kps[knee].y > kps[ankle].y:
                return False
        return True

    @staticmethod
    def _symmetry_ok(kps: Dict[KeypointName, Keypoint]) -> bool:
        for left, right in ((K.LEFT_HIP, K.RIGHT_HIP), (K.LEFT_SHOULDER, K.RIGHT_SHOULDER)):
            if left in kps and right in kps:
                dy = abs(kps[left].y - kps[right].y)
                if dy > _distance(kps[left], kps[right]) * SYMMETRY_TOLERANCE:
                    return False
        return True

    @staticmethod
    def _joint_angles_ok(kps: Dict[KeypointName, Keypoint]) -> bool:
        for a, joint, c in JOINT_ANGLES:
            if a in kps and joint in kps and c in kps:
                angle = _joint_angle_deg(kps[a], kps[joint], kps[c])
                if angle is None:
                    continue
                if not MIN_JOINT_ANGLE_DEG <= angle <= MAX_JOINT_ANGLE_DEG:
                    return False
        return True
