"""
gaitstream/gait/calibration.py

Pixel to metre scale for one pipeline.

Every metric conversion in the package goes through CalibrationManager, so
a new scale affects subsequently computed metrics only. Already emitted
snapshots keep the values they were computed with.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np

from gaitstream.core.exceptions import ConfigError, UncalibratedError
from gaitstream.schemas import KeypointName, Pose

logger = logging.getLogger(__name__)

# Average adult proportions (metres) used by the body-proportion estimate.
AVG_SHOULDER_WIDTH_M = 0.45
AVG_HIP_WIDTH_M = 0.35
AVG_TORSO_HEIGHT_M = 0.6


def _pixel_distance(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    return float(np.hypot(p2[0] - p1[0], p2[1] - p1[1]))


class CalibrationManager:
    """Holds pixels_per_meter and the calibrated flag."""

    def __init__(self, pixels_per_meter: Optional[float] = None) -> None:
        self._pixels_per_meter: Optional[float] = None
        if pixels_per_meter is not None:
            self.set_scale(pixels_per_meter)

    @property
    def pixels_per_meter(self) -> Optional[float]:
        return self._pixels_per_meter

    @property
    def is_calibrated(self) -> bool:
        return self._pixels_per_meter is not None

    def set_scale(self, pixels_per_meter: float) -> None:
        """
        Replace the scale. Raises ConfigError (and keeps the old scale) for
        anything that is not a finite number > 0.
        """
        if (
            isinstance(pixels_per_meter, bool)
            or not isinstance(pixels_per_meter, (int, float))
            or not math.isfinite(pixels_per_meter)
            or pixels_per_meter <= 0
        ):
            raise ConfigError("pixels_per_meter", pixels_per_meter, "must be a number > 0")

        previous = self._pixels_per_meter
        self._pixels_per_meter = float(pixels_per_meter)
        logger.info(
            "Calibration set | pixels_per_meter=%.3f (previous=%s)",
            self._pixels_per_meter,
            "none" if previous is None else f"{previous:.3f}",
        )

    def clear(self) -> None:
        if self._pixels_per_meter is not None:
            logger.info("Calibration cleared")
        self._pixels_per_meter = None

    def convert(self, pixels: float) -> float:
        """Pixels to metres."""
        if self._pixels_per_meter is None:
            raise UncalibratedError("no pixels_per_meter set; calibrate first")
        return float(pixels) / self._pixels_per_meter

    def meters_to_pixels(self, meters: float) -> float:
        if self._pixels_per_meter is None:
            raise UncalibratedError("no pixels_per_meter set; calibrate first")
        return float(meters) * self._pixels_per_meter

    def calibrate_with_known_distance(
        self,
        point1: Tuple[float, float],
        point2: Tuple[float, float],
        real_distance_meters: float,
    ) -> float:
        """Two image points a known real-world distance apart."""
        if (
            isinstance(real_distance_meters, bool)
            or not isinstance(real_distance_meters, (int, float))
            or not real_distance_meters > 0
        ):
            raise ConfigError("real_distance_meters", real_distance_meters, "must be > 0")
        pixel_distance = _pixel_distance(point1, point2)
        if pixel_distance <= 0:
            raise ConfigError(
                "calibration_points", (point1, point2), "points must be distinct"
            )
        self.set_scale(pixel_distance / real_distance_meters)
        return self._pixels_per_meter

    def calibrate_with_person_height(
        self,
        head_point: Tuple[float, float],
        foot_point: Tuple[float, float],
        person_height_meters: float = 1.7,
    ) -> float:
        """Same as calibrate_with_known_distance using a standing person."""
        return self.calibrate_with_known_distance(head_point, foot_point, person_height_meters)

    @staticmethod
    def estimate_from_body_proportions(pose: Pose, min_score: float = 0.6) -> Optional[float]:
        """
        Rough pixels_per_meter from shoulder width, hip width and torso
        height against average adult proportions.

        Returns None when any shoulder/hip keypoint is missing or scored
        below ``min_score``. References that measure zero pixels (e.g.
        shoulder width seen exactly side-on) are left out of the average.
        Nothing is stored; see calibrate_from_body_proportions.
        """
        kps = pose.keypoint_map()
        names = (
            KeypointName.LEFT_SHOULDER,
            KeypointName.RIGHT_SHOULDER,
            KeypointName.LEFT_HIP,
            KeypointName.RIGHT_HIP,
        )
        if any(n not in kps or kps[n].score < min_score for n in names):
            return None

        ls, rs, lh, rh = (kps[n] for n in names)
        shoulder_width = abs(rs.x - ls.x)
        hip_width = abs(rh.x - lh.x)
        torso_height = abs((ls.y + rs.y) / 2.0 - (lh.y + rh.y) / 2.0)

        estimates = [
            px / m
            for px, m in (
                (shoulder_width, AVG_SHOULDER_WIDTH_M),
                (hip_width, AVG_HIP_WIDTH_M),
                (torso_height, AVG_TORSO_HEIGHT_M),
            )
            if px > 0
        ]
        if not estimates:
            return None
        return float(np.mean(estimates))

    def calibrate_from_body_proportions(
        self, pose: Pose, min_score: float = 0.6
    ) -> Optional[float]:
        """Estimate from ``pose`` and apply it. Returns None (scale untouched) if no estimate."""
        estimate = self.estimate_from_body_proportions(pose, min_score=min_score)
        if estimate is None:
            logger.debug("Body-proportion calibration skipped: reference keypoints not confident")
            return None
        self.set_scale(estimate)
        return estimate
