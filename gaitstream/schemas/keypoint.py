from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class KeypointName(str, Enum):
    """The 17 COCO body keypoints emitted by the pose model."""

    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


@dataclass(frozen=True)
class Keypoint:
    """
    One observed body keypoint.

    Attributes
    ----------
    name : KeypointName
        Anatomical label.
    x, y : float
        Pixel coordinates (image origin top-left, y grows downwards).
    score : float
        Model confidence in [0, 1].
    timestamp : float
        Frame timestamp in milliseconds.
    tracking_id : Optional[int]
        Optional id carried over from the pose model.
    """

    name: KeypointName
    x: float
    y: float
    score: float
    timestamp: float = 0.0
    tracking_id: Optional[int] = None

    def moved_to(self, x: float, y: float) -> "Keypoint":
        """Copy of this keypoint at a new position (score and time kept)."""
        return Keypoint(
            name=self.name,
            x=float(x),
            y=float(y),
            score=self.score,
            timestamp=self.timestamp,
            tracking_id=self.tracking_id,
        )
