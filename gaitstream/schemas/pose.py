from __future__ import annotations

import itertools
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Optional, Tuple

from .keypoint import Keypoint, KeypointName

_detection_ids = itertools.count(1)


def _next_detection_id() -> int:
    return next(_detection_ids)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in pixel coordinates [x1, y1, x2, y2]."""

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2.0, (self.y1 + self.y2) / 2.0)

    @property
    def width(self) -> float:
        return max(0.0, self.x2 - self.x1)

    @property
    def height(self) -> float:
        return max(0.0, self.y2 - self.y1)


@dataclass(frozen=True)
class Pose:
    """
    All keypoints detected for one person in one frame.

    Attributes
    ----------
    keypoints : tuple of Keypoint
        Ordered keypoints, names unique within the pose.
    score : float
        Overall pose confidence in [0, 1].
    timestamp : float
        Frame timestamp in milliseconds.
    detection_id : int
        Unique per detection, assigned automatically when omitted.
    bbox : Optional[BoundingBox]
        Person box from the detector, if any.
    person_id : Optional[int]
        Stable identity, absent until the tracker assigns one.
    """

    keypoints: Tuple[Keypoint, ...]
    score: float
    timestamp: float = 0.0
    detection_id: int = field(default_factory=_next_detection_id)
    bbox: Optional[BoundingBox] = None
    person_id: Optional[int] = None

    def __post_init__(self) -> None:
        # Accept any iterable but store a tuple so the pose stays hashable/immutable.
        if not isinstance(self.keypoints, tuple):
            object.__setattr__(self, "keypoints", tuple(self.keypoints))

    def keypoint(self, name: KeypointName) -> Optional[Keypoint]:
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        return None

    def keypoint_map(self) -> Dict[KeypointName, Keypoint]:
        return {kp.name: kp for kp in self.keypoints}

    @property
    def centroid(self) -> Optional[Tuple[float, float]]:
        """
        Bounding-box centre when a box is present, otherwise the mean of
        all keypoint positions. None for an empty pose without a box.
        """
        if self.bbox is not None:
            return self.bbox.center
        if not self.keypoints:
            return None
        n = float(len(self.keypoints))
        return (
            sum(kp.x for kp in self.keypoints) / n,
            sum(kp.y for kp in self.keypoints) / n,
        )

    def with_person_id(self, person_id: int) -> "Pose":
        return replace(self, person_id=person_id)

    def with_keypoints(self, keypoints: Iterable[Keypoint]) -> "Pose":
        return replace(self, keypoints=tuple(keypoints))
