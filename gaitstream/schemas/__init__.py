"""
gaitstream/schemas/__init__.py
Lightweight data structures shared by every stage of the pipeline.

    from gaitstream.schemas import Keypoint, Pose, StepEvent, GaitSnapshot

Keep this package free of processing logic.
"""

from .keypoint import Keypoint, KeypointName
from .pose import BoundingBox, Pose
from .gait_event import Foot, StepEvent, TrackEvicted
from .snapshot import GaitMetric, GaitSnapshot, PersonGait, Unavailable

__all__ = [
    "Keypoint",
    "KeypointName",
    "BoundingBox",
    "Pose",
    "Foot",
    "StepEvent",
    "TrackEvicted",
    "GaitMetric",
    "GaitSnapshot",
    "PersonGait",
    "Unavailable",
]
