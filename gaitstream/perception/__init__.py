from .smoothing import KeypointSmoother
from .tracker import PersonTracker
from .validator import PoseValidator, ValidationErrorKind

__all__ = [
    "KeypointSmoother",
    "PersonTracker",
    "PoseValidator",
    "ValidationErrorKind",
]
