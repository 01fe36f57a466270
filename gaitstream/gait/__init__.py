from .calibration import CalibrationManager
from .event_detector import GaitEventDetector
from .parameters import GaitParameterCalculator, Unavailable, symmetry_index
from .state import DetectorState, GaitCycleState

__all__ = [
    "CalibrationManager",
    "GaitEventDetector",
    "GaitParameterCalculator",
    "Unavailable",
    "symmetry_index",
    "DetectorState",
    "GaitCycleState",
]
