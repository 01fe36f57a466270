from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from gaitstream.core.exceptions import InsufficientDataError, UncalibratedError

from .gait_event import TrackEvicted


class Unavailable:
    """Reason codes for unavailable metrics."""
    INSUFFICIENT_DATA = "insufficient_data"
    UNCALIBRATED = "uncalibrated"


@dataclass(frozen=True)
class GaitMetric:
    """
    One gait parameter with availability semantics.

    ``value`` is None whenever ``available`` is False; ``reason`` then says why
    (see ``Unavailable``).
    """

    value: Optional[float]
    unit: str
    confidence: float = 0.0
    available: bool = True
    reason: Optional[str] = None

    @classmethod
    def unavailable(cls, unit: str, reason: str, confidence: float = 0.0) -> "GaitMetric":
        return cls(value=None, unit=unit, confidence=confidence, available=False, reason=reason)

    def require(self) -> float:
        """
        The value, for callers that prefer exceptions to availability flags.

        Raises UncalibratedError or InsufficientDataError when unavailable.
        """
        if self.available and self.value is not None:
            return self.value
        if self.reason == Unavailable.UNCALIBRATED:
            raise UncalibratedError(f"{self.unit} metric needs a pixels_per_meter scale")
        raise InsufficientDataError(f"{self.unit} metric unavailable: {self.reason}")


@dataclass(frozen=True)
class PersonGait:
    """
    Gait parameters for one tracked person.

    Attributes
    ----------
    person_id : int
    cadence : GaitMetric
        steps/min
    stride_time : GaitMetric
        seconds
    stride_length : GaitMetric
        metres (both feet)
    left_stride_length, right_stride_length : GaitMetric
        metres, per foot
    step_width : GaitMetric
        metres
    velocity : GaitMetric
        m/s
    symmetry_index : GaitMetric
        percent, 0 = perfectly symmetric
    step_count : int
        Events inside the rolling window.
    """

    person_id: int
    cadence: GaitMetric
    stride_time: GaitMetric
    stride_length: GaitMetric
    left_stride_length: GaitMetric
    right_stride_length: GaitMetric
    step_width: GaitMetric
    velocity: GaitMetric
    symmetry_index: GaitMetric
    step_count: int = 0


@dataclass(frozen=True)
class GaitSnapshot:
    """
    Immutable result of one processed frame.

    Attributes
    ----------
    timestamp : float
        Frame timestamp (ms).
    persons : read-only mapping person_id -> PersonGait
    calibrated : bool
    pixels_per_meter : Optional[float]
    evicted : tuple of TrackEvicted
        Tracks torn down during this frame.
    rejected_poses : int
        Poses dropped by the validator this frame.
    """

    timestamp: float
    persons: Mapping[int, PersonGait] = field(default_factory=dict)
    calibrated: bool = False
    pixels_per_meter: Optional[float] = None
    evicted: Tuple[TrackEvicted, ...] = ()
    rejected_poses: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.persons, MappingProxyType):
            object.__setattr__(self, "persons", MappingProxyType(dict(self.persons)))
        if not isinstance(self.evicted, tuple):
            object.__setattr__(self, "evicted", tuple(self.evicted))

    def person(self, person_id: int) -> Optional[PersonGait]:
        return self.persons.get(person_id)
