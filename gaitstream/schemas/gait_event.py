from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from gaitstream.core.exceptions import TrackingGapError


class Foot(str, Enum):
    LEFT = "left"
    RIGHT = "right"

    @property
    def other(self) -> "Foot":
        return Foot.RIGHT if self is Foot.LEFT else Foot.LEFT


@dataclass(frozen=True)
class StepEvent:
    """
    A detected step (heel strike estimate) of one foot.

    Attributes
    ----------
    person_id : int
    foot : Foot
        The foot that has just moved to the front.
    timestamp : float
        Milliseconds.
    position : (x, y)
        Smoothed ankle position of ``foot`` at the event, in pixels.
    contralateral_position : (x, y)
        Position of the other ankle at the same frame.
    confidence : float
        Mean score of the two ankle keypoints used for the event.
    """

    person_id: int
    foot: Foot
    timestamp: float
    position: Tuple[float, float]
    contralateral_position: Tuple[float, float]
    confidence: float


@dataclass(frozen=True)
class TrackEvicted:
    """Lifecycle record: a person was lost for longer than the grace period."""

    person_id: int
    timestamp: float
    missed_frames: int

    def as_error(self) -> TrackingGapError:
        return TrackingGapError(self.person_id, self.missed_frames)
