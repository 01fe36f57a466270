from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, Optional, Tuple

from gaitstream.schemas import Foot, StepEvent


class DetectorState(str, Enum):
    AWAITING_BASELINE = "AWAITING_BASELINE"  # No separation beyond the deadband seen yet
    TRACKING = "TRACKING"                    # Side known, watching for crossings


@dataclass
class GaitCycleState:
    """
    Per-person event detector memory, created lazily with the person's
    track and dropped with it.

    side:      +1 / -1, sign of the last separation that cleared the deadband
    direction: +1 / -1, walking direction along the separation axis
    midpoints: recent ankle midpoints along the axis, for direction
    """
    person_id: int
    midpoints: Deque[float]
    state: DetectorState = DetectorState.AWAITING_BASELINE

    side: int = 0
    direction: int = 1
    last_separation: Optional[float] = None

    last_event_ts: Dict[Foot, float] = field(default_factory=dict)
    last_event_position: Dict[Foot, Tuple[float, float]] = field(default_factory=dict)

    frames_seen: int = 0
    frames_skipped: int = 0
    events_emitted: int = 0

    @classmethod
    def create(cls, person_id: int, direction_window: int) -> "GaitCycleState":
        return cls(person_id=person_id, midpoints=deque(maxlen=direction_window))

    def can_emit(self, foot: Foot, now: float, min_interval_ms: float) -> bool:
        """Debounce: at least min_interval_ms since the last event on this foot."""
        last = self.last_event_ts.get(foot)
        return last is None or (now - last) >= min_interval_ms

    def record(self, event: StepEvent) -> None:
        self.last_event_ts[event.foot] = event.timestamp
        self.last_event_position[event.foot] = event.position
        self.events_emitted += 1
