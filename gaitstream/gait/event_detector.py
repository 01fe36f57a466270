"""
gaitstream/gait/event_detector.py

Step events from smoothed ankle trajectories.

The signal is the signed left-right ankle separation along the walking axis.
Each time it changes side, beyond a pixel deadband, the ankles have passed
each other and the foot now in front (relative to the walking direction)
has taken a step.
"""

from __future__ import annotations

import copy
import logging
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np

from gaitstream.core.config import EventDetectorConfig
from gaitstream.core.interfaces import BaseEventDetector
from gaitstream.schemas import Foot, Keypoint, KeypointName, StepEvent

from .state import DetectorState, GaitCycleState

logger = logging.getLogger(__name__)


class GaitEventDetector(BaseEventDetector):
    def __init__(self, config: Optional[EventDetectorConfig] = None) -> None:
        config = config or EventDetectorConfig()
        config.validate()
        self._config = copy.deepcopy(config)
        self._axis = 0 if config.separation_axis == "x" else 1
        self._states: Dict[int, GaitCycleState] = {}
        logger.info(
            "GaitEventDetector initialised | axis=%s deadband=%.1fpx min_interval=%.0fms",
            config.separation_axis,
            config.min_amplitude,
            config.min_step_interval_ms,
        )

    @property
    def config(self) -> EventDetectorConfig:
        return copy.deepcopy(self._config)

    def state(self, person_id: int) -> Optional[GaitCycleState]:
        return self._states.get(person_id)

    def _get_or_create_state(self, person_id: int) -> GaitCycleState:
        st = self._states.get(person_id)
        if st is None:
            st = GaitCycleState.create(person_id, self._config.direction_window)
            self._states[person_id] = st
        return st

    def drop_person(self, person_id: int) -> None:
        self._states.pop(person_id, None)

    def reset(self, person_ids: Optional[Iterable[int]] = None) -> None:
        if person_ids is None:
            self._states.clear()
            return
        for pid in person_ids:
            self._states.pop(pid, None)

    def update(
        self,
        person_id: int,
        ankles: Mapping[KeypointName, Keypoint],
        timestamp: float,
    ) -> List[StepEvent]:
        """
        Feed one frame of smoothed keypoints for ``person_id``.

        ``ankles`` may hold any keypoints; only the two ankles are read.
        Frames missing either ankle are skipped without changing state.
        Returns the events emitted this frame (zero or one).
        """
        st = self._get_or_create_state(person_id)
        st.frames_seen += 1

        left = ankles.get(KeypointName.LEFT_ANKLE)
        right = ankles.get(KeypointName.RIGHT_ANKLE)
        if left is None or right is None:
            st.frames_skipped += 1
            return []

        a = self._axis
        lp = (left.x, left.y)
        rp = (right.x, right.y)
        separation = lp[a] - rp[a]
        st.last_separation = separation
        st.midpoints.append((lp[a] + rp[a]) / 2.0)
        self._update_direction(st)

        threshold = self._config.min_amplitude
        if separation > threshold:
            side = 1
        elif separation < -threshold:
            side = -1
        else:
            return []

        if st.state == DetectorState.AWAITING_BASELINE:
            st.side = side
            st.state = DetectorState.TRACKING
            logger.debug(
                "Person %d baseline set | separation=%.1fpx side=%+d",
                person_id,
                separation,
                side,
            )
            return []

        if side == st.side:
            return []

        st.side = side
        foot = Foot.LEFT if side * st.direction > 0 else Foot.RIGHT

        if not st.can_emit(foot, timestamp, self._config.min_step_interval_ms):
            logger.debug(
                "Person %d %s step debounced at %.0fms", person_id, foot.value, timestamp
            )
            return []

        position, other = (lp, rp) if foot is Foot.LEFT else (rp, lp)
        event = StepEvent(
            person_id=person_id,
            foot=foot,
            timestamp=float(timestamp),
            position=(float(position[0]), float(position[1])),
            contralateral_position=(float(other[0]), float(other[1])),
            confidence=float((left.score + right.score) / 2.0),
        )
        st.record(event)
        logger.debug(
            "Person %d %s step at %.0fms (%.1f, %.1f)",
            person_id,
            foot.value,
            timestamp,
            event.position[0],
            event.position[1],
        )
        return [event]

    def _update_direction(self, st: GaitCycleState) -> None:
        """
        Compare the mean ankle midpoint of the older and newer halves of the
        window. Below direction_min_travel the previous direction is kept.
        """
        if len(st.midpoints) < st.midpoints.maxlen:
            return
        values = np.asarray(st.midpoints, dtype=np.float64)
        half = len(values) // 2
        travel = float(values[-half:].mean() - values[:half].mean())
        if abs(travel) <= self._config.direction_min_travel:
            return
        direction = 1 if travel > 0 else -1
        if direction != st.direction:
            logger.debug("Person %d walking direction now %+d", st.person_id, direction)
            st.direction = direction
