"""
gaitstream/gait/parameters.py

Gait parameters from a rolling window of step events.

Every parameter is returned as a GaitMetric. Missing data never raises:
the metric is marked unavailable with a reason from ``Unavailable``.
Pixel measurements are converted through the CalibrationManager at the time
of computation, so a new scale only affects snapshots computed after it.
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Sequence

import numpy as np

from gaitstream.core.config import ParameterConfig
from gaitstream.schemas import Foot, GaitMetric, PersonGait, StepEvent, Unavailable

from .calibration import CalibrationManager

logger = logging.getLogger(__name__)


UNIT_CADENCE = "steps/min"
UNIT_SECONDS = "s"
UNIT_METERS = "m"
UNIT_VELOCITY = "m/s"
UNIT_PERCENT = "%"


def symmetry_index(left: float, right: float) -> float:
    """|L - R| / ((L + R) / 2) * 100. Zero when both sides are zero."""
    mean = (left + right) / 2.0
    if mean == 0:
        return 0.0
    return abs(left - right) / abs(mean) * 100.0


def _mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if values else 0.0


class _Strides:
    """Consecutive same-foot event pairs of one foot."""

    __slots__ = ("times_s", "lengths_px", "confidences")

    def __init__(self, events: Sequence[StepEvent]) -> None:
        self.times_s: List[float] = []
        self.lengths_px: List[float] = []
        self.confidences: List[float] = []
        for prev, cur in zip(events, events[1:]):
            self.times_s.append((cur.timestamp - prev.timestamp) / 1000.0)
            self.lengths_px.append(
                float(np.hypot(cur.position[0] - prev.position[0], cur.position[1] - prev.position[1]))
            )
            self.confidences.append((prev.confidence + cur.confidence) / 2.0)

    def __len__(self) -> int:
        return len(self.times_s)


class GaitParameterCalculator:
    """
    Usage:
        calc = GaitParameterCalculator(cfg.parameters, calibration)
        gait = calc.update(person_id, step_events, now=timestamp)

    One event window per person; persons never share state.
    """

    def __init__(
        self,
        config: Optional[ParameterConfig] = None,
        calibration: Optional[CalibrationManager] = None,
        separation_axis: str = "x",
    ) -> None:
        config = config or ParameterConfig()
        config.validate()
        self._config = copy.deepcopy(config)
        self.calibration = calibration if calibration is not None else CalibrationManager()
        # Step width is measured across the walking axis.
        self._perp = 1 if separation_axis == "x" else 0
        self._windows: Dict[int, Deque[StepEvent]] = {}
        logger.info(
            "GaitParameterCalculator initialised | window=%.0fms max_events=%d symmetry=%s",
            config.window_ms,
            config.max_events,
            config.symmetry_metric,
        )

    @property
    def config(self) -> ParameterConfig:
        return copy.deepcopy(self._config)

    def drop_person(self, person_id: int) -> None:
        self._windows.pop(person_id, None)

    def reset(self) -> None:
        self._windows.clear()

    def person_ids(self) -> List[int]:
        return sorted(self._windows)

    def recent_events(self, person_id: int, window_ms: Optional[float] = None) -> List[StepEvent]:
        """Events of ``person_id`` no older than ``window_ms`` before the newest one."""
        events = list(self._windows.get(person_id, ()))
        if not events or window_ms is None:
            return events
        cutoff = events[-1].timestamp - window_ms
        return [e for e in events if e.timestamp >= cutoff]

    def update(
        self,
        person_id: int,
        events: Iterable[StepEvent],
        now: Optional[float] = None,
    ) -> PersonGait:
        """
        Add this frame's events for ``person_id`` and recompute.

        ``now`` (ms) ages the window even on frames without events; it
        defaults to the newest event timestamp.
        """
        window = self._windows.get(person_id)
        if window is None:
            window = deque(maxlen=self._config.max_events)
            self._windows[person_id] = window

        for ev in sorted(events, key=lambda e: e.timestamp):
            if ev.person_id != person_id:
                raise ValueError(
                    f"event for person {ev.person_id} passed to person {person_id}"
                )
            window.append(ev)

        ref = now if now is not None else (window[-1].timestamp if window else None)
        if ref is not None:
            cutoff = ref - self._config.window_ms
            while window and window[0].timestamp < cutoff:
                window.popleft()

        return self.compute(person_id)

    def compute(self, person_id: int) -> PersonGait:
        events = list(self._windows.get(person_id, ()))
        per_foot = {
            foot: _Strides([e for e in events if e.foot is foot]) for foot in Foot
        }

        cadence = self._cadence(events)
        stride_time = self._stride_time(per_foot)
        stride_length = self._length(
            [per_foot[Foot.LEFT], per_foot[Foot.RIGHT]]
        )
        left_len = self._length([per_foot[Foot.LEFT]])
        right_len = self._length([per_foot[Foot.RIGHT]])
        step_width = self._step_width(events)
        velocity = self._velocity(stride_length, stride_time)
        symmetry = self._symmetry(per_foot)

        return PersonGait(
            person_id=person_id,
            cadence=cadence,
            stride_time=stride_time,
            stride_length=stride_length,
            left_stride_length=left_len,
            right_stride_length=right_len,
            step_width=step_width,
            velocity=velocity,
            symmetry_index=symmetry,
            step_count=len(events),
        )

    # --------------------------------------------------------------
    # Individual parameters
    # --------------------------------------------------------------

    @staticmethod
    def _cadence(events: List[StepEvent]) -> GaitMetric:
        # Steps per minute over the span between the first and last event.
        if len(events) < 2:
            return GaitMetric.unavailable(UNIT_CADENCE, Unavailable.INSUFFICIENT_DATA)
        span_ms = events[-1].timestamp - events[0].timestamp
        conf = _mean([e.confidence for e in events])
        if span_ms <= 0:
            return GaitMetric.unavailable(UNIT_CADENCE, Unavailable.INSUFFICIENT_DATA, conf)
        value = (len(events) - 1) / span_ms * 60000.0
        return GaitMetric(value=value, unit=UNIT_CADENCE, confidence=conf)

    @staticmethod
    def _stride_time(per_foot: Dict[Foot, _Strides]) -> GaitMetric:
        times = per_foot[Foot.LEFT].times_s + per_foot[Foot.RIGHT].times_s
        if not times:
            return GaitMetric.unavailable(UNIT_SECONDS, Unavailable.INSUFFICIENT_DATA)
        conf = _mean(per_foot[Foot.LEFT].confidences + per_foot[Foot.RIGHT].confidences)
        return GaitMetric(value=_mean(times), unit=UNIT_SECONDS, confidence=conf)

    def _length(self, strides: List[_Strides]) -> GaitMetric:
        lengths = [v for s in strides for v in s.lengths_px]
        if not lengths:
            return GaitMetric.unavailable(UNIT_METERS, Unavailable.INSUFFICIENT_DATA)
        conf = _mean([c for s in strides for c in s.confidences])
        return self._to_meters(_mean(lengths), conf)

    def _step_width(self, events: List[StepEvent]) -> GaitMetric:
        if not events:
            return GaitMetric.unavailable(UNIT_METERS, Unavailable.INSUFFICIENT_DATA)
        p = self._perp
        widths = [abs(e.position[p] - e.contralateral_position[p]) for e in events]
        conf = _mean([e.confidence for e in events])
        return self._to_meters(_mean(widths), conf)

    @staticmethod
    def _velocity(stride_length: GaitMetric, stride_time: GaitMetric) -> GaitMetric:
        for m in (stride_length, stride_time):
            if not m.available:
                return GaitMetric.unavailable(UNIT_VELOCITY, m.reason or Unavailable.INSUFFICIENT_DATA)
        conf = (stride_length.confidence + stride_time.confidence) / 2.0
        if not stride_time.value:
            return GaitMetric.unavailable(UNIT_VELOCITY, Unavailable.INSUFFICIENT_DATA, conf)
        return GaitMetric(
            value=stride_length.value / stride_time.value,
            unit=UNIT_VELOCITY,
            confidence=conf,
        )

    def _symmetry(self, per_foot: Dict[Foot, _Strides]) -> GaitMetric:
        left, right = per_foot[Foot.LEFT], per_foot[Foot.RIGHT]
        if len(left) == 0 or len(right) == 0:
            return GaitMetric.unavailable(UNIT_PERCENT, Unavailable.INSUFFICIENT_DATA)

        # Stride lengths are compared in pixels; the ratio does not need a scale.
        if self._config.symmetry_metric == "stride_length":
            lv, rv = _mean(left.lengths_px), _mean(right.lengths_px)
        else:
            lv, rv = _mean(left.times_s), _mean(right.times_s)
        conf = _mean(left.confidences + right.confidences)
        return GaitMetric(value=symmetry_index(lv, rv), unit=UNIT_PERCENT, confidence=conf)

    def _to_meters(self, pixels: float, confidence: float) -> GaitMetric:
        if not self.calibration.is_calibrated:
            return GaitMetric.unavailable(UNIT_METERS, Unavailable.UNCALIBRATED, confidence)
        return GaitMetric(
            value=self.calibration.convert(pixels),
            unit=UNIT_METERS,
            confidence=confidence,
        )
