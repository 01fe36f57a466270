"""
gaitstream/core/pipeline.py

GaitPipeline: the caller-owned, frame-synchronous gait pipeline.

Each frame runs completely through

    PoseValidator -> PersonTracker -> KeypointSmoother
                  -> GaitEventDetector -> GaitParameterCalculator

before the next one is accepted, and yields one immutable GaitSnapshot.
All mutable state lives in this object; there is no module-level state.
"""

from __future__ import annotations

import copy
import logging
import time
from collections import Counter, deque
from typing import Deque, Iterable, Iterator, List, Optional, Sequence, Tuple

from gaitstream.gait.calibration import CalibrationManager
from gaitstream.gait.event_detector import GaitEventDetector
from gaitstream.gait.parameters import GaitParameterCalculator
from gaitstream.perception.smoothing import KeypointSmoother
from gaitstream.perception.tracker import PersonTracker
from gaitstream.perception.validator import PoseValidator
from gaitstream.schemas import GaitSnapshot, PersonGait, Pose, TrackEvicted

from .config import GaitStreamConfig, SmoothingConfig, ValidationConfig
from .exceptions import GaitStreamError
from .metrics import PipelineMetrics

logger = logging.getLogger(__name__)


class GaitPipeline:
    """
    Usage:
        pipeline = GaitPipeline(load_config("config/default.yaml"))
        pipeline.set_scale(120.0)
        snapshot = pipeline.process_frame(poses, timestamp_ms)

    Producers faster than the pipeline can use the latest-frame slot
    instead: ``submit`` overwrites any frame not yet processed and
    ``process_pending`` handles whatever is newest.
    """

    def __init__(
        self,
        config: Optional[GaitStreamConfig] = None,
        calibration: Optional[CalibrationManager] = None,
    ) -> None:
        config = config or GaitStreamConfig()
        config.validate()
        config = copy.deepcopy(config)
        self._config = config

        if calibration is None:
            calibration = CalibrationManager(config.calibration.pixels_per_meter)
        self.calibration = calibration

        self.validator = PoseValidator(config.validation)
        self.tracker = PersonTracker(config.tracking)
        self.smoother = KeypointSmoother(config.smoothing)
        self.detector = GaitEventDetector(config.events)
        self.calculator = GaitParameterCalculator(
            config.parameters,
            self.calibration,
            separation_axis=config.events.separation_axis,
        )

        self.metrics = PipelineMetrics(
            window_sec=config.runtime.metrics_window_sec,
            log_every_sec=config.runtime.metrics_window_sec,
        )
        self.snapshots: Deque[GaitSnapshot] = deque(maxlen=config.runtime.snapshot_queue_size)

        self._pending: Optional[Tuple[float, List[Pose]]] = None
        self._frames = 0
        self._closed = False

        logger.info(
            "GaitPipeline ready | calibrated=%s snapshot_queue=%d",
            self.calibration.is_calibrated,
            config.runtime.snapshot_queue_size,
        )

    @property
    def config(self) -> GaitStreamConfig:
        """Copy of the active config; use the update_* methods to change it."""
        return copy.deepcopy(self._config)

    # --------------------------------------------------------------
    # Frame processing
    # --------------------------------------------------------------

    def process_frame(self, poses: Sequence[Pose], timestamp: float) -> GaitSnapshot:
        """Run one frame through every stage and return its snapshot."""
        self._ensure_open()
        t0 = time.perf_counter()
        self._frames += 1

        accepted: List[Pose] = []
        rejections: Counter = Counter()
        for pose in poses:
            errors = self.validator.validation_errors(pose)
            if errors:
                rejections.update(e.value for e in errors)
                logger.debug(
                    "Frame %d: pose %s rejected (%s)",
                    self._frames,
                    pose.detection_id,
                    ",".join(sorted(e.value for e in errors)),
                )
            else:
                accepted.append(pose)

        # Frames each known person had gone unseen before this one.
        unseen = {
            pid: self.tracker.missed_frames(pid) for pid in self.tracker.active_person_ids()
        }
        tracked = self.tracker.assign(accepted)

        evicted: List[TrackEvicted] = []
        for pid in self.tracker.evict_stale():
            self._teardown(pid)
            evicted.append(
                TrackEvicted(
                    person_id=pid,
                    timestamp=float(timestamp),
                    missed_frames=self._config.tracking.max_missed_frames + 1,
                )
            )

        gaps = {p.person_id: unseen[p.person_id] for p in tracked if unseen.get(p.person_id)}
        smoothed = self.smoother.smooth(tracked, gaps=gaps)

        persons = {}
        n_events = 0
        for pose in smoothed:
            events = self.detector.update(pose.person_id, pose.keypoint_map(), timestamp)
            n_events += len(events)
            persons[pose.person_id] = self.calculator.update(pose.person_id, events, now=timestamp)

        # Tracks inside their grace period keep reporting, aged to this frame.
        for pid in self.tracker.active_person_ids():
            if pid not in persons:
                persons[pid] = self.calculator.update(pid, [], now=timestamp)

        snapshot = GaitSnapshot(
            timestamp=float(timestamp),
            persons=persons,
            calibrated=self.calibration.is_calibrated,
            pixels_per_meter=self.calibration.pixels_per_meter,
            evicted=tuple(evicted),
            rejected_poses=len(poses) - len(accepted),
        )
        self.snapshots.append(snapshot)

        now = time.perf_counter()
        self.metrics.record_frame(
            ts_now=now,
            poses_in=len(poses),
            accepted=len(accepted),
            rejection_reasons=rejections,
            active_tracks=len(persons),
            step_events=n_events,
            evicted=len(evicted),
            proc_ms=(now - t0) * 1000.0,
        )
        if self._config.runtime.log_metrics:
            self.metrics.maybe_log(now)

        return snapshot

    def submit(self, poses: Sequence[Pose], timestamp: float) -> None:
        """Park a frame in the latest-frame slot, replacing any unprocessed one."""
        self._ensure_open()
        if self._pending is not None:
            self.metrics.record_dropped_frame()
            logger.debug("Frame at %.0fms dropped for a newer one", self._pending[0])
        self._pending = (float(timestamp), list(poses))

    def process_pending(self) -> Optional[GaitSnapshot]:
        """Process the parked frame, if any."""
        self._ensure_open()
        if self._pending is None:
            return None
        timestamp, poses = self._pending
        self._pending = None
        return self.process_frame(poses, timestamp)

    @property
    def latest_snapshot(self) -> Optional[GaitSnapshot]:
        return self.snapshots[-1] if self.snapshots else None

    def person(self, person_id: int) -> Optional[PersonGait]:
        snap = self.latest_snapshot
        return None if snap is None else snap.person(person_id)

    # --------------------------------------------------------------
    # Configuration and calibration
    # --------------------------------------------------------------

    def update_smoothing_config(self, config: SmoothingConfig) -> None:
        self._ensure_open()
        self.smoother.update_config(config)
        self._config.smoothing = self.smoother.config

    def update_validation_config(self, config: ValidationConfig) -> None:
        self._ensure_open()
        self.validator.update_config(config)
        self._config.validation = self.validator.config

    def set_scale(self, pixels_per_meter: float) -> None:
        self._ensure_open()
        self.calibration.set_scale(pixels_per_meter)

    def calibrate_with_known_distance(
        self,
        point1: Tuple[float, float],
        point2: Tuple[float, float],
        real_distance_meters: float,
    ) -> float:
        self._ensure_open()
        return self.calibration.calibrate_with_known_distance(point1, point2, real_distance_meters)

    def calibrate_from_pose(self, pose: Pose) -> Optional[float]:
        """Body-proportion estimate from ``pose``; None (scale untouched) if not confident."""
        self._ensure_open()
        return self.calibration.calibrate_from_body_proportions(
            pose, min_score=self._config.calibration.estimate_min_score
        )

    # --------------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------------

    def stop(self) -> None:
        """Flush all per-track state and the parked frame. Calibration is kept."""
        self.tracker.reset()
        self.smoother.reset()
        self.detector.reset()
        self.calculator.reset()
        self._pending = None
        logger.info("GaitPipeline stopped after %d frames; per-track state flushed", self._frames)

    def reset(self, keep_calibration: bool = False) -> None:
        """
        Start a new session: stop(), drop queued snapshots and telemetry, and
        return calibration to its configured value unless keep_calibration.
        """
        self.stop()
        self.snapshots.clear()
        self.metrics.reset()
        self._frames = 0
        if not keep_calibration:
            self.calibration.clear()
            if self._config.calibration.pixels_per_meter is not None:
                self.calibration.set_scale(self._config.calibration.pixels_per_meter)

    def dispose(self) -> None:
        if self._closed:
            return
        self.reset()
        self._closed = True
        logger.info("GaitPipeline disposed")

    @property
    def closed(self) -> bool:
        return self._closed

    def _teardown(self, person_id: int) -> None:
        self.smoother.drop_person(person_id)
        self.detector.drop_person(person_id)
        self.calculator.drop_person(person_id)

    def _ensure_open(self) -> None:
        if self._closed:
            raise GaitStreamError("pipeline has been disposed")


def run_stream(
    frames: Iterable[Tuple[float, Sequence[Pose]]],
    pipeline: Optional[GaitPipeline] = None,
) -> Iterator[GaitSnapshot]:
    """Feed ``(timestamp_ms, poses)`` pairs through a pipeline, yielding snapshots."""
    pipeline = pipeline or GaitPipeline()
    for timestamp, poses in frames:
        yield pipeline.process_frame(poses, timestamp)
