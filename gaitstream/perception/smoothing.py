"""
gaitstream/perception/smoothing.py

Per-person, per-keypoint temporal filter.

For every (person_id, keypoint name) pair, in order:

  1. score < min_confidence       -> keypoint dropped from the output
  2. first observation            -> raw position passes through, history seeded
  3. |raw - last smoothed| > max_distance
                                  -> outlier, last smoothed position reused,
                                     unless the person is back from a tracker
                                     gap or the keypoint already had
                                     max_consecutive_outliers rejections in a
                                     row; then the raw position re-seeds it
  4. otherwise                    -> smoothed = prediction * f + raw * (1 - f)

The prediction is the last smoothed position, or with velocity smoothing
enabled the last smoothed position advanced by a constant-velocity estimate:

    prediction = s[n-1] + v[n-1] * dt
    v[n]       = (s[n] - s[n-1]) / dt

Under constant true velocity the error obeys e[n] = 2f e[n-1] - f e[n-2],
whose roots have modulus sqrt(f) < 1 for f < 1, so the estimate converges on
the true position instead of trailing it by a fixed lag. With f = 1 the
velocity starts at zero and never changes, so the output holds the first
position exactly; with f = 0 the output is the raw position exactly.
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Mapping, Optional, Tuple

import numpy as np

from gaitstream.core.config import SmoothingConfig
from gaitstream.core.interfaces import BaseSmoother
from gaitstream.schemas import Keypoint, KeypointName, Pose

logger = logging.getLogger(__name__)

HistoryEntry = Tuple[float, float, float]  # (timestamp_ms, x, y)


@dataclass
class _KeypointState:
    position: np.ndarray
    last_ts: float
    history: Deque[HistoryEntry]
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(2, dtype=np.float64))
    outliers: int = 0
    consecutive_outliers: int = 0

    def reseed(self, raw: np.ndarray, ts: float) -> None:
        self.position = raw
        self.velocity = np.zeros(2, dtype=np.float64)
        self.last_ts = ts
        self.consecutive_outliers = 0
        self.history.append((ts, float(raw[0]), float(raw[1])))


class KeypointSmoother(BaseSmoother):
    """
    Usage:
        smoother = KeypointSmoother(cfg.smoothing)
        smoothed = smoother.smooth(tracked_poses)   # poses must carry person_id

    State of one person never touches another's; ``drop_person`` tears a
    single person down, ``reset`` clears everything.
    """

    def __init__(self, config: Optional[SmoothingConfig] = None) -> None:
        config = config or SmoothingConfig()
        config.validate()
        self._config = copy.deepcopy(config)
        self._states: Dict[int, Dict[KeypointName, _KeypointState]] = {}
        logger.info(
            "KeypointSmoother initialised | factor=%.2f min_conf=%.2f max_dist=%.1f "
            "velocity=%s history=%d",
            config.smoothing_factor,
            config.min_confidence,
            config.max_distance,
            config.enable_velocity_smoothing,
            config.history_size,
        )

    @property
    def config(self) -> SmoothingConfig:
        """Copy of the active config; changes go through update_config."""
        return copy.deepcopy(self._config)

    def update_config(self, config: SmoothingConfig) -> None:
        """
        Apply a new config to subsequent frames.

        Raises ConfigError and keeps the current config if ``config`` is
        invalid. A smaller history_size trims existing buffers (oldest first).
        """
        try:
            config.validate()
        except ValueError:
            logger.warning("Rejected smoothing config update; keeping previous config")
            raise

        if config.history_size != self._config.history_size:
            for per_person in self._states.values():
                for st in per_person.values():
                    st.history = deque(st.history, maxlen=config.history_size)
        self._config = copy.deepcopy(config)
        logger.info(
            "Smoothing config updated | factor=%.2f history=%d",
            config.smoothing_factor,
            config.history_size,
        )

    def reset(self) -> None:
        self._states.clear()
        logger.info("KeypointSmoother reset")

    def drop_person(self, person_id: int) -> None:
        self._states.pop(person_id, None)

    def person_ids(self) -> List[int]:
        return sorted(self._states)

    def history(self, person_id: int, name: KeypointName) -> List[HistoryEntry]:
        """Copy of the smoothed history of one keypoint, oldest first."""
        st = self._states.get(person_id, {}).get(name)
        return [] if st is None else list(st.history)

    def history_length(self, person_id: Optional[int] = None) -> int:
        """Total history entries, for one person or for everyone."""
        if person_id is not None:
            people = [self._states.get(person_id, {})]
        else:
            people = list(self._states.values())
        return sum(len(st.history) for per_person in people for st in per_person.values())

    def outlier_count(self, person_id: int, name: KeypointName) -> int:
        st = self._states.get(person_id, {}).get(name)
        return 0 if st is None else st.outliers

    def smooth(
        self,
        poses: List[Pose],
        gaps: Optional[Mapping[int, int]] = None,
    ) -> List[Pose]:
        """
        Smooth each pose independently; every pose must carry a person_id.

        ``gaps`` maps person_id to the number of frames that person went
        unseen right before this one. A returning person's keypoints that
        moved beyond max_distance during the gap are re-seeded instead of
        rejected.
        """
        gaps = gaps or {}
        out: List[Pose] = []
        for pose in poses:
            if pose.person_id is None:
                raise ValueError(
                    f"pose {pose.detection_id} has no person_id; run the tracker first"
                )
            out.append(self._smooth_pose(pose, gaps.get(pose.person_id, 0) > 0))
        return out

    def _smooth_pose(self, pose: Pose, returning: bool) -> Pose:
        per_person = self._states.setdefault(pose.person_id, {})
        kept: List[Keypoint] = []
        for kp in pose.keypoints:
            if kp.score < self._config.min_confidence:
                continue
            x, y = self._smooth_keypoint(per_person, pose.person_id, kp, pose.timestamp, returning)
            kept.append(kp.moved_to(x, y))
        return pose.with_keypoints(kept)

    def _smooth_keypoint(
        self,
        per_person: Dict[KeypointName, _KeypointState],
        person_id: int,
        kp: Keypoint,
        ts: float,
        returning: bool = False,
    ) -> Tuple[float, float]:
        cfg = self._config
        raw = np.array([kp.x, kp.y], dtype=np.float64)
        st = per_person.get(kp.name)

        if st is None:
            st = _KeypointState(
                position=raw,
                last_ts=ts,
                history=deque(maxlen=cfg.history_size),
            )
            st.history.append((ts, float(raw[0]), float(raw[1])))
            per_person[kp.name] = st
            return float(raw[0]), float(raw[1])

        jump = float(np.linalg.norm(raw - st.position))
        if jump > cfg.max_distance:
            if returning or st.consecutive_outliers >= cfg.max_consecutive_outliers:
                logger.debug(
                    "Keypoint re-seeded | person=%d kp=%s jump=%.1fpx returning=%s",
                    person_id,
                    kp.name.value,
                    jump,
                    returning,
                )
                st.reseed(raw, ts)
                return float(raw[0]), float(raw[1])

            st.outliers += 1
            st.consecutive_outliers += 1
            logger.debug(
                "Outlier rejected | person=%d kp=%s jump=%.1fpx",
                person_id,
                kp.name.value,
                jump,
            )
            st.last_ts = ts
            st.history.append((ts, float(st.position[0]), float(st.position[1])))
            return float(st.position[0]), float(st.position[1])

        st.consecutive_outliers = 0
        f = cfg.smoothing_factor
        dt = ts - st.last_ts
        prediction = st.position
        if cfg.enable_velocity_smoothing and dt > 0:
            prediction = st.position + st.velocity * dt

        smoothed = prediction * f + raw * (1.0 - f)

        if cfg.enable_velocity_smoothing:
            if dt > 0:
                st.velocity = (smoothed - st.position) / dt
        else:
            st.velocity = np.zeros(2, dtype=np.float64)

        st.position = smoothed
        st.last_ts = ts
        st.history.append((ts, float(smoothed[0]), float(smoothed[1])))
        return float(smoothed[0]), float(smoothed[1])
