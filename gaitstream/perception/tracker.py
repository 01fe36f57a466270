from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from gaitstream.core.config import TrackingConfig
from gaitstream.core.interfaces import BaseTracker
from gaitstream.schemas import Pose

logger = logging.getLogger(__name__)


@dataclass
class _PersonTrack:
    """
    Internal state of one tracked person.

    - centroid: current estimate (observed, or predicted while unseen)
    - velocity: centroid displacement per frame
    - missed:   consecutive frames without a matching pose
    """
    person_id: int
    centroid: np.ndarray
    confidence: float

    age: int = 0
    hits: int = 1
    missed: int = 0
    last_observed: Optional[np.ndarray] = None
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(2, dtype=np.float64))

    def __post_init__(self) -> None:
        if self.last_observed is None:
            self.last_observed = self.centroid.copy()

    def predict(self, decay: float) -> None:
        """Linear motion prediction, damped every frame."""
        self.age += 1
        self.missed += 1
        self.velocity *= decay
        self.centroid = self.centroid + self.velocity

    def update(self, centroid: np.ndarray, confidence: float) -> None:
        gap = max(1, self.missed)
        self.velocity = (centroid - self.last_observed) / gap
        self.centroid = centroid
        self.last_observed = centroid.copy()
        self.confidence = float(confidence)
        self.missed = 0
        self.hits += 1


class PersonTracker(BaseTracker):
    """
    Centroid tracker giving every accepted pose a stable person_id.

    Usage:
        tracker = PersonTracker(cfg.tracking)
        poses = tracker.assign(poses)     # each pose now has person_id
        gone = tracker.evict_stale()      # ids past the grace period

    Any person_id already set on an incoming pose is ignored; identities are
    owned by the tracker.
    """

    def __init__(self, config: Optional[TrackingConfig] = None) -> None:
        config = config or TrackingConfig()
        config.validate()
        self._config = copy.deepcopy(config)
        self._tracks: Dict[int, _PersonTrack] = {}
        self._next_id: int = 1
        logger.info(
            "PersonTracker initialised | max_match_distance=%.1f max_missed_frames=%d",
            config.max_match_distance,
            config.max_missed_frames,
        )

    @property
    def config(self) -> TrackingConfig:
        return copy.deepcopy(self._config)

    def reset(self) -> None:
        """Clear all tracks (e.g. when restarting a session)."""
        self._tracks.clear()
        self._next_id = 1

    def active_person_ids(self) -> List[int]:
        return sorted(self._tracks)

    def missed_frames(self, person_id: int) -> Optional[int]:
        trk = self._tracks.get(person_id)
        return None if trk is None else trk.missed

    def assign(self, poses: List[Pose]) -> List[Pose]:
        """
        Match this frame's poses to tracks and return them with person ids,
        in input order. Poses with neither a box nor keypoints carry no
        position and are dropped.
        """
        for trk in self._tracks.values():
            trk.predict(self._config.velocity_decay)

        located: List[Tuple[int, np.ndarray]] = []
        for idx, pose in enumerate(poses):
            c = pose.centroid
            if c is None:
                logger.debug("Pose %s has no position; skipped by tracker", pose.detection_id)
                continue
            located.append((idx, np.asarray(c, dtype=np.float64)))

        matches, unmatched = self._associate(poses, located)

        assigned: Dict[int, int] = {}
        for person_id, (idx, centroid) in matches:
            self._tracks[person_id].update(centroid, poses[idx].score)
            assigned[idx] = person_id

        for idx, centroid in unmatched:
            person_id = self._next_id
            self._next_id += 1
            self._tracks[person_id] = _PersonTrack(
                person_id=person_id,
                centroid=centroid,
                confidence=float(poses[idx].score),
            )
            assigned[idx] = person_id
            logger.info("New person track %d at (%.1f, %.1f)", person_id, centroid[0], centroid[1])

        return [
            poses[idx].with_person_id(assigned[idx])
            for idx in range(len(poses))
            if idx in assigned
        ]

    def evict_stale(self) -> List[int]:
        """Remove tracks unseen for more than max_missed_frames frames."""
        evicted = [
            pid for pid, trk in self._tracks.items()
            if trk.missed > self._config.max_missed_frames
        ]
        for pid in evicted:
            trk = self._tracks.pop(pid)
            logger.info(
                "Person track %d evicted after %d missed frames (hits=%d)",
                pid,
                trk.missed,
                trk.hits,
            )
        return evicted

    def _associate(
        self,
        poses: List[Pose],
        located: List[Tuple[int, np.ndarray]],
    ):
        """
        Greedy nearest-centroid association.

        Candidate pairs are visited by increasing distance; on equal distance
        the detection with higher confidence goes first. Pairs further apart
        than max_match_distance never match.

        Returns
        -------
        matches:   List[Tuple[person_id, (pose_idx, centroid)]]
        unmatched: List[(pose_idx, centroid)] in input order
        """
        if not self._tracks or not located:
            return [], list(located)

        candidates = []
        for pid, trk in self._tracks.items():
            for loc_idx, (pose_idx, centroid) in enumerate(located):
                cost = float(np.linalg.norm(trk.centroid - centroid))
                if cost > self._config.max_match_distance:
                    continue
                candidates.append((cost, -float(poses[pose_idx].score), pid, loc_idx))

        candidates.sort(key=lambda c: (c[0], c[1]))

        used_tracks = set()
        used_dets = set()
        matches = []
        for _, _, pid, loc_idx in candidates:
            if pid in used_tracks or loc_idx in used_dets:
                continue
            used_tracks.add(pid)
            used_dets.add(loc_idx)
            matches.append((pid, located[loc_idx]))

        unmatched = [loc for i, loc in enumerate(located) if i not in used_dets]
        return matches, unmatched
