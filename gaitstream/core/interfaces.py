"""
gaitstream/core/interfaces.py

Abstract contracts for the per-frame stages of the gait pipeline.

No logic here, only method signatures. GaitPipeline talks to its stages
through these so a stage can be swapped (e.g. a different tracker) without
touching the pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable, List, Mapping, Optional, Set

from gaitstream.schemas import Keypoint, KeypointName, Pose, StepEvent

if TYPE_CHECKING:
    from gaitstream.perception.validator import ValidationErrorKind


class BasePoseValidator(ABC):
    """Gatekeeper deciding whether a raw pose may enter tracking."""

    @abstractmethod
    def validate(self, pose: Pose) -> bool:
        raise NotImplementedError

    @abstractmethod
    def validation_errors(self, pose: Pose) -> Set[ValidationErrorKind]:
        """All error kinds that apply to ``pose`` (empty when accepted)."""
        raise NotImplementedError


class BaseTracker(ABC):
    """Assigns stable person ids across frames."""

    @abstractmethod
    def assign(self, poses: List[Pose]) -> List[Pose]:
        """Return the poses with ``person_id`` set, in input order."""
        raise NotImplementedError

    @abstractmethod
    def evict_stale(self) -> List[int]:
        """Drop tracks past their grace period and return their ids."""
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class BaseSmoother(ABC):
    """Per-person, per-keypoint temporal filter."""

    @abstractmethod
    def smooth(
        self,
        poses: List[Pose],
        gaps: Optional[Mapping[int, int]] = None,
    ) -> List[Pose]:
        """``gaps``: person_id -> frames unseen immediately before this one."""
        raise NotImplementedError

    @abstractmethod
    def drop_person(self, person_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class BaseEventDetector(ABC):
    """Turns smoothed ankle trajectories into step events."""

    @abstractmethod
    def update(
        self,
        person_id: int,
        ankles: Mapping[KeypointName, Keypoint],
        timestamp: float,
    ) -> List[StepEvent]:
        raise NotImplementedError

    @abstractmethod
    def drop_person(self, person_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def reset(self, person_ids: Optional[Iterable[int]] = None) -> None:
        raise NotImplementedError
