"""
gaitstream/core/exceptions.py

Error kinds of the gait pipeline.

Only ConfigError and UncalibratedError are ever raised by the pipeline
itself. InsufficientDataError and TrackingGapError name conditions that are
reported in-band (unavailable metrics, TrackEvicted records) so callers can
still refer to them, e.g. when re-raising from their own code.
"""

from __future__ import annotations


class GaitStreamError(Exception):
    """Base class for all gaitstream errors."""


class ConfigError(GaitStreamError, ValueError):
    """Invalid smoothing / validation / tracking / calibration parameter."""

    def __init__(self, field: str, value: object, message: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field}={value!r}: {message}")


class UncalibratedError(GaitStreamError):
    """A pixel to metre conversion was requested without a scale."""


class InsufficientDataError(GaitStreamError):
    """Not enough gait events for a parameter (reported, not raised)."""


class TrackingGapError(GaitStreamError):
    """A track was evicted after its grace period (reported, not raised)."""

    def __init__(self, person_id: int, missed_frames: int) -> None:
        self.person_id = person_id
        self.missed_frames = missed_frames
        super().__init__(
            f"person {person_id} lost for {missed_frames} frames"
        )
