"""
Shared fixtures for the gaitstream test suite.

Pose factories build a side-view standing/walking skeleton around a hip
centre (cx, cy); ``separation`` is the signed left-minus-right ankle offset
along x.
"""

import logging
import math

import pytest

from gaitstream.core.config import default_config
from gaitstream.schemas import BoundingBox, Foot, Keypoint, KeypointName, Pose, StepEvent

K = KeypointName

# (dx, dy) offsets from the hip centre for every keypoint except the legs.
_UPPER_BODY = {
    K.NOSE: (0.0, -100.0),
    K.LEFT_EYE: (-4.0, -105.0),
    K.RIGHT_EYE: (4.0, -105.0),
    K.LEFT_EAR: (-8.0, -102.0),
    K.RIGHT_EAR: (8.0, -102.0),
    K.LEFT_SHOULDER: (-20.0, -70.0),
    K.RIGHT_SHOULDER: (20.0, -70.0),
    K.LEFT_ELBOW: (-25.0, -35.0),
    K.RIGHT_ELBOW: (25.0, -35.0),
    K.LEFT_WRIST: (-25.0, 0.0),
    K.RIGHT_WRIST: (25.0, 0.0),
    K.LEFT_HIP: (-15.0, 0.0),
    K.RIGHT_HIP: (15.0, 0.0),
}


@pytest.fixture
def logger():
    return logging.getLogger("gaitstream.tests")


@pytest.fixture
def test_config():
    return default_config()


def _build_pose(
    cx=320.0,
    cy=240.0,
    separation=0.0,
    score=0.9,
    kp_score=0.9,
    timestamp=0.0,
    with_bbox=True,
    omit=(),
    overrides=None,
    person_id=None,
):
    coords = dict(_UPPER_BODY)
    half = separation / 2.0
    coords[K.LEFT_KNEE] = (-15.0 + half / 2.0, 45.0)
    coords[K.RIGHT_KNEE] = (15.0 - half / 2.0, 45.0)
    coords[K.LEFT_ANKLE] = (half, 90.0)
    coords[K.RIGHT_ANKLE] = (-half, 90.0)

    overrides = overrides or {}
    keypoints = []
    for name in K:
        if name in omit:
            continue
        dx, dy = coords[name]
        x, y, s = cx + dx, cy + dy, kp_score
        if name in overrides:
            x, y, s = overrides[name]
        keypoints.append(Keypoint(name=name, x=x, y=y, score=s, timestamp=timestamp))

    bbox = BoundingBox(cx - 40.0, cy - 120.0, cx + 40.0, cy + 100.0) if with_bbox else None
    return Pose(
        keypoints=tuple(keypoints),
        score=score,
        timestamp=timestamp,
        bbox=bbox,
        person_id=person_id,
    )


@pytest.fixture
def make_pose():
    """Factory: make_pose(cx=..., separation=..., score=..., omit=(...), overrides={...})."""
    return _build_pose


@pytest.fixture
def walking_frames():
    """
    Factory yielding (timestamp_ms, separation, cx) for a walker whose ankle
    separation follows amplitude * sin(2 pi t / period).
    """

    def _frames(duration_ms=3000.0, fps=30.0, period_ms=1000.0, amplitude=20.0,
                speed_px_s=0.0, cx0=320.0):
        dt = 1000.0 / fps
        n = int(duration_ms / dt) + 1
        for i in range(n):
            t = i * dt
            sep = amplitude * math.sin(2.0 * math.pi * t / period_ms)
            yield t, sep, cx0 + speed_px_s * t / 1000.0

    return _frames


@pytest.fixture
def make_event():
    """Factory for StepEvent with sensible defaults."""

    def _event(foot, timestamp, x, y=0.0, contra=None, confidence=0.8, person_id=1):
        if isinstance(foot, str):
            foot = Foot(foot)
        return StepEvent(
            person_id=person_id,
            foot=foot,
            timestamp=float(timestamp),
            position=(float(x), float(y)),
            contralateral_position=contra if contra is not None else (float(x), float(y)),
            confidence=confidence,
        )

    return _event


@pytest.fixture
def restore_package_logging():
    pkg = logging.getLogger("gaitstream")
    saved_handlers = list(pkg.handlers)
    saved_level = pkg.level
    saved_propagate = pkg.propagate
    yield pkg
    for h in list(pkg.handlers):
        if h not in saved_handlers:
            pkg.removeHandler(h)
            h.close()
    pkg.setLevel(saved_level)
    pkg.propagate = saved_propagate
