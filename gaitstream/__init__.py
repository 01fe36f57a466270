"""
gaitstream
Real-time multi-person gait analysis from per-frame body keypoints.

    from gaitstream import GaitPipeline, load_config

    pipeline = GaitPipeline(load_config("config/default.yaml"))
    snapshot = pipeline.process_frame(poses, timestamp_ms)
"""

from gaitstream.core.config import GaitStreamConfig, default_config, load_config
from gaitstream.core.exceptions import (
    ConfigError,
    GaitStreamError,
    InsufficientDataError,
    TrackingGapError,
    UncalibratedError,
)
from gaitstream.core.logging_setup import setup_logging, setup_logging_from_config
from gaitstream.core.pipeline import GaitPipeline, run_stream

__version__ = "0.1.0"

__all__ = [
    "GaitPipeline",
    "GaitStreamConfig",
    "default_config",
    "load_config",
    "run_stream",
    "setup_logging",
    "setup_logging_from_config",
    "ConfigError",
    "GaitStreamError",
    "InsufficientDataError",
    "TrackingGapError",
    "UncalibratedError",
]
