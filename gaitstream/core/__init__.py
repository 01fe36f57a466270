"""
gaitstream/core
Configuration, logging, error kinds, stage contracts, telemetry and the pipeline.

Import submodules directly (gaitstream.core.config, gaitstream.core.pipeline);
this file stays empty so the stage packages can import core.config without
pulling in the pipeline.
"""
