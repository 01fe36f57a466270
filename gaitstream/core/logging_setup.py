"""
gaitstream/core/logging_setup.py

Logging configuration for applications embedding gaitstream.

Handlers go on the ``gaitstream`` package logger, not on the root logger, so
a host application's own logging setup is left alone. Calling setup again
replaces only the handlers installed by a previous call.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "gaitstream.log"
PACKAGE_LOGGER = "gaitstream"

# Marks handlers owned by setup_logging.
_OWNED_ATTR = "_gaitstream_owned"


def setup_logging(
    logs_dir: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
) -> Optional[Path]:
    """
    Send gaitstream's log records to the console and optionally a file.

    Parameters
    ----------
    logs_dir : str or Path, optional
        Directory for gaitstream.log. Console only when None.
    level : int or str
        Level for the package logger, e.g. logging.DEBUG or "DEBUG".

    Returns
    -------
    Path of the log file, or None when logging to console only.
    """
    pkg = logging.getLogger(PACKAGE_LOGGER)
    for h in list(pkg.handlers):
        if getattr(h, _OWNED_ATTR, False):
            pkg.removeHandler(h)
            h.close()

    pkg.setLevel(level.upper() if isinstance(level, str) else level)
    # Records are handled here; the host's root handlers would print them twice.
    pkg.propagate = False
    fmt = logging.Formatter(LOG_FORMAT)

    handlers = [logging.StreamHandler()]
    log_file = None
    if logs_dir is not None:
        logs_path = Path(logs_dir)
        logs_path.mkdir(parents=True, exist_ok=True)
        log_file = logs_path / LOG_FILE_NAME
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for h in handlers:
        h.setFormatter(fmt)
        setattr(h, _OWNED_ATTR, True)
        pkg.addHandler(h)

    pkg.info(
        "Logging configured | level=%s file=%s",
        logging.getLevelName(pkg.level),
        log_file,
    )
    return log_file


def setup_logging_from_config(cfg) -> Optional[Path]:
    """setup_logging driven by a GaitStreamConfig (paths.logs_dir, runtime.log_level)."""
    cfg.validate()
    return setup_logging(cfg.paths.logs_dir, level=cfg.runtime.log_level)
