"""ciguard logging setup."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def setup_logging(verbosity: int = 0) -> logging.Logger:
    """Configure the ciguard logger hierarchy.

    verbosity < 0 shows errors only, 0 shows warnings, 1 info, 2+ debug.
    Diagnostics go to stderr so that report output on stdout stays clean.
    """
    if verbosity < 0:
        level = logging.ERROR
    elif verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger = logging.getLogger("ciguard")
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
