"""Logging setup shared by the entrypoint and its subcommands."""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping, Optional, Tuple

LOG_LEVEL_ENV = "SDTD_LOG_LEVEL"
LOG_FORMAT = "[sdtd-start] %(levelname)s %(message)s"
LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_log_level(raw: Optional[str]) -> Tuple[int, bool]:
    """Map a level name or number to a logging level.

    The second item is ``False`` when ``raw`` was not understood and INFO was used.
    """
    text = (raw or "").strip().upper()
    if not text:
        return logging.INFO, True
    if text in LEVEL_NAMES:
        return getattr(logging, text), True
    if text.isdigit():
        return int(text), True
    return logging.INFO, False


def configure_runtime_logging(environ: Optional[Mapping[str, str]] = None) -> logging.Logger:
    """Configure stderr logging from SDTD_LOG_LEVEL and return the package logger."""
    env = os.environ if environ is None else environ
    raw_level = env.get(LOG_LEVEL_ENV)
    level, understood = resolve_log_level(raw_level)

    # stdout belongs to the server and the console subcommand's output
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    logger = logging.getLogger("sdtd_runtime")
    if not understood:
        logger.warning(
            "Invalid %s %r; logging at INFO. Use one of %s or a numeric level.",
            LOG_LEVEL_ENV,
            raw_level,
            ", ".join(LEVEL_NAMES),
        )
    return logger
