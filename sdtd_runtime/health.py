"""Health probe for the dedicated server."""

from __future__ import annotations

import logging
from typing import Optional

from .console import ServerConsole


def check_health(logger: logging.Logger, console: Optional[ServerConsole] = None) -> None:
    """Connect to the console once; seeing the ready prompt means healthy.

    Raises ``ConsoleConnectError`` or ``ConsoleTimeoutError`` when unhealthy.
    """
    console = console or ServerConsole(logger)
    healthy = False
    try:
        with console.session():
            healthy = True
    finally:
        logger.info("Health check: healthy=%s", healthy)

