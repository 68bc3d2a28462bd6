"""Utilities for scheduling a one-shot server restart."""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from croniter import croniter
from croniter.croniter import CroniterBadCronError

from .constants import RESTART_WARNING_LEAD_SECONDS


_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(raw: str) -> timedelta:
    """Parse durations such as ``90s``, ``10m`` or ``1h30m``."""
    text = (raw or "").strip()
    if not text:
        raise ValueError("Empty duration")
    if text == "0":
        return timedelta(0)

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"Invalid duration '{raw}'")
    return timedelta(seconds=total)


class CronSchedule:
    """Cron schedule helper backed by :mod:`croniter`."""

    def __init__(self, expression: str) -> None:
        self._expression = expression
        self._validate_expression()

    def _validate_expression(self) -> None:
        """Eagerly validate cron syntax so we fail fast on start-up."""

        try:
            croniter(self._expression, datetime.now())
        except CroniterBadCronError as exc:
            raise ValueError(str(exc)) from exc

    def next_run(self, reference: datetime) -> datetime:
        """Return the next scheduled time strictly after ``reference``."""

        iterator = croniter(self._expression, reference, ret_type=datetime)
        return iterator.get_next(datetime)


def resolve_restart_delay(
    interval: str = "",
    cron_expression: str = "",
    now: Optional[datetime] = None,
) -> Optional[float]:
    """Seconds until the restart, or ``None`` when no restart is configured.

    An explicit interval takes precedence over a cron expression.
    """
    if interval.strip():
        return parse_duration(interval).total_seconds()
    if cron_expression.strip():
        reference = now or datetime.now()
        next_run = CronSchedule(cron_expression).next_run(reference)
        return max((next_run - reference).total_seconds(), 0.0)
    return None


class RestartTimer:
    """Fire a warning broadcast and then a shutdown request, once.

    The warning goes out ``max(delay - lead, 0)`` seconds after :meth:`start`
    and the shutdown request follows a full ``lead`` later, so intervals shorter
    than the lead still give players the whole warning period.
    """

    ARMED = "armed"
    FIRED = "fired"
    DONE = "done"
    CANCELLED = "cancelled"

    def __init__(
        self,
        delay: float,
        on_warning: Callable[[], None],
        on_restart: Callable[[], None],
        logger: logging.Logger,
        warning_lead: float = RESTART_WARNING_LEAD_SECONDS,
    ) -> None:
        self.delay = max(delay, 0.0)
        self.warning_lead = max(warning_lead, 0.0)
        self.on_warning = on_warning
        self.on_restart = on_restart
        self.logger = logger
        self.state = self.ARMED
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def warning_at(self) -> float:
        return max(self.delay - self.warning_lead, 0.0)

    @property
    def shutdown_at(self) -> float:
        return self.warning_at + self.warning_lead

    def start(self) -> None:
        if self._thread is not None:
            return
        self.logger.info(
            "Scheduled restart armed: warning in %.0fs, shutdown in %.0fs.",
            self.warning_at,
            self.shutdown_at,
        )
        self._thread = threading.Thread(target=self._run, name="restart-timer", daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()
        if self.state == self.ARMED:
            self.state = self.CANCELLED

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        if self._cancelled.wait(self.warning_at):
            return
        self.state = self.FIRED
        self.logger.info("Scheduled restart reached; warning players.")
        try:
            self.on_warning()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Failed to broadcast restart warning: %s", exc)

        if self._cancelled.wait(self.warning_lead):
            self.state = self.DONE
            return
        self.logger.info("Restart warning period elapsed; requesting shutdown.")
        self.on_restart()
        self.state = self.DONE
