"""Process supervision for the dedicated server."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from .console import ServerConsole
from .constants import DEFAULT_RESTART_MESSAGE, RuntimeSettings
from .errors import ProcessStartError
from .restart import RestartTimer
from .shutdown import (
    safe_kill_process,
    send_console_shutdown,
    signal_name,
    stop_server_process,
)

SHUTDOWN_SIGNALS = ("SIGTERM", "SIGINT", "SIGHUP")


class ServerSupervisor:
    """Container-level supervisor for one server process."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    EXITED = "exited"

    TERMINATE_GRACE_PERIOD = 10

    def __init__(
        self,
        settings: RuntimeSettings,
        logger: logging.Logger,
        console: Optional[ServerConsole] = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self.console = console or ServerConsole(logger)
        self.poll_interval = poll_interval
        self.server_process: Optional[subprocess.Popen] = None
        self.restart_timer: Optional[RestartTimer] = None
        self.state = self.NOT_STARTED
        self.shutdown_reason: Optional[str] = None
        self._shutdown_lock = threading.Lock()
        self._shutdown_requested = threading.Event()
        self._previous_handlers: Dict[int, object] = {}

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested.is_set()

    def start(
        self,
        command: Sequence[str],
        cwd: Path | str,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.Popen:
        """Spawn the server with inherited standard streams. Does not block."""
        if self.state != self.NOT_STARTED:
            raise ProcessStartError("Server process was already started")

        child_env = dict(os.environ)
        child_env.update(env or {})
        child_env["LD_LIBRARY_PATH"] = "."

        self.logger.info("Starting server: %s (cwd=%s)", " ".join(command), cwd)
        try:
            self.server_process = subprocess.Popen(list(command), cwd=str(cwd), env=child_env)
        except OSError as exc:
            raise ProcessStartError(f"Failed to start server process: {exc}") from exc
        self.state = self.RUNNING
        self.logger.info("Server process started with PID %s.", self.server_process.pid)
        return self.server_process

    def _mark_shutdown(self, reason: str) -> bool:
        if self._shutdown_requested.is_set():
            return False
        self.shutdown_reason = reason
        self._shutdown_requested.set()
        return True

    def request_shutdown(self, reason: str) -> bool:
        """Ask for a graceful shutdown. Only the first request has any effect."""
        with self._shutdown_lock:
            first = self._mark_shutdown(reason)
        if first:
            self.logger.info("Graceful shutdown requested: %s.", reason)
        else:
            self.logger.info(
                "Shutdown requested (%s) but shutdown already in progress (%s).",
                reason,
                self.shutdown_reason,
            )
        return first

    def _handle_shutdown_signal(self, sig: int, _frame) -> None:
        # No locks or logging here: may interrupt a holder of _shutdown_lock.
        self._mark_shutdown(f"signal {signal_name(sig)}")

    def install_signal_handlers(self) -> None:
        for name in SHUTDOWN_SIGNALS:
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            self._previous_handlers[sig] = signal.signal(sig, self._handle_shutdown_signal)

    def restore_signal_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()

    def arm_restart_timer(self, delay: float, message: str = DEFAULT_RESTART_MESSAGE) -> RestartTimer:
        """Broadcast ``message`` shortly before ``delay`` elapses, then shut the server down."""
        self.restart_timer = RestartTimer(
            delay,
            on_warning=lambda: self.console.broadcast(message),
            on_restart=lambda: self.request_shutdown("scheduled restart"),
            logger=self.logger,
        )
        self.restart_timer.start()
        return self.restart_timer

    def _begin_graceful_shutdown(self) -> float:
        self.state = self.SHUTTING_DOWN
        self.logger.info("Shutting down server (%s).", self.shutdown_reason)
        send_console_shutdown(self.console, self.logger)
        return time.monotonic() + max(self.settings.shutdown_timeout, 0)

    def wait(self) -> int:
        """Block until the server exits, driving any requested shutdown. Returns the exit code."""
        if self.server_process is None:
            raise ProcessStartError("Server process has not been started")

        deadline: Optional[float] = None
        forced = False
        while True:
            try:
                code = self.server_process.wait(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                pass

            if deadline is None:
                if self._shutdown_requested.is_set():
                    deadline = self._begin_graceful_shutdown()
            elif not forced and time.monotonic() >= deadline:
                self.logger.warning(
                    "Server did not exit within %ss of the shutdown request.",
                    self.settings.shutdown_timeout,
                )
                stop_server_process(self.server_process, self.TERMINATE_GRACE_PERIOD, self.logger)
                forced = True

        self.state = self.EXITED
        if self.restart_timer is not None:
            self.restart_timer.cancel()
        return code

    def run(
        self,
        command: Sequence[str],
        cwd: Path | str,
        env: Optional[Mapping[str, str]] = None,
        restart_delay: Optional[float] = None,
        restart_message: str = DEFAULT_RESTART_MESSAGE,
    ) -> int:
        self.install_signal_handlers()
        try:
            self.start(command, cwd, env)
            if restart_delay is not None:
                self.arm_restart_timer(restart_delay, restart_message)
            exit_code = self.wait()
            self.logger.info("Server process exited with code %s.", exit_code)
            return exit_code
        finally:
            if self.restart_timer is not None:
                self.restart_timer.cancel()
            self.restore_signal_handlers()

    def cleanup(self) -> None:
        safe_kill_process(self.server_process)
