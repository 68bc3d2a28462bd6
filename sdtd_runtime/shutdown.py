"""Graceful shutdown helpers for the server process."""

from __future__ import annotations

import logging
import signal
import subprocess
import time
from typing import Optional

from .console import ServerConsole
from .errors import SdtdRuntimeError


def send_console_shutdown(console: ServerConsole, logger: logging.Logger) -> bool:
    """Try issuing ``shutdown`` over the console; failures are logged, not raised."""
    try:
        console.shutdown()
    except SdtdRuntimeError as exc:
        logger.error("Graceful shutdown via console failed: %s", exc)
        return False
    logger.info("shutdown command sent successfully.")
    return True


def stop_server_process(
    server_process: Optional[subprocess.Popen],
    grace_period: float,
    logger: logging.Logger,
) -> None:
    """Send SIGTERM to the server process, then SIGKILL if it outlives ``grace_period``."""
    if server_process is None or server_process.poll() is not None:
        logger.info("Server process already stopped.")
        return

    logger.warning("Sending SIGTERM to server process PID %s", server_process.pid)
    server_process.terminate()
    deadline = time.monotonic() + max(grace_period, 0)
    while server_process.poll() is None and time.monotonic() < deadline:
        time.sleep(0.1)

    if server_process.poll() is None:
        logger.warning(
            "Server did not stop within %ss of SIGTERM; sending SIGKILL to PID %s",
            grace_period,
            server_process.pid,
        )
        server_process.kill()


def signal_name(sig: int) -> str:
    """Best effort signal name for logging."""
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


def safe_kill_process(process: Optional[subprocess.Popen]) -> None:
    """Terminate a child process if running."""
    if process is None:
        return
    if process.poll() is None:
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            try:
                process.wait(timeout=1)
            except subprocess.TimeoutExpired:
                pass
