"""Filesystem ownership normalization and privilege drop handling."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import sys
from pathlib import Path

from .constants import (
    PRIVS_DROPPED_ENV,
    TARGET_GID,
    TARGET_UID,
    TARGET_USER,
    Directories,
)
from .errors import PrivilegeDropError


def _chown_tree(path: Path) -> None:
    for root, dirs, files in os.walk(path):
        shutil.chown(root, user=TARGET_UID, group=TARGET_GID)
        for name in dirs + files:
            os.chown(Path(root) / name, TARGET_UID, TARGET_GID, follow_symlinks=False)


def ensure_permissions_and_drop_privileges(logger: logging.Logger, directories: Directories) -> None:
    """Hand container directories to the server user and re-exec as that user."""
    if os.geteuid() != 0 or os.environ.get(PRIVS_DROPPED_ENV):
        return

    for directory in directories.all():
        directory.mkdir(parents=True, exist_ok=True)
        try:
            logger.info(
                "Setting ownership of %s to %s:%s.",
                directory,
                TARGET_UID,
                TARGET_GID,
            )
            _chown_tree(directory)
        except OSError as exc:
            logger.warning("Failed to normalize permissions for %s: %s", directory, exc)

    os.environ[PRIVS_DROPPED_ENV] = "1"
    command = [sys.executable, "-m", "sdtd_runtime"] + sys.argv[1:]
    exec_errors: list[str] = []
    if shutil.which("gosu"):
        try:
            os.execvp("gosu", ["gosu", TARGET_USER] + command)
        except OSError as exc:
            exec_errors.append(f"gosu: {exc}")
    if shutil.which("runuser"):
        try:
            os.execvp("runuser", ["runuser", "-u", TARGET_USER, "--"] + command)
        except OSError as exc:
            exec_errors.append(f"runuser: {exc}")
    if shutil.which("su"):
        try:
            os.execvp("su", ["su", "-s", "/bin/sh", "-c", shlex.join(command), TARGET_USER])
        except OSError as exc:
            exec_errors.append(f"su: {exc}")

    if exec_errors:
        raise PrivilegeDropError(
            "Failed to drop privileges via available helper(s): " + "; ".join(exec_errors)
        )

    raise PrivilegeDropError("None of gosu, runuser or su is available for privilege drop")
