"""Constants and settings helpers for the 7 Days to Die entrypoint."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


TARGET_UID = 1000
TARGET_GID = 1000
TARGET_USER = "server"
PRIVS_DROPPED_ENV = "SDTD_PRIVS_DROPPED"

STEAM_APP_ID = "294420"
STEAM_DEPOT_ID = "294422"
DEPOT_DOWNLOADER_BIN = "DepotDownloader"

SERVER_BINARY_NAME = "7DaysToDieServer.x86_64"
SETTINGS_FILE_NAME = "serverconfig.xml"
MODS_DIR_NAME = "Mods"
SETTING_ENV_PREFIX = "SETTING_"

# Console protocol constants; intrinsic to the server, not user configurable.
CONSOLE_HOST = "localhost"
CONSOLE_PORT = 8081
CONSOLE_READY_PROMPT = "Press 'help' to get a list of all commands. Press 'exit' to end session."
CONSOLE_PROMPT_TIMEOUT = 5.0
WEB_DASHBOARD_PORT = 8080

RESTART_WARNING_LEAD_SECONDS = 60
DEFAULT_RESTART_MESSAGE = "Server restarting in 1 minute."


class ExitCodes:
    """Exit codes for entrypoint-level failures."""
    OK = 0
    FAILURE = 1
    CONFIG_INVALID = 2
    DOWNLOAD_FAILED = 3
    SETTINGS_INVALID = 4
    PROCESS_START_FAILED = 5
    CONSOLE_CONNECTION_FAILED = 6
    CONSOLE_TIMEOUT = 7


def env_bool(key: str, default: bool = False, environ: Optional[Mapping[str, str]] = None) -> bool:
    value = (os.environ if environ is None else environ).get(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(key: str, default: int, environ: Optional[Mapping[str, str]] = None) -> int:
    value = (os.environ if environ is None else environ).get(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def env_list(key: str, environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Split a comma separated variable, dropping blank entries."""
    value = (os.environ if environ is None else environ).get(key) or ""
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Directories:
    """Container paths used by the entrypoint."""

    cache: Path
    data: Path
    generated: Path
    server: Path

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Directories":
        env = os.environ if environ is None else environ
        return cls(
            cache=Path(env.get("SDTD_CACHE_DIR") or "/cache"),
            data=Path(env.get("SDTD_DATA_DIR") or "/data"),
            generated=Path(env.get("SDTD_GENERATED_DIR") or "/generated"),
            server=Path(env.get("SDTD_SERVER_DIR") or "/sdtd"),
        )

    def all(self) -> list[Path]:
        return [self.cache, self.data, self.generated, self.server]


@dataclass
class RuntimeSettings:
    """Typed runtime settings sourced from the environment."""

    shutdown_timeout: int
    depot_downloader_bin: str

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeSettings":
        env = os.environ if environ is None else environ
        return cls(
            shutdown_timeout=env_int("SDTD_SHUTDOWN_TIMEOUT", 180, env),
            depot_downloader_bin=env.get("DEPOT_DOWNLOADER_BIN") or DEPOT_DOWNLOADER_BIN,
        )
