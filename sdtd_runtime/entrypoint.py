"""Startup orchestration: provision server files, write settings, supervise the server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from .constants import (
    DEFAULT_RESTART_MESSAGE,
    MODS_DIR_NAME,
    SERVER_BINARY_NAME,
    SETTINGS_FILE_NAME,
    Directories,
    RuntimeSettings,
    env_bool,
    env_list,
)
from .content import delete_default_mods, install_mods
from .depot import download_server
from .errors import ConfigError
from .restart import resolve_restart_delay
from .settings import build_server_settings, load_default_settings, write_server_settings
from .supervisor import ServerSupervisor


@dataclass
class EntrypointConfig:
    """Entrypoint options sourced from the environment."""

    manifest_id: str
    delete_default_mods: bool = False
    mod_urls: list[str] = field(default_factory=list)
    root_urls: list[str] = field(default_factory=list)
    restart_interval: str = ""
    restart_cron: str = ""
    restart_message: str = DEFAULT_RESTART_MESSAGE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EntrypointConfig":
        env = os.environ if environ is None else environ
        manifest_id = (env.get("MANIFEST_ID") or "").strip()
        if not manifest_id:
            raise ConfigError("MANIFEST_ID must be set to the server build to download")
        return cls(
            manifest_id=manifest_id,
            delete_default_mods=env_bool("DELETE_DEFAULT_MODS", False, env),
            mod_urls=env_list("MOD_URLS", env),
            root_urls=env_list("ROOT_URLS", env),
            restart_interval=(env.get("SERVER_RESTART_INTERVAL") or "").strip(),
            restart_cron=(env.get("SERVER_RESTART_CRON") or "").strip(),
            restart_message=(env.get("SERVER_RESTART_MESSAGE") or "").strip() or DEFAULT_RESTART_MESSAGE,
        )

    def restart_delay(self) -> Optional[float]:
        try:
            return resolve_restart_delay(self.restart_interval, self.restart_cron)
        except ValueError as exc:
            raise ConfigError(f"Invalid restart schedule: {exc}") from exc


def build_launch_command(settings_file: str) -> list[str]:
    return [
        f"./{SERVER_BINARY_NAME}",
        "-batchmode",
        f"-configfile={settings_file}",
        "-dedicated",
        "-logfile",
        "-nographics",
        "-quit",
    ]


def prepare_server(
    config: EntrypointConfig,
    directories: Directories,
    settings: RuntimeSettings,
    logger: logging.Logger,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Run every provisioning step and return the path of the generated settings file."""
    download_server(config.manifest_id, directories, settings, logger)

    if config.delete_default_mods:
        delete_default_mods(directories.server, logger)

    install_mods(directories.server, config.root_urls, logger)
    install_mods(directories.server / MODS_DIR_NAME, config.mod_urls, logger)

    defaults = load_default_settings(directories.server, logger)
    server_settings = build_server_settings(defaults, directories.data, environ)
    path = write_server_settings(server_settings, directories.generated / SETTINGS_FILE_NAME, logger)
    return str(path)


def run_entrypoint(
    logger: logging.Logger,
    directories: Directories,
    settings: RuntimeSettings,
    environ: Optional[Mapping[str, str]] = None,
    supervisor_factory: Callable[[RuntimeSettings, logging.Logger], ServerSupervisor] = ServerSupervisor,
) -> int:
    """Provision the server and supervise it until it exits. Returns the server's exit code."""
    logger.info("Running entrypoint.")
    config = EntrypointConfig.from_env(environ)
    restart_delay = config.restart_delay()

    settings_file = prepare_server(config, directories, settings, logger, environ)

    supervisor = supervisor_factory(settings, logger)
    try:
        return supervisor.run(
            build_launch_command(settings_file),
            cwd=directories.server,
            restart_delay=restart_delay,
            restart_message=config.restart_message,
        )
    finally:
        supervisor.cleanup()
