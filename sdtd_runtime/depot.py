"""DepotDownloader invocation and server file provisioning."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from .cache import DirectoryCache
from .constants import (
    SERVER_BINARY_NAME,
    STEAM_APP_ID,
    STEAM_DEPOT_ID,
    Directories,
    RuntimeSettings,
)
from .errors import DownloadError


def depot_download(
    executable: str,
    app_id: str,
    depot_id: str,
    manifest_id: str,
    destination: Path,
    logger: logging.Logger,
) -> None:
    """Download one depot manifest into ``destination``."""
    command = [
        executable,
        "-app",
        app_id,
        "-depot",
        depot_id,
        "-manifest",
        manifest_id,
        "-dir",
        str(destination),
    ]
    logger.info("Downloading depot %s manifest %s to %s", depot_id, manifest_id, destination)
    try:
        result = subprocess.run(command, check=False)
    except OSError as exc:
        raise DownloadError(f"Failed to run {executable}: {exc}") from exc
    if result.returncode != 0:
        raise DownloadError(
            f"{executable} exited with code {result.returncode} for manifest {manifest_id}"
        )


def download_server(
    manifest_id: str,
    directories: Directories,
    settings: RuntimeSettings,
    logger: logging.Logger,
) -> Path:
    """Provide the requested server build in the server directory, downloading on cache miss."""
    cache = DirectoryCache(directories.cache, logger)
    cached = cache.ensure(
        manifest_id,
        lambda staging: depot_download(
            settings.depot_downloader_bin,
            STEAM_APP_ID,
            STEAM_DEPOT_ID,
            manifest_id,
            staging,
            logger,
        ),
    )

    logger.info("Copying server files from cache to %s", directories.server)
    try:
        shutil.copytree(cached, directories.server, symlinks=True, dirs_exist_ok=True)
    except OSError as exc:
        raise DownloadError(f"Unable to copy server files to {directories.server}: {exc}") from exc

    server_binary = directories.server / SERVER_BINARY_NAME
    logger.info("Setting server binary executable: %s", server_binary)
    try:
        server_binary.chmod(0o755)
    except OSError as exc:
        raise DownloadError(f"Server binary missing or not accessible: {server_binary}: {exc}") from exc
    return server_binary
