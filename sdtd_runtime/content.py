"""Extra content handling: mod downloads and default mod removal."""

from __future__ import annotations

import logging
import os
import tempfile
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Iterable

from .archive_utils import extract_archive
from .cache import clear_directory
from .constants import MODS_DIR_NAME
from .errors import DownloadError


def _filename_from_url(url: str) -> str:
    path = urllib.parse.urlparse(url).path
    name = os.path.basename(urllib.parse.unquote(path))
    return name or "download"


def download_file(url: str, destination: Path) -> Path:
    """Stream ``url`` into ``destination``."""
    try:
        with urllib.request.urlopen(url, timeout=30) as response, destination.open("wb") as out_file:  # noqa: S310
            while True:
                chunk = response.read(8192)
                if not chunk:
                    break
                out_file.write(chunk)
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise DownloadError(f"Failed to download {url}: {exc}") from exc
    return destination


def install_mods(destination: Path, urls: Iterable[str], logger: logging.Logger) -> None:
    """Download each archive URL and extract it into ``destination``."""
    for url in urls:
        logger.info("Installing %s into %s", url, destination)
        with tempfile.TemporaryDirectory() as tmp_dir:
            archive = download_file(url, Path(tmp_dir) / _filename_from_url(url))
            extract_archive(archive, destination)


def delete_default_mods(server_dir: Path, logger: logging.Logger) -> None:
    """Empty the server's Mods folder."""
    mods_dir = server_dir / MODS_DIR_NAME
    logger.info("Deleting default mods in %s", mods_dir)
    clear_directory(mods_dir)
