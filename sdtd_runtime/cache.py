"""Keyed directory cache for downloaded server builds."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable

TMP_DIR_NAME = ".tmp"


def clear_directory(path: Path) -> None:
    """Remove everything inside ``path`` but keep the directory itself."""
    if not path.exists():
        return
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


class DirectoryCache:
    """Single entry cache: one populated directory per key, older keys are evicted."""

    def __init__(self, root: Path, logger: logging.Logger) -> None:
        self.root = Path(root)
        self.logger = logger

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or key in {".", "..", TMP_DIR_NAME}:
            raise ValueError(f"Invalid cache key {key!r}")
        return self.root / key

    def ensure(self, key: str, populate: Callable[[Path], None]) -> Path:
        """Return the cached directory for ``key``, populating it on a miss."""
        target = self.path_for(key)
        if target.exists():
            self.logger.info("Cache hit for %s", key)
            return target

        self.logger.info("Cache miss for %s; clearing cache at %s", key, self.root)
        self.root.mkdir(parents=True, exist_ok=True)
        clear_directory(self.root)
        staging = self.root / TMP_DIR_NAME
        staging.mkdir(parents=True)
        populate(staging)
        staging.rename(target)
        return target
