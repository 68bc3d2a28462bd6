"""Server settings (serverconfig.xml) loading, merging and writing."""

from __future__ import annotations

import logging
import os
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Mapping, Optional

from .constants import (
    CONSOLE_PORT,
    SETTING_ENV_PREFIX,
    SETTINGS_FILE_NAME,
    WEB_DASHBOARD_PORT,
)
from .errors import SettingsParseError, SettingsReadError, SettingsWriteError

ServerSettings = Dict[str, str]

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'
ROOT_ELEMENT = "ServerSettings"
PROPERTY_ELEMENT = "property"

DASHBOARD_DEFAULTS: ServerSettings = {"WebDashboardEnabled": "true"}


def forced_settings(data_dir: Path | str) -> ServerSettings:
    """Settings the entrypoint relies on; always merged last."""
    return {
        "TelnetEnabled": "true",
        "TelnetPort": str(CONSOLE_PORT),
        "UserDataFolder": str(data_dir),
        "WebDashboardPort": str(WEB_DASHBOARD_PORT),
    }


def parse_settings_document(text: str | bytes) -> ServerSettings:
    """Parse a settings document into a mapping. Unrecognized elements are ignored."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise SettingsParseError(f"Invalid server settings document: {exc}") from exc

    settings: ServerSettings = {}
    for element in root.iter(PROPERTY_ELEMENT):
        name = element.get("name")
        if not name:
            continue
        settings[name] = element.get("value", "")
    return settings


def load_default_settings(server_dir: Path | str, logger: logging.Logger) -> ServerSettings:
    """Read the settings file shipped with the server files (assumed unmodified)."""
    path = Path(server_dir) / SETTINGS_FILE_NAME
    logger.info("Loading default server settings from %s", path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise SettingsReadError(f"Unable to read server settings {path}: {exc}") from exc
    return parse_settings_document(data)


def settings_from_env(
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = SETTING_ENV_PREFIX,
) -> ServerSettings:
    """Collect ``<prefix><Name>=<Value>`` variables as ``{Name: Value}``."""
    env = os.environ if environ is None else environ
    settings = {
        key[len(prefix):]: value
        for key, value in env.items()
        if key.startswith(prefix) and len(key) > len(prefix)
    }
    return settings


def merge_settings(*items: Mapping[str, str]) -> ServerSettings:
    """Merge mappings left to right; later mappings win on conflicting keys."""
    merged: ServerSettings = {}
    for item in items:
        merged.update(item)
    return merged


def build_server_settings(
    defaults: Mapping[str, str],
    data_dir: Path | str,
    environ: Optional[Mapping[str, str]] = None,
) -> ServerSettings:
    return merge_settings(
        defaults,
        DASHBOARD_DEFAULTS,
        settings_from_env(environ),
        forced_settings(data_dir),
    )


def render_settings_document(settings: Mapping[str, str]) -> str:
    """Render settings as a document with properties sorted by name."""
    root = ET.Element(ROOT_ELEMENT)
    for name in sorted(settings):
        ET.SubElement(root, PROPERTY_ELEMENT, {"name": name, "value": str(settings[name])})
    ET.indent(root, space="  ")
    return XML_HEADER + ET.tostring(root, encoding="unicode") + "\n"


def write_server_settings(
    settings: Mapping[str, str],
    path: Path | str,
    logger: logging.Logger,
) -> Path:
    """Serialize ``settings`` to ``path`` through a temporary file and an atomic rename."""
    destination = Path(path)
    logger.info("Writing %d server settings to %s", len(settings), destination)
    try:
        payload = render_settings_document(settings)
    except (TypeError, ValueError) as exc:
        raise SettingsWriteError(f"Unable to serialize server settings: {exc}") from exc

    tmp_name = None
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=destination.parent,
            prefix=f".{destination.name}.",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(payload)
        os.replace(tmp_name, destination)
    except OSError as exc:
        if tmp_name:
            Path(tmp_name).unlink(missing_ok=True)
        raise SettingsWriteError(f"Unable to write server settings {destination}: {exc}") from exc
    return destination
