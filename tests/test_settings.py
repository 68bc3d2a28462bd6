from __future__ import annotations

import logging

import pytest

from sdtd_runtime.errors import SettingsParseError, SettingsReadError, SettingsWriteError
from sdtd_runtime.settings import (
    build_server_settings,
    forced_settings,
    load_default_settings,
    merge_settings,
    parse_settings_document,
    render_settings_document,
    settings_from_env,
    write_server_settings,
)

SHIPPED_CONFIG = """<?xml version="1.0"?>
<ServerSettings>
\t<!-- Server representation -->
\t<property name="ServerName" value="My Game Host"/>\t\t<!-- Whatever you want the name of the server to be. -->
\t<property name="ServerPort" value="26900"/>
\t<property name="TelnetEnabled" value="false"/>
\t<property name="TelnetPort" value="8081"/>
\t<property name="WebDashboardEnabled" value="false"/>
\t<property name="Region" value="NorthAmericaEast"/>
</ServerSettings>
"""


def test_merge_precedence():
    a = {"x": "a", "y": "a", "z": "a"}
    b = {"y": "b", "z": "b"}
    c = {"z": "c"}

    merged = merge_settings(a, b, c)

    assert merged == {"x": "a", "y": "b", "z": "c"}
    assert a == {"x": "a", "y": "a", "z": "a"}


def test_settings_from_env_strips_prefix():
    environ = {
        "SETTING_ServerName": "MyServer",
        "SETTING_GameDifficulty": "3",
        "SETTING_": "ignored",
        "MANIFEST_ID": "123",
    }
    assert settings_from_env(environ) == {"ServerName": "MyServer", "GameDifficulty": "3"}
    assert settings_from_env({}) == {}


def test_env_overrides_defaults():
    merged = build_server_settings({"ServerName": "default"}, "/data", {"SETTING_ServerName": "MyServer"})
    assert merged["ServerName"] == "MyServer"


def test_forced_overrides_cannot_be_shadowed():
    environ = {
        "SETTING_TelnetPort": "9999",
        "SETTING_TelnetEnabled": "false",
        "SETTING_UserDataFolder": "/elsewhere",
        "SETTING_WebDashboardPort": "1234",
    }
    merged = build_server_settings({"TelnetPort": "1"}, "/data", environ)

    assert merged["TelnetPort"] == "8081"
    assert merged["TelnetEnabled"] == "true"
    assert merged["UserDataFolder"] == "/data"
    assert merged["WebDashboardPort"] == "8080"
    assert merge_settings({"TelnetPort": "9999"}, {"TelnetPort": "8081"})["TelnetPort"] == "8081"


def test_dashboard_default_can_be_overridden_from_env():
    assert build_server_settings({}, "/data", {})["WebDashboardEnabled"] == "true"
    merged = build_server_settings({}, "/data", {"SETTING_WebDashboardEnabled": "false"})
    assert merged["WebDashboardEnabled"] == "false"


def test_render_sorts_keys_and_adds_header():
    document = render_settings_document({"b": "2", "a": "1"})

    assert document.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<ServerSettings>')
    assert document.index('name="a"') < document.index('name="b"')


def test_round_trip_is_lossless():
    settings = {
        "ServerName": 'Quotes " & <brackets>',
        "ServerDescription": "",
        "Region": "Europe",
        "ServerPort": "26900",
    }
    assert parse_settings_document(render_settings_document(settings)) == settings


def test_parse_ignores_unknown_elements_and_order():
    text = """<ServerSettings>
      <comment>nothing</comment>
      <property name="b" value="2"/>
      <property value="orphan"/>
      <property name="a"/>
    </ServerSettings>"""
    assert parse_settings_document(text) == {"a": "", "b": "2"}


def test_parse_rejects_malformed_document():
    with pytest.raises(SettingsParseError):
        parse_settings_document("<ServerSettings><property name='a'")


def test_load_default_settings(tmp_path):
    (tmp_path / "serverconfig.xml").write_text(SHIPPED_CONFIG, encoding="utf-8")

    settings = load_default_settings(tmp_path, logging.getLogger("test"))

    assert settings["ServerName"] == "My Game Host"
    assert settings["TelnetEnabled"] == "false"
    assert len(settings) == 6


def test_load_default_settings_missing_file(tmp_path):
    with pytest.raises(SettingsReadError):
        load_default_settings(tmp_path, logging.getLogger("test"))


def test_write_server_settings(tmp_path):
    destination = tmp_path / "generated" / "serverconfig.xml"
    settings = merge_settings({"ServerName": "x"}, forced_settings("/data"))

    path = write_server_settings(settings, destination, logging.getLogger("test"))

    assert path == destination
    assert parse_settings_document(destination.read_text(encoding="utf-8")) == settings
    assert [p.name for p in destination.parent.iterdir()] == ["serverconfig.xml"]


def test_write_server_settings_failure_leaves_no_partial_file(tmp_path, monkeypatch):
    destination = tmp_path / "serverconfig.xml"

    def broken_replace(_src, _dst):
        raise OSError("disk full")

    monkeypatch.setattr("sdtd_runtime.settings.os.replace", broken_replace)

    with pytest.raises(SettingsWriteError):
        write_server_settings({"a": "1"}, destination, logging.getLogger("test"))
    assert list(tmp_path.iterdir()) == []
