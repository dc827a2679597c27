from __future__ import annotations

from pathlib import Path

import pytest

from fleet.config import DEFAULTS, ConfigError, deep_merge, load_config


def test_defaults_without_file_or_env() -> None:
    cfg = load_config(environ={})
    assert cfg == DEFAULTS
    assert cfg is not DEFAULTS


def test_yaml_file_merges_over_defaults(tmp_path: Path) -> None:
    path = tmp_path / "fleet.yaml"
    path.write_text("table:\n  page_size: 50\nmap:\n  cluster_radius_px: 80\n", encoding="utf-8")
    cfg = load_config(str(path), environ={})
    assert cfg["table"]["page_size"] == 50
    assert cfg["table"]["sort_field"] == "healthScore"
    assert cfg["map"]["cluster_radius_px"] == 80
    assert cfg["map"]["max_zoom"] == 19


def test_config_path_from_env(tmp_path: Path) -> None:
    path = tmp_path / "fleet.yaml"
    path.write_text("ui:\n  port: 9999\n", encoding="utf-8")
    cfg = load_config(environ={"FLEET_CONFIG": str(path)})
    assert cfg["ui"]["port"] == 9999


def test_env_overrides_win(tmp_path: Path) -> None:
    path = tmp_path / "fleet.yaml"
    path.write_text("table:\n  page_size: 50\n", encoding="utf-8")
    cfg = load_config(
        str(path),
        environ={"FLEET_PAGE_SIZE": "25", "FLEET_REMOTE": "http://backend:3000", "FLEET_UI_PORT": ""},
    )
    assert cfg["table"]["page_size"] == 25
    assert cfg["source"]["remote"] == "http://backend:3000"
    assert cfg["ui"]["port"] == 8090


def test_bad_values_raise_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(environ={"FLEET_PAGE_SIZE": "twenty"})
    with pytest.raises(ConfigError):
        load_config(environ={"FLEET_PAGE_SIZE": "0"})
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"), environ={})
    listy = tmp_path / "list.yaml"
    listy.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(listy), environ={})


def test_empty_yaml_is_allowed(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(str(path), environ={}) == DEFAULTS


def test_deep_merge_does_not_mutate_base() -> None:
    base = {"a": {"b": 1, "c": 2}}
    out = deep_merge(base, {"a": {"b": 5}, "d": 3})
    assert out == {"a": {"b": 5, "c": 2}, "d": 3}
    assert base == {"a": {"b": 1, "c": 2}}
