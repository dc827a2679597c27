#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fleet/config.py — runtime configuration.

Resolution order (later wins):
  1. built-in DEFAULTS
  2. YAML file (path argument, or $FLEET_CONFIG)
  3. FLEET_* environment variables (see ENV_OVERRIDES)

Example YAML
------------
source:
  remote: http://localhost:3000
  refresh_interval_sec: 30
table:
  page_size: 20
map:
  cluster_radius_px: 50
overlay:
  popup_width: 300
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml


class ConfigError(RuntimeError):
    pass


DEFAULTS: Dict[str, Any] = {
    "source": {
        "remote": None,
        "file": None,
        "timeout_sec": 30.0,
        "map_timeout_sec": 60.0,
        "refresh_interval_sec": 30.0,
    },
    "table": {
        "page_size": 20,
        "sort_field": "healthScore",
        "sort_direction": "desc",
    },
    "map": {
        "cluster_radius_px": 50.0,
        "default_zoom": 2,
        "min_zoom": 1,
        "max_zoom": 19,
        "recent_window_sec": 300.0,
        "marker_min_px": 20.0,
        "marker_max_px": 40.0,
    },
    "overlay": {
        "filter_panel": {"width": 280.0, "height": 350.0},
        "legend": {"width": 280.0, "height": 250.0},
        "popup_width": 300.0,
        "gap": 30.0,
        "lift": 10.0,
    },
    "ui": {
        "host": "127.0.0.1",
        "port": 8090,
    },
}

# env var -> (config path, parser)
ENV_OVERRIDES: Dict[str, Tuple[Tuple[str, ...], Callable[[str], Any]]] = {
    "FLEET_REMOTE": (("source", "remote"), str),
    "FLEET_DATA_FILE": (("source", "file"), str),
    "FLEET_REMOTE_TIMEOUT": (("source", "timeout_sec"), float),
    "FLEET_REFRESH_SEC": (("source", "refresh_interval_sec"), float),
    "FLEET_PAGE_SIZE": (("table", "page_size"), int),
    "FLEET_CLUSTER_RADIUS": (("map", "cluster_radius_px"), float),
    "FLEET_UI_HOST": (("ui", "host"), str),
    "FLEET_UI_PORT": (("ui", "port"), int),
}


def deep_merge(base: Dict[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (patch or {}).items():
        if isinstance(v, Mapping) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def load_yaml(p: Path) -> Any:
    with open(p, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _set_path(cfg: Dict[str, Any], path: Tuple[str, ...], value: Any) -> None:
    cur = cfg
    for k in path[:-1]:
        cur = cur.setdefault(k, {})
    cur[path[-1]] = value


def apply_env(cfg: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    out = copy.deepcopy(cfg)
    for name, (path, parse) in ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            _set_path(out, path, parse(raw))
        except ValueError as exc:
            raise ConfigError(f"{name}={raw!r}: {exc}") from exc
    return out


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    cfg = copy.deepcopy(DEFAULTS)
    target = path or env.get("FLEET_CONFIG")
    if target:
        p = Path(target)
        try:
            data = load_yaml(p)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot read config {p}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ConfigError(f"config {p} must be a mapping, got {type(data).__name__}")
        cfg = deep_merge(cfg, data)
    cfg = apply_env(cfg, env)
    if int(cfg["table"]["page_size"]) < 1:
        raise ConfigError("table.page_size must be >= 1")
    return cfg
