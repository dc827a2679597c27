#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fleet/source.py — where node snapshots come from.

Two modes, mirroring the dashboard's local/remote switch:
  - file:   a JSON or YAML snapshot ({"nodes": [...], "map_nodes": [...]},
            or a bare list of node records)
  - remote: the pNode backend API
              GET /pnodes                  node records
              GET /analytics/node-metrics  healthScore/tier/utilization per pubkey
              GET /pnodes/map              map nodes (slow, longer timeout)

A fetched snapshot is cached until `refresh_interval_sec` has passed. A failed
refresh keeps the previous snapshot and raises SourceError; the caller decides
whether stale data is acceptable.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import yaml

log = logging.getLogger(__name__)

METRIC_FIELDS = ("healthScore", "tier", "storageUtilization", "uptime24h")


class SourceError(RuntimeError):
    pass


@dataclass
class Snapshot:
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    map_nodes: List[Dict[str, Any]] = field(default_factory=list)
    fetched_at: float = 0.0
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"nodes": self.nodes, "map_nodes": self.map_nodes}


def _ensure_list(obj: Any) -> List[Dict[str, Any]]:
    if isinstance(obj, list):
        return [item for item in obj if isinstance(item, dict)]
    return []


def parse_snapshot(payload: Any) -> Snapshot:
    if isinstance(payload, list):
        return Snapshot(nodes=_ensure_list(payload))
    if isinstance(payload, dict):
        return Snapshot(
            nodes=_ensure_list(payload.get("nodes")),
            map_nodes=_ensure_list(payload.get("map_nodes") or payload.get("mapNodes")),
        )
    raise SourceError(f"unsupported snapshot payload: {type(payload).__name__}")


def load_snapshot_file(path: Path) -> Snapshot:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SourceError(f"cannot read snapshot {path}: {exc}") from exc
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise SourceError(f"cannot parse snapshot {path}: {exc}") from exc
    return parse_snapshot(payload)


def merge_metrics(nodes: List[Dict[str, Any]], metrics: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Overlay analytics fields onto node records by pubkey. Node fields already present win."""
    by_key: Dict[str, Dict[str, Any]] = {}
    for m in metrics:
        key = m.get("pubkey")
        if key and key not in by_key:
            by_key[key] = m
    out = []
    for n in nodes:
        merged = dict(n)
        m = by_key.get(n.get("pubkey"))
        if m:
            for k in METRIC_FIELDS:
                if merged.get(k) is None and m.get(k) is not None:
                    merged[k] = m[k]
        out.append(merged)
    return out


class SnapshotSource:
    def __init__(
        self,
        *,
        remote: Optional[str] = None,
        file: Optional[str] = None,
        timeout_sec: float = 30.0,
        map_timeout_sec: float = 60.0,
        refresh_interval_sec: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not remote and not file:
            raise SourceError("either a remote base URL or a snapshot file is required")
        self.remote = remote.rstrip("/") if remote else None
        self.file = Path(file) if file else None
        self.timeout_sec = timeout_sec
        self.map_timeout_sec = map_timeout_sec
        self.refresh_interval_sec = max(0.0, refresh_interval_sec)
        self.session = session or requests.Session()
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._version = 0

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], **kwargs: Any) -> "SnapshotSource":
        src = cfg.get("source") or {}
        return cls(
            remote=src.get("remote"),
            file=src.get("file"),
            timeout_sec=float(src.get("timeout_sec", 30.0)),
            map_timeout_sec=float(src.get("map_timeout_sec", 60.0)),
            refresh_interval_sec=float(src.get("refresh_interval_sec", 30.0)),
            **kwargs,
        )

    @property
    def label(self) -> str:
        return f"remote API @ {self.remote}" if self.remote else f"snapshot file {self.file}"

    # ---------- Fetching ----------

    def _get_json(self, path: str, timeout: float) -> Any:
        url = f"{self.remote}{path}"
        try:
            resp = self.session.get(url, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise SourceError(f"remote request failed: {url}: {exc}") from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise SourceError(f"remote returned non-JSON response (status {resp.status_code}) for {url}") from exc

    def _fetch_remote(self) -> Snapshot:
        nodes = _ensure_list(self._get_json("/pnodes", self.timeout_sec))
        try:
            metrics = _ensure_list(self._get_json("/analytics/node-metrics", self.timeout_sec))
        except SourceError as exc:
            log.warning("node metrics unavailable, continuing without: %s", exc)
            metrics = []
        try:
            map_nodes = _ensure_list(self._get_json("/pnodes/map", self.map_timeout_sec))
        except SourceError as exc:
            log.warning("map nodes unavailable, continuing without: %s", exc)
            map_nodes = []
        return Snapshot(nodes=merge_metrics(nodes, metrics), map_nodes=map_nodes)

    def fetch(self) -> Snapshot:
        if self.remote:
            return self._fetch_remote()
        assert self.file is not None
        return load_snapshot_file(self.file)

    # ---------- Cached access ----------

    def refresh(self) -> Snapshot:
        snap = self.fetch()
        with self._lock:
            self._version += 1
            snap.version = self._version
            snap.fetched_at = time.time()
            self._snapshot = snap
        log.info("snapshot refreshed from %s: %d nodes, %d map nodes", self.label, len(snap.nodes), len(snap.map_nodes))
        return snap

    def current(self) -> Optional[Snapshot]:
        with self._lock:
            return self._snapshot

    def get(self) -> Snapshot:
        """Cached snapshot, refreshed when older than the refresh interval."""
        with self._lock:
            snap = self._snapshot
        if snap is not None and time.time() - snap.fetched_at < self.refresh_interval_sec:
            return snap
        return self.refresh()
