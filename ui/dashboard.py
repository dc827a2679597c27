#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ui/dashboard.py — pNode fleet dashboard (JSON API + single-file page).

Features
--------
- Directory: search / status / tier filters, sortable columns, pagination,
  global rank per row, column visibility
- Summary: totals, online share, network health, tier/storage/version mix
- Map: clustered markers for a zoom level, click-to-expand (zoom or spiderfy),
  popup offsets that avoid the filter panel and legend
- Data from a snapshot file or a remote pNode backend, cached between
  refreshes; a failed refresh keeps serving the last good snapshot

Endpoints
---------
GET  /api/health
GET  /api/view            ?search=&status=&tier=&sort=&dir=&page=&page_size=&hide=a,b
GET  /api/summary
GET  /api/map/clusters    ?zoom=&radius=&online_only=&tier=&version=&clustering=
POST /api/map/expand      { cluster_id, zoom, radius?, online_only?, tier?, version? }
POST /api/overlay         { point:[x,y], viewport:[w,h], regions?:{filter_panel, legend} }
POST /api/refresh

Run
---
python3 -m ui.dashboard --data snapshot.json --port 8090
python3 -m ui.dashboard --remote http://127.0.0.1:3000
"""

from __future__ import annotations

import argparse
import logging
import time
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, make_response, request

from fleet.config import ConfigError, load_config
from fleet.geo import (
    compute_clusters,
    expand_cluster,
    filter_map_nodes,
    map_center,
    map_versions,
    marker_style,
    normalize_map_nodes,
)
from fleet.overlay import FixedRegions, Rect, default_regions, place_overlay
from fleet.query import COLUMN_KEYS, ViewState, compute_view, default_column_visibility
from fleet.records import safe_float
from fleet.source import Snapshot, SnapshotSource, SourceError
from fleet.summary import summarize

log = logging.getLogger(__name__)

# ----------------- App singletons -----------------

app = Flask(__name__)

CFG: Dict[str, Any] = {}
SOURCE: Optional[SnapshotSource] = None
SOURCE_LABEL = "no data source configured"


def _configure_runtime(cfg: Dict[str, Any], source: Optional[SnapshotSource] = None) -> None:
    global CFG, SOURCE, SOURCE_LABEL
    CFG = cfg
    if source is None:
        src = cfg.get("source") or {}
        source = SnapshotSource.from_config(cfg) if (src.get("remote") or src.get("file")) else None
    SOURCE = source
    SOURCE_LABEL = SOURCE.label if SOURCE else "no data source configured"


try:
    _configure_runtime(load_config())
except ConfigError:
    logging.exception("invalid configuration; dashboard starts without a data source")
    _configure_runtime(load_config(environ={}))


# ----------------- Helpers -----------------


def _ok(data: Any, status: int = 200):
    return jsonify({"ok": True, "data": data}), status


def _err(msg: str, status: int = 400, **extra):
    return jsonify({"ok": False, "error": msg, **extra}), status


def _int_arg(value: Any, default: int) -> int:
    return int(safe_float(value, float(default)))


def _bool_arg(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _snapshot() -> Snapshot:
    if SOURCE is None:
        raise SourceError("no data source configured (use --data or --remote)")
    try:
        return SOURCE.get()
    except SourceError:
        stale = SOURCE.current()
        if stale is None:
            raise
        logging.exception("refresh failed; serving snapshot v%d", stale.version)
        return stale


def _view_state(args: Any) -> ViewState:
    table = CFG.get("table") or {}
    hidden = {c.strip() for c in (args.get("hide") or "").split(",") if c.strip()}
    visibility = default_column_visibility()
    for key in hidden & set(COLUMN_KEYS):
        visibility[key] = False
    return ViewState(
        search_text=args.get("search", ""),
        status_filter=args.get("status", "all"),
        tier_filter=args.get("tier", "all"),
        sort_field=args.get("sort") or table.get("sort_field", "healthScore"),
        sort_direction=(args.get("dir") or table.get("sort_direction", "desc")).lower(),
        current_page=_int_arg(args.get("page"), 1),
        page_size=_int_arg(args.get("page_size"), int(table.get("page_size", 20))),
        column_visibility=visibility,
    )


def _map_filters(src: Any) -> Dict[str, Any]:
    return {
        "online_only": _bool_arg(src.get("online_only")),
        "health_tier": src.get("tier") or "all",
        "version": src.get("version") or "all",
    }


def _map_settings() -> Dict[str, Any]:
    return CFG.get("map") or {}


def _cluster_payload(clusters, nodes_by_id, now: float) -> List[Dict[str, Any]]:
    m = _map_settings()
    out = []
    for c in clusters:
        item = c.to_dict()
        if c.is_singleton:
            node = nodes_by_id[c.members[0]]
            item["node"] = node.to_dict()
            item["style"] = marker_style(
                node,
                now,
                window_sec=float(m.get("recent_window_sec", 300.0)),
                min_px=float(m.get("marker_min_px", 20.0)),
                max_px=float(m.get("marker_max_px", 40.0)),
            ).to_dict()
        out.append(item)
    return out


def _regions_from(body: Dict[str, Any], viewport) -> FixedRegions:
    ov = CFG.get("overlay") or {}
    fp = ov.get("filter_panel") or {}
    lg = ov.get("legend") or {}
    regions = default_regions(
        *viewport,
        filter_size=(float(fp.get("width", 280.0)), float(fp.get("height", 350.0))),
        legend_size=(float(lg.get("width", 280.0)), float(lg.get("height", 250.0))),
    )
    explicit = body.get("regions")
    if not isinstance(explicit, dict):
        return regions
    filter_panel = regions.filter_panel
    legend = regions.legend
    if "filter_panel" in explicit:
        filter_panel = Rect.from_dict(explicit["filter_panel"]) if explicit["filter_panel"] else None
    if "legend" in explicit:
        legend = Rect.from_dict(explicit["legend"]) if explicit["legend"] else None
    return FixedRegions(filter_panel=filter_panel, legend=legend)


# ----------------- JSON APIs -----------------


@app.get("/api/health")
def api_health():
    snap = SOURCE.current() if SOURCE else None
    return _ok({
        "ts": int(time.time() * 1000),
        "source": SOURCE_LABEL,
        "snapshot_version": snap.version if snap else None,
        "snapshot_age_sec": (time.time() - snap.fetched_at) if snap else None,
    })


@app.get("/api/view")
def api_view():
    try:
        snap = _snapshot()
    except SourceError as exc:
        return _err(str(exc), status=502)
    try:
        result = compute_view(snap.nodes, _view_state(request.args))
    except ValueError as exc:
        return _err(str(exc))
    return _ok(result.to_dict())


@app.get("/api/summary")
def api_summary():
    try:
        snap = _snapshot()
    except SourceError as exc:
        return _err(str(exc), status=502)
    return _ok(summarize(snap.nodes))


@app.get("/api/map/clusters")
def api_map_clusters():
    try:
        snap = _snapshot()
    except SourceError as exc:
        return _err(str(exc), status=502)
    m = _map_settings()
    zoom = _int_arg(request.args.get("zoom"), int(m.get("default_zoom", 2)))
    zoom = max(int(m.get("min_zoom", 1)), min(int(m.get("max_zoom", 19)), zoom))
    radius = safe_float(request.args.get("radius"), float(m.get("cluster_radius_px", 50.0)))
    all_nodes = normalize_map_nodes(snap.map_nodes)
    nodes = filter_map_nodes(all_nodes, **_map_filters(request.args))
    try:
        if _bool_arg(request.args.get("clustering"), True):
            clusters = compute_clusters(nodes, radius, zoom)
        else:
            clusters = compute_clusters(nodes, 0.0, zoom)
    except ValueError as exc:
        return _err(str(exc))
    by_id = {n.id: n for n in nodes}
    return _ok({
        "zoom": zoom,
        "radius": radius,
        "center": list(map_center(all_nodes)),
        "versions": map_versions(all_nodes),
        "total": len(nodes),
        "clusters": _cluster_payload(clusters, by_id, time.time()),
    })


@app.post("/api/map/expand")
def api_map_expand():
    if not request.is_json:
        return _err("expected JSON body")
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _err("expected JSON object")
    cid = body.get("cluster_id")
    if not cid:
        return _err("missing 'cluster_id'")
    try:
        snap = _snapshot()
    except SourceError as exc:
        return _err(str(exc), status=502)
    m = _map_settings()
    zoom = _int_arg(body.get("zoom"), int(m.get("default_zoom", 2)))
    radius = safe_float(body.get("radius"), float(m.get("cluster_radius_px", 50.0)))
    nodes = filter_map_nodes(normalize_map_nodes(snap.map_nodes), **_map_filters(body))
    try:
        clusters = compute_clusters(nodes, radius, zoom)
    except ValueError as exc:
        return _err(str(exc))
    target = next((c for c in clusters if c.id == cid), None)
    if target is None:
        return _err(f"cluster {cid} not found at zoom {zoom}", status=404)
    expansion = expand_cluster(target, nodes, zoom, radius, max_zoom=int(m.get("max_zoom", 19)))
    return _ok(expansion.to_dict())


@app.post("/api/overlay")
def api_overlay():
    if not request.is_json:
        return _err("expected JSON body")
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _err("expected JSON object")
    try:
        point = tuple(float(v) for v in body["point"])
        viewport = tuple(float(v) for v in body["viewport"])
        if len(point) != 2 or len(viewport) != 2:
            raise ValueError("point and viewport need two values")
        regions = _regions_from(body, viewport)
    except (KeyError, TypeError, ValueError) as exc:
        return _err(f"invalid overlay request: {exc}")
    ov = CFG.get("overlay") or {}
    placement = place_overlay(
        point,
        viewport,
        regions,
        popup_width=float(ov.get("popup_width", 300.0)),
        gap=float(ov.get("gap", 30.0)),
        lift=float(ov.get("lift", 10.0)),
    )
    return _ok(placement.to_dict())


@app.post("/api/refresh")
def api_refresh():
    if SOURCE is None:
        return _err("no data source configured", status=502)
    try:
        snap = SOURCE.refresh()
    except SourceError as exc:
        logging.exception("Exception in /api/refresh endpoint")
        return _err(str(exc), status=502)
    return _ok({"version": snap.version, "nodes": len(snap.nodes), "map_nodes": len(snap.map_nodes)})


# ----------------- Page -----------------

_INDEX_HTML = r"""<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<title>pNode Fleet</title>
<style>
body { font-family: system-ui, sans-serif; background:#0b0f14; color:#e5e7eb; margin:24px; }
table { border-collapse: collapse; width: 100%; font-size: 13px; }
th, td { padding: 6px 8px; border-bottom: 1px solid #1f2937; text-align: left; }
th { cursor: pointer; color:#9ca3af; text-transform: uppercase; font-size: 11px; }
.muted { color:#9ca3af; } .pill { padding:2px 8px; border-radius:999px; background:#1f2937; }
input, select, button { background:#111827; color:#e5e7eb; border:1px solid #374151; padding:4px 8px; }
</style>
</head>
<body>
<h2>pNode Directory <span class="muted" style="font-size:12px">(__SOURCE_LABEL__)</span></h2>
<div id="summary" class="muted"></div>
<p>
  <input id="search" placeholder="Search by ID, IP, region, or version..." size="40"/>
  <select id="status"><option value="all">All Status</option><option>online</option><option>offline</option></select>
  <select id="tier"><option value="all">All Tiers</option><option>Excellent</option><option>Good</option><option>Poor</option></select>
  <span id="count" class="muted"></span>
</p>
<table><thead><tr id="head"></tr></thead><tbody id="rows"></tbody></table>
<p id="pager"></p>
<script>
const VIEW = {sort: 'healthScore', dir: 'desc', page: 1};
async function fetchJSON(url, opts) {
  const r = await fetch(url, opts); const j = await r.json();
  if (!j.ok) throw new Error(j.error || 'request failed'); return j.data;
}
function cell(row, key) {
  if (key === 'storageUsed' || key === 'storageUtilization') return row.storageUtilization == null ? 'N/A' : row.storageUtilization.toFixed(1) + '%';
  if (key === 'ramUsed' || key === 'ramUtilization') return row.ramUtilization == null ? 'N/A' : row.ramUtilization.toFixed(1) + '%';
  if (key === 'healthScore') return row.healthDisplay;
  if (key === 'lastSeen') return row.lastSeen ? new Date(row.lastSeen * 1000).toLocaleString() : 'unknown';
  const v = row[key]; return v == null ? '' : v;
}
function sortBy(key) {
  if (VIEW.sort === key) VIEW.dir = VIEW.dir === 'asc' ? 'desc' : 'asc'; else { VIEW.sort = key; VIEW.dir = 'desc'; }
  VIEW.page = 1; refresh();
}
async function refresh() {
  const q = new URLSearchParams({search: document.getElementById('search').value,
    status: document.getElementById('status').value, tier: document.getElementById('tier').value,
    sort: VIEW.sort, dir: VIEW.dir, page: VIEW.page});
  const data = await fetchJSON('/api/view?' + q);
  document.getElementById('head').innerHTML = '<th>#</th>' + data.columns.map(c =>
    `<th onclick="sortBy('${c.key}')">${c.label}${VIEW.sort === c.key ? (VIEW.dir === 'asc' ? ' ↑' : ' ↓') : ''}</th>`).join('');
  document.getElementById('rows').innerHTML = data.empty
    ? `<tr><td colspan="${data.columns.length + 1}" class="muted">No nodes match the current filters</td></tr>`
    : data.items.map(row => '<tr><td>#' + row.rank + '</td>' + data.columns.map(c => `<td>${cell(row, c.key)}</td>`).join('') + '</tr>').join('');
  document.getElementById('count').textContent = `${data.totalCount} nodes` + (data.totalPages > 1 ? ` (Page ${data.currentPage} of ${data.totalPages})` : '');
  document.getElementById('pager').innerHTML = data.totalPages > 1 ? data.pageWindow.map(p =>
    p === null ? '…' : `<button ${p === data.currentPage ? 'disabled' : ''} onclick="VIEW.page=${p};refresh()">${p}</button>`).join(' ') : '';
}
async function loadSummary() {
  const s = await fetchJSON('/api/summary');
  document.getElementById('summary').innerHTML = `<span class="pill">${s.stats.networkHealth}</span> ` +
    `${s.stats.onlineNodes}/${s.stats.totalNodes} online · consensus ${s.stats.consensusVersion || 'unknown'}`;
}
['search', 'status', 'tier'].forEach(id => document.getElementById(id).addEventListener('input', () => { VIEW.page = 1; refresh(); }));
window.addEventListener('load', () => { refresh(); loadSummary(); });
setInterval(() => { refresh(); loadSummary(); }, 30000);
</script>
</body>
</html>
"""


@app.get("/")
def index():
    resp = make_response(_INDEX_HTML.replace("__SOURCE_LABEL__", SOURCE_LABEL))
    resp.headers["Content-Type"] = "text/html; charset=utf-8"
    return resp


# ----------------- CLI entry -----------------


def main():
    ap = argparse.ArgumentParser(description="pNode Fleet Dashboard")
    ap.add_argument("--config", help="YAML config file (default: $FLEET_CONFIG)")
    ap.add_argument("--data", help="Snapshot file (JSON/YAML) to serve")
    ap.add_argument("--remote", help="pNode backend base URL (e.g. http://127.0.0.1:3000)")
    ap.add_argument("--remote-timeout", type=float, help="Timeout in seconds when contacting the backend")
    ap.add_argument("--host")
    ap.add_argument("--port", type=int)
    ap.add_argument("--log-level", default="INFO")
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(f"config error: {exc}")
        return 2
    if args.data:
        cfg["source"]["file"] = args.data
        cfg["source"]["remote"] = None
    if args.remote:
        cfg["source"]["remote"] = args.remote
    if args.remote_timeout is not None:
        cfg["source"]["timeout_sec"] = args.remote_timeout
    _configure_runtime(cfg)

    host = args.host or cfg["ui"]["host"]
    port = args.port or int(cfg["ui"]["port"])
    app.run(host=host, port=port, debug=args.debug)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
