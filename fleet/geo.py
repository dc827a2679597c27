#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fleet/geo.py — world-map placement for pNodes.

Features
--------
- MapNode normalization (nodes that cannot be placed are dropped)
- Marker styling: color band from status/health, size from storage
  utilization, "recent" pulse for nodes seen in the last few minutes
- Greedy seed clustering in Web Mercator pixel space at a given zoom
- Click-to-expand: zoom to the level where a cluster splits, or spiderfy the
  members around the cluster center when it never splits before max zoom
- MarkerLayer: diff/rebuild bookkeeping so recomputes replace markers instead
  of leaking or duplicating them
- Map panel filters (online only / health tier / version), version list and
  map center

Clustering works on a fixed pixel radius, so the geographic radius it covers
halves with every zoom level.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .records import STATUS_ONLINE, optional_float, parse_timestamp, safe_float, safe_str

log = logging.getLogger(__name__)

TILE_SIZE = 256
MAX_LATITUDE = 85.0511287798
DEFAULT_RADIUS_PX = 50.0
DEFAULT_ZOOM = 2
MIN_ZOOM = 1
MAX_ZOOM = 19
DEFAULT_CENTER = (20.0, 0.0)

COLOR_OFFLINE = "hsl(0,0%,50%)"
COLOR_EXCELLENT = "hsl(142,71%,45%)"
COLOR_GOOD = "hsl(38,92%,50%)"
COLOR_POOR = "hsl(0,84%,60%)"

EXCELLENT_HEALTH = 85.0
GOOD_HEALTH = 60.0
RECENT_WINDOW_SEC = 5 * 60
MARKER_MIN_PX = 20.0
MARKER_MAX_PX = 40.0

# map-panel tier thresholds differ from the marker color bands
MAP_TIER_EXCELLENT = 90.0
MAP_TIER_GOOD = 75.0

# spiderfy geometry
CIRCLE_FOOT_SEPARATION = 25.0
CIRCLE_START_ANGLE = math.pi / 6
SPIRAL_SWITCHOVER = 9
SPIRAL_FOOT_SEPARATION = 28.0
SPIRAL_LENGTH_START = 11.0
SPIRAL_LENGTH_FACTOR = 5.0


# -----------------------------
# MapNode
# -----------------------------

@dataclass(frozen=True)
class MapNode:
    id: str
    lat: float
    lng: float
    status: str = ""
    health_score: float = 0.0
    uptime24h: float = 0.0
    storage_utilization: float = 0.0
    version: str = ""
    last_seen: Optional[float] = None
    region: str = ""
    country: str = ""
    city: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == STATUS_ONLINE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pubkey": self.id,
            "lat": self.lat,
            "lng": self.lng,
            "status": self.status,
            "healthScore": self.health_score,
            "uptime24h": self.uptime24h,
            "storageUtilization": self.storage_utilization,
            "version": self.version,
            "lastSeen": self.last_seen,
            "region": self.region,
            "country": self.country,
            "city": self.city,
        }


def normalize_map_node(raw: Any) -> Optional[MapNode]:
    """Return a MapNode, or None when the record has no usable identity or position."""
    if isinstance(raw, MapNode):
        return raw
    if not isinstance(raw, Mapping):
        return None
    node_id = safe_str(raw.get("pubkey")) or safe_str(raw.get("id"))
    lat = optional_float(raw.get("lat"))
    lng = optional_float(raw.get("lng", raw.get("lon")))
    if not node_id or lat is None or lng is None:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    city = safe_str(raw.get("city")) or None
    return MapNode(
        id=node_id,
        lat=lat,
        lng=lng,
        status=safe_str(raw.get("status")).lower(),
        health_score=safe_float(raw.get("healthScore")),
        uptime24h=safe_float(raw.get("uptime24h")),
        storage_utilization=safe_float(raw.get("storageUtilization")),
        version=safe_str(raw.get("version")),
        last_seen=parse_timestamp(raw.get("lastSeen")),
        region=safe_str(raw.get("region")),
        country=safe_str(raw.get("country")),
        city=city,
    )


def normalize_map_nodes(raws: Optional[Iterable[Any]]) -> List[MapNode]:
    """Placeable nodes in input order; the first record wins for a repeated id."""
    out: List[MapNode] = []
    seen = set()
    dropped = 0
    for raw in raws or []:
        node = normalize_map_node(raw)
        if node is None or node.id in seen:
            dropped += 1
            continue
        seen.add(node.id)
        out.append(node)
    if dropped:
        log.debug("dropped %d unplaceable or repeated map nodes", dropped)
    return out


# -----------------------------
# Marker styling
# -----------------------------

@dataclass(frozen=True)
class MarkerStyle:
    color: str
    band: str
    size: float
    recent: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"color": self.color, "band": self.band, "size": self.size, "recent": self.recent}


def health_band(node: MapNode) -> str:
    if not node.is_online:
        return "offline"
    if node.health_score >= EXCELLENT_HEALTH:
        return "excellent"
    if node.health_score >= GOOD_HEALTH:
        return "good"
    return "poor"


_BAND_COLORS = {
    "offline": COLOR_OFFLINE,
    "excellent": COLOR_EXCELLENT,
    "good": COLOR_GOOD,
    "poor": COLOR_POOR,
}


def marker_size(storage_utilization: float, min_px: float = MARKER_MIN_PX, max_px: float = MARKER_MAX_PX) -> float:
    util = max(0.0, min(100.0, storage_utilization))
    return min_px + util / 100.0 * (max_px - min_px)


def is_recent(node: MapNode, now: Optional[float] = None, window_sec: float = RECENT_WINDOW_SEC) -> bool:
    if not node.is_online or node.last_seen is None:
        return False
    now = time.time() if now is None else now
    return node.last_seen > now - window_sec


def marker_style(
    node: MapNode,
    now: Optional[float] = None,
    *,
    window_sec: float = RECENT_WINDOW_SEC,
    min_px: float = MARKER_MIN_PX,
    max_px: float = MARKER_MAX_PX,
) -> MarkerStyle:
    band = health_band(node)
    return MarkerStyle(
        color=_BAND_COLORS[band],
        band=band,
        size=marker_size(node.storage_utilization, min_px, max_px),
        recent=is_recent(node, now, window_sec),
    )


# -----------------------------
# Projection
# -----------------------------

def world_size(zoom: float) -> float:
    return TILE_SIZE * (2.0 ** zoom)


def project(lat: Any, lng: Any, zoom: float) -> np.ndarray:
    """Web Mercator lat/lng (degrees) -> pixel coordinates at `zoom`, shape (n, 2)."""
    lat_arr = np.clip(np.asarray(lat, dtype=float), -MAX_LATITUDE, MAX_LATITUDE)
    lng_arr = np.asarray(lng, dtype=float)
    size = world_size(zoom)
    siny = np.sin(np.radians(lat_arr))
    x = (lng_arr + 180.0) / 360.0 * size
    y = (0.5 - np.log((1.0 + siny) / (1.0 - siny)) / (4.0 * math.pi)) * size
    return np.column_stack([np.atleast_1d(x), np.atleast_1d(y)])


def unproject(x: float, y: float, zoom: float) -> Tuple[float, float]:
    size = world_size(zoom)
    lng = x / size * 360.0 - 180.0
    n = math.pi - 2.0 * math.pi * y / size
    lat = math.degrees(math.atan(math.sinh(n)))
    return lat, lng


# -----------------------------
# Clustering
# -----------------------------

@dataclass(frozen=True)
class Cluster:
    id: str
    lat: float
    lng: float
    members: Tuple[str, ...]
    bounds: Tuple[float, float, float, float]  # south, west, north, east
    online: int
    zoom: int = field(compare=False)

    @property
    def count(self) -> int:
        return len(self.members)

    @property
    def is_singleton(self) -> bool:
        return len(self.members) == 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "lat": self.lat,
            "lng": self.lng,
            "count": self.count,
            "online": self.online,
            "members": list(self.members),
            "bounds": list(self.bounds),
            "singleton": self.is_singleton,
            "zoom": self.zoom,
        }


def cluster_id(members: Sequence[str]) -> str:
    if len(members) == 1:
        return f"node:{members[0]}"
    digest = hashlib.sha1("|".join(sorted(members)).encode("utf-8")).hexdigest()[:12]
    return f"cluster:{digest}"


def _build_cluster(nodes: Sequence[MapNode], zoom: int) -> Cluster:
    lats = [n.lat for n in nodes]
    lngs = [n.lng for n in nodes]
    members = tuple(n.id for n in nodes)
    return Cluster(
        id=cluster_id(members),
        lat=sum(lats) / len(lats),
        lng=sum(lngs) / len(lngs),
        members=members,
        bounds=(min(lats), min(lngs), max(lats), max(lngs)),
        online=sum(1 for n in nodes if n.is_online),
        zoom=zoom,
    )


def compute_clusters(map_nodes: Iterable[Any], radius: float = DEFAULT_RADIUS_PX, zoom: int = DEFAULT_ZOOM) -> List[Cluster]:
    """
    Partition placeable nodes into clusters at `zoom`.

    Greedy seeding in input order: a point joins the nearest existing seed
    within `radius` pixels, otherwise it becomes a new seed. Singletons are
    returned as one-member clusters.
    """
    if radius < 0:
        raise ValueError(f"radius must be >= 0, got {radius}")
    nodes = normalize_map_nodes(map_nodes)
    if not nodes:
        return []

    xy = project([n.lat for n in nodes], [n.lng for n in nodes], zoom)
    seeds = np.empty_like(xy)
    groups: List[List[int]] = []
    for i in range(len(nodes)):
        k = len(groups)
        if k:
            d = np.hypot(seeds[:k, 0] - xy[i, 0], seeds[:k, 1] - xy[i, 1])
            j = int(np.argmin(d))
            if d[j] <= radius:
                groups[j].append(i)
                continue
        seeds[k] = xy[i]
        groups.append([i])

    return [_build_cluster([nodes[i] for i in g], zoom) for g in groups]


# -----------------------------
# Expansion (zoom / spiderfy)
# -----------------------------

@dataclass(frozen=True)
class SpiderLeg:
    id: str
    dx: float
    dy: float
    lat: float
    lng: float


@dataclass(frozen=True)
class ClusterExpansion:
    action: str  # "marker" | "zoom" | "spiderfy"
    cluster_id: str
    members: Tuple[str, ...]
    target_zoom: int
    bounds: Tuple[float, float, float, float]
    legs: Tuple[SpiderLeg, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "clusterId": self.cluster_id,
            "members": list(self.members),
            "targetZoom": self.target_zoom,
            "bounds": list(self.bounds),
            "legs": [
                {"pubkey": leg.id, "dx": leg.dx, "dy": leg.dy, "lat": leg.lat, "lng": leg.lng}
                for leg in self.legs
            ],
        }


def spider_offsets(count: int) -> List[Tuple[float, float]]:
    """Pixel offsets around the cluster center: a circle for small groups, a spiral otherwise."""
    if count <= 0:
        return []
    if count < SPIRAL_SWITCHOVER:
        circumference = CIRCLE_FOOT_SEPARATION * (2 + count)
        leg = circumference / (2.0 * math.pi)
        step = 2.0 * math.pi / count
        return [
            (leg * math.cos(CIRCLE_START_ANGLE + i * step), leg * math.sin(CIRCLE_START_ANGLE + i * step))
            for i in range(count)
        ]
    out: List[Tuple[float, float]] = [(0.0, 0.0)] * count
    leg = SPIRAL_LENGTH_START
    angle = 0.0
    for i in range(count - 1, -1, -1):
        angle += SPIRAL_FOOT_SEPARATION / leg + i * 0.0005
        out[i] = (leg * math.cos(angle), leg * math.sin(angle))
        leg += 2.0 * math.pi * SPIRAL_LENGTH_FACTOR / angle
    return out


def expand_cluster(
    cluster: Cluster,
    map_nodes: Iterable[Any],
    zoom: int,
    radius: float = DEFAULT_RADIUS_PX,
    max_zoom: int = MAX_ZOOM,
) -> ClusterExpansion:
    wanted = set(cluster.members)
    by_id = {n.id: n for n in normalize_map_nodes(map_nodes) if n.id in wanted}
    members = [by_id[m] for m in cluster.members if m in by_id]

    if len(members) <= 1:
        return ClusterExpansion("marker", cluster.id, cluster.members, zoom, cluster.bounds)

    stacked = len({(n.lat, n.lng) for n in members}) == 1
    spider_zoom = zoom
    if not stacked:
        for z in range(zoom + 1, max_zoom + 1):
            if len(compute_clusters(members, radius, z)) > 1:
                return ClusterExpansion("zoom", cluster.id, cluster.members, z, cluster.bounds)
        spider_zoom = max(zoom, max_zoom)

    # members cannot be told apart by zooming: fan them out around the center
    center = project([cluster.lat], [cluster.lng], spider_zoom)[0]
    legs = []
    for node, (dx, dy) in zip(members, spider_offsets(len(members))):
        lat, lng = unproject(center[0] + dx, center[1] + dy, spider_zoom)
        legs.append(SpiderLeg(node.id, dx, dy, lat, lng))
    return ClusterExpansion("spiderfy", cluster.id, cluster.members, spider_zoom, cluster.bounds, tuple(legs))


# -----------------------------
# Marker layer lifecycle
# -----------------------------

@dataclass(frozen=True)
class LayerDiff:
    added: List[Cluster]
    removed: List[Cluster]
    kept: List[str]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class MarkerLayer:
    """
    Bookkeeping for the markers currently on the map.

    `sync` applies only the adds/removes needed to go from the current marker
    set to a new one; `rebuild` tears everything down and re-adds it. Either
    way the layer ends up holding exactly the new set.
    """

    def __init__(self) -> None:
        self._markers: Dict[str, Cluster] = {}

    @property
    def ids(self) -> List[str]:
        return list(self._markers)

    def __len__(self) -> int:
        return len(self._markers)

    def __contains__(self, marker_id: object) -> bool:
        return marker_id in self._markers

    @staticmethod
    def _index(clusters: Iterable[Cluster]) -> Dict[str, Cluster]:
        out: Dict[str, Cluster] = {}
        for c in clusters:
            out.setdefault(c.id, c)
        return out

    def sync(self, clusters: Iterable[Cluster]) -> LayerDiff:
        new = self._index(clusters)
        old = self._markers
        added = [c for k, c in new.items() if old.get(k) != c]
        removed = [c for k, c in old.items() if new.get(k) != c]
        kept = [k for k, c in new.items() if old.get(k) == c]
        self._markers = new
        return LayerDiff(added=added, removed=removed, kept=kept)

    def rebuild(self, clusters: Iterable[Cluster]) -> LayerDiff:
        removed = list(self._markers.values())
        self._markers = self._index(clusters)
        return LayerDiff(added=list(self._markers.values()), removed=removed, kept=[])

    def clear(self) -> LayerDiff:
        return self.rebuild([])


# -----------------------------
# Map panel helpers
# -----------------------------

def filter_map_nodes(
    nodes: Iterable[MapNode],
    online_only: bool = False,
    health_tier: str = "all",
    version: str = "all",
) -> List[MapNode]:
    out: List[MapNode] = []
    for n in nodes:
        if online_only and not n.is_online:
            continue
        if health_tier == "Excellent" and n.health_score < MAP_TIER_EXCELLENT:
            continue
        if health_tier == "Good" and not (MAP_TIER_GOOD <= n.health_score < MAP_TIER_EXCELLENT):
            continue
        if health_tier == "Poor" and n.health_score >= MAP_TIER_GOOD:
            continue
        if version not in ("", "all") and n.version != version:
            continue
        out.append(n)
    return out


def map_versions(nodes: Iterable[MapNode]) -> List[str]:
    return sorted({n.version for n in nodes})


def map_center(nodes: Sequence[MapNode]) -> Tuple[float, float]:
    if not nodes:
        return DEFAULT_CENTER
    return (
        sum(n.lat for n in nodes) / len(nodes),
        sum(n.lng for n in nodes) / len(nodes),
    )
