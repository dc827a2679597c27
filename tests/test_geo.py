from __future__ import annotations

import math

import pytest

from fleet.geo import (
    COLOR_EXCELLENT,
    COLOR_GOOD,
    COLOR_OFFLINE,
    COLOR_POOR,
    DEFAULT_CENTER,
    MapNode,
    MarkerLayer,
    compute_clusters,
    expand_cluster,
    filter_map_nodes,
    is_recent,
    map_center,
    map_versions,
    marker_size,
    marker_style,
    normalize_map_nodes,
    project,
    spider_offsets,
    unproject,
)

NOW = 1_800_000_000.0


def _node(pubkey: str, lat: float, lng: float, **fields) -> MapNode:
    base = dict(status="online", health_score=90.0, storage_utilization=50.0, version="0.8.0")
    base.update(fields)
    return MapNode(id=pubkey, lat=lat, lng=lng, **base)


FRANKFURT = _node("fra", 50.11, 8.68)
PARIS = _node("par", 48.86, 2.35)
ASHBURN = _node("iad", 39.04, -77.49, version="0.7.3")


# ----- styling -----


def test_recent_flag_uses_five_minute_window() -> None:
    assert is_recent(_node("a", 0, 0, last_seen=NOW - 120), NOW) is True
    assert is_recent(_node("b", 0, 0, last_seen=NOW - 600), NOW) is False
    assert is_recent(_node("c", 0, 0, status="offline", last_seen=NOW - 10), NOW) is False
    assert is_recent(_node("d", 0, 0, last_seen=None), NOW) is False


def test_marker_colors_follow_status_and_health() -> None:
    assert marker_style(_node("a", 0, 0, health_score=85.0), NOW).color == COLOR_EXCELLENT
    assert marker_style(_node("b", 0, 0, health_score=60.0), NOW).color == COLOR_GOOD
    assert marker_style(_node("c", 0, 0, health_score=59.9), NOW).color == COLOR_POOR
    offline = marker_style(_node("d", 0, 0, status="offline", health_score=99.0), NOW)
    assert offline.color == COLOR_OFFLINE
    assert offline.band == "offline"


def test_marker_size_is_linear_and_clamped() -> None:
    assert marker_size(0) == 20.0
    assert marker_size(50) == 30.0
    assert marker_size(100) == 40.0
    assert marker_size(250) == 40.0
    assert marker_size(-5) == 20.0


# ----- normalization -----


def test_unplaceable_and_repeated_nodes_are_dropped() -> None:
    nodes = normalize_map_nodes(
        [
            {"pubkey": "ok", "lat": "10.5", "lng": 20, "status": "online", "lastSeen": "2024-01-01T00:00:00Z"},
            {"pubkey": "no-lat", "lng": 20},
            {"pubkey": "bad-lat", "lat": 120, "lng": 20},
            {"lat": 1, "lng": 1},
            {"pubkey": "ok", "lat": 0, "lng": 0},
            "not a node",
        ]
    )
    assert [n.id for n in nodes] == ["ok"]
    assert nodes[0].lat == 10.5
    assert nodes[0].last_seen is not None


# ----- projection -----


def test_projection_round_trips() -> None:
    xy = project([FRANKFURT.lat], [FRANKFURT.lng], 5)
    assert xy.shape == (1, 2)
    lat, lng = unproject(xy[0, 0], xy[0, 1], 5)
    assert lat == pytest.approx(FRANKFURT.lat, abs=1e-9)
    assert lng == pytest.approx(FRANKFURT.lng, abs=1e-9)


# ----- clustering -----


def test_clusters_reflow_with_zoom() -> None:
    nodes = [FRANKFURT, PARIS, ASHBURN]
    low = compute_clusters(nodes, 50, 2)
    high = compute_clusters(nodes, 50, 10)
    assert len(low) == 2
    assert len(high) == 3
    for clusters in (low, high):
        members = sorted(m for c in clusters for m in c.members)
        assert members == ["fra", "iad", "par"]


def test_cluster_ids_and_aggregates() -> None:
    clusters = compute_clusters([FRANKFURT, PARIS, ASHBURN], 50, 2)
    europe = next(c for c in clusters if c.count == 2)
    alone = next(c for c in clusters if c.is_singleton)
    assert europe.id.startswith("cluster:")
    assert alone.id == "node:iad"
    assert europe.online == 2
    south, west, north, east = europe.bounds
    assert (south, west, north, east) == (PARIS.lat, PARIS.lng, FRANKFURT.lat, FRANKFURT.lng)
    # same membership gives the same id regardless of input order
    again = compute_clusters([PARIS, FRANKFURT], 50, 2)
    assert again[0].id == europe.id


def test_zero_radius_only_merges_identical_positions() -> None:
    twin = _node("twin", FRANKFURT.lat, FRANKFURT.lng)
    clusters = compute_clusters([FRANKFURT, twin, PARIS], 0, 2)
    assert sorted(c.count for c in clusters) == [1, 2]


def test_clustering_accepts_raw_dicts_and_rejects_negative_radius() -> None:
    clusters = compute_clusters([{"pubkey": "a", "lat": 1, "lng": 1, "status": "online"}], 50, 3)
    assert [c.id for c in clusters] == ["node:a"]
    assert compute_clusters([], 50, 3) == []
    with pytest.raises(ValueError):
        compute_clusters([FRANKFURT], -1, 3)


# ----- expansion -----


def test_expand_zooms_to_first_splitting_level() -> None:
    nodes = [FRANKFURT, PARIS]
    cluster = compute_clusters(nodes, 50, 2)[0]
    exp = expand_cluster(cluster, nodes, 2, 50)
    assert exp.action == "zoom"
    assert exp.target_zoom > 2
    assert len(compute_clusters(nodes, 50, exp.target_zoom)) == 2
    assert len(compute_clusters(nodes, 50, exp.target_zoom - 1)) == 1
    assert set(exp.members) == {"fra", "par"}


def test_expand_spiderfies_stacked_nodes() -> None:
    stacked = [_node(f"s{i}", 10.0, 10.0) for i in range(4)]
    cluster = compute_clusters(stacked, 50, 6)[0]
    exp = expand_cluster(cluster, stacked, 6, 50)
    assert exp.action == "spiderfy"
    assert exp.target_zoom == 6
    assert [leg.id for leg in exp.legs] == ["s0", "s1", "s2", "s3"]
    assert len({(round(leg.dx, 6), round(leg.dy, 6)) for leg in exp.legs}) == 4
    assert exp.to_dict()["legs"][0]["pubkey"] == "s0"


def test_expand_singleton_is_plain_marker() -> None:
    cluster = compute_clusters([ASHBURN], 50, 4)[0]
    assert expand_cluster(cluster, [ASHBURN], 4).action == "marker"


def test_spider_offsets_circle_then_spiral() -> None:
    circle = spider_offsets(5)
    radii = {round(math.hypot(dx, dy), 6) for dx, dy in circle}
    assert len(radii) == 1
    spiral = spider_offsets(12)
    assert len(spiral) == 12
    assert len({round(math.hypot(dx, dy), 6) for dx, dy in spiral}) > 1
    assert spider_offsets(0) == []


# ----- marker layer -----


def test_marker_layer_sync_is_idempotent() -> None:
    layer = MarkerLayer()
    clusters = compute_clusters([FRANKFURT, PARIS, ASHBURN], 50, 2)
    first = layer.sync(clusters)
    assert len(first.added) == 2 and first.removed == []
    second = layer.sync(clusters)
    assert not second.changed
    assert len(layer) == 2

    zoomed = compute_clusters([FRANKFURT, PARIS, ASHBURN], 50, 10)
    diff = layer.sync(zoomed)
    assert len(layer) == 3
    assert {c.id for c in diff.removed} == {c.id for c in clusters if c.count == 2}
    assert "node:iad" in diff.kept
    assert sorted(layer.ids) == sorted(c.id for c in zoomed)


def test_marker_layer_rebuild_and_clear() -> None:
    layer = MarkerLayer()
    clusters = compute_clusters([FRANKFURT, ASHBURN], 50, 2)
    layer.sync(clusters)
    rebuilt = layer.rebuild(clusters)
    assert len(rebuilt.added) == len(rebuilt.removed) == 2
    assert len(layer) == 2
    layer.clear()
    assert len(layer) == 0
    assert "node:iad" not in layer


# ----- map panel helpers -----


def test_map_filters() -> None:
    nodes = [
        _node("ex", 0, 0, health_score=92.0),
        _node("good", 0, 0, health_score=80.0),
        _node("poor", 0, 0, health_score=60.0, version="0.7.3"),
        _node("off", 0, 0, status="offline", health_score=95.0),
    ]
    assert [n.id for n in filter_map_nodes(nodes, online_only=True)] == ["ex", "good", "poor"]
    assert [n.id for n in filter_map_nodes(nodes, health_tier="Excellent")] == ["ex", "off"]
    assert [n.id for n in filter_map_nodes(nodes, health_tier="Good")] == ["good"]
    assert [n.id for n in filter_map_nodes(nodes, health_tier="Poor")] == ["poor"]
    assert [n.id for n in filter_map_nodes(nodes, version="0.7.3")] == ["poor"]
    assert map_versions(nodes) == ["0.7.3", "0.8.0"]


def test_map_center() -> None:
    assert map_center([]) == DEFAULT_CENTER
    lat, lng = map_center([_node("a", 10, 20), _node("b", 30, 40)])
    assert (lat, lng) == (20.0, 30.0)
