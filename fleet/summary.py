#!/usr/bin/env python3
"""
Fleet-level aggregates for the dashboard header, metric cards and charts.

What it reports
---------------
- Totals: nodes, online count/percentage, average health (present scores only)
- Storage: used/capacity in bytes and TB
- Consensus version (most common non-empty version)
- Network health: healthy (>=60% online), degraded (>=40%), critical otherwise
- Distributions: health tier, storage utilization buckets, versions

Inputs are normalized NodeRecords; duplicates are collapsed by pubkey (first
record wins) before counting.
"""

from __future__ import annotations

import statistics
from collections import Counter
from typing import Any, Dict, Iterable, List

from .query import dedupe_records
from .records import TIERS, NodeRecord, normalize_records

TB = 1024.0 ** 4
HEALTHY_SHARE = 0.60
DEGRADED_SHARE = 0.40
STORAGE_BUCKETS = ("0-20%", "20-40%", "40-60%", "60-80%", "80-100%")


def network_health(online: int, total: int) -> str:
    if total <= 0:
        return "critical"
    share = online / total
    if share >= HEALTHY_SHARE:
        return "healthy"
    if share >= DEGRADED_SHARE:
        return "degraded"
    return "critical"


def consensus_version(records: Iterable[NodeRecord]) -> str:
    counts = Counter(r.version for r in records if r.version)
    if not counts:
        return ""
    # Counter preserves first-seen order, most_common is stable on ties
    return counts.most_common(1)[0][0]


def fleet_stats(raws: Iterable[Any]) -> Dict[str, Any]:
    records = dedupe_records(normalize_records(raws))
    total = len(records)
    online = sum(1 for r in records if r.is_online)
    scores = [r.health_score for r in records if r.has_health_score]
    used = sum(r.storage_used for r in records)
    capacity = sum(r.storage_total for r in records)
    return {
        "totalNodes": total,
        "onlineNodes": online,
        "offlineNodes": total - online,
        "onlinePercentage": (online / total * 100.0) if total else 0.0,
        "averageHealthScore": statistics.fmean(scores) if scores else None,
        "totalStorageUsed": used,
        "totalStorageCapacity": capacity,
        "totalStorageUsedTB": used / TB,
        "totalStorageCapacityTB": capacity / TB,
        "consensusVersion": consensus_version(records),
        "networkHealth": network_health(online, total),
    }


def tier_distribution(raws: Iterable[Any]) -> List[Dict[str, Any]]:
    records = dedupe_records(normalize_records(raws))
    counts = Counter(r.tier for r in records if r.tier)
    return [{"tier": t, "count": counts.get(t, 0)} for t in TIERS]


def storage_bucket(percent: float) -> str:
    idx = int(max(0.0, percent) // 20)
    return STORAGE_BUCKETS[min(idx, len(STORAGE_BUCKETS) - 1)]


def storage_distribution(raws: Iterable[Any]) -> List[Dict[str, Any]]:
    records = dedupe_records(normalize_records(raws))
    counts = Counter()
    for r in records:
        pct = r.storage_percent
        if pct is None:
            continue
        counts[storage_bucket(pct)] += 1
    return [{"range": b, "count": counts.get(b, 0)} for b in STORAGE_BUCKETS]


def version_distribution(raws: Iterable[Any]) -> List[Dict[str, Any]]:
    records = dedupe_records(normalize_records(raws))
    counts = Counter(r.version or "unknown" for r in records)
    return [
        {"version": v, "count": c}
        for v, c in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


def summarize(raws: Iterable[Any]) -> Dict[str, Any]:
    records = normalize_records(raws)
    return {
        "stats": fleet_stats(records),
        "tiers": tier_distribution(records),
        "storage": storage_distribution(records),
        "versions": version_distribution(records),
    }
