#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fleet/records.py — tolerant normalization of raw pNode records.

A raw record is whatever the backend (or a snapshot file) handed us: any field
may be missing, null, a string where a number was expected, or a date that does
not parse. `normalize_record` turns it into a `NodeRecord` that every stage of
the query pipeline can consume without further checks.

Rules
-----
- Identity comes from `pubkey` (or `id`). It is never empty: a record without
  one gets a stable `unknown-<hash>` placeholder.
- An absent health score is stored as 0.0 *and* flagged with
  `has_health_score=False`, so sorting can use the number while display still
  shows "N/A".
- A `lastSeen` that cannot be parsed becomes `last_seen=None`; the raw value is
  kept for display/debugging.
- Strings default to "" and numbers to 0; byte counters are never negative.
- Normalization never raises.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

log = logging.getLogger(__name__)

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"
TIERS = ("Excellent", "Good", "Poor")

_TIER_LOOKUP = {t.lower(): t for t in TIERS}

# epoch values above this are taken as milliseconds
_EPOCH_MS_THRESHOLD = 1e11


# -----------------------------
# Coercion helpers
# -----------------------------

def safe_float(x: Any, default: float = 0.0) -> float:
    if isinstance(x, bool):
        return default
    try:
        v = float(x)
    except Exception:
        return default
    if math.isnan(v) or math.isinf(v):
        return default
    return v


def optional_float(x: Any) -> Optional[float]:
    """Like safe_float, but keeps "absent" distinguishable from zero."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, str) and not x.strip():
        return None
    try:
        v = float(x)
    except Exception:
        return None
    if math.isnan(v) or math.isinf(v):
        return None
    return v


def safe_str(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, str):
        return x.strip()
    if isinstance(x, (int, float)) and not isinstance(x, bool):
        return str(x)
    return ""


def parse_timestamp(value: Any) -> Optional[float]:
    """
    Parse a lastSeen-like value into epoch seconds.

    Accepts datetimes, ISO-8601 strings (a trailing "Z" is fine), and epoch
    numbers in seconds or milliseconds. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.timestamp()
    if isinstance(value, (int, float)):
        v = optional_float(value)
        if v is None:
            return None
        return v / 1000.0 if abs(v) > _EPOCH_MS_THRESHOLD else v
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        numeric = optional_float(text)
        if numeric is not None:
            return parse_timestamp(numeric)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        try:
            return dt.timestamp()
        except (OverflowError, OSError, ValueError):
            return None
    return None


def normalize_tier(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return _TIER_LOOKUP.get(value.strip().lower())


def _placeholder_id(raw: Any) -> str:
    try:
        blob = json.dumps(raw, sort_keys=True, default=str)
    except Exception:
        blob = repr(raw)
    return "unknown-" + hashlib.sha1(blob.encode("utf-8")).hexdigest()[:12]


# -----------------------------
# NodeRecord
# -----------------------------

@dataclass(frozen=True)
class NodeRecord:
    id: str
    status: str = ""
    health_score: float = 0.0
    has_health_score: bool = False
    tier: Optional[str] = None
    storage_used: float = 0.0
    storage_total: float = 0.0
    storage_utilization: Optional[float] = None
    ram_used: Optional[float] = None
    ram_total: Optional[float] = None
    version: str = ""
    region: str = ""
    ip: str = ""
    uptime: float = 0.0
    last_seen: Optional[float] = None
    last_seen_raw: Any = None

    @property
    def is_online(self) -> bool:
        return self.status == STATUS_ONLINE

    @property
    def has_ram(self) -> bool:
        return self.ram_used is not None and self.ram_total is not None

    @property
    def storage_ratio(self) -> Optional[float]:
        if self.storage_total > 0:
            return self.storage_used / self.storage_total
        return None

    @property
    def storage_percent(self) -> Optional[float]:
        """Explicit utilization if the analytics feed supplied one, else used/total. Unclamped."""
        if self.storage_utilization is not None:
            return self.storage_utilization
        ratio = self.storage_ratio
        return None if ratio is None else ratio * 100.0

    @property
    def storage_percent_display(self) -> Optional[float]:
        pct = self.storage_percent
        return None if pct is None else clamp_percent(pct)

    @property
    def ram_ratio(self) -> Optional[float]:
        if self.has_ram and self.ram_total > 0:  # type: ignore[operator]
            return self.ram_used / self.ram_total  # type: ignore[operator]
        return None

    @property
    def ram_percent(self) -> Optional[float]:
        ratio = self.ram_ratio
        return None if ratio is None else ratio * 100.0

    @property
    def health_display(self) -> str:
        return f"{self.health_score:.1f}" if self.has_health_score else "N/A"

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape (camelCase) used by the dashboard API."""
        return {
            "pubkey": self.id,
            "status": self.status,
            "healthScore": self.health_score if self.has_health_score else None,
            "healthDisplay": self.health_display,
            "tier": self.tier,
            "storageUsed": self.storage_used,
            "storageTotal": self.storage_total,
            "storageUtilization": self.storage_percent_display,
            "ramUsed": self.ram_used,
            "ramTotal": self.ram_total,
            "ramUtilization": None if self.ram_percent is None else clamp_percent(self.ram_percent),
            "version": self.version,
            "region": self.region,
            "ip": self.ip,
            "uptime": self.uptime,
            "lastSeen": self.last_seen,
        }


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


# -----------------------------
# Normalizer
# -----------------------------

def normalize_record(raw: Any) -> NodeRecord:
    if isinstance(raw, NodeRecord):
        return raw
    if not isinstance(raw, Mapping):
        log.debug("non-mapping node record replaced by placeholder: %r", raw)
        return NodeRecord(id=_placeholder_id(raw))

    node_id = safe_str(raw.get("pubkey")) or safe_str(raw.get("id"))
    if not node_id:
        node_id = _placeholder_id(dict(raw))
        log.debug("node record without identity; using %s", node_id)

    health = optional_float(raw.get("healthScore"))
    last_seen_raw = raw.get("lastSeen")
    last_seen = parse_timestamp(last_seen_raw)
    if last_seen is None and last_seen_raw not in (None, ""):
        log.debug("unparsable lastSeen on %s: %r", node_id, last_seen_raw)

    ram_used = optional_float(raw.get("ramUsed"))
    ram_total = optional_float(raw.get("ramTotal"))

    return NodeRecord(
        id=node_id,
        status=safe_str(raw.get("status")).lower(),
        health_score=health if health is not None else 0.0,
        has_health_score=health is not None,
        tier=normalize_tier(raw.get("tier")),
        storage_used=max(0.0, safe_float(raw.get("storageUsed"))),
        storage_total=max(0.0, safe_float(raw.get("storageTotal"))),
        storage_utilization=optional_float(raw.get("storageUtilization")),
        ram_used=None if ram_used is None else max(0.0, ram_used),
        ram_total=None if ram_total is None else max(0.0, ram_total),
        version=safe_str(raw.get("version")),
        region=safe_str(raw.get("region")),
        ip=safe_str(raw.get("ip")),
        uptime=max(0.0, safe_float(raw.get("uptime"))),
        last_seen=last_seen,
        last_seen_raw=last_seen_raw,
    )


def normalize_records(raws: Optional[Iterable[Any]]) -> List[NodeRecord]:
    return [normalize_record(r) for r in (raws or [])]
