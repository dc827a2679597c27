#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fleet/query.py — in-memory query pipeline for the pNode directory.

Pipeline
--------
    normalize -> filter -> sort -> dedupe -> paginate

`compute_view(records, state)` runs the whole thing from scratch. Every stage is
a plain function over a list, so callers can also use them one by one.

Notes
-----
- Deduplication runs *after* sorting: "first occurrence" means first in the
  current sort order. With two copies of the same pubkey, sorting by health
  score desc keeps the healthier copy.
- Sorting by `storageUsed` orders by utilization ratio, not by absolute bytes.
- Sorting is stable in both directions: `desc` flips the comparison, it does
  not reverse the output, so equal keys keep their input order.
- The paginator never raises for an out-of-range page; it returns an empty
  slice and reports the nearest valid page in `clamped_page`.
"""

from __future__ import annotations

import locale
import math
from dataclasses import dataclass, field, replace
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .records import NodeRecord, normalize_records

ALL = "all"
ASC = "asc"
DESC = "desc"
DEFAULT_PAGE_SIZE = 20

STATUS_RANK = {"online": 0, "offline": 1}
TIER_RANK = {"Excellent": 0, "Good": 1, "Poor": 2}


# -----------------------------
# Columns
# -----------------------------

@dataclass(frozen=True)
class ColumnConfig:
    key: str
    label: str
    default_visible: bool = True


COLUMNS: Tuple[ColumnConfig, ...] = (
    ColumnConfig("pubkey", "pNode ID"),
    ColumnConfig("status", "Status"),
    ColumnConfig("healthScore", "Health Score"),
    ColumnConfig("tier", "Tier"),
    ColumnConfig("storageUsed", "Storage"),
    ColumnConfig("storageUtilization", "Storage Util %"),
    ColumnConfig("ramUsed", "RAM"),
    ColumnConfig("ramUtilization", "RAM Util %"),
    ColumnConfig("version", "Version"),
    ColumnConfig("region", "Region"),
    ColumnConfig("lastSeen", "Last Seen"),
)
COLUMN_KEYS = tuple(c.key for c in COLUMNS)


def default_column_visibility() -> Dict[str, bool]:
    return {c.key: c.default_visible for c in COLUMNS}


# -----------------------------
# View state
# -----------------------------

@dataclass(frozen=True)
class ViewState:
    """Snapshot of the table controls. Owned by the caller, never mutated here."""

    search_text: str = ""
    status_filter: str = ALL
    tier_filter: str = ALL
    sort_field: str = "healthScore"
    sort_direction: str = DESC
    current_page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    column_visibility: Mapping[str, bool] = field(default_factory=default_column_visibility, hash=False)

    def with_search(self, text: str) -> "ViewState":
        return replace(self, search_text=text, current_page=1)

    def with_status(self, status: str) -> "ViewState":
        return replace(self, status_filter=status, current_page=1)

    def with_tier(self, tier: str) -> "ViewState":
        return replace(self, tier_filter=tier, current_page=1)

    def with_sort(self, field_name: str, direction: Optional[str] = None) -> "ViewState":
        """Header-click semantics: same field toggles direction, a new field starts at desc."""
        if direction is None:
            if field_name == self.sort_field:
                direction = ASC if self.sort_direction == DESC else DESC
            else:
                direction = DESC
        return replace(self, sort_field=field_name, sort_direction=direction, current_page=1)

    def with_page(self, page: int) -> "ViewState":
        return replace(self, current_page=page)

    def toggle_column(self, key: str) -> "ViewState":
        vis = dict(self.column_visibility)
        vis[key] = not vis.get(key, True)
        return replace(self, column_visibility=vis)

    def visible_columns(self) -> List[ColumnConfig]:
        return [c for c in COLUMNS if self.column_visibility.get(c.key, c.default_visible)]


# -----------------------------
# Filter
# -----------------------------

def _is_all(value: Optional[str]) -> bool:
    return value is None or value == "" or value == ALL


def filter_records(
    records: Iterable[NodeRecord],
    search_text: str = "",
    status_filter: Optional[str] = ALL,
    tier_filter: Optional[str] = ALL,
) -> List[NodeRecord]:
    query = (search_text or "").strip().lower()
    out: List[NodeRecord] = []
    for r in records:
        if query and not (
            query in r.id.lower()
            or query in r.region.lower()
            or query in r.version.lower()
            or query in r.ip.lower()
        ):
            continue
        if not _is_all(status_filter) and r.status != status_filter:
            continue
        if not _is_all(tier_filter) and (r.tier is None or r.tier != tier_filter):
            continue
        out.append(r)
    return out


# -----------------------------
# Sort
# -----------------------------

def _storage_ratio_key(r: NodeRecord) -> float:
    return r.storage_used / r.storage_total if r.storage_total > 0 else 0.0


def _storage_util_key(r: NodeRecord) -> float:
    if r.storage_utilization is not None:
        return r.storage_utilization
    return _storage_ratio_key(r) * 100.0


def _ram_used_key(r: NodeRecord) -> float:
    return r.ram_used if r.has_ram else 0.0  # type: ignore[return-value]


def _ram_util_key(r: NodeRecord) -> float:
    pct = r.ram_percent
    return pct if pct is not None else 0.0


SORT_KEYS: Dict[str, Callable[[NodeRecord], Any]] = {
    "id": lambda r: r.id,
    "status": lambda r: STATUS_RANK.get(r.status, 2),
    "healthScore": lambda r: r.health_score,
    "tier": lambda r: TIER_RANK.get(r.tier or "", 3),
    "storageUsed": _storage_ratio_key,
    "storageUtilization": _storage_util_key,
    "ramUsed": _ram_used_key,
    "ramUtilization": _ram_util_key,
    "version": lambda r: r.version,
    "region": lambda r: r.region,
    "lastSeen": lambda r: r.last_seen,
}
SORT_KEYS["pubkey"] = SORT_KEYS["id"]
SORT_FIELDS = tuple(SORT_KEYS)


def compare_text(a: str, b: str) -> int:
    """Locale-aware ordering; case-insensitive first, exact text breaks ties."""
    try:
        c = locale.strcoll(a.casefold(), b.casefold())
        if c == 0:
            c = locale.strcoll(a, b)
    except ValueError:
        # strcoll rejects embedded NULs; fall back to code-point order
        ka, kb = (a.casefold(), a), (b.casefold(), b)
        c = (ka > kb) - (ka < kb)
    return (c > 0) - (c < 0)


def compare_keys(a: Any, b: Any) -> int:
    # None marks an unparsable value (lastSeen): neutral against anything
    if a is None or b is None:
        return 0
    if isinstance(a, str) or isinstance(b, str):
        return compare_text(str(a), str(b))
    delta = a - b
    return (delta > 0) - (delta < 0)


def sort_records(records: Iterable[NodeRecord], field_name: str, direction: str = DESC) -> List[NodeRecord]:
    key_fn = SORT_KEYS.get(field_name)
    if key_fn is None:
        raise ValueError(f"unknown sort field: {field_name!r}")
    if direction not in (ASC, DESC):
        raise ValueError(f"unknown sort direction: {direction!r}")
    decorated = [(key_fn(r), r) for r in records]
    decorated.sort(key=cmp_to_key(lambda x, y: compare_keys(x[0], y[0])), reverse=direction == DESC)
    return [r for _, r in decorated]


# -----------------------------
# Dedupe
# -----------------------------

def dedupe_records(
    records: Iterable[NodeRecord],
    key: Callable[[NodeRecord], str] = lambda r: r.id,
) -> List[NodeRecord]:
    seen = set()
    out: List[NodeRecord] = []
    for r in records:
        k = key(r)
        if k in seen:
            continue
        seen.add(k)
        out.append(r)
    return out


# -----------------------------
# Paginate
# -----------------------------

@dataclass(frozen=True)
class Page:
    items: List[NodeRecord]
    total_pages: int
    clamped_page: int
    current_page: int
    total_count: int
    start_index: int

    def rank(self, index_in_page: int) -> int:
        """1-based rank of the page item within the full collection."""
        return self.start_index + index_in_page + 1

    def ranked_items(self) -> List[Tuple[int, NodeRecord]]:
        return [(self.rank(i), r) for i, r in enumerate(self.items)]

    @property
    def has_previous(self) -> bool:
        return self.total_pages > 0 and self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages


def paginate(records: Sequence[NodeRecord], page_size: int = DEFAULT_PAGE_SIZE, current_page: int = 1) -> Page:
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    count = len(records)
    total_pages = math.ceil(count / page_size)
    clamped = min(max(1, current_page), max(1, total_pages))
    if 1 <= current_page <= total_pages:
        start = (current_page - 1) * page_size
        items = list(records[start:start + page_size])
    else:
        start = max(0, (current_page - 1) * page_size)
        items = []
    return Page(
        items=items,
        total_pages=total_pages,
        clamped_page=clamped,
        current_page=current_page,
        total_count=count,
        start_index=start,
    )


def rank_of(collection: Sequence[NodeRecord], record_id: str) -> Optional[int]:
    for i, r in enumerate(collection):
        if r.id == record_id:
            return i + 1
    return None


def page_window(current_page: int, total_pages: int) -> List[Optional[int]]:
    """
    Page numbers for the pagination control: first, last, current +/- 1, with
    None standing in for an ellipsis at current +/- 2.
    """
    out: List[Optional[int]] = []
    for p in range(1, total_pages + 1):
        if p == 1 or p == total_pages or current_page - 1 <= p <= current_page + 1:
            out.append(p)
        elif p == current_page - 2 or p == current_page + 2:
            out.append(None)
    return out


# -----------------------------
# Entry point
# -----------------------------

@dataclass(frozen=True)
class ViewResult:
    items: List[NodeRecord]
    total_count: int
    total_pages: int
    page: Page
    collection: List[NodeRecord]
    columns: List[ColumnConfig]

    @property
    def is_empty(self) -> bool:
        return self.total_count == 0

    @property
    def ranks(self) -> List[int]:
        return [self.page.rank(i) for i in range(len(self.items))]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [dict(r.to_dict(), rank=rank) for rank, r in self.page.ranked_items()],
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "currentPage": self.page.current_page,
            "clampedPage": self.page.clamped_page,
            "pageWindow": page_window(self.page.clamped_page, self.total_pages),
            "columns": [{"key": c.key, "label": c.label} for c in self.columns],
            "empty": self.is_empty,
        }


def compute_view(records: Iterable[Any], state: Optional[ViewState] = None) -> ViewResult:
    state = state or ViewState()
    normalized = normalize_records(records)
    filtered = filter_records(normalized, state.search_text, state.status_filter, state.tier_filter)
    ordered = sort_records(filtered, state.sort_field, state.sort_direction)
    collection = dedupe_records(ordered)
    page = paginate(collection, state.page_size, state.current_page)
    return ViewResult(
        items=page.items,
        total_count=len(collection),
        total_pages=page.total_pages,
        page=page,
        collection=collection,
        columns=state.visible_columns(),
    )
