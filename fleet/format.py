#!/usr/bin/env python3
"""Display formatting for the CLI tools (storage units, percentages, relative time, short ids)."""

from __future__ import annotations

import time
from typing import Optional

_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def format_storage(num_bytes: Optional[float]) -> str:
    if num_bytes is None or num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    unit = 0
    while value >= 1024.0 and unit < len(_UNITS) - 1:
        value /= 1024.0
        unit += 1
    if unit == 0:
        return f"{int(value)} B"
    return f"{value:.2f} {_UNITS[unit]}"


def calculate_percentage(used: float, total: float, decimals: int = 1) -> float:
    if total <= 0:
        return 0.0
    return round(used / total * 100.0, decimals)


def format_percentage(value: Optional[float], decimals: int = 1) -> str:
    if value is None:
        return "N/A"
    return f"{value:.{decimals}f}%"


def format_relative_time(ts: Optional[float], now: Optional[float] = None) -> str:
    if ts is None:
        return "unknown"
    now = time.time() if now is None else now
    seconds = int(now - ts)
    if seconds < 0:
        return "Just now"
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def shorten_id(node_id: str, keep: int = 4) -> str:
    if len(node_id) <= keep * 2 + 2:
        return node_id
    return f"{node_id[:keep]}..{node_id[-keep:]}"


def utilization_band(percent: Optional[float]) -> str:
    """Bar color band for storage/RAM usage: >80 critical, >60 warning."""
    if percent is None:
        return "none"
    if percent > 80:
        return "critical"
    if percent > 60:
        return "warning"
    return "ok"
