#!/usr/bin/env python3
"""
Summarize a pNode fleet snapshot (file or remote backend).

Examples
--------
# Basic console summary
python3 tools/summarize_fleet.py --data snapshot.json

# Against the live backend, export CSV inventory + Markdown report
python3 tools/summarize_fleet.py --remote http://127.0.0.1:3000 --csv out/inventory.csv --md out/report.md

# JSON dump for other tooling
python3 tools/summarize_fleet.py --data snapshot.yaml --json out/summary.json

What it reports
---------------
- Totals: nodes, online/offline, network health, consensus version
- Average health score (nodes with a score only)
- Storage used/capacity and overall utilization
- Tier mix, storage utilization buckets, version mix
- Top-N leaderboards (health score, storage utilization) via the same
  sort/dedupe pipeline the dashboard table uses, with a storage band
  (ok/warning/critical) and relative last-seen time per node

Outputs
-------
- Console summary (always)
- CSV inventory (optional): one row per node, pandas frame
- JSON summary (optional)
- Markdown report (optional)
"""

from __future__ import annotations
import argparse, json, logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from fleet.format import (
    calculate_percentage,
    format_percentage,
    format_relative_time,
    format_storage,
    shorten_id,
    utilization_band,
)
from fleet.query import dedupe_records, sort_records
from fleet.records import NodeRecord, normalize_records
from fleet.source import SnapshotSource, SourceError
from fleet.summary import summarize

# ----------------- rows -----------------

def node_row(r: NodeRecord) -> Dict[str, Any]:
    return {
        "pubkey": r.id,
        "status": r.status,
        "health_score": r.health_score if r.has_health_score else None,
        "tier": r.tier,
        "storage_used": r.storage_used,
        "storage_total": r.storage_total,
        "storage_pct": r.storage_percent_display,
        "ram_pct": r.ram_percent,
        "version": r.version,
        "region": r.region,
        "ip": r.ip,
        "uptime": r.uptime,
        "last_seen": r.last_seen,
    }

def inventory_frame(records: List[NodeRecord]) -> pd.DataFrame:
    return pd.DataFrame([node_row(r) for r in records])

def top_n(records: List[NodeRecord], field: str, n: int, now: Optional[float] = None) -> List[Dict[str, Any]]:
    ordered = dedupe_records(sort_records(records, field, "desc"))[:n]
    return [
        {
            "pubkey": shorten_id(r.id),
            "status": r.status,
            "health": r.health_display,
            "storage": format_percentage(r.storage_percent_display),
            "storage_band": utilization_band(r.storage_percent_display),
            "last_seen": format_relative_time(r.last_seen, now),
            "version": r.version or "unknown",
        }
        for r in ordered
    ]

def build_summary(raws: List[Dict[str, Any]], top: int = 8, now: Optional[float] = None) -> Dict[str, Any]:
    records = normalize_records(raws)
    out = summarize(records)
    out["leaders"] = {
        "top_health": top_n(records, "healthScore", top, now),
        "top_storage_utilization": top_n(records, "storageUtilization", top, now),
    }
    return out

# ----------------- exports -----------------

def export_csv(path: Path, records: List[NodeRecord]):
    df = inventory_frame(records)
    if df.empty:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)

def export_json(path: Path, summary: Dict[str, Any]):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary, indent=2))

def export_md(path: Path, summary: Dict[str, Any]):
    path.parent.mkdir(parents=True, exist_ok=True)
    s = summary["stats"]

    def table(items: List[Dict[str, Any]]):
        if not items: return "_none_"
        headers = list(items[0].keys())
        out = ["\n|" + "|".join(headers) + "|", "|" + "|".join(["---"]*len(headers)) + "|"]
        for r in items:
            out.append("|" + "|".join([str(r.get(h, "")) for h in headers]) + "|")
        return "\n".join(out)

    md = []
    md.append("# pNode Fleet Summary\n")
    md.append(f"- Total nodes: **{s['totalNodes']}** (online {s['onlineNodes']}, offline {s['offlineNodes']})")
    md.append(f"- Network health: **{s['networkHealth']}**")
    md.append(f"- Consensus version: **{s['consensusVersion'] or 'unknown'}**")
    avg = s["averageHealthScore"]
    md.append(f"- Average health: **{'N/A' if avg is None else f'{avg:.1f}'}**")
    pct = calculate_percentage(s["totalStorageUsed"], s["totalStorageCapacity"])
    md.append(f"- Storage: **{format_storage(s['totalStorageUsed'])}** of {format_storage(s['totalStorageCapacity'])} ({pct}%)\n")
    md.append("## Tiers\n")
    md.append(", ".join([f"**{t['tier']}**: {t['count']}" for t in summary["tiers"]]) + "\n")
    md.append("## Storage Utilization\n")
    md.append(", ".join([f"**{b['range']}**: {b['count']}" for b in summary["storage"]]) + "\n")
    md.append("## Versions\n")
    md.append(", ".join([f"**{v['version']}**: {v['count']}" for v in summary["versions"]]) + "\n")
    md.append("\n## Leaders: Top Health\n")
    md.append(table(summary["leaders"]["top_health"]))
    md.append("\n## Leaders: Top Storage Utilization\n")
    md.append(table(summary["leaders"]["top_storage_utilization"]))
    md.append("\n")
    path.write_text("\n".join(md), encoding="utf-8")

# ----------------- CLI -----------------

def main(argv=None):
    ap = argparse.ArgumentParser(description="Summarize a pNode fleet snapshot")
    ap.add_argument("--data", default=None, help="Snapshot file (JSON/YAML)")
    ap.add_argument("--remote", default=None, help="pNode backend base URL")
    ap.add_argument("--top", type=int, default=8, help="Leaderboard size")
    ap.add_argument("--csv", default=None, help="Export inventory CSV path")
    ap.add_argument("--json", default=None, help="Export summary JSON path")
    ap.add_argument("--md", default=None, help="Export Markdown report path")
    ap.add_argument("--log-level", default="WARNING")
    args = ap.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    try:
        snap = SnapshotSource(remote=args.remote, file=args.data).fetch()
    except SourceError as e:
        print(f"[error] {e}")
        return 2
    if not snap.nodes:
        print("[error] snapshot contains no nodes")
        return 2

    summary = build_summary(snap.nodes, top=args.top)
    s = summary["stats"]

    # Console summary
    print(f"Total nodes: {s['totalNodes']}  online: {s['onlineNodes']}  offline: {s['offlineNodes']}")
    print(f"Online: {s['onlinePercentage']:.1f}%  network health: {s['networkHealth']}")
    print("Consensus version:", s["consensusVersion"] or "unknown")
    avg = s["averageHealthScore"]
    print("Average health:", "N/A" if avg is None else f"{avg:.1f}")
    pct = calculate_percentage(s["totalStorageUsed"], s["totalStorageCapacity"])
    print(f"Storage: {format_storage(s['totalStorageUsed'])} / {format_storage(s['totalStorageCapacity'])} ({pct}%)")
    print("Tiers:", {t["tier"]: t["count"] for t in summary["tiers"]})
    print("Storage buckets:", {b["range"]: b["count"] for b in summary["storage"]})
    print("Versions:", {v["version"]: v["count"] for v in summary["versions"]})

    # Exports
    if args.csv:
        export_csv(Path(args.csv), dedupe_records(normalize_records(snap.nodes)))
        print("CSV:", Path(args.csv).as_posix())
    if args.json:
        export_json(Path(args.json), summary)
        print("JSON:", Path(args.json).as_posix())
    if args.md:
        export_md(Path(args.md), summary)
        print("Markdown:", Path(args.md).as_posix())

    return 0

if __name__ == "__main__":
    raise SystemExit(main())
