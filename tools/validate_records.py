#!/usr/bin/env python3
"""
Validate a pNode snapshot (nodes + map_nodes) against fleet/schemas.

Usage:
  python3 tools/validate_records.py snapshot.json
  python3 tools/validate_records.py snapshot.yaml --strict
  python3 tools/validate_records.py --remote http://127.0.0.1:3000 --fail-on-duplicates

Features:
- Draft 2020-12 JSON Schema validation (node_record / map_node schemas).
- Human-friendly error printing with a pointer to the offending field.
- Duplicate pubkeys reported per section (the dashboard keeps the first in
  sort order; --fail-on-duplicates turns them into a failure).
- --strict: warns on records the dashboard will show oddly (no health score,
  unparsable lastSeen, storageUsed > storageTotal).
- Prints a summary and returns non-zero on any validation error.

Validation is advisory: the dashboard normalizes invalid records anyway.
"""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Any, Dict, List

from fleet.records import normalize_record, safe_float
from fleet.source import SnapshotSource, SourceError
from fleet.validators import SnapshotReport, lint_snapshot

# --------------------------
# Helpers
# --------------------------

def format_problem(section: str, index: int, ident: Any, pointer: str, message: str) -> str:
    return (
        f"Record: {section}[{index}] ({ident or 'no pubkey'})\n"
        f"  At:   $.{pointer}\n"
        f"  Msg:  {message}"
    )

def strict_warnings(raw: Dict[str, Any]) -> List[str]:
    """Non-fatal hints about records that normalize with fallbacks."""
    w: List[str] = []
    rec = normalize_record(raw)
    name = rec.id
    if not rec.has_health_score:
        w.append(f"{name}: no healthScore (shown as N/A, sorts as 0).")
    if rec.last_seen is None and raw.get("lastSeen") not in (None, ""):
        w.append(f"{name}: lastSeen {raw.get('lastSeen')!r} does not parse.")
    if safe_float(raw.get("storageUsed")) > safe_float(raw.get("storageTotal")) > 0:
        w.append(f"{name}: storageUsed exceeds storageTotal.")
    if rec.tier is None and raw.get("tier") not in (None, ""):
        w.append(f"{name}: unknown tier {raw.get('tier')!r}.")
    return w

# --------------------------
# Main validation
# --------------------------

def print_report(report: SnapshotReport, snapshot: Dict[str, Any], strict: bool = False) -> int:
    """Print problems and a summary; returns the number of strict warnings."""
    for rec in report.records:
        print("=" * 80)
        pointer, message = rec["problems"][0]
        print(format_problem(rec["section"], rec["index"], rec["id"], pointer, message))
        for _, extra in rec["problems"][1:5]:
            print("- " + extra)

    warned = 0
    if strict:
        for raw in snapshot.get("nodes") or []:
            warns = strict_warnings(raw)
            if warns:
                warned += len(warns)
                print("-" * 80)
                for w in warns:
                    print(f"  warn: {w}")

    print("\nSummary")
    print("-------")
    print(f"Checked    : {report.total} record(s)")
    print(f"Invalid    : {report.invalid}")
    print(f"Duplicates : {', '.join(report.duplicates) if report.duplicates else 'none'}")
    print(f"Warnings   : {warned} (strict={'on' if strict else 'off'})")
    return warned

# --------------------------
# CLI
# --------------------------

def main(argv=None):
    ap = argparse.ArgumentParser(description="Validate a pNode snapshot against the fleet schemas")
    ap.add_argument("snapshot", nargs="?", help="Snapshot file (JSON/YAML)")
    ap.add_argument("--remote", default=None, help="Validate what the backend currently serves")
    ap.add_argument("--strict", action="store_true", help="Emit additional non-fatal warnings")
    ap.add_argument("--fail-on-duplicates", action="store_true", help="Treat repeated pubkeys as errors")
    ap.add_argument("--log-level", default="WARNING")
    args = ap.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    try:
        snap = SnapshotSource(remote=args.remote, file=args.snapshot).fetch()
    except SourceError as e:
        print(f"[error] {e}")
        return 1

    payload = snap.to_dict()
    report = lint_snapshot(payload)
    print_report(report, payload, strict=args.strict)

    if report.total == 0 or not report.ok:
        return 1
    if args.fail_on_duplicates and report.duplicates:
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
