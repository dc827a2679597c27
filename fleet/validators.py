#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fleet/validators.py — JSON-Schema checks for raw pNode snapshots.

Validation is diagnostic only: the query pipeline normalizes whatever it gets
and never refuses a record. These helpers tell an operator *what* was
malformed in a feed.

Features
--------
- Load & cache Draft 2020-12 schemas (YAML) from fleet/schemas
- Two modes:
    • lint_*()    → list of (pointer, message) problems (non-throwing)
    • assert_*()  → raise ValidationError on the first problem
- Whole-snapshot report with per-record problems and duplicate ids

Schemas
-------
- node_record.schema.yaml
- map_node.schema.yaml
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from jsonschema import Draft202012Validator, exceptions as js_ex

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
NODE_RECORD_SCHEMA = "node_record.schema.yaml"
MAP_NODE_SCHEMA = "map_node.schema.yaml"


# --------------------------- Exceptions ---------------------------

class ValidationError(RuntimeError):
    def __init__(self, where: str, message: str, schema_path: str = "", instance_path: str = ""):
        super().__init__(f"{where}: {message} (at $.{instance_path}; rule {schema_path})")
        self.where = where
        self.message = message
        self.schema_path = schema_path
        self.instance_path = instance_path


# --------------------------- Helpers ------------------------------

def _format_error(err: js_ex.ValidationError) -> Tuple[str, str]:
    """Return (instance_pointer, schema_pointer) strings."""
    inst = "/".join([str(x) for x in err.path]) if err.path else "(root)"
    sch = "/".join([str(x) for x in err.schema_path])
    return inst, sch


def _load_yaml(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


# --------------------------- Schema Cache -------------------------

class SchemaRegistry:
    """Load and cache compiled validators from a schemas directory."""

    def __init__(self, schemas_dir: Optional[Path] = None):
        self.schemas_dir = Path(schemas_dir) if schemas_dir else SCHEMAS_DIR
        self._cache: Dict[str, Draft202012Validator] = {}

    def get(self, name: str) -> Draft202012Validator:
        v = self._cache.get(name)
        if v is None:
            path = (self.schemas_dir / name).resolve()
            if not path.exists():
                raise FileNotFoundError(f"Schema not found: {path}")
            raw = _load_yaml(path)
            Draft202012Validator.check_schema(raw)
            v = Draft202012Validator(raw)
            self._cache[name] = v
        return v


_DEFAULT_REGISTRY: Optional[SchemaRegistry] = None


def default_registry() -> SchemaRegistry:
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = SchemaRegistry()
    return _DEFAULT_REGISTRY


# --------------------------- Public API ---------------------------

def lint_instance(instance: Any, schema_file: str, registry: Optional[SchemaRegistry] = None) -> List[Tuple[str, str]]:
    reg = registry or default_registry()
    validator = reg.get(schema_file)
    errs = sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in e.path])
    return [(_format_error(e)[0], e.message) for e in errs]


def assert_instance(
    instance: Any,
    schema_file: str,
    where: str = "instance",
    registry: Optional[SchemaRegistry] = None,
) -> None:
    reg = registry or default_registry()
    for e in reg.get(schema_file).iter_errors(instance):
        inst_ptr, sch_ptr = _format_error(e)
        raise ValidationError(where=where, message=e.message, schema_path=sch_ptr, instance_path=inst_ptr)


def lint_node_record(record: Any, registry: Optional[SchemaRegistry] = None):
    return lint_instance(record, NODE_RECORD_SCHEMA, registry=registry)

def assert_node_record(record: Dict[str, Any], registry: Optional[SchemaRegistry] = None):
    return assert_instance(record, NODE_RECORD_SCHEMA, where=str(record.get("pubkey", "record")), registry=registry)

def lint_map_node(node: Any, registry: Optional[SchemaRegistry] = None):
    return lint_instance(node, MAP_NODE_SCHEMA, registry=registry)

def assert_map_node(node: Dict[str, Any], registry: Optional[SchemaRegistry] = None):
    return assert_instance(node, MAP_NODE_SCHEMA, where=str(node.get("pubkey", "map node")), registry=registry)


# ---- Snapshot report ----

@dataclass
class SnapshotReport:
    total: int = 0
    valid: int = 0
    invalid: int = 0
    duplicates: List[str] = field(default_factory=list)
    records: List[Dict[str, Any]] = field(default_factory=list)  # [{section, index, id, problems}]

    @property
    def ok(self) -> bool:
        return self.invalid == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "valid": self.valid,
            "invalid": self.invalid,
            "duplicates": self.duplicates,
            "records": self.records,
        }


def _lint_section(report: SnapshotReport, section: str, items: List[Any], schema_file: str, reg: SchemaRegistry) -> None:
    ids = Counter()
    for idx, item in enumerate(items):
        ident = item.get("pubkey") if isinstance(item, dict) else None
        if ident:
            ids[ident] += 1
        problems = lint_instance(item, schema_file, registry=reg)
        report.total += 1
        if problems:
            report.invalid += 1
            report.records.append({"section": section, "index": idx, "id": ident, "problems": problems})
        else:
            report.valid += 1
    report.duplicates.extend(f"{section}:{k}" for k, c in ids.items() if c > 1)


def lint_snapshot(snapshot: Dict[str, Any], registry: Optional[SchemaRegistry] = None) -> SnapshotReport:
    """Lint `nodes` and `map_nodes` of a snapshot. Duplicates are reported, not counted as invalid."""
    reg = registry or default_registry()
    report = SnapshotReport()
    _lint_section(report, "nodes", list(snapshot.get("nodes") or []), NODE_RECORD_SCHEMA, reg)
    _lint_section(report, "map_nodes", list(snapshot.get("map_nodes") or []), MAP_NODE_SCHEMA, reg)
    return report
