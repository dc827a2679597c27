from __future__ import annotations

from datetime import datetime, timezone

from fleet.records import (
    NodeRecord,
    normalize_record,
    normalize_records,
    optional_float,
    parse_timestamp,
    safe_float,
)


def test_full_record_maps_every_field() -> None:
    rec = normalize_record(
        {
            "pubkey": "node-a",
            "status": "ONLINE",
            "healthScore": "91.5",
            "tier": "excellent",
            "storageUsed": 50,
            "storageTotal": 200,
            "ramUsed": 4,
            "ramTotal": 16,
            "version": "0.8.0",
            "region": "eu-west",
            "ip": "10.0.0.1",
            "uptime": 3600,
            "lastSeen": "2024-01-01T00:00:00Z",
        }
    )
    assert rec.id == "node-a"
    assert rec.status == "online"
    assert rec.is_online
    assert rec.health_score == 91.5
    assert rec.has_health_score
    assert rec.tier == "Excellent"
    assert rec.storage_percent == 25.0
    assert rec.ram_percent == 25.0
    assert rec.last_seen == datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()


def test_absent_health_is_zero_but_flagged() -> None:
    rec = normalize_record({"pubkey": "x", "status": "online"})
    assert rec.health_score == 0.0
    assert rec.has_health_score is False
    assert rec.health_display == "N/A"

    zero = normalize_record({"pubkey": "y", "healthScore": 0})
    assert zero.has_health_score is True
    assert zero.health_display == "0.0"


def test_unparsable_last_seen_keeps_raw_value() -> None:
    rec = normalize_record({"pubkey": "x", "lastSeen": "yesterday-ish"})
    assert rec.last_seen is None
    assert rec.last_seen_raw == "yesterday-ish"


def test_epoch_milliseconds_and_seconds() -> None:
    assert parse_timestamp(1_700_000_000_000) == 1_700_000_000.0
    assert parse_timestamp(1_700_000_000) == 1_700_000_000.0
    assert parse_timestamp("1700000000") == 1_700_000_000.0
    assert parse_timestamp(True) is None
    assert parse_timestamp("") is None


def test_missing_identity_gets_stable_placeholder() -> None:
    raw = {"status": "offline", "region": "us-east"}
    a = normalize_record(raw)
    b = normalize_record(dict(raw))
    assert a.id.startswith("unknown-")
    assert a.id == b.id
    assert normalize_record({"status": "online"}).id != a.id


def test_id_field_is_accepted_when_pubkey_missing() -> None:
    assert normalize_record({"id": "legacy"}).id == "legacy"


def test_non_mapping_input_never_raises() -> None:
    for raw in (None, 42, "text", ["a"]):
        rec = normalize_record(raw)
        assert rec.id.startswith("unknown-")
        assert rec.status == ""


def test_bad_numbers_fall_back_to_safe_defaults() -> None:
    rec = normalize_record(
        {
            "pubkey": "x",
            "storageUsed": -10,
            "storageTotal": "n/a",
            "uptime": float("nan"),
            "ramUsed": "",
            "ramTotal": 8,
            "tier": "Legendary",
            "version": None,
        }
    )
    assert rec.storage_used == 0.0
    assert rec.storage_total == 0.0
    assert rec.storage_percent is None
    assert rec.uptime == 0.0
    assert rec.has_ram is False
    assert rec.ram_percent is None
    assert rec.tier is None
    assert rec.version == ""


def test_storage_percent_display_is_clamped() -> None:
    rec = normalize_record({"pubkey": "x", "storageUsed": 300, "storageTotal": 200})
    assert rec.storage_percent == 150.0
    assert rec.storage_percent_display == 100.0


def test_explicit_utilization_wins_over_ratio() -> None:
    rec = normalize_record({"pubkey": "x", "storageUsed": 10, "storageTotal": 100, "storageUtilization": 42})
    assert rec.storage_percent == 42.0


def test_to_dict_uses_wire_names() -> None:
    d = normalize_record({"pubkey": "x", "status": "online"}).to_dict()
    assert d["pubkey"] == "x"
    assert d["healthScore"] is None
    assert d["healthDisplay"] == "N/A"
    assert d["storageUtilization"] is None


def test_normalize_records_passes_node_records_through() -> None:
    rec = NodeRecord(id="kept")
    out = normalize_records([rec, {"pubkey": "new"}])
    assert out[0] is rec
    assert out[1].id == "new"
    assert normalize_records(None) == []


def test_coercion_helpers() -> None:
    assert safe_float("3.5") == 3.5
    assert safe_float(True, 7.0) == 7.0
    assert safe_float(float("inf")) == 0.0
    assert optional_float("  ") is None
    assert optional_float("0") == 0.0
