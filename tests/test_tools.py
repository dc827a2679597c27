from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from tools import summarize_fleet, validate_records

SAMPLE = Path(__file__).resolve().parents[1] / "config" / "sample_snapshot.json"


def test_build_summary_adds_leaderboards() -> None:
    nodes = json.loads(SAMPLE.read_text(encoding="utf-8"))["nodes"]
    summary = summarize_fleet.build_summary(nodes, top=2)
    top = summary["leaders"]["top_health"]
    assert len(top) == 2
    assert top[0]["health"] == "94.2"
    assert summary["stats"]["totalNodes"] == 4


def test_summarize_exports(tmp_path: Path) -> None:
    out_json = tmp_path / "summary.json"
    out_csv = tmp_path / "inventory.csv"
    out_md = tmp_path / "report.md"
    code = summarize_fleet.main(
        ["--data", str(SAMPLE), "--json", str(out_json), "--csv", str(out_csv), "--md", str(out_md)]
    )
    assert code == 0
    assert json.loads(out_json.read_text())["stats"]["onlineNodes"] == 3
    assert out_csv.read_text().splitlines()[0].startswith("pubkey,status")
    assert "# pNode Fleet Summary" in out_md.read_text()


def test_summarize_missing_file(tmp_path: Path) -> None:
    assert summarize_fleet.main(["--data", str(tmp_path / "none.json")]) == 2


def test_validate_sample_snapshot_passes() -> None:
    assert validate_records.main([str(SAMPLE), "--strict"]) == 0


def test_validate_reports_invalid_records(tmp_path: Path, capsys) -> None:
    path = tmp_path / "bad.json"
    path.write_text(
        json.dumps({"nodes": [{"pubkey": "a", "status": "sleeping"}, {"pubkey": "a", "status": "online"}]}),
        encoding="utf-8",
    )
    assert validate_records.main([str(path)]) == 1
    out = capsys.readouterr().out
    assert "nodes[0]" in out
    assert "nodes:a" in out


def test_validate_duplicates_can_fail(tmp_path: Path) -> None:
    path = tmp_path / "dupes.json"
    path.write_text(
        json.dumps([{"pubkey": "a", "status": "online"}, {"pubkey": "a", "status": "offline"}]),
        encoding="utf-8",
    )
    assert validate_records.main([str(path)]) == 0
    assert validate_records.main([str(path), "--fail-on-duplicates"]) == 1


def test_leaderboard_rows_carry_band_and_last_seen() -> None:
    nodes = json.loads(SAMPLE.read_text(encoding="utf-8"))["nodes"]
    now = datetime(2026, 10, 18, 10, 0, 0, tzinfo=timezone.utc).timestamp()
    summary = summarize_fleet.build_summary(nodes, top=4, now=now)
    rows = {row["pubkey"][:4]: row for row in summary["leaders"]["top_health"]}
    assert rows["8xKp"]["storage_band"] == "ok"
    assert rows["8xKp"]["last_seen"] == "30s ago"
    assert rows["3FgT"]["storage_band"] == "warning"
    assert rows["3FgT"]["last_seen"] == "2m ago"
    assert rows["5VbN"]["last_seen"] == "unknown"


def test_console_reports_storage_utilization(capsys) -> None:
    assert summarize_fleet.main(["--data", str(SAMPLE)]) == 0
    out = capsys.readouterr().out
    assert "(48.9%)" in out
