from __future__ import annotations

import json
from pathlib import Path

import pytest

from quizbank.database.bank import QuestionBank
from quizbank.report.export import export_bank, export_csv, export_json, export_records, write_parse_report
from quizbank.report.snapshot import build_snapshot, compact_snapshot, snapshot_to_json
from quizbank.schemas.models import MediaRefs, QuestionAnalytics, QuestionRecord, RowError, RowWarning


def _errors(n: int) -> list[RowError]:
    return [RowError(line=i + 2, error=f"bad row {i}") for i in range(n)]


def test_build_snapshot_keeps_full_lists_and_caps_compact() -> None:
    warnings = [RowWarning(line=2, warning="No explanation provided")]
    snap = build_snapshot(_errors(7), warnings, ["question"], row_count=9, limit=5)
    assert snap.rows == 9
    assert snap.total_errors == 7
    assert len(snap.errors) == 7
    assert len(snap.compact_errors) == 5
    assert snap.compact_warnings == warnings
    assert snap.snapshot_row_limit == 5


def test_compact_snapshot_recaps_and_drops_full_lists() -> None:
    snap = build_snapshot(_errors(4), [], ["question"], row_count=4, limit=50)
    small = compact_snapshot(snap, limit=2)
    assert small.timestamp == snap.timestamp
    assert [e.line for e in small.compact_errors] == [2, 3]
    assert small.errors == []
    assert small.total_errors == 4
    assert small.snapshot_row_limit == 2
    assert compact_snapshot(None) is None


def test_snapshot_json_and_report_file(tmp_path: Path) -> None:
    snap = build_snapshot(_errors(1), [], ["question", "tags"], row_count=1)
    payload = json.loads(snapshot_to_json(snap))
    assert payload["headers"] == ["question", "tags"]
    path = write_parse_report(snap, tmp_path / "reports")
    assert path.name.startswith("parse-report-")
    assert json.loads(path.read_text(encoding="utf-8"))["total_errors"] == 1


def _records() -> list[QuestionRecord]:
    return [
        QuestionRecord(
            id=1,
            question='Say "hi", please',
            options=["a", "b", "c", "d", "e"],
            correct_answer="E",
            tags=["x", "y"],
            media=MediaRefs(audio=["hi.mp3"]),
            analytics=QuestionAnalytics(times_used=4),
            custom_fields={"book": "B1"},
        ),
        QuestionRecord(id=2, question="Essay", type="essay", custom_fields={"chapter": "3"}),
    ]


def test_export_csv_headers_and_escaping() -> None:
    text = export_csv(_records(), include_analytics=True)
    lines = text.split("\n")
    headers = lines[0].split(",")
    assert headers[:9] == [
        "id",
        "question",
        "type",
        "option_a",
        "option_b",
        "option_c",
        "option_d",
        "option_e",
        "correct_answer",
    ]
    assert "audio" in headers
    assert "times_used" in headers
    assert headers[-2:] == ["book", "chapter"]
    assert '"Say ""hi"", please"' in lines[1]
    assert '"x, y"' in lines[1]


def test_export_csv_empty() -> None:
    assert export_csv([]) == ""


def test_export_json_and_bank() -> None:
    bank = QuestionBank(_records())
    assert [q["id"] for q in json.loads(export_json(bank.records))] == [1, 2]
    payload = json.loads(export_bank(bank))
    assert payload["metadata"]["total_questions"] == 2
    assert "exported" in payload
    assert json.loads(export_records(bank, "json", difficulty="Medium"))[0]["id"] == 1
    with pytest.raises(ValueError):
        export_records(bank, "xml")
