from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from quizbank.database.bank import QuestionBank
from quizbank.schemas.models import OPTION_LETTERS, ParseSnapshot, QuestionRecord
from quizbank.report.snapshot import snapshot_to_json

EXPORT_FORMATS = ("csv", "json", "bank")
MIN_OPTION_COLUMNS = 4
LIST_JOIN = ", "

METADATA_COLUMNS = ("source_filename", "created", "last_updated", "owner", "version")
ANALYTICS_COLUMNS = ("times_used", "correct_answers", "total_attempts", "average_time")
MEDIA_COLUMNS = (("image", "images"), ("audio", "audio"), ("video", "video"))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _option_columns(records: Sequence[QuestionRecord]) -> list[str]:
    width = max([MIN_OPTION_COLUMNS] + [len(r.options) for r in records])
    width = min(width, len(OPTION_LETTERS))
    return [f"option_{OPTION_LETTERS[i].lower()}" for i in range(width)]


def export_csv(
    records: Sequence[QuestionRecord],
    include_custom_fields: bool = True,
    include_metadata: bool = False,
    include_analytics: bool = False,
) -> str:
    """Render records with canonical headers so a default re-import rebuilds them."""
    if not records:
        return ""

    options = _option_columns(records)
    headers = ["id", "question", "type", *options, "correct_answer", "category",
               "difficulty", "points", "time_limit", "explanation", "tags",
               "prerequisites", "learning_objectives"]
    media = [(col, attr) for col, attr in MEDIA_COLUMNS if any(getattr(r.media, attr) for r in records)]
    headers.extend(col for col, _ in media)
    if include_metadata:
        headers.extend(METADATA_COLUMNS)
    if include_analytics:
        headers.extend(ANALYTICS_COLUMNS)
    custom: list[str] = []
    if include_custom_fields:
        for record in records:
            for key in record.custom_fields:
                if key not in custom and key not in headers:
                    custom.append(key)
        headers.extend(custom)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for record in records:
        row = [_text(record.id), record.question, record.type]
        row.extend(record.options[i] if i < len(record.options) else "" for i in range(len(options)))
        row.extend(
            [
                record.correct_answer,
                record.category,
                record.difficulty,
                _text(record.points),
                _text(record.time_limit),
                record.explanation,
                LIST_JOIN.join(record.tags),
                LIST_JOIN.join(record.prerequisites),
                LIST_JOIN.join(record.learning_objectives),
            ]
        )
        row.extend(LIST_JOIN.join(getattr(record.media, attr)) for _, attr in media)
        if include_metadata:
            src = record.source
            row.extend(
                _text(v) for v in (src.filename, src.created, src.last_updated, src.owner, src.version)
            )
        if include_analytics:
            stats = record.analytics
            row.extend(
                _text(v)
                for v in (stats.times_used, stats.correct_answers, stats.total_attempts, stats.average_time)
            )
        row.extend(record.custom_fields.get(key, "") for key in custom)
        writer.writerow(row)
    return buffer.getvalue().rstrip("\n")


def export_json(records: Sequence[QuestionRecord]) -> str:
    return json.dumps([r.model_dump() for r in records], indent=2)


def export_bank(bank: QuestionBank, records: Sequence[QuestionRecord] | None = None) -> str:
    payload = {
        "questions": [r.model_dump() for r in (bank.records if records is None else records)],
        "metadata": bank.metadata.model_dump(),
        "exported": datetime.now(timezone.utc).isoformat(),
    }
    return json.dumps(payload, indent=2)


def export_records(bank: QuestionBank, fmt: str = "csv", **select: Any) -> str:
    records = bank.select(**select)
    fmt = fmt.lower()
    if fmt == "csv":
        return export_csv(records)
    if fmt == "json":
        return export_json(records)
    if fmt == "bank":
        return export_bank(bank, records)
    raise ValueError(f"Unsupported export format: {fmt}")


def write_parse_report(snapshot: ParseSnapshot, directory: str | Path) -> Path:
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = snapshot.timestamp.replace(":", "-").replace(".", "-")
    path = out_dir / f"parse-report-{stamp}.json"
    path.write_text(snapshot_to_json(snapshot) or "{}", encoding="utf-8")
    return path
