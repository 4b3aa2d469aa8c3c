from __future__ import annotations

import json
from typing import Sequence

from quizbank.schemas.models import ParseSnapshot, RowError, RowWarning


def build_snapshot(
    errors: Sequence[RowError],
    warnings: Sequence[RowWarning],
    headers: Sequence[str],
    row_count: int,
    limit: int = 50,
) -> ParseSnapshot:
    """Freeze the outcome of one parse for display and export.

    The full lists are kept; the compact lists hold at most ``limit`` entries.
    """
    limit = max(int(limit), 0)
    errors_copy = [e.model_copy() for e in errors]
    warnings_copy = [w.model_copy() for w in warnings]
    return ParseSnapshot(
        headers=list(headers),
        rows=row_count,
        total_errors=len(errors_copy),
        total_warnings=len(warnings_copy),
        errors=errors_copy,
        warnings=warnings_copy,
        compact_errors=errors_copy[:limit],
        compact_warnings=warnings_copy[:limit],
        snapshot_row_limit=limit,
    )


def compact_snapshot(snapshot: ParseSnapshot | None, limit: int = 10) -> ParseSnapshot | None:
    if snapshot is None:
        return None
    limit = max(int(limit), 0)
    return ParseSnapshot(
        timestamp=snapshot.timestamp,
        headers=list(snapshot.headers),
        rows=snapshot.rows,
        total_errors=snapshot.total_errors,
        total_warnings=snapshot.total_warnings,
        compact_errors=list(snapshot.errors[:limit]),
        compact_warnings=list(snapshot.warnings[:limit]),
        snapshot_row_limit=min(limit, snapshot.snapshot_row_limit or limit),
    )


def snapshot_to_json(snapshot: ParseSnapshot | None) -> str | None:
    if snapshot is None:
        return None
    return json.dumps(snapshot.model_dump(), indent=2)
