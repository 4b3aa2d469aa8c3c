from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from quizbank.ingest.builder import auto_correct, build_record, validate_record
from quizbank.schemas.models import (
    Collections,
    ImportOptions,
    QuestionRecord,
    RowError,
    RowWarning,
)
from quizbank.utils.errors import RowValidationError
from quizbank.utils.logging import log_event


@dataclass
class BatchResult:
    questions: list[QuestionRecord] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    warnings: list[RowWarning] = field(default_factory=list)
    collections: Collections = field(default_factory=Collections)
    processed: int = 0
    chunks: int = 0


def _remember(values: list[str], value: str) -> None:
    if value and value not in values:
        values.append(value)


def _collect(collections: Collections, record: QuestionRecord) -> None:
    _remember(collections.categories, record.category)
    _remember(collections.difficulties, record.difficulty)
    for tag in record.tags:
        _remember(collections.tags, tag)


def _process_row(
    index: int,
    row: Sequence[str],
    headers: Sequence[str],
    line: int,
    options: ImportOptions,
    overrides: Mapping[str, str] | None,
    metadata: Mapping[str, Any],
    result: BatchResult,
) -> None:
    try:
        record = build_record(
            row,
            headers,
            metadata={**metadata, "row_index": index},
            overrides=overrides,
            preserve_custom_fields=options.preserve_custom_fields,
        )
    except ValidationError as exc:
        if options.strict_validation:
            raise RowValidationError(line=line, errors=[str(exc)]) from exc
        result.errors.append(RowError(line=line, error=f"Could not build record: {exc}"))
        return

    if options.auto_correct:
        record = auto_correct(record)

    check = validate_record(record)
    question = record.question or None
    if not check.is_valid:
        if options.strict_validation:
            log_event("strict_abort", {"line": line, "errors": check.errors})
            raise RowValidationError(line=line, errors=check.errors, question=question)
        result.errors.append(
            RowError(
                line=line,
                error=f"Validation failed: {', '.join(check.errors)}",
                question=question,
            )
        )
        return

    for warning in check.warnings:
        result.warnings.append(RowWarning(line=line, warning=warning, question=question))
    result.questions.append(record)
    _collect(result.collections, record)


async def run_batched(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    options: ImportOptions | None = None,
    line_numbers: Sequence[int] | None = None,
    overrides: Mapping[str, str] | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> BatchResult:
    """Build, correct and validate rows in fixed-size chunks.

    Each chunk runs synchronously; control goes back to the event loop after
    every ``yield_every`` chunks so large imports do not starve other tasks.
    Output keeps source row order, minus rejected rows.
    """
    options = options or ImportOptions()
    meta = dict(metadata or {})
    result = BatchResult()
    size = options.batch_size

    for start in range(0, len(rows), size):
        chunk = rows[start:start + size]
        for offset, row in enumerate(chunk):
            index = start + offset
            if line_numbers is not None and index < len(line_numbers):
                line = line_numbers[index]
            else:
                line = index + 2
            _process_row(index, row, headers, line, options, overrides, meta, result)
            result.processed += 1
        result.chunks += 1
        if result.chunks % options.yield_every == 0:
            log_event("batch_yield", {"chunks": result.chunks, "processed": result.processed})
            await asyncio.sleep(0)
    return result
