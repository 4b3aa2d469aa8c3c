from __future__ import annotations

import inspect
import warnings
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Sequence, Union

from quizbank.database.bank import QuestionBank, generate_upload_id
from quizbank.database.merge import merge_records
from quizbank.ingest.batch import run_batched
from quizbank.ingest.headers import (
    HeaderCheck,
    normalize_overrides,
    required_headers_for_preset,
    validate_headers,
)
from quizbank.ingest.parser import ParsedTable, parse
from quizbank.report.snapshot import build_snapshot, compact_snapshot
from quizbank.schemas.models import (
    MERGE_STRATEGIES,
    FileDetail,
    ImportOptions,
    ImportResult,
    ImportSummary,
    ParseResult,
    ParseSummary,
    QuestionRecord,
    RowError,
    RowWarning,
    UploadEntry,
    UploadResult,
    ValidationReport,
)
from quizbank.utils.errors import (
    CatastrophicParseFailure,
    CleanupWarning,
    HeaderValidationError,
    ImportEngineError,
    MergeConfigurationError,
    RowValidationError,
)
from quizbank.utils.logging import log_event, upload_scope

COMPACT_SNAPSHOT_LIMIT = 10

BackupHook = Callable[[QuestionBank], Union[Any, Awaitable[Any]]]
OptionsLike = Union[ImportOptions, Mapping[str, Any], None]


@dataclass
class UploadFile:
    """One file handed over by a caller; ``path`` is removed afterwards when ``temporary``."""

    filename: str
    content: str | None = None
    path: Path | None = None
    temporary: bool = False

    def read_text(self) -> str:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise CatastrophicParseFailure(f"No content or path for {self.filename}")
        return Path(self.path).read_text(encoding="utf-8")

    @property
    def size(self) -> int:
        if self.content is not None:
            return len(self.content.encode("utf-8"))
        if self.path is not None and Path(self.path).exists():
            return Path(self.path).stat().st_size
        return 0


def _coerce_options(options: OptionsLike, **updates: Any) -> ImportOptions:
    if options is None:
        opts = ImportOptions()
    elif isinstance(options, ImportOptions):
        opts = options
    else:
        opts = ImportOptions.model_validate(dict(options))
    return opts.model_copy(update=updates) if updates else opts


def _check_strategy(opts: ImportOptions) -> str:
    strategy = str(opts.merge_strategy or "").strip().lower()
    if strategy not in MERGE_STRATEGIES:
        raise MergeConfigurationError(opts.merge_strategy, MERGE_STRATEGIES)
    return strategy


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _check_headers(table: ParsedTable, opts: ImportOptions, overrides: Mapping[str, str]) -> HeaderCheck:
    check = validate_headers(
        table.headers,
        required=required_headers_for_preset(opts.preset),
        overrides=overrides,
    )
    log_event(
        "header_validation",
        {
            "filename": opts.filename,
            "headers": table.headers,
            "missing": check.missing,
            "errors": check.errors,
            "warnings": check.warnings,
        },
    )
    return check


async def _build(
    table: ParsedTable,
    opts: ImportOptions,
    overrides: Mapping[str, str],
    header_errors: Sequence[str] = (),
    header_warnings: Sequence[str] = (),
) -> ParseResult:
    if opts.strict_validation and table.errors:
        first = table.errors[0]
        log_event("strict_abort", {"line": first.line, "errors": [first.error]})
        raise RowValidationError(line=first.line or 0, errors=[first.error])

    metadata = {"upload_id": opts.upload_id, "filename": opts.filename, "owner": opts.owner}
    batch = await run_batched(table.headers, table.rows, opts, table.line_numbers, overrides, metadata)

    errors = [RowError(line=1, error=e, filename=opts.filename) for e in header_errors]
    errors.extend(
        sorted(
            [e.model_copy(update={"filename": opts.filename}) for e in table.errors + batch.errors],
            key=lambda e: e.line or 0,
        )
    )
    row_warnings = [RowWarning(line=1, warning=w) for w in header_warnings] + batch.warnings
    total = len(table.rows) + len(table.errors)
    snapshot = build_snapshot(errors, row_warnings, table.headers, total, opts.snapshot_row_limit)
    log_event(
        "parse_complete",
        {
            "filename": opts.filename,
            "rows": total,
            "successful": len(batch.questions),
            "errors": len(errors),
            "warnings": len(row_warnings),
            "chunks": batch.chunks,
        },
    )
    return ParseResult(
        questions=batch.questions,
        summary=ParseSummary(
            total=total,
            successful=len(batch.questions),
            errors=len(errors),
            warnings=len(row_warnings),
        ),
        errors=errors,
        warnings=row_warnings,
        collections=batch.collections,
        headers=table.headers,
        last_parse_snapshot=snapshot,
    )


async def parse_csv(text: str, options: OptionsLike = None) -> ParseResult:
    """Parse, normalize, correct and validate CSV text without touching any bank.

    Raises ``CatastrophicParseFailure`` for unusable input, and under
    ``strict_validation`` ``HeaderValidationError`` or ``RowValidationError``.
    """
    opts = _coerce_options(options)
    overrides = normalize_overrides(opts.headers_map)
    table = parse(text)
    check = _check_headers(table, opts, overrides)
    if not check.is_valid and opts.strict_validation:
        log_event("strict_abort", {"line": 1, "errors": check.errors})
        raise HeaderValidationError(check.errors)
    return await _build(table, opts, overrides, check.errors, check.warnings)


def _stamp(record: QuestionRecord, opts: ImportOptions, now: str) -> QuestionRecord:
    stamped = record.model_copy(deep=True)
    stamped.source.upload_id = opts.upload_id
    stamped.source.owner = opts.owner
    stamped.source.imported_at = now
    stamped.source.preset = opts.preset
    if opts.filename and not stamped.source.filename:
        stamped.source.filename = opts.filename
    for tag in opts.tags:
        tag = tag.lower() if opts.auto_correct else tag
        if tag not in stamped.tags:
            stamped.tags = stamped.tags + [tag]
    return stamped


def _upload_entry(upload_id: str, filenames: list[str], opts: ImportOptions, summary: ImportSummary) -> UploadEntry:
    return UploadEntry(
        upload_id=upload_id,
        filenames=filenames,
        owner=opts.owner,
        processed=summary.processed,
        added=summary.added,
        updated=summary.updated,
        skipped=summary.skipped,
        error_count=summary.error_count,
    )


async def import_csv(
    bank: QuestionBank,
    text: str,
    options: OptionsLike = None,
    backup: BackupHook | None = None,
) -> ImportResult:
    """Parse CSV text and merge the accepted records into ``bank``."""
    opts = _coerce_options(options)
    strategy = _check_strategy(opts)
    upload_id = opts.upload_id or generate_upload_id()
    opts = opts.model_copy(update={"upload_id": upload_id})

    with upload_scope(upload_id):
        async with bank.lock:
            parsed = await parse_csv(text, opts)
            now = datetime.now(timezone.utc).isoformat()
            candidates = [_stamp(q, opts, now) for q in parsed.questions]
            if strategy == "overwrite" and backup is not None:
                await _maybe_await(backup(bank))
            outcome = merge_records(bank.records, candidates, strategy)
            summary = outcome.summary.model_copy(
                update={
                    "error_count": len(parsed.errors),
                    "errors": parsed.errors,
                    "warnings": parsed.warnings,
                }
            )
            bank.commit(outcome.bank, _upload_entry(upload_id, [opts.filename or "inline"], opts, summary))

        log_event("import_complete", {"upload_id": upload_id, "summary": summary.headline()})
    return ImportResult(
        **dict(parsed),
        upload_id=upload_id,
        added=summary.added,
        updated=summary.updated,
        skipped=summary.skipped,
        conflicts=outcome.conflicts,
        merge_summary=summary,
        compact_parse_snapshot=compact_snapshot(
            parsed.last_parse_snapshot,
            min(COMPACT_SNAPSHOT_LIMIT, opts.snapshot_row_limit),
        ),
    )


def _cleanup(upload: UploadFile) -> None:
    if not upload.temporary or upload.path is None:
        return
    try:
        Path(upload.path).unlink()
    except OSError as exc:
        log_event("cleanup_warning", {"filename": upload.filename, "path": str(upload.path), "error": str(exc)})
        warnings.warn(
            f"Failed to clean up uploaded file {upload.path}: {exc}",
            CleanupWarning,
            stacklevel=2,
        )


async def _process_file(
    upload: UploadFile,
    opts: ImportOptions,
    overrides: Mapping[str, str],
    detail: FileDetail,
    summary: ImportSummary,
) -> list[QuestionRecord]:
    file_opts = opts.model_copy(update={"filename": upload.filename})
    try:
        table = parse(upload.read_text())
    except (CatastrophicParseFailure, OSError, UnicodeDecodeError) as exc:
        message = f"Failed to parse CSV content: {exc}"
        detail.errors.append(message)
        summary.errors.append(RowError(error=message, filename=upload.filename))
        return []

    check = _check_headers(table, file_opts, overrides)
    for message in check.errors:
        detail.errors.append(message)
        summary.errors.append(RowError(line=1, error=message, filename=upload.filename))
    if not check.is_valid and opts.strictness == "strict":
        return []

    parsed = await _build(table, file_opts, overrides, header_warnings=check.warnings)
    detail.processed = parsed.summary.total
    for error in parsed.errors:
        detail.errors.append(f"Row {error.line}: {error.error}")
    summary.errors.extend(parsed.errors)
    summary.warnings.extend(parsed.warnings)
    return parsed.questions


async def import_files(
    bank: QuestionBank,
    files: Sequence[UploadFile],
    options: OptionsLike = None,
    backup: BackupHook | None = None,
) -> UploadResult:
    """Import several files under one upload id.

    Header problems follow ``strictness``: lenient records them and keeps
    going, strict drops the whole file. The bank is committed once, after
    the last file.
    """
    opts = _coerce_options(options)
    strategy = _check_strategy(opts)
    upload_id = opts.upload_id or generate_upload_id()
    opts = opts.model_copy(update={"upload_id": upload_id})
    overrides = normalize_overrides(opts.headers_map)

    result = UploadResult(upload_id=upload_id)
    summary = result.summary

    with upload_scope(upload_id):
        async with bank.lock:
            if strategy == "overwrite" and backup is not None:
                await _maybe_await(backup(bank))
            records = bank.records
            for upload in files:
                detail = FileDetail(filename=upload.filename, size=upload.size)
                try:
                    parsed = await _process_file(upload, opts, overrides, detail, summary)
                finally:
                    _cleanup(upload)

                now = datetime.now(timezone.utc).isoformat()
                candidates = [_stamp(q, opts.model_copy(update={"filename": upload.filename}), now) for q in parsed]
                outcome = merge_records(records, candidates, strategy)
                records = outcome.bank
                detail.added = outcome.summary.added
                detail.updated = outcome.summary.updated
                detail.skipped = outcome.summary.skipped
                result.conflicts.extend(outcome.conflicts)
                result.details_per_file.append(detail)

                summary.processed += detail.processed
                summary.added += detail.added
                summary.updated += detail.updated
                summary.skipped += detail.skipped
                log_event("file_processed", detail.model_dump())

            summary.error_count = len(summary.errors)
            bank.commit(records, _upload_entry(upload_id, [f.filename for f in files], opts, summary))

        log_event("import_complete", {"upload_id": upload_id, "summary": summary.headline()})
    return result


async def validate_csv(text: str, options: OptionsLike = None) -> ValidationReport:
    """Strict dry run: reports problems instead of raising them."""
    opts = _coerce_options(options, strict_validation=True)
    try:
        parsed = await parse_csv(text, opts)
    except ImportEngineError as exc:
        line = getattr(exc, "line", None)
        if isinstance(exc, HeaderValidationError):
            line = 1
        error = RowError(line=line, error=str(exc), question=getattr(exc, "question", None))
        return ValidationReport(
            is_valid=False,
            summary=ParseSummary(errors=1),
            errors=[error],
        )
    return ValidationReport(
        is_valid=not parsed.errors,
        summary=parsed.summary,
        errors=parsed.errors,
        warnings=parsed.warnings,
        collections=parsed.collections,
        parse_snapshot=parsed.last_parse_snapshot,
    )
