from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from quizbank.database.store import QuestionBankDatabase
from quizbank.importer import UploadFile, import_files, validate_csv
from quizbank.report.export import EXPORT_FORMATS, export_records, write_parse_report
from quizbank.report.snapshot import build_snapshot
from quizbank.schemas.models import MERGE_STRATEGIES, ImportOptions
from quizbank.utils.config import ImportDefaults
from quizbank.utils.env import load_env_file
from quizbank.utils.errors import ImportEngineError
from quizbank.utils.logging import events_as_markdown


def _open_db(args: argparse.Namespace) -> QuestionBankDatabase:
    return QuestionBankDatabase(args.db or ImportDefaults().db_path)


def _options(args: argparse.Namespace) -> ImportOptions:
    defaults = ImportDefaults()
    headers_map = json.loads(args.headers_map) if getattr(args, "headers_map", None) else None
    return ImportOptions(
        merge_strategy=getattr(args, "strategy", None) or defaults.merge_strategy,
        strict_validation=getattr(args, "strict", False),
        auto_correct=not getattr(args, "no_autocorrect", False),
        preserve_custom_fields=not getattr(args, "no_custom_fields", False),
        batch_size=getattr(args, "batch_size", None) or defaults.batch_size,
        yield_every=defaults.yield_every,
        snapshot_row_limit=(
            args.snapshot_limit
            if getattr(args, "snapshot_limit", None) is not None
            else defaults.snapshot_row_limit
        ),
        headers_map=headers_map,
        preset=getattr(args, "preset", None),
        owner=getattr(args, "owner", None) or defaults.owner,
        tags=getattr(args, "tags", None),
        strictness=getattr(args, "strictness", "lenient"),
    )


def _cmd_init(args: argparse.Namespace) -> int:
    db = _open_db(args)
    try:
        print(json.dumps(db.stats(), indent=2))
    finally:
        db.close()
    return 0


async def _cmd_import(args: argparse.Namespace) -> int:
    opts = _options(args)
    db = _open_db(args)
    try:
        bank = db.load_bank()
        files = [UploadFile(filename=p.name, path=p) for p in args.files]
        result = await import_files(bank, files, opts, backup=db.create_backup)
        db.save_bank(bank)
        db.record_upload(
            result.upload_id,
            ", ".join(f.filename for f in files),
            result.summary.model_dump(),
            opts.model_dump(),
        )
        for detail in result.details_per_file:
            print(
                f"[import] file={detail.filename} processed={detail.processed} "
                f"added={detail.added} updated={detail.updated} skipped={detail.skipped} "
                f"errors={len(detail.errors)}",
                flush=True,
            )
            for error in detail.errors:
                print(f"  - {error}")
        if args.report_dir:
            snapshot = build_snapshot(
                result.summary.errors,
                result.summary.warnings,
                [],
                result.summary.processed,
                opts.snapshot_row_limit,
            )
            print(f"[import] report={write_parse_report(snapshot, args.report_dir)}")
            log_path = args.report_dir / f"import-log-{result.upload_id}.md"
            log_path.write_text(events_as_markdown(result.upload_id), encoding="utf-8")
            print(f"[import] log={log_path}")
        print(f"[import] upload_id={result.upload_id} {result.summary.headline()}")
        return 1 if result.summary.error_count and opts.strictness == "strict" else 0
    finally:
        db.close()


async def _cmd_validate(args: argparse.Namespace) -> int:
    opts = _options(args)
    report = await validate_csv(args.file.read_text(encoding="utf-8"), opts)
    print(json.dumps(report.model_dump(exclude={"parse_snapshot"}), indent=2))
    return 0 if report.is_valid else 1


def _cmd_export(args: argparse.Namespace) -> int:
    db = _open_db(args)
    try:
        bank = db.load_bank()
        tags = [t.strip() for t in args.tags.split(",") if t.strip()] if args.tags else None
        text = export_records(
            bank,
            args.format,
            category=args.category,
            difficulty=args.difficulty,
            tags=tags,
        )
    finally:
        db.close()
    if args.out:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(text, encoding="utf-8")
        print(f"[export] format={args.format} out={args.out}")
    else:
        print(text)
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    db = _open_db(args)
    try:
        record = db.fetch_question(args.id)
        if record is None:
            print(f"question id not found: {args.id}")
            return 1
        print(json.dumps(record.model_dump(), indent=2))
        return 0
    finally:
        db.close()


def _cmd_query(args: argparse.Namespace) -> int:
    db = _open_db(args)
    try:
        print(json.dumps(db.search(args.q, limit=args.limit), indent=2))
        return 0
    finally:
        db.close()


def _cmd_stats(args: argparse.Namespace) -> int:
    db = _open_db(args)
    try:
        payload = {"store": db.stats(), "bank": db.load_bank().statistics()}
        print(json.dumps(payload, indent=2))
        return 0
    finally:
        db.close()


def _add_import_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--strict", action="store_true", help="Abort on the first invalid row")
    p.add_argument("--no-autocorrect", action="store_true")
    p.add_argument("--no-custom-fields", action="store_true")
    p.add_argument("--batch-size", type=int, default=None)
    p.add_argument("--snapshot-limit", type=int, default=None)
    p.add_argument("--preset", type=str, default=None)
    p.add_argument("--headers-map", type=str, default=None, help='JSON object, e.g. {"Prompt": "question"}')
    p.add_argument("--owner", type=str, default=None)
    p.add_argument("--tags", type=str, default=None, help="Comma-separated tags added to every record")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Question bank import and merge CLI")
    p.add_argument("--db", type=str, default=None, help="SQLite DB path (default: QB_DB_PATH)")
    sub = p.add_subparsers(dest="cmd", required=True)

    init_p = sub.add_parser("init", help="Create the bank database if missing")
    init_p.set_defaults(func=lambda a: _cmd_init(a))

    import_p = sub.add_parser("import", help="Import one or more CSV files into the bank")
    import_p.add_argument("files", type=Path, nargs="+")
    import_p.add_argument("--strategy", choices=MERGE_STRATEGIES, default=None)
    import_p.add_argument("--strictness", choices=("lenient", "strict"), default="lenient")
    import_p.add_argument("--report-dir", type=Path, default=None)
    _add_import_options(import_p)
    import_p.set_defaults(func=lambda a: _cmd_import(a))

    validate_p = sub.add_parser("validate", help="Dry-run a CSV file in strict mode")
    validate_p.add_argument("file", type=Path)
    _add_import_options(validate_p)
    validate_p.set_defaults(func=lambda a: _cmd_validate(a))

    export_p = sub.add_parser("export", help="Export the bank")
    export_p.add_argument("--format", choices=EXPORT_FORMATS, default="csv")
    export_p.add_argument("--out", type=Path, default=None)
    export_p.add_argument("--category", type=str, default=None)
    export_p.add_argument("--difficulty", type=str, default=None)
    export_p.add_argument("--tags", type=str, default=None)
    export_p.set_defaults(func=lambda a: _cmd_export(a))

    show_p = sub.add_parser("show", help="Show one question by id")
    show_p.add_argument("--id", type=str, required=True)
    show_p.set_defaults(func=lambda a: _cmd_show(a))

    query_p = sub.add_parser("query", help="Search questions")
    query_p.add_argument("--q", type=str, required=True, help="Free-text search query")
    query_p.add_argument("--limit", type=int, default=20)
    query_p.set_defaults(func=lambda a: _cmd_query(a))

    stats_p = sub.add_parser("stats", help="Bank summary")
    stats_p.set_defaults(func=lambda a: _cmd_stats(a))

    return p


def main(argv: list[str] | None = None) -> int:
    load_env_file()
    args = _build_parser().parse_args(argv)
    try:
        result = args.func(args)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)
    except (ImportEngineError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    return int(result or 0)


if __name__ == "__main__":
    sys.exit(main())
