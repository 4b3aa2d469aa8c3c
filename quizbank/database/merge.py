from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from quizbank.schemas.models import (
    MERGE_STRATEGIES,
    ImportSummary,
    MergeConflict,
    QuestionRecord,
)
from quizbank.utils.errors import MergeConfigurationError
from quizbank.utils.logging import log_event

LIST_MERGE_FIELDS = ("tags", "prerequisites", "learning_objectives")
KEPT_FROM_EXISTING = ("id", "analytics")


@dataclass
class MergeOutcome:
    bank: list[QuestionRecord]
    summary: ImportSummary = field(default_factory=ImportSummary)
    conflicts: list[MergeConflict] = field(default_factory=list)


def normalize_question_text(text: str | None) -> str:
    lowered = str(text or "").lower()
    lowered = re.sub(r"[^\w\s]", "", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def _id_key(value: Any) -> str | None:
    if value is None:
        return None
    key = str(value).strip()
    return key or None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def _uniq_list(values: list[str]) -> list[str]:
    out: list[str] = []
    for v in values:
        if v not in out:
            out.append(v)
    return out


def _numeric_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _max_int_id(records: Sequence[QuestionRecord]) -> int:
    """Largest numeric id, counting digit-only strings such as ids loaded from storage."""
    best = 0
    for record in records:
        number = _numeric_id(record.id)
        if number is not None:
            best = max(best, number)
    return best


def _overwrite(existing: QuestionRecord, incoming: QuestionRecord, now: str) -> QuestionRecord:
    replaced = incoming.model_copy(deep=True)
    replaced.id = existing.id
    replaced.analytics = existing.analytics.model_copy()
    replaced.source.original_id = existing.id
    replaced.source.replaced_at = now
    replaced.source.last_updated = now
    return replaced


def _merge_fields(existing: QuestionRecord, incoming: QuestionRecord, now: str) -> QuestionRecord:
    """Field-by-field merge: non-empty incoming wins, lists union, dicts merge per key."""
    merged = existing.model_copy(deep=True)
    provided = incoming.model_fields_set

    for name in QuestionRecord.model_fields:
        if name in KEPT_FROM_EXISTING or name in ("media", "source", "custom_fields"):
            continue
        new = getattr(incoming, name)
        if name in LIST_MERGE_FIELDS:
            setattr(merged, name, _uniq_list(getattr(merged, name) + list(new)))
        elif name in provided and not _is_empty(new):
            setattr(merged, name, new)

    for key in ("images", "audio", "video"):
        refs = getattr(incoming.media, key)
        if refs:
            setattr(merged.media, key, list(refs))

    merged.custom_fields = {
        **merged.custom_fields,
        **{k: v for k, v in incoming.custom_fields.items() if not _is_empty(v)},
    }

    source = merged.source.model_dump()
    for key, value in incoming.source.model_dump().items():
        if key in ("created", "version") or _is_empty(value):
            continue
        source[key] = value
    source["merged_from"] = incoming.source.upload_id
    source["last_updated"] = now
    merged.source = type(merged.source)(**source)
    return merged


def merge_records(
    existing: Sequence[QuestionRecord],
    candidates: Sequence[QuestionRecord],
    strategy: str = "skip",
) -> MergeOutcome:
    """Reconcile incoming candidates against an existing bank.

    Matching is exact: same id first, then normalized question text. The
    caller's ``existing`` list is left untouched; a new bank list is returned.
    """
    strategy_key = str(strategy or "").strip().lower()
    if strategy_key not in MERGE_STRATEGIES:
        raise MergeConfigurationError(strategy, MERGE_STRATEGIES)

    now = datetime.now(timezone.utc).isoformat()
    bank = [record.model_copy(deep=True) for record in existing]
    by_id: dict[str, int] = {}
    by_text: dict[str, int] = {}

    def index(position: int) -> None:
        record = bank[position]
        key = _id_key(record.id)
        if key is not None:
            by_id.setdefault(key, position)
        text = normalize_question_text(record.question)
        if text:
            by_text.setdefault(text, position)

    for position in range(len(bank)):
        index(position)

    next_id = _max_int_id(bank) + 1

    def allocate() -> int:
        nonlocal next_id
        while str(next_id) in by_id:
            next_id += 1
        allocated = next_id
        next_id += 1
        return allocated

    outcome = MergeOutcome(bank=bank)
    summary = outcome.summary

    for candidate in candidates:
        summary.processed += 1
        incoming = candidate.model_copy(deep=True)

        match_type = "id"
        position = by_id.get(_id_key(incoming.id)) if _id_key(incoming.id) else None
        if position is None:
            match_type = "text"
            position = by_text.get(normalize_question_text(incoming.question))

        if position is None:
            if incoming.id is None:
                incoming.id = allocate()
            bank.append(incoming)
            index(len(bank) - 1)
            next_id = max(next_id, _max_int_id([incoming]) + 1)
            summary.added += 1
            continue

        current = bank[position]
        if strategy_key == "skip":
            action = "skip"
            summary.skipped += 1
        elif strategy_key == "overwrite":
            action = "update"
            bank[position] = _overwrite(current, incoming, now)
            index(position)
            summary.updated += 1
        elif strategy_key == "merge":
            action = "update"
            bank[position] = _merge_fields(current, incoming, now)
            index(position)
            summary.updated += 1
        else:
            action = "add"
            incoming.id = allocate()
            bank.append(incoming)
            index(len(bank) - 1)
            summary.added += 1

        outcome.conflicts.append(
            MergeConflict(
                existing_ref=current.ref(),
                incoming_ref=candidate.ref(),
                strategy=strategy_key,
                resulting_action=action,
                match_type=match_type,
            )
        )

    log_event(
        "merge_complete",
        {
            "strategy": strategy_key,
            "processed": summary.processed,
            "added": summary.added,
            "updated": summary.updated,
            "skipped": summary.skipped,
            "conflicts": len(outcome.conflicts),
            "bank_size": len(bank),
        },
    )
    return outcome
