from __future__ import annotations

import asyncio
import time
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable

from quizbank.schemas.models import BankMetadata, QuestionRecord, UploadEntry

SORTABLE_FIELDS = ("id", "question", "type", "category", "difficulty", "points", "time_limit")


def generate_upload_id() -> str:
    return f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _sort_value(record: QuestionRecord, field: str) -> tuple[int, Any]:
    value = getattr(record, field, None)
    if value is None:
        return (2, "")
    if isinstance(value, str):
        return (1, value.lower())
    return (0, value)


class QuestionBank:
    """Owns the question list and its metadata.

    Imports take ``lock`` for their whole duration; nothing else writes
    ``records`` while an import is running.
    """

    def __init__(
        self,
        records: Iterable[QuestionRecord] | None = None,
        metadata: BankMetadata | None = None,
    ) -> None:
        self.records: list[QuestionRecord] = list(records or [])
        self.metadata = metadata or BankMetadata(total_questions=len(self.records))
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.records)

    def commit(self, records: list[QuestionRecord], upload: UploadEntry | None = None) -> None:
        self.records = records
        self.metadata.last_updated = datetime.now(timezone.utc).isoformat()
        self.metadata.total_questions = len(records)
        if upload is not None:
            self.metadata.uploads.append(upload)

    def statistics(self) -> dict[str, Any]:
        categories: Counter[str] = Counter()
        difficulties: Counter[str] = Counter()
        types: Counter[str] = Counter()
        tags: Counter[str] = Counter()
        for record in self.records:
            categories[record.category or "Unknown"] += 1
            difficulties[record.difficulty or "Unknown"] += 1
            types[record.type or "multiple_choice"] += 1
            tags.update(record.tags)
        return {
            "total": len(self.records),
            "categories": dict(categories),
            "difficulties": dict(difficulties),
            "types": dict(types),
            "tags": dict(tags),
            "metadata": self.metadata.model_dump(),
        }

    def select(
        self,
        category: str | None = None,
        difficulty: str | None = None,
        tags: list[str] | None = None,
        search: str = "",
        sort_by: str = "id",
        sort_order: str = "asc",
        offset: int = 0,
        limit: int | None = None,
    ) -> list[QuestionRecord]:
        out = list(self.records)
        if category:
            out = [r for r in out if r.category == category]
        if difficulty:
            out = [r for r in out if r.difficulty == difficulty]
        if tags:
            out = [r for r in out if any(t in r.tags for t in tags)]
        if search:
            needle = search.lower()
            out = [
                r
                for r in out
                if needle in r.question.lower()
                or needle in r.explanation.lower()
                or any(needle in t.lower() for t in r.tags)
            ]

        if sort_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort by {sort_by!r}. Allowed: {list(SORTABLE_FIELDS)}")
        out.sort(
            key=lambda r: _sort_value(r, sort_by),
            reverse=str(sort_order).lower() == "desc",
        )

        offset = max(offset, 0)
        if limit:
            return out[offset:offset + limit]
        return out[offset:]

    def to_payload(self) -> dict[str, Any]:
        return {
            "questions": [r.model_dump() for r in self.records],
            "metadata": self.metadata.model_dump(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | list[Any]) -> QuestionBank:
        if isinstance(payload, list):
            return cls(QuestionRecord.model_validate(item) for item in payload)
        records = [QuestionRecord.model_validate(item) for item in payload.get("questions") or []]
        metadata = BankMetadata.model_validate(payload.get("metadata") or {})
        metadata.total_questions = len(records)
        return cls(records, metadata)
