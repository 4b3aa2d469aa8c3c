from __future__ import annotations

import string
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from quizbank.utils.config import DEFAULTS, RECORD_VERSION, SCHEMA_VERSION

QUESTION_TYPES = (
    "multiple_choice",
    "true_false",
    "short_answer",
    "essay",
    "fill_blank",
    "matching",
)
CHOICE_TYPES = {"multiple_choice", "true_false"}
DIFFICULTY_LEVELS = ("Easy", "Medium", "Hard", "Expert")
MERGE_STRATEGIES = ("skip", "overwrite", "force", "merge")
OPTION_LETTERS = string.ascii_uppercase
TRUE_FALSE_OPTIONS = ["True", "False"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MediaRefs(BaseModel):
    images: list[str] = []
    audio: list[str] = []
    video: list[str] = []

    @field_validator("images", "audio", "video", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value

    def is_empty(self) -> bool:
        return not (self.images or self.audio or self.video)


class Provenance(BaseModel):
    """Where, when and by whom a record was introduced or last changed."""

    model_config = ConfigDict(extra="allow")

    upload_id: Optional[str] = None
    filename: Optional[str] = None
    row_index: Optional[int] = None
    owner: Optional[str] = None
    created: str = Field(default_factory=_now)
    last_updated: str = Field(default_factory=_now)
    version: str = RECORD_VERSION
    imported_at: Optional[str] = None
    preset: Optional[str] = None
    original_id: Optional[Union[int, str]] = None
    replaced_at: Optional[str] = None
    merged_from: Optional[str] = None
    migrated: bool = False


class QuestionAnalytics(BaseModel):
    times_used: int = 0
    correct_answers: int = 0
    total_attempts: int = 0
    average_time: float = 0.0
    last_used: Optional[str] = None


class QuestionRecord(BaseModel):
    """Canonical quiz-question record, the unit stored in a bank."""

    id: Optional[Union[int, str]] = None
    question: str = ""
    type: str = "multiple_choice"
    options: list[str] = []
    correct_answer: str = ""
    category: str = "General"
    difficulty: str = "Medium"
    points: Union[int, float] = 1
    time_limit: Union[int, float] = 30
    explanation: str = ""
    tags: list[str] = []
    prerequisites: list[str] = []
    learning_objectives: list[str] = []
    media: MediaRefs = Field(default_factory=MediaRefs)
    source: Provenance = Field(default_factory=Provenance)
    analytics: QuestionAnalytics = Field(default_factory=QuestionAnalytics)
    custom_fields: dict[str, str] = {}

    @field_validator("tags", "prerequisites", "learning_objectives", "options", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _none_to_dict(cls, value):
        return {} if value is None else value

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _answer_to_text(cls, value):
        if value is None:
            return ""
        return str(value)

    @field_validator("media", "source", "analytics", mode="before")
    @classmethod
    def _none_to_model(cls, value):
        return {} if value is None else value

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_question_shape(cls, data):
        if not isinstance(data, dict):
            return data
        legacy = (
            ("text" in data and "question" not in data)
            or isinstance(data.get("answer"), int)
            or "timeLimit" in data
            or "section" in data
        )
        if not legacy:
            return data
        data = dict(data)
        if "question" not in data:
            data["question"] = data.pop("text", "")
        else:
            data.pop("text", None)
        if "time_limit" not in data and "timeLimit" in data:
            data["time_limit"] = data.pop("timeLimit")
        else:
            data.pop("timeLimit", None)
        section = data.pop("section", None)
        if not data.get("category") and section:
            data["category"] = section
        options = data.get("options") or []
        answer = data.pop("answer", None)
        correct = data.pop("correct", None)
        if not data.get("correct_answer"):
            if isinstance(answer, int) and 0 <= answer < len(options):
                data["correct_answer"] = OPTION_LETTERS[answer]
            elif isinstance(correct, list) and correct:
                data["correct_answer"] = str(correct[0])
        source = dict(data.get("source") or {})
        source.setdefault("migrated", True)
        source.setdefault("original_format", "legacy")
        data["source"] = source
        return data

    def ref(self) -> dict[str, Any]:
        return {"id": self.id, "question": self.question}


class RowError(BaseModel):
    line: Optional[int] = None
    error: str
    question: Optional[str] = None
    content: Optional[str] = None
    filename: Optional[str] = None


class RowWarning(BaseModel):
    line: Optional[int] = None
    warning: str
    question: Optional[str] = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class MergeConflict(BaseModel):
    existing_ref: dict[str, Any]
    incoming_ref: dict[str, Any]
    strategy: str
    resulting_action: str = Field(description="skip | update | add")
    match_type: str = Field(default="id", description="id | text")


class ImportSummary(BaseModel):
    processed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    error_count: int = 0
    errors: list[RowError] = []
    warnings: list[RowWarning] = []

    def headline(self) -> str:
        return (
            f"{self.processed} processed, {self.added} added, {self.updated} updated, "
            f"{self.skipped} skipped, {self.error_count} errors"
        )


class ParseSummary(BaseModel):
    total: int = 0
    successful: int = 0
    errors: int = 0
    warnings: int = 0


class Collections(BaseModel):
    categories: list[str] = []
    difficulties: list[str] = []
    tags: list[str] = []


class ParseSnapshot(BaseModel):
    timestamp: str = Field(default_factory=_now)
    headers: list[str] = []
    rows: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    errors: list[RowError] = []
    warnings: list[RowWarning] = []
    compact_errors: list[RowError] = []
    compact_warnings: list[RowWarning] = []
    snapshot_row_limit: int = 0


class ImportOptions(BaseModel):
    """Per-call options; accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    merge_strategy: str = DEFAULTS.merge_strategy
    strict_validation: bool = False
    auto_correct: bool = True
    preserve_custom_fields: bool = True
    batch_size: int = Field(default=DEFAULTS.batch_size, ge=1)
    yield_every: int = Field(default=DEFAULTS.yield_every, ge=1)
    snapshot_row_limit: int = Field(default=DEFAULTS.snapshot_row_limit, ge=0)
    headers_map: Optional[dict[str, str]] = None
    preset: Optional[str] = None
    upload_id: Optional[str] = None
    owner: str = DEFAULTS.owner
    tags: list[str] = []
    strictness: str = "lenient"
    filename: Optional[str] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return value

    @field_validator("strictness", mode="before")
    @classmethod
    def _norm_strictness(cls, value):
        v = str(value or "").strip().lower()
        return v if v in {"lenient", "strict"} else "lenient"


class ParseResult(BaseModel):
    questions: list[QuestionRecord] = []
    summary: ParseSummary = Field(default_factory=ParseSummary)
    errors: list[RowError] = []
    warnings: list[RowWarning] = []
    collections: Collections = Field(default_factory=Collections)
    headers: list[str] = []
    last_parse_snapshot: Optional[ParseSnapshot] = None


class ImportResult(ParseResult):
    upload_id: str
    added: int = 0
    updated: int = 0
    skipped: int = 0
    conflicts: list[MergeConflict] = []
    merge_summary: ImportSummary = Field(default_factory=ImportSummary)
    compact_parse_snapshot: Optional[ParseSnapshot] = None


class FileDetail(BaseModel):
    filename: str
    size: int = 0
    processed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = []


class UploadResult(BaseModel):
    upload_id: str
    summary: ImportSummary = Field(default_factory=ImportSummary)
    details_per_file: list[FileDetail] = []
    conflicts: list[MergeConflict] = []


class ValidationReport(BaseModel):
    is_valid: bool
    summary: ParseSummary = Field(default_factory=ParseSummary)
    errors: list[RowError] = []
    warnings: list[RowWarning] = []
    collections: Collections = Field(default_factory=Collections)
    parse_snapshot: Optional[ParseSnapshot] = None


class UploadEntry(BaseModel):
    upload_id: str
    filenames: list[str] = []
    imported_at: str = Field(default_factory=_now)
    owner: Optional[str] = None
    processed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    error_count: int = 0


class BankMetadata(BaseModel):
    version: str = SCHEMA_VERSION
    created: str = Field(default_factory=_now)
    last_updated: str = Field(default_factory=_now)
    total_questions: int = 0
    uploads: list[UploadEntry] = []
