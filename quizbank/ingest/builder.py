from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from quizbank.ingest.headers import (
    LIST_FIELDS,
    MEDIA_FIELDS,
    OPTION_PREFIX,
    SCALAR_FIELDS,
    is_option_field,
    normalize_header,
    normalize_token,
)
from quizbank.schemas.models import (
    CHOICE_TYPES,
    DIFFICULTY_LEVELS,
    OPTION_LETTERS,
    QUESTION_TYPES,
    TRUE_FALSE_OPTIONS,
    MediaRefs,
    Provenance,
    QuestionRecord,
    ValidationResult,
)

DEFAULT_POINTS = 1
DEFAULT_TIME_LIMIT = 30

DIFFICULTY_SYNONYMS: dict[str, str] = {
    "1": "Easy",
    "easy": "Easy",
    "beginner": "Easy",
    "basic": "Easy",
    "simple": "Easy",
    "2": "Medium",
    "medium": "Medium",
    "intermediate": "Medium",
    "normal": "Medium",
    "average": "Medium",
    "3": "Hard",
    "hard": "Hard",
    "advanced": "Hard",
    "difficult": "Hard",
    "challenging": "Hard",
    "4": "Expert",
    "5": "Expert",
    "expert": "Expert",
    "master": "Expert",
    "professional": "Expert",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def split_list(value: str) -> list[str]:
    out: list[str] = []
    for item in value.split(","):
        item = item.strip()
        if item and item not in out:
            out.append(item)
    return out


def _coerce_id(value: str) -> int | str:
    text = value.strip()
    if text.isdigit():
        return int(text)
    return text


def _coerce_number(value: str, default: int | float) -> int | float:
    try:
        number = float(value.strip())
    except ValueError:
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return int(number) if number.is_integer() else number


def _coerce_difficulty(value: str) -> str:
    for level in DIFFICULTY_LEVELS:
        if value.strip().lower() == level.lower():
            return level
    return value.strip()


def _option_sort_key(item: tuple[str, int, str]) -> tuple[int, str, int]:
    name, column, _ = item
    suffix = name[len(OPTION_PREFIX):]
    return (len(suffix), suffix, column)


def build_record(
    row: Sequence[str],
    headers: Sequence[str],
    metadata: Mapping[str, Any] | None = None,
    overrides: Mapping[str, str] | None = None,
    preserve_custom_fields: bool = True,
) -> QuestionRecord:
    """Convert one parsed row into a canonical record, coercing each field once."""
    meta = dict(metadata or {})
    data: dict[str, Any] = {}
    option_cells: list[tuple[str, int, str]] = []
    media: dict[str, list[str]] = {"images": [], "audio": [], "video": []}
    custom: dict[str, str] = {}

    for column, header in enumerate(headers):
        value = str(row[column]).strip() if column < len(row) and row[column] is not None else ""
        if value == "":
            continue
        name = normalize_header(header, overrides)
        if is_option_field(name):
            option_cells.append((name, column, value))
        elif name in LIST_FIELDS:
            data[name] = split_list(value)
        elif name in MEDIA_FIELDS:
            for ref in split_list(value):
                if ref not in media[MEDIA_FIELDS[name]]:
                    media[MEDIA_FIELDS[name]].append(ref)
        elif name in SCALAR_FIELDS:
            data[name] = value
        elif preserve_custom_fields:
            custom[name or f"column_{column + 1}"] = value

    if "id" in data:
        data["id"] = _coerce_id(data["id"])
    if "type" in data:
        data["type"] = normalize_token(data["type"])
    if "points" in data:
        data["points"] = _coerce_number(data["points"], DEFAULT_POINTS)
    if "time_limit" in data:
        data["time_limit"] = _coerce_number(data["time_limit"], DEFAULT_TIME_LIMIT)
    if "difficulty" in data:
        data["difficulty"] = _coerce_difficulty(data["difficulty"])
    answer = data.get("correct_answer", "")
    if len(answer) == 1 and answer.isalpha():
        data["correct_answer"] = answer.upper()

    options = [value for _, _, value in sorted(option_cells, key=_option_sort_key)]
    if data.get("type") == "true_false" and not options:
        options = list(TRUE_FALSE_OPTIONS)

    created = meta.get("created") or _now()
    source = Provenance(
        upload_id=meta.get("upload_id"),
        filename=meta.get("filename"),
        row_index=meta.get("row_index"),
        owner=meta.get("owner"),
        created=created,
        last_updated=created,
    )
    return QuestionRecord(
        **data,
        options=options,
        media=MediaRefs(**media),
        source=source,
        custom_fields=custom,
    )


def resolve_answer_index(record: QuestionRecord) -> int | None:
    """Find the option a choice answer points at, by letter, 1-based index or text."""
    answer = record.correct_answer.strip()
    options = record.options
    if not answer or not options:
        return None
    if len(answer) == 1 and answer.upper() in OPTION_LETTERS:
        idx = OPTION_LETTERS.index(answer.upper())
        if idx < len(options):
            return idx
    if answer.isdigit():
        idx = int(answer) - 1
        if 0 <= idx < len(options):
            return idx
    lowered = answer.lower()
    for idx, option in enumerate(options):
        if option.strip().lower() == lowered:
            return idx
    return None


def answer_option(record: QuestionRecord) -> str | None:
    idx = resolve_answer_index(record)
    return record.options[idx] if idx is not None else None


def _letter_for(idx: int) -> str | None:
    return OPTION_LETTERS[idx] if 0 <= idx < len(OPTION_LETTERS) else None


def auto_correct(record: QuestionRecord) -> QuestionRecord:
    """Fix common authoring mistakes; returns a corrected copy.

    Applying it to its own output changes nothing.
    """
    fixed = record.model_copy(deep=True)

    answer = fixed.correct_answer.strip()
    if answer and fixed.options and fixed.type in CHOICE_TYPES:
        letter_ok = (
            len(answer) == 1
            and answer.upper() in OPTION_LETTERS
            and OPTION_LETTERS.index(answer.upper()) < len(fixed.options)
        )
        if letter_ok:
            if fixed.correct_answer != answer.upper():
                fixed.correct_answer = answer.upper()
        elif answer.isdigit():
            letter = _letter_for(int(answer) - 1)
            if letter is not None and int(answer) - 1 < len(fixed.options):
                fixed.correct_answer = letter
        else:
            for idx, option in enumerate(fixed.options):
                if option.strip().lower() == answer.lower():
                    letter = _letter_for(idx)
                    if letter is not None:
                        fixed.correct_answer = letter
                    break

    if fixed.difficulty:
        canonical = DIFFICULTY_SYNONYMS.get(fixed.difficulty.strip().lower())
        if canonical and canonical != fixed.difficulty:
            fixed.difficulty = canonical

    cleaned: list[str] = []
    for tag in fixed.tags:
        tag = str(tag).strip().lower()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    if cleaned != fixed.tags:
        fixed.tags = cleaned

    if fixed.points < 0:
        fixed.points = DEFAULT_POINTS
    if fixed.time_limit < 0:
        fixed.time_limit = DEFAULT_TIME_LIMIT
    return fixed


def validate_record(record: QuestionRecord) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not record.question.strip():
        errors.append("Required field 'question' is missing or empty")
    if not record.type.strip():
        errors.append("Required field 'type' is missing or empty")
    elif record.type not in QUESTION_TYPES:
        errors.append(f"Unsupported question type '{record.type}'")

    if record.type in CHOICE_TYPES:
        if len(record.options) < 2:
            errors.append(f"{record.type} questions must have at least 2 options")
        if not record.correct_answer.strip():
            errors.append(f"{record.type} questions need a correct answer")
        elif len(record.options) >= 2 and resolve_answer_index(record) is None:
            errors.append(
                f"Correct answer '{record.correct_answer}' doesn't match available options"
            )

    if record.points < 0:
        errors.append("Points cannot be negative")
    if record.time_limit < 0:
        errors.append("Time limit cannot be negative")

    if record.difficulty not in DIFFICULTY_LEVELS:
        errors.append(f"Unsupported difficulty '{record.difficulty}'")
    if not record.explanation.strip():
        warnings.append("No explanation provided")
    if not record.category.strip() or record.category == "General":
        warnings.append("Question not categorized")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
