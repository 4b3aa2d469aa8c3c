from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping

FIELD_ALIASES: dict[str, list[str]] = {
    "question": ["question", "question_text", "text", "problem", "prompt"],
    "id": ["id", "question_id", "qid", "number", "#"],
    "type": ["type", "question_type", "format", "style"],
    "option_a": ["option_a", "a", "choice_a", "answer_a", "option1", "option_1"],
    "option_b": ["option_b", "b", "choice_b", "answer_b", "option2", "option_2"],
    "option_c": ["option_c", "c", "choice_c", "answer_c", "option3", "option_3"],
    "option_d": ["option_d", "d", "choice_d", "answer_d", "option4", "option_4"],
    "option_e": ["option_e", "e", "choice_e", "answer_e", "option5", "option_5"],
    "correct_answer": ["correct_answer", "correct", "answer", "solution", "key"],
    "category": ["category", "subject", "topic", "domain", "area"],
    "difficulty": ["difficulty", "level", "complexity", "grade"],
    "points": ["points", "score", "weight", "value", "marks"],
    "time_limit": ["time_limit", "time", "duration", "seconds", "timeout"],
    "explanation": ["explanation", "rationale", "why", "reason", "detail"],
    "tags": ["tags", "keywords", "labels", "topics"],
    "prerequisites": ["prerequisites", "prereqs", "requires", "depends_on"],
    "learning_objectives": ["learning_objectives", "objectives", "goals", "outcomes"],
    "image": ["image", "images", "img", "picture", "figure"],
    "audio": ["audio", "sound", "recording"],
    "video": ["video", "clip", "movie"],
}

OPTION_PREFIX = "option_"
LIST_FIELDS = ("tags", "prerequisites", "learning_objectives")
MEDIA_FIELDS = {"image": "images", "audio": "audio", "video": "video"}
SCALAR_FIELDS = (
    "id",
    "question",
    "type",
    "correct_answer",
    "category",
    "difficulty",
    "points",
    "time_limit",
    "explanation",
)

PRESET_REQUIRED: dict[str, list[str]] = {
    "multiple_choice": ["option_a", "option_b", "option_c", "option_d", "correct_answer"],
    "true_false": ["correct_answer"],
    "short_answer": ["correct_answer"],
    "numeric": ["correct_answer"],
}

_ALIAS_LOOKUP: dict[str, str] = {
    alias: canonical for canonical, aliases in FIELD_ALIASES.items() for alias in aliases
}


def normalize_token(header: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(header or "").lower()).strip("_")


def normalize_overrides(headers_map: Mapping[str, str] | None) -> dict[str, str]:
    """Normalize a caller header map so its keys match normalized headers."""
    if not headers_map:
        return {}
    out: dict[str, str] = {}
    for raw, target in headers_map.items():
        key = normalize_token(raw) or str(raw).strip()
        value = normalize_token(target) or str(target).strip()
        if key and value:
            out[key] = _ALIAS_LOOKUP.get(value, value)
    return out


def normalize_header(header: str, overrides: Mapping[str, str] | None = None) -> str:
    """Map a raw header onto its canonical field name.

    ``overrides`` must already be normalized (see ``normalize_overrides``) and
    wins over the built-in alias table. Unknown headers come back in their
    normalized form so they can be kept as custom fields.
    """
    token = normalize_token(header) or str(header or "").strip()
    if overrides and token in overrides:
        return overrides[token]
    return _ALIAS_LOOKUP.get(token, token)


def is_option_field(name: str) -> bool:
    return name.startswith(OPTION_PREFIX) and len(name) > len(OPTION_PREFIX)


def required_headers_for_preset(preset: str | None) -> list[str]:
    return list(PRESET_REQUIRED.get((preset or "").strip().lower(), []))


@dataclass
class HeaderCheck:
    normalized: list[str]
    missing: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_headers(
    headers: list[str],
    required: list[str] | None = None,
    overrides: Mapping[str, str] | None = None,
) -> HeaderCheck:
    normalized = [normalize_header(h, overrides) for h in headers]
    check = HeaderCheck(normalized=normalized)

    wanted = ["question"] + [r for r in (required or []) if r != "question"]
    check.missing = [r for r in wanted if r not in normalized]
    if check.missing:
        check.errors.append(f"Missing required headers: {', '.join(check.missing)}")

    seen: set[str] = set()
    duplicates: list[str] = []
    for name in normalized:
        if not name:
            continue
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    if duplicates:
        check.errors.append(f"Duplicate headers found: {', '.join(duplicates)}")

    if any(is_option_field(n) for n in normalized) and "correct_answer" not in normalized:
        check.warnings.append("Found option fields but no correct answer field")
    return check
