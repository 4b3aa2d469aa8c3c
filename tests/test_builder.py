from __future__ import annotations

from quizbank.ingest.builder import (
    answer_option,
    auto_correct,
    build_record,
    resolve_answer_index,
    validate_record,
)
from quizbank.schemas.models import QuestionRecord

HEADERS = ["id", "question", "option_a", "option_b", "option_c", "option_d", "correct_answer"]
META = {"upload_id": "u1", "filename": "bank.csv", "owner": "tester", "created": "2026-01-01T00:00:00"}


def _record(**overrides) -> QuestionRecord:
    base = {
        "id": 1,
        "question": "Capital of France?",
        "options": ["Berlin", "Paris", "Rome"],
        "correct_answer": "B",
        "category": "Geography",
        "explanation": "Paris is the capital.",
    }
    base.update(overrides)
    return QuestionRecord(**base)


def test_build_record_coerces_fields_once() -> None:
    record = build_record(["1", "What is 2+2?", "2", "3", "4", "5", "c"], HEADERS, META)
    assert record.id == 1
    assert record.options == ["2", "3", "4", "5"]
    assert record.correct_answer == "C"
    assert answer_option(record) == "4"
    assert record.source.upload_id == "u1"
    assert record.source.filename == "bank.csv"
    assert record.source.owner == "tester"
    assert record.source.created == "2026-01-01T00:00:00"


def test_build_record_keeps_string_ids_and_splits_lists() -> None:
    headers = ["id", "question", "type", "tags", "image", "points", "time_limit", "Difficulty"]
    row = ["Q-7 ", "Explain gravity", "Short Answer", "physics, basics,physics", "a.png, b.png", "2.5", "abc", "hard"]
    record = build_record(row, headers, META)
    assert record.id == "Q-7"
    assert record.type == "short_answer"
    assert record.tags == ["physics", "basics"]
    assert record.media.images == ["a.png", "b.png"]
    assert record.points == 2.5
    assert record.time_limit == 30
    assert record.difficulty == "Hard"


def test_unknown_columns_become_custom_fields() -> None:
    headers = ["question", "Source Book", "", "correct_answer"]
    record = build_record(["Q", "Physics 101", "loose", "x"], headers, META)
    assert record.custom_fields == {"source_book": "Physics 101", "column_3": "loose"}

    dropped = build_record(["Q", "Physics 101", "loose", "x"], headers, META, preserve_custom_fields=False)
    assert dropped.custom_fields == {}


def test_true_false_gets_default_options() -> None:
    record = build_record(["Sky is blue", "true_false", "true"], ["question", "type", "answer"], META)
    assert record.options == ["True", "False"]
    assert resolve_answer_index(record) == 0


def test_column_order_does_not_change_the_record() -> None:
    row = ["1", "What is 2+2?", "2", "3", "4", "5", "C"]
    order = [6, 3, 0, 5, 1, 4, 2]
    shuffled_headers = [HEADERS[i] for i in order]
    shuffled_row = [row[i] for i in order]
    assert build_record(row, HEADERS, META) == build_record(shuffled_row, shuffled_headers, META)


def test_auto_correct_numeric_and_text_answers() -> None:
    assert auto_correct(_record(correct_answer="1")).correct_answer == "A"
    assert auto_correct(_record(correct_answer="paris")).correct_answer == "B"
    assert auto_correct(_record(correct_answer="b")).correct_answer == "B"


def test_auto_correct_normalizes_difficulty_numbers_and_tags() -> None:
    fixed = auto_correct(
        _record(difficulty="beginner", points=-3, time_limit=-10, tags=["Geo", " geo ", "EU", ""])
    )
    assert fixed.difficulty == "Easy"
    assert fixed.points == 1
    assert fixed.time_limit == 30
    assert fixed.tags == ["geo", "eu"]
    assert auto_correct(_record(difficulty="4")).difficulty == "Expert"


def test_auto_correct_is_idempotent() -> None:
    once = auto_correct(_record(correct_answer="3", difficulty="advanced", tags=["A", "a"], points=-1))
    assert auto_correct(once) == once


def test_auto_correct_returns_a_copy() -> None:
    original = _record(correct_answer="1")
    auto_correct(original)
    assert original.correct_answer == "1"


def test_validate_accepts_a_good_record() -> None:
    result = validate_record(_record())
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_validate_reports_errors_without_raising() -> None:
    result = validate_record(_record(question="  ", options=["only one"], correct_answer="Z", points=-1))
    assert not result.is_valid
    assert "Required field 'question' is missing or empty" in result.errors
    assert "multiple_choice questions must have at least 2 options" in result.errors
    assert "Points cannot be negative" in result.errors


def test_validate_checks_answer_type_and_difficulty() -> None:
    assert not validate_record(_record(correct_answer="Madrid")).is_valid
    assert not validate_record(_record(correct_answer="")).is_valid
    assert not validate_record(_record(type="riddle")).is_valid
    assert not validate_record(_record(difficulty="Impossible")).is_valid
    assert validate_record(_record(correct_answer="2")).is_valid
    assert validate_record(_record(type="essay", options=[], correct_answer="")).is_valid


def test_validate_warnings() -> None:
    result = validate_record(_record(explanation="", category="General"))
    assert result.is_valid
    assert result.warnings == ["No explanation provided", "Question not categorized"]


def test_legacy_shape_is_migrated() -> None:
    record = QuestionRecord.model_validate(
        {"id": 3, "text": "Old question", "options": ["x", "y"], "answer": 1, "timeLimit": 45, "section": "Legacy"}
    )
    assert record.question == "Old question"
    assert record.correct_answer == "B"
    assert record.time_limit == 45
    assert record.category == "Legacy"
    assert record.source.migrated is True
