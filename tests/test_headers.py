from __future__ import annotations

from quizbank.ingest.headers import (
    normalize_header,
    normalize_overrides,
    required_headers_for_preset,
    validate_headers,
)


def test_aliases_map_to_canonical_fields() -> None:
    assert normalize_header("Question Text") == "question"
    assert normalize_header("  Correct-Answer ") == "correct_answer"
    assert normalize_header("Choice A") == "option_a"
    assert normalize_header("Subject") == "category"
    assert normalize_header("Time Limit") == "time_limit"
    assert normalize_header("#") == "id"


def test_unknown_headers_keep_normalized_form() -> None:
    assert normalize_header("Source Book!") == "source_book"


def test_overrides_win_over_aliases() -> None:
    overrides = normalize_overrides({" Prompt Text ": "Question", "Topic": "tags"})
    assert normalize_header("prompt text", overrides) == "question"
    assert normalize_header("TOPIC", overrides) == "tags"
    assert normalize_header("topic") == "category"


def test_missing_question_is_an_error() -> None:
    check = validate_headers(["id", "option_a", "correct_answer"])
    assert not check.is_valid
    assert check.missing == ["question"]
    assert check.errors == ["Missing required headers: question"]


def test_duplicate_headers_are_an_error() -> None:
    check = validate_headers(["question", "Question Text", "correct_answer"])
    assert not check.is_valid
    assert "Duplicate headers found: question" in check.errors


def test_options_without_answer_warn() -> None:
    check = validate_headers(["question", "option_a", "option_b"])
    assert check.is_valid
    assert check.warnings == ["Found option fields but no correct answer field"]


def test_presets() -> None:
    assert required_headers_for_preset("Multiple_Choice") == [
        "option_a",
        "option_b",
        "option_c",
        "option_d",
        "correct_answer",
    ]
    assert required_headers_for_preset("numeric") == ["correct_answer"]
    assert required_headers_for_preset("unknown") == []
    check = validate_headers(["question", "option_a"], required=required_headers_for_preset("true_false"))
    assert check.missing == ["correct_answer"]
