from __future__ import annotations

import asyncio

import pytest

from quizbank.ingest.batch import run_batched
from quizbank.schemas.models import ImportOptions
from quizbank.utils.errors import RowValidationError
from quizbank.utils.logging import events_of_type, reset_events

HEADERS = ["question", "option_a", "option_b", "correct_answer", "category", "difficulty", "tags"]


def _rows(n: int) -> list[list[str]]:
    return [
        [f"Question {i}?", "yes", "no", "A", f"Cat{i % 3}", "Easy", "Alpha, beta"]
        for i in range(n)
    ]


@pytest.mark.asyncio
async def test_rows_keep_order_and_invalid_rows_are_dropped() -> None:
    rows = _rows(5)
    rows[2][0] = ""
    result = await run_batched(HEADERS, rows, ImportOptions(batch_size=2))
    assert [q.question for q in result.questions] == [
        "Question 0?",
        "Question 1?",
        "Question 3?",
        "Question 4?",
    ]
    assert len(result.errors) == 1
    assert result.errors[0].line == 4
    assert result.processed == 5
    assert result.chunks == 3


@pytest.mark.asyncio
async def test_line_numbers_come_from_parser_when_given() -> None:
    rows = _rows(2)
    rows[1][0] = ""
    result = await run_batched(HEADERS, rows, ImportOptions(), line_numbers=[2, 7])
    assert result.errors[0].line == 7


@pytest.mark.asyncio
async def test_collections_are_built_incrementally() -> None:
    result = await run_batched(HEADERS, _rows(4), ImportOptions(batch_size=1))
    assert result.collections.categories == ["Cat0", "Cat1", "Cat2"]
    assert result.collections.difficulties == ["Easy"]
    assert result.collections.tags == ["alpha", "beta"]


@pytest.mark.asyncio
async def test_strict_mode_raises_on_first_bad_row() -> None:
    rows = _rows(3)
    rows[1][3] = "Q"
    with pytest.raises(RowValidationError) as excinfo:
        await run_batched(HEADERS, rows, ImportOptions(strict_validation=True))
    assert excinfo.value.line == 3
    assert str(excinfo.value).startswith("Row 3: Validation failed:")


@pytest.mark.asyncio
async def test_yields_to_the_event_loop_between_chunks() -> None:
    reset_events()
    ticks: list[int] = []

    async def ticker() -> None:
        for i in range(100):
            ticks.append(i)
            await asyncio.sleep(0)

    task = asyncio.create_task(ticker())
    result = await run_batched(HEADERS, _rows(40), ImportOptions(batch_size=5, yield_every=2))
    assert ticks, "ticker never ran while the batch was processing"
    assert len(events_of_type("batch_yield")) == 4
    assert len(result.questions) == 40
    task.cancel()
