from __future__ import annotations

import os
from pathlib import Path

import pytest

from quizbank.utils.config import DEFAULTS, ImportDefaults
from quizbank.utils.env import load_env_file
from quizbank.utils.logging import (
    events_as_markdown,
    events_for_upload,
    events_of_type,
    log_event,
    reset_events,
    upload_scope,
)


def test_defaults_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QB_BATCH_SIZE", "250")
    monkeypatch.setenv("QB_SNAPSHOT_ROW_LIMIT", "not-a-number")
    monkeypatch.setenv("QB_MERGE_STRATEGY", "merge")
    defaults = ImportDefaults()
    assert defaults.batch_size == 250
    assert defaults.snapshot_row_limit == 50
    assert defaults.merge_strategy == "merge"


def test_env_file_does_not_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("QB_OWNER", "already-set")
    monkeypatch.delenv("QB_DB_PATH", raising=False)
    env_path = tmp_path / ".env"
    env_path.write_text('# comment\nQB_OWNER=from-file\nexport QB_DB_PATH="x/bank.db"\n', encoding="utf-8")
    assert load_env_file(env_path) == 1
    assert os.environ["QB_OWNER"] == "already-set"
    assert os.environ["QB_DB_PATH"] == "x/bank.db"
    monkeypatch.delenv("QB_DB_PATH")
    assert load_env_file(tmp_path / "missing.env") == 0


def test_event_ledger() -> None:
    reset_events()
    assert "No import events captured." in events_as_markdown()
    log_event("merge_complete", {"added": 2})
    assert events_of_type("merge_complete")[0]["payload"] == {"added": 2}
    assert "merge_complete: {'added': 2}" in events_as_markdown()
    reset_events()


def test_events_are_tagged_with_their_upload() -> None:
    reset_events()
    with upload_scope("upload_a"):
        log_event("parse_complete", {"rows": 1})
    with upload_scope("upload_b"):
        log_event("parse_complete", {"rows": 2})
    log_event("parse_complete", {"rows": 3})
    assert [e["payload"]["rows"] for e in events_for_upload("upload_b")] == [2]
    assert len(events_of_type("parse_complete")) == 3
    assert len(events_of_type("parse_complete", upload_id="upload_a")) == 1
    text = events_as_markdown("upload_a")
    assert text.startswith("# Import Log: upload_a")
    assert "{'rows': 2}" not in text
    reset_events()


def test_ledger_is_bounded() -> None:
    reset_events()
    for n in range(DEFAULTS.event_log_limit + 25):
        log_event("tick", {"n": n})
    ticks = events_of_type("tick")
    assert len(ticks) == DEFAULTS.event_log_limit
    assert ticks[0]["payload"] == {"n": 25}
    reset_events()
