"""Import event ledger.

Every stage of an import (header check, batch yield, merge, cleanup) records
an event here. Events are stamped with the upload they belong to, so the CLI
can write one upload's log without the rest, and the ledger is a bounded
deque: the oldest events fall off once ``QB_EVENT_LOG_LIMIT`` is reached.
"""

from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from quizbank.utils.config import DEFAULTS

_events: deque[dict[str, Any]] = deque(maxlen=DEFAULTS.event_log_limit)
_current_upload: ContextVar[Optional[str]] = ContextVar("quizbank_upload_id", default=None)


@contextmanager
def upload_scope(upload_id: str) -> Iterator[str]:
    """Tag events logged inside the block (and tasks it spawns) with ``upload_id``."""
    token = _current_upload.set(upload_id)
    try:
        yield upload_id
    finally:
        _current_upload.reset(token)


def log_event(event_type: str, payload: dict[str, Any]) -> None:
    _events.append(
        {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "upload_id": _current_upload.get(),
            "event_type": event_type,
            "payload": payload,
        }
    )


def events_of_type(event_type: str, upload_id: str | None = None) -> list[dict[str, Any]]:
    return [
        e
        for e in _events
        if e["event_type"] == event_type and (upload_id is None or e["upload_id"] == upload_id)
    ]


def events_for_upload(upload_id: str) -> list[dict[str, Any]]:
    return [e for e in _events if e["upload_id"] == upload_id]


def reset_events() -> None:
    _events.clear()


def events_as_markdown(upload_id: str | None = None) -> str:
    events = list(_events) if upload_id is None else events_for_upload(upload_id)
    title = "# Import Log" if upload_id is None else f"# Import Log: {upload_id}"
    lines = [title, ""]
    for event in events:
        lines.append(f"- `{event['timestamp']}` {event['event_type']}: {event['payload']}")
    if not events:
        lines.append("- No import events captured.")
    return "\n".join(lines)
