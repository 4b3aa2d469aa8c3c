import os
from dataclasses import dataclass, field


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _str_env(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


@dataclass(frozen=True)
class ImportDefaults:
    batch_size: int = field(default_factory=lambda: _int_env("QB_BATCH_SIZE", 1000))
    yield_every: int = field(default_factory=lambda: _int_env("QB_YIELD_EVERY", 5))
    snapshot_row_limit: int = field(default_factory=lambda: _int_env("QB_SNAPSHOT_ROW_LIMIT", 50))
    merge_strategy: str = field(default_factory=lambda: _str_env("QB_MERGE_STRATEGY", "skip"))
    db_path: str = field(default_factory=lambda: _str_env("QB_DB_PATH", "outputs/question_bank.db"))
    owner: str = field(default_factory=lambda: _str_env("QB_OWNER", "system"))
    event_log_limit: int = field(default_factory=lambda: _int_env("QB_EVENT_LOG_LIMIT", 2000))


SCHEMA_VERSION = "2.0.0"
RECORD_VERSION = "1.0.0"
DEFAULTS = ImportDefaults()
