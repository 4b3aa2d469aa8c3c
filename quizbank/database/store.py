from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from quizbank.database.bank import QuestionBank
from quizbank.database.merge import normalize_question_text
from quizbank.schemas.models import BankMetadata, QuestionRecord
from quizbank.utils.logging import log_event


def _safe_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=True)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class QuestionBankDatabase:
    def __init__(self, db_path: str = "outputs/question_bank.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._init_db()

    def close(self) -> None:
        self.conn.close()

    def _init_db(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS questions (
                position INTEGER NOT NULL,
                question_id TEXT PRIMARY KEY,
                normalized_text TEXT NOT NULL,
                category TEXT,
                difficulty TEXT,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_questions_text ON questions(normalized_text)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_questions_category ON questions(category)")
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS bank_meta (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS uploads (
                upload_id TEXT PRIMARY KEY,
                filename TEXT,
                summary_json TEXT NOT NULL,
                options_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS backups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bank_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def load_bank(self) -> QuestionBank:
        rows = self.conn.execute("SELECT record_json FROM questions ORDER BY position").fetchall()
        records = [QuestionRecord.model_validate(json.loads(r["record_json"])) for r in rows]
        meta_row = self.conn.execute(
            "SELECT value_json FROM bank_meta WHERE key = 'metadata'"
        ).fetchone()
        metadata = (
            BankMetadata.model_validate(json.loads(meta_row["value_json"]))
            if meta_row
            else BankMetadata()
        )
        metadata.total_questions = len(records)
        return QuestionBank(records, metadata)

    def save_bank(self, bank: QuestionBank) -> int:
        """Replace the stored bank with ``bank`` in one transaction."""
        now = _now()
        created = {
            r["question_id"]: r["created_at"]
            for r in self.conn.execute("SELECT question_id, created_at FROM questions").fetchall()
        }
        with self.conn:
            self.conn.execute("DELETE FROM questions")
            for position, record in enumerate(bank.records):
                key = str(record.id)
                self.conn.execute(
                    """
                    INSERT INTO questions (
                        position, question_id, normalized_text, category, difficulty,
                        record_json, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        position,
                        key,
                        normalize_question_text(record.question),
                        record.category,
                        record.difficulty,
                        _safe_json(record.model_dump()),
                        created.get(key, now),
                        now,
                    ),
                )
            self.conn.execute(
                "INSERT OR REPLACE INTO bank_meta (key, value_json) VALUES ('metadata', ?)",
                (_safe_json(bank.metadata.model_dump()),),
            )
        return len(bank.records)

    def create_backup(self, bank: QuestionBank) -> int:
        cur = self.conn.execute(
            "INSERT INTO backups (bank_json, created_at) VALUES (?, ?)",
            (_safe_json(bank.to_payload()), _now()),
        )
        self.conn.commit()
        backup_id = int(cur.lastrowid)
        log_event("backup_created", {"backup_id": backup_id, "questions": len(bank.records)})
        return backup_id

    def fetch_backup(self, backup_id: int) -> QuestionBank | None:
        row = self.conn.execute("SELECT bank_json FROM backups WHERE id = ?", (backup_id,)).fetchone()
        if not row:
            return None
        return QuestionBank.from_payload(json.loads(row["bank_json"]))

    def record_upload(
        self,
        upload_id: str,
        filename: str | None,
        summary: dict[str, Any],
        options: dict[str, Any],
    ) -> None:
        self.conn.execute(
            """
            INSERT OR REPLACE INTO uploads (upload_id, filename, summary_json, options_json, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (upload_id, filename, _safe_json(summary), _safe_json(options), _now()),
        )
        self.conn.commit()

    def list_uploads(self, limit: int = 20) -> list[dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM uploads ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        out: list[dict[str, Any]] = []
        for row in rows:
            data = dict(row)
            data["summary_json"] = json.loads(data["summary_json"])
            data["options_json"] = json.loads(data["options_json"])
            out.append(data)
        return out

    def fetch_question(self, question_id: int | str) -> QuestionRecord | None:
        row = self.conn.execute(
            "SELECT record_json FROM questions WHERE question_id = ?", (str(question_id),)
        ).fetchone()
        if not row:
            return None
        return QuestionRecord.model_validate(json.loads(row["record_json"]))

    def search(self, query: str, limit: int = 20) -> list[dict[str, Any]]:
        like = f"%{query}%"
        rows = self.conn.execute(
            """
            SELECT question_id, category, difficulty, record_json
              FROM questions
             WHERE normalized_text LIKE ?
                OR record_json LIKE ?
             ORDER BY position
             LIMIT ?
            """,
            (f"%{normalize_question_text(query)}%", like, limit),
        ).fetchall()
        out: list[dict[str, Any]] = []
        for row in rows:
            record = json.loads(row["record_json"])
            out.append(
                {
                    "question_id": row["question_id"],
                    "question": record.get("question", ""),
                    "category": row["category"],
                    "difficulty": row["difficulty"],
                }
            )
        return out

    def stats(self) -> dict[str, Any]:
        questions = self.conn.execute("SELECT COUNT(*) AS n FROM questions").fetchone()["n"]
        uploads = self.conn.execute("SELECT COUNT(*) AS n FROM uploads").fetchone()["n"]
        backups = self.conn.execute("SELECT COUNT(*) AS n FROM backups").fetchone()["n"]
        return {
            "questions": questions,
            "uploads": uploads,
            "backups": backups,
            "db_path": str(self.db_path),
        }
