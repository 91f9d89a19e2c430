"""SQLite-backed CheckpointStore."""
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional

from .checkpoint_store import CheckpointStore


@dataclass
class CheckpointEntry:
    job_key: str
    context: dict
    updated_at: datetime


class SQLiteCheckpointStore(CheckpointStore):
    """Stores each execution context as a JSON document keyed by job."""

    def __init__(self, db_path: str | Path = "data/checkpoints.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS execution_context (
                    job_key TEXT PRIMARY KEY,
                    context TEXT NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """
            )

    def load(self, job_key: str) -> Optional[dict]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT context FROM execution_context WHERE job_key=?", (job_key,)
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["context"])

    def save(self, job_key: str, context: Mapping[str, object]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO execution_context (job_key, context, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(job_key) DO UPDATE SET
                    context=excluded.context,
                    updated_at=excluded.updated_at
                """,
                (
                    job_key,
                    json.dumps(dict(context), sort_keys=True),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    def delete(self, job_key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM execution_context WHERE job_key=?", (job_key,))

    def list_keys(self) -> list[str]:
        return [entry.job_key for entry in self.list_entries()]

    def list_entries(self, job_key: Optional[str] = None) -> list[CheckpointEntry]:
        where_sql = ""
        params: tuple = ()
        if job_key:
            where_sql = "WHERE job_key = ?"
            params = (job_key,)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT job_key, context, updated_at
                  FROM execution_context
                  {where_sql}
                 ORDER BY job_key
                """,
                params,
            ).fetchall()
        return [
            CheckpointEntry(
                job_key=row["job_key"],
                context=json.loads(row["context"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]


__all__ = ["CheckpointEntry", "SQLiteCheckpointStore"]
