"""SQLite-backed record set implementing ResultFetcher and TimestampLookup."""
from __future__ import annotations

import json
import logging
import re
import sqlite3
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Deque, List

from .errors import ConfigurationError, RecordNotFoundError, TransientFetchError
from .fetcher import Record, SearchRequest, parse_descriptor
from .models import to_epoch_millis

logger = logging.getLogger(__name__)

_PARAM_NAME = re.compile(r"^[A-Za-z0-9_\-]+$")


class SQLiteResultIterator:
    """Pages through an open cursor with ``fetchmany``."""

    def __init__(self, conn: sqlite3.Connection, cursor: sqlite3.Cursor, page_size: int) -> None:
        self._conn = conn
        self._cursor = cursor
        self._page_size = max(1, page_size)
        self._buffer: Deque[int] = deque()
        self._exhausted = False

    def _fill(self) -> None:
        if self._buffer or self._exhausted:
            return
        try:
            rows = self._cursor.fetchmany(self._page_size)
        except sqlite3.Error as exc:
            raise TransientFetchError(f"Result page fetch failed: {exc}") from exc
        if not rows:
            self._exhausted = True
        self._buffer.extend(row["pid"] for row in rows)

    def next_batch(self, max_count: int) -> List[int]:
        self._fill()
        page: List[int] = []
        while self._buffer and len(page) < max_count:
            page.append(self._buffer.popleft())
        return page

    def has_next(self) -> bool:
        self._fill()
        return bool(self._buffer)

    def close(self) -> None:
        self._cursor.close()
        self._conn.close()


class SQLiteRecordSource:
    """Record table searched by resource type, partition and last-updated bound."""

    def __init__(self, db_path: str | Path = "data/records.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    pid INTEGER PRIMARY KEY,
                    resource_type TEXT NOT NULL,
                    partition_id TEXT,
                    last_updated BIGINT NOT NULL,
                    attributes TEXT NOT NULL DEFAULT '{}',
                    deleted INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_records_type_updated
                    ON records (resource_type, last_updated DESC)
                """
            )

    def upsert_record(self, record: Record) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO records (pid, resource_type, partition_id, last_updated, attributes, deleted)
                VALUES (?, ?, ?, ?, ?, 0)
                ON CONFLICT(pid) DO UPDATE SET
                    resource_type=excluded.resource_type,
                    partition_id=excluded.partition_id,
                    last_updated=excluded.last_updated,
                    attributes=excluded.attributes,
                    deleted=0
                """,
                (
                    record.pid,
                    record.resource_type,
                    record.partition_id,
                    record.last_updated,
                    json.dumps({k: str(v) for k, v in record.attributes.items()}),
                ),
            )

    def mark_deleted(self, pid: int) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE records SET deleted=1 WHERE pid=?", (pid,))

    def load_jsonl(self, path: str | Path) -> int:
        """Upsert records from a JSON-lines file; returns the number loaded."""
        self.ensure_schema()
        loaded = 0
        with Path(path).open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    record = _record_from_json(json.loads(line))
                except (KeyError, TypeError, ValueError) as exc:
                    raise ConfigurationError(
                        f"Malformed record on line {line_number} of {path}: {exc!r}"
                    ) from exc
                self.upsert_record(record)
                loaded += 1
        logger.info("Loaded %s records into %s", loaded, self.db_path)
        return loaded

    def search(self, request: SearchRequest) -> SQLiteResultIterator:
        resource_type, params = parse_descriptor(request.query)
        where_clauses = ["resource_type = ?", "deleted = 0"]
        values: list = [resource_type]
        if request.partition_id is not None:
            where_clauses.append("partition_id = ?")
            values.append(request.partition_id)
        if request.upper_bound_inclusive is not None:
            where_clauses.append("last_updated <= ?")
            values.append(request.upper_bound_inclusive)
        for name, value in params.items():
            if not _PARAM_NAME.match(name):
                raise ConfigurationError(f"Unsupported search parameter {name!r}")
            where_clauses.append("CAST(json_extract(attributes, ?) AS TEXT) = ?")
            values.extend([f'$."{name}"', value])

        direction = "DESC" if request.sort_descending else "ASC"
        sql = (
            "SELECT pid FROM records WHERE "
            + " AND ".join(where_clauses)
            + f" ORDER BY last_updated {direction}, pid ASC"
        )
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise TransientFetchError(f"Could not open {self.db_path}: {exc}") from exc
        try:
            cursor = conn.execute(sql, tuple(values))
        except sqlite3.Error as exc:
            conn.close()
            raise TransientFetchError(f"Search failed for {request.query}: {exc}") from exc
        return SQLiteResultIterator(conn, cursor, request.page_size_hint)

    def timestamp_of(self, pid: int) -> int:
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT last_updated FROM records WHERE pid=? AND deleted=0", (pid,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise TransientFetchError(f"Timestamp lookup failed for pid={pid}: {exc}") from exc
        if row is None:
            raise RecordNotFoundError(pid)
        return int(row["last_updated"])


def _record_from_json(raw: dict) -> Record:
    last_updated = raw["last_updated"]
    if isinstance(last_updated, str):
        last_updated = to_epoch_millis(datetime.fromisoformat(last_updated))
    return Record(
        pid=int(raw["pid"]),
        resource_type=raw["resource_type"],
        last_updated=int(last_updated),
        partition_id=raw.get("partition_id"),
        attributes=raw.get("attributes") or {},
    )


__all__ = ["SQLiteRecordSource", "SQLiteResultIterator"]
