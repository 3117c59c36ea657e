from __future__ import annotations

import logging
import re
import sqlite3
import threading
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator

from credverify.core.errors import CorruptStoreError, StorageUnavailableError
from credverify.infrastructure.db.sqlite import (
    get_connection,
    get_read_only_connection,
    initialize_schema,
    is_corrupt_database,
    quarantine_database,
    table_columns,
)
from credverify.infrastructure.storage.base import KeepExisting, Record

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_recovery_lock = threading.Lock()


class SqliteStore:
    """Indexed store: one row per ``id`` primary key in ``table``.

    Per-key atomicity comes from SQLite itself; conditional upserts run in a
    ``BEGIN IMMEDIATE`` transaction so the read and the write see the same row.

    When ``schema_path`` is given, a write that finds the file unreadable moves
    it aside, recreates the schema and retries once.
    """

    backend_name = "sqlite"

    def __init__(
        self,
        db_path: Path,
        table: str,
        *,
        read_only: bool = False,
        schema_path: Path | None = None,
    ) -> None:
        if not _IDENTIFIER_RE.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.db_path = db_path.expanduser().resolve()
        self.table = table
        self.read_only = read_only
        self.schema_path = schema_path

    def describe(self) -> str:
        return f"sqlite:{self.db_path}#{self.table}"

    def get(self, key: str) -> Record | None:
        if self.read_only and not self.db_path.exists():
            return None
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {self.table} WHERE id = ?",
                (key,),
            ).fetchone()
        return dict(row) if row else None

    def count(self, key: str) -> int:
        if self.read_only and not self.db_path.exists():
            return 0
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) FROM {self.table} WHERE id = ?",
                (key,),
            ).fetchone()
        return int(row[0])

    def all_records(self) -> list[Record]:
        if self.read_only and not self.db_path.exists():
            return []
        with self._connection() as conn:
            rows = conn.execute(f"SELECT * FROM {self.table} ORDER BY id").fetchall()
        return [dict(row) for row in rows]

    def put(self, key: str, record: Record) -> None:
        self.append_or_upsert(key, record)

    def append_or_upsert(
        self,
        key: str,
        record: Record,
        keep_existing: KeepExisting | None = None,
    ) -> Record:
        if self.read_only:
            raise StorageUnavailableError(f"Store is read-only: {self.describe()}")
        new_record = {**record, "id": key}
        try:
            return self._upsert(key, new_record, keep_existing)
        except CorruptStoreError as exc:
            if self.schema_path is None:
                raise
            self._recover(exc)
        return self._upsert(key, new_record, keep_existing)

    def _upsert(self, key: str, new_record: Record, keep_existing: KeepExisting | None) -> Record:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                if keep_existing is not None:
                    row = conn.execute(
                        f"SELECT * FROM {self.table} WHERE id = ?",
                        (key,),
                    ).fetchone()
                    if row is not None and keep_existing(dict(row)):
                        conn.execute("COMMIT;")
                        return dict(row)

                known = table_columns(conn, self.table)
                columns = [name for name in new_record if name in known]
                dropped = sorted(set(new_record) - set(columns))
                if dropped:
                    logger.debug("Ignoring fields without columns in %s: %s", self.table, dropped)
                placeholders = ", ".join("?" for _ in columns)
                conn.execute(
                    f"INSERT OR REPLACE INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})",
                    tuple(new_record[name] for name in columns),
                )
                conn.execute("COMMIT;")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK;")
                raise
        return {name: new_record[name] for name in columns}

    def _recover(self, exc: CorruptStoreError) -> None:
        with _recovery_lock:
            # Another writer may already have replaced the file.
            if not is_corrupt_database(self.db_path):
                return
            try:
                moved_to = quarantine_database(self.db_path)
                initialize_schema(self.db_path, self.schema_path)
            except OSError as move_exc:
                raise StorageUnavailableError(
                    f"Cannot move unreadable store {self.db_path} aside: {move_exc}"
                ) from move_exc
            except sqlite3.DatabaseError as init_exc:
                raise StorageUnavailableError(
                    f"Cannot recreate store {self.db_path}: {init_exc}"
                ) from init_exc
        logger.warning("%s; moved unreadable store to %s and starting empty", exc, moved_to)

    def runtime_pragmas(self) -> dict[str, object]:
        with self._connection() as conn:
            journal_mode = conn.execute("PRAGMA journal_mode;").fetchone()[0]
            busy_timeout = conn.execute("PRAGMA busy_timeout;").fetchone()[0]
            synchronous = conn.execute("PRAGMA synchronous;").fetchone()[0]
        return {
            "journal_mode": str(journal_mode).lower(),
            "busy_timeout_ms": int(busy_timeout),
            "synchronous": int(synchronous),
        }

    def duplicate_ids(self) -> list[str]:
        # The primary key forbids duplicates; this guards stores created without it.
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT id FROM {self.table} GROUP BY id HAVING COUNT(*) > 1"
            ).fetchall()
        return [row[0] for row in rows]

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            connect = get_read_only_connection if self.read_only else get_connection
            with closing(connect(self.db_path)) as conn:
                yield conn
        except (sqlite3.IntegrityError, sqlite3.ProgrammingError):
            raise
        except sqlite3.OperationalError as exc:
            raise StorageUnavailableError(f"{self.describe()} unavailable: {exc}") from exc
        except sqlite3.DatabaseError as exc:
            raise CorruptStoreError(f"{self.describe()} is unreadable: {exc}") from exc
