from __future__ import annotations

import sqlite3
from pathlib import Path

from credverify.core.config import read_float_env, read_int_env
from credverify.core.files import quarantine_file

DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 30_000


def _sqlite_connect_timeout_seconds() -> float:
    return read_float_env(
        "CREDVERIFY_SQLITE_CONNECT_TIMEOUT_SECONDS", DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS
    )


def _sqlite_busy_timeout_ms() -> int:
    return read_int_env("CREDVERIFY_SQLITE_BUSY_TIMEOUT_MS", DEFAULT_SQLITE_BUSY_TIMEOUT_MS)


def _configure_connection(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute(f"PRAGMA busy_timeout = {_sqlite_busy_timeout_ms()};")


def get_connection(db_path: Path) -> sqlite3.Connection:
    # isolation_level=None leaves transaction control to explicit BEGIN/COMMIT.
    conn = sqlite3.connect(db_path, timeout=_sqlite_connect_timeout_seconds(), isolation_level=None)
    conn.row_factory = sqlite3.Row
    _configure_connection(conn)
    return conn


def get_read_only_connection(db_path: Path) -> sqlite3.Connection:
    uri = f"{db_path.resolve().as_uri()}?mode=ro"
    conn = sqlite3.connect(uri, uri=True, timeout=_sqlite_connect_timeout_seconds(), isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {_sqlite_busy_timeout_ms()};")
    return conn


def default_schema_path() -> Path:
    return Path(__file__).resolve().parent / "schema.sql"


def initialize_schema(db_path: Path, schema_path: Path | None = None) -> None:
    schema = (schema_path or default_schema_path()).read_text(encoding="utf-8")
    conn = get_connection(db_path)
    try:
        conn.executescript(schema)
        _apply_lightweight_migrations(conn)
    finally:
        conn.close()


def table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return [row["name"] for row in rows]


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    return column in table_columns(conn, table)


def _apply_lightweight_migrations(conn: sqlite3.Connection) -> None:
    # Stores created before issuer details were mirrored into decisions.
    if not _column_exists(conn, "verifications", "issuer"):
        conn.execute("ALTER TABLE verifications ADD COLUMN issuer TEXT")
    if not _column_exists(conn, "verifications", "issued_at"):
        conn.execute("ALTER TABLE verifications ADD COLUMN issued_at TEXT")


def is_corrupt_database(db_path: Path) -> bool:
    """True when ``db_path`` exists but SQLite cannot read it as a database."""
    if not db_path.exists():
        return False
    try:
        conn = get_connection(db_path)
        try:
            conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        finally:
            conn.close()
    except sqlite3.OperationalError:
        return False
    except sqlite3.DatabaseError:
        return True
    return False


def quarantine_database(db_path: Path) -> Path:
    """Move an unreadable database and its WAL sidecars aside."""
    moved_to = quarantine_file(db_path)
    for suffix in ("-wal", "-shm"):
        sidecar = db_path.with_name(f"{db_path.name}{suffix}")
        if sidecar.exists():
            sidecar.replace(moved_to.with_name(f"{moved_to.name}{suffix}"))
    return moved_to
