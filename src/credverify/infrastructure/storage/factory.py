from __future__ import annotations

from pathlib import Path

from credverify.core.config import DEFAULT_LOCK_TIMEOUT_SECONDS, STORE_BACKENDS, AppConfig
from credverify.core.errors import ConfigurationError
from credverify.infrastructure.db.sqlite import default_schema_path
from credverify.infrastructure.storage.base import StorageBackend
from credverify.infrastructure.storage.log_store import JsonLogStore
from credverify.infrastructure.storage.sqlite_store import SqliteStore

VERIFICATIONS_TABLE = "verifications"
AUTHORITY_TABLE = "credentials"


def open_store(
    kind: str | None,
    path: Path,
    *,
    table: str,
    read_only: bool = False,
    lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    schema_path: Path | None = None,
) -> StorageBackend:
    backend = kind or ("log" if path.suffix.lower() == ".json" else "sqlite")
    if backend == "log":
        return JsonLogStore(path, read_only=read_only, lock_timeout_seconds=lock_timeout_seconds)
    if backend == "sqlite":
        return SqliteStore(path, table, read_only=read_only, schema_path=schema_path)
    raise ConfigurationError(f"Unknown store backend '{backend}'; expected one of {STORE_BACKENDS}")


def open_verification_store(config: AppConfig) -> StorageBackend:
    return open_store(
        config.store_backend,
        config.store_path,
        table=VERIFICATIONS_TABLE,
        lock_timeout_seconds=config.lock_timeout_seconds,
        schema_path=default_schema_path(),
    )


def open_authority_store(config: AppConfig) -> StorageBackend:
    return open_store(
        config.authority_backend,
        config.authority_path,
        table=AUTHORITY_TABLE,
        read_only=True,
        lock_timeout_seconds=config.lock_timeout_seconds,
    )
