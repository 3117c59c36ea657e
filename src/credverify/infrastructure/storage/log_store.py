from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from credverify.core.config import DEFAULT_LOCK_TIMEOUT_SECONDS
from credverify.core.errors import CorruptStoreError, StorageUnavailableError
from credverify.core.files import quarantine_file, write_text_atomic
from credverify.infrastructure.storage.base import KeepExisting, Record

logger = logging.getLogger(__name__)

_path_locks: dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _path_locks_guard:
        lock = _path_locks.get(path)
        if lock is None:
            lock = threading.Lock()
            _path_locks[path] = lock
        return lock


class JsonLogStore:
    """Whole-file JSON array store.

    Every write reads the full record list, mutates it in memory and rewrites
    the file atomically. All stores opened on the same path within a process
    share one lock, so read-modify-write cycles never interleave.
    """

    backend_name = "log"

    def __init__(
        self,
        path: Path,
        *,
        read_only: bool = False,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self.path = path.expanduser().resolve()
        self.read_only = read_only
        self.lock_timeout_seconds = lock_timeout_seconds
        self._lock = _lock_for(self.path)

    def describe(self) -> str:
        return f"log:{self.path}"

    def get(self, key: str) -> Record | None:
        with self._locked():
            records = self._read_all()
        found: Record | None = None
        for record in records:
            if record.get("id") == key:
                # Legacy files may hold duplicates; the newest entry wins.
                found = record
        return dict(found) if found is not None else None

    def count(self, key: str) -> int:
        with self._locked():
            records = self._read_all()
        return sum(1 for record in records if record.get("id") == key)

    def all_records(self) -> list[Record]:
        with self._locked():
            return [dict(r) for r in self._read_all()]

    def put(self, key: str, record: Record) -> None:
        self.append_or_upsert(key, record)

    def append_or_upsert(
        self,
        key: str,
        record: Record,
        keep_existing: KeepExisting | None = None,
    ) -> Record:
        self._require_writable()
        new_record = {**record, "id": key}
        with self._locked():
            try:
                records = self._read_all()
            except CorruptStoreError as exc:
                try:
                    moved_to = quarantine_file(self.path)
                except OSError as move_exc:
                    raise StorageUnavailableError(
                        f"Cannot move unreadable store {self.path} aside: {move_exc}"
                    ) from move_exc
                logger.warning("%s; moved unreadable store to %s and starting empty", exc, moved_to)
                records = []

            existing: Record | None = None
            kept: list[Record] = []
            for item in records:
                if item.get("id") == key:
                    existing = item
                    continue
                kept.append(item)

            if existing is not None and keep_existing is not None and keep_existing(existing):
                if len(kept) + 1 != len(records):
                    self._write_all([*kept, existing])
                return dict(existing)

            kept.append(new_record)
            self._write_all(kept)
        return dict(new_record)

    def _require_writable(self) -> None:
        if self.read_only:
            raise StorageUnavailableError(f"Store is read-only: {self.path}")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout_seconds):
            raise StorageUnavailableError(
                f"Timed out after {self.lock_timeout_seconds:.1f}s waiting for store lock: {self.path}"
            )
        try:
            yield
        finally:
            self._lock.release()

    def _read_all(self) -> list[Record]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot read store {self.path}: {exc}") from exc

        if not raw.strip():
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptStoreError(f"Store {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise CorruptStoreError(f"Store {self.path} must hold a JSON array")
        return [item for item in payload if isinstance(item, dict)]

    def _write_all(self, records: list[Record]) -> None:
        try:
            write_text_atomic(self.path, json.dumps(records, indent=2, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot write store {self.path}: {exc}") from exc
