from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from credverify.core.config import AppConfig
from credverify.core.errors import StorageUnavailableError
from credverify.core.files import ensure_directory
from credverify.infrastructure.db.sqlite import initialize_schema, quarantine_database

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InitResult:
    paths_created: list[Path]
    store_path: Path
    store_backend: str
    quarantined_path: Path | None = None


class ProjectService:
    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def init_project(self) -> InitResult:
        paths_created: list[Path] = []
        quarantined_path: Path | None = None

        if not self.config.data_dir.exists():
            paths_created.append(self.config.data_dir)
        ensure_directory(self.config.data_dir)

        if self.config.store_backend == "sqlite":
            quarantined_path = self._initialize_sqlite_store()

        return InitResult(
            paths_created=paths_created,
            store_path=self.config.store_path,
            store_backend=self.config.store_backend,
            quarantined_path=quarantined_path,
        )

    def is_initialized(self) -> bool:
        if self.config.store_backend == "sqlite":
            return self.config.store_path.exists()
        return self.config.data_dir.exists()

    def _initialize_sqlite_store(self) -> Path | None:
        store_path = self.config.store_path
        try:
            initialize_schema(store_path)
            return None
        except sqlite3.OperationalError as exc:
            raise StorageUnavailableError(f"Cannot initialize {store_path}: {exc}") from exc
        except sqlite3.DatabaseError as exc:
            reason = exc

        try:
            moved_to = quarantine_database(store_path)
            initialize_schema(store_path)
        except (OSError, sqlite3.DatabaseError) as exc:
            raise StorageUnavailableError(f"Cannot recreate {store_path}: {exc}") from exc
        logger.warning(
            "Store %s is unreadable (%s); moved it to %s and starting empty", store_path, reason, moved_to
        )
        return moved_to
