from __future__ import annotations

from typing import Any, Callable, Protocol

Record = dict[str, Any]
KeepExisting = Callable[[Record], bool]


class StorageBackend(Protocol):
    """Key/record store used for both the local decision store and the authority.

    Records are flat mappings; the key is always stored under ``id``.
    """

    def get(self, key: str) -> Record | None: ...

    def put(self, key: str, record: Record) -> None: ...

    def append_or_upsert(
        self,
        key: str,
        record: Record,
        keep_existing: KeepExisting | None = None,
    ) -> Record: ...

    def count(self, key: str) -> int: ...

    def all_records(self) -> list[Record]: ...

    def describe(self) -> str: ...
