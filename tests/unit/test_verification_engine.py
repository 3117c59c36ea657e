import itertools
import json
import sqlite3
import threading
from pathlib import Path

import pytest

from credverify.application.services.authority_reader import AuthorityReader
from credverify.application.services.verification_cache import VerificationCache
from credverify.application.services.verification_engine import VerificationEngine
from credverify.core.errors import InvalidRequestError, StorageUnavailableError
from credverify.infrastructure.db.sqlite import default_schema_path, initialize_schema
from credverify.infrastructure.storage.factory import open_store
from credverify.infrastructure.storage.log_store import JsonLogStore
from credverify.infrastructure.storage.sqlite_store import SqliteStore

BACKENDS = ["log", "sqlite"]


class CountingStore:
    def __init__(self, inner) -> None:
        self.inner = inner
        self.gets = 0
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            self.gets += 1
        return self.inner.get(key)

    def all_records(self):
        return self.inner.all_records()

    def describe(self) -> str:
        return self.inner.describe()


def _local_store(tmp_path: Path, backend: str, initialize: bool = True):
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    if backend == "log":
        return JsonLogStore(data_dir / "verifications.json")
    db_path = data_dir / "verifications.db"
    if initialize:
        initialize_schema(db_path)
    return SqliteStore(db_path, "verifications", schema_path=default_schema_path())


def _authority_path(tmp_path: Path, backend: str) -> Path:
    suffix = "json" if backend == "log" else "db"
    return tmp_path / "issuance-service" / "data" / f"credentials.{suffix}"


def _issue(authority_path: Path, **record) -> None:
    authority_path.parent.mkdir(parents=True, exist_ok=True)
    if authority_path.suffix == ".json":
        existing = json.loads(authority_path.read_text(encoding="utf-8")) if authority_path.exists() else []
        existing.append(record)
        authority_path.write_text(json.dumps(existing), encoding="utf-8")
        return
    conn = sqlite3.connect(authority_path)
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS credentials (
                id TEXT PRIMARY KEY,
                issuer TEXT,
                issued_at TEXT,
                status TEXT
            )
            """
        )
        conn.execute(
            "INSERT INTO credentials (id, issuer, issued_at, status) VALUES (?, ?, ?, ?)",
            (record["id"], record.get("issuer"), record.get("issued_at"), record.get("status")),
        )
        conn.commit()
    finally:
        conn.close()


def _bootstrap(tmp_path: Path, backend: str, worker_id: str = "worker-1", initialize: bool = True):
    local = _local_store(tmp_path, backend, initialize=initialize)
    authority_path = _authority_path(tmp_path, backend)
    authority = CountingStore(open_store(None, authority_path, table="credentials", read_only=True))
    ticks = itertools.count()
    engine = VerificationEngine(
        cache=VerificationCache(local),
        authority=AuthorityReader(authority),
        worker_id=worker_id,
        clock=lambda: f"2026-01-01T00:00:{next(ticks) % 60:02d}.000+00:00",
    )
    return engine, local, authority, authority_path


@pytest.mark.parametrize("backend", BACKENDS)
def test_valid_decision_is_replayed_without_consulting_authority(tmp_path: Path, backend: str) -> None:
    engine, local, authority, authority_path = _bootstrap(tmp_path, backend)
    _issue(authority_path, id="cred-1", issuer="Acme University", issued_at="2025-06-01T00:00:00Z")

    first = engine.verify("cred-1")
    assert first.is_valid is True
    assert first.status == "valid"
    assert first.issuer == "Acme University"
    assert first.issued_at == "2025-06-01T00:00:00Z"
    assert first.reason is None
    assert first.verified_by == "worker-1"

    for _ in range(3):
        assert engine.verify("cred-1") == first

    assert authority.gets == 1
    assert local.count("cred-1") == 1


@pytest.mark.parametrize("backend", BACKENDS)
def test_not_found_is_rechecked_until_authority_issues(tmp_path: Path, backend: str) -> None:
    engine, local, authority, authority_path = _bootstrap(tmp_path, backend)

    missing = engine.verify("x")
    assert missing.is_valid is False
    assert missing.status == "not_found"
    assert missing.reason == "Credential not found"
    assert missing.is_not_found is True
    assert authority.gets == 1

    again = engine.verify("x")
    assert again.status == "not_found"
    assert authority.gets == 2

    _issue(authority_path, id="x", issuer="Acme", status="valid")

    issued = engine.verify("x")
    assert issued.is_valid is True
    assert issued.status == "valid"
    assert authority.gets == 3

    assert engine.verify("x") == issued
    assert engine.verify("x") == issued
    assert authority.gets == 3
    assert local.count("x") == 1


@pytest.mark.parametrize("backend", BACKENDS)
def test_concurrent_first_calls_return_one_decision(tmp_path: Path, backend: str) -> None:
    _, local, _, authority_path = _bootstrap(tmp_path, backend)
    _issue(authority_path, id="race", issuer="Acme")

    workers = 8
    barrier = threading.Barrier(workers)
    results: list[object] = [None] * workers
    errors: list[BaseException] = []

    def _run(index: int) -> None:
        # Each thread gets its own engine and store handles on the shared files.
        engine, _, _, _ = _bootstrap(tmp_path, backend, worker_id=f"worker-{index}", initialize=False)
        barrier.wait()
        try:
            results[index] = engine.verify("race")
        except BaseException as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(exc)

    threads = [threading.Thread(target=_run, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert all(r is not None for r in results)
    assert all(r.is_valid for r in results)
    assert len({r for r in results}) == 1
    assert local.count("race") == 1
    assert VerificationCache(local).lookup("race") == results[0]


@pytest.mark.parametrize("backend", BACKENDS)
@pytest.mark.parametrize("bad_id", ["", "   ", None])
def test_missing_id_is_rejected_without_store_access(tmp_path: Path, backend: str, bad_id) -> None:
    engine, local, authority, _ = _bootstrap(tmp_path, backend)

    with pytest.raises(InvalidRequestError):
        engine.verify(bad_id)

    assert authority.gets == 0
    assert local.all_records() == []


@pytest.mark.parametrize("backend", BACKENDS)
def test_revoked_credential_is_negative_with_status(tmp_path: Path, backend: str) -> None:
    engine, local, authority, authority_path = _bootstrap(tmp_path, backend)
    _issue(authority_path, id="rev-1", issuer="Acme", status="revoked")

    decision = engine.verify("rev-1")
    assert decision.is_valid is False
    assert decision.status == "revoked"
    assert decision.reason == "Credential revoked"
    assert decision.is_not_found is False

    engine.verify("rev-1")
    assert authority.gets == 2
    assert local.count("rev-1") == 1


@pytest.mark.parametrize("backend", BACKENDS)
def test_suspended_credential_still_verifies(tmp_path: Path, backend: str) -> None:
    engine, _, _, authority_path = _bootstrap(tmp_path, backend)
    _issue(authority_path, id="sus-1", status="suspended")

    decision = engine.verify("sus-1")
    assert decision.is_valid is True
    assert decision.status == "suspended"
    assert decision.issuer == "Unknown"


@pytest.mark.parametrize("backend", BACKENDS)
def test_corrupt_local_store_is_moved_aside_and_replaced(tmp_path: Path, backend: str) -> None:
    engine, local, authority, authority_path = _bootstrap(tmp_path, backend)
    _issue(authority_path, id="cred-1", issuer="Acme")
    store_file = local.path if backend == "log" else local.db_path
    garbage = b"definitely not a verification store" * 10
    store_file.write_bytes(garbage)

    decision = engine.verify("cred-1")

    assert decision.is_valid is True
    assert authority.gets == 1
    assert local.count("cred-1") == 1
    assert engine.verify("cred-1") == decision
    assert authority.gets == 1
    quarantined = list(store_file.parent.glob(f"{store_file.name}.corrupt-*"))
    assert len(quarantined) == 1
    assert quarantined[0].read_bytes() == garbage


def test_corrupt_sqlite_row_is_treated_as_absent(tmp_path: Path) -> None:
    engine, local, authority, authority_path = _bootstrap(tmp_path, "sqlite")
    _issue(authority_path, id="cred-1", issuer="Acme")
    conn = sqlite3.connect(local.db_path)
    conn.execute(
        "INSERT INTO verifications (id, is_valid, verified_at, verified_by, status) VALUES (?, ?, ?, ?, ?)",
        ("cred-1", 1, "", "", ""),
    )
    conn.commit()
    conn.close()

    decision = engine.verify("cred-1")

    assert decision.is_valid is True
    assert decision.verified_by == "worker-1"
    assert authority.gets == 1
    assert VerificationCache(local).lookup("cred-1") == decision


@pytest.mark.parametrize("backend", BACKENDS)
def test_unreadable_authority_fails_open_to_not_found(tmp_path: Path, backend: str) -> None:
    engine, _, _, authority_path = _bootstrap(tmp_path, backend)
    authority_path.parent.mkdir(parents=True, exist_ok=True)
    authority_path.write_bytes(b"this is not a credential store at all" * 4)

    decision = engine.verify("cred-1")

    assert decision.is_valid is False
    assert decision.status == "not_found"


@pytest.mark.parametrize("backend", BACKENDS)
def test_absent_authority_store_is_not_created(tmp_path: Path, backend: str) -> None:
    engine, _, _, authority_path = _bootstrap(tmp_path, backend)

    decision = engine.verify("cred-1")

    assert decision.status == "not_found"
    assert not authority_path.exists()


def test_unwritable_local_store_propagates(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    authority_path = tmp_path / "credentials.json"
    _issue(authority_path, id="cred-1")
    engine = VerificationEngine(
        cache=VerificationCache(JsonLogStore(blocker / "verifications.json")),
        authority=AuthorityReader(JsonLogStore(authority_path, read_only=True)),
        worker_id="worker-1",
    )

    with pytest.raises(StorageUnavailableError):
        engine.verify("cred-1")
