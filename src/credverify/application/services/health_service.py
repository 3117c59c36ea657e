from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from credverify.core.errors import CorruptStoreError, StorageError
from credverify.domain.models.credential import CredentialRecord
from credverify.domain.models.verification import VerificationDecision
from credverify.infrastructure.storage.base import StorageBackend
from credverify.infrastructure.storage.sqlite_store import SqliteStore


@dataclass(slots=True)
class DoctorIssue:
    check: str
    level: str
    message: str


@dataclass(slots=True)
class DoctorReport:
    ok: bool
    checks_run: int
    issues: list[DoctorIssue]
    store_runtime: dict[str, object]


class HealthService:
    def __init__(self, verification_store: StorageBackend, authority_store: StorageBackend) -> None:
        self.verification_store = verification_store
        self.authority_store = authority_store

    def run_doctor(self) -> DoctorReport:
        issues: list[DoctorIssue] = []
        checks_run = 0
        store_runtime: dict[str, object] = {"verification_store": self.verification_store.describe()}

        # Check 1: sqlite pragmas support concurrent access.
        checks_run += 1
        if isinstance(self.verification_store, SqliteStore):
            try:
                store_runtime.update(self.verification_store.runtime_pragmas())
            except StorageError as exc:
                issues.append(DoctorIssue(check="store_runtime", level="error", message=str(exc)))
            else:
                if store_runtime["journal_mode"] != "wal":
                    issues.append(
                        DoctorIssue(
                            check="store_runtime",
                            level="error",
                            message=(
                                f"SQLite journal_mode is '{store_runtime['journal_mode']}', "
                                "expected 'wal' for concurrent access."
                            ),
                        )
                    )
                busy_timeout_ms = int(store_runtime["busy_timeout_ms"])
                if busy_timeout_ms < 1_000:
                    issues.append(
                        DoctorIssue(
                            check="store_runtime",
                            level="warning",
                            message=f"SQLite busy_timeout is low ({busy_timeout_ms}ms); consider >= 1000ms.",
                        )
                    )

        # Check 2: every stored decision decodes and ids are unique.
        checks_run += 1
        try:
            records = self.verification_store.all_records()
        except StorageError as exc:
            records = []
            issues.append(DoctorIssue(check="verification_store", level="error", message=str(exc)))

        store_runtime["decisions"] = len(records)
        for credential_id, count in Counter(r.get("id") for r in records).items():
            if count > 1:
                issues.append(
                    DoctorIssue(
                        check="verification_store",
                        level="warning",
                        message=f"{count} entries stored for credential {credential_id}; next write collapses them.",
                    )
                )
        for record in records:
            try:
                VerificationDecision.from_record(record)
            except CorruptStoreError as exc:
                issues.append(DoctorIssue(check="verification_store", level="warning", message=str(exc)))

        # Check 3: the authority store is present and decodes.
        checks_run += 1
        store_runtime["authority_store"] = self.authority_store.describe()
        try:
            authority_records = self.authority_store.all_records()
        except StorageError as exc:
            authority_records = []
            issues.append(
                DoctorIssue(
                    check="authority_store",
                    level="error",
                    message=f"{exc}; verifications will report not found.",
                )
            )
        else:
            if not authority_records:
                issues.append(
                    DoctorIssue(
                        check="authority_store",
                        level="warning",
                        message="Authority store is missing or empty; every credential will be not found.",
                    )
                )
        store_runtime["authority_credentials"] = len(authority_records)
        for record in authority_records:
            try:
                CredentialRecord.from_record(record)
            except CorruptStoreError as exc:
                issues.append(DoctorIssue(check="authority_store", level="warning", message=str(exc)))

        ok = not any(issue.level == "error" for issue in issues)
        return DoctorReport(ok=ok, checks_run=checks_run, issues=issues, store_runtime=store_runtime)
