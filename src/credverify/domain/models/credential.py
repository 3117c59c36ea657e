from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from credverify.core.errors import CorruptStoreError


class CredentialStatus(str, Enum):
    VALID = "valid"
    REVOKED = "revoked"
    SUSPENDED = "suspended"


@dataclass(frozen=True, slots=True)
class CredentialRecord:
    id: str
    issuer: str = "Unknown"
    issued_at: str | None = None
    status: CredentialStatus = CredentialStatus.VALID

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> CredentialRecord:
        credential_id = record.get("id")
        if not isinstance(credential_id, str) or not credential_id:
            raise CorruptStoreError(f"Authority record has no usable id: {dict(record)!r}")

        raw_status = record.get("status") or CredentialStatus.VALID.value
        try:
            status = CredentialStatus(str(raw_status).strip().lower())
        except ValueError as exc:
            raise CorruptStoreError(
                f"Authority record {credential_id} has unknown status '{raw_status}'"
            ) from exc

        issued_at = record.get("issued_at", record.get("issuedAt"))
        return cls(
            id=credential_id,
            issuer=str(record.get("issuer") or "Unknown"),
            issued_at=str(issued_at) if issued_at is not None else None,
            status=status,
        )
