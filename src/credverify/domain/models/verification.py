from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping

from credverify.core.errors import CorruptStoreError

NOT_FOUND_STATUS = "not_found"
LEGACY_VERIFIER = "unknown"


@dataclass(frozen=True, slots=True)
class VerificationDecision:
    """Persisted outcome of verifying one credential id.

    ``reason`` is only set for negative decisions. ``issuer`` and ``issued_at``
    are copied from the authority record when one was found.
    """

    id: str
    is_valid: bool
    verified_at: str
    verified_by: str
    status: str
    reason: str | None = None
    issuer: str | None = None
    issued_at: str | None = None

    @property
    def is_not_found(self) -> bool:
        return self.status == NOT_FOUND_STATUS

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["is_valid"] = 1 if self.is_valid else 0
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> VerificationDecision:
        if isinstance(record, Mapping) and "is_valid" not in record and "isValid" in record:
            record = _from_legacy_record(record)
        try:
            credential_id = record["id"]
            is_valid_raw = record["is_valid"]
            verified_at = record["verified_at"]
            verified_by = record["verified_by"]
            status = record["status"]
        except (KeyError, TypeError) as exc:
            raise CorruptStoreError(f"Verification record is missing field {exc}") from exc

        if is_valid_raw not in (0, 1, True, False):
            raise CorruptStoreError(
                f"Verification record {credential_id!r} has invalid is_valid value {is_valid_raw!r}"
            )
        for name, value in (
            ("id", credential_id),
            ("verified_at", verified_at),
            ("verified_by", verified_by),
            ("status", status),
        ):
            if not isinstance(value, str) or not value:
                raise CorruptStoreError(
                    f"Verification record {credential_id!r} has invalid {name} value {value!r}"
                )

        return cls(
            id=credential_id,
            is_valid=bool(is_valid_raw),
            verified_at=verified_at,
            verified_by=verified_by,
            status=status,
            reason=record.get("reason"),
            issuer=record.get("issuer"),
            issued_at=record.get("issued_at"),
        )


def _from_legacy_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Map a camelCase ``verifications.json`` entry onto the stored field names.

    Older files carry no ``verifiedBy`` and, for misses, no ``status``.
    """
    is_valid = record["isValid"]
    default_status = "valid" if is_valid is True else NOT_FOUND_STATUS
    return {
        "id": record.get("id"),
        "is_valid": is_valid,
        "verified_at": record.get("verifiedAt"),
        "verified_by": record.get("verifiedBy") or LEGACY_VERIFIER,
        "status": record.get("status") or default_status,
        "reason": record.get("reason"),
        "issuer": record.get("issuer"),
        "issued_at": record.get("issuedAt"),
    }
