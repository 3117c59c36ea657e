from __future__ import annotations

import logging
from typing import Callable

from credverify.application.services.authority_reader import AuthorityReader
from credverify.application.services.verification_cache import VerificationCache
from credverify.core.config import AppConfig
from credverify.core.errors import InvalidRequestError
from credverify.core.time import now_utc_iso
from credverify.domain.models.credential import CredentialRecord, CredentialStatus
from credverify.domain.models.verification import NOT_FOUND_STATUS, VerificationDecision
from credverify.infrastructure.storage.factory import open_authority_store, open_verification_store

logger = logging.getLogger(__name__)

NOT_FOUND_REASON = "Credential not found"
REVOKED_REASON = "Credential revoked"


class VerificationEngine:
    """Read-through verification over the local decision cache and the authority.

    A cached valid decision is final and returned without touching the
    authority. Cached negative decisions are re-checked, since the authority
    may have issued the credential since.
    """

    def __init__(
        self,
        cache: VerificationCache,
        authority: AuthorityReader,
        worker_id: str,
        clock: Callable[[], str] = now_utc_iso,
    ) -> None:
        self.cache = cache
        self.authority = authority
        self.worker_id = worker_id
        self.clock = clock

    def verify(self, credential_id: object) -> VerificationDecision:
        if not isinstance(credential_id, str) or not credential_id.strip():
            raise InvalidRequestError("Invalid credential format. Must include an id.")

        cached = self.cache.lookup(credential_id)
        if cached is not None and cached.is_valid:
            logger.debug("Cache hit for %s (verified by %s)", credential_id, cached.verified_by)
            return cached
        if cached is not None:
            logger.debug("Re-checking negative decision for %s (%s)", credential_id, cached.status)

        record = self.authority.lookup(credential_id)
        decision = self._decide(credential_id, record)
        persisted = self.cache.record(decision)

        logger.info(
            "Credential verified: %s - %s (%s) by %s",
            credential_id,
            "valid" if persisted.is_valid else "invalid",
            persisted.status,
            self.worker_id,
        )
        return persisted

    def _decide(self, credential_id: str, record: CredentialRecord | None) -> VerificationDecision:
        if record is None:
            return VerificationDecision(
                id=credential_id,
                is_valid=False,
                verified_at=self.clock(),
                verified_by=self.worker_id,
                status=NOT_FOUND_STATUS,
                reason=NOT_FOUND_REASON,
            )

        is_valid = record.status is not CredentialStatus.REVOKED
        return VerificationDecision(
            id=credential_id,
            is_valid=is_valid,
            verified_at=self.clock(),
            verified_by=self.worker_id,
            status=record.status.value,
            reason=None if is_valid else REVOKED_REASON,
            issuer=record.issuer,
            issued_at=record.issued_at,
        )


def build_engine(config: AppConfig) -> VerificationEngine:
    return VerificationEngine(
        cache=VerificationCache(open_verification_store(config)),
        authority=AuthorityReader(open_authority_store(config)),
        worker_id=config.worker_id,
    )
