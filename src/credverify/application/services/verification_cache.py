from __future__ import annotations

import logging

from credverify.core.errors import CorruptStoreError
from credverify.domain.models.verification import VerificationDecision
from credverify.infrastructure.storage.base import Record, StorageBackend

logger = logging.getLogger(__name__)


def _is_recorded_valid(existing: Record) -> bool:
    try:
        return VerificationDecision.from_record(existing).is_valid
    except CorruptStoreError:
        return False


class VerificationCache:
    def __init__(self, store: StorageBackend) -> None:
        self.store = store

    def lookup(self, credential_id: str) -> VerificationDecision | None:
        try:
            raw = self.store.get(credential_id)
            if raw is None:
                return None
            return VerificationDecision.from_record(raw)
        except CorruptStoreError as exc:
            logger.warning("Ignoring unreadable cached decision for %s: %s", credential_id, exc)
            return None

    def record(self, decision: VerificationDecision) -> VerificationDecision:
        """Persist ``decision`` unless a valid decision is already stored.

        Returns whichever decision is persisted afterwards, so racing writers
        all observe the first valid decision.
        """
        stored = self.store.append_or_upsert(
            decision.id,
            decision.to_record(),
            keep_existing=_is_recorded_valid,
        )
        persisted = VerificationDecision.from_record(stored)
        if persisted != decision:
            logger.debug("Kept earlier valid decision for %s", decision.id)
        return persisted
