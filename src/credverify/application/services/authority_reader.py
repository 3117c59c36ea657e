from __future__ import annotations

import logging

from credverify.core.errors import AuthorityUnavailableError, CorruptStoreError, StorageError
from credverify.domain.models.credential import CredentialRecord
from credverify.infrastructure.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class AuthorityReader:
    """Read-only view of the issuance authority's credential store.

    Lookups fail open: an unreadable authority is reported as "no record"
    so verification degrades to not-found instead of an internal error.
    """

    def __init__(self, store: StorageBackend) -> None:
        self.store = store

    def lookup(self, credential_id: str) -> CredentialRecord | None:
        try:
            return self._fetch(credential_id)
        except AuthorityUnavailableError as exc:
            logger.warning("Authority lookup for %s failed open: %s", credential_id, exc)
            return None

    def _fetch(self, credential_id: str) -> CredentialRecord | None:
        try:
            raw = self.store.get(credential_id)
            if raw is None:
                return None
            return CredentialRecord.from_record(raw)
        except CorruptStoreError as exc:
            raise AuthorityUnavailableError(f"Authority data unreadable: {exc}") from exc
        except StorageError as exc:
            raise AuthorityUnavailableError(f"Authority store unavailable: {exc}") from exc
