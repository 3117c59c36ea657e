class CredVerifyError(Exception):
    """Base error for all user-facing credverify exceptions."""


class ConfigurationError(CredVerifyError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(CredVerifyError):
    """Raised when the local data directory has not been initialized."""


class InvalidRequestError(CredVerifyError):
    """Raised when a verification request has no usable credential id."""


class StorageError(CredVerifyError):
    """Base error for persisted-store failures."""


class StorageUnavailableError(StorageError):
    """Raised when a store cannot be read or written. Retryable."""


class CorruptStoreError(StorageError):
    """Raised when persisted data cannot be decoded."""


class AuthorityUnavailableError(CredVerifyError):
    """Raised when the issuance authority's store cannot be read."""
