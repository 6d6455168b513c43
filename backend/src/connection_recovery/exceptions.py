"""
Exceptions for the connection recovery engine.
"""
from .types import ErrorKind


class ConnectionRecoveryError(Exception):
    """Base exception for the connection recovery engine."""

    def __init__(self, message: str, error_kind: ErrorKind = ErrorKind.UNKNOWN):
        super().__init__(message)
        self.error_kind = error_kind


class ProviderError(ConnectionRecoveryError):
    """Failure reported by a provider adapter.

    Adapters raise this with whatever the provider returned; the classifier
    decides what it means.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        reason: str | None = None,
        error_code: str | None = None,
        retry_after: int | None = None,
        error_kind: ErrorKind = ErrorKind.UNKNOWN,
    ):
        super().__init__(message, error_kind)
        self.provider = provider
        self.status_code = status_code
        self.reason = reason
        self.error_code = error_code
        self.retry_after = retry_after


class StoreError(ConnectionRecoveryError):
    """Raised when the key-value store backend fails."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class LockError(StoreError):
    """Raised on lock misuse, e.g. releasing a lock that is not held."""

    def __init__(self, message: str, name: str):
        super().__init__(message, key=name)
        self.name = name


class ConfigurationError(ConnectionRecoveryError):
    """Raised for invalid settings."""

    def __init__(self, message: str, setting: str | None = None):
        super().__init__(message, ErrorKind.PROVIDER_NOT_CONFIGURED)
        self.setting = setting
