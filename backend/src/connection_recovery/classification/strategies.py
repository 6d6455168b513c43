"""Recovery strategy resolution based on error kind."""
from ..backoff import BaseBackoff, backoff_for
from ..types import ErrorKind, RecoveryStrategy


class RecoveryStrategyResolver:
    """Maps error kinds to recovery strategies.

    The mapping is a fixed table: the same kind always resolves to the same
    strategy. Kinds without an entry, ``ErrorKind.UNKNOWN`` and a missing
    kind all fall back to a health-check retry.
    """

    DEFAULT_STRATEGIES: dict[ErrorKind, RecoveryStrategy] = {
        # Credential problems - try a refresh
        ErrorKind.TOKEN_EXPIRED: RecoveryStrategy.TOKEN_REFRESH,
        ErrorKind.INVALID_CREDENTIALS: RecoveryStrategy.TOKEN_REFRESH,

        # Transient transport problems
        ErrorKind.NETWORK_ERROR: RecoveryStrategy.NETWORK_RETRY,
        ErrorKind.TIMEOUT: RecoveryStrategy.NETWORK_RETRY,
        ErrorKind.API_QUOTA_EXCEEDED: RecoveryStrategy.QUOTA_WAIT,
        ErrorKind.SERVICE_UNAVAILABLE: RecoveryStrategy.SERVICE_RETRY,

        # Only the user can fix these
        ErrorKind.INSUFFICIENT_PERMISSIONS: RecoveryStrategy.USER_INTERVENTION_REQUIRED,
        ErrorKind.FOLDER_ACCESS_DENIED: RecoveryStrategy.USER_INTERVENTION_REQUIRED,
        ErrorKind.STORAGE_QUOTA_EXCEEDED: RecoveryStrategy.USER_INTERVENTION_REQUIRED,
        ErrorKind.FILE_TOO_LARGE: RecoveryStrategy.USER_INTERVENTION_REQUIRED,
        ErrorKind.INVALID_FILE_TYPE: RecoveryStrategy.USER_INTERVENTION_REQUIRED,
    }

    FALLBACK_STRATEGY = RecoveryStrategy.HEALTH_CHECK_RETRY

    def __init__(self, overrides: dict[ErrorKind, RecoveryStrategy] | None = None):
        self.strategies = self.DEFAULT_STRATEGIES.copy()
        if overrides:
            self.strategies.update(overrides)

    def resolve(self, error_kind: ErrorKind | None) -> RecoveryStrategy:
        if error_kind is None:
            return self.FALLBACK_STRATEGY
        return self.strategies.get(error_kind, self.FALLBACK_STRATEGY)

    def retry_policy(self, error_kind: ErrorKind | None, retry_after: int | None = None) -> BaseBackoff:
        """Delay policy for silently retrying a failed recovery."""
        return backoff_for(error_kind, retry_after)
