"""Single-flight token refresh coordination."""
import logging
from typing import Protocol

from .classification import ErrorClassifier
from .store import BaseStore, make_key
from .types import RefreshResult

logger = logging.getLogger(__name__)

REFRESH_LOCK_TTL = 30


class TokenRefresher(Protocol):
    """Provider adapter that performs the actual credential refresh.

    Returns True when a new token was obtained, False when the current one
    was still valid. Raises on failure.
    """

    def refresh(self, principal_id: str | int, provider: str) -> bool:
        ...


class SingleFlightRefreshCoordinator:
    """Allows at most one refresh in flight per (principal, provider).

    A second caller does not wait; it gets a failed result flagged
    ``in_progress`` and can retry later.
    """

    def __init__(
        self,
        store: BaseStore,
        refresher: TokenRefresher,
        classifier: ErrorClassifier | None = None,
        lock_ttl: int = REFRESH_LOCK_TTL
    ):
        self.store = store
        self.refresher = refresher
        self.classifier = classifier or ErrorClassifier()
        self.lock_ttl = lock_ttl

    def coordinate_refresh(self, principal_id: str | int, provider: str) -> RefreshResult:
        lock = self.store.lock(make_key("token_refresh", principal_id, provider), self.lock_ttl)
        if not lock.acquire():
            logger.info(f"Token refresh already in progress for principal {principal_id} on {provider}")
            return RefreshResult(
                is_successful=False,
                message="Token refresh already in progress",
                in_progress=True,
            )

        try:
            refreshed = self.refresher.refresh(principal_id, provider)
        except Exception as exc:
            error_kind = self.classifier.classify(exc, provider)
            logger.warning(
                f"Token refresh failed for principal {principal_id} on {provider}: "
                f"{error_kind.value}: {exc}"
            )
            return RefreshResult(
                is_successful=False,
                message=f"Token refresh failed: {exc}",
                error_kind=error_kind,
                cause=str(exc),
            )
        finally:
            lock.release()

        if not refreshed:
            return RefreshResult(is_successful=True, was_already_valid=True, message="Token is still valid")

        logger.info(f"Token refreshed for principal {principal_id} on {provider}")
        return RefreshResult(is_successful=True, message="Token refreshed successfully")
