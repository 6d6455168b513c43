"""
Base class for retry delay policies.
"""
from abc import ABC, abstractmethod

from ..types import ErrorKind


class BaseBackoff(ABC):
    """Decides how long to wait before the next automatic retry."""

    def __init__(self, max_delay: float = 1800.0):
        self.max_delay = max_delay

    @abstractmethod
    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay before the given retry attempt.

        Args:
            attempt: Attempt number, starting at 1

        Returns:
            Delay in seconds
        """
        pass

    def should_retry(self, error_kind: ErrorKind | None, attempt: int) -> bool:
        """True while the kind is recoverable and attempts remain."""
        if error_kind is None:
            error_kind = ErrorKind.UNKNOWN
        if not error_kind.is_recoverable or error_kind.requires_user_intervention:
            return False
        return attempt < error_kind.max_retry_attempts

    @property
    @abstractmethod
    def name(self) -> str:
        """Policy name for logging."""
        pass
