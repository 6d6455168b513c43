"""
Linear backoff delay policy.
"""
from .base import BaseBackoff


class LinearBackoff(BaseBackoff):
    """
    delay = min(initial_delay + increment * (attempt - 1), max_delay)
    """

    def __init__(self, initial_delay: float = 30.0, increment: float = 30.0, max_delay: float = 300.0):
        super().__init__(max_delay)
        self.initial_delay = initial_delay
        self.increment = increment

    def calculate_delay(self, attempt: int) -> float:
        delay = self.initial_delay + self.increment * max(attempt - 1, 0)
        return min(delay, self.max_delay)

    @property
    def name(self) -> str:
        return f"LinearBackoff(initial={self.initial_delay}, increment={self.increment})"
