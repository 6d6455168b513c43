"""
Exponential backoff delay policy.
"""
import random

from .base import BaseBackoff


class ExponentialBackoff(BaseBackoff):
    """
    Delay doubles (by ``backoff_factor``) with each attempt:
    delay = min(initial_delay * backoff_factor ** (attempt - 1), max_delay)
    """

    def __init__(
        self,
        initial_delay: float = 30.0,
        backoff_factor: float = 2.0,
        max_delay: float = 1800.0,
        jitter: bool = False,
        jitter_range: float = 0.1
    ):
        super().__init__(max_delay)
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.jitter_range = jitter_range

    def calculate_delay(self, attempt: int) -> float:
        delay = self.initial_delay * (self.backoff_factor ** max(attempt - 1, 0))
        delay = min(delay, self.max_delay)

        if self.jitter and delay > 0:
            spread = delay * self.jitter_range
            delay = max(1.0, delay + random.uniform(-spread, spread))

        return delay

    @property
    def name(self) -> str:
        return f"ExponentialBackoff(initial={self.initial_delay}, factor={self.backoff_factor})"
