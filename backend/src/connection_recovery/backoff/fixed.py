"""
Fixed delay policy.
"""
from .base import BaseBackoff


class FixedDelay(BaseBackoff):
    """Same delay before every attempt."""

    def __init__(self, delay: float = 600.0):
        super().__init__(delay)
        self.delay = delay

    def calculate_delay(self, attempt: int) -> float:
        return self.delay

    @property
    def name(self) -> str:
        return f"FixedDelay(delay={self.delay})"
