"""
Retry delay policies used when scheduling silent automatic retries.
"""
from ..types import ErrorKind
from .base import BaseBackoff
from .exponential import ExponentialBackoff
from .fixed import FixedDelay
from .linear import LinearBackoff

QUOTA_WAIT_SECONDS = 600


def backoff_for(error_kind: ErrorKind | None, retry_after: int | None = None) -> BaseBackoff:
    """Return the delay policy for an error kind.

    ``retry_after`` is the provider-supplied wait, honoured for quota errors.
    """
    if error_kind == ErrorKind.NETWORK_ERROR:
        return ExponentialBackoff(initial_delay=30, backoff_factor=2, max_delay=1800)
    if error_kind == ErrorKind.SERVICE_UNAVAILABLE:
        return ExponentialBackoff(initial_delay=60, backoff_factor=2, max_delay=1800)
    if error_kind == ErrorKind.TIMEOUT:
        return LinearBackoff(initial_delay=60, increment=60, max_delay=300)
    if error_kind in (ErrorKind.API_QUOTA_EXCEEDED, ErrorKind.TOKEN_REFRESH_RATE_LIMITED):
        return FixedDelay(retry_after or QUOTA_WAIT_SECONDS)
    return LinearBackoff(initial_delay=30, increment=30, max_delay=300)


__all__ = [
    'BaseBackoff',
    'ExponentialBackoff',
    'LinearBackoff',
    'FixedDelay',
    'backoff_for',
]
