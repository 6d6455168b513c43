"""
Key-value store backends for counters, records, throttles and locks.
"""
from ..config import StoreConfig
from .base import BaseStore, StoreLock, make_key
from .memory import MemoryStore
from .redis_store import RedisStore


def create_store(config: StoreConfig) -> BaseStore:
    """Build the backend named by ``config.backend``."""
    if config.backend == "redis":
        return RedisStore.from_url(config.redis_url, prefix=config.key_prefix)
    return MemoryStore(prefix=config.key_prefix)


__all__ = [
    'BaseStore',
    'StoreLock',
    'make_key',
    'MemoryStore',
    'RedisStore',
    'create_store',
]
