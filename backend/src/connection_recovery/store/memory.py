"""In-memory key-value store."""
import copy
import threading
from typing import Any

from ..types import Clock, utc_now
from .base import BaseStore


class MemoryStore(BaseStore):
    """Thread-safe in-process store.

    Useful for testing and single-worker deployments. Expiry is evaluated
    lazily against the injected clock.
    """

    def __init__(self, prefix: str = "", clock: Clock = utc_now):
        super().__init__(prefix)
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()

    def _expires_at(self, ttl: int | None) -> float | None:
        if ttl is None:
            return None
        return self._clock().timestamp() + ttl

    def _live(self, full_key: str) -> tuple[Any, float | None] | None:
        entry = self._data.get(full_key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self._clock().timestamp() >= expires_at:
            del self._data[full_key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._live(self._full_key(key))
            if entry is None:
                return default
            return copy.deepcopy(entry[0])

    def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        with self._lock:
            self._data[self._full_key(key)] = (copy.deepcopy(value), self._expires_at(ttl))

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(self._full_key(key), None)

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        full_key = self._full_key(key)
        with self._lock:
            entry = self._live(full_key)
            if entry is None:
                value, expires_at = amount, self._expires_at(ttl)
            else:
                value, expires_at = int(entry[0]) + amount, entry[1]
            self._data[full_key] = (value, expires_at)
            return value

    def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        full_key = self._full_key(key)
        with self._lock:
            if self._live(full_key) is not None:
                return False
            self._data[full_key] = (copy.deepcopy(value), self._expires_at(ttl))
            return True

    def delete_if_equals(self, key: str, value: Any) -> bool:
        full_key = self._full_key(key)
        with self._lock:
            entry = self._live(full_key)
            if entry is None or entry[0] != value:
                return False
            del self._data[full_key]
            return True

    def keys(self, prefix: str) -> list[str]:
        full_prefix = self._full_key(prefix)
        with self._lock:
            return sorted(
                self._strip(full_key)
                for full_key in list(self._data)
                if full_key.startswith(full_prefix) and self._live(full_key) is not None
            )

    def clear(self) -> None:
        """Clear all stored data. Useful for testing."""
        with self._lock:
            self._data.clear()
