"""
Base class for the shared key-value store.
"""
import uuid
from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import LockError

KEY_SEPARATOR = ":"


def make_key(*parts: Any) -> str:
    """Join key parts into one composite key; None parts are skipped."""
    return KEY_SEPARATOR.join(str(part) for part in parts if part is not None)


class StoreLock:
    """Named lock with a time-to-live.

    Acquisition never blocks: ``acquire()`` returns False when another
    holder owns the lock. The lock expires on its own after ``ttl`` seconds
    so a crashed holder cannot wedge it forever.
    """

    def __init__(self, store: "BaseStore", name: str, ttl: int):
        self.store = store
        self.name = name
        self.ttl = ttl
        self.token = uuid.uuid4().hex
        self.acquired = False

    def acquire(self) -> bool:
        self.acquired = self.store.add(self.name, self.token, self.ttl)
        return self.acquired

    def release(self) -> bool:
        """Release the lock; False if it expired and someone else took it."""
        if not self.acquired:
            raise LockError(f"Lock {self.name} is not held", self.name)
        self.acquired = False
        return self.store.delete_if_equals(self.name, self.token)

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.acquired:
            self.release()


class BaseStore(ABC):
    """Abstract key-value store with TTLs, counters and locks."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def _full_key(self, key: str) -> str:
        return make_key(self.prefix, key) if self.prefix else key

    def _strip(self, full_key: str) -> str:
        if self.prefix and full_key.startswith(self.prefix + KEY_SEPARATOR):
            return full_key[len(self.prefix) + 1:]
        return full_key

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value or ``default`` when missing or expired."""
        pass

    @abstractmethod
    def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a JSON-compatible value, optionally expiring after ``ttl`` seconds."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Increment an integer counter and return the new value.

        ``ttl`` is applied when the counter is created.
        """
        pass

    @abstractmethod
    def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store only if the key is absent; return whether it was stored."""
        pass

    @abstractmethod
    def delete_if_equals(self, key: str, value: Any) -> bool:
        """Delete the key only if it currently holds ``value``."""
        pass

    @abstractmethod
    def keys(self, prefix: str) -> list[str]:
        """List live keys starting with ``prefix``."""
        pass

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def lock(self, name: str, ttl: int) -> StoreLock:
        return StoreLock(self, name, ttl)
