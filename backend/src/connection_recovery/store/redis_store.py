"""Redis-backed key-value store shared by all workers."""
import json
import logging
from typing import Any

import redis

from ..exceptions import StoreError
from .base import BaseStore

logger = logging.getLogger(__name__)

# Compare-and-delete so a holder never releases a lock it no longer owns.
_DELETE_IF_EQUALS = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisStore(BaseStore):
    """Store implementation on top of redis-py.

    Values are JSON encoded. Counters use INCRBY so increments from
    concurrent workers are never lost, and locks use ``SET NX EX``.
    """

    def __init__(self, client: redis.Redis, prefix: str = ""):
        super().__init__(prefix)
        self._client = client
        self._delete_if_equals = client.register_script(_DELETE_IF_EQUALS)

    @classmethod
    def from_url(cls, url: str, prefix: str = "") -> "RedisStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    @staticmethod
    def _encode(value: Any) -> str:
        return json.dumps(value, default=str)

    @staticmethod
    def _decode(raw: Any) -> Any:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = self._client.get(self._full_key(key))
        except redis.RedisError as exc:
            raise StoreError(f"Failed to read {key}: {exc}", key=key) from exc
        value = self._decode(raw)
        return default if value is None else value

    def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            self._client.set(self._full_key(key), self._encode(value), ex=ttl)
        except redis.RedisError as exc:
            raise StoreError(f"Failed to write {key}: {exc}", key=key) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._full_key(key))
        except redis.RedisError as exc:
            raise StoreError(f"Failed to delete {key}: {exc}", key=key) from exc

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        full_key = self._full_key(key)
        try:
            value = int(self._client.incrby(full_key, amount))
            if ttl is not None and value == amount:
                self._client.expire(full_key, ttl)
        except redis.RedisError as exc:
            raise StoreError(f"Failed to increment {key}: {exc}", key=key) from exc
        return value

    def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        try:
            return bool(self._client.set(self._full_key(key), self._encode(value), nx=True, ex=ttl))
        except redis.RedisError as exc:
            raise StoreError(f"Failed to add {key}: {exc}", key=key) from exc

    def delete_if_equals(self, key: str, value: Any) -> bool:
        try:
            deleted = self._delete_if_equals(keys=[self._full_key(key)], args=[self._encode(value)])
        except redis.RedisError as exc:
            raise StoreError(f"Failed to release {key}: {exc}", key=key) from exc
        if not deleted:
            logger.warning(f"Lock {key} was no longer held by this owner")
        return bool(deleted)

    def keys(self, prefix: str) -> list[str]:
        try:
            found = self._client.scan_iter(match=f"{self._full_key(prefix)}*")
            return sorted(
                self._strip(key.decode("utf-8") if isinstance(key, bytes) else key)
                for key in found
            )
        except redis.RedisError as exc:
            raise StoreError(f"Failed to scan {prefix}: {exc}", key=prefix) from exc
