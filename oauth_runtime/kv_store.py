"""
Key-value store adapters. The store is the only place credential state lives.

Usage:
    from oauth_runtime.kv_store import create_kv_store

    store = create_kv_store("redis://localhost:6379/0", timeout=2.0)
    await store.set("oauth:abc", "{...}", ttl=60)
    value = await store.get_and_delete("oauth:abc")  # atomic, single-use
"""
import json
import logging
import time
from contextlib import contextmanager
from typing import Callable, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from oauth_runtime.errors import StorageError

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"

# GET, then DEL only when every ARGV field/value pair matches the JSON record. Always returns the value.
_CONSUME_IF_FIELDS_LUA = """
local value = redis.call('GET', KEYS[1])
if not value then
  return nil
end
local ok, record = pcall(cjson.decode, value)
if not ok or type(record) ~= 'table' then
  return value
end
for i = 1, #ARGV, 2 do
  if record[ARGV[i]] ~= ARGV[i + 1] then
    return value
  end
end
redis.call('DEL', KEYS[1])
return value
"""


class KeyValueStore(Protocol):
    """Async flat key space with per-key TTL. Implementations must allow concurrent calls."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> bool: ...

    async def get_and_delete(self, key: str) -> str | None: ...

    async def get_and_delete_if_fields(self, key: str, expected: dict[str, str]) -> str | None: ...

    async def close(self) -> None: ...


@contextmanager
def _storage_errors(operation: str):
    try:
        yield
    except RedisTimeoutError as exc:
        logger.warning("Store %s timed out: %s", operation, exc)
        raise StorageError(f"Store {operation} timed out", timeout=True) from exc
    except RedisError as exc:
        logger.warning("Store %s failed: %s", operation, exc)
        raise StorageError(f"Store {operation} failed") from exc


class RedisKeyValueStore:
    """
    Redis-backed store. One client (connection pool) is shared by all requests;
    redis-py pipelines concurrent commands over the pool.
    """

    def __init__(self, client: redis.Redis):
        self._client = client
        self._consume_if_fields = client.register_script(_CONSUME_IF_FIELDS_LUA)

    @classmethod
    def from_url(cls, url: str, timeout: float | None = None) -> "RedisKeyValueStore":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        with _storage_errors("get"):
            return await self._client.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        # SET with EX applies value and expiry in one command
        with _storage_errors("set"):
            await self._client.set(key, value, ex=ttl if ttl else None)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _storage_errors("delete"):
            return await self._client.delete(*keys)

    async def expire(self, key: str, ttl: int) -> bool:
        with _storage_errors("expire"):
            return bool(await self._client.expire(key, ttl))

    async def get_and_delete(self, key: str) -> str | None:
        # GETDEL (Redis >= 6.2)
        with _storage_errors("getdel"):
            return await self._client.getdel(key)

    async def get_and_delete_if_fields(self, key: str, expected: dict[str, str]) -> str | None:
        args = [item for pair in expected.items() for item in pair]
        with _storage_errors("consume"):
            return await self._consume_if_fields(keys=[key], args=args)

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryKeyValueStore:
    """
    Single-process store for development and tests. Data is lost on restart.
    No method awaits internally, so each call is atomic on the event loop.
    `clock` returns seconds and must be monotonic; tests inject a fake one.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def expire(self, key: str, ttl: int) -> bool:
        value = self._live(key)
        if value is None:
            return False
        self._data[key] = (value, self._clock() + ttl)
        return True

    async def get_and_delete(self, key: str) -> str | None:
        value = self._live(key)
        if value is not None:
            del self._data[key]
        return value

    async def get_and_delete_if_fields(self, key: str, expected: dict[str, str]) -> str | None:
        value = self._live(key)
        if value is None:
            return None
        try:
            record = json.loads(value)
        except ValueError:
            return value
        if isinstance(record, dict) and all(record.get(f) == v for f, v in expected.items()):
            del self._data[key]
        return value

    async def close(self) -> None:
        self._data.clear()


def create_kv_store(url: str, timeout: float | None = None) -> KeyValueStore:
    if url == MEMORY_URL:
        logger.info("Using in-memory key-value store (single instance only)")
        return InMemoryKeyValueStore()
    logger.info("Using Redis key-value store")
    return RedisKeyValueStore.from_url(url, timeout=timeout)
