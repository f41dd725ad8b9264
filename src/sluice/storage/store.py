"""Key-value store backends for SLUICE.

Features:
- Redis persistence in production
- In-memory store for development/testing
- Per-call fallback to memory when Redis is unreachable
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod

from redis import Redis, RedisError, WatchError

from sluice.exceptions import StoreError
from sluice.observability.metrics import STORE_FALLBACKS

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract async key-value store.

    Values are strings; callers own serialization.
    """

    durable: bool = False

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored at ``key``, or None if absent or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store ``value`` at ``key``, optionally expiring after ``ttl_seconds``."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` only if ``key`` is absent. Returns True if stored."""
        ...

    @abstractmethod
    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Delete ``key`` only if it currently holds ``value``."""
        ...

    @abstractmethod
    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        """Replace the value at ``key`` only if it equals ``expected``.

        ``expected=None`` requires the key to be absent.
        """
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Check whether the backend is reachable."""
        ...


class MemoryStore(KeyValueStore):
    """Non-durable in-process store.

    Every method completes without awaiting, so each call is atomic with
    respect to other coroutines on the same event loop.
    """

    durable = False

    def __init__(self, clock=time.time):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    def _read(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _write(self, key: str, value: str, ttl_seconds: int | None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def get(self, key: str) -> str | None:
        return self._read(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._write(key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        if self._read(key) is not None:
            return False
        self._write(key, value, ttl_seconds)
        return True

    async def delete_if_equals(self, key: str, value: str) -> bool:
        if self._read(key) != value:
            return False
        del self._data[key]
        return True

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        if self._read(key) != expected:
            return False
        self._write(key, value, None)
        return True

    async def ping(self) -> bool:
        return True


class RedisStore(KeyValueStore):
    """Redis-backed store.

    Parameters
    ----------
    client : Redis
        Redis client created with ``decode_responses=True``.
    """

    durable = True

    def __init__(self, client: Redis):
        self._redis = client

    @staticmethod
    def connect(redis_url: str, timeout_seconds: float = 5.0) -> Redis:
        """Create a Redis client with bounded socket timeouts."""
        return Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )

    @classmethod
    def from_url(cls, redis_url: str, timeout_seconds: float = 5.0) -> "RedisStore":
        """Create a store from a Redis URL."""
        return cls(cls.connect(redis_url, timeout_seconds))

    async def _run(self, description: str, func, *args, **kwargs):
        # The client blocks; run it in a worker thread to keep the loop free
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except RedisError as e:
            raise StoreError(f"Redis {description} failed for {args[0]!r}") from e

    async def get(self, key: str) -> str | None:
        return await self._run("GET", self._redis.get, key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self._run("SET", self._redis.set, key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._run("DELETE", self._redis.delete, key)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        return bool(
            await self._run("SET NX", self._redis.set, key, value, nx=True, ex=ttl_seconds)
        )

    def _replace_if_equals(self, key: str, expected: str | None, value: str | None) -> bool:
        """WATCH/MULTI: delete (``value`` None) or overwrite ``key`` if unchanged."""
        try:
            with self._redis.pipeline() as pipe:
                pipe.watch(key)
                if pipe.get(key) != expected:
                    pipe.unwatch()
                    return False
                pipe.multi()
                if value is None:
                    pipe.delete(key)
                else:
                    pipe.set(key, value)
                pipe.execute()
                return True
        except WatchError:
            return False

    async def delete_if_equals(self, key: str, value: str) -> bool:
        return await self._run("conditional DELETE", self._replace_if_equals, key, value, None)

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        return await self._run("compare-and-set", self._replace_if_equals, key, expected, value)

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self._redis.ping))
        except RedisError:
            return False


class FallbackStore(KeyValueStore):
    """Serve each call from ``primary``, falling back to ``fallback`` on error.

    The caller never sees a store outage; writes made during an outage live
    only in the fallback and are lost on restart.

    Parameters
    ----------
    primary : KeyValueStore
        Durable store (normally Redis).
    fallback : KeyValueStore
        Non-durable store used while the primary is failing.
    """

    def __init__(self, primary: KeyValueStore, fallback: KeyValueStore | None = None):
        self._primary = primary
        self._fallback = fallback or MemoryStore()
        self._degraded = False

    @property
    def durable(self) -> bool:
        return self._primary.durable and not self._degraded

    @property
    def degraded(self) -> bool:
        """True if the most recent primary call failed."""
        return self._degraded

    async def _call(self, operation: str, *args):
        try:
            result = await getattr(self._primary, operation)(*args)
        except StoreError as e:
            if not self._degraded:
                logger.warning(
                    "Store unavailable, using in-memory fallback",
                    extra={"operation": operation, "error": str(e)},
                )
            self._degraded = True
            STORE_FALLBACKS.labels(operation=operation).inc()
            return await getattr(self._fallback, operation)(*args)
        if self._degraded:
            logger.info("Store recovered", extra={"operation": operation})
            self._degraded = False
        return result

    async def get(self, key: str) -> str | None:
        return await self._call("get", key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self._call("set", key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._call("delete", key)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        return await self._call("set_if_absent", key, value, ttl_seconds)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        return await self._call("delete_if_equals", key, value)

    async def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        return await self._call("compare_and_set", key, expected, value)

    async def ping(self) -> bool:
        return await self._primary.ping()


def create_store(redis_url: str | None, timeout_seconds: float = 5.0) -> KeyValueStore:
    """Build the store for the service.

    Returns a Redis store wrapped with an in-memory fallback when Redis
    answers a ping, otherwise a bare in-memory store.
    """
    if not redis_url:
        logger.warning("No Redis URL configured, using in-memory store")
        return MemoryStore()

    try:
        client = RedisStore.connect(redis_url, timeout_seconds=timeout_seconds)
        client.ping()
        logger.info("Redis connected for storage", extra={"url": redis_url})
        return FallbackStore(RedisStore(client), MemoryStore())
    except Exception as e:
        logger.warning(
            "Redis connection failed, using in-memory store",
            extra={"error": str(e)},
        )
        return MemoryStore()
