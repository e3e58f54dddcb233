"""Keyed storage backing the client registry and the authorization code vault.

Two implementations share one small async interface:

- ``MemoryStore`` keeps entries in process memory with a monotonic expiry
  timestamp. It is single-instance only.
- ``RedisStore`` keeps JSON-encoded entries in Redis so several proxy
  instances can share registrations and pending codes.

``pop`` is the only way to consume an entry and is atomic in both backends.
"""

import json
import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class BaseStore(ABC):
    """Async key/value store holding JSON-compatible dictionaries."""

    @abstractmethod
    async def put(self, key: str, value: dict[str, Any], ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl`` seconds if given."""

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the live value for ``key`` or None."""

    @abstractmethod
    async def pop(self, key: str) -> dict[str, Any] | None:
        """Atomically remove and return the live value for ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    def sweep(self) -> int:
        """Drop expired entries. Backends with native expiry have nothing to do."""
        return 0


class MemoryStore(BaseStore):
    """In-process store with per-entry expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[dict[str, Any], float | None]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    async def put(self, key: str, value: dict[str, Any], ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[key] = (dict(value), expires_at)

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at):
            del self._entries[key]
            return None
        return dict(value)

    async def pop(self, key: str) -> dict[str, Any] | None:
        # No await between lookup and removal, so concurrent callers cannot both win
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at):
            return None
        return value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if self._is_expired(expires_at)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired entries")
        return len(expired)


class RedisConnection:
    """Lazily connected Redis client shared by every ``RedisStore``."""

    def __init__(self, redis_url: str, redis_password: str | None = None) -> None:
        self.redis_url = redis_url
        self.redis_password = redis_password
        self.client: redis.Redis = redis.from_url(redis_url, password=redis_password, decode_responses=True)

    async def ping(self) -> bool:
        """Check connectivity. Failures are logged, not raised."""
        try:
            await self.client.ping()
            logger.info(f"Connected to Redis at {self.redis_url}")
            return True
        except RedisError as e:
            logger.warning(f"Failed to connect to Redis at {self.redis_url}: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")


class RedisStore(BaseStore):
    """Redis-backed store. Values are JSON under ``tripmcp:<namespace>:<key>``."""

    def __init__(self, client: redis.Redis, namespace: str) -> None:
        self.client = client
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"tripmcp:{self.namespace}:{key}"

    @staticmethod
    def _decode(raw: str | None) -> dict[str, Any] | None:
        if raw is None:
            return None
        return json.loads(raw)

    async def put(self, key: str, value: dict[str, Any], ttl: float | None = None) -> None:
        payload = json.dumps(value)
        if ttl is None:
            await self.client.set(self._key(key), payload)
        else:
            await self.client.set(self._key(key), payload, ex=max(1, math.ceil(ttl)))

    async def get(self, key: str) -> dict[str, Any] | None:
        return self._decode(await self.client.get(self._key(key)))

    async def pop(self, key: str) -> dict[str, Any] | None:
        return self._decode(await self.client.getdel(self._key(key)))

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))


def create_store(namespace: str, connection: RedisConnection | None = None) -> BaseStore:
    """Create a Redis store when a connection is configured, otherwise an in-memory one."""
    if connection is not None:
        logger.info(f"Using Redis storage for '{namespace}'")
        return RedisStore(connection.client, namespace)
    logger.info(f"Using in-memory storage for '{namespace}' (single instance only)")
    return MemoryStore()
