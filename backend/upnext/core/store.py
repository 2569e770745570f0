"""
Key-value store for UpNext records.

Each record (system state, audit log, lead assignments, users, notification
settings) is one JSON document under its own key, read and written wholesale.
Redis backs distributed deployments; the in-memory store serves development
and tests.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from upnext.core.config import settings
from upnext.core.errors import ConcurrentUpdateError, StorageError

logger = logging.getLogger("upnext.store")

# mutate(current_raw) -> new_raw, or None when there is nothing to write
Mutator = Callable[[Optional[str]], Optional[str]]


class KeyValueStore:
    """Base class for store backends."""

    kind = "abstract"
    location = ""

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def update(self, key: str, mutate: Mutator) -> Optional[str]:
        """
        Atomically read a record, transform it and write it back.

        Returns the value stored after the call: the new value when one was
        written, the current value otherwise.
        """
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class InMemoryStore(KeyValueStore):
    """
    In-memory store for single-instance deployments and tests.
    Not suitable for production multi-instance deployments.
    """

    kind = "memory"
    location = "process memory"

    def __init__(self):
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _read(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if expiry is not None and expiry <= time.monotonic():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._read(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        async with self._lock:
            expiry = time.monotonic() + ttl if ttl else None
            self._data[key] = (value, expiry)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def update(self, key: str, mutate: Mutator) -> Optional[str]:
        async with self._lock:
            current = self._read(key)
            new_value = mutate(current)
            if new_value is None:
                return current
            self._data[key] = (new_value, None)
            return new_value

    async def ping(self) -> bool:
        return True


class RedisStore(KeyValueStore):
    """
    Redis-backed store for distributed deployments.

    Read-modify-write cycles use WATCH/MULTI so a concurrent writer forces a
    retry instead of silently losing an update.
    """

    kind = "redis"

    def __init__(
        self,
        url: str,
        prefix: str = "",
        max_retries: int = 5,
        timeout: float = 5.0,
        client: Optional[redis.Redis] = None,
    ):
        self._url = url
        self._prefix = prefix
        self._max_retries = max_retries
        self._redis = client or redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    @property
    def location(self) -> str:
        # Mask credentials in anything we report
        return self._url.split("@")[-1] if "@" in self._url else self._url

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(self._key(key))
        except RedisError as e:
            logger.error(f"Redis GET error for {key}: {e}")
            raise StorageError(f"Failed to read {key}") from e

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            if ttl:
                await self._redis.setex(self._key(key), ttl, value)
            else:
                await self._redis.set(self._key(key), value)
        except RedisError as e:
            logger.error(f"Redis SET error for {key}: {e}")
            raise StorageError(f"Failed to write {key}") from e

    async def delete(self, key: str) -> bool:
        try:
            return await self._redis.delete(self._key(key)) > 0
        except RedisError as e:
            logger.error(f"Redis DELETE error for {key}: {e}")
            raise StorageError(f"Failed to delete {key}") from e

    async def update(self, key: str, mutate: Mutator) -> Optional[str]:
        full_key = self._key(key)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, self._max_retries + 1):
                    try:
                        await pipe.watch(full_key)
                        current = await pipe.get(full_key)
                        new_value = mutate(current)
                        if new_value is None:
                            await pipe.unwatch()
                            return current
                        pipe.multi()
                        pipe.set(full_key, new_value)
                        await pipe.execute()
                        return new_value
                    except WatchError:
                        logger.info(f"Concurrent write on {key}, retrying ({attempt}/{self._max_retries})")
                        await pipe.reset()
        except RedisError as e:
            logger.error(f"Redis transaction error for {key}: {e}")
            raise StorageError(f"Failed to update {key}") from e

        logger.warning(f"Giving up on {key} after {self._max_retries} conflicting writes")
        raise ConcurrentUpdateError()

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.warning(f"Redis PING failed: {e}")
            return False

    async def close(self) -> None:
        await self._redis.aclose()


# Global store instance
_store: Optional[KeyValueStore] = None


async def get_store() -> KeyValueStore:
    """Get the global store instance."""
    global _store
    if _store is None:
        if settings.REDIS_URL:
            candidate = RedisStore(
                settings.REDIS_URL,
                prefix=settings.STORE_KEY_PREFIX,
                max_retries=settings.STORE_UPDATE_RETRIES,
                timeout=settings.STORE_TIMEOUT_SECONDS,
            )
            if await candidate.ping():
                logger.info(f"Redis store connected: {candidate.location}")
                _store = candidate
            elif settings.ENVIRONMENT.lower() == "production":
                raise StorageError("Redis store is unreachable")
            else:
                logger.warning(
                    "Redis unavailable, using in-memory store. "
                    "Data will not survive a restart or be shared across instances."
                )
                _store = InMemoryStore()
        else:
            logger.info("No REDIS_URL configured, using in-memory store")
            _store = InMemoryStore()
    return _store


async def close_store() -> None:
    """Close and forget the global store."""
    global _store
    if _store is not None:
        await _store.close()
        _store = None
