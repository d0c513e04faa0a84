"""Cache abstraction layer for the campaign service.

Provides a pluggable cache backend system with in-memory and Redis
implementations. Besides plain key/value storage with TTLs, backends expose
the counter primitives the slot quota relies on. Grants, releases and
reconciliation each change the counter and the reservation leases in one
atomic step.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from fnmatch import fnmatchcase
import asyncio
import time
from typing import Any

import redis.asyncio as aioredis

from aicampaign.app.core.redis_lua import (
    DECREMENT_AND_LEASE_SCRIPT,
    DECREMENT_IF_POSITIVE_SCRIPT,
    RELEASE_LEASE_SCRIPT,
    RESET_FROM_LEASES_SCRIPT,
)


@dataclass
class _CacheEntry:
    """Internal cache entry with TTL tracking."""

    value: bytes
    expires_at: float | None = None

    def is_expired(self) -> bool:
        """Check if the entry has expired."""
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at


class CacheBackend(ABC):
    """Key/value store holding campaign status views, slot counters and leases.

    Values are bytes. A ``ttl`` of None (or 0) stores a key without expiry.
    """

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the live value for ``key``, or None."""

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: int | None = None) -> None:
        ...

    @abstractmethod
    async def add(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        """Set-if-absent. False means a live key was already present."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; True only for the caller that actually removed it."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Seconds left; -2 for a missing key, -1 for a key without expiry."""

    @abstractmethod
    async def decrement_if_positive(
        self,
        key: str,
        lease_key: str | None = None,
        lease_ttl: int | None = None,
    ) -> tuple[int, int]:
        """Take one unit from a positive counter as a single atomic step.

        When ``lease_key`` is given, the lease is written with ``lease_ttl``
        in the same step as the decrement.

        Returns ``(1, remaining)`` when a unit was taken and ``(0, 0)`` when
        the counter is missing or already at zero.
        """

    @abstractmethod
    async def release_lease(self, lease_key: str, key: str) -> tuple[bool, int | None]:
        """Delete a lease and, if the counter exists, add one to it, atomically.

        Returns ``(released, counter)``. ``released`` is True only for the
        caller that removed the lease; ``counter`` is None when the counter
        was missing and left untouched.
        """

    @abstractmethod
    async def reset_from_leases(
        self, key: str, lease_pattern: str, capacity: int
    ) -> tuple[int | None, int, int]:
        """Set the counter to ``capacity`` minus live leases, atomically.

        Returns ``(previous, new, live_leases)``; ``previous`` is None when
        the counter was missing.
        """

    @abstractmethod
    async def count_keys(self, pattern: str) -> int:
        """Number of live keys matching a glob pattern such as ``prefix:*``."""

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def close(self) -> None:
        """Release connections. No-op for backends without any."""


class InMemoryCache(CacheBackend):
    """Single-process backend. One asyncio lock guards every operation.

    Counters and leases live only as long as the process, so this backend
    suits tests and single-instance runs.
    """

    def __init__(self) -> None:
        self._data: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    def _live_entry(self, key: str) -> _CacheEntry | None:
        # Caller must hold self._lock
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> None:
        async with self._lock:
            expires_at = time.time() + ttl if ttl else None
            self._data[key] = _CacheEntry(value=value, expires_at=expires_at)

    async def add(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        async with self._lock:
            if self._live_entry(key) is not None:
                return False
            expires_at = time.time() + ttl if ttl else None
            self._data[key] = _CacheEntry(value=value, expires_at=expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if self._live_entry(key) is None:
                return False
            del self._data[key]
            return True

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live_entry(key) is not None

    async def ttl(self, key: str) -> int:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return -2
            if entry.expires_at is None:
                return -1
            return max(0, int(entry.expires_at - time.time()))

    async def decrement_if_positive(
        self,
        key: str,
        lease_key: str | None = None,
        lease_ttl: int | None = None,
    ) -> tuple[int, int]:
        async with self._lock:
            entry = self._live_entry(key)
            available = int(entry.value) if entry is not None else 0
            if available <= 0:
                return 0, 0
            remaining = available - 1
            entry.value = str(remaining).encode()
            if lease_key is not None:
                expires_at = time.time() + lease_ttl if lease_ttl else None
                self._data[lease_key] = _CacheEntry(value=b"1", expires_at=expires_at)
            return 1, remaining

    async def release_lease(self, lease_key: str, key: str) -> tuple[bool, int | None]:
        async with self._lock:
            if self._live_entry(lease_key) is None:
                return False, None
            del self._data[lease_key]
            entry = self._live_entry(key)
            if entry is None:
                return True, None
            new_value = int(entry.value) + 1
            entry.value = str(new_value).encode()
            return True, new_value

    async def reset_from_leases(
        self, key: str, lease_pattern: str, capacity: int
    ) -> tuple[int | None, int, int]:
        async with self._lock:
            live = sum(
                1
                for lease_key, entry in self._data.items()
                if not entry.is_expired() and fnmatchcase(lease_key, lease_pattern)
            )
            entry = self._live_entry(key)
            previous = int(entry.value) if entry is not None else None
            target = max(0, capacity - live)
            self._data[key] = _CacheEntry(value=str(target).encode())
            return previous, target, live

    async def count_keys(self, pattern: str) -> int:
        async with self._lock:
            return sum(
                1
                for key, entry in self._data.items()
                if not entry.is_expired() and fnmatchcase(key, pattern)
            )

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()



class RedisCache(CacheBackend):
    """Redis backend shared by every service instance.

    The slot counter and reservation keys held here are the only
    cross-instance coordination point for slot grants.
    """

    def __init__(self, redis_url: str, client: Any | None = None) -> None:
        # client: optional pre-built redis.asyncio client, otherwise created lazily
        self._redis_url = redis_url
        self._redis: Any | None = client

    async def _get_client(self) -> Any:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def get(self, key: str) -> bytes | None:
        client = await self._get_client()
        return await client.get(key)

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> None:
        client = await self._get_client()
        if ttl:
            await client.setex(key, ttl, value)
        else:
            await client.set(key, value)

    async def add(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        client = await self._get_client()
        return bool(await client.set(key, value, ex=ttl or None, nx=True))

    async def delete(self, key: str) -> bool:
        client = await self._get_client()
        return await client.delete(key) > 0

    async def exists(self, key: str) -> bool:
        client = await self._get_client()
        return await client.exists(key) > 0

    async def ttl(self, key: str) -> int:
        client = await self._get_client()
        return int(await client.ttl(key))

    async def decrement_if_positive(
        self,
        key: str,
        lease_key: str | None = None,
        lease_ttl: int | None = None,
    ) -> tuple[int, int]:
        client = await self._get_client()
        if lease_key is None:
            result = await client.eval(DECREMENT_IF_POSITIVE_SCRIPT, 1, key)
        else:
            result = await client.eval(
                DECREMENT_AND_LEASE_SCRIPT, 2, key, lease_key, lease_ttl
            )
        return int(result[0]), int(result[1])

    async def release_lease(self, lease_key: str, key: str) -> tuple[bool, int | None]:
        client = await self._get_client()
        released, counter = await client.eval(RELEASE_LEASE_SCRIPT, 2, lease_key, key)
        counter = int(counter)
        return bool(released), counter if counter >= 0 else None

    async def reset_from_leases(
        self, key: str, lease_pattern: str, capacity: int
    ) -> tuple[int | None, int, int]:
        client = await self._get_client()
        previous, target, live = await client.eval(
            RESET_FROM_LEASES_SCRIPT, 1, key, lease_pattern, capacity
        )
        previous = int(previous)
        return (previous if previous >= 0 else None), int(target), int(live)

    async def count_keys(self, pattern: str) -> int:
        client = await self._get_client()
        count = 0
        async for _ in client.scan_iter(match=pattern, count=500):
            count += 1
        return count

    async def clear(self) -> None:
        """FLUSHDB: wipes the whole selected database, not only campaign keys."""
        client = await self._get_client()
        await client.flushdb()

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


# Process-wide backend shared by the quota and admin services
_cache_instance: CacheBackend | None = None


def get_cache(
    backend: str | None = None,
    redis_url: str | None = None,
    force_new: bool = False,
) -> CacheBackend:
    """Return the shared cache backend, creating it on first use.

    ``backend`` may be "redis" or "memory"; when omitted the choice follows
    ``settings.redis_enabled``. Multi-instance deployments need Redis, since
    the slot counter must be shared.
    """
    global _cache_instance

    if _cache_instance is not None and not force_new:
        return _cache_instance

    from aicampaign.app.core.config import settings

    use_redis = settings.redis_enabled if backend is None else backend == "redis"
    _cache_instance = (
        RedisCache(redis_url or settings.redis_url) if use_redis else InMemoryCache()
    )
    return _cache_instance


def reset_cache() -> None:
    global _cache_instance
    _cache_instance = None
