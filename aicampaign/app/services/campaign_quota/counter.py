"""Slot counter stored in the shared cache."""

from aicampaign.app.core.cache import CacheBackend


class QuotaCounterStore:
    """The global slot counter, bound to one cache key.

    Writers are restricted to:
    - initialize: create the counter only if it is missing
    - try_decrement: claim a slot and write its lease in one step
    - release: drop a lease and return its slot in one step
    - reset_from_leases: capacity minus live leases in one step
    - resync: full overwrite from a value recomputed from the durable store
    - invalidate: drop the counter so the next reservation rebuilds it

    No caller reads the value and writes it back across two round trips.
    """

    def __init__(self, cache: CacheBackend, key: str) -> None:
        self._cache = cache
        self.key = key

    async def exists(self) -> bool:
        return await self._cache.exists(self.key)

    async def get(self) -> int | None:
        raw = await self._cache.get(self.key)
        if raw is None:
            return None
        return int(raw)

    async def try_decrement(
        self, lease_key: str | None = None, lease_ttl: int | None = None
    ) -> tuple[bool, int]:
        """Take one slot if any is left, recording ``lease_key`` on success.

        Returns:
            Tuple of (granted, remaining). remaining is 0 when not granted.
        """
        granted, remaining = await self._cache.decrement_if_positive(
            self.key, lease_key, lease_ttl
        )
        return bool(granted), remaining

    async def release(self, lease_key: str) -> tuple[bool, int | None]:
        """Drop ``lease_key`` and return its slot if the counter exists.

        A missing counter stays missing; it is rebuilt from the durable
        store, which already counts the slot as free.
        """
        return await self._cache.release_lease(lease_key, self.key)

    async def reset_from_leases(
        self, lease_pattern: str, capacity: int
    ) -> tuple[int | None, int, int]:
        return await self._cache.reset_from_leases(self.key, lease_pattern, max(0, capacity))

    async def initialize(self, value: int) -> bool:
        """Create the counter unless another caller already did."""
        return await self._cache.add(self.key, str(max(0, value)).encode())

    async def resync(self, value: int) -> None:
        await self._cache.set(self.key, str(max(0, value)).encode())

    async def invalidate(self) -> None:
        await self._cache.delete(self.key)
