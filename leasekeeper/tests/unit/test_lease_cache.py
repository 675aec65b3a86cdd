from __future__ import annotations

import pytest

from leasekeeper.services.cache import NullLeaseCache, RedisLeaseCache, lease_cache_key


class _FakeRedis:
    # Minimal stand-in for the two redis.asyncio calls the cache makes.
    def __init__(self, keys: set[str]) -> None:
        self.keys = set(keys)

    async def delete(self, *names: str) -> int:
        removed = [name for name in names if name in self.keys]
        self.keys.difference_update(removed)
        return len(removed)

    async def scan_iter(self, match: str):
        prefix = match.rstrip("*")
        for key in sorted(self.keys):
            if key.startswith(prefix):
                yield key


@pytest.mark.asyncio
async def test_invalidate_drops_lease_and_scoped_projections() -> None:
    redis = _FakeRedis(
        {
            "lk:client-a:lease-1",
            "lk:client-a:lease-1:staff",
            "lk:client-a:lease-2",
        }
    )
    cache = RedisLeaseCache(redis, prefix="lk")  # type: ignore[arg-type]

    await cache.invalidate("client-a", "lease-1")

    assert redis.keys == {"lk:client-a:lease-2"}


@pytest.mark.asyncio
async def test_null_cache_is_a_no_op() -> None:
    assert await NullLeaseCache().invalidate("client-a", "lease-1") is None


def test_cache_key_is_client_scoped() -> None:
    assert lease_cache_key("leasekeeper:lease", "client-a", "lease-1") == "leasekeeper:lease:client-a:lease-1"
