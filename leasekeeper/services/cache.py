from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis

from leasekeeper.core.config import get_settings


logger = logging.getLogger(__name__)

_redis_pool: Redis | None = None
_redis_loop: asyncio.AbstractEventLoop | None = None
_redis_lock = asyncio.Lock()


async def get_cache_redis() -> Redis | None:
    # Reuse a shared Redis connection for lease cache invalidation.
    settings = get_settings()
    try:
        current_loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    global _redis_pool, _redis_loop
    if _redis_pool is not None and _redis_loop == current_loop:
        return _redis_pool
    if _redis_pool is not None and _redis_loop != current_loop:
        _redis_pool = None
    async with _redis_lock:
        if _redis_pool is None:
            try:
                _redis_pool = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
                _redis_loop = current_loop
            except Exception as exc:  # noqa: BLE001 - Redis might be unavailable in dev
                logger.warning("lease_cache_redis_unavailable", exc_info=exc)
                return None
    return _redis_pool


def lease_cache_key(prefix: str, tenant_id: str, lease_id: str) -> str:
    return f"{prefix}:{tenant_id}:{lease_id}"


class RedisLeaseCache:
    """Drops cached lease reads after a write; readers repopulate on miss."""

    def __init__(self, redis: Redis | None = None, *, prefix: str | None = None) -> None:
        self._redis = redis
        self._prefix = prefix or get_settings().lease_cache_prefix

    async def _client(self) -> Redis | None:
        if self._redis is not None:
            return self._redis
        return await get_cache_redis()

    async def invalidate(self, tenant_id: str, lease_id: str) -> None:
        redis = await self._client()
        if redis is None:
            return
        key = lease_cache_key(self._prefix, tenant_id, lease_id)
        # Per-lease key plus any role-scoped projections stored beneath it.
        await redis.delete(key)
        async for scoped_key in redis.scan_iter(match=f"{key}:*"):
            await redis.delete(scoped_key)


class NullLeaseCache:
    async def invalidate(self, tenant_id: str, lease_id: str) -> None:
        return None


def build_lease_cache() -> RedisLeaseCache | NullLeaseCache:
    if not get_settings().lease_cache_enabled:
        return NullLeaseCache()
    return RedisLeaseCache()
