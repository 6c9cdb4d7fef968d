"""Redis connection pool shared by draft storage and the expiry lock."""

import redis.asyncio as aioredis

from autohaul.config import settings

# Drafts are JSON text and lock tokens are hex, so replies are decoded
_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    await _pool.disconnect()
