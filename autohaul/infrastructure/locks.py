"""
Redis-based distributed lock.

Used by the expiry worker so that, with several API processes running,
only one of them sweeps stale pending shipments per cycle.

Acquire is ``SET NX PX``; release is a Lua compare-and-delete so a worker
whose lock already timed out can never delete a lock taken over by
someone else.
"""

from __future__ import annotations

import asyncio
import uuid

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        name: str,
        ttl_seconds: int = 30,
        wait_seconds: float = 0.0,
        poll_interval: float = 0.1,
    ):
        self.redis = client
        self.key = f"autohaul:lock:{name}"
        self.ttl_ms = int(ttl_seconds * 1000)
        self.wait_seconds = wait_seconds
        self.poll_interval = poll_interval
        self.token = uuid.uuid4().hex

    async def _try_acquire(self) -> bool:
        return bool(
            await self.redis.set(self.key, self.token, nx=True, px=self.ttl_ms)
        )

    async def acquire(self) -> bool:
        """Try to acquire, polling for up to ``wait_seconds``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait_seconds
        while True:
            if await self._try_acquire():
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)

    async def release(self) -> bool:
        """Release only if we still own the lock."""
        return bool(await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token))

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.release()
