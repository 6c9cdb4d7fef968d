"""
Resumable booking drafts, stored as JSON documents in Redis.

Only the form data, step pointer and submission key are persisted.
Validity flags are recomputed by ``BookingDraft.from_dict`` on every load.
"""

from __future__ import annotations

import json
from typing import Optional

import redis.asyncio as aioredis

from autohaul.domain.draft import BookingDraft


class DraftStore:
    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 7 * 24 * 3600):
        self.redis = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(draft_id: str) -> str:
        return f"autohaul:draft:{draft_id}"

    async def save(self, draft: BookingDraft) -> None:
        await self.redis.set(
            self._key(draft.id), json.dumps(draft.to_dict()), ex=self.ttl_seconds
        )

    async def load(self, draft_id: str) -> Optional[BookingDraft]:
        raw = await self.redis.get(self._key(draft_id))
        if raw is None:
            return None
        return BookingDraft.from_dict(json.loads(raw))

    async def delete(self, draft_id: str) -> None:
        await self.redis.delete(self._key(draft_id))
