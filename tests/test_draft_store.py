"""Redis draft store tests (mocked Redis)."""

import json

import pytest

from autohaul.domain.enums import BookingStep
from autohaul.infrastructure.draft_store import DraftStore
from tests.factories import filled_draft


class TestDraftStore:
    @pytest.mark.asyncio
    async def test_save_and_load(self, fake_redis):
        store = DraftStore(fake_redis, ttl_seconds=60)
        draft = filled_draft(at_step=BookingStep.DELIVERY)

        await store.save(draft)
        loaded = await store.load(draft.id)

        assert loaded.id == draft.id
        assert loaded.current_step is BookingStep.DELIVERY
        assert loaded.submission_key == draft.submission_key
        assert loaded.validity == draft.validity
        fake_redis.set.assert_awaited_once()
        assert fake_redis.set.await_args.kwargs == {"ex": 60}

    @pytest.mark.asyncio
    async def test_stored_as_json_under_namespaced_key(self, fake_redis):
        draft = filled_draft()
        await DraftStore(fake_redis).save(draft)
        doc = json.loads(fake_redis.data[f"autohaul:draft:{draft.id}"])
        assert doc["client_id"] == "client-1"
        assert doc["current_step"] == "payment"

    @pytest.mark.asyncio
    async def test_missing_draft(self, fake_redis):
        assert await DraftStore(fake_redis).load("nope") is None

    @pytest.mark.asyncio
    async def test_delete(self, fake_redis):
        store = DraftStore(fake_redis)
        draft = filled_draft()
        await store.save(draft)
        await store.delete(draft.id)
        assert await store.load(draft.id) is None
