"""Expiry worker tests: one sweep against SQLite with a mocked Redis lock."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from autohaul.domain.entities import utcnow
from autohaul.domain.enums import ApplicationStatus, ShipmentEvent, ShipmentStatus
from autohaul.infrastructure.models import ShipmentModel
from autohaul.infrastructure.repositories import ShipmentRepository
from autohaul.services.arbiter import ApplicationArbiter
from autohaul.workers.expiry import run_expiry_cycle
from tests.factories import create_shipment


async def _age(session, shipment_id, hours):
    await session.execute(
        update(ShipmentModel)
        .where(ShipmentModel.id == shipment_id)
        .values(created_at=utcnow() - timedelta(hours=hours))
    )
    await session.commit()


class TestExpiryCycle:
    @pytest.mark.asyncio
    async def test_stale_pending_expired(self, db_session, session_factory, fake_redis):
        stale = await create_shipment(db_session)
        fresh = await create_shipment(db_session)
        await ApplicationArbiter(db_session).apply(stale.id, "d1")
        await db_session.commit()
        await _age(db_session, stale.id, hours=100)

        expired = await run_expiry_cycle(redis=fake_redis, session_factory=session_factory)

        assert expired == [stale.id]
        async with session_factory() as session:
            stale_row = await session.get(ShipmentModel, stale.id)
            fresh_row = await session.get(ShipmentModel, fresh.id)
            [application] = await ApplicationArbiter(
                session
            ).list_applications_for_shipment(stale.id)
            [event] = await ShipmentRepository(session).get_events(stale.id)
        assert ShipmentStatus(stale_row.status) is ShipmentStatus.EXPIRED
        assert ShipmentStatus(fresh_row.status) is ShipmentStatus.PENDING
        assert application.status is ApplicationStatus.REJECTED
        assert ShipmentEvent(event.event) is ShipmentEvent.EXPIRE
        assert event.actor_id is None

    @pytest.mark.asyncio
    async def test_assigned_and_draft_shipments_untouched(
        self, db_session, session_factory, fake_redis
    ):
        assigned = await create_shipment(
            db_session, status=ShipmentStatus.ASSIGNED, driver_id="d1"
        )
        draft = await create_shipment(db_session, status=ShipmentStatus.DRAFT)
        await _age(db_session, assigned.id, hours=500)
        await _age(db_session, draft.id, hours=500)

        assert await run_expiry_cycle(redis=fake_redis, session_factory=session_factory) == []

    @pytest.mark.asyncio
    async def test_skips_when_lock_held(self, db_session, session_factory, fake_redis):
        stale = await create_shipment(db_session)
        await _age(db_session, stale.id, hours=100)
        fake_redis.data["autohaul:lock:shipment_expiry"] = "other-worker"

        assert await run_expiry_cycle(redis=fake_redis, session_factory=session_factory) == []
        fake_redis.eval.assert_not_awaited()

        async with session_factory() as session:
            row = await session.get(ShipmentModel, stale.id)
        assert ShipmentStatus(row.status) is ShipmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_lock_released_after_sweep(self, session_factory, fake_redis):
        await run_expiry_cycle(redis=fake_redis, session_factory=session_factory)
        fake_redis.eval.assert_awaited_once()
        assert fake_redis.eval.await_args.args[2] == "autohaul:lock:shipment_expiry"
