"""
Application arbiter tests against SQLite.

Each test commits through the arbiter's session the way the API's unit of
work does, then inspects the result through a fresh session.
"""

import pytest
from sqlalchemy import select, update

from autohaul.domain.enums import ApplicationStatus, ShipmentEvent, ShipmentStatus
from autohaul.domain.errors import (
    AuthorizationError,
    IllegalTransitionError,
    NotFoundError,
)
from autohaul.infrastructure.models import JobApplicationModel, ShipmentModel
from autohaul.infrastructure.repositories import ShipmentRepository
from autohaul.services.arbiter import ApplicationArbiter
from tests.factories import create_shipment


async def _applications(session_factory, shipment_id) -> list[JobApplicationModel]:
    async with session_factory() as session:
        result = await session.execute(
            select(JobApplicationModel)
            .where(JobApplicationModel.shipment_id == shipment_id)
            .order_by(JobApplicationModel.applied_at)
        )
        return list(result.scalars().all())


class TestApply:
    @pytest.mark.asyncio
    async def test_creates_pending_application(self, db_session):
        shipment = await create_shipment(db_session)
        result = await ApplicationArbiter(db_session).apply(shipment.id, "d1", "Free Monday")
        await db_session.commit()

        assert result.ok and result.created
        assert result.application.status is ApplicationStatus.PENDING
        assert result.application.notes == "Free Monday"

    @pytest.mark.asyncio
    async def test_apply_twice_is_idempotent(self, db_session, session_factory):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        first = await arbiter.apply(shipment.id, "d1")
        second = await arbiter.apply(shipment.id, "d1")
        await db_session.commit()

        assert first.created and not second.created
        assert first.application.id == second.application.id
        assert len(await _applications(session_factory, shipment.id)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [ShipmentStatus.DRAFT, ShipmentStatus.ASSIGNED, ShipmentStatus.CANCELLED]
    )
    async def test_closed_shipment_is_conflict(self, db_session, status):
        shipment = await create_shipment(db_session, status=status)
        result = await ApplicationArbiter(db_session).apply(shipment.id, "d1")

        assert not result.ok
        assert result.application is None
        assert result.conflict.code == "SHIPMENT_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, db_session):
        with pytest.raises(NotFoundError):
            await ApplicationArbiter(db_session).apply("missing", "d1")

    @pytest.mark.asyncio
    async def test_reapply_after_cancel(self, db_session, session_factory):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        first = await arbiter.apply(shipment.id, "d1")
        await arbiter.cancel_application(first.application.id, "d1")
        second = await arbiter.apply(shipment.id, "d1")
        await db_session.commit()

        assert second.created
        assert second.application.id != first.application.id
        statuses = sorted(
            ApplicationStatus(a.status).value
            for a in await _applications(session_factory, shipment.id)
        )
        assert statuses == ["cancelled", "pending"]


class TestAssign:
    @pytest.mark.asyncio
    async def test_winner_accepted_others_rejected(self, db_session, session_factory):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        for driver in ("d1", "d2", "d3"):
            await arbiter.apply(shipment.id, driver)
        await db_session.commit()

        result = await arbiter.assign(shipment.id, "d2", actor_id="admin-1")
        await db_session.commit()

        assert result.ok
        assert result.rejected == 2
        assert result.shipment.status is ShipmentStatus.ASSIGNED
        assert result.shipment.driver_id == "d2"
        assert result.application.driver_id == "d2"
        assert result.application.status is ApplicationStatus.ACCEPTED

        by_driver = {
            a.driver_id: ApplicationStatus(a.status)
            for a in await _applications(session_factory, shipment.id)
        }
        assert by_driver == {
            "d1": ApplicationStatus.REJECTED,
            "d2": ApplicationStatus.ACCEPTED,
            "d3": ApplicationStatus.REJECTED,
        }

    @pytest.mark.asyncio
    async def test_no_pending_applications_remain(self, db_session, session_factory):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        for driver in ("d1", "d2"):
            await arbiter.apply(shipment.id, driver)
        await arbiter.assign(shipment.id, "d1")
        await db_session.commit()

        pending = [
            a for a in await _applications(session_factory, shipment.id)
            if ApplicationStatus(a.status) is ApplicationStatus.PENDING
        ]
        assert pending == []

    @pytest.mark.asyncio
    async def test_assign_without_application_creates_accepted_one(self, db_session):
        shipment = await create_shipment(db_session)
        result = await ApplicationArbiter(db_session).assign(shipment.id, "d9")
        await db_session.commit()

        assert result.ok
        assert result.application.status is ApplicationStatus.ACCEPTED
        assert result.application.responded_at is not None

    @pytest.mark.asyncio
    async def test_second_assign_loses(self, db_session, session_factory):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        await arbiter.apply(shipment.id, "d1")
        await arbiter.apply(shipment.id, "d2")
        first = await arbiter.assign(shipment.id, "d1")
        await db_session.commit()

        second = await arbiter.assign(shipment.id, "d2")
        await db_session.commit()

        assert first.ok
        assert not second.ok
        assert second.conflict.code == "ALREADY_ASSIGNED"
        async with session_factory() as session:
            row = await session.get(ShipmentModel, shipment.id)
        assert row.driver_id == "d1"

    @pytest.mark.asyncio
    async def test_assign_records_event(self, db_session):
        shipment = await create_shipment(db_session)
        await ApplicationArbiter(db_session).assign(shipment.id, "d1", actor_id="admin-1")
        await db_session.commit()

        [event] = await ShipmentRepository(db_session).get_events(shipment.id)
        assert ShipmentEvent(event.event) is ShipmentEvent.ASSIGN
        assert event.actor_id == "admin-1"
        assert ShipmentStatus(event.to_status) is ShipmentStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_application_withdrawn_mid_assign_gets_fresh_acceptance(
        self, db_session, session_factory
    ):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        applied = await arbiter.apply(shipment.id, "d1")
        await db_session.commit()

        accept = arbiter.applications.resolve_if_pending

        async def withdrawn_first(application_id, new_status):
            await db_session.execute(
                update(JobApplicationModel)
                .where(JobApplicationModel.id == application_id)
                .values(status=ApplicationStatus.CANCELLED)
                .execution_options(synchronize_session=False)
            )
            return await accept(application_id, new_status)

        arbiter.applications.resolve_if_pending = withdrawn_first
        result = await arbiter.assign(shipment.id, "d1")
        await db_session.commit()

        assert result.ok
        assert result.shipment.driver_id == "d1"
        assert result.application.id != applied.application.id
        assert result.application.status is ApplicationStatus.ACCEPTED
        by_id = {
            a.id: ApplicationStatus(a.status)
            for a in await _applications(session_factory, shipment.id)
        }
        assert by_id == {
            applied.application.id: ApplicationStatus.CANCELLED,
            result.application.id: ApplicationStatus.ACCEPTED,
        }

    @pytest.mark.asyncio
    async def test_assign_draft_shipment_is_conflict(self, db_session):
        shipment = await create_shipment(db_session, status=ShipmentStatus.DRAFT)
        result = await ApplicationArbiter(db_session).assign(shipment.id, "d1")
        assert not result.ok

    @pytest.mark.asyncio
    async def test_assign_unknown_shipment(self, db_session):
        with pytest.raises(NotFoundError):
            await ApplicationArbiter(db_session).assign("missing", "d1")


class TestCancelApplication:
    @pytest.mark.asyncio
    async def test_owner_cancels_pending(self, db_session):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        applied = await arbiter.apply(shipment.id, "d1")

        cancelled = await arbiter.cancel_application(applied.application.id, "d1")
        await db_session.commit()

        assert cancelled.status is ApplicationStatus.CANCELLED
        row = await db_session.get(ShipmentModel, shipment.id)
        assert ShipmentStatus(row.status) is ShipmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_other_driver_cannot_cancel(self, db_session):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        applied = await arbiter.apply(shipment.id, "d1")
        with pytest.raises(AuthorizationError):
            await arbiter.cancel_application(applied.application.id, "d2")

    @pytest.mark.asyncio
    async def test_cannot_cancel_after_assignment(self, db_session):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        applied = await arbiter.apply(shipment.id, "d1")
        await arbiter.assign(shipment.id, "d1")
        with pytest.raises(IllegalTransitionError):
            await arbiter.cancel_application(applied.application.id, "d1")

    @pytest.mark.asyncio
    async def test_unknown_application(self, db_session):
        with pytest.raises(NotFoundError):
            await ApplicationArbiter(db_session).cancel_application("missing", "d1")


class TestQueries:
    @pytest.mark.asyncio
    async def test_available_excludes_assigned_and_drafts(self, db_session):
        open_one = await create_shipment(db_session)
        await create_shipment(db_session, status=ShipmentStatus.DRAFT)
        await create_shipment(db_session, status=ShipmentStatus.ASSIGNED, driver_id="d1")

        available = await ApplicationArbiter(db_session).list_available_shipments()
        assert [s.id for s in available] == [open_one.id]

    @pytest.mark.asyncio
    async def test_driver_applications_filter(self, db_session):
        first = await create_shipment(db_session)
        second = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        await arbiter.apply(first.id, "d1")
        applied = await arbiter.apply(second.id, "d1")
        await arbiter.cancel_application(applied.application.id, "d1")
        await db_session.commit()

        assert len(await arbiter.list_applications_for_driver("d1")) == 2
        pending = await arbiter.list_applications_for_driver("d1", ApplicationStatus.PENDING)
        assert [a.shipment_id for a in pending] == [first.id]

    @pytest.mark.asyncio
    async def test_shipment_applications(self, db_session):
        shipment = await create_shipment(db_session)
        arbiter = ApplicationArbiter(db_session)
        await arbiter.apply(shipment.id, "d1")
        await arbiter.apply(shipment.id, "d2")
        applications = await arbiter.list_applications_for_shipment(shipment.id)
        assert {a.driver_id for a in applications} == {"d1", "d2"}
