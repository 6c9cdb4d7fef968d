"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Every write that can race is a single
conditional ``UPDATE ... WHERE <expected state>`` whose row count tells the
caller whether it won; nothing here reads, checks, then writes.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, insert, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import JobApplicationModel, ShipmentEventModel, ShipmentModel
from autohaul.domain.entities import (
    Address,
    JobApplication,
    Route,
    Shipment,
    ShipmentRequest,
    utcnow,
)
from autohaul.domain.enums import (
    ACTIVE_APPLICATION_STATUSES,
    ApplicationStatus,
    PaymentStatus,
    ShipmentEvent,
    ShipmentStatus,
)


# ── Row <-> entity mapping ────────────────────────────────────────────


def shipment_to_entity(row: ShipmentModel) -> Shipment:
    return Shipment(
        id=row.id,
        client_id=row.client_id,
        status=ShipmentStatus(row.status),
        driver_id=row.driver_id,
        route=Route(
            pickup=Address(row.pickup_address, row.pickup_lat, row.pickup_lng),
            delivery=Address(row.delivery_address, row.delivery_lat, row.delivery_lng),
        ),
        title=row.title,
        estimated_price_cents=row.estimated_price_cents,
        payment_status=PaymentStatus(row.payment_status),
        payment_reference=row.payment_reference,
        idempotency_key=row.idempotency_key,
        version=row.version,
        created_at=row.created_at,
    )


def application_to_entity(row: JobApplicationModel) -> JobApplication:
    return JobApplication(
        id=row.id,
        shipment_id=row.shipment_id,
        driver_id=row.driver_id,
        status=ApplicationStatus(row.status),
        applied_at=row.applied_at,
        responded_at=row.responded_at,
        notes=row.notes,
    )


# ── Shipments ─────────────────────────────────────────────────────────


class ShipmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_from_request(self, request: ShipmentRequest) -> ShipmentModel:
        shipment = ShipmentModel(
            client_id=request.client_id,
            status=ShipmentStatus.DRAFT,
            idempotency_key=request.idempotency_key,
            payment_status=PaymentStatus.UNPAID,
        )
        self.apply_request(shipment, request)
        self.session.add(shipment)
        await self.session.flush()
        return shipment

    @staticmethod
    def apply_request(shipment: ShipmentModel, request: ShipmentRequest) -> None:
        """Copy booking details onto a (still draft) shipment row."""
        shipment.title = request.title
        shipment.description = request.description
        shipment.pickup_address = request.route.pickup.address
        shipment.pickup_lat = request.route.pickup.latitude
        shipment.pickup_lng = request.route.pickup.longitude
        shipment.pickup_notes = request.pickup_notes
        shipment.delivery_address = request.route.delivery.address
        shipment.delivery_lat = request.route.delivery.latitude
        shipment.delivery_lng = request.route.delivery.longitude
        shipment.delivery_notes = request.delivery_notes
        shipment.estimated_price_cents = request.estimated_price_cents
        shipment.payment_method = request.payment_method

    async def get_by_id(self, shipment_id: str) -> Optional[ShipmentModel]:
        return await self.session.get(ShipmentModel, shipment_id)

    async def refresh(self, shipment: ShipmentModel) -> ShipmentModel:
        await self.session.refresh(shipment)
        return shipment

    async def get_by_idempotency_key(self, key: str) -> Optional[ShipmentModel]:
        result = await self.session.execute(
            select(ShipmentModel).where(ShipmentModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def get_available(self) -> list[ShipmentModel]:
        """Pending shipments without a driver.  Advisory; may be stale."""
        result = await self.session.execute(
            select(ShipmentModel)
            .where(
                ShipmentModel.status == ShipmentStatus.PENDING,
                ShipmentModel.driver_id.is_(None),
            )
            .order_by(ShipmentModel.created_at)
        )
        return list(result.scalars().all())

    async def get_for_client(self, client_id: str) -> list[ShipmentModel]:
        result = await self.session.execute(
            select(ShipmentModel)
            .where(ShipmentModel.client_id == client_id)
            .order_by(ShipmentModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_stale_pending(self, created_before: datetime) -> list[ShipmentModel]:
        result = await self.session.execute(
            select(ShipmentModel).where(
                ShipmentModel.status == ShipmentStatus.PENDING,
                ShipmentModel.driver_id.is_(None),
                ShipmentModel.created_at < created_before,
            )
        )
        return list(result.scalars().all())

    async def claim_driver(self, shipment_id: str, driver_id: str) -> bool:
        """Atomic compare-and-swap: ``driver_id IS NULL AND status = pending``.

        Returns True for exactly one caller per shipment.
        """
        result = await self.session.execute(
            update(ShipmentModel)
            .where(
                ShipmentModel.id == shipment_id,
                ShipmentModel.driver_id.is_(None),
                ShipmentModel.status == ShipmentStatus.PENDING,
            )
            .values(
                driver_id=driver_id,
                status=ShipmentStatus.ASSIGNED,
                assigned_at=utcnow(),
                version=ShipmentModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition_if(
        self,
        shipment_id: str,
        expected_status: ShipmentStatus,
        expected_version: int,
        new_status: ShipmentStatus,
        **values,
    ) -> bool:
        """Optimistic status change guarded by status *and* version."""
        result = await self.session.execute(
            update(ShipmentModel)
            .where(
                ShipmentModel.id == shipment_id,
                ShipmentModel.status == expected_status,
                ShipmentModel.version == expected_version,
            )
            .values(status=new_status, version=ShipmentModel.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_payment_status_if_draft(
        self, shipment_id: str, payment_status: PaymentStatus, **values
    ) -> bool:
        result = await self.session.execute(
            update(ShipmentModel)
            .where(
                ShipmentModel.id == shipment_id,
                ShipmentModel.status == ShipmentStatus.DRAFT,
            )
            .values(payment_status=payment_status, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_event(
        self,
        shipment_id: str,
        event: ShipmentEvent,
        from_status: Optional[ShipmentStatus],
        to_status: ShipmentStatus,
        actor_id: Optional[str] = None,
    ) -> ShipmentEventModel:
        row = ShipmentEventModel(
            shipment_id=shipment_id,
            event=event,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_events(self, shipment_id: str) -> list[ShipmentEventModel]:
        result = await self.session.execute(
            select(ShipmentEventModel)
            .where(ShipmentEventModel.shipment_id == shipment_id)
            .order_by(ShipmentEventModel.id)
        )
        return list(result.scalars().all())


# ── Job applications ──────────────────────────────────────────────────


class ApplicationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        shipment_id: str,
        driver_id: str,
        notes: Optional[str] = None,
        status: ApplicationStatus = ApplicationStatus.PENDING,
    ) -> JobApplicationModel:
        application = JobApplicationModel(
            shipment_id=shipment_id,
            driver_id=driver_id,
            notes=notes,
            status=status,
            applied_at=utcnow(),
            responded_at=utcnow() if status is not ApplicationStatus.PENDING else None,
        )
        self.session.add(application)
        await self.session.flush()
        return application

    async def create_if_shipment_open(
        self, *, shipment_id: str, driver_id: str, notes: Optional[str] = None
    ) -> Optional[JobApplicationModel]:
        """Insert a pending application only while the shipment is pending
        and has no driver.

        One ``INSERT ... SELECT ... WHERE`` over the shipment row, which is
        share-locked on PostgreSQL: an ``assign`` either commits first and the
        insert finds nothing, or waits and its ``reject_pending`` sees the new
        row.  Returns ``None`` when the shipment has closed.
        """
        application_id = str(uuid.uuid4())
        columns = JobApplicationModel.__table__.c
        values = {
            "id": application_id,
            "shipment_id": shipment_id,
            "driver_id": driver_id,
            "status": ApplicationStatus.PENDING,
            "notes": notes,
            "applied_at": utcnow(),
        }
        source = (
            select(*[literal(value, columns[name].type) for name, value in values.items()])
            .select_from(ShipmentModel)
            .where(
                ShipmentModel.id == shipment_id,
                ShipmentModel.status == ShipmentStatus.PENDING,
                ShipmentModel.driver_id.is_(None),
            )
            .with_for_update(read=True)
        )
        result = await self.session.execute(
            insert(JobApplicationModel.__table__).from_select(list(values), source)
        )
        if result.rowcount != 1:
            return None
        return await self.session.get(JobApplicationModel, application_id)

    async def get_by_id(self, application_id: str) -> Optional[JobApplicationModel]:
        return await self.session.get(JobApplicationModel, application_id)

    async def get_active(
        self, shipment_id: str, driver_id: str
    ) -> Optional[JobApplicationModel]:
        result = await self.session.execute(
            select(JobApplicationModel).where(
                JobApplicationModel.shipment_id == shipment_id,
                JobApplicationModel.driver_id == driver_id,
                JobApplicationModel.status.in_(list(ACTIVE_APPLICATION_STATUSES)),
            )
        )
        return result.scalar_one_or_none()

    async def get_for_driver(
        self, driver_id: str, status: Optional[ApplicationStatus] = None
    ) -> list[JobApplicationModel]:
        query = (
            select(JobApplicationModel)
            .where(JobApplicationModel.driver_id == driver_id)
            .order_by(JobApplicationModel.applied_at.desc())
        )
        if status:
            query = query.where(JobApplicationModel.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_for_shipment(self, shipment_id: str) -> list[JobApplicationModel]:
        result = await self.session.execute(
            select(JobApplicationModel)
            .where(JobApplicationModel.shipment_id == shipment_id)
            .order_by(JobApplicationModel.applied_at)
        )
        return list(result.scalars().all())

    async def count_pending(self, shipment_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(JobApplicationModel)
            .where(
                JobApplicationModel.shipment_id == shipment_id,
                JobApplicationModel.status == ApplicationStatus.PENDING,
            )
        )
        return result.scalar() or 0

    async def resolve_if_pending(
        self, application_id: str, new_status: ApplicationStatus
    ) -> bool:
        """Move a still-pending application to *new_status*."""
        result = await self.session.execute(
            update(JobApplicationModel)
            .where(
                JobApplicationModel.id == application_id,
                JobApplicationModel.status == ApplicationStatus.PENDING,
            )
            .values(status=new_status, responded_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def reject_pending(
        self, shipment_id: str, except_id: Optional[str] = None
    ) -> int:
        """Reject every pending application for a shipment; returns the count."""
        query = update(JobApplicationModel).where(
            JobApplicationModel.shipment_id == shipment_id,
            JobApplicationModel.status == ApplicationStatus.PENDING,
        )
        if except_id:
            query = query.where(JobApplicationModel.id != except_id)
        result = await self.session.execute(
            query.values(
                status=ApplicationStatus.REJECTED, responded_at=utcnow()
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount
