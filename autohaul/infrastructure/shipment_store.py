"""
SQL implementation of the booking workflow's ``ShipmentStore``.

Each call runs in its own short transaction and commits before returning:
the shipment must be durable *before* the card is charged, and the charge
outcome must be durable before the customer is told about it.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .repositories import ShipmentRepository, shipment_to_entity
from autohaul.domain.entities import Shipment, ShipmentRequest
from autohaul.domain.enums import PaymentStatus, ShipmentEvent, ShipmentStatus
from autohaul.domain.errors import ExternalDependencyError, NotFoundError, StateConflictError
from autohaul.domain.ports import ShipmentStore

logger = logging.getLogger(__name__)


class SqlShipmentStore(ShipmentStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_or_get(self, request: ShipmentRequest) -> Shipment:
        try:
            async with self.session_factory() as session:
                repo = ShipmentRepository(session)
                existing = await repo.get_by_idempotency_key(request.idempotency_key)
                if existing:
                    if existing.status == ShipmentStatus.DRAFT:
                        # Customer may have edited the draft between attempts
                        repo.apply_request(existing, request)
                        await session.commit()
                    return shipment_to_entity(existing)

                try:
                    shipment = await repo.create_from_request(request)
                    await session.commit()
                except IntegrityError:
                    # A concurrent retry inserted the same key first
                    await session.rollback()
                    shipment = await repo.get_by_idempotency_key(request.idempotency_key)
                    if shipment is None:
                        raise
                logger.info(
                    "Shipment %s created for client %s (draft, unpaid)",
                    shipment.id,
                    request.client_id,
                )
                return shipment_to_entity(shipment)
        except SQLAlchemyError as exc:
            raise ExternalDependencyError(
                f"Could not create shipment: {exc}", dependency="database"
            ) from exc

    async def confirm_upfront_payment(self, shipment_id: str, reference: str) -> Shipment:
        try:
            async with self.session_factory() as session:
                repo = ShipmentRepository(session)
                shipment = await repo.get_by_id(shipment_id)
                if shipment is None:
                    raise NotFoundError(f"Shipment {shipment_id} not found")

                finalized = await repo.transition_if(
                    shipment_id,
                    ShipmentStatus.DRAFT,
                    shipment.version,
                    ShipmentStatus.PENDING,
                    payment_status=PaymentStatus.UPFRONT_PAID,
                    payment_reference=reference,
                    payment_failure_reason=None,
                )
                if not finalized:
                    await session.rollback()
                    raise StateConflictError(
                        f"Shipment {shipment_id} changed while confirming payment",
                        code="PAYMENT_CONFIRMATION_RACE",
                    )
                await repo.record_event(
                    shipment_id,
                    ShipmentEvent.FINALIZE,
                    ShipmentStatus.DRAFT,
                    ShipmentStatus.PENDING,
                    actor_id=shipment.client_id,
                )
                await session.commit()
                return shipment_to_entity(await repo.refresh(shipment))
        except SQLAlchemyError as exc:
            raise ExternalDependencyError(
                f"Could not confirm payment for shipment {shipment_id}: {exc}",
                dependency="database",
            ) from exc

    async def mark_payment_failed(self, shipment_id: str, reason: str) -> None:
        try:
            async with self.session_factory() as session:
                repo = ShipmentRepository(session)
                await repo.set_payment_status_if_draft(
                    shipment_id, PaymentStatus.FAILED, payment_failure_reason=reason
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise ExternalDependencyError(
                f"Could not record payment failure for {shipment_id}: {exc}",
                dependency="database",
            ) from exc
