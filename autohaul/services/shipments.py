"""
Persisted shipment lifecycle.

``ShipmentLifecycle`` says which transitions are legal; this service applies
them to stored shipments.  Every write is ``UPDATE ... WHERE status = :seen
AND version = :seen``, so two actors racing on the same shipment can never
both succeed: the loser gets ``StateConflictError`` and must reload.

Assignment is not fired here; it belongs to ``ApplicationArbiter``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from autohaul.domain.entities import Shipment
from autohaul.domain.enums import (
    ShipmentEvent,
    ShipmentStatus,
    UserRole,
)
from autohaul.domain.errors import (
    AuthorizationError,
    IllegalTransitionError,
    NotFoundError,
    StateConflictError,
)
from autohaul.infrastructure.models import ShipmentModel
from autohaul.infrastructure.repositories import (
    ApplicationRepository,
    ShipmentRepository,
    shipment_to_entity,
)

logger = logging.getLogger(__name__)

DRIVER_EVENTS = frozenset(
    {
        ShipmentEvent.DRIVER_ACCEPTS,
        ShipmentEvent.PICKUP_VERIFIED,
        ShipmentEvent.DEPARTED,
        ShipmentEvent.DELIVERED,
    }
)
CLIENT_EVENTS = frozenset({ShipmentEvent.CANCEL})

# Fired by other components, never through ``fire``
_INTERNAL_EVENTS = frozenset({ShipmentEvent.FINALIZE, ShipmentEvent.ASSIGN})

_CLOSING_STATUSES = frozenset(
    {ShipmentStatus.CANCELLED, ShipmentStatus.FAILED, ShipmentStatus.EXPIRED}
)


class ShipmentService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.shipments = ShipmentRepository(session)
        self.applications = ApplicationRepository(session)

    async def _load(self, shipment_id: str) -> ShipmentModel:
        row = await self.shipments.get_by_id(shipment_id)
        if row is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")
        return row

    async def get(self, shipment_id: str) -> Shipment:
        return shipment_to_entity(await self._load(shipment_id))

    async def list_for_client(self, client_id: str) -> list[Shipment]:
        return [shipment_to_entity(r) for r in await self.shipments.get_for_client(client_id)]

    async def history(self, shipment_id: str):
        await self._load(shipment_id)
        return await self.shipments.get_events(shipment_id)

    @staticmethod
    def authorize(
        shipment: Shipment, event: ShipmentEvent, actor_id: str, role: UserRole
    ) -> None:
        if role is UserRole.ADMIN:
            return
        if role is UserRole.DRIVER:
            if event not in DRIVER_EVENTS:
                raise AuthorizationError(f"Drivers cannot fire {event.value}")
            if shipment.driver_id != actor_id:
                raise AuthorizationError("Shipment is not assigned to this driver")
            return
        if role is UserRole.CLIENT:
            if event not in CLIENT_EVENTS:
                raise AuthorizationError(f"Clients cannot fire {event.value}")
            if shipment.client_id != actor_id:
                raise AuthorizationError("Shipment belongs to another client")
            return
        raise AuthorizationError(f"Unknown role {role}")

    async def fire(
        self,
        shipment_id: str,
        event: ShipmentEvent,
        actor_id: str,
        role: UserRole,
    ) -> Shipment:
        event = ShipmentEvent(event)
        if event in _INTERNAL_EVENTS:
            raise IllegalTransitionError(
                f"{event.value} cannot be fired directly on a shipment"
            )
        row = await self._load(shipment_id)
        self.authorize(shipment_to_entity(row), event, actor_id, UserRole(role))
        return await self._transition(row, event, actor_id)

    async def _transition(
        self, row: ShipmentModel, event: ShipmentEvent, actor_id: Optional[str]
    ) -> Shipment:
        shipment = shipment_to_entity(row)
        from_status, seen_version = shipment.status, shipment.version
        shipment.fire(event)

        if not await self.shipments.transition_if(
            shipment.id, from_status, seen_version, shipment.status
        ):
            raise StateConflictError(
                f"Shipment {shipment.id} changed concurrently; reload and retry",
                code="STALE_SHIPMENT",
            )

        rejected = 0
        if shipment.status in _CLOSING_STATUSES:
            rejected = await self.applications.reject_pending(shipment.id)
        await self.shipments.record_event(
            shipment.id, event, from_status, shipment.status, actor_id=actor_id
        )
        await self.shipments.refresh(row)

        logger.info(
            "Shipment %s: %s -> %s via %s (actor=%s, rejected=%d)",
            shipment.id,
            from_status.value,
            shipment.status.value,
            event.value,
            actor_id,
            rejected,
        )
        return shipment_to_entity(row)

    async def expire_stale(self, created_before: datetime) -> list[str]:
        """Expire pending, unassigned shipments created before the cutoff."""
        expired = []
        for row in await self.shipments.get_stale_pending(created_before):
            try:
                await self._transition(row, ShipmentEvent.EXPIRE, actor_id=None)
            except (StateConflictError, IllegalTransitionError) as exc:
                # Assigned or cancelled since the sweep query ran
                logger.info("Skipping expiry of shipment %s: %s", row.id, exc)
                continue
            expired.append(row.id)
        return expired
