"""
Application arbiter
===================

Decides which driver gets a shipment.

* ``apply``  -- many drivers, many times; duplicates collapse onto the one
  active application (code check first, partial unique index as backstop).
  The insert is itself conditional on the shipment still being open, so an
  ``assign`` that lands mid-apply cannot leave a pending application behind.
* ``assign`` -- the one true race.  A single conditional ``UPDATE`` on
  ``driver_id IS NULL AND status = 'pending'`` picks the winner; the winning
  application is accepted (or a fresh accepted one created if the driver
  withdrew meanwhile) and every other pending one rejected in the same
  transaction.

Race losses are *returned* (``result.conflict``), not raised: losing a job
to another driver is an expected outcome, not an error.  The arbiter never
commits; the caller owns the unit of work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from autohaul.domain.entities import JobApplication, Shipment
from autohaul.domain.enums import ApplicationStatus, ShipmentEvent, ShipmentStatus
from autohaul.domain.errors import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
)
from autohaul.infrastructure.repositories import (
    ApplicationRepository,
    ShipmentRepository,
    application_to_entity,
    shipment_to_entity,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplyResult:
    application: Optional[JobApplication] = None
    created: bool = False
    conflict: Optional[StateConflictError] = None

    @property
    def ok(self) -> bool:
        return self.conflict is None


@dataclass(frozen=True)
class AssignResult:
    shipment: Optional[Shipment] = None
    application: Optional[JobApplication] = None
    rejected: int = 0
    conflict: Optional[StateConflictError] = None

    @property
    def ok(self) -> bool:
        return self.conflict is None


def _unavailable(shipment_id: str) -> StateConflictError:
    return StateConflictError(
        f"Shipment {shipment_id} is no longer accepting applications",
        code="SHIPMENT_UNAVAILABLE",
    )


class ApplicationArbiter:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.shipments = ShipmentRepository(session)
        self.applications = ApplicationRepository(session)

    async def _load_shipment(self, shipment_id: str):
        shipment = await self.shipments.get_by_id(shipment_id)
        if shipment is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")
        return shipment

    # ── Apply ─────────────────────────────────────────────────────

    async def apply(
        self, shipment_id: str, driver_id: str, notes: Optional[str] = None
    ) -> ApplyResult:
        shipment = shipment_to_entity(await self._load_shipment(shipment_id))

        existing = await self.applications.get_active(shipment_id, driver_id)
        if existing is not None:
            return ApplyResult(application_to_entity(existing), created=False)

        if not shipment.is_open_for_applications:
            return ApplyResult(conflict=_unavailable(shipment_id))

        try:
            async with self.session.begin_nested():
                row = await self.applications.create_if_shipment_open(
                    shipment_id=shipment_id, driver_id=driver_id, notes=notes
                )
        except IntegrityError:
            # Lost a duplicate-insert race against our own retry
            existing = await self.applications.get_active(shipment_id, driver_id)
            if existing is None:
                raise
            return ApplyResult(application_to_entity(existing), created=False)

        if row is None:
            logger.info(
                "Shipment %s closed before driver %s's application landed",
                shipment_id,
                driver_id,
            )
            return ApplyResult(conflict=_unavailable(shipment_id))

        logger.info("Driver %s applied for shipment %s", driver_id, shipment_id)
        return ApplyResult(application_to_entity(row), created=True)

    # ── Assign ────────────────────────────────────────────────────

    async def assign(
        self, shipment_id: str, driver_id: str, actor_id: Optional[str] = None
    ) -> AssignResult:
        """Give *shipment_id* to *driver_id*; exactly one caller wins."""
        shipment = await self._load_shipment(shipment_id)

        if not await self.shipments.claim_driver(shipment_id, driver_id):
            await self.shipments.refresh(shipment)
            logger.warning(
                "Assign of shipment %s to %s lost: status=%s driver=%s",
                shipment_id,
                driver_id,
                shipment.status,
                shipment.driver_id,
            )
            return AssignResult(
                conflict=StateConflictError(
                    f"Shipment {shipment_id} is already assigned or no longer pending",
                    code="ALREADY_ASSIGNED",
                )
            )

        application = await self.applications.get_active(shipment_id, driver_id)
        if application is not None and application.status == ApplicationStatus.PENDING:
            if await self.applications.resolve_if_pending(
                application.id, ApplicationStatus.ACCEPTED
            ):
                await self.session.refresh(application)
            else:
                logger.warning(
                    "Application %s was withdrawn during assignment of shipment %s",
                    application.id,
                    shipment_id,
                )
                application = None
        if application is None:
            application = await self.applications.create(
                shipment_id=shipment_id,
                driver_id=driver_id,
                status=ApplicationStatus.ACCEPTED,
            )

        rejected = await self.applications.reject_pending(
            shipment_id, except_id=application.id
        )
        await self.shipments.record_event(
            shipment_id,
            ShipmentEvent.ASSIGN,
            ShipmentStatus.PENDING,
            ShipmentStatus.ASSIGNED,
            actor_id=actor_id,
        )
        await self.shipments.refresh(shipment)

        logger.info(
            "Shipment %s assigned to driver %s (%d applications rejected)",
            shipment_id,
            driver_id,
            rejected,
        )
        return AssignResult(
            shipment=shipment_to_entity(shipment),
            application=application_to_entity(application),
            rejected=rejected,
        )

    # ── Cancel ────────────────────────────────────────────────────

    async def cancel_application(
        self, application_id: str, driver_id: str
    ) -> JobApplication:
        row = await self.applications.get_by_id(application_id)
        if row is None:
            raise NotFoundError(f"Application {application_id} not found")
        if row.driver_id != driver_id:
            raise AuthorizationError("Only the applying driver may cancel an application")

        # Raises IllegalTransitionError unless still pending
        application_to_entity(row).transition_to(ApplicationStatus.CANCELLED)

        if not await self.applications.resolve_if_pending(
            application_id, ApplicationStatus.CANCELLED
        ):
            raise StateConflictError(
                f"Application {application_id} was resolved concurrently",
                code="APPLICATION_RESOLVED",
            )
        await self.session.refresh(row)
        logger.info("Driver %s cancelled application %s", driver_id, application_id)
        return application_to_entity(row)

    # ── Queries ───────────────────────────────────────────────────

    async def list_available_shipments(self) -> list[Shipment]:
        return [shipment_to_entity(r) for r in await self.shipments.get_available()]

    async def list_applications_for_driver(
        self, driver_id: str, status: Optional[ApplicationStatus] = None
    ) -> list[JobApplication]:
        rows = await self.applications.get_for_driver(driver_id, status)
        return [application_to_entity(r) for r in rows]

    async def list_applications_for_shipment(self, shipment_id: str) -> list[JobApplication]:
        await self._load_shipment(shipment_id)
        rows = await self.applications.get_for_shipment(shipment_id)
        return [application_to_entity(r) for r in rows]
