"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Shipment`` and ``JobApplication``: every status
  change goes through a method that consults the transition tables and
  raises ``IllegalTransitionError`` instead of coercing.
- ``ShipmentRequest`` is the *total* record produced from a fully
  validated booking draft; the draft itself only ever holds partial data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import (
    ACTIVE_APPLICATION_STATUSES,
    APPLICATION_TRANSITIONS,
    ApplicationStatus,
    PaymentStatus,
    ShipmentEvent,
    ShipmentStatus,
)
from .errors import IllegalTransitionError
from .lifecycle import ShipmentLifecycle
from .pricing import PriceSplit, SplitPolicy


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Address:
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class Route:
    pickup: Address
    delivery: Address


@dataclass(frozen=True)
class ShipmentRequest:
    """Everything needed to create a shipment; all fields are required."""

    client_id: str
    idempotency_key: str
    title: str
    description: str
    route: Route
    pickup_notes: str
    delivery_notes: str
    estimated_price_cents: int
    payment_method: str
    is_fragile: bool = False


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Shipment:
    id: Optional[str] = None
    client_id: str = ""
    status: ShipmentStatus = ShipmentStatus.DRAFT
    driver_id: Optional[str] = None
    route: Optional[Route] = None
    title: str = ""
    estimated_price_cents: int = 0
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_reference: Optional[str] = None
    idempotency_key: Optional[str] = None
    version: int = 1
    created_at: Optional[datetime] = None

    def fire(self, event: ShipmentEvent, driver_id: Optional[str] = None) -> None:
        """Apply a lifecycle event in place, or raise."""
        event = ShipmentEvent(event)
        if event is ShipmentEvent.ASSIGN:
            if not driver_id:
                raise IllegalTransitionError("assign requires a driver id")
            if self.driver_id is not None:
                raise IllegalTransitionError(
                    f"Shipment {self.id} is already assigned to {self.driver_id}"
                )
        self.status = ShipmentLifecycle.next_status(self.status, event)
        if event is ShipmentEvent.ASSIGN:
            self.driver_id = driver_id
        self.version += 1

    def price_split(self, policy: SplitPolicy) -> PriceSplit:
        return policy.split(self.estimated_price_cents)

    @property
    def is_open_for_applications(self) -> bool:
        return self.status is ShipmentStatus.PENDING and self.driver_id is None


@dataclass
class JobApplication:
    shipment_id: str
    driver_id: str
    id: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: datetime = field(default_factory=utcnow)
    responded_at: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_APPLICATION_STATUSES

    def transition_to(self, new_status: ApplicationStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = APPLICATION_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise IllegalTransitionError(
                f"Cannot transition application from {self.status.value} "
                f"to {ApplicationStatus(new_status).value}"
            )
        self.status = ApplicationStatus(new_status)
        self.responded_at = utcnow()
