"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``shipments``         -- one row per submitted booking
* ``job_applications``  -- driver applications against shipments
* ``shipment_events``   -- audit trail of lifecycle transitions

Integrity guarantees enforced by the database
---------------------------------------------
* ``shipments.idempotency_key`` is unique: one shipment per booking draft.
* Partial unique index on ``(shipment_id, driver_id)`` for *active*
  applications: a driver can hold at most one pending / accepted
  application per shipment.
* Partial unique index on ``shipment_id`` for *accepted* applications:
  one winner per shipment.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)

from .database import Base
from autohaul.domain.enums import (
    ApplicationStatus,
    PaymentStatus,
    ShipmentEvent,
    ShipmentStatus,
)


def _uuid() -> str:
    return str(uuid.uuid4())


# Set in Python so flushed rows are fully loaded
def _now() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls, name: str) -> Enum:
    # Persist the lowercase values, not the member names
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
    )


_ACTIVE_APPLICATION = "status IN ('pending', 'accepted')"
_ACCEPTED_APPLICATION = "status = 'accepted'"


class ShipmentModel(Base):
    __tablename__ = "shipments"

    id = Column(String(36), primary_key=True, default=_uuid)
    client_id = Column(String(36), nullable=False)
    driver_id = Column(String(36), nullable=True)
    status = Column(
        _enum(ShipmentStatus, "shipment_status"),
        default=ShipmentStatus.DRAFT,
        nullable=False,
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    pickup_address = Column(Text, nullable=False)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    pickup_notes = Column(Text, nullable=True)
    delivery_address = Column(Text, nullable=False)
    delivery_lat = Column(Float, nullable=True)
    delivery_lng = Column(Float, nullable=True)
    delivery_notes = Column(Text, nullable=True)

    # Integer cents; the upfront / remainder split is derived, never stored
    estimated_price_cents = Column(Integer, nullable=False)
    payment_method = Column(String(20), nullable=True)
    payment_status = Column(
        _enum(PaymentStatus, "payment_status"),
        default=PaymentStatus.UNPAID,
        nullable=False,
    )
    payment_reference = Column(String(255), nullable=True)
    payment_failure_reason = Column(Text, nullable=True)

    idempotency_key = Column(String(64), unique=True, nullable=False)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=_now, server_default=func.now(), onupdate=_now
    )
    assigned_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_shipments_status", "status"),
        Index("idx_shipments_client", "client_id"),
        Index("idx_shipments_driver", "driver_id"),
    )


class JobApplicationModel(Base):
    __tablename__ = "job_applications"

    id = Column(String(36), primary_key=True, default=_uuid)
    shipment_id = Column(String(36), ForeignKey("shipments.id"), nullable=False)
    driver_id = Column(String(36), nullable=False)
    status = Column(
        _enum(ApplicationStatus, "application_status"),
        default=ApplicationStatus.PENDING,
        nullable=False,
    )
    notes = Column(Text, nullable=True)
    applied_at = Column(DateTime(timezone=True), default=_now, server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_applications_driver", "driver_id"),
        Index("idx_applications_shipment", "shipment_id"),
        Index(
            "uq_applications_active",
            "shipment_id",
            "driver_id",
            unique=True,
            postgresql_where=text(_ACTIVE_APPLICATION),
            sqlite_where=text(_ACTIVE_APPLICATION),
        ),
        Index(
            "uq_applications_accepted",
            "shipment_id",
            unique=True,
            postgresql_where=text(_ACCEPTED_APPLICATION),
            sqlite_where=text(_ACCEPTED_APPLICATION),
        ),
    )


class ShipmentEventModel(Base):
    __tablename__ = "shipment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shipment_id = Column(String(36), ForeignKey("shipments.id"), nullable=False)
    event = Column(_enum(ShipmentEvent, "shipment_event"), nullable=False)
    from_status = Column(_enum(ShipmentStatus, "shipment_status"), nullable=True)
    to_status = Column(_enum(ShipmentStatus, "shipment_status"), nullable=False)
    actor_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, server_default=func.now())

    __table_args__ = (Index("idx_shipment_events_shipment", "shipment_id"),)
