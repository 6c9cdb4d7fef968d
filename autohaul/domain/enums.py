"""Domain enumerations and state-transition rules."""

import enum


class BookingStep(str, enum.Enum):
    CUSTOMER = "customer"
    VEHICLE = "vehicle"
    PICKUP = "pickup"
    DELIVERY = "delivery"
    TOWING = "towing"
    INSURANCE = "insurance"
    VISUAL = "visual"
    TERMS = "terms"
    PAYMENT = "payment"


# Wizard order; enum definition order is the source of truth
STEP_ORDER: tuple[BookingStep, ...] = tuple(BookingStep)


class Operability(str, enum.Enum):
    RUNNING = "running"
    NOT_RUNNING = "not_running"
    PARTIALLY_RUNNING = "partially_running"


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"


class UserRole(str, enum.Enum):
    CLIENT = "client"
    DRIVER = "driver"
    ADMIN = "admin"


class ShipmentStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    EXPIRED = "expired"


class ShipmentEvent(str, enum.Enum):
    FINALIZE = "finalize"
    ASSIGN = "assign"
    DRIVER_ACCEPTS = "driver_accepts"
    PICKUP_VERIFIED = "pickup_verified"
    DEPARTED = "departed"
    DELIVERED = "delivered"
    PAYMENT_SETTLED = "payment_settled"
    CANCEL = "cancel"
    FAIL = "fail"
    EXPIRE = "expire"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    UPFRONT_PAID = "upfront_paid"
    FAILED = "failed"
    PAID = "paid"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[ShipmentStatus] = frozenset(
    {
        ShipmentStatus.COMPLETED,
        ShipmentStatus.CANCELLED,
        ShipmentStatus.FAILED,
        ShipmentStatus.EXPIRED,
    }
)

# Events that exit to an absorbing status from any non-terminal status
ABSORBING_EVENTS: dict[ShipmentEvent, ShipmentStatus] = {
    ShipmentEvent.CANCEL: ShipmentStatus.CANCELLED,
    ShipmentEvent.FAIL: ShipmentStatus.FAILED,
}

# State machine: maps current status -> {event: next status}
SHIPMENT_TRANSITIONS: dict[ShipmentStatus, dict[ShipmentEvent, ShipmentStatus]] = {
    ShipmentStatus.DRAFT: {ShipmentEvent.FINALIZE: ShipmentStatus.PENDING},
    ShipmentStatus.PENDING: {
        ShipmentEvent.ASSIGN: ShipmentStatus.ASSIGNED,
        ShipmentEvent.EXPIRE: ShipmentStatus.EXPIRED,
    },
    ShipmentStatus.ASSIGNED: {ShipmentEvent.DRIVER_ACCEPTS: ShipmentStatus.ACCEPTED},
    ShipmentStatus.ACCEPTED: {ShipmentEvent.PICKUP_VERIFIED: ShipmentStatus.PICKED_UP},
    ShipmentStatus.PICKED_UP: {ShipmentEvent.DEPARTED: ShipmentStatus.IN_TRANSIT},
    ShipmentStatus.IN_TRANSIT: {ShipmentEvent.DELIVERED: ShipmentStatus.DELIVERED},
    ShipmentStatus.DELIVERED: {ShipmentEvent.PAYMENT_SETTLED: ShipmentStatus.COMPLETED},
    ShipmentStatus.COMPLETED: {},
    ShipmentStatus.CANCELLED: {},
    ShipmentStatus.FAILED: {},
    ShipmentStatus.EXPIRED: {},
}

# Application state machine: only pending applications can be resolved
APPLICATION_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.CANCELLED,
    },
    ApplicationStatus.ACCEPTED: set(),
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.CANCELLED: set(),
}

ACTIVE_APPLICATION_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {ApplicationStatus.PENDING, ApplicationStatus.ACCEPTED}
)
