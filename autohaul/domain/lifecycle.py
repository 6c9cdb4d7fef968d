"""
Shipment lifecycle rules.

    draft -> pending -> assigned -> accepted -> picked_up -> in_transit
          -> delivered -> completed

``cancel`` and ``fail`` exit to an absorbing status from any non-terminal
status; ``expire`` is only legal from ``pending`` and is triggered by an
external scheduler.  Anything else raises ``IllegalTransitionError``.
"""

from __future__ import annotations

from .enums import (
    ABSORBING_EVENTS,
    SHIPMENT_TRANSITIONS,
    TERMINAL_STATUSES,
    ShipmentEvent,
    ShipmentStatus,
)
from .errors import IllegalTransitionError


class ShipmentLifecycle:
    @staticmethod
    def is_terminal(status: ShipmentStatus) -> bool:
        return ShipmentStatus(status) in TERMINAL_STATUSES

    @classmethod
    def allowed_events(cls, status: ShipmentStatus) -> set[ShipmentEvent]:
        status = ShipmentStatus(status)
        events = set(SHIPMENT_TRANSITIONS.get(status, {}))
        if not cls.is_terminal(status):
            events.update(ABSORBING_EVENTS)
        return events

    @classmethod
    def next_status(
        cls, status: ShipmentStatus, event: ShipmentEvent
    ) -> ShipmentStatus:
        """Return the status *event* leads to from *status*, else raise."""
        status, event = ShipmentStatus(status), ShipmentEvent(event)
        if event in ABSORBING_EVENTS and not cls.is_terminal(status):
            return ABSORBING_EVENTS[event]
        target = SHIPMENT_TRANSITIONS.get(status, {}).get(event)
        if target is None:
            raise IllegalTransitionError(
                f"Event {event.value} is not allowed in status {status.value}"
            )
        return target

    @classmethod
    def can_fire(cls, status: ShipmentStatus, event: ShipmentEvent) -> bool:
        return ShipmentEvent(event) in cls.allowed_events(status)
