"""
Collaborator interfaces consumed by the booking workflow.

The domain only needs two things from the outside world at submit time:
somewhere to create the shipment record, and someone to take the upfront
payment.  Both are abstract here so the workflow stays storage- and
provider-agnostic; ``autohaul.infrastructure`` supplies the real ones.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from .entities import Shipment, ShipmentRequest


class ChargeStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    DECLINED = "declined"
    PROCESSING = "processing"


@dataclass(frozen=True)
class PaymentOutcome:
    status: ChargeStatus
    reference: Optional[str] = None
    reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    @abstractmethod
    async def charge(
        self, amount_cents: int, idempotency_key: str, metadata: dict
    ) -> PaymentOutcome:
        """Authorize and capture *amount_cents*.

        Raises ``ExternalDependencyError`` when the provider cannot be
        reached or answers with a server error.  A retry with the same
        *idempotency_key* must never charge twice.
        """


class ShipmentStore(ABC):
    @abstractmethod
    async def create_or_get(self, request: ShipmentRequest) -> Shipment:
        """Return the shipment for ``request.idempotency_key``, creating it
        in ``draft`` status if it does not exist yet."""

    @abstractmethod
    async def confirm_upfront_payment(self, shipment_id: str, reference: str) -> Shipment:
        """Record the upfront charge and finalize ``draft -> pending``."""

    @abstractmethod
    async def mark_payment_failed(self, shipment_id: str, reason: str) -> None:
        """Leave the shipment in ``draft`` with an unpaid marker."""
