"""
Booking workflow
================

A linear nine-step wizard over one ``BookingDraft``::

    customer -> vehicle -> pickup -> delivery -> towing
             -> insurance -> visual -> terms -> payment

* ``next()``     -- only when the current step is valid (no skipping).
* ``previous()`` -- always, except from the first step.
* ``submit()``   -- only from ``payment``; re-validates *every* step because
  earlier steps may have been revisited and invalidated.

Submission protocol (create-before-charge)
------------------------------------------
1. Re-validate all steps; report every failing step, not just the first.
2. Build the shipment request and the upfront / remainder split.
3. ``store.create_or_get`` keyed by the draft's submission key, so retries
   reuse one shipment record.
4. Charge the upfront amount with the shipment id as idempotency key.
5. Confirm: ``draft -> pending`` and clear the draft.

A charge that was accepted but not confirmed is reported as
``PaymentPending``, never as success.  The workflow never retries payment
on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from .draft import BookingDraft
from .entities import Address, Route, ShipmentRequest
from .enums import STEP_ORDER, BookingStep, PaymentStatus, ShipmentStatus
from .errors import ExternalDependencyError, IllegalTransitionError, StateConflictError
from .ports import ChargeStatus, PaymentGateway, ShipmentStore
from .pricing import PercentageSplit, PriceSplit, SplitPolicy, to_cents
from .steps import StepPayload
from .validation import StepValidation

logger = logging.getLogger(__name__)


# ── Submission results ────────────────────────────────────────────────


@dataclass(frozen=True)
class SubmissionSucceeded:
    shipment_id: str
    split: PriceSplit
    payment_reference: Optional[str]
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class SubmissionInvalid:
    failures: tuple[StepValidation, ...]
    ok: bool = field(default=False, init=False)

    @property
    def steps(self) -> list[BookingStep]:
        return [f.step for f in self.failures]

    @property
    def earliest_step(self) -> BookingStep:
        return self.failures[0].step


@dataclass(frozen=True)
class PaymentFailed:
    reason: str
    shipment_id: Optional[str] = None
    retryable: bool = True
    ok: bool = field(default=False, init=False)


@dataclass(frozen=True)
class PaymentPending:
    shipment_id: str
    payment_reference: Optional[str] = None
    ok: bool = field(default=False, init=False)


SubmissionResult = Union[SubmissionSucceeded, SubmissionInvalid, PaymentFailed, PaymentPending]


# ── Draft -> request conversion ───────────────────────────────────────


def _lines(*pairs: tuple[str, Any]) -> str:
    return "\n".join(f"{label}: {value}" for label, value in pairs if value)


def build_shipment_request(
    draft: BookingDraft, client_id: str, total_cents: int
) -> ShipmentRequest:
    """Turn a fully valid draft into the total shipment-creation record."""
    data = draft.form_data
    vehicle = data[BookingStep.VEHICLE]
    pickup = data[BookingStep.PICKUP]
    delivery = data[BookingStep.DELIVERY]
    towing = data[BookingStep.TOWING]
    payment = data[BookingStep.PAYMENT]

    vehicle_name = " ".join(
        str(part).strip() for part in (vehicle.year, vehicle.make, vehicle.model) if part
    )
    description = _lines(
        ("Vehicle", vehicle_name),
        ("VIN", vehicle.vin),
        ("License", vehicle.license_plate),
        ("Condition", vehicle.condition_notes),
        ("Operability", towing.operability),
        ("Equipment", ", ".join(towing.equipment_needs)),
        ("Requirements", towing.special_requirements),
    )
    return ShipmentRequest(
        client_id=client_id,
        idempotency_key=draft.submission_key,
        title=vehicle_name or "Vehicle Transport",
        description=description,
        route=Route(
            pickup=Address(pickup.address.strip(), pickup.latitude, pickup.longitude),
            delivery=Address(
                delivery.address.strip(), delivery.latitude, delivery.longitude
            ),
        ),
        pickup_notes=_lines(
            ("Pickup Date", pickup.date),
            ("Pickup Time", pickup.time),
            ("Contact", pickup.contact_person),
            ("Phone", pickup.contact_phone),
        ),
        delivery_notes=_lines(
            ("Delivery Date", delivery.date),
            ("Delivery Time", delivery.time),
            ("Contact", delivery.contact_person),
            ("Phone", delivery.contact_phone),
            ("Instructions", delivery.special_instructions),
        ),
        estimated_price_cents=total_cents,
        payment_method=payment.payment_method,
        is_fragile="fragile" in towing.equipment_needs,
    )


# ── Workflow ──────────────────────────────────────────────────────────


class BookingWorkflow:
    """Single-writer controller over one booking draft."""

    def __init__(
        self,
        draft: Optional[BookingDraft] = None,
        split_policy: Optional[SplitPolicy] = None,
    ):
        self.draft = draft or BookingDraft()
        self.split_policy = split_policy or PercentageSplit()

    # ── Step access ───────────────────────────────────────────────

    def get_current_step(self) -> BookingStep:
        return self.draft.current_step

    def get_step_data(self, step: BookingStep) -> StepPayload:
        return self.draft.form_data[BookingStep(step)]

    def is_step_valid(self, step: BookingStep) -> bool:
        return self.draft.validity[BookingStep(step)]

    def update_step(self, step: BookingStep, data: Mapping[str, Any]) -> StepValidation:
        return self.draft.update(step, data)

    # ── Navigation ────────────────────────────────────────────────

    def next(self) -> bool:
        if not self.draft.can_advance():
            return False
        self.draft.set_step(STEP_ORDER[self.draft.step_index + 1])
        return True

    def previous(self) -> bool:
        if self.draft.step_index == 0:
            return False
        self.draft.set_step(STEP_ORDER[self.draft.step_index - 1])
        return True

    def go_to(self, step: BookingStep) -> bool:
        """Jump back to an earlier (or the current) step; never forward."""
        step = BookingStep(step)
        if STEP_ORDER.index(step) > self.draft.step_index:
            return False
        self.draft.set_step(step)
        return True

    def progress(self) -> float:
        return self.draft.progress()

    def cancel(self) -> None:
        """Abandon the booking.  Nothing external has happened yet."""
        self.draft.reset()

    # ── Submission ────────────────────────────────────────────────

    async def submit(
        self, client_id: str, store: ShipmentStore, payments: PaymentGateway
    ) -> SubmissionResult:
        if not self.draft.is_last_step:
            raise IllegalTransitionError(
                f"Cannot submit from step {self.draft.current_step.value}"
            )

        failures = self.draft.revalidate_all()
        if failures:
            logger.info(
                "Booking %s rejected: invalid steps %s",
                self.draft.id,
                [f.step.value for f in failures],
            )
            return SubmissionInvalid(tuple(failures))

        total_cents = to_cents(self.draft.form_data[BookingStep.PAYMENT].quote_price)
        split = self.split_policy.split(total_cents)
        request = build_shipment_request(self.draft, client_id, total_cents)

        # Storage errors here propagate: nothing has been charged yet
        shipment = await store.create_or_get(request)

        if shipment.payment_status in (PaymentStatus.UPFRONT_PAID, PaymentStatus.PAID):
            logger.info("Booking %s already paid as shipment %s", self.draft.id, shipment.id)
            self.draft.reset()
            return SubmissionSucceeded(shipment.id, split, shipment.payment_reference)
        if shipment.status is not ShipmentStatus.DRAFT:
            raise StateConflictError(
                f"Shipment {shipment.id} is {shipment.status.value}; "
                "the booking can no longer be paid",
                code="SUBMISSION_CLOSED",
            )

        try:
            outcome = await payments.charge(
                split.upfront_cents,
                idempotency_key=shipment.id,
                metadata={
                    "shipment_id": shipment.id,
                    "client_id": client_id,
                    "total_cents": split.total_cents,
                    "remainder_cents": split.remainder_cents,
                },
            )
        except ExternalDependencyError as exc:
            logger.warning("Upfront charge for shipment %s failed: %s", shipment.id, exc)
            return PaymentFailed(str(exc), shipment.id, retryable=True)

        if outcome.status is ChargeStatus.DECLINED:
            reason = outcome.reason or "Payment declined"
            logger.warning("Upfront charge for shipment %s declined: %s", shipment.id, reason)
            await store.mark_payment_failed(shipment.id, reason)
            return PaymentFailed(reason, shipment.id, retryable=True)

        if outcome.status is ChargeStatus.PROCESSING:
            return PaymentPending(shipment.id, outcome.reference)

        try:
            await store.confirm_upfront_payment(shipment.id, outcome.reference)
        except (ExternalDependencyError, StateConflictError):
            logger.exception(
                "Charge %s succeeded but shipment %s was not confirmed",
                outcome.reference,
                shipment.id,
            )
            return PaymentPending(shipment.id, outcome.reference)

        logger.info(
            "Booking %s submitted as shipment %s (upfront %d of %d cents)",
            self.draft.id,
            shipment.id,
            split.upfront_cents,
            split.total_cents,
        )
        self.draft.reset()
        return SubmissionSucceeded(shipment.id, split, outcome.reference)
