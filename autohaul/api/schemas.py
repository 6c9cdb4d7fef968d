"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from autohaul.domain.draft import BookingDraft
from autohaul.domain.entities import JobApplication, Shipment
from autohaul.domain.enums import (
    ApplicationStatus,
    BookingStep,
    PaymentStatus,
    ShipmentEvent,
    ShipmentStatus,
)
from autohaul.domain.pricing import SplitPolicy
from autohaul.domain.steps import payload_to_dict
from autohaul.domain.validation import StepValidation


# ── Requests ──────────────────────────────────────────────────────────


class ShipmentEventRequest(BaseModel):
    event: ShipmentEvent


class ApplyRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class AssignRequest(BaseModel):
    driver_id: str = Field(..., min_length=1, max_length=36)


# ── Booking responses ─────────────────────────────────────────────────


class StepValidationResponse(BaseModel):
    step: BookingStep
    valid: bool
    missing: list[str] = []
    invalid: list[str] = []

    @classmethod
    def from_validation(cls, result: StepValidation) -> "StepValidationResponse":
        return cls(
            step=result.step,
            valid=result.valid,
            missing=list(result.missing),
            invalid=list(result.invalid),
        )


class StepDataResponse(BaseModel):
    step: BookingStep
    data: dict[str, Any]
    valid: bool


class BookingResponse(BaseModel):
    id: str
    current_step: BookingStep
    is_draft: bool
    progress: float
    can_advance: bool
    validity: dict[str, bool]
    form_data: dict[str, dict[str, Any]]

    @classmethod
    def from_draft(cls, draft: BookingDraft) -> "BookingResponse":
        return cls(
            id=draft.id,
            current_step=draft.current_step,
            is_draft=draft.is_draft,
            progress=draft.progress(),
            can_advance=draft.can_advance(),
            validity={step.value: ok for step, ok in draft.validity.items()},
            form_data={
                step.value: payload_to_dict(payload)
                for step, payload in draft.form_data.items()
            },
        )


class NavigationResponse(BaseModel):
    moved: bool
    current_step: BookingStep
    progress: float


class SubmissionResponse(BaseModel):
    status: str
    shipment_id: Optional[str] = None
    total_cents: Optional[int] = None
    upfront_cents: Optional[int] = None
    remainder_cents: Optional[int] = None
    payment_reference: Optional[str] = None
    reason: Optional[str] = None
    retryable: Optional[bool] = None
    earliest_step: Optional[BookingStep] = None
    failures: list[StepValidationResponse] = []


# ── Shipment / application responses ──────────────────────────────────


class ShipmentResponse(BaseModel):
    id: str
    client_id: str
    driver_id: Optional[str] = None
    status: ShipmentStatus
    title: str
    pickup_address: Optional[str] = None
    delivery_address: Optional[str] = None
    estimated_price_cents: int
    upfront_cents: int
    remainder_cents: int
    payment_status: PaymentStatus
    version: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, shipment: Shipment, policy: SplitPolicy) -> "ShipmentResponse":
        split = shipment.price_split(policy)
        route = shipment.route
        return cls(
            id=shipment.id,
            client_id=shipment.client_id,
            driver_id=shipment.driver_id,
            status=shipment.status,
            title=shipment.title,
            pickup_address=route.pickup.address if route else None,
            delivery_address=route.delivery.address if route else None,
            estimated_price_cents=shipment.estimated_price_cents,
            upfront_cents=split.upfront_cents,
            remainder_cents=split.remainder_cents,
            payment_status=shipment.payment_status,
            version=shipment.version,
            created_at=shipment.created_at,
        )


class ShipmentEventResponse(BaseModel):
    event: ShipmentEvent
    from_status: Optional[ShipmentStatus] = None
    to_status: ShipmentStatus
    actor_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ApplicationResponse(BaseModel):
    id: str
    shipment_id: str
    driver_id: str
    status: ApplicationStatus
    applied_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(cls, application: JobApplication) -> "ApplicationResponse":
        return cls.model_validate(application)


class AssignmentResponse(BaseModel):
    shipment: ShipmentResponse
    application: ApplicationResponse
    rejected_applications: int


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None
