"""
Per-step booking payloads.

Each wizard step carries its own partial record: every field is optional
while the customer is still typing.  ``STEP_PAYLOADS`` ties each
``BookingStep`` to exactly one payload type, so a step can never hold
another step's data.

Document and photo fields hold references returned by the storage
collaborator, never raw bytes.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union, get_args, get_origin, get_type_hints

from .enums import BookingStep


@dataclass(frozen=True)
class CustomerDetails:
    full_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class VehicleInformation:
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[Union[int, str]] = None
    vin: Optional[str] = None
    license_plate: Optional[str] = None
    condition_notes: Optional[str] = None


@dataclass(frozen=True)
class PickupDetails:
    address: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class DeliveryDetails:
    address: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    special_instructions: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class TowingTransport:
    operability: Optional[str] = None
    equipment_needs: tuple[str, ...] = ()
    special_requirements: Optional[str] = None


@dataclass(frozen=True)
class InsuranceDocumentation:
    proof_of_ownership: tuple[str, ...] = ()
    insurance: tuple[str, ...] = ()
    other_documents: tuple[str, ...] = ()


@dataclass(frozen=True)
class VisualDocumentation:
    front_view: tuple[str, ...] = ()
    rear_view: tuple[str, ...] = ()
    left_side: tuple[str, ...] = ()
    right_side: tuple[str, ...] = ()
    interior: tuple[str, ...] = ()
    damage_photos: tuple[str, ...] = ()


@dataclass(frozen=True)
class TermsAuthorization:
    service_agreement_accepted: bool = False
    cancellation_policy_accepted: bool = False
    digital_signature: Optional[str] = None
    signature_date: Optional[str] = None


@dataclass(frozen=True)
class PaymentDetails:
    payment_method: Optional[str] = None
    quote_id: Optional[str] = None
    quote_price: Optional[Union[float, str]] = None
    cardholder_name: Optional[str] = None


StepPayload = Union[
    CustomerDetails,
    VehicleInformation,
    PickupDetails,
    DeliveryDetails,
    TowingTransport,
    InsuranceDocumentation,
    VisualDocumentation,
    TermsAuthorization,
    PaymentDetails,
]

STEP_PAYLOADS: dict[BookingStep, type] = {
    BookingStep.CUSTOMER: CustomerDetails,
    BookingStep.VEHICLE: VehicleInformation,
    BookingStep.PICKUP: PickupDetails,
    BookingStep.DELIVERY: DeliveryDetails,
    BookingStep.TOWING: TowingTransport,
    BookingStep.INSURANCE: InsuranceDocumentation,
    BookingStep.VISUAL: VisualDocumentation,
    BookingStep.TERMS: TermsAuthorization,
    BookingStep.PAYMENT: PaymentDetails,
}


FIELD_TYPES: dict[type, dict[str, Any]] = {
    payload_type: get_type_hints(payload_type) for payload_type in STEP_PAYLOADS.values()
}


def empty_payload(step: BookingStep) -> StepPayload:
    return STEP_PAYLOADS[step]()


def _conforms(value: Any, hint: Any) -> bool:
    if hint is type(None):
        return value is None
    origin = get_origin(hint)
    if origin is Union:
        return any(_conforms(value, arg) for arg in get_args(hint))
    if origin is tuple:
        item = get_args(hint)[0]
        return isinstance(value, tuple) and all(_conforms(v, item) for v in value)
    # bool is an int subclass; only real numbers count as numbers
    if hint is bool:
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if hint is float:
        return isinstance(value, (int, float))
    return isinstance(value, hint)


def _normalise(value: Any, hint: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    if get_origin(hint) is tuple and isinstance(value, str):
        return (value,) if value.strip() else ()
    return value


def field_conforms(payload: StepPayload, name: str) -> bool:
    """True when the stored value matches the field's declared type."""
    return _conforms(getattr(payload, name), FIELD_TYPES[type(payload)][name])


def merge_payload(current: StepPayload, changes: Mapping[str, Any]) -> StepPayload:
    """Shallow merge: keys in *changes* overwrite, everything else persists.

    A bare string sent for a list field becomes a one-item tuple.  Raises
    ``ValueError`` for field names the step does not define and for values
    of the wrong type.
    """
    name = type(current).__name__
    hints = FIELD_TYPES[type(current)]
    unknown = sorted(set(changes) - set(hints))
    if unknown:
        raise ValueError(f"Unknown fields for {name}: {', '.join(unknown)}")

    normalised = {key: _normalise(value, hints[key]) for key, value in changes.items()}
    wrong = sorted(key for key, value in normalised.items() if not _conforms(value, hints[key]))
    if wrong:
        raise ValueError(f"Wrong value types for {name}: {', '.join(wrong)}")
    return dataclasses.replace(current, **normalised)


def payload_to_dict(payload: StepPayload) -> dict[str, Any]:
    return {
        key: list(value) if isinstance(value, tuple) else value
        for key, value in dataclasses.asdict(payload).items()
    }
