"""
Step validation.

``validate(step, data)`` is pure: it looks only at the payload it is given
(and the current year, passed in explicitly) and reports which fields are
missing and which are present but malformed.  Nothing is clamped or
coerced; an out-of-range year is simply invalid.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional

from .enums import BookingStep, Operability, PaymentMethod
from .pricing import MAX_TOTAL_CENTS, to_cents
from .steps import (
    CustomerDetails,
    DeliveryDetails,
    InsuranceDocumentation,
    PaymentDetails,
    PickupDetails,
    StepPayload,
    TermsAuthorization,
    TowingTransport,
    VehicleInformation,
    VisualDocumentation,
    field_conforms,
)

MIN_VEHICLE_YEAR = 1980

REQUIRED_PHOTO_CATEGORIES: tuple[str, ...] = (
    "front_view",
    "rear_view",
    "left_side",
    "right_side",
)

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class StepValidation:
    step: BookingStep
    missing: tuple[str, ...] = ()
    invalid: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.missing and not self.invalid


# ── Field helpers ─────────────────────────────────────────────────────


def is_blank(value: Any) -> bool:
    """None, empty / whitespace-only strings and empty sequences are blank."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return all(is_blank(item) for item in value)
    return False


def normalize_phone(value: str) -> Optional[str]:
    """Return the 10-digit form of a North American number, else ``None``."""
    digits = _NON_DIGITS.sub("", value)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits if len(digits) == 10 else None


def parse_year(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class _Check:
    """Accumulates missing / invalid field names for one step."""

    def __init__(self, payload: StepPayload):
        self.payload = payload
        self.missing: list[str] = []
        self.invalid: list[str] = []

    def require(self, *fields: str) -> "_Check":
        for name in fields:
            if is_blank(getattr(self.payload, name)):
                self.missing.append(name)
            elif not field_conforms(self.payload, name):
                self.invalid.append(name)
        return self

    def check(self, name: str, predicate: Callable[[Any], bool]) -> "_Check":
        value = getattr(self.payload, name)
        if name in self.missing or name in self.invalid or is_blank(value):
            return self
        if not predicate(value):
            self.invalid.append(name)
        return self

    def result(self, step: BookingStep) -> StepValidation:
        return StepValidation(step, tuple(self.missing), tuple(self.invalid))


def _is_phone(value: Any) -> bool:
    return isinstance(value, str) and normalize_phone(value) is not None


def _is_email(value: Any) -> bool:
    return isinstance(value, str) and "@" in value


def _in_enum(enum_cls) -> Callable[[Any], bool]:
    values = {member.value for member in enum_cls}
    return lambda value: value in values


# ── Per-step rules ────────────────────────────────────────────────────


def _customer(data: CustomerDetails, current_year: int) -> _Check:
    return (
        _Check(data)
        .require("full_name", "email", "phone", "address")
        .check("email", _is_email)
        .check("phone", _is_phone)
    )


def _vehicle(data: VehicleInformation, current_year: int) -> _Check:
    def year_in_range(value: Any) -> bool:
        year = parse_year(value)
        return year is not None and MIN_VEHICLE_YEAR <= year <= current_year + 1

    return _Check(data).require("make", "model", "year").check("year", year_in_range)


def _pickup(data: PickupDetails, current_year: int) -> _Check:
    return (
        _Check(data)
        .require("address", "date", "contact_person", "contact_phone")
        .check("contact_phone", _is_phone)
    )


def _delivery(data: DeliveryDetails, current_year: int) -> _Check:
    return (
        _Check(data)
        .require("address", "contact_person", "contact_phone")
        .check("contact_phone", _is_phone)
    )


def _towing(data: TowingTransport, current_year: int) -> _Check:
    return _Check(data).require("operability").check(
        "operability", _in_enum(Operability)
    )


def _insurance(data: InsuranceDocumentation, current_year: int) -> _Check:
    return _Check(data).require("proof_of_ownership", "insurance")


def _visual(data: VisualDocumentation, current_year: int) -> _Check:
    return _Check(data).require(*REQUIRED_PHOTO_CATEGORIES)


def _terms(data: TermsAuthorization, current_year: int) -> _Check:
    check = _Check(data)
    # Acceptance flags must be literally True, not merely truthy
    for flag in ("service_agreement_accepted", "cancellation_policy_accepted"):
        if getattr(data, flag) is not True:
            check.missing.append(flag)
    return check.require("digital_signature")


def is_chargeable_price(value: Any) -> bool:
    """A finite amount worth at least one cent and at most ``MAX_TOTAL_CENTS``."""
    if isinstance(value, bool):
        return False
    try:
        cents = to_cents(value)
    except ValueError:
        return False
    return 0 < cents <= MAX_TOTAL_CENTS


def _payment(data: PaymentDetails, current_year: int) -> _Check:
    return (
        _Check(data)
        .require("payment_method", "quote_price")
        .check("payment_method", _in_enum(PaymentMethod))
        .check("quote_price", is_chargeable_price)
    )


_RULES = {
    BookingStep.CUSTOMER: _customer,
    BookingStep.VEHICLE: _vehicle,
    BookingStep.PICKUP: _pickup,
    BookingStep.DELIVERY: _delivery,
    BookingStep.TOWING: _towing,
    BookingStep.INSURANCE: _insurance,
    BookingStep.VISUAL: _visual,
    BookingStep.TERMS: _terms,
    BookingStep.PAYMENT: _payment,
}


def validate(
    step: BookingStep, data: StepPayload, current_year: Optional[int] = None
) -> StepValidation:
    """Validate one step's payload.  Never raises for bad input."""
    year = current_year if current_year is not None else date.today().year
    return _RULES[step](data, year).result(step)
