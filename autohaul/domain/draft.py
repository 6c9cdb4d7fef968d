"""
Booking draft aggregate.

A ``BookingDraft`` owns everything the customer has typed so far.  All
writes go through :meth:`BookingDraft.update`, which merges the change,
re-validates that one step and flags the draft as edited.  Validity flags
are derived data: they are recomputed on load and on submit, never trusted
from storage.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .enums import STEP_ORDER, BookingStep
from .steps import (
    STEP_PAYLOADS,
    StepPayload,
    empty_payload,
    merge_payload,
    payload_to_dict,
)
from .validation import StepValidation, validate


def _new_key() -> str:
    return uuid.uuid4().hex


@dataclass
class BookingDraft:
    id: str = field(default_factory=_new_key)
    client_id: Optional[str] = None
    current_step: BookingStep = BookingStep.CUSTOMER
    form_data: dict[BookingStep, StepPayload] = field(
        default_factory=lambda: {step: empty_payload(step) for step in STEP_ORDER}
    )
    validity: dict[BookingStep, bool] = field(
        default_factory=lambda: {step: False for step in STEP_ORDER}
    )
    is_draft: bool = False
    submission_key: str = field(default_factory=_new_key)

    steps = STEP_ORDER

    # ── Mutation ──────────────────────────────────────────────────

    def update(
        self,
        step: BookingStep,
        changes: Mapping[str, Any],
        current_year: Optional[int] = None,
    ) -> StepValidation:
        """Merge *changes* into *step*, re-validate it and return the result."""
        step = BookingStep(step)
        self.form_data[step] = merge_payload(self.form_data[step], changes)
        self.is_draft = True
        return self._revalidate(step, current_year)

    def set_step(self, step: BookingStep) -> None:
        self.current_step = BookingStep(step)

    def reset(self) -> None:
        """Back to the empty document; a fresh submission key is issued."""
        fresh = BookingDraft(id=self.id, client_id=self.client_id)
        self.current_step = fresh.current_step
        self.form_data = fresh.form_data
        self.validity = fresh.validity
        self.is_draft = False
        self.submission_key = fresh.submission_key

    # ── Queries ───────────────────────────────────────────────────

    @property
    def step_index(self) -> int:
        return STEP_ORDER.index(self.current_step)

    @property
    def is_last_step(self) -> bool:
        return self.step_index == len(STEP_ORDER) - 1

    def can_advance(self) -> bool:
        return self.validity[self.current_step] and not self.is_last_step

    def progress(self) -> float:
        return (self.step_index + 1) / len(STEP_ORDER) * 100

    def revalidate_all(self, current_year: Optional[int] = None) -> list[StepValidation]:
        """Recompute every flag; return failing validations in step order."""
        results = [self._revalidate(step, current_year) for step in STEP_ORDER]
        return [r for r in results if not r.valid]

    def _revalidate(
        self, step: BookingStep, current_year: Optional[int] = None
    ) -> StepValidation:
        result = validate(step, self.form_data[step], current_year)
        self.validity[step] = result.valid
        return result

    # ── Serialisation ─────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "current_step": self.current_step.value,
            "is_draft": self.is_draft,
            "submission_key": self.submission_key,
            "form_data": {
                step.value: payload_to_dict(payload)
                for step, payload in self.form_data.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BookingDraft":
        draft = cls(
            id=data["id"],
            client_id=data.get("client_id"),
            current_step=BookingStep(data.get("current_step", BookingStep.CUSTOMER)),
            is_draft=bool(data.get("is_draft", False)),
            submission_key=data.get("submission_key") or _new_key(),
        )
        for step_name, values in (data.get("form_data") or {}).items():
            step = BookingStep(step_name)
            draft.form_data[step] = merge_payload(STEP_PAYLOADS[step](), values)
        draft.revalidate_all()
        return draft
