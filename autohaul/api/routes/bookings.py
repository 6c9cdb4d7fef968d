"""
Booking endpoints
=================

POST   /api/v1/bookings                      -- start a booking draft
GET    /api/v1/bookings/{id}                 -- draft with validity and progress
GET    /api/v1/bookings/{id}/steps/{step}    -- one step's data
PATCH  /api/v1/bookings/{id}/steps/{step}    -- merge fields into a step
POST   /api/v1/bookings/{id}/next            -- advance (only if step valid)
POST   /api/v1/bookings/{id}/previous        -- go back one step
POST   /api/v1/bookings/{id}/submit          -- create shipment, charge upfront
DELETE /api/v1/bookings/{id}                 -- abandon the draft

Drafts live in Redis so a customer can resume on another device.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from autohaul.api.dependencies import (
    Identity,
    get_draft_store,
    get_payment_gateway,
    get_shipment_store,
    get_split_policy,
    require_role,
)
from autohaul.api.middleware import limiter
from autohaul.api.schemas import (
    BookingResponse,
    NavigationResponse,
    StepDataResponse,
    StepValidationResponse,
    SubmissionResponse,
)
from autohaul.config import settings
from autohaul.domain.draft import BookingDraft
from autohaul.domain.enums import BookingStep, UserRole
from autohaul.domain.errors import AuthorizationError, NotFoundError
from autohaul.domain.ports import PaymentGateway, ShipmentStore
from autohaul.domain.pricing import SplitPolicy
from autohaul.domain.steps import payload_to_dict
from autohaul.domain.workflow import (
    BookingWorkflow,
    PaymentFailed,
    PaymentPending,
    SubmissionInvalid,
    SubmissionSucceeded,
)
from autohaul.infrastructure.draft_store import DraftStore

router = APIRouter(prefix="/bookings", tags=["bookings"])

client_only = require_role(UserRole.CLIENT)


async def _load_draft(draft_id: str, identity: Identity, store: DraftStore) -> BookingDraft:
    draft = await store.load(draft_id)
    if draft is None:
        raise NotFoundError(f"Booking {draft_id} not found or expired")
    if draft.client_id != identity.user_id:
        raise AuthorizationError("Booking belongs to another client")
    return draft


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Start a booking draft",
)
@limiter.limit(settings.rate_limit)
async def start_booking(
    request: Request,
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
):
    draft = BookingDraft(client_id=identity.user_id)
    await store.save(draft)
    return BookingResponse.from_draft(draft)


@router.get("/{draft_id}", response_model=BookingResponse, summary="Get a booking draft")
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    draft_id: str,
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
):
    return BookingResponse.from_draft(await _load_draft(draft_id, identity, store))


@router.get(
    "/{draft_id}/steps/{step}",
    response_model=StepDataResponse,
    summary="Get one step's data and validity",
)
@limiter.limit(settings.rate_limit)
async def get_step(
    request: Request,
    draft_id: str,
    step: BookingStep,
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
):
    workflow = BookingWorkflow(await _load_draft(draft_id, identity, store))
    return StepDataResponse(
        step=step,
        data=payload_to_dict(workflow.get_step_data(step)),
        valid=workflow.is_step_valid(step),
    )


@router.patch(
    "/{draft_id}/steps/{step}",
    response_model=StepValidationResponse,
    summary="Merge fields into a step",
    description=(
        "Shallow merge: fields sent overwrite, fields omitted are kept. "
        "Only this step is re-validated."
    ),
)
@limiter.limit(settings.rate_limit)
async def update_step(
    request: Request,
    draft_id: str,
    step: BookingStep,
    changes: dict[str, Any] = Body(...),
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
):
    workflow = BookingWorkflow(await _load_draft(draft_id, identity, store))
    try:
        result = workflow.update_step(step, changes)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    await store.save(workflow.draft)
    return StepValidationResponse.from_validation(result)


async def _navigate(draft_id: str, identity: Identity, store: DraftStore, forward: bool):
    workflow = BookingWorkflow(await _load_draft(draft_id, identity, store))
    moved = workflow.next() if forward else workflow.previous()
    if moved:
        await store.save(workflow.draft)
    return NavigationResponse(
        moved=moved,
        current_step=workflow.get_current_step(),
        progress=workflow.progress(),
    )


@router.post("/{draft_id}/next", response_model=NavigationResponse, summary="Next step")
@limiter.limit(settings.rate_limit)
async def next_step(
    request: Request,
    draft_id: str,
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
):
    return await _navigate(draft_id, identity, store, forward=True)


@router.post(
    "/{draft_id}/previous", response_model=NavigationResponse, summary="Previous step"
)
@limiter.limit(settings.rate_limit)
async def previous_step(
    request: Request,
    draft_id: str,
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
):
    return await _navigate(draft_id, identity, store, forward=False)


@router.post(
    "/{draft_id}/submit",
    response_model=SubmissionResponse,
    summary="Submit the booking",
    responses={
        201: {"description": "Shipment created and upfront amount charged."},
        202: {"description": "Charge accepted but not yet confirmed."},
        402: {"description": "Payment declined; the draft is kept."},
        422: {"description": "One or more steps are invalid."},
    },
)
@limiter.limit(settings.rate_limit)
async def submit_booking(
    request: Request,
    draft_id: str,
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
    shipments: ShipmentStore = Depends(get_shipment_store),
    payments: PaymentGateway = Depends(get_payment_gateway),
    policy: SplitPolicy = Depends(get_split_policy),
):
    workflow = BookingWorkflow(await _load_draft(draft_id, identity, store), policy)
    result = await workflow.submit(identity.user_id, shipments, payments)
    # Success resets the draft; every other outcome keeps what was typed
    await store.save(workflow.draft)

    if isinstance(result, SubmissionSucceeded):
        body = SubmissionResponse(
            status="succeeded",
            shipment_id=result.shipment_id,
            total_cents=result.split.total_cents,
            upfront_cents=result.split.upfront_cents,
            remainder_cents=result.split.remainder_cents,
            payment_reference=result.payment_reference,
        )
        status_code = 201
    elif isinstance(result, SubmissionInvalid):
        body = SubmissionResponse(
            status="invalid",
            earliest_step=result.earliest_step,
            failures=[StepValidationResponse.from_validation(f) for f in result.failures],
        )
        status_code = 422
    elif isinstance(result, PaymentFailed):
        body = SubmissionResponse(
            status="payment_failed",
            shipment_id=result.shipment_id,
            reason=result.reason,
            retryable=result.retryable,
        )
        status_code = 402
    elif isinstance(result, PaymentPending):
        body = SubmissionResponse(
            status="payment_pending",
            shipment_id=result.shipment_id,
            payment_reference=result.payment_reference,
        )
        status_code = 202
    else:
        raise TypeError(f"Unexpected submission result {result!r}")

    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.delete("/{draft_id}", status_code=204, summary="Abandon a booking draft")
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    draft_id: str,
    identity: Identity = Depends(client_only),
    store: DraftStore = Depends(get_draft_store),
):
    workflow = BookingWorkflow(await _load_draft(draft_id, identity, store))
    workflow.cancel()
    await store.delete(draft_id)
    return Response(status_code=204)
