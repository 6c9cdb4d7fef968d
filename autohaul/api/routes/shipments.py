"""
Shipment endpoints
==================

GET  /api/v1/shipments                -- the calling client's shipments
GET  /api/v1/shipments/available      -- open jobs (pending, no driver)
GET  /api/v1/shipments/{id}           -- shipment detail with price split
GET  /api/v1/shipments/{id}/events    -- lifecycle audit trail
POST /api/v1/shipments/{id}/events    -- fire a lifecycle event
POST /api/v1/shipments/{id}/apply     -- driver applies for the job
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from autohaul.api.dependencies import Identity, get_db, get_identity, get_split_policy, require_role
from autohaul.api.middleware import limiter
from autohaul.api.schemas import (
    ApplicationResponse,
    ApplyRequest,
    ShipmentEventRequest,
    ShipmentEventResponse,
    ShipmentResponse,
)
from autohaul.config import settings
from autohaul.domain.entities import Shipment
from autohaul.domain.enums import UserRole
from autohaul.domain.errors import AuthorizationError
from autohaul.domain.pricing import SplitPolicy
from autohaul.services.arbiter import ApplicationArbiter
from autohaul.services.shipments import ShipmentService

router = APIRouter(prefix="/shipments", tags=["shipments"])


def _ensure_visible(shipment: Shipment, identity: Identity) -> None:
    if identity.role is UserRole.ADMIN:
        return
    if identity.role is UserRole.CLIENT and shipment.client_id == identity.user_id:
        return
    if identity.role is UserRole.DRIVER and (
        shipment.is_open_for_applications or shipment.driver_id == identity.user_id
    ):
        return
    raise AuthorizationError("Shipment is not visible to this user")


@router.get("", response_model=list[ShipmentResponse], summary="List my shipments")
@limiter.limit(settings.rate_limit)
async def list_my_shipments(
    request: Request,
    identity: Identity = Depends(require_role(UserRole.CLIENT)),
    db: AsyncSession = Depends(get_db),
    policy: SplitPolicy = Depends(get_split_policy),
):
    shipments = await ShipmentService(db).list_for_client(identity.user_id)
    return [ShipmentResponse.from_entity(s, policy) for s in shipments]


@router.get(
    "/available",
    response_model=list[ShipmentResponse],
    summary="List jobs open for applications",
    description="Advisory listing; a job may be assigned moments after it is shown.",
)
@limiter.limit(settings.rate_limit)
async def list_available(
    request: Request,
    identity: Identity = Depends(require_role(UserRole.DRIVER, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    policy: SplitPolicy = Depends(get_split_policy),
):
    shipments = await ApplicationArbiter(db).list_available_shipments()
    return [ShipmentResponse.from_entity(s, policy) for s in shipments]


@router.get("/{shipment_id}", response_model=ShipmentResponse, summary="Get a shipment")
@limiter.limit(settings.rate_limit)
async def get_shipment(
    request: Request,
    shipment_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    policy: SplitPolicy = Depends(get_split_policy),
):
    shipment = await ShipmentService(db).get(shipment_id)
    _ensure_visible(shipment, identity)
    return ShipmentResponse.from_entity(shipment, policy)


@router.get(
    "/{shipment_id}/events",
    response_model=list[ShipmentEventResponse],
    summary="Lifecycle audit trail",
)
@limiter.limit(settings.rate_limit)
async def get_shipment_events(
    request: Request,
    shipment_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    service = ShipmentService(db)
    _ensure_visible(await service.get(shipment_id), identity)
    return await service.history(shipment_id)


@router.post(
    "/{shipment_id}/events",
    response_model=ShipmentResponse,
    summary="Fire a lifecycle event",
    description=(
        "Drivers move their own assigned shipments forward; clients may cancel "
        "their own shipments; admins may fire any event except assign."
    ),
)
@limiter.limit(settings.rate_limit)
async def fire_event(
    request: Request,
    shipment_id: str,
    body: ShipmentEventRequest,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    policy: SplitPolicy = Depends(get_split_policy),
):
    shipment = await ShipmentService(db).fire(
        shipment_id, body.event, identity.user_id, identity.role
    )
    return ShipmentResponse.from_entity(shipment, policy)


@router.post(
    "/{shipment_id}/apply",
    response_model=ApplicationResponse,
    status_code=201,
    summary="Apply for a job",
    responses={
        200: {"description": "Already applied; the existing application is returned."},
        409: {"description": "The job is no longer available."},
    },
)
@limiter.limit(settings.rate_limit)
async def apply_for_shipment(
    request: Request,
    shipment_id: str,
    body: ApplyRequest = ApplyRequest(),
    identity: Identity = Depends(require_role(UserRole.DRIVER)),
    db: AsyncSession = Depends(get_db),
):
    result = await ApplicationArbiter(db).apply(shipment_id, identity.user_id, body.notes)
    if result.conflict is not None:
        raise result.conflict
    response = ApplicationResponse.from_entity(result.application)
    if not result.created:
        return JSONResponse(status_code=200, content=response.model_dump(mode="json"))
    return response
