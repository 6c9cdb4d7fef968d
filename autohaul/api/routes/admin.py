"""
Admin / observability endpoints
===============================

POST /api/v1/admin/shipments/{id}/assign        -- assign a driver (one winner)
GET  /api/v1/admin/shipments/{id}/applications  -- every application for a job
GET  /api/v1/admin/health                       -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autohaul.api.dependencies import Identity, get_db, get_split_policy, require_role
from autohaul.api.middleware import limiter
from autohaul.api.schemas import (
    ApplicationResponse,
    AssignmentResponse,
    AssignRequest,
    HealthResponse,
    ShipmentResponse,
)
from autohaul.config import settings
from autohaul.domain.enums import UserRole
from autohaul.domain.pricing import SplitPolicy
from autohaul.services.arbiter import ApplicationArbiter

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_role(UserRole.ADMIN)


@router.post(
    "/shipments/{shipment_id}/assign",
    response_model=AssignmentResponse,
    summary="Assign a shipment to a driver",
    description=(
        "Atomic: exactly one concurrent assign wins.  The driver's application "
        "is accepted and every other pending application is rejected."
    ),
    responses={409: {"description": "Shipment already assigned or not pending."}},
)
@limiter.limit(settings.rate_limit)
async def assign_shipment(
    request: Request,
    shipment_id: str,
    body: AssignRequest,
    identity: Identity = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    policy: SplitPolicy = Depends(get_split_policy),
):
    result = await ApplicationArbiter(db).assign(
        shipment_id, body.driver_id, actor_id=identity.user_id
    )
    if result.conflict is not None:
        raise result.conflict
    return AssignmentResponse(
        shipment=ShipmentResponse.from_entity(result.shipment, policy),
        application=ApplicationResponse.from_entity(result.application),
        rejected_applications=result.rejected,
    )


@router.get(
    "/shipments/{shipment_id}/applications",
    response_model=list[ApplicationResponse],
    summary="List applications for a shipment",
)
@limiter.limit(settings.rate_limit)
async def list_shipment_applications(
    request: Request,
    shipment_id: str,
    identity: Identity = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    applications = await ApplicationArbiter(db).list_applications_for_shipment(shipment_id)
    return [ApplicationResponse.from_entity(a) for a in applications]


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
