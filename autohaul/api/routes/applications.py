"""
Driver application endpoints
============================

GET   /api/v1/applications/mine          -- the calling driver's applications
PATCH /api/v1/applications/{id}/cancel   -- withdraw a pending application
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autohaul.api.dependencies import Identity, get_db, require_role
from autohaul.api.middleware import limiter
from autohaul.api.schemas import ApplicationResponse
from autohaul.config import settings
from autohaul.domain.enums import ApplicationStatus, UserRole
from autohaul.services.arbiter import ApplicationArbiter

router = APIRouter(prefix="/applications", tags=["applications"])

driver_only = require_role(UserRole.DRIVER)


@router.get(
    "/mine",
    response_model=list[ApplicationResponse],
    summary="List my applications",
)
@limiter.limit(settings.rate_limit)
async def list_my_applications(
    request: Request,
    status: Optional[ApplicationStatus] = None,
    identity: Identity = Depends(driver_only),
    db: AsyncSession = Depends(get_db),
):
    applications = await ApplicationArbiter(db).list_applications_for_driver(
        identity.user_id, status
    )
    return [ApplicationResponse.from_entity(a) for a in applications]


@router.patch(
    "/{application_id}/cancel",
    response_model=ApplicationResponse,
    summary="Cancel a pending application",
    description="Only the applying driver may cancel, and only while pending.",
)
@limiter.limit(settings.rate_limit)
async def cancel_application(
    request: Request,
    application_id: str,
    identity: Identity = Depends(driver_only),
    db: AsyncSession = Depends(get_db),
):
    application = await ApplicationArbiter(db).cancel_application(
        application_id, identity.user_id
    )
    return ApplicationResponse.from_entity(application)
