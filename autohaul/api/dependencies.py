"""FastAPI dependency injection helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from autohaul.config import settings
from autohaul.domain.enums import UserRole
from autohaul.domain.errors import AuthorizationError
from autohaul.domain.ports import PaymentGateway, ShipmentStore
from autohaul.domain.pricing import PercentageSplit, SplitPolicy
from autohaul.infrastructure.database import async_session_factory
from autohaul.infrastructure.draft_store import DraftStore
from autohaul.infrastructure.payments import HttpPaymentGateway
from autohaul.infrastructure.redis_client import get_redis
from autohaul.infrastructure.shipment_store import SqlShipmentStore


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_draft_store() -> DraftStore:
    return DraftStore(await get_redis(), ttl_seconds=settings.draft_ttl_seconds)


def get_shipment_store() -> ShipmentStore:
    return SqlShipmentStore(async_session_factory)


def get_payment_gateway() -> PaymentGateway:
    return HttpPaymentGateway(
        settings.payment_api_url,
        api_key=settings.payment_api_key,
        currency=settings.currency,
        timeout=settings.payment_timeout_seconds,
    )


def get_split_policy() -> SplitPolicy:
    return PercentageSplit(settings.upfront_percent)


# ── Identity ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: UserRole


async def get_identity(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Identity:
    """Caller identity as asserted by the upstream identity provider."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Missing identity headers")
    try:
        role = UserRole(x_user_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role {x_user_role!r}")
    return Identity(user_id=x_user_id, role=role)


def require_role(*roles: UserRole):
    """Dependency factory: allow only callers holding one of *roles*."""

    async def _check(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise AuthorizationError(
                f"Role {identity.role.value} may not perform this operation"
            )
        return identity

    return _check
