"""
FastAPI application factory.

* Registers routes for bookings, shipments, applications and admin.
* Maps the domain error taxonomy onto HTTP status codes.
* Starts / stops the background expiry worker via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from autohaul.api.middleware import limiter
from autohaul.api.routes import admin, applications, bookings, shipments
from autohaul.config import settings
from autohaul.domain.errors import (
    AuthorizationError,
    ExternalDependencyError,
    IllegalTransitionError,
    MarketplaceError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from autohaul.infrastructure.database import dispose_engine
from autohaul.infrastructure.redis_client import close_redis
from autohaul.workers import expiry as _expiry

logging.basicConfig(level=settings.log_level)

logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (ValidationError, 422),
    (StateConflictError, 409),
    (IllegalTransitionError, 409),
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (ExternalDependencyError, 503),
)


async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    status_code = next(
        (code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400
    )
    if status_code == 503:
        logger.warning("%s %s: %s", request.method, request.url.path, exc)
    content = {"detail": str(exc)}
    code = getattr(exc, "code", None)
    if code:
        content["code"] = code
    return JSONResponse(status_code=status_code, content=content)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiry worker on startup; stop it and close pools on shutdown."""
    await _expiry.start_expiry_loop()
    yield
    await _expiry.stop_expiry_loop()
    await close_redis()
    await dispose_engine()


def create_app() -> FastAPI:
    app = FastAPI(
        title="AutoHaul Marketplace API",
        description=(
            "Vehicle-transport marketplace: customers book shipments through "
            "a nine-step wizard, drivers apply for jobs, and each job is "
            "assigned to exactly one driver."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)

    # Routers
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(shipments.router, prefix="/api/v1")
    app.include_router(applications.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
