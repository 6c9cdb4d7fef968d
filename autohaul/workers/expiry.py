"""
Background Expiry Worker
========================

Runs every ``EXPIRY_INTERVAL_SECONDS`` (default 300 s).

Shipments that stay ``pending`` without a driver for longer than
``PENDING_TTL_HOURS`` are expired and their pending applications rejected.
The lifecycle only defines the ``expire`` event; this worker is the
external trigger for it.

Concurrency safety
------------------
* **Redis distributed lock**: one instance sweeps per cycle.
* Each expiry is a version-guarded conditional update, so a shipment
  assigned between the sweep query and the write is skipped, not expired.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autohaul.config import settings
from autohaul.domain.entities import utcnow
from autohaul.infrastructure.database import async_session_factory
from autohaul.infrastructure.locks import DistributedLock
from autohaul.infrastructure.redis_client import get_redis
from autohaul.services.shipments import ShipmentService

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_expiry_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Expiry worker started (interval=%ds, ttl=%dh)",
        settings.expiry_interval_seconds,
        settings.pending_ttl_hours,
    )


async def stop_expiry_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Expiry worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_expiry_cycle()
        except Exception:
            logger.exception("Unhandled error in expiry cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.expiry_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


async def run_expiry_cycle(
    redis=None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> list[str]:
    """Expire stale pending shipments.  Returns the expired shipment ids."""
    redis = redis or await get_redis()
    session_factory = session_factory or async_session_factory
    lock = DistributedLock(redis, "shipment_expiry", ttl_seconds=120)

    if not await lock.acquire():
        logger.debug("Lock held by another worker; skipping cycle")
        return []

    try:
        cutoff = utcnow() - timedelta(hours=settings.pending_ttl_hours)
        async with session_factory() as session:
            expired = await ShipmentService(session).expire_stale(cutoff)
            await session.commit()
        if expired:
            logger.info("Expiry cycle: %d shipments expired", len(expired))
        return expired
    finally:
        await lock.release()
