"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 sample shipments across the lifecycle (pending, assigned, in transit,
    completed)
  - pending applications from 3 sample drivers on the open shipments
"""

import asyncio

from sqlalchemy import text

from autohaul.domain.entities import Address, Route, ShipmentRequest
from autohaul.domain.enums import ApplicationStatus, PaymentStatus, ShipmentStatus
from autohaul.infrastructure.database import async_session_factory, engine
from autohaul.infrastructure.repositories import (
    ApplicationRepository,
    ShipmentRepository,
)

CLIENTS = ["client-ava", "client-ben", "client-cora"]
DRIVERS = ["driver-dan", "driver-eli", "driver-fay"]

SHIPMENTS = [
    {
        "title": "2019 Toyota Camry",
        "pickup": ("1200 Market St, San Francisco, CA", 37.7793, -122.4193),
        "delivery": ("500 S Grand Ave, Los Angeles, CA", 34.0522, -118.2437),
        "price_cents": 85000,
        "status": ShipmentStatus.PENDING,
    },
    {
        "title": "2021 Ford F-150",
        "pickup": ("700 Congress Ave, Austin, TX", 30.2672, -97.7431),
        "delivery": ("1500 Marilla St, Dallas, TX", 32.7767, -96.7970),
        "price_cents": 42050,
        "status": ShipmentStatus.PENDING,
    },
    {
        "title": "2015 Honda Civic",
        "pickup": ("233 S Wacker Dr, Chicago, IL", 41.8789, -87.6359),
        "delivery": ("1 Campus Martius, Detroit, MI", 42.3314, -83.0458),
        "price_cents": 39999,
        "status": ShipmentStatus.PENDING,
    },
    {
        "title": "2018 Jeep Wrangler",
        "pickup": ("1701 Wynkoop St, Denver, CO", 39.7392, -104.9903),
        "delivery": ("50 W Broadway, Salt Lake City, UT", 40.7608, -111.8910),
        "price_cents": 61000,
        "status": ShipmentStatus.ASSIGNED,
        "driver": DRIVERS[0],
    },
    {
        "title": "2020 Tesla Model 3",
        "pickup": ("400 Broad St, Seattle, WA", 47.6205, -122.3493),
        "delivery": ("1120 SW 5th Ave, Portland, OR", 45.5152, -122.6784),
        "price_cents": 30500,
        "status": ShipmentStatus.IN_TRANSIT,
        "driver": DRIVERS[1],
    },
    {
        "title": "1967 Ford Mustang",
        "pickup": ("100 Biscayne Blvd, Miami, FL", 25.7617, -80.1918),
        "delivery": ("400 W Church St, Orlando, FL", 28.5383, -81.3792),
        "price_cents": 120000,
        "status": ShipmentStatus.COMPLETED,
        "driver": DRIVERS[2],
    },
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM shipments"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        shipment_repo = ShipmentRepository(session)
        application_repo = ApplicationRepository(session)

        # ── Shipments ─────────────────────────────────────────────────
        rows = []
        for i, s in enumerate(SHIPMENTS):
            request = ShipmentRequest(
                client_id=CLIENTS[i % len(CLIENTS)],
                idempotency_key=f"seed-{i}",
                title=s["title"],
                description=f"Vehicle: {s['title']}\nOperability: running",
                route=Route(Address(*s["pickup"]), Address(*s["delivery"])),
                pickup_notes="Pickup Time: 09:00",
                delivery_notes="Delivery Time: 17:00",
                estimated_price_cents=s["price_cents"],
                payment_method="credit_card",
            )
            row = await shipment_repo.create_from_request(request)
            row.status = s["status"]
            row.driver_id = s.get("driver")
            row.payment_status = (
                PaymentStatus.PAID
                if s["status"] == ShipmentStatus.COMPLETED
                else PaymentStatus.UPFRONT_PAID
            )
            row.payment_reference = f"ch_seed_{i}"
            rows.append(row)
        await session.flush()
        print(f"  Created {len(rows)} shipments")

        # ── Applications ──────────────────────────────────────────────
        count = 0
        for row in rows:
            if row.status == ShipmentStatus.PENDING:
                for driver in DRIVERS:
                    await application_repo.create(
                        shipment_id=row.id, driver_id=driver, notes="Available this week"
                    )
                    count += 1
            elif row.driver_id:
                await application_repo.create(
                    shipment_id=row.id,
                    driver_id=row.driver_id,
                    status=ApplicationStatus.ACCEPTED,
                )
                count += 1
        print(f"  Created {count} applications")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
