"""
Seed Serviceability Data.

Creates:
1. Karnataka serviceable area with its districts
2. Pincode overrides for central Bangalore (2 days, Rs.30, express)

Usage:
    python -m scripts.seed_serviceability
"""
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import async_session_factory, init_db
from app.schemas.serviceability import PincodeCreate
from app.services.serviceable_area_registry import ServiceableAreaRegistry


# Central Bangalore Pincodes (560001-560010)
BANGALORE_CENTRAL_PINCODES = [str(p) for p in range(560001, 560011)]


async def seed_serviceable_areas(db):
    """Seed the default Karnataka area."""
    print("\n=== Seeding Serviceable Areas ===")
    registry = ServiceableAreaRegistry(db)
    area, created = await registry.initialize_default_areas()
    await db.commit()

    if created:
        print(f"  Created {area.state} with {len(area.districts)} districts")
    else:
        print(f"  {area.state} already exists, skipping")


async def seed_pincodes(db):
    """Seed metro pincode overrides."""
    print("\n=== Seeding Pincode Overrides ===")
    registry = ServiceableAreaRegistry(db)

    for pincode in BANGALORE_CENTRAL_PINCODES:
        await registry.upsert_pincode(PincodeCreate(
            pincode=pincode,
            state="Karnataka",
            delivery_available=True,
            estimated_delivery_days=2,
            shipping_charge=Decimal("30"),
            cash_on_delivery=True,
            express_delivery=True,
        ))
    await db.commit()

    print(f"Total pincode overrides upserted: {len(BANGALORE_CENTRAL_PINCODES)}")


async def main():
    """Main seed function."""
    print("=" * 60)
    print("SERVICEABILITY DATA SEEDING")
    print("=" * 60)

    await init_db()

    async with async_session_factory() as db:
        # Seed in order
        await seed_serviceable_areas(db)
        await seed_pincodes(db)

    print("\n" + "=" * 60)
    print("SEEDING COMPLETE")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
