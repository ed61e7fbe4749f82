"""
Serviceable Area Registry.

Handles:
1. Pincode overrides (exact-code delivery terms)
2. Serviceable areas (state + district list with default terms)
3. Admin upsert / list / delete
4. Seeding the default Karnataka coverage

Lookups are memoized per instance and serialized with an asyncio.Lock, so one
registry (and its AsyncSession) can be shared by concurrently priced vendor groups.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Optional, List, Dict, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.location_names import (
    canonical_state,
    dedupe_districts,
    normalize_district,
)
from app.models.serviceability import Pincode, ServiceableArea
from app.schemas.serviceability import PincodeCreate, ServiceableAreaCreate

logger = logging.getLogger(__name__)


DEFAULT_STATE = "Karnataka"

DEFAULT_KARNATAKA_DISTRICTS = [
    "Bangalore Urban", "Bangalore Rural", "Mysore", "Hubli-Dharwad", "Mangalore",
    "Belgaum", "Gulbarga", "Davangere", "Bellary", "Bijapur", "Shimoga", "Tumkur",
    "Raichur", "Bidar", "Bagalkot", "Hassan", "Gadag", "Mandya", "Koppal", "Kolar",
    "Chikmagalur", "Chitradurga", "Udupi", "Haveri", "Kodagu", "Dharwad",
    "Chamarajanagar", "Chikkaballapur", "Dakshina Kannada", "Yadgir", "Ramanagara",
]

_MISSING = object()


class ServiceableAreaRegistry:
    """Data access for Pincode and ServiceableArea records."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._lock = asyncio.Lock()
        self._pincodes: Dict[str, Optional[Pincode]] = {}
        self._areas: Dict[Tuple[str, str], Optional[ServiceableArea]] = {}

    def clear_memo(self) -> None:
        self._pincodes.clear()
        self._areas.clear()

    # ==================== Lookups ====================

    async def get_pincode(self, pincode: str) -> Optional[Pincode]:
        """Exact pincode record (enabled or not)."""
        cached = self._pincodes.get(pincode, _MISSING)
        if cached is not _MISSING:
            return cached

        async with self._lock:
            cached = self._pincodes.get(pincode, _MISSING)
            if cached is not _MISSING:
                return cached
            result = await self.db.execute(select(Pincode).where(Pincode.pincode == pincode))
            record = result.scalar_one_or_none()
            self._pincodes[pincode] = record
            return record

    async def find_area(self, state: str, district: Optional[str] = None) -> Optional[ServiceableArea]:
        """
        Enabled serviceable area for a state, optionally requiring the district
        to be listed (normalized comparison).
        """
        state = canonical_state(state)
        if not state:
            return None
        district_key = normalize_district(district)
        memo_key = (state.casefold(), district_key)

        cached = self._areas.get(memo_key, _MISSING)
        if cached is not _MISSING:
            return cached

        async with self._lock:
            cached = self._areas.get(memo_key, _MISSING)
            if cached is not _MISSING:
                return cached

            result = await self.db.execute(
                select(ServiceableArea).where(
                    func.lower(ServiceableArea.state) == state.casefold(),
                    ServiceableArea.delivery_available == True,
                )
            )
            area = result.scalar_one_or_none()
            if area is not None and district_key:
                listed = {normalize_district(d) for d in (area.districts or [])}
                if district_key not in listed:
                    area = None

            self._areas[memo_key] = area
            return area

    # ==================== Admin: Serviceable Areas ====================

    async def upsert_area(self, data: ServiceableAreaCreate) -> ServiceableArea:
        """Create or update the area for a state. Districts are deduplicated by normalized name."""
        state = canonical_state(data.state)
        districts = dedupe_districts(data.districts)

        async with self._lock:
            result = await self.db.execute(
                select(ServiceableArea).where(func.lower(ServiceableArea.state) == state.casefold())
            )
            area = result.scalar_one_or_none()

            if area is None:
                area = ServiceableArea(state=state)
                self.db.add(area)
                logger.info(f"Creating serviceable area {state}")
            else:
                logger.info(f"Updating serviceable area {state}")

            area.districts = districts
            area.delivery_available = data.delivery_available
            area.default_delivery_days = data.default_delivery_days
            area.default_shipping_charge = data.default_shipping_charge
            area.cash_on_delivery = data.cash_on_delivery
            area.express_delivery = data.express_delivery

            await self.db.flush()
            await self.db.refresh(area)
            self._areas.clear()
            return area

    async def list_areas(self) -> List[ServiceableArea]:
        async with self._lock:
            result = await self.db.execute(select(ServiceableArea).order_by(ServiceableArea.state))
            return list(result.scalars().all())

    async def initialize_default_areas(self) -> Tuple[ServiceableArea, bool]:
        """
        Seed Karnataka with its districts. Idempotent.

        Returns (area, created).
        """
        async with self._lock:
            result = await self.db.execute(
                select(ServiceableArea).where(func.lower(ServiceableArea.state) == DEFAULT_STATE.casefold())
            )
            existing = result.scalar_one_or_none()
        if existing is not None:
            logger.info(f"Serviceable area {DEFAULT_STATE} already initialized")
            return existing, False

        area = await self.upsert_area(ServiceableAreaCreate(
            state=DEFAULT_STATE,
            districts=DEFAULT_KARNATAKA_DISTRICTS,
            delivery_available=True,
            default_delivery_days=5,
            default_shipping_charge=Decimal(str(settings.DEFAULT_BASE_SHIPPING_RATE)),
            cash_on_delivery=True,
            express_delivery=True,
        ))
        return area, True

    # ==================== Admin: Pincodes ====================

    async def upsert_pincode(self, data: PincodeCreate) -> Pincode:
        """Create or update a pincode override (last writer wins)."""
        async with self._lock:
            result = await self.db.execute(select(Pincode).where(Pincode.pincode == data.pincode))
            record = result.scalar_one_or_none()

            if record is None:
                record = Pincode(pincode=data.pincode)
                self.db.add(record)

            record.state = canonical_state(data.state)
            record.delivery_available = data.delivery_available
            record.estimated_delivery_days = data.estimated_delivery_days
            record.shipping_charge = data.shipping_charge
            record.cash_on_delivery = data.cash_on_delivery
            record.express_delivery = data.express_delivery

            await self.db.flush()
            await self.db.refresh(record)
            self._pincodes.pop(data.pincode, None)
            return record

    async def list_pincodes(
        self,
        state: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Pincode], int]:
        """Paginated pincode overrides, optionally filtered by state."""
        query = select(Pincode)
        count_query = select(func.count(Pincode.id))
        if state:
            condition = func.lower(Pincode.state) == canonical_state(state).casefold()
            query = query.where(condition)
            count_query = count_query.where(condition)

        async with self._lock:
            total = (await self.db.execute(count_query)).scalar() or 0
            result = await self.db.execute(
                query.order_by(Pincode.pincode).offset(skip).limit(limit)
            )
            return list(result.scalars().all()), total

    async def delete_pincode(self, pincode: str) -> bool:
        async with self._lock:
            result = await self.db.execute(delete(Pincode).where(Pincode.pincode == pincode))
            self._pincodes.pop(pincode, None)
            deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info(f"Deleted pincode override {pincode}")
        return deleted
