# tests/conftest.py
import asyncio
import os
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

# Settings are read at import time; point them at an in-memory database first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["GOOGLE_MAPS_API_KEY"] = ""
os.environ.pop("REDIS_URL", None)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app import models  # noqa: F401
from app.api import deps
from app.core.security import create_access_token
from app.database import Base, build_engine, get_db
from app.main import app
from app.models.product import Product
from app.models.vendor import Vendor, VendorShippingConfig
from app.schemas.serviceability import ResolvedLocation
from app.services.cache_service import reset_cache
from app.services.geocoding_provider import (
    AddressComponent,
    GeocodeCandidate,
    GeocodingProvider,
)
from app.services.location_resolver import LocationResolver
from app.services.quote_session import QuoteSessionManager


# ==========================================
# Geocoding
# ==========================================

class FakeGeocodingProvider(GeocodingProvider):
    """Canned geocoder. Unknown queries return no candidates."""

    def __init__(self):
        self.results: Dict[str, List[GeocodeCandidate]] = {}
        self.places: Dict[str, GeocodeCandidate] = {}
        self.calls: List[str] = []
        self.error: Optional[Exception] = None
        self.delay: float = 0

    async def geocode(self, query: str) -> List[GeocodeCandidate]:
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.results.get(query, [])

    async def place_details(self, place_id: str) -> Optional[GeocodeCandidate]:
        self.calls.append(f"place:{place_id}")
        if self.error is not None:
            raise self.error
        return self.places.get(place_id)


def google_candidate(
    pincode: Optional[str],
    area: Optional[str] = None,
    district: Optional[str] = None,
    state: Optional[str] = "Karnataka",
    state_code: str = "KA",
    latitude: float = 12.9716,
    longitude: float = 77.5946,
    place_id: Optional[str] = None,
    types: Optional[List[str]] = None,
) -> GeocodeCandidate:
    """Candidate shaped like a Google postal_code result."""
    components = []
    if pincode:
        components.append(AddressComponent(long_name=pincode, short_name=pincode, types=["postal_code"]))
    if area:
        components.append(AddressComponent(long_name=area, short_name=area, types=["sublocality_level_1", "sublocality", "political"]))
    if district:
        components.append(AddressComponent(long_name=district, short_name=district, types=["locality", "political"]))
        components.append(AddressComponent(long_name=district, short_name=district, types=["administrative_area_level_2", "political"]))
    if state:
        components.append(AddressComponent(long_name=state, short_name=state_code, types=["administrative_area_level_1", "political"]))
    components.append(AddressComponent(long_name="India", short_name="IN", types=["country", "political"]))

    parts = [p for p in (area, district, state) if p]
    address = ", ".join(parts) + (f" {pincode}" if pincode else "") + ", India"
    return GeocodeCandidate(
        formatted_address=address,
        address_components=components,
        types=types or ["postal_code"],
        latitude=latitude,
        longitude=longitude,
        place_id=place_id or f"place-{pincode}",
    )


@pytest.fixture
def geocoder():
    provider = FakeGeocodingProvider()
    provider.results["560001"] = [google_candidate("560001", area="MG Road", district="Bengaluru")]
    provider.results["560002"] = [google_candidate("560002", area="Shivajinagar", district="Bengaluru")]
    provider.results["576101"] = [
        google_candidate("576101", area="Manipal", district="Udupi", latitude=13.3409, longitude=74.7421)
    ]
    provider.results["682001"] = [
        google_candidate("682001", area="Fort Kochi", district="Ernakulam", state="Kerala",
                         state_code="KL", latitude=9.9658, longitude=76.2421)
    ]
    return provider


@pytest.fixture
def candidate_factory():
    return google_candidate


@pytest.fixture
def resolver(geocoder):
    return LocationResolver(provider=geocoder, use_cache=False)


@pytest.fixture
def make_location():
    def _make(**overrides) -> ResolvedLocation:
        values = {
            "pincode": "560001",
            "formatted_address": "MG Road, Bengaluru, Karnataka 560001, India",
            "area": "MG Road",
            "district": "Bengaluru",
            "state": "Karnataka",
            "country": "India",
            "latitude": 12.9716,
            "longitude": 77.5946,
        }
        values.update(overrides)
        return ResolvedLocation(**values)
    return _make


# ==========================================
# Database
# ==========================================

@pytest.fixture(autouse=True)
def fresh_cache():
    reset_cache()
    yield
    reset_cache()


@pytest.fixture
async def db_engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(db):
    """Persist objects and detach them so services load fresh copies."""
    async def _seed(*objects):
        db.add_all(objects)
        await db.commit()
        db.expunge_all()
        return objects[0] if len(objects) == 1 else objects
    return _seed


@pytest.fixture
def vendor_factory():
    def _make(**overrides) -> Vendor:
        values = {
            "id": uuid.uuid4(),
            "name": "Mysore Silks",
            "base_shipping_rate": Decimal("50"),
            "free_shipping_threshold": Decimal("999"),
            "is_shipping_enabled": True,
            "allowed_pincodes": [],
            "excluded_pincodes": [],
            "is_active": True,
        }
        values.update(overrides)
        return Vendor(**values)
    return _make


@pytest.fixture
def product_factory():
    def _make(vendor: Optional[Vendor] = None, **overrides) -> Product:
        values = {
            "id": uuid.uuid4(),
            "name": "Sandalwood Soap",
            "vendor_id": vendor.id if vendor is not None else None,
            "base_shipping_rate": Decimal("0"),
            "weight_kg": Decimal("1"),
            "express_delivery_available": True,
            "custom_service_pincodes": [],
            "exclude_pincodes": [],
            "is_active": True,
        }
        values.update(overrides)
        return Product(**values)
    return _make


@pytest.fixture
def distance_config_factory():
    def _make(vendor: Vendor, **overrides) -> VendorShippingConfig:
        values = {
            "vendor_id": vendor.id,
            "base_rate": Decimal("50"),
            "per_km_rate": Decimal("5"),
            "max_delivery_distance_km": Decimal("100"),
            "peak_hour_multiplier": Decimal("1.2"),
            "peak_hours": [],
            "weight_pricing_enabled": False,
            "base_weight_kg": Decimal("1"),
            "additional_weight_rate": Decimal("10"),
            "express_enabled": True,
            "express_multiplier": Decimal("1.5"),
            "origin_latitude": Decimal("12.9716"),
            "origin_longitude": Decimal("77.5946"),
            "is_active": True,
        }
        values.update(overrides)
        return VendorShippingConfig(**values)
    return _make


# ==========================================
# API
# ==========================================

@pytest.fixture
async def client(session_factory, geocoder):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    quote_sessions = QuoteSessionManager()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_geocoding_provider] = lambda: geocoder
    app.dependency_overrides[deps.get_location_resolver] = lambda: LocationResolver(provider=geocoder, use_cache=False)
    app.dependency_overrides[deps.get_quote_sessions] = lambda: quote_sessions

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(role: str = "admin", vendor_id=None, subject: str = "user-1") -> Dict[str, str]:
        token = create_access_token(subject, role=role, vendor_id=vendor_id)
        return {"Authorization": f"Bearer {token}"}
    return _headers
