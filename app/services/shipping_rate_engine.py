"""
Shipping Rate Engine for Multi-Vendor Carts.

This service handles:
1. Partitioning a cart into per-vendor groups
2. Per-vendor serviceability (vendor + product allow/deny lists)
3. Flat pricing (vendor base rate, product rates, express surcharge)
4. Distance pricing (per-km, peak hours, weight and express multipliers)
5. Free shipping thresholds
6. Aggregating vendor quotes into one cart quote

A vendor that cannot ship never fails the whole quote: its group is reported
with an error code and the cart quote is marked partial.
"""
import asyncio
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.product import Product
from app.models.vendor import Vendor, VendorShippingConfig
from app.schemas.base import quantize_money
from app.schemas.serviceability import ResolvedLocation, ServiceabilityOverrides, ServiceabilityResult
from app.schemas.shipping import (
    CartQuote,
    LineItem,
    PLATFORM_VENDOR_ID,
    VendorQuote,
    VendorQuoteErrorCode,
    VendorQuoteStatus,
)
from app.services.serviceability_service import (
    ServiceabilityPolicy,
    overrides_for_product,
    overrides_for_vendor,
)
from app.services.serviceable_area_registry import ServiceableAreaRegistry

logger = logging.getLogger(__name__)


ZERO = Decimal("0")
ONE = Decimal("1")
EARTH_RADIUS_KM = 6371.0
DEFAULT_ITEM_WEIGHT_KG = Decimal("1")


class VendorQuoteError(Exception):
    """A vendor group cannot be quoted. Converted to a failed VendorQuote."""

    def __init__(self, code: VendorQuoteErrorCode, message: str, **details):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code.value}: {message}")


@dataclass
class CartGroup:
    """One vendor's slice of a cart."""
    vendor_id: str
    items: List[LineItem] = field(default_factory=list)

    @property
    def order_value(self) -> Decimal:
        return sum((Decimal(i.quantity) * i.unit_price for i in self.items), ZERO)

    @property
    def total_weight(self) -> Decimal:
        return sum(
            (Decimal(i.quantity) * (i.weight_kg or DEFAULT_ITEM_WEIGHT_KG) for i in self.items),
            ZERO,
        )


@dataclass
class VendorTerms:
    """Shipping terms for one vendor (or the platform)."""
    vendor_id: str
    name: str
    base_shipping_rate: Optional[Decimal]
    free_shipping_threshold: Decimal
    is_shipping_enabled: bool = True
    overrides: Optional[ServiceabilityOverrides] = None
    distance_config: Optional[VendorShippingConfig] = None

    @classmethod
    def from_vendor(cls, vendor: Vendor) -> "VendorTerms":
        config = vendor.shipping_config
        return cls(
            vendor_id=str(vendor.id),
            name=vendor.name,
            base_shipping_rate=vendor.base_shipping_rate,
            free_shipping_threshold=Decimal(vendor.free_shipping_threshold),
            is_shipping_enabled=vendor.is_shipping_enabled,
            overrides=overrides_for_vendor(vendor),
            distance_config=config if config is not None and config.is_active else None,
        )

    @classmethod
    def platform(cls) -> "VendorTerms":
        return cls(
            vendor_id=PLATFORM_VENDOR_ID,
            name="Platform",
            base_shipping_rate=Decimal(str(settings.PLATFORM_BASE_SHIPPING_RATE)),
            free_shipping_threshold=Decimal(str(settings.DEFAULT_FREE_SHIPPING_THRESHOLD)),
        )


def partition_cart(cart: Iterable[LineItem]) -> List[CartGroup]:
    """Group line items by vendor id, keeping first-seen item order within a group."""
    groups: Dict[str, CartGroup] = {}
    for item in cart:
        group = groups.get(item.vendor_id)
        if group is None:
            group = groups[item.vendor_id] = CartGroup(vendor_id=item.vendor_id)
        group.items.append(item)
    return list(groups.values())


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_peak_hour(peak_hours: Optional[List[dict]], now: datetime) -> bool:
    """Inclusive HH:MM windows; a window whose end is before its start wraps midnight."""
    if not peak_hours:
        return False
    current = now.time().replace(second=0, microsecond=0)
    for window in peak_hours:
        start = _parse_hhmm(window["start"])
        end = _parse_hhmm(window["end"])
        if start <= end:
            if start <= current <= end:
                return True
        elif current >= start or current <= end:
            return True
    return False


class ShippingRateEngine:
    """
    Quotes shipping for multi-vendor carts.

    Read-only against the store. Peak-hour pricing reads the injected clock so
    quotes are reproducible in tests.
    """

    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[ServiceableAreaRegistry] = None,
        policy: Optional[ServiceabilityPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        express_surcharge: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ):
        self.db = db
        self.registry = registry or ServiceableAreaRegistry(db)
        self.policy = policy or ServiceabilityPolicy(self.registry)
        self.tz = ZoneInfo(settings.TIMEZONE)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.express_surcharge = quantize_money(
            express_surcharge if express_surcharge is not None else settings.EXPRESS_SURCHARGE
        )
        self.currency = currency or settings.CURRENCY

    # ==================== Public API ====================

    async def quote(
        self,
        cart: List[LineItem],
        location: ResolvedLocation,
        express: bool = False,
    ) -> CartQuote:
        """Quote every vendor group in the cart. total sums successful quotes only."""
        groups = partition_cart(cart)
        if not groups:
            return CartQuote(
                pincode=location.pincode,
                currency=self.currency,
                vendor_quotes=[],
                total=quantize_money(0),
                partial=False,
                location=location,
            )

        vendors = await self._load_vendors([g.vendor_id for g in groups])
        products = await self._load_products(
            [i.product_id for g in groups for i in g.items if i.product_id]
        )

        tasks = [
            asyncio.ensure_future(
                self._quote_group(group, vendors.get(group.vendor_id), products, location, express)
            )
            for group in groups
        ]
        try:
            quotes = await asyncio.gather(*tasks)
        except Exception:
            # Siblings share the request session; stop them before the error propagates
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        quotes = sorted(quotes, key=lambda q: q.vendor_id)

        total = quantize_money(sum((q.charge for q in quotes if q.success), ZERO))
        partial = any(not q.success for q in quotes)
        logger.info(
            f"Cart quote for {location.pincode}: {len(quotes)} vendor(s), "
            f"total={total}, partial={partial}"
        )
        return CartQuote(
            pincode=location.pincode,
            currency=self.currency,
            vendor_quotes=quotes,
            total=total,
            partial=partial,
            location=location,
        )

    async def estimate(
        self,
        vendor_id: str,
        location: ResolvedLocation,
        order_value: Decimal,
        total_weight: Decimal = ONE,
        express: bool = False,
    ) -> VendorQuote:
        """Single-vendor estimate from an order value and weight, without line items."""
        synthetic = LineItem(
            vendor_id=vendor_id,
            quantity=1,
            unit_price=Decimal(order_value),
            weight_kg=Decimal(total_weight),
        )
        vendors = await self._load_vendors([vendor_id])
        return await self._quote_group(
            CartGroup(vendor_id=vendor_id, items=[synthetic]),
            vendors.get(vendor_id),
            {},
            location,
            express,
        )

    # ==================== Loading ====================

    async def _load_vendors(self, vendor_ids: List[str]) -> Dict[str, VendorTerms]:
        terms: Dict[str, VendorTerms] = {}
        uuids = {}
        for vendor_id in set(vendor_ids):
            if vendor_id == PLATFORM_VENDOR_ID:
                terms[vendor_id] = VendorTerms.platform()
                continue
            try:
                uuids[uuid.UUID(vendor_id)] = vendor_id
            except ValueError:
                logger.warning(f"Ignoring malformed vendor id {vendor_id!r}")

        if uuids:
            result = await self.db.execute(
                select(Vendor).where(Vendor.id.in_(list(uuids)), Vendor.is_active == True)
            )
            for vendor in result.scalars().all():
                terms[uuids[vendor.id]] = VendorTerms.from_vendor(vendor)
        return terms

    async def _load_products(self, product_ids: List[uuid.UUID]) -> Dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        result = await self.db.execute(
            select(Product).where(Product.id.in_(set(product_ids)))
        )
        return {p.id: p for p in result.scalars().all()}

    # ==================== Per-vendor pricing ====================

    async def _quote_group(
        self,
        group: CartGroup,
        vendor: Optional[VendorTerms],
        products: Dict[uuid.UUID, Product],
        location: ResolvedLocation,
        express: bool,
    ) -> VendorQuote:
        try:
            return await self._price_group(group, vendor, products, location, express)
        except VendorQuoteError as e:
            logger.info(f"Vendor {group.vendor_id} not quoted for {location.pincode}: {e}")
            return VendorQuote(
                vendor_id=group.vendor_id,
                vendor_name=vendor.name if vendor else None,
                status=VendorQuoteStatus.FAILED,
                success=False,
                charge=quantize_money(0),
                order_value=quantize_money(group.order_value),
                total_weight=float(group.total_weight),
                shipping_disabled=e.code == VendorQuoteErrorCode.SHIPPING_DISABLED,
                error_code=e.code,
                message=e.message,
                items=group.items,
                distance_km=e.details.get("distance_km"),
                breakdown=e.details,
            )

    async def _price_group(
        self,
        group: CartGroup,
        vendor: Optional[VendorTerms],
        products: Dict[uuid.UUID, Product],
        location: ResolvedLocation,
        express: bool,
    ) -> VendorQuote:
        if vendor is None:
            raise VendorQuoteError(VendorQuoteErrorCode.VENDOR_NOT_FOUND, "Vendor not found")

        if not vendor.is_shipping_enabled:
            raise VendorQuoteError(
                VendorQuoteErrorCode.SHIPPING_DISABLED,
                "Shipping disabled, contact vendor",
            )

        group_products = [products[i.product_id] for i in group.items if i.product_id in products]
        overrides = ServiceabilityOverrides.merge(
            vendor.overrides, *[overrides_for_product(p) for p in group_products]
        )
        serviceability = await self.policy.check(location, overrides)
        if not serviceability.deliverable:
            raise VendorQuoteError(
                VendorQuoteErrorCode.NOT_SERVICEABLE,
                serviceability.message,
                reason=serviceability.reason,
            )

        order_value = group.order_value
        total_weight = group.total_weight
        express_allowed = serviceability.express and all(
            p.express_delivery_available for p in group_products
        )

        use_distance = vendor.distance_config is not None
        if use_distance and (location.latitude is None or location.longitude is None):
            logger.warning(
                f"No coordinates for {location.pincode}; vendor {vendor.vendor_id} priced flat"
            )
            use_distance = False

        if use_distance:
            base_charge, express_surcharge, express_applied, breakdown, distance_km = (
                self._distance_charge(vendor.distance_config, location, total_weight, express)
            )
            pricing_model = "DISTANCE"
        else:
            base_charge, breakdown = self._flat_charge(vendor, group, products, serviceability)
            express_applied = express and express_allowed
            express_surcharge = self.express_surcharge if express_applied else ZERO
            distance_km = None
            pricing_model = "FLAT"

        free_shipping = order_value >= vendor.free_shipping_threshold
        if free_shipping:
            base_charge = ZERO
            express_surcharge = ZERO

        estimated_days = serviceability.estimated_days
        max_days = [p.max_delivery_days for p in group_products if p.max_delivery_days]
        if max_days and (estimated_days is None or max(max_days) > estimated_days):
            estimated_days = max(max_days)
        if express_applied and estimated_days is not None:
            estimated_days = max(1, estimated_days - 2)

        charge = quantize_money(base_charge + express_surcharge)
        breakdown.update({
            "serviceability_tier": serviceability.tier,
            "free_shipping": free_shipping,
        })

        return VendorQuote(
            vendor_id=group.vendor_id,
            vendor_name=vendor.name,
            status=VendorQuoteStatus.OK,
            success=True,
            charge=charge,
            base_charge=quantize_money(base_charge),
            express_surcharge=quantize_money(express_surcharge),
            order_value=quantize_money(order_value),
            total_weight=float(total_weight),
            free_shipping=free_shipping,
            free_shipping_threshold=quantize_money(vendor.free_shipping_threshold),
            express_applied=express_applied,
            estimated_days=estimated_days,
            distance_km=distance_km,
            cod_available=serviceability.cod,
            pricing_model=pricing_model,
            message=(
                "Free shipping" if free_shipping and charge == ZERO
                else f"Shipping to {location.area}, {location.district}"
            ),
            items=group.items,
            breakdown=breakdown,
        )

    def _flat_charge(
        self,
        vendor: VendorTerms,
        group: CartGroup,
        products: Dict[uuid.UUID, Product],
        serviceability: ServiceabilityResult,
    ):
        """Product rates x qty, plus the vendor base once for items without their own rate."""
        product_charge = ZERO
        needs_vendor_base = False
        for item in group.items:
            product = products.get(item.product_id) if item.product_id else None
            if product is not None and product.base_shipping_rate and Decimal(product.base_shipping_rate) > 0:
                product_charge += Decimal(product.base_shipping_rate) * item.quantity
            else:
                needs_vendor_base = True

        vendor_base = ZERO
        if needs_vendor_base:
            if vendor.base_shipping_rate is not None:
                vendor_base = Decimal(vendor.base_shipping_rate)
            else:
                vendor_base = serviceability.base_charge or ZERO

        breakdown = {
            "product_rates": float(product_charge),
            "vendor_base_rate": float(vendor_base),
            "vendor_rate_configured": vendor.base_shipping_rate is not None,
        }
        return product_charge + vendor_base, breakdown

    def _distance_charge(
        self,
        config: VendorShippingConfig,
        location: ResolvedLocation,
        total_weight: Decimal,
        express: bool,
    ):
        """(base + km * per_km) * peak * weight * express, express split out as a surcharge."""
        km = haversine_km(
            float(config.origin_latitude), float(config.origin_longitude),
            location.latitude, location.longitude,
        )
        distance_km = round(km, 2)
        max_km = Decimal(config.max_delivery_distance_km)
        if Decimal(str(km)) > max_km:
            raise VendorQuoteError(
                VendorQuoteErrorCode.OUT_OF_RANGE,
                f"Delivery not available beyond {max_km}km radius",
                distance_km=distance_km,
            )

        base_rate = Decimal(config.base_rate)
        distance_rate = Decimal(str(km)) * Decimal(config.per_km_rate)

        now = self.clock()
        if now.tzinfo is not None:
            now = now.astimezone(self.tz)
        peak = Decimal(config.peak_hour_multiplier) if is_peak_hour(config.peak_hours, now) else ONE

        weight_multiplier = ONE
        base_weight = Decimal(config.base_weight_kg)
        if config.weight_pricing_enabled and total_weight > base_weight:
            weight_multiplier = ONE + (total_weight - base_weight) * Decimal(config.additional_weight_rate) / 100

        express_applied = express and config.express_enabled
        express_multiplier = Decimal(config.express_multiplier) if express_applied else ONE

        standard = quantize_money((base_rate + distance_rate) * peak * weight_multiplier)
        with_express = quantize_money(standard * express_multiplier)

        breakdown = {
            "distance_km": distance_km,
            "base_rate": float(base_rate),
            "distance_rate": float(quantize_money(distance_rate)),
            "peak_hour_multiplier": float(peak),
            "weight_multiplier": float(weight_multiplier),
            "express_multiplier": float(express_multiplier),
        }
        return standard, with_express - standard, express_applied, breakdown, distance_km
