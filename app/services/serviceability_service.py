"""
Serviceability Service.

Decides whether a resolved location can be delivered to, and on what terms.

Ordered tiers, first decisive tier wins:
1. Allow-list override  - deliverable iff the pincode is listed
2. Deny-list override   - listed pincode is never deliverable
3. Pincode registry     - exact code (a disabled record blocks delivery)
4. Serviceable area     - state + district defaults
5. Default root region  - metro/non-metro estimate for supported states
6. Not deliverable
"""
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, List, Iterable

from app.config import settings
from app.core.location_names import canonical_state, normalize_district, states_match
from app.models.product import Product
from app.models.vendor import Vendor
from app.schemas.base import quantize_money
from app.schemas.serviceability import (
    ResolvedLocation,
    ServiceabilityOverrides,
    ServiceabilityReason,
    ServiceabilityResult,
)
from app.services.serviceable_area_registry import ServiceableAreaRegistry

logger = logging.getLogger(__name__)


OUT_OF_REGION_DELIVERY_DAYS = 7


class NotServiceableError(Exception):
    """Raised by callers that need an exception instead of a negative result."""

    def __init__(self, location: ResolvedLocation, result: ServiceabilityResult):
        self.location = location
        self.result = result
        super().__init__(f"{location.pincode}: {result.message}")


def is_supported_region(state: str, supported_regions: Optional[Iterable[str]] = None) -> bool:
    regions = supported_regions if supported_regions is not None else settings.SUPPORTED_ROOT_REGIONS
    return any(states_match(state, region) for region in regions)


def estimate_delivery_days(
    state: str,
    district: str,
    supported_regions: Optional[Iterable[str]] = None,
    metro_districts: Optional[Iterable[str]] = None,
) -> int:
    """2 days for metro districts, 4 elsewhere in a supported state, 7 outside."""
    if not is_supported_region(state, supported_regions):
        return OUT_OF_REGION_DELIVERY_DAYS
    metros = metro_districts if metro_districts is not None else settings.METRO_DISTRICTS
    if normalize_district(district) in {normalize_district(m) for m in metros}:
        return 2
    return 4


def overrides_for_product(product: Optional[Product]) -> Optional[ServiceabilityOverrides]:
    if product is None:
        return None
    return ServiceabilityOverrides.from_lists(
        product.custom_service_pincodes, product.exclude_pincodes
    )


def overrides_for_vendor(vendor: Optional[Vendor]) -> Optional[ServiceabilityOverrides]:
    if vendor is None:
        return None
    return ServiceabilityOverrides.from_lists(vendor.allowed_pincodes, vendor.excluded_pincodes)


def apply_product_terms(result: ServiceabilityResult, product: Product) -> ServiceabilityResult:
    """Product base rate replaces the charge; the delivery-day range caps the estimate upward."""
    if not result.deliverable:
        return result
    updates = {}
    if product.base_shipping_rate and Decimal(product.base_shipping_rate) > 0:
        updates["base_charge"] = quantize_money(product.base_shipping_rate)
    day_bounds = [d for d in (product.min_delivery_days, product.max_delivery_days) if d]
    if day_bounds:
        updates["estimated_days"] = max(day_bounds)
    if not product.express_delivery_available:
        updates["express"] = False
    return result.model_copy(update=updates)


# ==================== Tiers ====================

class ServiceabilityTier(ABC):
    """One step of the policy. Returns None when it has no opinion."""

    name: str = "tier"

    @abstractmethod
    async def try_resolve(
        self,
        location: ResolvedLocation,
        overrides: ServiceabilityOverrides,
    ) -> Optional[ServiceabilityResult]:
        pass


class AllowListTier(ServiceabilityTier):
    """Decisive whenever an allow-list is configured. Terms come from the remaining tiers."""

    name = "allow_list"

    def __init__(self, terms_tiers: List[ServiceabilityTier], fallback_terms):
        self.terms_tiers = terms_tiers
        self.fallback_terms = fallback_terms

    async def try_resolve(self, location, overrides):
        if overrides.allow is None:
            return None

        if location.pincode not in overrides.allow:
            return ServiceabilityResult(
                deliverable=False,
                reason=ServiceabilityReason.NOT_IN_ALLOW_LIST,
                message="Sorry, we do not deliver to this pincode for this item.",
                tier=self.name,
            )

        terms = None
        for tier in self.terms_tiers:
            candidate = await tier.try_resolve(location, overrides)
            if candidate is not None and candidate.deliverable:
                terms = candidate
                break
        if terms is None:
            terms = self.fallback_terms(location)

        return terms.model_copy(update={
            "deliverable": True,
            "reason": ServiceabilityReason.ALLOW_LIST,
            "tier": self.name,
            "message": f"Delivery available to {location.area}, {location.district}",
        })


class DenyListTier(ServiceabilityTier):
    name = "deny_list"

    async def try_resolve(self, location, overrides):
        if location.pincode in overrides.deny:
            return ServiceabilityResult(
                deliverable=False,
                reason=ServiceabilityReason.EXCLUDED,
                message="Delivery is not available for this pincode for this item.",
                tier=self.name,
            )
        return None


class PincodeTier(ServiceabilityTier):
    name = "pincode"

    def __init__(self, registry: ServiceableAreaRegistry):
        self.registry = registry

    async def try_resolve(self, location, overrides):
        record = await self.registry.get_pincode(location.pincode)
        if record is None:
            return None
        if not record.delivery_available:
            return ServiceabilityResult(
                deliverable=False,
                reason=ServiceabilityReason.PINCODE_DISABLED,
                message="Delivery is currently not available for this pincode",
                tier=self.name,
            )
        return ServiceabilityResult(
            deliverable=True,
            reason=ServiceabilityReason.PINCODE,
            message=f"Delivery available to {location.area}, {location.district}",
            tier=self.name,
            estimated_days=record.estimated_delivery_days,
            base_charge=quantize_money(record.shipping_charge),
            cod=record.cash_on_delivery,
            express=record.express_delivery,
        )


class ServiceableAreaTier(ServiceabilityTier):
    name = "serviceable_area"

    def __init__(self, registry: ServiceableAreaRegistry):
        self.registry = registry

    async def try_resolve(self, location, overrides):
        area = await self.registry.find_area(location.state, location.district)
        if area is None:
            return None
        return ServiceabilityResult(
            deliverable=True,
            reason=ServiceabilityReason.SERVICEABLE_AREA,
            message=f"Delivery available to {location.area}, {location.district}",
            tier=self.name,
            estimated_days=area.default_delivery_days,
            base_charge=quantize_money(area.default_shipping_charge),
            cod=area.cash_on_delivery,
            express=area.express_delivery,
        )


class DefaultRegionTier(ServiceabilityTier):
    name = "default_region"

    def __init__(
        self,
        supported_regions: List[str],
        metro_districts: List[str],
        metro_rate: Optional[Decimal] = None,
        base_rate: Optional[Decimal] = None,
    ):
        self.supported_regions = supported_regions
        self.metro_districts = metro_districts
        self.metro_rate = quantize_money(
            settings.METRO_SHIPPING_RATE if metro_rate is None else metro_rate
        )
        self.base_rate = quantize_money(
            settings.DEFAULT_BASE_SHIPPING_RATE if base_rate is None else base_rate
        )

    def terms(self, location: ResolvedLocation) -> ServiceabilityResult:
        days = estimate_delivery_days(
            location.state, location.district, self.supported_regions, self.metro_districts
        )
        return ServiceabilityResult(
            deliverable=True,
            reason=ServiceabilityReason.DEFAULT_REGION,
            message=f"Delivery available to {location.area}, {location.district}",
            tier=self.name,
            estimated_days=days,
            base_charge=self.metro_rate if days <= 2 else self.base_rate,
            cod=True,
            express=days <= 4,
        )

    async def try_resolve(self, location, overrides):
        if not is_supported_region(location.state, self.supported_regions):
            return None
        return self.terms(location)


# ==================== Policy ====================

class ServiceabilityPolicy:
    """
    Runs the tier chain for a location.

    Usage:
        policy = ServiceabilityPolicy(ServiceableAreaRegistry(db))
        result = await policy.check(location, overrides)
    """

    def __init__(
        self,
        registry: ServiceableAreaRegistry,
        supported_regions: Optional[List[str]] = None,
        metro_districts: Optional[List[str]] = None,
    ):
        self.registry = registry
        self.supported_regions = [
            canonical_state(r) for r in (supported_regions or settings.SUPPORTED_ROOT_REGIONS)
        ]
        self.metro_districts = list(metro_districts or settings.METRO_DISTRICTS)

        default_tier = DefaultRegionTier(self.supported_regions, self.metro_districts)
        terms_tiers: List[ServiceabilityTier] = [
            PincodeTier(registry),
            ServiceableAreaTier(registry),
            default_tier,
        ]
        self.tiers: List[ServiceabilityTier] = [
            AllowListTier(terms_tiers, default_tier.terms),
            DenyListTier(),
            *terms_tiers,
        ]

    async def check(
        self,
        location: ResolvedLocation,
        overrides: Optional[ServiceabilityOverrides] = None,
    ) -> ServiceabilityResult:
        overrides = overrides or ServiceabilityOverrides()

        for tier in self.tiers:
            result = await tier.try_resolve(location, overrides)
            if result is not None:
                logger.debug(
                    f"Serviceability {location.pincode}: {tier.name} -> "
                    f"deliverable={result.deliverable}"
                )
                return result

        return ServiceabilityResult(
            deliverable=False,
            reason=ServiceabilityReason.OUTSIDE_REGION,
            message="Delivery Not Available",
            tier="none",
        )

    async def require(
        self,
        location: ResolvedLocation,
        overrides: Optional[ServiceabilityOverrides] = None,
    ) -> ServiceabilityResult:
        result = await self.check(location, overrides)
        if not result.deliverable:
            raise NotServiceableError(location, result)
        return result
