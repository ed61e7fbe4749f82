"""
Vendor Shipping Configuration Service.

Reads and updates a vendor's flat shipping terms, pincode restrictions and
optional distance-based rates. The reserved "platform" vendor is read-only:
its terms come from settings.
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.vendor import Vendor, VendorShippingConfig
from app.schemas.shipping import (
    DistanceRateConfig,
    PLATFORM_VENDOR_ID,
    VendorShippingConfigResponse,
    VendorShippingConfigUpdate,
)

logger = logging.getLogger(__name__)


class VendorNotFoundError(Exception):
    pass


class PlatformConfigReadOnlyError(Exception):
    pass


class VendorShippingService:
    """Service for vendor shipping configuration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_vendor(self, vendor_id: str) -> Vendor:
        try:
            vendor_uuid = uuid.UUID(vendor_id)
        except ValueError:
            raise VendorNotFoundError(f"Vendor {vendor_id} not found")

        result = await self.db.execute(select(Vendor).where(Vendor.id == vendor_uuid))
        vendor = result.scalar_one_or_none()
        if vendor is None:
            raise VendorNotFoundError(f"Vendor {vendor_id} not found")
        return vendor

    @staticmethod
    def _to_response(vendor: Vendor) -> VendorShippingConfigResponse:
        config = vendor.shipping_config
        distance_rates = None
        if config is not None:
            distance_rates = DistanceRateConfig(
                base_rate=config.base_rate,
                per_km_rate=config.per_km_rate,
                max_delivery_distance_km=config.max_delivery_distance_km,
                peak_hour_multiplier=config.peak_hour_multiplier,
                peak_hours=config.peak_hours or [],
                weight_pricing_enabled=config.weight_pricing_enabled,
                base_weight_kg=config.base_weight_kg,
                additional_weight_rate=config.additional_weight_rate,
                express_enabled=config.express_enabled,
                express_multiplier=config.express_multiplier,
                origin_address=config.origin_address,
                origin_latitude=float(config.origin_latitude),
                origin_longitude=float(config.origin_longitude),
                origin_pincode=config.origin_pincode,
                is_active=config.is_active,
            )
        return VendorShippingConfigResponse(
            vendor_id=str(vendor.id),
            vendor_name=vendor.name,
            base_shipping_rate=vendor.base_shipping_rate,
            free_shipping_threshold=vendor.free_shipping_threshold,
            is_shipping_enabled=vendor.is_shipping_enabled,
            needs_configuration=vendor.base_shipping_rate is None,
            allowed_pincodes=vendor.allowed_pincodes or [],
            excluded_pincodes=vendor.excluded_pincodes or [],
            distance_rates=distance_rates,
        )

    async def get_config(self, vendor_id: str) -> VendorShippingConfigResponse:
        if vendor_id == PLATFORM_VENDOR_ID:
            return VendorShippingConfigResponse(
                vendor_id=PLATFORM_VENDOR_ID,
                vendor_name="Platform",
                base_shipping_rate=Decimal(str(settings.PLATFORM_BASE_SHIPPING_RATE)),
                free_shipping_threshold=Decimal(str(settings.DEFAULT_FREE_SHIPPING_THRESHOLD)),
                is_shipping_enabled=True,
            )
        vendor = await self._get_vendor(vendor_id)
        return self._to_response(vendor)

    async def update_config(
        self,
        vendor_id: str,
        data: VendorShippingConfigUpdate,
    ) -> VendorShippingConfigResponse:
        if vendor_id == PLATFORM_VENDOR_ID:
            raise PlatformConfigReadOnlyError("Platform shipping is configured through settings")

        vendor = await self._get_vendor(vendor_id)
        update_data = data.model_dump(exclude_unset=True, exclude={"distance_rates"})
        for field, value in update_data.items():
            if field in ("free_shipping_threshold", "is_shipping_enabled") and value is None:
                continue
            if field in ("allowed_pincodes", "excluded_pincodes"):
                value = sorted(set(value or []))
            setattr(vendor, field, value)

        if "distance_rates" in data.model_fields_set:
            await self._apply_distance_rates(vendor, data.distance_rates)

        await self.db.flush()
        await self.db.refresh(vendor, attribute_names=["shipping_config"])
        logger.info(f"Updated shipping configuration for vendor {vendor_id}")
        return self._to_response(vendor)

    async def _apply_distance_rates(
        self,
        vendor: Vendor,
        rates: Optional[DistanceRateConfig],
    ) -> None:
        if rates is None:
            if vendor.shipping_config is not None:
                await self.db.delete(vendor.shipping_config)
                vendor.shipping_config = None
            return

        config = vendor.shipping_config
        if config is None:
            config = VendorShippingConfig(vendor_id=vendor.id)
            self.db.add(config)
            vendor.shipping_config = config

        values = rates.model_dump()
        values["peak_hours"] = [dict(w) for w in values["peak_hours"]]
        for field, value in values.items():
            setattr(config, field, value)
