"""
Shipping Schemas.

Covers:
1. Cart quote - Multi-vendor shipping quote request/response
2. Estimate cost - Single-vendor convenience quote
3. Vendor shipping configuration - Flat and distance-based rates
"""
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.schemas.base import BaseCreateSchema, BaseUpdateSchema, Money, PincodeStr
from app.schemas.serviceability import ResolvedLocation


# ==================== Status Codes ====================

class VendorQuoteStatus(str, Enum):
    OK = "OK"
    FAILED = "FAILED"


class VendorQuoteErrorCode(str, Enum):
    VENDOR_NOT_FOUND = "VENDOR_NOT_FOUND"
    SHIPPING_DISABLED = "SHIPPING_DISABLED"
    NOT_SERVICEABLE = "NOT_SERVICEABLE"
    OUT_OF_RANGE = "OUT_OF_RANGE"


PLATFORM_VENDOR_ID = "platform"


# ==================== Cart ====================

class LineItem(BaseModel):
    """One cart line, tagged with the vendor that ships it."""
    vendor_id: str = Field(..., min_length=1, description="Vendor UUID or 'platform'")
    product_id: Optional[UUID] = None
    name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    weight_kg: Optional[Decimal] = Field(None, gt=0, description="Per unit; 1 kg when omitted")


class LocationInput(BaseModel):
    """Either a pincode to resolve server-side or an already resolved location."""
    pincode: Optional[PincodeStr] = None
    location: Optional[ResolvedLocation] = None

    @model_validator(mode="after")
    def require_pincode_or_location(self):
        if self.pincode is None and self.location is None:
            raise ValueError("Either pincode or location is required")
        return self


class CartQuoteRequest(LocationInput):
    """Request a shipping quote for a multi-vendor cart."""
    cart: List[LineItem] = Field(default_factory=list)
    express: bool = False
    checkout_session_id: Optional[str] = Field(
        None,
        max_length=128,
        description="A newer quote for the same session cancels this one"
    )


class EstimateCostRequest(LocationInput):
    """Single-vendor shipping estimate."""
    vendor_id: str = Field(..., min_length=1)
    order_value: Decimal = Field(..., ge=0)
    total_weight: Decimal = Field(default=Decimal("1"), gt=0)
    express: bool = False


# ==================== Quotes ====================

class VendorQuote(BaseModel):
    """Shipping quote for one vendor's slice of the cart."""
    vendor_id: str
    vendor_name: Optional[str] = None
    status: VendorQuoteStatus = VendorQuoteStatus.OK
    success: bool = True
    charge: Money = Decimal("0.00")
    base_charge: Money = Decimal("0.00")
    express_surcharge: Money = Decimal("0.00")
    order_value: Money = Decimal("0.00")
    total_weight: float = 0
    free_shipping: bool = False
    free_shipping_threshold: Optional[Money] = None
    shipping_disabled: bool = False
    express_applied: bool = False
    estimated_days: Optional[int] = None
    distance_km: Optional[float] = None
    cod_available: Optional[bool] = None
    pricing_model: Optional[str] = Field(None, description="FLAT or DISTANCE")
    error_code: Optional[VendorQuoteErrorCode] = None
    message: str = ""
    items: List[LineItem] = Field(default_factory=list)
    breakdown: Dict[str, Any] = Field(default_factory=dict)


class CartQuote(BaseModel):
    """Aggregated multi-vendor quote. total sums successful vendor quotes only."""
    pincode: str
    currency: str
    vendor_quotes: List[VendorQuote]
    total: Money
    partial: bool
    location: Optional[ResolvedLocation] = None


# ==================== Vendor Configuration ====================

class PeakWindow(BaseModel):
    start: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class DistanceRateConfig(BaseCreateSchema):
    """Distance-based rates. Presence of an active config switches the vendor off flat pricing."""
    base_rate: Decimal = Field(default=Decimal("50"), ge=0)
    per_km_rate: Decimal = Field(default=Decimal("5"), ge=0)
    max_delivery_distance_km: Decimal = Field(default=Decimal("100"), ge=1)
    peak_hour_multiplier: Decimal = Field(default=Decimal("1.2"), ge=1)
    peak_hours: List[PeakWindow] = Field(default_factory=list)
    weight_pricing_enabled: bool = False
    base_weight_kg: Decimal = Field(default=Decimal("1"), ge=Decimal("0.1"))
    additional_weight_rate: Decimal = Field(default=Decimal("10"), ge=0)
    express_enabled: bool = True
    express_multiplier: Decimal = Field(default=Decimal("1.5"), ge=1)
    origin_address: Optional[str] = Field(None, max_length=500)
    origin_latitude: float = Field(..., ge=-90, le=90)
    origin_longitude: float = Field(..., ge=-180, le=180)
    origin_pincode: Optional[PincodeStr] = None
    is_active: bool = True


class VendorShippingConfigUpdate(BaseUpdateSchema):
    """Partial update of a vendor's shipping configuration."""
    base_shipping_rate: Optional[Decimal] = Field(None, ge=0)
    free_shipping_threshold: Optional[Decimal] = Field(None, ge=0)
    is_shipping_enabled: Optional[bool] = None
    allowed_pincodes: Optional[List[PincodeStr]] = None
    excluded_pincodes: Optional[List[PincodeStr]] = None
    distance_rates: Optional[DistanceRateConfig] = None


class VendorShippingConfigResponse(BaseModel):
    vendor_id: str
    vendor_name: Optional[str] = None
    base_shipping_rate: Optional[Money] = None
    free_shipping_threshold: Money
    is_shipping_enabled: bool
    needs_configuration: bool = False
    allowed_pincodes: List[str] = Field(default_factory=list)
    excluded_pincodes: List[str] = Field(default_factory=list)
    distance_rates: Optional[DistanceRateConfig] = None
