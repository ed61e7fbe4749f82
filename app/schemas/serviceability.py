"""
Serviceability Schemas.

Covers:
1. ResolvedLocation - Normalized location for a pincode
2. ServiceabilityResult - Policy decision with delivery terms
3. Delivery Check - API request/response
4. Location search - Free-text suggestions
5. Registry admin - Pincode and ServiceableArea create/response
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import (
    BaseCreateSchema,
    BaseResponseSchema,
    Money,
    PincodeStr,
)


# ==================== Reasons ====================

class ServiceabilityReason(str, Enum):
    ALLOW_LIST = "ALLOW_LIST"
    NOT_IN_ALLOW_LIST = "NOT_IN_ALLOW_LIST"
    EXCLUDED = "EXCLUDED"
    PINCODE = "PINCODE"
    PINCODE_DISABLED = "PINCODE_DISABLED"
    SERVICEABLE_AREA = "SERVICEABLE_AREA"
    DEFAULT_REGION = "DEFAULT_REGION"
    OUTSIDE_REGION = "OUTSIDE_REGION"


# ==================== Location ====================

class ResolvedLocation(BaseModel):
    """Normalized location for a pincode. Transient, never persisted."""
    pincode: PincodeStr
    formatted_address: str = ""
    area: str
    district: str
    state: str
    country: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    place_id: Optional[str] = None
    is_approximate: bool = Field(
        default=False,
        description="True when guessed from the pincode prefix rather than geocoded"
    )


# ==================== Policy ====================

class ServiceabilityOverrides(BaseModel):
    """
    Per-product / per-vendor pincode allow and deny lists.

    allow=None means no allow-list is configured; an empty set admits nothing.
    """
    allow: Optional[frozenset[str]] = None
    deny: frozenset[str] = frozenset()

    @classmethod
    def from_lists(
        cls,
        allow: Optional[List[str]] = None,
        deny: Optional[List[str]] = None
    ) -> "ServiceabilityOverrides":
        allow_set = frozenset(p.strip() for p in (allow or []) if p and p.strip())
        deny_set = frozenset(p.strip() for p in (deny or []) if p and p.strip())
        return cls(allow=allow_set or None, deny=deny_set)

    @classmethod
    def merge(cls, *overrides: Optional["ServiceabilityOverrides"]) -> "ServiceabilityOverrides":
        """Intersect the configured allow-lists, union the deny-lists."""
        allow: Optional[frozenset[str]] = None
        deny: frozenset[str] = frozenset()
        for item in overrides:
            if item is None:
                continue
            if item.allow is not None:
                allow = item.allow if allow is None else allow & item.allow
            deny = deny | item.deny
        return cls(allow=allow, deny=deny)


class ServiceabilityResult(BaseModel):
    """Outcome of the serviceability tier chain."""
    deliverable: bool
    reason: ServiceabilityReason
    message: str
    tier: str
    estimated_days: Optional[int] = None
    base_charge: Optional[Money] = None
    cod: bool = False
    express: bool = False


# ==================== Delivery Check API ====================

class DeliveryCheckData(ResolvedLocation):
    """Location plus delivery terms (terms absent when not deliverable)."""
    estimated_delivery_days: Optional[int] = None
    shipping_charge: Optional[Money] = None
    cash_on_delivery: Optional[bool] = None
    express_delivery: Optional[bool] = None
    product_id: Optional[UUID] = None
    use_custom_pincodes: Optional[bool] = None


class DeliveryCheckResponse(BaseModel):
    """Response for pincode delivery checks."""
    success: bool
    deliverable: bool
    message: str
    error: Optional[str] = None
    reason: Optional[ServiceabilityReason] = None
    data: Optional[DeliveryCheckData] = None


# ==================== Location Search ====================

class LocationSuggestion(BaseModel):
    """One free-text search match. Pass place_id to /delivery/place to check it."""
    place_id: Optional[str] = None
    description: str
    main_text: str
    secondary_text: str = ""
    pincode: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class LocationSearchResponse(BaseModel):
    success: bool = True
    data: List[LocationSuggestion]


# ==================== Pincode Registry ====================

class PincodeCreate(BaseCreateSchema):
    """Create or update a pincode override."""
    pincode: PincodeStr
    state: str = Field(..., min_length=2, max_length=100)
    delivery_available: bool = True
    estimated_delivery_days: int = Field(default=7, ge=1, le=30)
    shipping_charge: Decimal = Field(default=Decimal("50"), ge=0)
    cash_on_delivery: bool = True
    express_delivery: bool = False


class PincodeResponse(BaseResponseSchema):
    id: UUID
    pincode: str
    state: str
    delivery_available: bool
    estimated_delivery_days: int
    shipping_charge: Money
    cash_on_delivery: bool
    express_delivery: bool
    created_at: datetime
    updated_at: datetime


class PincodeList(BaseModel):
    items: List[PincodeResponse]
    total: int
    skip: int
    limit: int


# ==================== Serviceable Area Registry ====================

class ServiceableAreaCreate(BaseCreateSchema):
    """Create or update the serviceable area for a state."""
    state: str = Field(..., min_length=2, max_length=100)
    districts: List[str] = Field(default_factory=list)
    delivery_available: bool = True
    default_delivery_days: int = Field(default=7, ge=1, le=30)
    default_shipping_charge: Decimal = Field(default=Decimal("50"), ge=0)
    cash_on_delivery: bool = True
    express_delivery: bool = False

    @field_validator("state")
    @classmethod
    def strip_state(cls, v: str) -> str:
        return v.strip()


class ServiceableAreaResponse(BaseResponseSchema):
    id: UUID
    state: str
    districts: List[str]
    delivery_available: bool
    default_delivery_days: int
    default_shipping_charge: Money
    cash_on_delivery: bool
    express_delivery: bool
    created_at: datetime
    updated_at: datetime


class ServiceableAreaList(BaseModel):
    items: List[ServiceableAreaResponse]
    total: int
