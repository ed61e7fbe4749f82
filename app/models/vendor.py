"""Vendor (shop) models with embedded shipping configuration.

Supports:
- Simple flat-rate shipping per vendor (base rate, free threshold, enabled flag)
- Vendor-level pincode allow/deny lists
- Optional distance-based rate configuration (per-km, weight, peak hours, express)
"""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from app.models.product import Product


class Vendor(Base):
    """
    Vendor/shop master model.
    An independent seller whose items carry their own shipping policy.
    """
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Simple shipping configuration
    base_shipping_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
        comment="Flat shipping charge; NULL means the vendor has not configured one"
    )
    free_shipping_threshold: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("999"),
        comment="Order value at or above which shipping is waived"
    )
    is_shipping_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    # Vendor-level restrictions
    allowed_pincodes: Mapped[List[str]] = mapped_column(
        JSONType,
        default=list,
        comment="If non-empty, the vendor ships only to these pincodes"
    )
    excluded_pincodes: Mapped[List[str]] = mapped_column(JSONType, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    shipping_config: Mapped[Optional["VendorShippingConfig"]] = relationship(
        "VendorShippingConfig",
        back_populates="vendor",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    products: Mapped[List["Product"]] = relationship("Product", back_populates="vendor")

    def __repr__(self) -> str:
        return f"<Vendor(id={self.id}, name={self.name})>"


class VendorShippingConfig(Base):
    """
    Distance-based shipping rates for a vendor.

    charge = (base_rate + km * per_km_rate) * peak * weight * express
    """
    __tablename__ = "vendor_shipping_configs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("vendors.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True
    )

    # Pricing
    base_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("50"))
    per_km_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("5"))
    max_delivery_distance_km: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("100"))

    # Time-based pricing
    peak_hour_multiplier: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("1.2"))
    peak_hours: Mapped[List[dict]] = mapped_column(
        JSONType,
        default=list,
        comment='[{"start": "HH:MM", "end": "HH:MM"}]'
    )

    # Weight-based pricing
    weight_pricing_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    base_weight_kg: Mapped[Decimal] = mapped_column(Numeric(10, 3), default=Decimal("1"))
    additional_weight_rate: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("10"),
        comment="Percent surcharge per kg above base weight"
    )

    # Express delivery
    express_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    express_multiplier: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("1.5"))

    # Origin (vendor dispatch location)
    origin_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    origin_latitude: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)
    origin_longitude: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)
    origin_pincode: Mapped[Optional[str]] = mapped_column(String(6), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    vendor: Mapped["Vendor"] = relationship("Vendor", back_populates="shipping_config")

    def __repr__(self) -> str:
        return f"<VendorShippingConfig(vendor={self.vendor_id})>"
