"""Product model (shipping-relevant columns only).

Catalog CRUD lives in the storefront; this service only reads the per-product
shipping overrides.
"""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from app.models.vendor import Vendor


class Product(Base):
    """Product with supplier-specific shipping overrides."""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("vendors.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="NULL for platform-owned products"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Shipping overrides
    base_shipping_rate: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0"),
        comment="0 means use the vendor default"
    )
    weight_kg: Mapped[Decimal] = mapped_column(Numeric(10, 3), default=Decimal("1"))
    min_delivery_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_delivery_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    express_delivery_available: Mapped[bool] = mapped_column(Boolean, default=True)

    # Restrictions
    custom_service_pincodes: Mapped[List[str]] = mapped_column(
        JSONType,
        default=list,
        comment="If set, only these pincodes are served for this product"
    )
    exclude_pincodes: Mapped[List[str]] = mapped_column(JSONType, default=list)

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

    vendor: Mapped[Optional["Vendor"]] = relationship("Vendor", back_populates="products")

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name})>"
