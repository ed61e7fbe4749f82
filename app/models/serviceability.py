"""
Serviceability registry models.

Two independent fallback tiers answer "is this pincode deliverable, and at
what base cost":
1. Pincode - Per-pincode override curated by admins
2. ServiceableArea - State + district list with default delivery terms

Both are read-only to the checkout flow.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from sqlalchemy import String, Boolean, DateTime, Integer, Numeric
from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import JSONType, UUIDType


class Pincode(Base):
    """
    Pincode-level delivery settings.

    Example:
    - 560001 (Bangalore GPO) - 2 days, Rs.30, COD, express
    """
    __tablename__ = "pincodes"
    __table_args__ = (
        Index("ix_pincodes_state", "state"),
        Index("ix_pincodes_delivery_available", "delivery_available"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    pincode: Mapped[str] = mapped_column(
        String(6),
        unique=True,
        nullable=False,
        index=True
    )
    state: Mapped[str] = mapped_column(String(100), nullable=False)

    # Service details
    delivery_available: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_delivery_days: Mapped[int] = mapped_column(
        Integer,
        default=7,
        comment="1-30 days"
    )
    shipping_charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("50"))
    cash_on_delivery: Mapped[bool] = mapped_column(Boolean, default=True)
    express_delivery: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
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

    def __repr__(self) -> str:
        return f"<Pincode(pincode={self.pincode}, state={self.state})>"


class ServiceableArea(Base):
    """
    Admin-curated delivery zone.

    Districts are stored as entered by admins; lookups compare a normalized
    form (see app.core.location_names.normalize_district).
    """
    __tablename__ = "serviceable_areas"
    __table_args__ = (
        Index("ix_serviceable_areas_delivery_available", "delivery_available"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    state: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True
    )
    districts: Mapped[List[str]] = mapped_column(JSONType, default=list)

    delivery_available: Mapped[bool] = mapped_column(Boolean, default=True)
    default_delivery_days: Mapped[int] = mapped_column(Integer, default=7)
    default_shipping_charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("50"))
    cash_on_delivery: Mapped[bool] = mapped_column(Boolean, default=True)
    express_delivery: Mapped[bool] = mapped_column(Boolean, default=False)

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

    def __repr__(self) -> str:
        return f"<ServiceableArea(state={self.state}, districts={len(self.districts or [])})>"
