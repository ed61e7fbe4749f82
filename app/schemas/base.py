"""
Base Schema Classes for Pydantic Models

This module provides base classes that handle common patterns like UUID and
money serialization, ensuring consistency across all response schemas.

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer


TWO_PLACES = Decimal("0.01")


def quantize_money(value) -> Decimal:
    """Fixed-point money at 2 decimal places."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


# Decimal internally, JSON number on the wire
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]

PincodeStr = Annotated[str, Field(pattern=r"^\d{6}$", description="6-digit pincode")]


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Features:
    - Enables from_attributes for ORM compatibility
    - Consistent datetime serialization

    Usage:
        class PincodeResponse(BaseResponseSchema):
            id: UUID
            pincode: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    No from_attributes needed since these don't read from ORM.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional by default for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


# Type aliases for common UUID patterns
OptionalUUID = Optional[UUID]
