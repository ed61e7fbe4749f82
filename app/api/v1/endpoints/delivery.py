"""
Delivery API Endpoints.

Covers:
1. Pincode delivery check (public)
2. Product-specific delivery check (public)
3. Place id lookup and free-text location search (public)
4. Serviceable area and pincode management (admin)
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.api.deps import DB, AdminUser, Policy, Registry, Resolver
from app.models.product import Product
from app.schemas.serviceability import (
    DeliveryCheckData,
    DeliveryCheckResponse,
    LocationSearchResponse,
    PincodeCreate,
    PincodeList,
    PincodeResponse,
    ResolvedLocation,
    ServiceabilityOverrides,
    ServiceabilityResult,
    ServiceableAreaCreate,
    ServiceableAreaList,
    ServiceableAreaResponse,
)
from app.services.location_resolver import (
    InvalidPincodeError,
    InvalidSearchQueryError,
    validate_pincode,
)
from app.services.serviceability_service import (
    apply_product_terms,
    overrides_for_product,
    overrides_for_vendor,
)

router = APIRouter(prefix="/delivery", tags=["Delivery"])


UNRESOLVED_LOCATION = "UNRESOLVED_LOCATION"
UNRESOLVED_MESSAGE = "Invalid pincode or location not found"


def _check_pincode_format(pincode: str) -> None:
    try:
        validate_pincode(pincode)
    except InvalidPincodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide a valid 6-digit pincode"
        )


def _unresolved_response() -> JSONResponse:
    body = DeliveryCheckResponse(
        success=False,
        deliverable=False,
        message=UNRESOLVED_MESSAGE,
        error=UNRESOLVED_LOCATION,
    )
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=body.model_dump(mode="json", exclude_none=True),
    )


def _build_response(
    location: ResolvedLocation,
    result: ServiceabilityResult,
    **extra,
) -> DeliveryCheckResponse:
    """Location only when rejected; location plus terms when deliverable."""
    data = DeliveryCheckData(**location.model_dump(), **extra)
    if result.deliverable:
        data.estimated_delivery_days = result.estimated_days
        data.shipping_charge = result.base_charge
        data.cash_on_delivery = result.cod
        data.express_delivery = result.express

    return DeliveryCheckResponse(
        success=result.deliverable,
        deliverable=result.deliverable,
        message=result.message,
        reason=result.reason,
        data=data,
    )


# ==================== Public Endpoints ====================

@router.get(
    "/check/{pincode}",
    response_model=DeliveryCheckResponse,
    response_model_exclude_none=True,
    summary="Check pincode delivery availability",
    description="""
    Resolve a pincode and decide whether we deliver there.

    - 400: not a 6-digit pincode
    - 404: pincode could not be resolved (error=UNRESOLVED_LOCATION)
    - 200 with deliverable=false: resolved, but not served (data shows where)
    - 200 with deliverable=true: data includes days, charge, COD and express
    """
)
async def check_pincode_delivery(
    pincode: str,
    resolver: Resolver,
    policy: Policy,
):
    _check_pincode_format(pincode)

    location = await resolver.resolve(pincode)
    if location is None:
        return _unresolved_response()

    result = await policy.check(location)
    return _build_response(location, result)


@router.post(
    "/check/{product_id}/{pincode}",
    response_model=DeliveryCheckResponse,
    response_model_exclude_none=True,
    summary="Check delivery for a product",
    description="Applies the product's and its vendor's pincode restrictions, base rate and delivery-day range."
)
async def check_product_delivery(
    product_id: UUID,
    pincode: str,
    db: DB,
    resolver: Resolver,
    policy: Policy,
):
    _check_pincode_format(pincode)

    location = await resolver.resolve(pincode)
    if location is None:
        return _unresolved_response()

    result = await db.execute(
        select(Product)
        .options(selectinload(Product.vendor))
        .where(Product.id == product_id, Product.is_active == True)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    overrides = ServiceabilityOverrides.merge(
        overrides_for_vendor(product.vendor),
        overrides_for_product(product),
    )
    check = apply_product_terms(await policy.check(location, overrides), product)
    return _build_response(
        location,
        check,
        product_id=product.id,
        use_custom_pincodes=bool(product.custom_service_pincodes),
    )


@router.get(
    "/place/{place_id}",
    response_model=DeliveryCheckResponse,
    response_model_exclude_none=True,
    summary="Resolve a place id and check delivery",
)
async def check_place_delivery(
    place_id: str,
    resolver: Resolver,
    policy: Policy,
):
    location = await resolver.resolve_place(place_id)
    if location is None:
        return _unresolved_response()

    result = await policy.check(location)
    return _build_response(location, result)


@router.get(
    "/search",
    response_model=LocationSearchResponse,
    summary="Search locations by free text",
    description="Address suggestions within the configured country. Check one via /place/{place_id}.",
)
async def search_locations(
    resolver: Resolver,
    query: str = Query("", description="Address, area or landmark (at least 3 characters)"),
):
    try:
        suggestions = await resolver.search(query)
    except InvalidSearchQueryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return LocationSearchResponse(data=suggestions)


# ==================== Serviceable Areas (Admin) ====================

@router.post(
    "/areas",
    response_model=ServiceableAreaResponse,
    summary="Create or update a serviceable area",
)
async def upsert_serviceable_area(
    data: ServiceableAreaCreate,
    registry: Registry,
    current_user: AdminUser,
):
    return await registry.upsert_area(data)


@router.get(
    "/areas",
    response_model=ServiceableAreaList,
    summary="List serviceable areas",
)
async def list_serviceable_areas(
    registry: Registry,
    current_user: AdminUser,
):
    areas = await registry.list_areas()
    return ServiceableAreaList(
        items=[ServiceableAreaResponse.model_validate(a) for a in areas],
        total=len(areas),
    )


@router.post(
    "/areas/initialize",
    response_model=ServiceableAreaResponse,
    summary="Seed the default Karnataka serviceable area",
)
async def initialize_serviceable_areas(
    registry: Registry,
    current_user: AdminUser,
):
    area, _ = await registry.initialize_default_areas()
    return area


# ==================== Pincodes (Admin) ====================

@router.post(
    "/pincodes",
    response_model=PincodeResponse,
    summary="Create or update a pincode override",
)
async def upsert_pincode(
    data: PincodeCreate,
    registry: Registry,
    current_user: AdminUser,
):
    return await registry.upsert_pincode(data)


@router.get(
    "/pincodes",
    response_model=PincodeList,
    summary="List pincode overrides",
)
async def list_pincodes(
    registry: Registry,
    current_user: AdminUser,
    state: Optional[str] = Query(None, description="Filter by state"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    items, total = await registry.list_pincodes(state=state, skip=skip, limit=limit)
    return PincodeList(
        items=[PincodeResponse.model_validate(p) for p in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.delete(
    "/pincodes/{pincode}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a pincode override",
)
async def delete_pincode(
    pincode: str,
    registry: Registry,
    current_user: AdminUser,
):
    _check_pincode_format(pincode)
    if not await registry.delete_pincode(pincode):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pincode not found")
