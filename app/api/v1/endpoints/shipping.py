"""
Shipping API endpoints.

Handles multi-vendor shipping:
- Cart quote (per-vendor charges and total)
- Single-vendor cost estimate
- Vendor shipping configuration
"""
import logging

from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB, CurrentUser, QuoteSessions, RateEngine, Resolver
from app.schemas.serviceability import ResolvedLocation
from app.schemas.shipping import (
    CartQuote,
    CartQuoteRequest,
    EstimateCostRequest,
    LocationInput,
    VendorQuote,
    VendorShippingConfigResponse,
    VendorShippingConfigUpdate,
)
from app.services.location_resolver import LocationResolver
from app.services.quote_session import QuoteSupersededError
from app.services.vendor_shipping_service import (
    PlatformConfigReadOnlyError,
    VendorNotFoundError,
    VendorShippingService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shipping", tags=["Shipping"])


async def _resolve_location(body: LocationInput, resolver: LocationResolver) -> ResolvedLocation:
    """A client-supplied location wins over server-side pincode resolution."""
    if body.location is not None:
        return body.location

    location = await resolver.resolve(body.pincode)
    if location is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "UNRESOLVED_LOCATION",
                "message": "Invalid pincode or location not found",
            },
        )
    return location


# ==================== Quotes ====================

@router.post(
    "/quote",
    response_model=CartQuote,
    summary="Quote shipping for a multi-vendor cart",
    description="""
    Groups the cart by vendor and prices each group independently.

    Vendors that cannot ship stay in vendor_quotes with an error_code and
    contribute nothing to total; partial=true flags such quotes.
    A newer request with the same checkout_session_id cancels this one (409).
    """
)
async def quote_cart(
    data: CartQuoteRequest,
    resolver: Resolver,
    engine: RateEngine,
    sessions: QuoteSessions,
):
    location = await _resolve_location(data, resolver)

    try:
        return await sessions.run(
            data.checkout_session_id,
            engine.quote(data.cart, location, express=data.express),
        )
    except QuoteSupersededError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post(
    "/estimate-cost",
    response_model=VendorQuote,
    summary="Estimate shipping for one vendor",
)
async def estimate_cost(
    data: EstimateCostRequest,
    resolver: Resolver,
    engine: RateEngine,
):
    location = await _resolve_location(data, resolver)
    return await engine.estimate(
        data.vendor_id,
        location,
        order_value=data.order_value,
        total_weight=data.total_weight,
        express=data.express,
    )


# ==================== Vendor Configuration ====================

@router.get(
    "/config/{vendor_id}",
    response_model=VendorShippingConfigResponse,
    summary="Get a vendor's shipping configuration",
)
async def get_shipping_config(
    vendor_id: str,
    db: DB,
    current_user: CurrentUser,
):
    if not current_user.can_manage_vendor(vendor_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed for this vendor")

    try:
        return await VendorShippingService(db).get_config(vendor_id)
    except VendorNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.put(
    "/config/{vendor_id}",
    response_model=VendorShippingConfigResponse,
    summary="Update a vendor's shipping configuration",
)
async def update_shipping_config(
    vendor_id: str,
    data: VendorShippingConfigUpdate,
    db: DB,
    current_user: CurrentUser,
):
    if not current_user.can_manage_vendor(vendor_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed for this vendor")

    try:
        return await VendorShippingService(db).update_config(vendor_id, data)
    except VendorNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PlatformConfigReadOnlyError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
