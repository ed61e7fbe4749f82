# Services module
from app.services.location_resolver import LocationResolver
from app.services.serviceable_area_registry import ServiceableAreaRegistry
from app.services.serviceability_service import ServiceabilityPolicy
from app.services.shipping_rate_engine import ShippingRateEngine
from app.services.quote_session import QuoteSessionManager

__all__ = [
    "LocationResolver",
    "ServiceableAreaRegistry",
    "ServiceabilityPolicy",
    "ShippingRateEngine",
    "QuoteSessionManager",
]
