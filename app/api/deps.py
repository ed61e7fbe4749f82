from typing import Annotated, Optional
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import verify_access_token, ROLE_ADMIN, ROLE_VENDOR
from app.services.geocoding_provider import GeocodingProvider, GoogleGeocodingProvider
from app.services.location_resolver import LocationResolver
from app.services.quote_session import QuoteSessionManager, get_quote_session_manager
from app.services.serviceable_area_registry import ServiceableAreaRegistry
from app.services.serviceability_service import ServiceabilityPolicy
from app.services.shipping_rate_engine import ShippingRateEngine


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


class CallerIdentity(BaseModel):
    """Caller identity from the access token claims."""
    user_id: str
    role: str
    vendor_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def can_manage_vendor(self, vendor_id: str) -> bool:
        return self.is_admin or (self.role == ROLE_VENDOR and self.vendor_id == vendor_id)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> CallerIdentity:
    """
    Dependency to get the current caller.
    Validates the JWT token and returns the identity from its claims.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    claims = verify_access_token(credentials.credentials)
    if claims is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    return CallerIdentity(
        user_id=str(claims["sub"]),
        role=claims["role"],
        vendor_id=claims.get("vendor_id"),
    )


def require_role(*roles: str):
    """
    Dependency factory to require one of the given roles.

    Usage:
        @router.post("/areas", dependencies=[Depends(require_role("admin"))])
        async def upsert_area():
            ...
    """
    async def role_dependency(
        user: Annotated[CallerIdentity, Depends(get_current_user)]
    ) -> CallerIdentity:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied. Required role: {' or '.join(roles)}"
            )
        return user

    return role_dependency


require_admin = require_role(ROLE_ADMIN)


# ==================== Service dependencies ====================

_geocoding_provider: Optional[GeocodingProvider] = None


def get_geocoding_provider() -> GeocodingProvider:
    global _geocoding_provider
    if _geocoding_provider is None:
        _geocoding_provider = GoogleGeocodingProvider()
    return _geocoding_provider


def get_location_resolver(
    provider: Annotated[GeocodingProvider, Depends(get_geocoding_provider)],
) -> LocationResolver:
    return LocationResolver(provider=provider)


def get_registry(db: Annotated[AsyncSession, Depends(get_db)]) -> ServiceableAreaRegistry:
    """Request-scoped registry; its memo lives as long as the request."""
    return ServiceableAreaRegistry(db)


def get_policy(
    registry: Annotated[ServiceableAreaRegistry, Depends(get_registry)],
) -> ServiceabilityPolicy:
    return ServiceabilityPolicy(registry)


def get_rate_engine(
    db: Annotated[AsyncSession, Depends(get_db)],
    registry: Annotated[ServiceableAreaRegistry, Depends(get_registry)],
    policy: Annotated[ServiceabilityPolicy, Depends(get_policy)],
) -> ShippingRateEngine:
    return ShippingRateEngine(db, registry=registry, policy=policy)


def get_quote_sessions() -> QuoteSessionManager:
    return get_quote_session_manager()


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[CallerIdentity, Depends(get_current_user)]
AdminUser = Annotated[CallerIdentity, Depends(require_admin)]
Resolver = Annotated[LocationResolver, Depends(get_location_resolver)]
Registry = Annotated[ServiceableAreaRegistry, Depends(get_registry)]
Policy = Annotated[ServiceabilityPolicy, Depends(get_policy)]
RateEngine = Annotated[ShippingRateEngine, Depends(get_rate_engine)]
QuoteSessions = Annotated[QuoteSessionManager, Depends(get_quote_sessions)]
