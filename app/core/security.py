from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from app.config import settings


# Roles carried in the "role" claim
ROLE_ADMIN = "admin"
ROLE_VENDOR = "vendor"
ROLE_CUSTOMER = "customer"
VALID_ROLES = {ROLE_ADMIN, ROLE_VENDOR, ROLE_CUSTOMER}


def create_access_token(
    subject: str | uuid.UUID,
    role: str = ROLE_CUSTOMER,
    vendor_id: Optional[str | uuid.UUID] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Tokens are normally issued by the storefront auth service; this helper
    exists for scripts and tests that need a token signed with the shared key.

    Args:
        subject: The subject of the token (usually user ID)
        role: admin, vendor or customer
        vendor_id: Vendor the caller acts for (vendor role)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "jti": str(uuid.uuid4()),
        "type": "access",
        "role": role,
    }
    if vendor_id is not None:
        to_encode["vendor_id"] = str(vendor_id)

    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )
    return encoded_jwt


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
        return payload
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify an access token and return its claims.

    Returns:
        Claims dict or None if the token is invalid, expired, not an access
        token, or carries no subject / unknown role
    """
    payload = decode_token(token)
    if payload is None:
        return None

    if payload.get("type") != "access":
        return None

    if not payload.get("sub") or payload.get("role") not in VALID_ROLES:
        return None

    return payload
