from pydantic_settings import BaseSettings, NoDecode
from pydantic import field_validator
from typing import Annotated, Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the storefront auth service)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "Storefront Delivery Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    LOCATION_CACHE_TTL_DAYS: int = 30  # Pincode -> location mappings are effectively static
    LOCATION_CACHE_MAX_ENTRIES: int = 10000  # Bound for the in-memory backend

    # Google Maps Geocoding / Places API
    GOOGLE_MAPS_API_KEY: str = ""
    GEOCODING_REGION: str = "in"  # Region bias for geocoding queries
    GEOCODING_COUNTRY_HINT: str = "India"  # Appended on the second geocoding attempt
    GEOCODING_TIMEOUT_SECONDS: float = 5.0  # Per provider call
    DEFAULT_COUNTRY: str = "India"

    # Serviceability
    SUPPORTED_ROOT_REGIONS: Annotated[list[str], NoDecode] = ["Karnataka"]
    METRO_DISTRICTS: Annotated[list[str], NoDecode] = ["Bangalore", "Bengaluru", "Mysore", "Hubli"]
    # State -> numeric pincode prefixes + approximate centroid, used when geocoding fails
    PINCODE_PREFIX_REGIONS: dict[str, dict] = {
        "Karnataka": {
            "prefixes": ["56", "57", "58", "59"],
            "latitude": 15.3173,
            "longitude": 75.7139,
        },
    }

    # Shipping
    CURRENCY: str = "INR"
    DEFAULT_FREE_SHIPPING_THRESHOLD: float = 999
    DEFAULT_BASE_SHIPPING_RATE: float = 50  # Default-region charge outside metro districts
    METRO_SHIPPING_RATE: float = 30  # Default-region charge for 2-day metro delivery
    PLATFORM_BASE_SHIPPING_RATE: float = 30  # Products not tagged to any vendor
    EXPRESS_SURCHARGE: float = 50
    TIMEZONE: str = "Asia/Kolkata"  # Peak hours are evaluated in this timezone

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    CACHE_CLEANUP_INTERVAL_MINUTES: int = 60

    @field_validator('CORS_ORIGINS', 'SUPPORTED_ROOT_REGIONS', 'METRO_DISTRICTS', mode='before')
    @classmethod
    def parse_string_list(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(',') if item.strip()]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
