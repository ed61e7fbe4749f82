"""
Cache Management Jobs

Background jobs for the location cache:
- Purging expired in-memory entries
- Warming popular pincodes so checkout lookups skip the geocoder
"""

import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# High-traffic Karnataka pincodes
POPULAR_PINCODES = [
    # Bangalore
    "560001", "560002", "560003", "560004", "560005",
    "560008", "560009", "560010", "560011", "560034",
    # Mysore
    "570001", "570002", "570004",
    # Hubli-Dharwad
    "580020", "580021", "580001",
    # Mangalore
    "575001", "575002",
    # Belgaum
    "590001",
]


async def cleanup_location_cache() -> int:
    """Remove expired location entries from the in-memory cache backend."""
    from app.services.cache_service import get_cache

    removed = await get_cache().cleanup_expired()
    if removed:
        logger.info(f"Location cache cleanup removed {removed} expired entries")
    return removed


async def warm_popular_pincodes() -> dict:
    """
    Resolve popular pincodes so their locations are cached.

    Pincodes that resolve only through the prefix fallback are not cached.
    """
    from app.services.location_resolver import LocationResolver

    logger.info("Starting popular pincodes cache warming...")
    start_time = datetime.now(timezone.utc)
    resolver = LocationResolver()
    resolved = 0
    approximate = 0

    for pincode in POPULAR_PINCODES:
        location = await resolver.resolve(pincode)
        if location is None:
            continue
        if location.is_approximate:
            approximate += 1
        else:
            resolved += 1

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Cache warming completed: {resolved} cached, {approximate} approximate "
        f"of {len(POPULAR_PINCODES)} in {duration:.2f}s"
    )
    return {"resolved": resolved, "approximate": approximate, "total": len(POPULAR_PINCODES)}
