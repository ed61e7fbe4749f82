"""
Location Resolver - Pincode to ResolvedLocation

Resolution chain (first non-None result wins):
1. Geocoding provider, bare pincode
2. Geocoding provider, "<pincode> <country hint>"
3. Pincode prefix heuristic (degraded, is_approximate=True)

Only provider results are cached. A location that cannot be resolved is
reported as None; only malformed input raises.

Free-text search returns provider suggestions only; a suggestion is checked
through its place id.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Sequence

from app.config import settings
from app.core.location_names import canonical_state, display_city_name, STATE_ALIASES
from app.schemas.serviceability import LocationSuggestion, ResolvedLocation
from app.services.cache_service import CacheService, get_cache
from app.services.geocoding_provider import (
    GeocodeCandidate,
    GeocodingProvider,
    GeocodingProviderError,
    GoogleGeocodingProvider,
)

logger = logging.getLogger(__name__)


PINCODE_PATTERN = re.compile(r"\d{6}")

UNKNOWN_AREA = "Unknown Area"
UNKNOWN_DISTRICT = "Unknown District"
MIN_SEARCH_QUERY_LENGTH = 3

# Candidate types that carry no detail below state level
GENERIC_RESULT_TYPES = {"administrative_area_level_1", "country", "political"}


class InvalidPincodeError(ValueError):
    """Input is not a 6-digit pincode."""
    pass


class InvalidSearchQueryError(ValueError):
    """Free-text search query is too short."""
    pass


class UnresolvedLocationError(Exception):
    """No strategy could resolve the pincode."""

    def __init__(self, pincode: str):
        self.pincode = pincode
        super().__init__(f"Could not resolve location for pincode {pincode}")


def validate_pincode(pincode) -> str:
    """Return the pincode unchanged, or raise InvalidPincodeError."""
    if not isinstance(pincode, str) or not PINCODE_PATTERN.fullmatch(pincode):
        raise InvalidPincodeError(f"Invalid pincode format: {pincode!r}. Expected 6 digits")
    return pincode


# ==================== Extraction ====================

def extract_location_details(candidate: GeocodeCandidate) -> Dict[str, str]:
    """
    Pull area / district / state / country out of provider address components.

    area     = sublocality -> locality -> neighborhood
    district = admin level 2 -> admin level 3 -> a locality distinct from area
    state    = admin level 1, canonicalized
    """
    details = {"area": "", "district": "", "state": "", "country": ""}

    for component in candidate.address_components:
        types = component.types
        name = component.long_name

        if "sublocality" in types or "sublocality_level_1" in types:
            details["area"] = name
        elif "locality" in types and not details["area"]:
            details["area"] = name
        elif "neighborhood" in types and not details["area"]:
            details["area"] = name

        if "administrative_area_level_2" in types:
            details["district"] = name
        elif "administrative_area_level_3" in types and not details["district"]:
            details["district"] = name
        elif "locality" in types and not details["district"] and details["area"] != name:
            details["district"] = name

        if "administrative_area_level_1" in types:
            short = canonical_state(component.short_name)
            details["state"] = short if short in STATE_ALIASES.values() else canonical_state(name)

        if "country" in types:
            details["country"] = name

    # Some responses omit admin level 1 but still name the state in another component
    if not details["state"]:
        for component in candidate.address_components:
            for value in (component.long_name, component.short_name):
                if value and value.strip().casefold() in STATE_ALIASES:
                    details["state"] = canonical_state(value)
                    break
            if details["state"]:
                break

    if details["area"] and details["area"] == details["district"]:
        details["area"] = f"{details['district']} City"

    if details["district"]:
        details["district"] = display_city_name(details["district"])
    area_base = details["area"][: -len(" City")] if details["area"].endswith(" City") else details["area"]
    if area_base and display_city_name(area_base) != area_base:
        details["area"] = f"{display_city_name(area_base)} City"

    return details


def has_postal_code(candidate: GeocodeCandidate, pincode: str) -> bool:
    return any(
        "postal_code" in c.types and c.long_name == pincode
        for c in candidate.address_components
    )


def is_generic_fallback(candidate: GeocodeCandidate, details: Dict[str, str], pincode: str) -> bool:
    """
    State/country-level answer the geocoder gives when it does not know the pincode.
    """
    if has_postal_code(candidate, pincode) or pincode in candidate.formatted_address:
        return False
    if not (details["area"] or details["district"]):
        return True
    return bool(candidate.types) and set(candidate.types) <= GENERIC_RESULT_TYPES


def accept_candidate(candidate: GeocodeCandidate, pincode: str) -> Optional[ResolvedLocation]:
    """Build a ResolvedLocation from a candidate, or None when it is not trustworthy."""
    details = extract_location_details(candidate)

    if not details["state"]:
        return None
    if is_generic_fallback(candidate, details, pincode):
        logger.debug(f"Rejected generic geocoder response for {pincode}: {candidate.formatted_address}")
        return None

    corroborated = (
        has_postal_code(candidate, pincode)
        or pincode in candidate.formatted_address
        or bool(details["area"] or details["district"])
    )
    if not corroborated:
        return None

    return ResolvedLocation(
        pincode=pincode,
        formatted_address=candidate.formatted_address,
        area=details["area"] or UNKNOWN_AREA,
        district=details["district"] or UNKNOWN_DISTRICT,
        state=details["state"],
        country=details["country"] or settings.DEFAULT_COUNTRY,
        latitude=candidate.latitude,
        longitude=candidate.longitude,
        place_id=candidate.place_id,
        is_approximate=False,
    )


# ==================== Strategies ====================

class ResolutionStrategy(ABC):
    """One step of the resolution chain."""

    name: str = "strategy"
    cacheable: bool = False

    @abstractmethod
    async def resolve(self, pincode: str) -> Optional[ResolvedLocation]:
        pass


class ProviderStrategy(ResolutionStrategy):
    """Geocode a query built from the pincode and take the first acceptable candidate."""

    cacheable = True

    def __init__(
        self,
        provider: GeocodingProvider,
        query_template: str = "{pincode}",
        timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.query_template = query_template
        self.timeout = timeout or settings.GEOCODING_TIMEOUT_SECONDS
        self.name = f"provider:{query_template}"

    async def resolve(self, pincode: str) -> Optional[ResolvedLocation]:
        query = self.query_template.format(pincode=pincode)
        try:
            candidates = await asyncio.wait_for(self.provider.geocode(query), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Geocoding timed out after {self.timeout}s for '{query}'")
            return None
        except GeocodingProviderError as e:
            logger.warning(f"Geocoding failed for '{query}': {e}")
            return None

        for candidate in candidates:
            location = accept_candidate(candidate, pincode)
            if location is not None:
                return location
        return None


class PrefixHeuristicStrategy(ResolutionStrategy):
    """
    Degraded location from a known pincode prefix.

    regions: {"Karnataka": {"prefixes": ["56", ...], "latitude": .., "longitude": ..}}
    """

    name = "prefix"

    def __init__(self, regions: Optional[Dict[str, dict]] = None, country: Optional[str] = None):
        self.regions = regions if regions is not None else settings.PINCODE_PREFIX_REGIONS
        self.country = country or settings.DEFAULT_COUNTRY

    def match_region(self, pincode: str) -> Optional[str]:
        for state, region in self.regions.items():
            if any(pincode.startswith(prefix) for prefix in region.get("prefixes", [])):
                return state
        return None

    async def resolve(self, pincode: str) -> Optional[ResolvedLocation]:
        state = self.match_region(pincode)
        if state is None:
            return None

        region = self.regions[state]
        logger.info(f"No geocoder result for {pincode}; using {state} prefix fallback")
        return ResolvedLocation(
            pincode=pincode,
            formatted_address=f"{pincode}, {state}, {self.country}",
            area=f"{state} Area",
            district=f"{state} District",
            state=state,
            country=self.country,
            latitude=region.get("latitude"),
            longitude=region.get("longitude"),
            place_id=None,
            is_approximate=True,
        )


# ==================== Resolver ====================

class LocationResolver:
    """
    Resolves pincodes (or provider place ids) to normalized locations.

    Usage:
        resolver = LocationResolver()
        location = await resolver.resolve("560001")
        if location is None:
            ...  # unresolvable
    """

    def __init__(
        self,
        provider: Optional[GeocodingProvider] = None,
        cache: Optional[CacheService] = None,
        strategies: Optional[Sequence[ResolutionStrategy]] = None,
        use_cache: Optional[bool] = None,
    ):
        self.provider = provider or GoogleGeocodingProvider()
        use_cache = settings.CACHE_ENABLED if use_cache is None else use_cache
        self.cache = (cache or get_cache()) if use_cache else None
        self.strategies: List[ResolutionStrategy] = list(strategies) if strategies is not None else [
            ProviderStrategy(self.provider, "{pincode}"),
            ProviderStrategy(self.provider, "{pincode} " + settings.GEOCODING_COUNTRY_HINT),
            PrefixHeuristicStrategy(),
        ]

    async def resolve(self, pincode: str) -> Optional[ResolvedLocation]:
        """Resolve a pincode. Raises InvalidPincodeError before any I/O for malformed input."""
        validate_pincode(pincode)

        if self.cache is not None:
            cached = await self.cache.get_location(pincode)
            if cached:
                logger.debug(f"Location cache hit for {pincode}")
                return ResolvedLocation.model_validate(cached)

        for strategy in self.strategies:
            location = await strategy.resolve(pincode)
            if location is None:
                continue
            logger.info(
                f"Resolved {pincode} via {strategy.name}: "
                f"{location.district}, {location.state}"
            )
            if strategy.cacheable and self.cache is not None:
                await self.cache.set_location(pincode, location.model_dump(mode="json"))
            return location

        logger.info(f"Could not resolve pincode {pincode}")
        return None

    async def resolve_or_raise(self, pincode: str) -> ResolvedLocation:
        location = await self.resolve(pincode)
        if location is None:
            raise UnresolvedLocationError(pincode)
        return location

    async def resolve_place(self, place_id: str) -> Optional[ResolvedLocation]:
        """Resolve a provider place id; the pincode comes from the postal_code component."""
        try:
            candidate = await asyncio.wait_for(
                self.provider.place_details(place_id),
                timeout=settings.GEOCODING_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Place details timed out for {place_id}")
            return None
        except GeocodingProviderError as e:
            logger.warning(f"Place details failed for {place_id}: {e}")
            return None

        if candidate is None:
            return None

        pincode = next(
            (c.long_name for c in candidate.address_components if "postal_code" in c.types),
            "",
        )
        if not PINCODE_PATTERN.fullmatch(pincode):
            logger.info(f"Place {place_id} has no usable postal code")
            return None

        return accept_candidate(candidate, pincode)

    async def search(self, query: str) -> List[LocationSuggestion]:
        """
        Free-text address search, restricted to the configured country.

        Raises InvalidSearchQueryError for queries shorter than 3 characters.
        Provider failures yield no suggestions.
        """
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_QUERY_LENGTH:
            raise InvalidSearchQueryError(
                f"Search query must be at least {MIN_SEARCH_QUERY_LENGTH} characters"
            )

        search_query = f"{query}, {settings.GEOCODING_COUNTRY_HINT}"
        try:
            candidates = await asyncio.wait_for(
                self.provider.geocode(search_query),
                timeout=settings.GEOCODING_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Location search timed out for '{search_query}'")
            return []
        except GeocodingProviderError as e:
            logger.warning(f"Location search failed for '{search_query}': {e}")
            return []

        suggestions = []
        for candidate in candidates:
            details = extract_location_details(candidate)
            main_text, _, secondary_text = candidate.formatted_address.partition(",")
            pincode = next(
                (c.long_name for c in candidate.address_components if "postal_code" in c.types),
                None,
            )
            suggestions.append(LocationSuggestion(
                place_id=candidate.place_id,
                description=candidate.formatted_address,
                main_text=main_text.strip() or details["area"] or query,
                secondary_text=secondary_text.strip(),
                pincode=pincode,
                district=details["district"] or None,
                state=details["state"] or None,
                latitude=candidate.latitude,
                longitude=candidate.longitude,
            ))
        return suggestions
