"""
Geocoding Provider - Google Geocoding & Place Details

Narrow async interface used by the location resolver:
- geocode(query) -> candidates, in provider order
- place_details(place_id) -> single candidate or None

Transport/HTTP failures and non-OK provider statuses (other than ZERO_RESULTS)
raise GeocodingProviderError so callers can fall through to the next strategy.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any

import httpx
from pydantic import BaseModel, Field

from app.config import settings

logger = logging.getLogger(__name__)


GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PLACE_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"


class GeocodingProviderError(Exception):
    """Provider unreachable, timed out, or returned an error status."""
    pass


class AddressComponent(BaseModel):
    long_name: str
    short_name: str = ""
    types: List[str] = Field(default_factory=list)


class GeocodeCandidate(BaseModel):
    """One provider result."""
    formatted_address: str = ""
    address_components: List[AddressComponent] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    place_id: Optional[str] = None

    @classmethod
    def from_google(cls, result: Dict[str, Any]) -> "GeocodeCandidate":
        location = result.get("geometry", {}).get("location", {})
        return cls(
            formatted_address=result.get("formatted_address", ""),
            address_components=[
                AddressComponent(
                    long_name=c.get("long_name", ""),
                    short_name=c.get("short_name", ""),
                    types=c.get("types", []),
                )
                for c in result.get("address_components", [])
            ],
            types=result.get("types", []),
            latitude=location.get("lat"),
            longitude=location.get("lng"),
            place_id=result.get("place_id"),
        )


class GeocodingProvider(ABC):
    """Abstract geocoding backend."""

    @abstractmethod
    async def geocode(self, query: str) -> List[GeocodeCandidate]:
        """Forward-geocode a free-text query."""
        pass

    @abstractmethod
    async def place_details(self, place_id: str) -> Optional[GeocodeCandidate]:
        """Fetch a single place by provider id."""
        pass


class GoogleGeocodingProvider(GeocodingProvider):
    """
    Google Maps Geocoding / Place Details over httpx.

    A shared AsyncClient may be passed in; otherwise a client is opened per call.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        region: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.region = region or settings.GEOCODING_REGION
        self.timeout = timeout or settings.GEOCODING_TIMEOUT_SECONDS
        self._client = client

    async def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise GeocodingProviderError("Google Maps API key not configured")

        params = {**params, "key": self.api_key, "language": "en"}
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise GeocodingProviderError(f"Geocoding request failed: {e}") from e
        except ValueError as e:
            raise GeocodingProviderError(f"Invalid geocoding response: {e}") from e

        status = data.get("status")
        if status == "ZERO_RESULTS":
            return {}
        if status != "OK":
            raise GeocodingProviderError(
                f"Google API error: {status} {data.get('error_message', '')}".strip()
            )
        return data

    async def geocode(self, query: str) -> List[GeocodeCandidate]:
        data = await self._get(GEOCODE_URL, {"address": query, "region": self.region})
        results = [GeocodeCandidate.from_google(r) for r in data.get("results", [])]
        logger.debug(f"Geocode '{query}' returned {len(results)} result(s)")
        return results

    async def place_details(self, place_id: str) -> Optional[GeocodeCandidate]:
        data = await self._get(
            PLACE_DETAILS_URL,
            {
                "place_id": place_id,
                "fields": "formatted_address,address_components,geometry,place_id,types",
            },
        )
        result = data.get("result")
        if not result:
            return None
        candidate = GeocodeCandidate.from_google(result)
        if candidate.place_id is None:
            candidate.place_id = place_id
        return candidate
