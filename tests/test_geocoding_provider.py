import httpx
import pytest

from app.services.geocoding_provider import GeocodingProviderError, GoogleGeocodingProvider


GEOCODE_OK = {
    "status": "OK",
    "results": [{
        "formatted_address": "MG Road, Bengaluru, Karnataka 560001, India",
        "address_components": [
            {"long_name": "560001", "short_name": "560001", "types": ["postal_code"]},
            {"long_name": "Bengaluru", "short_name": "Bengaluru", "types": ["locality", "political"]},
            {"long_name": "Karnataka", "short_name": "KA", "types": ["administrative_area_level_1", "political"]},
        ],
        "geometry": {"location": {"lat": 12.9716, "lng": 77.5946}},
        "place_id": "ChIJ-mg-road",
        "types": ["postal_code"],
    }],
}


def provider_for(handler, api_key="test-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleGeocodingProvider(api_key=api_key, region="in", timeout=1, client=client)


async def test_geocode_parses_candidates():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json=GEOCODE_OK)

    candidates = await provider_for(handler).geocode("560001")

    assert seen["address"] == "560001"
    assert seen["region"] == "in"
    assert seen["key"] == "test-key"
    assert len(candidates) == 1
    assert candidates[0].latitude == 12.9716
    assert candidates[0].place_id == "ChIJ-mg-road"
    assert candidates[0].address_components[2].short_name == "KA"


async def test_zero_results_is_empty():
    provider = provider_for(lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))

    assert await provider.geocode("999999") == []


@pytest.mark.parametrize("response", [
    httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "bad key"}),
    httpx.Response(500, text="upstream error"),
    httpx.Response(200, text="not json"),
])
async def test_provider_failures_raise(response):
    provider = provider_for(lambda request: response)

    with pytest.raises(GeocodingProviderError):
        await provider.geocode("560001")


async def test_missing_api_key_raises_without_request():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(GeocodingProviderError):
        await provider_for(handler, api_key="").geocode("560001")


async def test_place_details():
    def handler(request):
        assert request.url.params["place_id"] == "ChIJ-mg-road"
        return httpx.Response(200, json={"status": "OK", "result": GEOCODE_OK["results"][0]})

    candidate = await provider_for(handler).place_details("ChIJ-mg-road")

    assert candidate.formatted_address.startswith("MG Road")
