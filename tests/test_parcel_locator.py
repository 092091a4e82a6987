"""Unit tests for parcel_locator.py: tax parcel lookup by coordinates."""

import json

import httpx
import pytest

from parcel_priority.acquisition import (
    AuthenticationError,
    GISClientConfig,
    MaxRetriesExceededError,
    ParcelLocator,
    ParcelNotFoundError,
    RateLimitConfig,
    RetryConfig,
    ServerError,
)

from conftest import SQUARE_RINGS, RecordingHandler, client_config, form_params

PARCELS = "https://parcels.test/arcgis/rest/services/NYS_Tax_Parcels_Public/MapServer/1"

FEATURE = {
    "attributes": {
        "PRINT_KEY": "56.200-3-14",
        "COUNTY_NAME": "Ulster",
        "MUNI_NAME": "Rosendale",
        "PARCEL_ADDR": "1 Main St",
        "ACRES": 12.5,
        "PRIMARY_OWNER": "Doe, Jane",
    },
    "geometry": {"rings": SQUARE_RINGS},
}


def _locator(handler: RecordingHandler) -> ParcelLocator:
    return ParcelLocator(config=client_config(PARCELS), transport=handler.transport)


class TestFindParcel:
    @pytest.mark.asyncio
    async def test_point_within_parcel(self):
        handler = RecordingHandler(
            lambda request: httpx.Response(
                200, json={"spatialReference": {"wkid": 102100}, "features": [FEATURE]}
            )
        )

        async with _locator(handler) as locator:
            parcel = await locator.find_parcel(41.84, -74.08)

        assert parcel.parcel_id == "56.200-3-14"
        assert parcel.geometry.wkid == 102100
        assert parcel.to_dict() == {
            "address": "1 Main St",
            "county": "Ulster",
            "municipality": "Rosendale",
            "acres": 12.5,
            "printKey": "56.200-3-14",
            "owner": "Doe, Jane",
        }

        [request] = handler.requests
        assert request.method == "GET"
        assert str(request.url).startswith(f"{PARCELS}/query?")
        params = form_params(request)
        assert params["geometryType"] == "esriGeometryPoint"
        assert params["spatialRel"] == "esriSpatialRelWithin"
        assert params["returnGeometry"] == "true"
        assert params["outFields"] == "PRINT_KEY,COUNTY_NAME,MUNI_NAME,PARCEL_ADDR,ACRES,PRIMARY_OWNER"
        point = json.loads(params["geometry"])
        assert (point["x"], point["y"]) == (-74.08, 41.84)
        assert point["spatialReference"] == {"wkid": 4326}

    @pytest.mark.asyncio
    async def test_falls_back_to_search_radius(self):
        def handle(request):
            if request.url.params.get("spatialRel") == "esriSpatialRelWithin":
                return httpx.Response(200, json={"features": []})
            return httpx.Response(200, json={"spatialReference": {"wkid": 3857}, "features": [FEATURE]})

        handler = RecordingHandler(handle)

        async with _locator(handler) as locator:
            parcel = await locator.find_parcel(41.84, -74.08)

        assert parcel.parcel_id == "56.200-3-14"
        assert len(handler.requests) == 2
        fallback = form_params(handler.requests[1])
        assert fallback["spatialRel"] == "esriSpatialRelIntersects"
        assert fallback["distance"] == "100"
        assert fallback["units"] == "esriSRUnit_Meter"

    @pytest.mark.asyncio
    async def test_no_parcel_raises(self):
        handler = RecordingHandler(lambda request: httpx.Response(200, json={"features": []}))

        async with _locator(handler) as locator:
            with pytest.raises(ParcelNotFoundError) as exc_info:
                await locator.find_parcel(0.0, 0.0)

        assert exc_info.value.latitude == 0.0
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        locator = _locator(RecordingHandler(lambda request: httpx.Response(200, json={})))
        with pytest.raises(RuntimeError):
            await locator.find_parcel(41.84, -74.08)


# =========================================================================
# Retries
# =========================================================================

def _retrying_locator(handler: RecordingHandler, max_retries: int = 2) -> ParcelLocator:
    config = GISClientConfig(
        base_url=PARCELS,
        retry=RetryConfig(max_retries=max_retries, base_delay=0.01, max_delay=0.01, jitter_factor=0),
        rate_limit=RateLimitConfig(concurrent_requests=1, min_request_interval=0.0),
    )
    return ParcelLocator(config=config, transport=handler.transport)


def _fail_then_succeed(failures: list[httpx.Response]):
    remaining = list(failures)

    def handle(request):
        if remaining:
            return remaining.pop(0)
        return httpx.Response(200, json={"features": [FEATURE]})

    return handle


class TestRetries:
    @pytest.mark.asyncio
    async def test_retries_after_unavailable(self):
        handler = RecordingHandler(_fail_then_succeed([httpx.Response(503, text="busy")]))

        async with _retrying_locator(handler) as locator:
            parcel = await locator.find_parcel(41.84, -74.08)

        assert parcel.parcel_id == "56.200-3-14"
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_retries_after_rate_limit(self):
        throttled = httpx.Response(429, headers={"Retry-After": "0.01"}, text="slow down")
        handler = RecordingHandler(_fail_then_succeed([throttled]))

        async with _retrying_locator(handler) as locator:
            parcel = await locator.find_parcel(41.84, -74.08)

        assert parcel.parcel_id == "56.200-3-14"
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_retries_after_read_timeout(self):
        attempts = []

        def handle(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"features": [FEATURE]})

        async with _retrying_locator(RecordingHandler(handle)) as locator:
            parcel = await locator.find_parcel(41.84, -74.08)

        assert parcel.parcel_id == "56.200-3-14"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_persistent_outage_exhausts_retries(self):
        handler = RecordingHandler(lambda request: httpx.Response(503, text="busy"))

        async with _retrying_locator(handler) as locator:
            with pytest.raises(MaxRetriesExceededError) as exc_info:
                await locator.find_parcel(41.84, -74.08)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, ServerError)
        assert exc_info.value.last_error.status_code == 503
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_authentication_failure_is_not_retried(self, status):
        handler = RecordingHandler(lambda request: httpx.Response(status, text="denied"))

        async with _retrying_locator(handler) as locator:
            with pytest.raises(AuthenticationError) as exc_info:
                await locator.find_parcel(41.84, -74.08)

        assert exc_info.value.status_code == status
        assert len(handler.requests) == 1
