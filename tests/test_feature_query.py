"""Unit tests for feature_query.py: ArcGIS /query and WFS GetFeature.

Tests cover: request shape, buffering branches, failure degradation to
"not matched", layer URL resolution, and the WFS reprojection path.
"""

import json

import httpx
import pytest

from parcel_priority.acquisition import GeometryEnvelope, QueryOutcome, SpatialQueryClient

from conftest import RecordingHandler, arcgis_handler, form_params

WETLANDS = "https://gis.test/arcgis/rest/services/erm/wetlands/MapServer/0"
WFS_URL = "https://wfs.test/geoserver/wfs"


# =========================================================================
# URL resolution
# =========================================================================

class TestResolveQueryUrl:
    def test_layer_url_gets_query_suffix(self):
        assert SpatialQueryClient.resolve_query_url(WETLANDS) == f"{WETLANDS}/query"

    def test_layer_id_appended_to_service_url(self):
        url = SpatialQueryClient.resolve_query_url("https://gis.test/rest/services/x/MapServer/", 6)
        assert url == "https://gis.test/rest/services/x/MapServer/6/query"

    def test_layer_id_ignored_when_url_names_a_layer(self):
        assert SpatialQueryClient.resolve_query_url(WETLANDS, 3) == f"{WETLANDS}/query"


# =========================================================================
# Spatial query
# =========================================================================

class TestQuery:
    @pytest.mark.asyncio
    async def test_count_one_is_a_match(self, square_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler(default_count=1))

        async with make_query_client(handler) as client:
            assert await client.query(WETLANDS, square_geometry) is True

    @pytest.mark.asyncio
    async def test_count_zero_is_not_a_match(self, square_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler(default_count=0))

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry)

        assert outcome.ok
        assert not outcome.matched
        assert outcome.to_debug_info() == {"service_url": f"{WETLANDS}/query", "count": 0}

    @pytest.mark.asyncio
    async def test_query_request_shape(self, square_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler(default_count=1))

        async with make_query_client(handler) as client:
            await client.query(WETLANDS, square_geometry, where_clause="SFHA_TF = 'T'")

        [request] = handler.requests
        assert request.method == "POST"
        assert str(request.url) == f"{WETLANDS}/query"

        params = form_params(request)
        assert params["f"] == "json"
        assert params["geometryType"] == "esriGeometryPolygon"
        assert params["inSR"] == "3857"
        assert params["spatialRel"] == "esriSpatialRelIntersects"
        assert params["returnGeometry"] == "false"
        assert params["returnCountOnly"] == "true"
        assert params["where"] == "SFHA_TF = 'T'"
        assert json.loads(params["geometry"])["rings"] == square_geometry.rings

    @pytest.mark.asyncio
    async def test_no_where_clause_is_omitted(self, square_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler())

        async with make_query_client(handler) as client:
            await client.query(WETLANDS, square_geometry)

        assert "where" not in form_params(handler.requests[0])

    @pytest.mark.asyncio
    async def test_point_geometry_type(self, point_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler())

        async with make_query_client(handler) as client:
            await client.query(WETLANDS, point_geometry)

        assert form_params(handler.requests[0])["geometryType"] == "esriGeometryPoint"


# =========================================================================
# Buffering
# =========================================================================

class TestBuffering:
    @pytest.mark.asyncio
    async def test_zero_buffer_never_calls_buffer(self, square_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler(default_count=1))

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry, buffer_feet=0)

        assert outcome.matched
        assert not outcome.buffered
        assert handler.calls_to("/buffer") == []
        assert len(handler.calls_to("/query")) == 1

    @pytest.mark.asyncio
    async def test_positive_buffer_buffers_then_queries(self, square_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler(default_count=1))

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry, buffer_feet=100)

        assert outcome.buffered
        assert [r.url.path.rsplit("/", 1)[-1] for r in handler.requests] == ["buffer", "query"]
        # Buffered output carries the input spatial reference
        assert form_params(handler.calls_to("/query")[0])["inSR"] == "3857"

    @pytest.mark.asyncio
    async def test_buffer_failure_falls_back_to_original(self, square_geometry, make_query_client):
        handler = RecordingHandler(arcgis_handler(default_count=1, buffer_ok=False))

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry, buffer_feet=300)

        assert outcome.matched
        assert not outcome.buffered
        query_params = form_params(handler.calls_to("/query")[0])
        assert json.loads(query_params["geometry"])["rings"] == square_geometry.rings


# =========================================================================
# Failure handling
# =========================================================================

class TestFailures:
    @pytest.mark.asyncio
    async def test_http_500_is_not_a_match(self, square_geometry, make_query_client):
        handler = RecordingHandler(lambda request: httpx.Response(500, text="Internal error"))

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry)

        assert not outcome.matched
        assert "500" in outcome.error
        assert "error" in outcome.to_debug_info()

    @pytest.mark.asyncio
    async def test_malformed_json_is_not_a_match(self, square_geometry, make_query_client):
        handler = RecordingHandler(lambda request: httpx.Response(200, text="{not json"))

        async with make_query_client(handler) as client:
            assert await client.query(WETLANDS, square_geometry) is False

    @pytest.mark.asyncio
    async def test_error_payload_is_not_a_match(self, square_geometry, make_query_client):
        handler = RecordingHandler(
            lambda request: httpx.Response(
                200, json={"error": {"code": 400, "message": "Unable to complete operation."}}
            )
        )

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry)

        assert not outcome.matched
        assert "Unable to complete operation" in outcome.error

    @pytest.mark.asyncio
    async def test_missing_count_is_not_a_match(self, square_geometry, make_query_client):
        handler = RecordingHandler(lambda request: httpx.Response(200, json={"features": []}))

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry)

        assert not outcome.ok

    @pytest.mark.asyncio
    async def test_connection_error_is_not_a_match(self, square_geometry, make_query_client):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        handler = RecordingHandler(refuse)

        async with make_query_client(handler) as client:
            assert await client.query(WETLANDS, square_geometry) is False

    @pytest.mark.asyncio
    async def test_read_timeout_is_not_a_match(self, square_geometry, make_query_client):
        def stall(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_query_client(RecordingHandler(stall)) as client:
            assert await client.query(WETLANDS, square_geometry) is False
            outcome = await client.query_outcome(WETLANDS, square_geometry)

        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_timed_out_buffer_falls_back_to_original(self, square_geometry, make_query_client):
        base = arcgis_handler(default_count=1)

        def handle(request):
            if request.url.path.endswith("/buffer"):
                raise httpx.ReadTimeout("timed out", request=request)
            return base(request)

        async with make_query_client(RecordingHandler(handle)) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry, buffer_feet=300)

        assert outcome.matched
        assert not outcome.buffered

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ['{"count": NaN}', '{"count": Infinity}', '{"count": -Infinity}'])
    async def test_non_finite_count_is_not_a_match(self, body, square_geometry, make_query_client):
        handler = RecordingHandler(
            lambda request: httpx.Response(200, text=body, headers={"content-type": "application/json"})
        )

        async with make_query_client(handler) as client:
            outcome = await client.query_outcome(WETLANDS, square_geometry)

        assert not outcome.matched
        assert "no count" in outcome.error

    @pytest.mark.asyncio
    async def test_undecodable_body_is_not_a_match(self, square_geometry, make_query_client):
        def garble(request):
            raise httpx.DecodingError("Error -3 while decompressing data", request=request)

        async with make_query_client(RecordingHandler(garble)) as client:
            assert await client.query(WETLANDS, square_geometry) is False

    def test_debug_info_for_errors(self):
        outcome = QueryOutcome(url="u", error="boom", buffered=True)
        assert outcome.to_debug_info() == {"service_url": "u", "error": "boom", "buffered": True}


# =========================================================================
# WFS
# =========================================================================

def _wfs_handler(features):
    base = arcgis_handler()

    def handle(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/wfs"):
            if features is None:
                return httpx.Response(200, json={"type": "FeatureCollection"})
            return httpx.Response(200, json={"type": "FeatureCollection", "features": features})
        return base(request)

    return handle


class TestWfs:
    @pytest.mark.asyncio
    async def test_wfs_request_shape(self, square_geometry, make_query_client):
        handler = RecordingHandler(_wfs_handler([{"type": "Feature", "properties": {}}]))

        async with make_query_client(handler) as client:
            matched = await client.query_wfs(WFS_URL, "ulster:habitat_cores", square_geometry)

        assert matched is True
        assert len(handler.calls_to("/project")) == 1
        assert form_params(handler.calls_to("/project")[0])["outSR"] == "4326"

        [request] = handler.calls_to("/wfs")
        assert request.method == "GET"
        params = form_params(request)
        assert params["service"] == "WFS"
        assert params["version"] == "2.0.0"
        assert params["request"] == "GetFeature"
        assert params["typeNames"] == "ulster:habitat_cores"
        assert params["outputFormat"] == "application/json"
        assert params["count"] == "1"
        assert params["cql_filter"].startswith("INTERSECTS(geom, POLYGON((-8251000.0 5139000.0,")

    @pytest.mark.asyncio
    async def test_wgs84_geometry_is_not_reprojected(self, square_geometry, make_query_client):
        handler = RecordingHandler(_wfs_handler([]))
        geometry = GeometryEnvelope.from_esri({"rings": square_geometry.rings}, default_wkid=4326)

        async with make_query_client(handler) as client:
            matched = await client.query_wfs(WFS_URL, "ns:layer", geometry, geometry_field="the_geom")

        assert matched is False
        assert handler.calls_to("/project") == []
        assert form_params(handler.calls_to("/wfs")[0])["cql_filter"].startswith("INTERSECTS(the_geom, ")

    @pytest.mark.asyncio
    async def test_reprojection_failure_skips_wfs(self, square_geometry, make_query_client):
        def handle(request):
            if request.url.path.endswith("/project"):
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"features": [{}]})

        handler = RecordingHandler(handle)

        async with make_query_client(handler) as client:
            outcome = await client.query_wfs_outcome(WFS_URL, "ns:layer", square_geometry)

        assert not outcome.matched
        assert "reprojection failed" in outcome.error
        assert handler.calls_to("/wfs") == []

    @pytest.mark.asyncio
    async def test_missing_feature_list_is_an_error(self, square_geometry, make_query_client):
        handler = RecordingHandler(_wfs_handler(None))

        async with make_query_client(handler) as client:
            outcome = await client.query_wfs_outcome(WFS_URL, "ns:layer", square_geometry)

        assert not outcome.ok
