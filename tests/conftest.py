"""Shared fixtures for the parcel scoring test suite.

Remote ArcGIS and WFS services are replaced by httpx.MockTransport
handlers that route on the request path and record every request, so
tests can assert both on results and on what was sent.
"""

import json
from typing import Callable, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from parcel_priority.acquisition import (
    GeometryEnvelope,
    GISClientConfig,
    RateLimitConfig,
    RetryConfig,
    SpatialQueryClient,
)

GEOMETRY_SERVER = "https://geometry.test/arcgis/rest/services/Geometry/GeometryServer"

# A 100 m square in Web Mercator, near Rosendale NY
SQUARE_RINGS = [[
    [-8251000.0, 5139000.0],
    [-8250900.0, 5139000.0],
    [-8250900.0, 5139100.0],
    [-8251000.0, 5139100.0],
    [-8251000.0, 5139000.0],
]]


def form_params(request: httpx.Request) -> dict[str, str]:
    """Decode form-post or query-string parameters of a request."""
    if request.method == "POST":
        return dict(parse_qsl(request.content.decode()))
    return dict(request.url.params)


class RecordingHandler:
    """MockTransport handler that records requests before answering them."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls_to(self, path_suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path_suffix)]


def arcgis_handler(
    counts: Optional[dict[str, int]] = None,
    default_count: int = 0,
    buffer_ok: bool = True,
) -> Callable[[httpx.Request], httpx.Response]:
    """
    Fake ArcGIS backend.

    ``/query`` answers ``{"count": n}`` where n is the value of the first
    ``counts`` key found in the request URL. ``/buffer`` and ``/project``
    echo the input geometry back.
    """
    counts = counts or {}

    def handle(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = form_params(request)

        if path.endswith("/buffer") or path.endswith("/project"):
            if path.endswith("/buffer") and not buffer_ok:
                return httpx.Response(500, text="buffer unavailable")
            geometries = json.loads(params["geometries"])["geometries"]
            # Geometry services omit the spatial reference on outputs
            echoed = [{k: v for k, v in g.items() if k != "spatialReference"} for g in geometries]
            return httpx.Response(200, json={"geometryType": "esriGeometryPolygon", "geometries": echoed})

        if path.endswith("/query"):
            url = str(request.url)
            for key, count in counts.items():
                if key in url:
                    return httpx.Response(200, json={"count": count})
            return httpx.Response(200, json={"count": default_count})

        return httpx.Response(404, text="not found")

    return handle


def client_config(base_url: str = "") -> GISClientConfig:
    return GISClientConfig(
        base_url=base_url,
        retry=RetryConfig(max_retries=0),
        rate_limit=RateLimitConfig(concurrent_requests=4, min_request_interval=0.0),
    )


@pytest.fixture
def square_geometry() -> GeometryEnvelope:
    return GeometryEnvelope(rings=SQUARE_RINGS, spatialReference={"wkid": 3857})


@pytest.fixture
def point_geometry() -> GeometryEnvelope:
    return GeometryEnvelope(x=-8250950.0, y=5139050.0, spatialReference={"wkid": 3857})


@pytest.fixture
def make_query_client():
    """Factory for a SpatialQueryClient wired to a RecordingHandler."""

    def factory(handler: RecordingHandler) -> SpatialQueryClient:
        return SpatialQueryClient(config=client_config(), transport=handler.transport)

    return factory
