"""
Spatial intersection queries against remote feature services.

The SpatialQueryClient answers one question per call: does at least one
feature of a remote layer intersect this parcel? It speaks two protocols:

- ArcGIS REST ``/query`` with ``returnCountOnly`` (the common case), with
  an optional pre-buffer of the parcel through the geometry service.
- OGC WFS 2.0 ``GetFeature`` with a CQL ``INTERSECTS`` filter, for layers
  published on GeoServer-style hosts.

Every failure (transport, timeout, non-2xx, malformed body, ArcGIS error
payload) is reported as "no match". A down service lowers the parcel's
score instead of aborting the scoring run.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .base_client import AsyncGISClient
from .exceptions import GeoServiceError, InvalidResponseError
from .geometry_service import GeometryTransformClient
from .models import FEATURE_QUERY_CONFIG, WGS84_WKID, GISClientConfig, GeometryEnvelope

logger = logging.getLogger(__name__)

# Service URL already points at a layer, e.g. .../MapServer/6
LAYER_SUFFIX = re.compile(r"/\d+$")


@dataclass(frozen=True)
class QueryOutcome:
    """
    Tagged result of one intersection query.

    Exactly one of ``count`` and ``error`` is set.
    """

    url: str
    count: Optional[int] = None
    error: Optional[str] = None
    buffered: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def matched(self) -> bool:
        return self.count is not None and self.count > 0

    def to_debug_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {"service_url": self.url}
        if self.ok:
            info["count"] = self.count
        else:
            info["error"] = self.error
        if self.buffered:
            info["buffered"] = True
        return info


class SpatialQueryClient(AsyncGISClient):
    """
    Intersection tests of parcel geometries against remote layers.

    Usage:
        async with SpatialQueryClient() as query_client:
            met = await query_client.query(
                "https://.../MapServer/0", parcel, buffer_feet=300
            )

    When no geometry service is passed in, the client creates and manages
    its own GeometryTransformClient for buffering and reprojection.
    """

    def __init__(
        self,
        config: Optional[GISClientConfig] = None,
        geometry_service: Optional[GeometryTransformClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the query client.

        Args:
            config: GISClientConfig; defaults to FEATURE_QUERY_CONFIG.
            geometry_service: Shared geometry service client. If omitted,
                              one is created and opened with this client.
            transport: Optional httpx transport for both clients.
        """
        super().__init__(config or FEATURE_QUERY_CONFIG, transport=transport)
        self._owns_geometry_service = geometry_service is None
        self.geometry_service = geometry_service or GeometryTransformClient(transport=transport)

    async def _create_client(self) -> None:
        await super()._create_client()
        if self._owns_geometry_service:
            await self.geometry_service._create_client()

    async def _close_client(self) -> None:
        if self._owns_geometry_service:
            await self.geometry_service._close_client()
        await super()._close_client()

    @staticmethod
    def resolve_query_url(service_url: str, layer_id: Optional[int] = None) -> str:
        """
        Build the ``/query`` endpoint for a service URL.

        Args:
            service_url: MapServer/FeatureServer URL, with or without a layer index.
            layer_id: Layer index, used only when the URL does not end in one.

        Returns:
            Query endpoint URL.
        """
        base = service_url.rstrip("/")
        if LAYER_SUFFIX.search(base):
            return f"{base}/query"
        if layer_id is not None:
            return f"{base}/{layer_id}/query"
        return f"{base}/query"

    @staticmethod
    def _parse_count(data: dict[str, Any], url: str) -> int:
        count = data.get("count")
        if isinstance(count, bool) or not isinstance(count, (int, float)) or not math.isfinite(count):
            raise InvalidResponseError(
                f"Query response from {url} has no count",
                response_text=json.dumps(data)[:500],
            )
        return int(count)

    async def query_outcome(
        self,
        service_url: str,
        geometry: GeometryEnvelope,
        layer_id: Optional[int] = None,
        where_clause: Optional[str] = None,
        buffer_feet: Optional[float] = None,
    ) -> QueryOutcome:
        """
        Count features of a layer that intersect the (optionally buffered) geometry.

        Args:
            service_url: Feature/map service or layer URL.
            geometry: Parcel geometry.
            layer_id: Layer index when ``service_url`` does not include one.
            where_clause: Optional attribute filter, e.g. ``SFHA_TF = 'T'``.
            buffer_feet: Buffer distance; ``None`` or 0 queries the parcel
                         itself without calling the geometry service.

        Returns:
            QueryOutcome with the feature count or the failure reason.
        """
        url = self.resolve_query_url(service_url, layer_id)

        query_geometry = geometry
        buffered = False
        if buffer_feet is not None and buffer_feet > 0:
            transformed = await self.geometry_service.buffer_outcome(geometry, buffer_feet)
            if transformed.ok:
                query_geometry = transformed.geometry
                buffered = True
            else:
                logger.warning(
                    "Buffering by %s feet failed for %s, using original geometry",
                    buffer_feet,
                    url,
                )

        params = {
            "f": "json",
            "geometry": json.dumps(query_geometry.to_esri_json()),
            "geometryType": query_geometry.geometry_type,
            "inSR": str(query_geometry.wkid),
            "spatialRel": "esriSpatialRelIntersects",
            "returnGeometry": "false",
            "returnCountOnly": "true",
        }
        if where_clause:
            params["where"] = where_clause

        logger.debug("Querying %s (where=%s, buffered=%s)", url, where_clause, buffered)

        try:
            data = await self.post_form_json(url, params)
            count = self._parse_count(data, url)
        except (GeoServiceError, httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Query failed for %s: %s", url, e)
            return QueryOutcome(url=url, error=str(e), buffered=buffered)

        logger.debug("Query result for %s: count=%d", url, count)
        return QueryOutcome(url=url, count=count, buffered=buffered)

    async def query(
        self,
        service_url: str,
        geometry: GeometryEnvelope,
        layer_id: Optional[int] = None,
        where_clause: Optional[str] = None,
        buffer_feet: Optional[float] = None,
    ) -> bool:
        """True iff at least one feature intersects; False on any failure."""
        outcome = await self.query_outcome(
            service_url,
            geometry,
            layer_id=layer_id,
            where_clause=where_clause,
            buffer_feet=buffer_feet,
        )
        return outcome.matched

    async def query_wfs_outcome(
        self,
        service_url: str,
        type_name: str,
        geometry: GeometryEnvelope,
        geometry_field: str = "geom",
    ) -> QueryOutcome:
        """
        Test intersection through a WFS 2.0 GetFeature request.

        The parcel is first reprojected to WGS84 degrees. If that fails the
        query is not attempted: sending projected metres to a layer filtered
        in degrees would silently never match.

        Args:
            service_url: WFS endpoint, e.g. ``https://host/geoserver/wfs``.
            type_name: Feature type to query, e.g. ``ns:habitat_cores``.
            geometry: Parcel geometry.
            geometry_field: Name of the geometry attribute of the feature type.

        Returns:
            QueryOutcome whose count is the number of features returned (0 or 1).
        """
        reprojected = await self.geometry_service.reproject_outcome(geometry, WGS84_WKID)
        if not reprojected.ok:
            logger.error(
                "Cannot query %s: reprojection to %d failed (%s)",
                service_url,
                WGS84_WKID,
                reprojected.error,
            )
            return QueryOutcome(url=service_url, error=f"reprojection failed: {reprojected.error}")

        params = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeNames": type_name,
            "outputFormat": "application/json",
            "cql_filter": f"INTERSECTS({geometry_field}, {reprojected.geometry.to_wkt()})",
            "count": "1",
        }

        try:
            data = await self.get_json(service_url, params=params)
        except (GeoServiceError, httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("WFS query failed for %s (%s): %s", service_url, type_name, e)
            return QueryOutcome(url=service_url, error=str(e))

        features = data.get("features")
        if not isinstance(features, list):
            logger.warning("WFS response from %s has no feature list", service_url)
            return QueryOutcome(url=service_url, error="response has no features member")

        return QueryOutcome(url=service_url, count=len(features))

    async def query_wfs(
        self,
        service_url: str,
        type_name: str,
        geometry: GeometryEnvelope,
        geometry_field: str = "geom",
    ) -> bool:
        """True iff the WFS layer returns at least one intersecting feature."""
        outcome = await self.query_wfs_outcome(
            service_url, type_name, geometry, geometry_field=geometry_field
        )
        return outcome.matched
