"""
ArcGIS geometry service client (buffer and reproject).

Both operations are best effort: any failure comes back as ``None`` and
the caller decides whether the unmodified geometry is an acceptable
fallback (buffered queries) or not (WFS queries that need degrees).
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .base_client import AsyncGISClient
from .exceptions import GeoServiceError, GeometryError
from .models import BUFFER_WKID, GEOMETRY_SERVICE_CONFIG, GISClientConfig, GeometryEnvelope

logger = logging.getLogger(__name__)

FEET_TO_METERS = 0.3048

# esriSRUnit_Meter
METER_UNIT = "9001"


@dataclass(frozen=True)
class TransformOutcome:
    """Result of one geometry service call: a geometry or an error."""

    geometry: Optional[GeometryEnvelope] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.geometry is not None


class GeometryTransformClient(AsyncGISClient):
    """
    Client for the ArcGIS GeometryServer ``buffer`` and ``project`` operations.

    Usage:
        async with GeometryTransformClient() as geometry_service:
            buffered = await geometry_service.buffer(parcel, 300)
            degrees = await geometry_service.reproject(parcel, WGS84_WKID)
    """

    def __init__(
        self,
        config: Optional[GISClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(config or GEOMETRY_SERVICE_CONFIG, transport=transport)

    def get_operation_url(self, operation: str) -> str:
        """Full URL of a GeometryServer operation, e.g. ``buffer``."""
        return f"{self.config.base_url.rstrip('/')}/{operation}"

    @staticmethod
    def _geometries_param(geometry: GeometryEnvelope) -> str:
        return json.dumps({
            "geometryType": geometry.geometry_type,
            "geometries": [geometry.to_esri_json()],
        })

    def _first_geometry(
        self, data: dict, operation: str, wkid: int
    ) -> TransformOutcome:
        geometries = data.get("geometries")
        if not isinstance(geometries, list) or not geometries:
            logger.error("Geometry service %s returned no geometries: %s", operation, str(data)[:200])
            return TransformOutcome(error=f"{operation} returned no geometries")

        try:
            return TransformOutcome(geometry=GeometryEnvelope.from_esri(geometries[0], default_wkid=wkid))
        except GeometryError as e:
            logger.error("Geometry service %s returned an unusable geometry: %s", operation, e)
            return TransformOutcome(error=str(e))

    async def buffer_outcome(
        self, geometry: GeometryEnvelope, distance_feet: float
    ) -> TransformOutcome:
        """
        Buffer a geometry outward by a distance in feet.

        All rings go out in a single request. The buffer itself is computed
        in Web Mercator (102100) whatever the input SR, and the result is
        returned in the input SR.

        Args:
            geometry: Geometry to buffer.
            distance_feet: Buffer distance in feet.

        Returns:
            TransformOutcome with the buffered geometry or the failure reason.
        """
        wkid = geometry.wkid
        distance_meters = distance_feet * FEET_TO_METERS
        url = self.get_operation_url("buffer")

        logger.info("Buffering geometry by %s feet (%.2f m)", distance_feet, distance_meters)

        params = {
            "f": "json",
            "geometries": self._geometries_param(geometry),
            "inSR": str(wkid),
            "outSR": str(wkid),
            "bufferSR": str(BUFFER_WKID),
            "distances": str(distance_meters),
            "unit": METER_UNIT,
            "unionResults": "false",
        }

        try:
            data = await self.post_form_json(url, params)
        except (GeoServiceError, httpx.HTTPError) as e:
            logger.error("Error buffering geometry: %s", e)
            return TransformOutcome(error=str(e))

        return self._first_geometry(data, "buffer", wkid)

    async def buffer(
        self, geometry: GeometryEnvelope, distance_feet: float
    ) -> Optional[GeometryEnvelope]:
        """Buffer a geometry; ``None`` means it could not be buffered."""
        return (await self.buffer_outcome(geometry, distance_feet)).geometry

    async def reproject_outcome(
        self, geometry: GeometryEnvelope, target_wkid: int
    ) -> TransformOutcome:
        """
        Reproject a geometry to another spatial reference.

        Args:
            geometry: Geometry to reproject.
            target_wkid: Well-known id of the output spatial reference.

        Returns:
            TransformOutcome; the input itself when it is already in
            ``target_wkid`` (no request is made).
        """
        if geometry.wkid == target_wkid:
            return TransformOutcome(geometry=geometry)

        url = self.get_operation_url("project")
        params = {
            "f": "json",
            "geometries": self._geometries_param(geometry),
            "inSR": str(geometry.wkid),
            "outSR": str(target_wkid),
        }

        logger.debug("Reprojecting geometry from %d to %d", geometry.wkid, target_wkid)

        try:
            data = await self.post_form_json(url, params)
        except (GeoServiceError, httpx.HTTPError) as e:
            logger.error("Error reprojecting geometry to %d: %s", target_wkid, e)
            return TransformOutcome(error=str(e))

        return self._first_geometry(data, "project", target_wkid)

    async def reproject(
        self, geometry: GeometryEnvelope, target_wkid: int
    ) -> Optional[GeometryEnvelope]:
        """Reproject a geometry; ``None`` means the call failed."""
        return (await self.reproject_outcome(geometry, target_wkid)).geometry
