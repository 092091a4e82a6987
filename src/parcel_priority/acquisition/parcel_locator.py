"""
Tax parcel lookup by coordinates.

Finds the NYS tax parcel containing a latitude/longitude so its boundary
can be scored. Geocoded points often land on a road centerline between
parcels, so a point-in-parcel miss is retried with a 100 metre search
radius before giving up.

NYS ShareGIS Tax Parcels: https://gisservices.its.ny.gov/arcgis/rest/services/
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from .base_client import AsyncGISClient
from .exceptions import ParcelNotFoundError
from .models import TAX_PARCELS_CONFIG, WGS84_WKID, GISClientConfig, GeometryEnvelope

logger = logging.getLogger(__name__)

PARCEL_OUT_FIELDS = "PRINT_KEY,COUNTY_NAME,MUNI_NAME,PARCEL_ADDR,ACRES,PRIMARY_OWNER"

# Fallback search radius for points that miss every parcel
FALLBACK_RADIUS_METERS = 100


@dataclass
class ParcelFeature:
    """A tax parcel boundary with its assessor attributes."""

    geometry: GeometryEnvelope
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def parcel_id(self) -> Optional[str]:
        return self.attributes.get("PRINT_KEY")

    def to_dict(self) -> dict[str, Any]:
        """Parcel info in the shape the scoring response reports it."""
        return {
            "address": self.attributes.get("PARCEL_ADDR"),
            "county": self.attributes.get("COUNTY_NAME"),
            "municipality": self.attributes.get("MUNI_NAME"),
            "acres": self.attributes.get("ACRES"),
            "printKey": self.parcel_id,
            "owner": self.attributes.get("PRIMARY_OWNER"),
        }


class ParcelLocator(AsyncGISClient):
    """
    Client for locating tax parcels on the NYS Tax Parcels layer.

    Usage:
        async with ParcelLocator() as locator:
            parcel = await locator.find_parcel(41.854, -74.123)
    """

    def __init__(
        self,
        config: Optional[GISClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(config or TAX_PARCELS_CONFIG, transport=transport)

    def get_query_url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/query"

    def _point_params(self, latitude: float, longitude: float) -> dict[str, str]:
        return {
            "f": "json",
            "geometry": json.dumps({
                "x": longitude,
                "y": latitude,
                "spatialReference": {"wkid": WGS84_WKID},
            }),
            "geometryType": "esriGeometryPoint",
            "spatialRel": "esriSpatialRelWithin",
            "returnGeometry": "true",
            "outFields": PARCEL_OUT_FIELDS,
        }

    def _first_feature(self, data: dict[str, Any]) -> Optional[ParcelFeature]:
        features = data.get("features") or []
        if not features:
            return None

        # Feature geometries inherit the layer-level spatial reference
        layer_sr = (data.get("spatialReference") or {}).get("wkid")
        feature = features[0]
        geometry = feature.get("geometry") or {}
        if layer_sr and not geometry.get("spatialReference"):
            geometry = {**geometry, "spatialReference": data["spatialReference"]}

        return ParcelFeature(
            geometry=GeometryEnvelope.from_esri(geometry),
            attributes=feature.get("attributes") or {},
        )

    async def find_parcel(self, latitude: float, longitude: float) -> ParcelFeature:
        """
        Find the tax parcel at a location.

        Args:
            latitude: WGS84 latitude.
            longitude: WGS84 longitude.

        Returns:
            ParcelFeature for the containing (or nearest matched) parcel.

        Raises:
            ParcelNotFoundError: If no parcel is found even with the fallback radius.
            GeoServiceError: If the parcel service itself fails.
        """
        url = self.get_query_url()

        data = await self.get_json(url, params=self._point_params(latitude, longitude))
        parcel = self._first_feature(data)
        if parcel is not None:
            logger.info("Found parcel %s at (%.6f, %.6f)", parcel.parcel_id, latitude, longitude)
            return parcel

        logger.info("No exact parcel match at (%.6f, %.6f), trying buffer search", latitude, longitude)

        params = self._point_params(latitude, longitude)
        params.update({
            "spatialRel": "esriSpatialRelIntersects",
            "distance": str(FALLBACK_RADIUS_METERS),
            "units": "esriSRUnit_Meter",
        })
        data = await self.get_json(url, params=params)
        parcel = self._first_feature(data)
        if parcel is not None:
            logger.info(
                "Found %d parcels within %d m, using %s",
                len(data.get("features", [])),
                FALLBACK_RADIUS_METERS,
                parcel.parcel_id,
            )
            return parcel

        raise ParcelNotFoundError(
            f"No parcel found at ({latitude}, {longitude}) even within {FALLBACK_RADIUS_METERS} m",
            latitude=latitude,
            longitude=longitude,
        )
