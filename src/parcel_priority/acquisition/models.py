"""
Pydantic models for remote service configuration and parcel geometry.

This module defines configuration models for HTTP clients, rate limiting,
retry behavior and timeouts, plus the GeometryEnvelope that carries a
parcel boundary (or point) through every buffer, reprojection and
feature query call.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import GeometryError

logger = logging.getLogger(__name__)

# Well-known spatial reference ids
WEB_MERCATOR_WKID = 3857
WGS84_WKID = 4326
# Esri's id for Web Mercator; buffering is always computed in this metric SR
BUFFER_WKID = 102100

DEFAULT_WKID = WEB_MERCATOR_WKID


class RetryConfig(BaseModel):
    """Configuration for retry behavior with exponential backoff."""

    max_retries: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Maximum number of retry attempts",
    )
    base_delay: float = Field(
        default=1.0,
        gt=0,
        le=10.0,
        description="Base delay in seconds for exponential backoff",
    )
    max_delay: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Maximum delay in seconds between retries",
    )
    jitter_factor: float = Field(
        default=0.5,
        ge=0,
        le=1.0,
        description="Random jitter factor (0-1) to add to delays",
    )

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the delay for a given retry attempt.

        Uses exponential backoff with jitter: delay = min(base * 2^attempt + jitter, max)

        Args:
            attempt: The current retry attempt number (0-indexed).

        Returns:
            The delay in seconds before the next retry.
        """
        import random

        exponential_delay = self.base_delay * (2**attempt)
        jitter = random.uniform(0, self.jitter_factor)
        return min(exponential_delay + jitter, self.max_delay)


class RateLimitConfig(BaseModel):
    """Configuration for outbound request concurrency."""

    concurrent_requests: int = Field(
        default=8,
        gt=0,
        le=32,
        description="Maximum concurrent requests",
    )
    min_request_interval: float = Field(
        default=0.0,
        ge=0,
        le=10.0,
        description="Minimum interval between requests in seconds",
    )


class TimeoutConfig(BaseModel):
    """Configuration for HTTP request timeouts."""

    connect: float = Field(
        default=10.0,
        gt=0,
        le=60.0,
        description="Timeout for establishing connection in seconds",
    )
    read: float = Field(
        default=20.0,
        gt=0,
        le=300.0,
        description="Timeout for reading response in seconds",
    )
    write: float = Field(
        default=10.0,
        gt=0,
        le=60.0,
        description="Timeout for writing request in seconds",
    )
    pool: float = Field(
        default=20.0,
        gt=0,
        le=60.0,
        description="Timeout for acquiring connection from pool in seconds",
    )


class ConnectionLimits(BaseModel):
    """Configuration for HTTP connection pool limits."""

    max_connections: int = Field(
        default=20,
        gt=0,
        le=100,
        description="Maximum total connections",
    )
    max_keepalive_connections: int = Field(
        default=10,
        gt=0,
        le=50,
        description="Maximum keepalive connections",
    )
    keepalive_expiry: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Keepalive connection expiry in seconds",
    )


class GISClientConfig(BaseModel):
    """
    Complete configuration for a remote GIS service client.

    Aggregates all configuration options for timeouts, concurrency,
    retries and connection management.
    """

    base_url: str = Field(
        default="",
        description="Base URL of the service (empty when callers pass absolute URLs)",
    )
    timeout: TimeoutConfig = Field(
        default_factory=TimeoutConfig,
        description="Timeout configuration",
    )
    limits: ConnectionLimits = Field(
        default_factory=ConnectionLimits,
        description="Connection pool limits",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry configuration",
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Concurrency configuration",
    )
    user_agent: str = Field(
        default="ParcelPriority-Scoring/1.0",
        description="User-Agent header for requests",
    )


class SpatialReference(BaseModel):
    """Esri spatial reference; extra keys such as latestWkid are preserved."""

    model_config = ConfigDict(frozen=True, extra="allow")

    wkid: int = Field(..., description="Well-known id of the coordinate system")


class GeometryEnvelope(BaseModel):
    """
    A polygon or point geometry tagged with its spatial reference.

    Mirrors the Esri JSON geometry shape so it can be posted to ArcGIS
    endpoints as-is. Instances are frozen: buffering and reprojection
    always produce new envelopes.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rings: Optional[list[list[list[float]]]] = Field(
        default=None,
        description="Polygon rings, each a list of [x, y] pairs",
    )
    x: Optional[float] = Field(default=None, description="Point x coordinate")
    y: Optional[float] = Field(default=None, description="Point y coordinate")
    spatial_reference: SpatialReference = Field(
        default_factory=lambda: SpatialReference(wkid=DEFAULT_WKID),
        alias="spatialReference",
    )
    type: Optional[str] = Field(default=None, description="Optional geometry tag")

    @model_validator(mode="after")
    def check_shape(self) -> "GeometryEnvelope":
        """Require either polygon rings or both point coordinates."""
        if self.rings:
            if any(not ring for ring in self.rings):
                raise ValueError("polygon rings must not be empty")
            if any(len(point) < 2 for ring in self.rings for point in ring):
                raise ValueError("ring coordinates must be [x, y] pairs")
            return self
        if self.x is not None and self.y is not None:
            return self
        raise ValueError("geometry needs polygon rings or x/y point coordinates")

    @classmethod
    def from_esri(
        cls,
        payload: dict[str, Any],
        default_wkid: int = DEFAULT_WKID,
    ) -> "GeometryEnvelope":
        """
        Build an envelope from an Esri JSON geometry.

        Geometry services usually omit the spatial reference on returned
        geometries, so the caller passes the one it asked for.

        Args:
            payload: Esri JSON geometry dict.
            default_wkid: Spatial reference used when the payload has none.

        Returns:
            GeometryEnvelope instance.

        Raises:
            GeometryError: If the payload is not a usable polygon or point.
        """
        if not isinstance(payload, dict):
            raise GeometryError(f"Expected an Esri geometry object, got {type(payload).__name__}")

        data = dict(payload)
        if not data.get("spatialReference"):
            logger.debug("Geometry has no spatial reference, assuming wkid %d", default_wkid)
            data["spatialReference"] = {"wkid": default_wkid}

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise GeometryError("Invalid parcel geometry", cause=e)

    @property
    def wkid(self) -> int:
        return self.spatial_reference.wkid

    @property
    def is_polygon(self) -> bool:
        return bool(self.rings)

    @property
    def geometry_type(self) -> str:
        """Esri geometry type name for this envelope."""
        return "esriGeometryPolygon" if self.is_polygon else "esriGeometryPoint"

    def to_esri_json(self) -> dict[str, Any]:
        """
        Convert to an Esri JSON geometry dict.

        Returns:
            Dict suitable for the ``geometry``/``geometries`` parameters.
        """
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_wkt(self) -> str:
        """
        Convert to a WKT string.

        Only the first ring is written: holes and extra parts of
        multi-ring polygons are dropped. Known limitation of the WFS
        intersects test.

        Returns:
            WKT POLYGON (or POINT) string.
        """
        if not self.is_polygon:
            return f"POINT({self.x} {self.y})"

        coords = ", ".join(f"{point[0]} {point[1]}" for point in self.rings[0])
        return f"POLYGON(({coords}))"


# Pre-configured defaults for the public ArcGIS geometry service
GEOMETRY_SERVICE_CONFIG = GISClientConfig(
    base_url="https://utility.arcgisonline.com/arcgis/rest/services/Geometry/GeometryServer",
    timeout=TimeoutConfig(connect=10.0, read=20.0, write=10.0, pool=20.0),
    retry=RetryConfig(max_retries=0),
    rate_limit=RateLimitConfig(concurrent_requests=8, min_request_interval=0.0),
)

# Criteria carry absolute service URLs, so no base URL here
FEATURE_QUERY_CONFIG = GISClientConfig(
    timeout=TimeoutConfig(connect=10.0, read=20.0, write=10.0, pool=20.0),
    retry=RetryConfig(max_retries=0),
    rate_limit=RateLimitConfig(concurrent_requests=8, min_request_interval=0.0),
)

# NYS ShareGIS tax parcels, layer 1 = detailed parcels with attributes
TAX_PARCELS_CONFIG = GISClientConfig(
    base_url="https://gisservices.its.ny.gov/arcgis/rest/services/NYS_Tax_Parcels_Public/MapServer/1",
    timeout=TimeoutConfig(connect=10.0, read=30.0, write=10.0, pool=20.0),
    retry=RetryConfig(max_retries=2, base_delay=1.0, max_delay=10.0, jitter_factor=0.5),
    rate_limit=RateLimitConfig(concurrent_requests=2, min_request_interval=0.2),
)
