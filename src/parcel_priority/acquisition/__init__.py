"""
Remote geospatial service access for parcel scoring.

This module provides async clients for the remote services the scoring
criteria depend on:

    from parcel_priority.acquisition import SpatialQueryClient

    async with SpatialQueryClient() as query_client:
        met = await query_client.query(layer_url, parcel_geometry, buffer_feet=100)

- SpatialQueryClient: ArcGIS ``/query`` intersection counts and WFS GetFeature.
- GeometryTransformClient: GeometryServer buffer and project.
- ParcelLocator: NYS tax parcel lookup by coordinates.
"""

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    FeatureServiceError,
    GeometryError,
    GeoServiceError,
    InvalidResponseError,
    MaxRetriesExceededError,
    NotFoundError,
    ParcelNotFoundError,
    RateLimitError,
    ServerError,
    ServiceConnectionError,
    ServiceTimeoutError,
)
from .feature_query import QueryOutcome, SpatialQueryClient
from .geometry_service import GeometryTransformClient, TransformOutcome
from .models import (
    BUFFER_WKID,
    DEFAULT_WKID,
    FEATURE_QUERY_CONFIG,
    GEOMETRY_SERVICE_CONFIG,
    TAX_PARCELS_CONFIG,
    WEB_MERCATOR_WKID,
    WGS84_WKID,
    ConnectionLimits,
    GeometryEnvelope,
    GISClientConfig,
    RateLimitConfig,
    RetryConfig,
    SpatialReference,
    TimeoutConfig,
)
from .parcel_locator import ParcelFeature, ParcelLocator

__all__ = [
    # Exceptions
    "AuthenticationError",
    "ConfigurationError",
    "FeatureServiceError",
    "GeometryError",
    "GeoServiceError",
    "InvalidResponseError",
    "MaxRetriesExceededError",
    "NotFoundError",
    "ParcelNotFoundError",
    "RateLimitError",
    "ServerError",
    "ServiceConnectionError",
    "ServiceTimeoutError",
    # Models
    "ConnectionLimits",
    "GeometryEnvelope",
    "GISClientConfig",
    "RateLimitConfig",
    "RetryConfig",
    "SpatialReference",
    "TimeoutConfig",
    # Pre-configured
    "BUFFER_WKID",
    "DEFAULT_WKID",
    "FEATURE_QUERY_CONFIG",
    "GEOMETRY_SERVICE_CONFIG",
    "TAX_PARCELS_CONFIG",
    "WEB_MERCATOR_WKID",
    "WGS84_WKID",
    # Clients
    "GeometryTransformClient",
    "ParcelFeature",
    "ParcelLocator",
    "QueryOutcome",
    "SpatialQueryClient",
    "TransformOutcome",
]
