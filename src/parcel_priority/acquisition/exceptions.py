"""
Custom exceptions for remote geospatial service access.

This module defines a hierarchy of exceptions for the error conditions
that can occur while talking to ArcGIS feature, geometry and WFS services.
The query and transform clients catch these at their boundary and degrade
to "not matched" / "could not transform"; they only escape to callers for
caller-contract violations (bad geometry, bad configuration, parcel lookup).
"""

from typing import Any, Optional


class GeoServiceError(Exception):
    """Base exception for all remote geospatial service errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        """
        Initialize the service error.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused this error, if any.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class ServiceConnectionError(GeoServiceError):
    """Raised when unable to establish a connection to the service."""

    pass


class ServiceTimeoutError(GeoServiceError):
    """Raised when a request times out."""

    def __init__(
        self,
        message: str,
        timeout_type: str = "unknown",
        cause: Optional[Exception] = None,
    ) -> None:
        """
        Initialize the timeout error.

        Args:
            message: Human-readable error description.
            timeout_type: Type of timeout (connect, read, write, pool).
            cause: The underlying exception that caused this error.
        """
        super().__init__(message, cause)
        self.timeout_type = timeout_type


class RateLimitError(GeoServiceError):
    """Raised when the service rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.retry_after = retry_after


class ServerError(GeoServiceError):
    """Raised when the service returns a 5xx error."""

    def __init__(
        self,
        message: str,
        status_code: int,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.status_code = status_code


class AuthenticationError(GeoServiceError):
    """Raised when authentication fails (401/403)."""

    def __init__(
        self,
        message: str,
        status_code: int,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.status_code = status_code


class NotFoundError(GeoServiceError):
    """Raised when the requested service or layer does not exist (404)."""

    def __init__(
        self,
        message: str,
        url: str,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.url = url


class InvalidResponseError(GeoServiceError):
    """Raised when the service returns an invalid or unparseable response."""

    def __init__(
        self,
        message: str,
        response_text: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        """
        Initialize the invalid response error.

        Args:
            message: Human-readable error description.
            response_text: The raw response text that couldn't be parsed.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message, cause)
        self.response_text = response_text[:500] if response_text else None


class FeatureServiceError(InvalidResponseError):
    """
    Raised when an ArcGIS service answers 200 with an ``error`` payload.

    ArcGIS REST endpoints report most failures (bad geometry, bad where
    clause, unknown layer) this way rather than through the HTTP status.
    """

    def __init__(
        self,
        message: str,
        error: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.error = error or {}
        self.code = self.error.get("code")
        self.details = self.error.get("details", [])


class MaxRetriesExceededError(GeoServiceError):
    """Raised when maximum retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, last_error)
        self.attempts = attempts
        self.last_error = last_error


class GeometryError(GeoServiceError):
    """Raised when a parcel geometry is invalid or cannot be processed."""

    def __init__(
        self,
        message: str,
        parcel_id: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.parcel_id = parcel_id


class ConfigurationError(GeoServiceError):
    """Raised when a criterion or client is constructed with missing settings."""

    def __init__(self, message: str, criterion_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.criterion_id = criterion_id


class ParcelNotFoundError(GeoServiceError):
    """Raised when no tax parcel can be found at a location."""

    def __init__(self, message: str, latitude: float, longitude: float) -> None:
        super().__init__(message)
        self.latitude = latitude
        self.longitude = longitude
