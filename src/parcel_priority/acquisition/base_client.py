"""
Base client for remote ArcGIS-style geospatial services.

This module provides the AsyncGISClient base class that implements:
- Concurrency limiting via asyncio.Semaphore
- Optional retry logic with exponential backoff
- Proper httpx.AsyncClient lifecycle management
- JSON decoding that recognises ArcGIS ``error`` payloads
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from .exceptions import (
    AuthenticationError,
    FeatureServiceError,
    InvalidResponseError,
    MaxRetriesExceededError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ServiceConnectionError,
    ServiceTimeoutError,
)
from .models import GISClientConfig

logger = logging.getLogger(__name__)


class AsyncGISClient:
    """
    Base class for async geospatial service clients.

    Provides common functionality for making concurrency-limited, optionally
    retried HTTP requests to ArcGIS REST and OGC endpoints. Subclasses add
    the endpoint-specific request building and response handling.

    Usage:
        async with MyServiceClient(config) as client:
            data = await client.post_form_json(url, params)

    Attributes:
        config: The GISClientConfig instance with all settings.
        _client: The httpx.AsyncClient instance (created on context entry).
        _semaphore: Asyncio semaphore limiting concurrent requests.
    """

    def __init__(
        self,
        config: GISClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client with configuration.

        Args:
            config: GISClientConfig instance with all client settings.
            transport: Optional httpx transport, used by tests to stub
                       the remote services.
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._request_count = 0
        self._last_request_time: float = 0

    async def __aenter__(self) -> "AsyncGISClient":
        await self._create_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._close_client()

    async def _create_client(self) -> None:
        """Create the httpx.AsyncClient with configured settings."""
        timeout = httpx.Timeout(
            connect=self.config.timeout.connect,
            read=self.config.timeout.read,
            write=self.config.timeout.write,
            pool=self.config.timeout.pool,
        )

        limits = httpx.Limits(
            max_connections=self.config.limits.max_connections,
            max_keepalive_connections=self.config.limits.max_keepalive_connections,
            keepalive_expiry=self.config.limits.keepalive_expiry,
        )

        self._client = httpx.AsyncClient(
            timeout=timeout,
            limits=limits,
            headers={
                "User-Agent": self.config.user_agent,
                "Accept": "application/json",
            },
            follow_redirects=True,
            transport=self._transport,
        )

        self._semaphore = asyncio.Semaphore(
            self.config.rate_limit.concurrent_requests
        )

        logger.debug(
            "Created %s for %s (max %d concurrent)",
            type(self).__name__,
            self.config.base_url or "absolute URLs",
            self.config.rate_limit.concurrent_requests,
        )

    async def _close_client(self) -> None:
        """Close the httpx.AsyncClient and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug(
                "Closed %s (made %d requests)", type(self).__name__, self._request_count
            )

    def _ensure_client(self) -> httpx.AsyncClient:
        """
        Ensure the client is initialized and return it.

        Raises:
            RuntimeError: If client is not initialized (not in context manager).
        """
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def _rate_limit_delay(self) -> None:
        """Ensure the configured minimum interval between requests."""
        interval = self.config.rate_limit.min_request_interval
        if interval <= 0:
            return

        elapsed = time.monotonic() - self._last_request_time
        if elapsed < interval:
            delay = interval - elapsed
            logger.debug("Rate limiting: sleeping %.3f seconds", delay)
            await asyncio.sleep(delay)

        self._last_request_time = time.monotonic()

    def _classify_http_error(
        self, error: httpx.HTTPStatusError, url: str
    ) -> Exception:
        """
        Convert httpx.HTTPStatusError to the matching service exception.

        Args:
            error: The httpx HTTPStatusError.
            url: The URL that was requested.

        Returns:
            Appropriate custom exception for the status code.
        """
        status = error.response.status_code

        if status == 429:
            retry_after = error.response.headers.get("Retry-After")
            try:
                retry_seconds = float(retry_after) if retry_after else None
            except ValueError:
                retry_seconds = None
            return RateLimitError(
                f"Rate limit exceeded for {url}",
                retry_after=retry_seconds,
                cause=error,
            )
        elif status in (401, 403):
            return AuthenticationError(
                f"Authentication failed for {url}: {status}",
                status_code=status,
                cause=error,
            )
        elif status == 404:
            return NotFoundError(
                f"Resource not found: {url}",
                url=url,
                cause=error,
            )
        elif status >= 500:
            return ServerError(
                f"Server error {status} for {url}",
                status_code=status,
                cause=error,
            )
        else:
            return InvalidResponseError(
                f"HTTP {status} error for {url}",
                response_text=error.response.text,
                cause=error,
            )

    def _classify_transport_error(
        self, error: httpx.RequestError, url: str
    ) -> Exception:
        """
        Convert httpx request errors to the matching service exception.

        Args:
            error: The httpx RequestError.
            url: The URL that was requested.

        Returns:
            Appropriate custom exception for the error type.
        """
        if isinstance(error, httpx.TimeoutException):
            timeout_type = "unknown"
            if isinstance(error, httpx.ConnectTimeout):
                timeout_type = "connect"
            elif isinstance(error, httpx.ReadTimeout):
                timeout_type = "read"
            elif isinstance(error, httpx.WriteTimeout):
                timeout_type = "write"
            elif isinstance(error, httpx.PoolTimeout):
                timeout_type = "pool"

            return ServiceTimeoutError(
                f"Request to {url} timed out ({timeout_type})",
                timeout_type=timeout_type,
                cause=error,
            )
        elif isinstance(error, httpx.DecodingError):
            return InvalidResponseError(
                f"Undecodable response body from {url}: {error}",
                cause=error,
            )
        elif isinstance(error, httpx.ConnectError):
            return ServiceConnectionError(
                f"Failed to connect to {url}",
                cause=error,
            )
        else:
            return ServiceConnectionError(
                f"Transport error for {url}: {error}",
                cause=error,
            )

    def _is_retryable_error(self, error: Exception) -> bool:
        """Return True if the request should be retried after this error."""
        if isinstance(error, (ServiceTimeoutError, ServiceConnectionError, RateLimitError)):
            return True
        if isinstance(error, ServerError) and error.status_code in (
            500, 502, 503, 504
        ):
            return True
        return False

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make an HTTP request with concurrency limiting and optional retries.

        With the default ``max_retries=0`` this is a single attempt whose
        failure is raised as the classified exception.

        Args:
            method: HTTP method (GET, POST).
            url: The URL to request.
            **kwargs: Additional arguments passed to httpx.request().

        Returns:
            The httpx.Response object.

        Raises:
            MaxRetriesExceededError: If retries were configured and all failed.
            GeoServiceError: The classified error of a non-retried failure.
        """
        client = self._ensure_client()
        max_retries = self.config.retry.max_retries
        last_error: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            try:
                async with self._semaphore:  # type: ignore
                    await self._rate_limit_delay()

                    logger.debug(
                        "Request attempt %d/%d: %s %s",
                        attempt + 1,
                        max_retries + 1,
                        method,
                        url,
                    )

                    response = await client.request(method, url, **kwargs)
                    self._request_count += 1

                    response.raise_for_status()
                    return response

            except httpx.HTTPStatusError as e:
                error = self._classify_http_error(e, url)
                if max_retries == 0 or not self._is_retryable_error(error):
                    raise error
                last_error = error
                logger.warning(
                    "Retryable HTTP error on attempt %d: %s",
                    attempt + 1,
                    error,
                )

            except httpx.RequestError as e:
                error = self._classify_transport_error(e, url)
                if max_retries == 0 or isinstance(error, InvalidResponseError):
                    raise error
                last_error = error
                logger.warning(
                    "Transport error on attempt %d: %s",
                    attempt + 1,
                    error,
                )

            if attempt < max_retries:
                if isinstance(last_error, RateLimitError) and last_error.retry_after:
                    delay = last_error.retry_after
                else:
                    delay = self.config.retry.calculate_delay(attempt)

                logger.info(
                    "Retrying in %.2f seconds (attempt %d/%d)",
                    delay,
                    attempt + 2,
                    max_retries + 1,
                )
                await asyncio.sleep(delay)

        raise MaxRetriesExceededError(
            f"Max retries ({max_retries}) exceeded for {url}",
            attempts=max_retries + 1,
            last_error=last_error,
        )

    def _decode_json(self, response: httpx.Response, url: str) -> dict[str, Any]:
        """
        Parse a JSON response body and surface ArcGIS error payloads.

        Raises:
            InvalidResponseError: If the body is not a JSON object.
            FeatureServiceError: If the body carries an ``error`` member.
        """
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseError(
                f"Failed to parse JSON from {url}",
                response_text=response.text,
                cause=e,
            )

        if not isinstance(data, dict):
            raise InvalidResponseError(
                f"Expected a JSON object from {url}",
                response_text=response.text,
            )

        if data.get("error"):
            error = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            raise FeatureServiceError(
                f"Service error from {url}: {error.get('message', 'unknown error')}",
                error=error,
            )

        return data

    async def get_json(self, url: str, **kwargs: Any) -> dict[str, Any]:
        """
        Make a GET request and parse the JSON response.

        Args:
            url: The URL to request.
            **kwargs: Additional arguments passed to httpx.request().

        Returns:
            Parsed JSON response as a dictionary.
        """
        response = await self._request_with_retry("GET", url, **kwargs)
        return self._decode_json(response, url)

    async def post_form_json(
        self, url: str, data: dict[str, str], **kwargs: Any
    ) -> dict[str, Any]:
        """
        POST a form-encoded body and parse the JSON response.

        Large parcel geometries do not fit in a query string, so ArcGIS
        operations are always sent as form posts.

        Args:
            url: The URL to request.
            data: Form fields.
            **kwargs: Additional arguments passed to httpx.request().

        Returns:
            Parsed JSON response as a dictionary.
        """
        response = await self._request_with_retry("POST", url, data=data, **kwargs)
        return self._decode_json(response, url)
