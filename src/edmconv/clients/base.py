"""Base async HTTP client with rate limiting and connection pooling.

All remote clients inherit from this base to ensure consistent behavior:
- Async/await for non-blocking I/O
- Connection pooling for performance
- Rate limiting to respect shared registry / store quotas
- Automatic retries with exponential backoff
- Proper error handling and logging

Usage:
    class MyStoreClient(BaseAsyncClient):
        def __init__(self, token: str, rate_limit: int = 10):
            super().__init__(
                base_url="https://api.example.com",
                headers={"Authorization": f"Bearer {token}"},
                rate_limit=rate_limit
            )

        async def get_dataset(self, name: str) -> dict:
            return await self._request("GET", f"/datasets/{name}")
"""

import asyncio
import logging
from typing import Any

import httpx


logger = logging.getLogger(__name__)

# Retry configuration
_RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds


class RateLimiter:
    """Token bucket rate limiter for async operations.

    Ensures we don't exceed remote rate limits using a token bucket algorithm.
    Safe for concurrent coroutines on one event loop.

    Args:
        rate: Maximum requests per second
    """

    def __init__(self, rate: int) -> None:
        self.rate = rate
        self.tokens = rate
        self.updated_at: float = 0.0
        self._initialized: bool = False
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Acquire a token, waiting if necessary."""
        async with self._lock:
            loop = asyncio.get_running_loop()

            if not self._initialized:
                self.updated_at = loop.time()
                self._initialized = True

            while self.tokens < 1:
                now = loop.time()
                elapsed = now - self.updated_at
                self.tokens = min(self.rate, self.tokens + elapsed * self.rate)
                self.updated_at = now

                if self.tokens < 1:
                    wait_time = (1 - self.tokens) / self.rate
                    await asyncio.sleep(wait_time)

            self.tokens -= 1
            self.updated_at = loop.time()


class APIProviderError(Exception):
    """Base exception for remote HTTP errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class NotFoundError(APIProviderError):
    """Raised when the remote resource does not exist (HTTP 404)."""


class BaseAsyncClient:
    """Base async HTTP client with rate limiting and connection pooling.

    Provides a foundation for all remote clients with consistent error
    handling, rate limiting, and logging. Endpoints may be paths relative to
    ``base_url`` or absolute URLs.

    Args:
        base_url: Base URL for all relative requests (may be empty)
        headers: Default headers for all requests
        rate_limit: Maximum requests per second (default: 10)
        timeout: Request timeout in seconds (default: 30)
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        rate_limit: int = 10,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseAsyncClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _normalize_endpoint(endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        if not endpoint.startswith("/"):
            return f"/{endpoint}"
        return endpoint

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any | None = None,
        content: bytes | str | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send an HTTP request with rate limiting, retries, and error handling.

        Retries on transient failures (429, 502, 503, 504, timeouts, network
        errors) with exponential backoff. Non-retryable errors raise immediately.

        Args:
            method: HTTP method (GET, HEAD, POST, ...)
            endpoint: Path relative to base_url, or an absolute URL
            params: Query parameters
            json_data: JSON body
            content: Raw request body
            data: Form-encoded body
            files: Multipart files
            headers: Per-request headers

        Returns:
            The successful httpx.Response

        Raises:
            NotFoundError: On HTTP 404
            APIProviderError: If request fails after all retries
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with context manager.")

        endpoint = self._normalize_endpoint(endpoint)
        last_error: APIProviderError | None = None

        for attempt in range(_MAX_RETRIES + 1):
            # Rate limit before each attempt
            await self._rate_limiter.acquire()

            logger.debug(
                "%s %s%s params=%s (attempt %d/%d)",
                method, self.base_url, endpoint, params, attempt + 1, _MAX_RETRIES + 1,
            )

            try:
                response = await self._client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    json=json_data,
                    content=content,
                    data=data,
                    files=files,
                    headers=headers,
                )

                logger.debug("Response: %d for %s", response.status_code, endpoint)

                if response.status_code >= 400:
                    error_body = response.text[:500]

                    if response.status_code in _RETRYABLE_STATUS_CODES and attempt < _MAX_RETRIES:
                        backoff = _BASE_BACKOFF * (2 ** attempt)
                        logger.warning(
                            "Retryable %d for %s, retrying in %.1fs (attempt %d/%d)",
                            response.status_code, endpoint, backoff,
                            attempt + 1, _MAX_RETRIES + 1,
                        )
                        last_error = APIProviderError(
                            message=f"Request failed: {response.status_code}",
                            status_code=response.status_code,
                            response_body=error_body,
                        )
                        await asyncio.sleep(backoff)
                        continue

                    if response.status_code == 404:
                        raise NotFoundError(
                            message=f"Not found: {method} {endpoint}",
                            status_code=404,
                            response_body=error_body,
                        )

                    logger.error(
                        "HTTP error: %d %s - %s",
                        response.status_code, endpoint, error_body,
                    )
                    raise APIProviderError(
                        message=f"Request failed: {response.status_code}",
                        status_code=response.status_code,
                        response_body=error_body,
                    )

                return response

            except httpx.TimeoutException as e:
                if attempt < _MAX_RETRIES:
                    backoff = _BASE_BACKOFF * (2 ** attempt)
                    logger.warning(
                        "Timeout for %s, retrying in %.1fs (attempt %d/%d)",
                        endpoint, backoff, attempt + 1, _MAX_RETRIES + 1,
                    )
                    last_error = APIProviderError(f"Request timeout: {e}")
                    await asyncio.sleep(backoff)
                    continue
                logger.error("Request timeout for %s: %s", endpoint, e)
                raise APIProviderError(f"Request timeout: {e}") from e

            except httpx.NetworkError as e:
                if attempt < _MAX_RETRIES:
                    backoff = _BASE_BACKOFF * (2 ** attempt)
                    logger.warning(
                        "Network error for %s, retrying in %.1fs (attempt %d/%d)",
                        endpoint, backoff, attempt + 1, _MAX_RETRIES + 1,
                    )
                    last_error = APIProviderError(f"Network error: {e}")
                    await asyncio.sleep(backoff)
                    continue
                logger.error("Network error for %s: %s", endpoint, e)
                raise APIProviderError(f"Network error: {e}") from e

            except APIProviderError:
                raise

            except Exception as e:
                logger.error("Unexpected error for %s: %s", endpoint, e)
                raise APIProviderError(f"Unexpected error: {e}") from e

        # Exhausted retries
        raise last_error or APIProviderError("Request failed after retries")

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any | None = None,
        content: bytes | str | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send a request and decode the JSON response body.

        Raises:
            APIProviderError: If the request fails or the body is not JSON
        """
        response = await self._send(
            method, endpoint, params=params, json_data=json_data,
            content=content, headers=headers,
        )
        try:
            return response.json()
        except Exception as e:
            logger.error("Failed to parse JSON response: %s", e)
            raise APIProviderError(
                message=f"Invalid JSON response: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from e

    async def get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Convenience method for GET requests."""
        return await self._request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_data: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Convenience method for POST requests."""
        return await self._request("POST", endpoint, params=params, json_data=json_data)

    async def delete(self, endpoint: str) -> None:
        """Convenience method for DELETE requests (body is discarded)."""
        await self._send("DELETE", endpoint)
