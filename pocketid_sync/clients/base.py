"""Base client with retry logic, error handling, and rate limiting."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx
import structlog
from asyncio_throttle import Throttler
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocketid_sync.clients.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ClientError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BaseAPIClient(ABC):
    """Abstract base class for API clients with common functionality."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: int = 30,
        rate_limit_per_minute: int = 600,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the base API client.

        Args:
            base_url: Base URL for the API
            timeout_seconds: Request timeout in seconds
            rate_limit_per_minute: Maximum requests per minute
            max_retries: Maximum retry attempts for failed requests
            retry_delay_seconds: Initial delay between retries
            user_agent: Custom user agent string
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.rate_limit_per_minute = rate_limit_per_minute
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds

        # Content-Type is left to httpx so multipart uploads get their boundary
        headers = {
            "User-Agent": user_agent or self._get_default_user_agent(),
            "Accept": "application/json",
        }

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            follow_redirects=True,
            transport=transport,
        )

        self._throttler = Throttler(rate_limit=rate_limit_per_minute, period=60)

        self._request_count = 0

        self._logger = logger.bind(
            client_type=self.__class__.__name__,
            base_url=self.base_url,
        )

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()

    @abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for requests.

        Returns:
            Dictionary of authentication headers
        """
        pass

    def _get_default_user_agent(self) -> str:
        """Get default user agent string."""
        from pocketid_sync.version import __version__
        return f"pocketid-sync/{__version__}"

    async def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
        files: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with rate limiting and error handling.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, etc.)
            path: API endpoint path (relative to base URL)
            params: Query parameters
            json_data: JSON request body
            files: Multipart files to upload
            headers: Additional headers

        Returns:
            HTTP response object

        Raises:
            APIError: If the request fails
        """
        async with self._throttler:
            url = f"{self.base_url}/{path.lstrip('/')}"
            request_headers = self._get_auth_headers()
            if headers:
                request_headers.update(headers)

            self._request_count += 1

            request_id = f"req_{self._request_count}"

            self._logger.debug(
                "Making API request",
                request_id=request_id,
                method=method,
                url=url,
                params=params,
                has_json_data=json_data is not None,
                has_files=files is not None,
            )

            try:
                response = await self._client.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_data,
                    files=files,
                    headers=request_headers,
                )
            except httpx.RequestError as e:
                self._logger.error(
                    "Network error during API request",
                    request_id=request_id,
                    error=str(e),
                )
                raise NetworkError(f"Network error: {e}") from e

            self._logger.debug(
                "API request completed",
                request_id=request_id,
                status_code=response.status_code,
                response_size=len(response.content),
            )

            if response.is_success:
                return response

            raise self._error_for_response(response)

    def _error_for_response(self, response: httpx.Response) -> APIError:
        """Map a non-success response onto the exception hierarchy."""
        status = response.status_code
        if status == 401:
            return AuthenticationError(
                "Authentication failed", status_code=status, response_text=response.text
            )
        if status == 403:
            return AuthorizationError(
                "Authorization failed", status_code=status, response_text=response.text
            )
        if status == 404:
            return ResourceNotFoundError(
                "Resource not found", status_code=status, response_text=response.text
            )
        if status == 429:
            return RateLimitError(
                "Rate limit exceeded",
                status_code=status,
                response_text=response.text,
                retry_after=self._get_retry_after(response),
            )
        if 400 <= status < 500:
            return ClientError(
                f"Client error: {status}", status_code=status, response_text=response.text
            )
        if 500 <= status < 600:
            return ServerError(
                f"Server error: {status}", status_code=status, response_text=response.text
            )
        return APIError(
            f"Unexpected status code: {status}", status_code=status, response_text=response.text
        )

    def _get_retry_after(self, response: httpx.Response) -> Optional[int]:
        """Extract retry-after value from response headers.

        Args:
            response: HTTP response

        Returns:
            Retry-after value in seconds, or None if not present
        """
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return int(retry_after)
            except ValueError:
                pass
        return None

    async def with_retry(
        self,
        operation_name: str,
        operation: Callable[[], Awaitable[T]],
        retry_on_rate_limit: bool = True,
    ) -> T:
        """Execute an operation with automatic retry logic.

        Only transient failures are retried: server errors, network errors
        and (optionally) rate limiting. Everything else propagates on the
        first attempt.

        Args:
            operation_name: Name of the operation for logging
            operation: Coroutine function to execute
            retry_on_rate_limit: Whether to retry on rate limit errors

        Returns:
            Result of the operation

        Raises:
            APIError: If the operation fails after all retries
        """
        retryable = [ServerError, NetworkError]
        if retry_on_rate_limit:
            retryable.append(RateLimitError)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(
                    multiplier=self.retry_delay_seconds,
                    min=self.retry_delay_seconds,
                    max=60,
                ),
                retry=retry_if_exception_type(tuple(retryable)),
                reraise=True,
            ):
                with attempt:
                    self._logger.debug(
                        "Executing operation with retry",
                        operation=operation_name,
                        attempt_number=attempt.retry_state.attempt_number,
                    )
                    return await operation()
        except APIError as e:
            if not isinstance(e, ResourceNotFoundError):
                self._logger.error(
                    "Operation failed",
                    operation=operation_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            raise

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make a GET request with retries."""
        return await self.with_retry(
            f"GET {path}",
            lambda: self._make_request("GET", path, params=params),
        )

    async def post(
        self,
        path: str,
        json_data: Optional[Any] = None,
    ) -> httpx.Response:
        """Make a POST request with retries."""
        return await self.with_retry(
            f"POST {path}",
            lambda: self._make_request("POST", path, json_data=json_data),
        )

    async def put(
        self,
        path: str,
        json_data: Optional[Any] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make a PUT request with retries."""
        return await self.with_retry(
            f"PUT {path}",
            lambda: self._make_request("PUT", path, json_data=json_data, files=files),
        )

    async def delete(self, path: str) -> httpx.Response:
        """Make a DELETE request with retries."""
        return await self.with_retry(
            f"DELETE {path}",
            lambda: self._make_request("DELETE", path),
        )

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a GET request and return the decoded JSON body.

        Raises:
            APIError: If response is not valid JSON
        """
        response = await self.get(path, params=params)
        return self._decode_json(response)

    def _decode_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Failed to parse JSON response: {e}") from e

    @abstractmethod
    async def health_check(self) -> bool:
        """Perform a basic health check against the API.

        Returns:
            True if the API is healthy, False otherwise
        """
        pass
