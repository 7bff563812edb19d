# ABOUTME: Async HTTP client abstraction for catalog provider API calls.
# ABOUTME: Provides rate limiting, retry with backoff, typed failure kinds, and injectable transport.

import asyncio
import logging
import time
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_AUTH_STATUS_CODES = {401, 403}

USER_AGENT = "earshelf/0.1.0"


class MetadataFetchError(Exception):
    """Raised when an HTTP request to a catalog provider fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderUnavailable(MetadataFetchError):
    """The provider timed out, was unreachable, or kept failing server-side."""


class ProviderAuthError(MetadataFetchError):
    """The provider rejected our credentials or the quota is exhausted."""


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for async HTTP GET operations against catalog APIs."""

    async def get(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]: ...

    async def get_bytes(self, url: str) -> bytes: ...


class EarshelfHttpClient:
    """Async HTTP client with rate limiting and retry for catalog API calls.

    Wraps httpx.AsyncClient with a minimum request interval and retry logic
    for transient failures (429, 5xx). Failures are raised as
    ProviderUnavailable or ProviderAuthError so callers can tell a flaky
    service from a configuration problem.
    """

    def __init__(
        self,
        *,
        min_request_interval: float = 0.1,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        client_kwargs: dict[str, Any] = {
            "headers": {"User-Agent": USER_AGENT},
            "timeout": timeout,
            "follow_redirects": True,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**client_kwargs)
        self._min_interval = min_request_interval
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._last_request_time: float = 0.0
        self._rate_lock = asyncio.Lock()

    async def get(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """Send a GET request with rate limiting and retry.

        Args:
            url: The URL to request.
            params: Optional query parameters.

        Returns:
            Parsed JSON response body.

        Raises:
            ProviderAuthError: On 401/403, or 429 after retries are exhausted.
            ProviderUnavailable: On transport errors, timeouts, or exhausted 5xx retries.
            MetadataFetchError: On other non-success responses (e.g. 404).
        """
        response = await self._request(url, params)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderUnavailable(f"Invalid JSON from {url}: {exc}") from exc

    async def get_bytes(self, url: str) -> bytes:
        """Fetch a binary resource such as cover art."""
        response = await self._request(url, None)
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, url: str, params: dict[str, str] | None) -> httpx.Response:
        attempts = 1 + self._max_retries
        last_status = 0
        for attempt in range(attempts):
            await self._rate_limit()
            try:
                response = await self._client.get(url, params=params)
            except httpx.TimeoutException as exc:
                raise ProviderUnavailable(f"Request timed out: {url}: {exc}") from exc
            except httpx.HTTPError as exc:
                raise ProviderUnavailable(f"Request failed: {url}: {exc}") from exc
            last_status = response.status_code

            if response.status_code == 200:
                return response

            if response.status_code in _AUTH_STATUS_CODES:
                raise ProviderAuthError(
                    f"HTTP {response.status_code} from {url}: API key invalid or quota exceeded",
                    status_code=response.status_code,
                )

            if response.status_code not in _RETRYABLE_STATUS_CODES:
                raise MetadataFetchError(
                    f"HTTP {response.status_code} from {url}",
                    status_code=response.status_code,
                )

            if attempt < attempts - 1:
                delay = self._retry_delay * (2**attempt)
                logger.warning(
                    "HTTP %d from %s, retrying in %.1fs (attempt %d/%d)",
                    response.status_code,
                    url,
                    delay,
                    attempt + 1,
                    self._max_retries,
                )
                await asyncio.sleep(delay)

        message = f"HTTP {last_status} from {url} after {attempts} attempts"
        if last_status == 429:
            raise ProviderAuthError(message, status_code=last_status)
        raise ProviderUnavailable(message, status_code=last_status)

    async def _rate_limit(self) -> None:
        """Sleep if needed to maintain minimum interval between requests."""
        if self._min_interval <= 0:
            return
        async with self._rate_lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval and self._last_request_time > 0:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()
