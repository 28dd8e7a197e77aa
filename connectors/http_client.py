"""Source API HTTP Client.

Low-level aiohttp client shared by the accounting-system connectors.
Handles auth headers, retries with backoff, timeouts and error mapping.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import aiohttp

logger = logging.getLogger(__name__)


class SourceApiError(Exception):
    """Base exception for source API errors."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class SourceAuthenticationError(SourceApiError):
    """Authentication failed (401/403)."""
    pass


class SourceNotFoundError(SourceApiError):
    """Resource not found (404)."""
    pass


class SourceRateLimitError(SourceApiError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 2
    base_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


class SourceApiClient:
    """JSON-over-HTTP client for one accounting system.

    Usage:
        client = SourceApiClient("https://my.sevdesk.de/api/v1", {"Authorization": key})
        await client.connect()
        data = await client.get("/Invoice")
        await client.disconnect()
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 10,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config or RetryConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed

    async def connect(self) -> None:
        """Open the HTTP session."""
        if not self.is_connected:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def get(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> Any:
        return await self._request("GET", endpoint, params=params)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a request with automatic retries.

        Returns:
            Decoded JSON response ({} for empty bodies)

        Raises:
            SourceAuthenticationError: Authentication failed
            SourceNotFoundError: Resource not found
            SourceRateLimitError: Rate limit exceeded after retries
            SourceApiError: Other API or transport errors
        """
        if not self.is_connected:
            raise SourceApiError("Not connected. Call connect() first.")

        url = self._build_url(endpoint)
        retry_config = self.retry_config
        last_error: Optional[Exception] = None

        for attempt in range(retry_config.max_retries + 1):
            try:
                async with self._session.request(method, url, params=params, json=data) as response:
                    response_text = await response.text()

                    if response.status < 400:
                        if response.status == 204 or not response_text:
                            return {}
                        try:
                            return json.loads(response_text)
                        except json.JSONDecodeError as e:
                            raise SourceApiError(
                                f"Invalid JSON from {url}: {e}",
                                response.status,
                                response_text,
                            )

                    if response.status in (401, 403):
                        raise SourceAuthenticationError(
                            f"Authentication failed: {response_text}",
                            response.status,
                            response_text,
                        )

                    if response.status == 404:
                        raise SourceNotFoundError(
                            f"Resource not found: {url}",
                            response.status,
                            response_text,
                        )

                    if response.status == 429:
                        retry_after = int(response.headers.get("Retry-After", 1))
                        if attempt < retry_config.max_retries:
                            delay = min(retry_after, retry_config.max_delay)
                            logger.warning(f"Rate limited, waiting {delay}s...")
                            await asyncio.sleep(delay)
                            continue
                        raise SourceRateLimitError("Rate limit exceeded", retry_after)

                    if response.status in retry_config.retry_on_status:
                        if attempt < retry_config.max_retries:
                            delay = retry_config.get_delay(attempt)
                            logger.warning(
                                f"Request failed with {response.status}, "
                                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                            )
                            await asyncio.sleep(delay)
                            continue

                    raise SourceApiError(
                        f"API error {response.status}: {response_text}",
                        response.status,
                        response_text,
                    )

            except SourceApiError:
                raise
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_error = e
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Request failed with {type(e).__name__}: {e}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise SourceApiError(
                    f"Request failed after {retry_config.max_retries} retries: {type(e).__name__}: {e}"
                ) from e

        raise SourceApiError(f"Request failed: {last_error}")
