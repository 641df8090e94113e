"""
NASA API manager for the Astronomy Picture of the Day endpoint.

This module handles all communication with the APOD API: metadata lookups
by date and streaming of image files. Every call is a single attempt; errors
are translated into the exception hierarchy below and propagated.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, date
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import aiohttp

from version import get_user_agent
from ..models.apod_data import ApodRecord
from ..utils.helpers import AsyncByteStream, format_apod_date

logger = logging.getLogger(__name__)


class ApodAPIException(Exception):
    """Base exception for APOD API-related errors."""

    pass


class ApodNetworkException(ApodAPIException):
    """Exception for network-related errors."""

    pass


class ApodDataException(ApodAPIException):
    """Exception for missing or malformed APOD data."""

    pass


class ApodRateLimitException(ApodAPIException):
    """Exception for rate limit exceeded errors."""

    pass


class ApodAuthenticationException(ApodAPIException):
    """Exception for API authentication errors."""

    pass


@dataclass
class ApodAPIResponse:
    """Container for raw APOD API response data."""

    status_code: int
    data: Union[Dict[str, Any], List[Any], None]
    timestamp: datetime
    url: str


class HTTPClient(ABC):
    """Abstract HTTP client interface for dependency injection."""

    @abstractmethod
    async def get_json(self, url: str, params: Dict[str, Any]) -> ApodAPIResponse:
        """Make HTTP GET request and decode the JSON body."""
        pass

    @abstractmethod
    def open_stream(self, url: str):
        """
        Open a streaming HTTP GET.

        Returns an async context manager yielding ``(status_code, stream)``
        where ``stream`` supports ``await stream.read(n)``.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close HTTP client."""
        pass


class AioHttpClient(HTTPClient):
    """Concrete HTTP client implementation using aiohttp."""

    def __init__(self, timeout_seconds: int = 15):
        """Initialize HTTP client with timeout."""
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session is created."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout, headers={"User-Agent": get_user_agent()}
            )
        return self._session

    async def get_json(self, url: str, params: Dict[str, Any]) -> ApodAPIResponse:
        """Make HTTP GET request and decode the JSON body."""
        session = await self._ensure_session()

        try:
            async with session.get(url, params=params) as response:
                if response.status == 200:
                    data = await response.json(content_type=None)
                else:
                    # Error bodies are informative only
                    try:
                        data = await response.json(content_type=None)
                    except (json.JSONDecodeError, aiohttp.ContentTypeError):
                        data = None
                return ApodAPIResponse(
                    status_code=response.status,
                    data=data,
                    timestamp=datetime.now(),
                    url=str(response.url),
                )
        except aiohttp.ClientError as e:
            raise ApodNetworkException(f"Network error: {e}") from e
        except json.JSONDecodeError as e:
            raise ApodDataException(f"Invalid JSON response: {e}") from e
        except asyncio.TimeoutError as e:
            raise ApodNetworkException(f"Request timed out: {url}") from e

    @asynccontextmanager
    async def open_stream(self, url: str):
        """Open a streaming HTTP GET yielding ``(status_code, content)``."""
        session = await self._ensure_session()
        try:
            async with session.get(url) as response:
                yield response.status, _ClientErrorTranslatingStream(response.content)
        except aiohttp.ClientError as e:
            raise ApodNetworkException(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise ApodNetworkException(f"Download timed out: {url}") from e

    async def close(self) -> None:
        """Close HTTP client."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("HTTP client session closed")
        self._session = None


class _ClientErrorTranslatingStream:
    """Wraps an aiohttp stream so transport errors surface as network errors."""

    def __init__(self, content: aiohttp.StreamReader):
        self._content = content

    async def read(self, n: int = -1) -> bytes:
        try:
            return await self._content.read(n)
        except aiohttp.ClientError as e:
            raise ApodNetworkException(f"Network error while streaming: {e}") from e
        except asyncio.TimeoutError as e:
            raise ApodNetworkException("Timed out while streaming") from e


class APODService:
    """
    Astronomy Picture of the Day service.

    Only responsible for talking to the APOD API; it does no caching.
    """

    BASE_URL = "https://api.nasa.gov/planetary/apod"

    def __init__(
        self, http_client: HTTPClient, api_key: str, base_url: Optional[str] = None
    ):
        self._http_client = http_client
        self._api_key = api_key
        self._base_url = base_url or self.BASE_URL

    def get_service_name(self) -> str:
        return "APOD"

    def get_base_url(self) -> str:
        return self._base_url

    @staticmethod
    def format_date(value: date) -> str:
        """Format a date as ``YYYY-MM-DD``."""
        return format_apod_date(value)

    async def get_metadata(self, date_string: str) -> ApodRecord:
        """
        Fetch APOD metadata for a single date.

        Args:
            date_string: Date formatted as ``YYYY-MM-DD``

        Returns:
            ApodRecord: Unpersisted record built from the response

        Raises:
            ApodDataException: No APOD published for the date, or bad payload
            ApodAuthenticationException: Invalid API key
            ApodRateLimitException: Rate limit exceeded
            ApodNetworkException: Transport failure
        """
        params = {
            "api_key": self._api_key,
            "date": date_string,
            "thumbs": "true",
        }

        response = await self._http_client.get_json(self._base_url, params)
        self._raise_for_status(response.status_code, date_string, response.data)

        data = response.data
        if isinstance(data, list):
            # Range queries answer with a list
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise ApodDataException(
                f"APOD API returned unexpected data type: {type(response.data)}"
            )

        try:
            record = ApodRecord.from_api_response(data)
        except ValueError as e:
            raise ApodDataException(f"Invalid APOD payload for {date_string}: {e}") from e

        logger.debug(f"APOD metadata fetched for {date_string}: {record.title}")
        return record

    @asynccontextmanager
    async def get_file(self, url: str) -> AsyncIterator[AsyncByteStream]:
        """
        Stream the body of a file URL.

        Usage::

            async with service.get_file(record.url) as stream:
                chunk = await stream.read(16384)

        Raises:
            ApodAPIException: Non-200 response
            ApodNetworkException: Transport failure
        """
        async with self._http_client.open_stream(url) as (status_code, stream):
            if status_code != 200:
                raise ApodAPIException(f"File download returned status {status_code}: {url}")
            logger.debug(f"Streaming file from {url}")
            yield stream

    @staticmethod
    def _raise_for_status(status_code: int, date_string: str, data: Any) -> None:
        """Translate non-200 status codes into exceptions."""
        if status_code == 200:
            return

        message = ""
        if isinstance(data, dict):
            message = str(data.get("msg") or data.get("error") or "")

        if status_code in (400, 404):
            raise ApodDataException(
                f"No APOD available for {date_string}" + (f": {message}" if message else "")
            )
        elif status_code == 403:
            raise ApodAuthenticationException("Invalid NASA API key")
        elif status_code == 429:
            raise ApodRateLimitException("NASA API rate limit exceeded")
        else:
            raise ApodAPIException(f"APOD API returned status {status_code}")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.close()
        logger.debug("APODService shutdown complete")
