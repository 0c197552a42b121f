"""
Unified HTTP client utility with standardized error handling and logging.

This module provides the async HTTP client used by file transfers:
- JSON POST for backend calls (presigned URL negotiation)
- Streaming PUT with byte-level progress for direct-to-storage uploads
- Raw binary GET for downloads
- Consistent logging and a small typed exception hierarchy that callers
  convert into user-facing errors
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Optional

import httpx

logger = logging.getLogger(__name__)

# (bytes_loaded, bytes_total)
ByteProgressCallback = Callable[[int, int], None]


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""
    pass


class HTTPTimeoutError(HTTPClientError):
    """Raised when HTTP requests timeout."""
    pass


class HTTPStatusError(HTTPClientError):
    """Raised when HTTP requests return error status codes."""
    def __init__(
        self,
        message: str,
        status_code: int,
        response_text: str = "",
        payload: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text
        self.payload = payload

    @property
    def server_message(self) -> Optional[str]:
        """The ``message`` field of a JSON error body, if any."""
        if isinstance(self.payload, dict):
            message = self.payload.get("message")
            if isinstance(message, str) and message:
                return message
        return None


@dataclass
class BinaryResponse:
    """Raw body of a successful GET."""

    content: bytes
    content_type: Optional[str]
    status_code: int = 200


class UnifiedHTTPClient:
    """
    Async HTTP client with standardized error handling and logging.

    Every request opens a short-lived ``httpx.AsyncClient``. A custom
    transport can be injected (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP client.

        Args:
            base_url: Base URL for requests (optional)
            timeout: Default timeout for requests in seconds
            transport: Optional httpx transport override
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._transport = transport

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from endpoint."""
        if endpoint.startswith('http'):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def _handle_request_error(self, error: Exception, operation: str, url: str) -> HTTPClientError:
        """
        Log a request error and convert it to the client's exception type.

        Args:
            error: The original exception
            operation: Description of the operation (for logging)
            url: The URL that was being accessed

        Returns:
            HTTPClientError: Typed exception for the caller to raise
        """
        if isinstance(error, HTTPClientError):
            return error

        if isinstance(error, httpx.TimeoutException):
            logger.error(f"Timeout during {operation} to {url}: {error}", exc_info=True)
            return HTTPTimeoutError(f"Request timeout during {operation}")

        elif isinstance(error, httpx.HTTPStatusError):
            response = error.response
            logger.error(
                f"HTTP {response.status_code} error during {operation} to {url}: {error}",
                exc_info=True
            )
            try:
                payload = response.json()
            except ValueError:
                payload = None
            return HTTPStatusError(
                f"HTTP {response.status_code} error during {operation}",
                response.status_code,
                response.text,
                payload,
            )

        elif isinstance(error, httpx.RequestError):
            logger.error(f"Request error during {operation} to {url}: {error}", exc_info=True)
            return HTTPClientError(str(error) or f"Request failed during {operation}")

        else:
            logger.error(f"Unexpected error during {operation} to {url}: {error}", exc_info=True)
            return HTTPClientError(str(error) or f"Internal error during {operation}")

    async def post(
        self,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Perform async POST request with error handling.

        Args:
            endpoint: API endpoint or full URL
            json_data: JSON payload
            headers: Request headers
            timeout: Request timeout (overrides default)

        Returns:
            Response JSON data

        Raises:
            HTTPClientError: On any request error
        """
        url = self._build_url(endpoint)
        request_timeout = timeout or self.timeout

        try:
            async with self._client(request_timeout) as client:
                logger.debug(f"POST request to {url} with JSON data keys: {list(json_data.keys()) if json_data else 'None'}")
                response = await client.post(url, json=json_data, headers=headers)
                response.raise_for_status()

                response_data = response.json()
                logger.info(f"Successful POST request to {url}")
                return response_data

        except Exception as e:
            raise self._handle_request_error(e, "POST request", url)

    async def put_stream(
        self,
        url: str,
        chunks: Iterable[bytes],
        total_bytes: int,
        content_type: str,
        on_progress: Optional[ByteProgressCallback] = None,
        timeout: Optional[float] = None
    ) -> None:
        """
        Stream raw bytes to a fully-qualified URL with PUT.

        Args:
            url: Target URL (e.g. a presigned storage URL)
            chunks: Iterable of body chunks
            total_bytes: Exact body length, sent as Content-Length
            content_type: Value of the Content-Type header
            on_progress: Called with (bytes_loaded, bytes_total) after each chunk
            timeout: Request timeout (overrides default)

        Raises:
            HTTPClientError: On any request error
            OSError: When reading a body chunk fails
        """
        request_timeout = timeout or self.timeout

        async def body() -> AsyncIterator[bytes]:
            loaded = 0
            for chunk in chunks:
                yield chunk
                loaded += len(chunk)
                if on_progress and total_bytes:
                    on_progress(loaded, total_bytes)

        headers = {
            "Content-Type": content_type,
            "Content-Length": str(total_bytes),
        }

        try:
            async with self._client(request_timeout) as client:
                logger.debug(f"PUT {total_bytes} bytes ({content_type}) to storage")
                response = await client.put(url, content=body(), headers=headers)
                response.raise_for_status()
                logger.info(f"Successful PUT request ({total_bytes} bytes)")

        except OSError:
            # Local read failures from the body iterator are not HTTP errors
            raise
        except Exception as e:
            # Presigned URLs carry credentials in the query string
            raise self._handle_request_error(e, "PUT request", url.split('?', 1)[0])

    async def get_bytes(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> BinaryResponse:
        """
        Perform async GET request returning the raw body.

        Raises:
            HTTPClientError: On any request error
        """
        request_timeout = timeout or self.timeout

        try:
            async with self._client(request_timeout) as client:
                logger.debug(f"GET request to {url} with params: {params}")
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()

                logger.info(f"Successful GET request to {url} ({len(response.content)} bytes)")
                return BinaryResponse(
                    content=response.content,
                    content_type=response.headers.get("content-type"),
                    status_code=response.status_code,
                )

        except Exception as e:
            raise self._handle_request_error(e, "GET request", url)
