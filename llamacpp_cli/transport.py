"""HTTP transport to the completion server.

A single POST per call. Retry policy lives in the model I/O worker, so
nothing here retries.
"""

from typing import Any, Protocol

import httpx
from loguru import logger

JSON_HEADERS = {"Content-Type": "application/json"}


class TransportError(Exception):
    """Raised when a request could not be completed.

    Covers connection failures, timeouts, body read failures and non-2xx
    responses. status_code is set for the latter.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def endpoint_url(server: str, port: int, endpoint: str) -> str:
    """Build the completion endpoint URL."""
    return f"http://{server}:{port}/{endpoint.lstrip('/')}"


class Transport(Protocol):
    """Anything that can POST a JSON body and return the raw response."""

    async def post(self, url: str, body: dict[str, Any]) -> bytes: ...


class HttpTransport:
    """httpx-backed transport.

    The default timeout is None: a hung server blocks the caller until the
    connection drops.
    """

    def __init__(
        self,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transport.

        Args:
            timeout: Per-request timeout in seconds, None to wait forever
            client: Pre-built client (tests inject one with a MockTransport)
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def post(self, url: str, body: dict[str, Any]) -> bytes:
        """POST body as JSON and return the fully read response body.

        Raises:
            TransportError: On any network, read or HTTP status failure
        """
        try:
            response = await self._client.post(url, json=body, headers=JSON_HEADERS)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(f"HTTP {status} from {url}", status_code=status) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e!r}") from e

        logger.debug(f"POST {url} -> {response.status_code} ({len(response.content)} bytes)")
        return response.content

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
