"""Tests for the HTTP transport."""

import json

import httpx
import pytest

from llamacpp_cli.transport import HttpTransport, TransportError, endpoint_url

URL = "http://backend:8000/v1/completions"


def make_transport(handler) -> HttpTransport:
    """Transport whose client is backed by an httpx.MockTransport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTransport(client=client)


class TestEndpointUrl:
    def test_builds_url(self) -> None:
        assert endpoint_url("backend", 8000, "v1/completions") == URL

    def test_collapses_leading_slash(self) -> None:
        assert endpoint_url("localhost", 8080, "/v1/completions") == (
            "http://localhost:8080/v1/completions"
        )


class TestHttpTransportPost:
    """Tests for HttpTransport.post()."""

    @pytest.mark.asyncio
    async def test_returns_body(self, sample_response: bytes) -> None:
        """A 2xx response body is returned as raw bytes."""
        transport = make_transport(lambda request: httpx.Response(200, content=sample_response))

        assert await transport.post(URL, {"prompt": "hi"}) == sample_response

    @pytest.mark.asyncio
    async def test_sends_json(self) -> None:
        """Requests are POSTs with a JSON body and content type."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"choices": []})

        transport = make_transport(handler)
        await transport.post(URL, {"model": "gpt2", "prompt": "你好"})

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == URL
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"model": "gpt2", "prompt": "你好"}

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Connection failures become TransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        transport = make_transport(handler)

        with pytest.raises(TransportError) as exc_info:
            await transport.post(URL, {})

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_read_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError):
            await make_transport(handler).post(URL, {})

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    @pytest.mark.asyncio
    async def test_non_2xx_is_error(self, status: int) -> None:
        """HTTP error statuses are reported so the worker retries them."""
        transport = make_transport(lambda request: httpx.Response(status, text="busy"))

        with pytest.raises(TransportError, match=f"HTTP {status}") as exc_info:
            await transport.post(URL, {})

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_does_not_retry(self) -> None:
        """Exactly one request per call."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        with pytest.raises(TransportError):
            await make_transport(handler).post(URL, {})

        assert calls == 1


class TestHttpTransportLifecycle:
    def test_default_has_no_timeout(self) -> None:
        transport = HttpTransport()

        assert transport._client.timeout.read is None
        assert transport._client.timeout.connect is None

    def test_custom_timeout(self) -> None:
        transport = HttpTransport(timeout=30.0)

        assert transport._client.timeout.read == 30.0

    @pytest.mark.asyncio
    async def test_closes_owned_client(self) -> None:
        async with HttpTransport() as transport:
            client = transport._client

        assert client.is_closed

    @pytest.mark.asyncio
    async def test_leaves_injected_client_open(self) -> None:
        client = httpx.AsyncClient()
        async with HttpTransport(client=client):
            pass

        assert not client.is_closed
        await client.aclose()
