"""Tests for the asynchronous NetworkClient."""

from __future__ import annotations

import json

import httpx
import pytest

from offlinekit.client import NetworkClient
from offlinekit.exceptions import TransportError
from offlinekit.models import FetchRequest, RequestConfig, ResponseSource


def _transport_from_handler(handler):
    return httpx.MockTransport(handler)


def _client(handler, base_url: str = "https://example.com") -> NetworkClient:
    return NetworkClient(RequestConfig(), base_url=base_url, transport=_transport_from_handler(handler))


class TestFetch:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": 1})

        async with _client(handler) as client:
            response = await client.fetch(FetchRequest(url="https://example.com/api/x"))

        assert response.status_code == 200
        assert response.json() == {"id": 1}
        assert response.source == ResponseSource.NETWORK
        assert response.url == "https://example.com/api/x"

    @pytest.mark.asyncio
    async def test_relative_url_resolves_against_base(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(204)

        async with _client(handler) as client:
            await client.fetch(FetchRequest(url="/api/matches?status=upcoming"))

        assert seen == ["https://example.com/api/matches?status=upcoming"]

    @pytest.mark.asyncio
    async def test_error_status_is_a_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        async with _client(handler) as client:
            response = await client.fetch(FetchRequest(url="/api/x"))

        assert response.status_code == 503
        assert response.ok is False
        assert response.text == "maintenance"

    @pytest.mark.asyncio
    async def test_sends_method_headers_and_body(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201)

        request = FetchRequest(
            method="post",
            url="/api/matches/7/join",
            headers={"Authorization": "Bearer t"},
            body=b'{"team": 2}',
        )
        async with _client(handler) as client:
            response = await client.fetch(request)

        assert response.status_code == 201
        assert seen == {"method": "POST", "auth": "Bearer t", "body": {"team": 2}}

    @pytest.mark.asyncio
    async def test_framing_headers_are_dropped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"hello", headers={"x-trace": "abc"})

        async with _client(handler) as client:
            response = await client.fetch(FetchRequest(url="/x"))

        assert "content-length" not in response.headers
        assert response.headers["x-trace"] == "abc"


class TestTransportErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc_type", [httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError]
    )
    async def test_transport_failures_raise(self, exc_type) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_type("boom", request=request)

        async with _client(handler) as client:
            with pytest.raises(TransportError):
                await client.fetch(FetchRequest(url="/api/x"))

    @pytest.mark.asyncio
    async def test_fetch_opens_client_lazily(self) -> None:
        client = _client(lambda request: httpx.Response(200))
        try:
            response = await client.fetch(FetchRequest(url="/x"))
            assert response.ok
        finally:
            await client.aclose()
