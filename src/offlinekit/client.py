"""Asynchronous network client -- the engine's only path to the remote API.

This module provides :class:`NetworkClient`, a thin wrapper around
:class:`httpx.AsyncClient` that speaks the engine's own request/response
models. It deliberately does *not* retry and does *not* raise on HTTP error
statuses: a 404 or 503 from the server is a successful fetch as far as the
caching strategies are concerned. Only connection-level failures (timeout,
DNS, connection refused, protocol errors) are raised, as
:class:`~offlinekit.exceptions.TransportError`.

Timeouts are delegated to httpx via :attr:`~offlinekit.models.RequestConfig.timeout`.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from offlinekit.exceptions import TransportError
from offlinekit.models import FetchRequest, FetchResponse, RequestConfig, ResponseSource
from offlinekit.urls import resolve_url

logger = logging.getLogger(__name__)

_FRAMING_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


class NetworkClient:
    """Asynchronous fetch client backed by :class:`httpx.AsyncClient`.

    Must be used as an async context manager, or opened explicitly with
    :meth:`open` and closed with :meth:`aclose`.

    Args:
        config: Timeout and TLS settings.
        base_url: Origin that relative request URLs resolve against.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.

    Example::

        async with NetworkClient(RequestConfig(), base_url="https://example.com") as client:
            response = await client.fetch(FetchRequest(url="/api/matches"))
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or RequestConfig()
        self._base_url = base_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> NetworkClient:
        self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def open(self) -> None:
        """Create the underlying httpx client if it is not open yet."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def base_url(self) -> Optional[str]:
        return self._base_url

    # ------------------------------------------------------------------ #
    # Fetch
    # ------------------------------------------------------------------ #

    async def fetch(self, request: FetchRequest) -> FetchResponse:
        """Send *request* and return the server's response, whatever its status.

        Raises:
            TransportError: When no HTTP response was received.
        """
        if self._client is None:
            self.open()
        assert self._client is not None

        url = resolve_url(request.url, self._base_url)
        method = request.method.upper()
        try:
            response = await self._client.request(
                method,
                url,
                headers=request.headers,
                content=request.body,
            )
        except httpx.RequestError as exc:
            # Connection failures, redirect loops and undecodable bodies alike.
            logger.debug("Transport failure for %s %s: %s", method, url, exc)
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise TransportError(f"{method} {url} is not a valid URL: {exc}") from exc

        # httpx has already decoded the body, so the wire framing headers no
        # longer describe it.
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in _FRAMING_HEADERS
        }
        return FetchResponse(
            status_code=response.status_code,
            headers=headers,
            body=response.content,
            url=str(response.url),
            source=ResponseSource.NETWORK,
        )
