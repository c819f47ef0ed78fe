"""The three request-resolution algorithms.

Every strategy answers a GET request for one :class:`~offlinekit.models.Route`
using the shared :class:`StrategyContext`:

* :class:`CacheFirst` -- serve the cached copy; refresh a stale one in the
  background; go to the network only on a miss.
* :class:`NetworkFirst` -- ask the network; fall back to any cached copy, then
  to the offline page (navigations) or a ``503`` JSON body.
* :class:`StaleWhileRevalidate` -- answer from the cache immediately and
  always revalidate in the background; wait for the network only on a miss.

Only 2xx responses are written to the cache. Any HTTP status counts as a
successful fetch; only :class:`~offlinekit.exceptions.TransportError`
triggers a fallback.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from offlinekit.cache.store import CacheStore
from offlinekit.client import NetworkClient
from offlinekit.exceptions import TransportError
from offlinekit.models import (
    CacheEntry,
    FetchRequest,
    FetchResponse,
    Generation,
    ResponseSource,
    Route,
    StrategyName,
)
from offlinekit.tasks import BackgroundTasks
from offlinekit.urls import normalize_url

logger = logging.getLogger(__name__)

OFFLINE_JSON = {"error": "offline", "cached": False}


@dataclass
class StrategyContext:
    """Collaborators shared by every strategy invocation.

    Attributes:
        store: The durable cache.
        client: The network client.
        tasks: Owner of detached background refreshes.
        generation: Returns the generation whose partitions are current.
        base_url: Origin that relative URLs resolve against.
        offline_url: Path of the pre-cached offline page.
    """

    store: CacheStore
    client: NetworkClient
    tasks: BackgroundTasks
    generation: Callable[[], Generation]
    base_url: Optional[str] = None
    offline_url: str = "/offline"

    def cache_key(self, request: FetchRequest) -> str:
        return normalize_url(request.url, self.base_url)

    def partition(self, logical: str) -> str:
        return self.generation().partition_name(logical)

    def offline_page(self) -> FetchResponse:
        """The pre-cached offline page, or a plain-text ``503`` if it is missing."""
        key = normalize_url(self.offline_url, self.base_url)
        entry = self.store.match(key, self.generation().partitions)
        if entry is not None:
            response = entry.to_response()
            response.source = ResponseSource.OFFLINE
            return response
        return FetchResponse(
            status_code=503,
            headers={"content-type": "text/plain"},
            body=b"Offline",
            url=key,
            source=ResponseSource.OFFLINE,
        )

    def offline_json(self, url: str = "") -> FetchResponse:
        return FetchResponse.from_json(
            OFFLINE_JSON, status_code=503, url=url, source=ResponseSource.OFFLINE
        )


class Strategy(ABC):
    """Base class for caching strategies."""

    name: StrategyName

    def __init__(self, context: StrategyContext) -> None:
        self._ctx = context

    @abstractmethod
    async def handle(self, request: FetchRequest, route: Route) -> FetchResponse:
        """Answer *request* according to this strategy."""

    async def fetch_and_store(self, request: FetchRequest, route: Route) -> FetchResponse:
        """Fetch *request* and cache the response if it is 2xx.

        Raises:
            TransportError: Propagated from the network client.
        """
        response = await self._ctx.client.fetch(request)
        if response.ok:
            self._ctx.store.put(
                self._ctx.partition(route.cache_name),
                self._ctx.cache_key(request),
                response,
                max_entries=route.max_entries,
            )
        return response

    def cached(self, request: FetchRequest, route: Route) -> Optional[CacheEntry]:
        return self._ctx.store.get(
            self._ctx.partition(route.cache_name), self._ctx.cache_key(request)
        )

    def refresh_in_background(self, request: FetchRequest, route: Route) -> asyncio.Task:
        return self._ctx.tasks.spawn(
            self.fetch_and_store(request, route),
            name=f"{self.name.value}:{self._ctx.cache_key(request)}",
        )


class CacheFirst(Strategy):
    """Serve from cache; refresh stale entries without blocking the caller."""

    name = StrategyName.CACHE_FIRST

    async def handle(self, request: FetchRequest, route: Route) -> FetchResponse:
        entry = self.cached(request, route)
        if entry is not None:
            if self._ctx.store.is_stale(entry, route.max_age):
                logger.debug("Stale hit for %s, refreshing in background", entry.key)
                self.refresh_in_background(request, route)
            return entry.to_response()
        return await self.fetch_and_store(request, route)


class NetworkFirst(Strategy):
    """Prefer fresh network data; fall back to cache, then offline responses."""

    name = StrategyName.NETWORK_FIRST

    async def handle(self, request: FetchRequest, route: Route) -> FetchResponse:
        try:
            return await self.fetch_and_store(request, route)
        except TransportError as exc:
            logger.debug("Network failed for %s, falling back: %s", request.url, exc)

        entry = self.cached(request, route)
        if entry is not None:
            return entry.to_response()
        if request.is_navigation:
            return self._ctx.offline_page()
        return self._ctx.offline_json(self._ctx.cache_key(request))


class StaleWhileRevalidate(Strategy):
    """Answer instantly from any cached copy while revalidating in the background."""

    name = StrategyName.STALE_WHILE_REVALIDATE

    async def handle(self, request: FetchRequest, route: Route) -> FetchResponse:
        entry = self.cached(request, route)
        revalidation = self.refresh_in_background(request, route)
        if entry is not None:
            return entry.to_response()

        try:
            return await asyncio.shield(revalidation)
        except TransportError:
            return self._ctx.offline_page()


def build_strategies(context: StrategyContext) -> dict[StrategyName, Strategy]:
    """Create the dispatch table from strategy name to strategy instance."""
    return {
        strategy.name: strategy
        for strategy in (
            CacheFirst(context),
            NetworkFirst(context),
            StaleWhileRevalidate(context),
        )
    }
