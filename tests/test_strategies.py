"""Tests for the CacheFirst, NetworkFirst and StaleWhileRevalidate strategies."""

from __future__ import annotations

import asyncio

import httpx
import pytest
import pytest_asyncio

from offlinekit.cache import CacheStore
from offlinekit.client import NetworkClient
from offlinekit.exceptions import TransportError
from offlinekit.models import (
    FetchRequest,
    FetchResponse,
    Generation,
    RequestClass,
    ResponseSource,
    Route,
    StrategyName,
)
from offlinekit.strategies import (
    CacheFirst,
    NetworkFirst,
    StaleWhileRevalidate,
    StrategyContext,
    build_strategies,
)
from offlinekit.tasks import BackgroundTasks

BASE_URL = "https://example.com"
GENERATION = Generation(version=1, prefix="test")

STATIC_ROUTE = Route(
    request_class=RequestClass.STATIC,
    strategy=StrategyName.CACHE_FIRST,
    cache_name="static",
    max_age=300,
)
API_ROUTE = Route(
    request_class=RequestClass.API,
    strategy=StrategyName.NETWORK_FIRST,
    cache_name="api",
    max_age=60,
)
PAGE_ROUTE = Route(
    request_class=RequestClass.NAVIGATION,
    strategy=StrategyName.STALE_WHILE_REVALIDATE,
    cache_name="dynamic",
)


@pytest_asyncio.fixture
async def context(tmp_path, server, clock):
    store = CacheStore(tmp_path, clock=clock)
    client = NetworkClient(base_url=BASE_URL, transport=server.transport)
    tasks = BackgroundTasks()
    ctx = StrategyContext(
        store=store,
        client=client,
        tasks=tasks,
        generation=lambda: GENERATION,
        base_url=BASE_URL,
    )
    async with client:
        yield ctx
        await tasks.drain()
    store.close()


def _seed(ctx: StrategyContext, logical: str, url: str, body: bytes) -> None:
    ctx.store.put(
        ctx.partition(logical),
        ctx.cache_key(FetchRequest(url=url)),
        FetchResponse(status_code=200, body=body),
    )


def _stored(ctx: StrategyContext, logical: str, url: str):
    return ctx.store.get(ctx.partition(logical), ctx.cache_key(FetchRequest(url=url)))


def test_build_strategies_covers_every_name(tmp_path) -> None:
    ctx = StrategyContext(
        store=CacheStore(tmp_path),
        client=NetworkClient(),
        tasks=BackgroundTasks(),
        generation=lambda: GENERATION,
    )
    table = build_strategies(ctx)
    assert set(table) == set(StrategyName)
    assert isinstance(table[StrategyName.CACHE_FIRST], CacheFirst)
    ctx.store.close()


# ------------------------------------------------------------------ #
# CacheFirst
# ------------------------------------------------------------------ #


class TestCacheFirst:
    @pytest.mark.asyncio
    async def test_fresh_hit_skips_network(self, context, server) -> None:
        server.add("/_next/static/app.js", text="new")
        _seed(context, "static", "/_next/static/app.js", b"cached")

        response = await CacheFirst(context).handle(
            FetchRequest(url="/_next/static/app.js"), STATIC_ROUTE
        )

        assert response.body == b"cached"
        assert response.source == ResponseSource.CACHE
        assert context.tasks.pending == 0
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_stale_hit_returns_cached_and_refreshes_once(self, context, server, clock) -> None:
        server.add("/_next/static/app.js", text="new")
        _seed(context, "static", "/_next/static/app.js", b"cached")
        clock.advance(301)

        response = await CacheFirst(context).handle(
            FetchRequest(url="/_next/static/app.js"), STATIC_ROUTE
        )

        assert response.body == b"cached"
        assert context.tasks.pending == 1
        await context.tasks.drain()
        assert server.count("/_next/static/app.js") == 1
        assert _stored(context, "static", "/_next/static/app.js").body == b"new"

    @pytest.mark.asyncio
    async def test_miss_fetches_and_stores(self, context, server) -> None:
        server.add("/_next/static/app.js", text="fresh")

        response = await CacheFirst(context).handle(
            FetchRequest(url="/_next/static/app.js"), STATIC_ROUTE
        )

        assert response.body == b"fresh"
        assert response.source == ResponseSource.NETWORK
        assert _stored(context, "static", "/_next/static/app.js").body == b"fresh"

    @pytest.mark.asyncio
    async def test_error_status_is_not_cached(self, context, server) -> None:
        server.add("/_next/static/app.js", status_code=500, text="oops")

        response = await CacheFirst(context).handle(
            FetchRequest(url="/_next/static/app.js"), STATIC_ROUTE
        )

        assert response.status_code == 500
        assert _stored(context, "static", "/_next/static/app.js") is None

    @pytest.mark.asyncio
    async def test_miss_while_offline_raises(self, context, server) -> None:
        server.offline = True
        with pytest.raises(TransportError):
            await CacheFirst(context).handle(
                FetchRequest(url="/_next/static/app.js"), STATIC_ROUTE
            )

    @pytest.mark.asyncio
    async def test_failed_background_refresh_keeps_entry(self, context, server, clock) -> None:
        _seed(context, "static", "/_next/static/app.js", b"cached")
        clock.advance(301)
        server.offline = True

        response = await CacheFirst(context).handle(
            FetchRequest(url="/_next/static/app.js"), STATIC_ROUTE
        )
        await context.tasks.drain()

        assert response.body == b"cached"
        assert _stored(context, "static", "/_next/static/app.js").body == b"cached"


# ------------------------------------------------------------------ #
# NetworkFirst
# ------------------------------------------------------------------ #


class TestNetworkFirst:
    @pytest.mark.asyncio
    async def test_network_response_replaces_cache(self, context, server) -> None:
        _seed(context, "api", "/api/matches", b"old")

        response = await NetworkFirst(context).handle(FetchRequest(url="/api/matches"), API_ROUTE)

        assert response.source == ResponseSource.NETWORK
        assert response.json() == [{"id": 1, "status": "upcoming"}]
        assert _stored(context, "api", "/api/matches").body == response.body

    @pytest.mark.asyncio
    async def test_error_status_does_not_fall_back(self, context, server) -> None:
        server.add("/api/matches", status_code=503, text="busy")
        _seed(context, "api", "/api/matches", b"old")

        response = await NetworkFirst(context).handle(FetchRequest(url="/api/matches"), API_ROUTE)

        assert response.status_code == 503
        assert _stored(context, "api", "/api/matches").body == b"old"

    @pytest.mark.asyncio
    async def test_offline_serves_cached(self, context, server) -> None:
        _seed(context, "api", "/api/matches", b"old")
        server.offline = True

        response = await NetworkFirst(context).handle(FetchRequest(url="/api/matches"), API_ROUTE)

        assert response.body == b"old"
        assert response.source == ResponseSource.CACHE

    @pytest.mark.asyncio
    async def test_offline_navigation_serves_offline_page(self, context, server) -> None:
        _seed(context, "static", "/offline", b"<html>You are offline</html>")
        server.offline = True

        response = await NetworkFirst(context).handle(
            FetchRequest(url="/matches", mode="navigate"), API_ROUTE
        )

        assert response.body == b"<html>You are offline</html>"
        assert response.source == ResponseSource.OFFLINE

    @pytest.mark.asyncio
    async def test_offline_navigation_without_offline_page(self, context, server) -> None:
        server.offline = True

        response = await NetworkFirst(context).handle(
            FetchRequest(url="/matches", mode="navigate"), API_ROUTE
        )

        assert response.status_code == 503
        assert response.text == "Offline"

    @pytest.mark.asyncio
    async def test_offline_api_miss_returns_json_503(self, context, server) -> None:
        server.offline = True

        response = await NetworkFirst(context).handle(FetchRequest(url="/api/matches"), API_ROUTE)

        assert response.status_code == 503
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"error": "offline", "cached": False}


# ------------------------------------------------------------------ #
# StaleWhileRevalidate
# ------------------------------------------------------------------ #


class TestStaleWhileRevalidate:
    @pytest.mark.asyncio
    async def test_hit_answers_without_waiting_for_network(self, context, server) -> None:
        release = asyncio.Event()

        async def slow(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, text="new page")

        server.routes["/matches"] = slow
        _seed(context, "dynamic", "/matches", b"old page")

        response = await asyncio.wait_for(
            StaleWhileRevalidate(context).handle(
                FetchRequest(url="/matches", mode="navigate"), PAGE_ROUTE
            ),
            timeout=1,
        )

        assert response.body == b"old page"
        assert response.source == ResponseSource.CACHE
        assert context.tasks.pending == 1

        release.set()
        await context.tasks.drain()
        assert _stored(context, "dynamic", "/matches").body == b"new page"

    @pytest.mark.asyncio
    async def test_miss_waits_for_network(self, context, server) -> None:
        server.add("/matches", text="page")

        response = await StaleWhileRevalidate(context).handle(
            FetchRequest(url="/matches", mode="navigate"), PAGE_ROUTE
        )

        assert response.body == b"page"
        assert response.source == ResponseSource.NETWORK
        assert server.count("/matches") == 1
        assert _stored(context, "dynamic", "/matches").body == b"page"

    @pytest.mark.asyncio
    async def test_miss_while_offline_serves_offline_page(self, context, server) -> None:
        _seed(context, "static", "/offline", b"offline page")
        server.offline = True

        response = await StaleWhileRevalidate(context).handle(
            FetchRequest(url="/matches", mode="navigate"), PAGE_ROUTE
        )

        assert response.body == b"offline page"
        assert response.source == ResponseSource.OFFLINE

    @pytest.mark.asyncio
    async def test_hit_while_offline_keeps_entry(self, context, server) -> None:
        _seed(context, "dynamic", "/matches", b"old page")
        server.offline = True

        response = await StaleWhileRevalidate(context).handle(
            FetchRequest(url="/matches", mode="navigate"), PAGE_ROUTE
        )
        await context.tasks.drain()

        assert response.body == b"old page"
        assert _stored(context, "dynamic", "/matches").body == b"old page"
