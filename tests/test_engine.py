"""End-to-end tests for the Engine: request handling, triggers, and messages."""

from __future__ import annotations

import httpx
import pytest

from offlinekit.engine import Engine
from offlinekit.exceptions import InvalidUsageError
from offlinekit.models import (
    FetchRequest,
    GenerationState,
    MessageType,
    QueueItem,
    ResponseSource,
)

JOIN = "match-join-queue"
MATCHES_KEY = "https://example.com/api/matches?status=upcoming"


@pytest.fixture()
def messages(engine: Engine):
    received = []
    engine.bus.subscribe(received.append)
    return received


def _post(url: str, **kwargs) -> FetchRequest:
    return FetchRequest(method="POST", url=url, body=b'{"team": 2}', **kwargs)


# ------------------------------------------------------------------ #
# Request handling
# ------------------------------------------------------------------ #


class TestHandle:
    @pytest.mark.asyncio
    async def test_api_freshness_window(self, engine: Engine, server, clock) -> None:
        versions = iter([b'["v1"]', b'["v2"]'])
        server.routes["/api/matches"] = lambda request: httpx.Response(
            200, content=next(versions), headers={"content-type": "application/json"}
        )
        partition = engine.lifecycle.serving.partition_name("api")

        first = await engine.handle(FetchRequest(url="/api/matches?status=upcoming"))
        entry = engine.store.get(partition, MATCHES_KEY)
        assert first.body == b'["v1"]'
        assert entry.body == b'["v1"]'
        assert engine.store.is_stale(entry, max_age=60) is False

        clock.advance(61)
        assert engine.store.is_stale(engine.store.get(partition, MATCHES_KEY), max_age=60)

        second = await engine.handle(FetchRequest(url="/api/matches?status=upcoming"))
        assert second.body == b'["v2"]'
        assert engine.store.get(partition, MATCHES_KEY).body == b'["v2"]'

    @pytest.mark.asyncio
    async def test_offline_api_falls_back_to_cache(self, engine: Engine, server) -> None:
        await engine.handle(FetchRequest(url="/api/matches?status=upcoming"))
        server.offline = True

        response = await engine.handle(FetchRequest(url="/api/matches?status=upcoming"))

        assert response.source == ResponseSource.CACHE
        assert response.json() == [{"id": 1, "status": "upcoming"}]

    @pytest.mark.asyncio
    async def test_offline_navigation_gets_offline_page(self, engine: Engine, server) -> None:
        await engine.install()
        server.offline = True

        response = await engine.handle(FetchRequest(url="/tournaments", mode="navigate"))

        assert response.source == ResponseSource.OFFLINE
        assert b"You are offline" in response.body

    @pytest.mark.asyncio
    async def test_offline_image_miss_returns_json_503(self, engine: Engine, server) -> None:
        server.offline = True

        response = await engine.handle(FetchRequest(url="/img/team.png"))

        assert response.status_code == 503
        assert response.json() == {"error": "offline", "cached": False}

    @pytest.mark.asyncio
    async def test_redirect_loop_is_treated_as_offline(self, engine: Engine, server) -> None:
        server.routes["/api/loop"] = lambda request: httpx.Response(
            302, headers={"location": "https://example.com/api/loop"}
        )

        response = await engine.handle(FetchRequest(url="/api/loop"))

        assert response.status_code == 503
        assert response.json() == {"error": "offline", "cached": False}

    @pytest.mark.asyncio
    async def test_bypassed_request_goes_to_network(self, engine: Engine, server) -> None:
        server.add("/api/matches/7/join", status_code=201, json={"joined": True})

        response = await engine.handle(_post("/api/matches/7/join"))

        assert response.status_code == 201
        assert engine.store.partitions() == []

    @pytest.mark.asyncio
    async def test_offline_mutation_with_queue_is_accepted(self, engine: Engine, server) -> None:
        server.offline = True

        response = await engine.handle(_post("/api/matches/7/join", queue_name=JOIN))

        assert response.status_code == 202
        assert response.json() == {"queued": True, "queue": JOIN, "id": 1}
        [item] = engine.queue.items(JOIN)
        assert item.method == "POST"
        assert item.url == "/api/matches/7/join"
        assert item.body == b'{"team": 2}'

    @pytest.mark.asyncio
    async def test_offline_mutation_routed_by_path(self, engine: Engine, server) -> None:
        engine.config.sync.routes["/api/wallet/"] = "wallet-deposit-queue"
        server.offline = True

        response = await engine.handle(_post("/api/wallet/deposit"))

        assert response.status_code == 202
        assert response.json()["queue"] == "wallet-deposit-queue"

    @pytest.mark.asyncio
    async def test_offline_mutation_without_queue(self, engine: Engine, server) -> None:
        server.offline = True

        response = await engine.handle(_post("/api/feedback"))

        assert response.status_code == 503
        assert engine.queue.pending_counts()[JOIN] == 0

    @pytest.mark.asyncio
    async def test_offline_mutation_not_persisted_is_not_acknowledged(
        self, engine: Engine, server, monkeypatch
    ) -> None:
        def broken(name):
            raise OSError("disk full")

        monkeypatch.setattr(engine.queue, "_open", broken)
        server.offline = True

        response = await engine.handle(_post("/api/matches/7/join", queue_name=JOIN))

        assert response.status_code == 503
        assert response.json() == {"error": "offline", "cached": False}


# ------------------------------------------------------------------ #
# Replay triggers
# ------------------------------------------------------------------ #


class TestTriggers:
    @pytest.mark.asyncio
    async def test_reconnect_replays_queues(self, engine: Engine, server, messages) -> None:
        server.add("/join", status_code=200)
        engine.queue.enqueue(JOIN, QueueItem(url="/join"))

        assert await engine.set_online(False) is True
        assert engine.queue.pending_counts()[JOIN] == 1
        assert await engine.set_online(True) is True

        assert engine.queue.items(JOIN) == []
        assert [m.type for m in messages] == [MessageType.SYNC_SUCCESS]

    @pytest.mark.asyncio
    async def test_repeated_online_signal_is_not_a_transition(self, engine: Engine) -> None:
        assert await engine.set_online(True) is False

    @pytest.mark.asyncio
    async def test_sync_tag_maps_to_queue(self, engine: Engine, server) -> None:
        server.add("/join", status_code=200)
        engine.queue.enqueue(JOIN, QueueItem(url="/join"))

        report = await engine.on_sync("sync-match-join")

        assert report.queue_name == JOIN
        assert report.succeeded == [1]

    @pytest.mark.asyncio
    async def test_sync_tag_may_be_queue_name(self, engine: Engine, server) -> None:
        server.add("/join", status_code=200)
        engine.queue.enqueue(JOIN, QueueItem(url="/join"))

        report = await engine.on_sync(JOIN)

        assert report.succeeded == [1]

    @pytest.mark.asyncio
    async def test_unknown_sync_tag_is_ignored(self, engine: Engine) -> None:
        assert await engine.on_sync("sync-unknown") is None

    @pytest.mark.asyncio
    async def test_retry_now(self, engine: Engine, server) -> None:
        server.add("/join", status_code=200)
        engine.queue.enqueue(JOIN, QueueItem(url="/join"))

        [report] = await engine.retry_now(JOIN)
        assert report.succeeded == [1]
        assert len(await engine.retry_now()) == len(engine.queue.queue_names())

    @pytest.mark.asyncio
    async def test_periodic_sync_refreshes_then_replays(self, engine: Engine, server, messages) -> None:
        server.add("/join", status_code=200)
        engine.queue.enqueue(JOIN, QueueItem(url="/join"))

        refreshed = await engine.on_periodic_sync("refresh-matches")

        assert refreshed == 1
        assert engine.queue.items(JOIN) == []
        assert [m.type for m in messages] == [
            MessageType.MATCHES_REFRESHED,
            MessageType.SYNC_SUCCESS,
        ]

    @pytest.mark.asyncio
    async def test_unknown_periodic_tag_is_ignored(self, engine: Engine, server) -> None:
        assert await engine.on_periodic_sync("other-tag") == 0
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_run_periodic(self, engine: Engine, server) -> None:
        await engine.run_periodic(interval=0, iterations=2)
        assert server.count("/api/matches") == 2


# ------------------------------------------------------------------ #
# Push, badge, and control messages
# ------------------------------------------------------------------ #


class TestMessages:
    @pytest.mark.asyncio
    async def test_push_sets_and_clears_badge(self, engine: Engine, messages) -> None:
        assert await engine.on_push({"title": "Match", "data": {"unreadCount": 3}}) == 3
        assert engine.badge == 3

        await engine.on_push({"data": {"unreadCount": 0}})
        assert engine.badge is None

        badge_updates = [m.data["count"] for m in messages if m.type == MessageType.BADGE_UPDATED]
        assert badge_updates == [3, 0]

    @pytest.mark.asyncio
    async def test_push_without_count_leaves_badge(self, engine: Engine, messages) -> None:
        engine.set_badge(2)
        await engine.on_push({"title": "Hello"})
        await engine.on_push(None)
        assert engine.badge == 2

    @pytest.mark.asyncio
    async def test_set_and_clear_badge_messages(self, engine: Engine) -> None:
        assert await engine.handle_message({"type": "SET_BADGE", "count": 4}) == 4
        assert await engine.handle_message({"type": "CLEAR_BADGE"}) is None
        assert engine.badge is None

    @pytest.mark.asyncio
    async def test_queue_request_message(self, engine: Engine) -> None:
        item = await engine.handle_message(
            {
                "type": "QUEUE_REQUEST",
                "queue_name": JOIN,
                "request": {"method": "POST", "url": "/join", "body": '{"match": 1}'},
            }
        )

        assert item.id == 1
        assert engine.queue.items(JOIN)[0].body == b'{"match": 1}'

    @pytest.mark.asyncio
    async def test_malformed_queue_request(self, engine: Engine) -> None:
        with pytest.raises(InvalidUsageError):
            await engine.handle_message({"type": "QUEUE_REQUEST", "queue_name": JOIN})
        with pytest.raises(InvalidUsageError):
            await engine.handle_message(
                {"type": "QUEUE_REQUEST", "queue_name": JOIN, "request": {"method": "POST"}}
            )

    @pytest.mark.asyncio
    async def test_cache_urls_warms_dynamic_partition(self, engine: Engine, server) -> None:
        server.unreachable.add("/leaderboard")

        stored = await engine.handle_message(
            {"type": "CACHE_URLS", "urls": ["/", "/leaderboard", "/missing"]}
        )

        assert stored == 1
        partition = engine.lifecycle.serving.partition_name("dynamic")
        assert engine.store.keys(partition) == ["https://example.com/"]

    @pytest.mark.asyncio
    async def test_clear_cache_defaults_to_dynamic(self, engine: Engine) -> None:
        await engine.warm(["/"])
        partition = engine.lifecycle.serving.partition_name("dynamic")
        assert engine.store.has_partition(partition)

        assert await engine.handle_message({"type": "CLEAR_CACHE"}) is True
        assert not engine.store.has_partition(partition)

    @pytest.mark.asyncio
    async def test_skip_waiting_message(self, engine_config, server, clock) -> None:
        async with Engine.from_config(engine_config, transport=server.transport, clock=clock) as v1:
            await v1.install()

        engine_config.lifecycle.version = 2
        async with Engine.from_config(engine_config, transport=server.transport, clock=clock) as v2:
            assert await v2.install() == GenerationState.WAITING
            assert await v2.handle_message({"type": "SKIP_WAITING"}) == GenerationState.ACTIVE
            assert all(name.startswith("offlinekit-v2-") for name in v2.store.partitions())

    @pytest.mark.asyncio
    async def test_unknown_message_is_ignored(self, engine: Engine) -> None:
        assert await engine.handle_message({"type": "PING"}) is None


# ------------------------------------------------------------------ #
# Event dispatch and status
# ------------------------------------------------------------------ #


class TestDispatch:
    @pytest.mark.asyncio
    async def test_dispatch_table(self, engine: Engine, server) -> None:
        assert await engine.dispatch("install") == GenerationState.ACTIVE
        response = await engine.dispatch("fetch", FetchRequest(url="/api/matches"))
        assert response.ok
        assert await engine.dispatch("push", {"data": {"unreadCount": 1}}) == 1
        assert await engine.dispatch("message", {"type": "CLEAR_BADGE"}) is None
        assert await engine.dispatch("offline") is True
        assert engine.monitor.online is False
        assert await engine.dispatch("online") is True
        assert await engine.dispatch("sync", "sync-unknown") is None
        assert await engine.dispatch("periodicsync", "refresh-matches") == 1

    @pytest.mark.asyncio
    async def test_unknown_event_kind(self, engine: Engine) -> None:
        with pytest.raises(InvalidUsageError):
            await engine.dispatch("beforeinstallprompt")

    @pytest.mark.asyncio
    async def test_status(self, engine: Engine) -> None:
        await engine.install()
        engine.queue.enqueue(JOIN, QueueItem(url="/join"))

        status = engine.status()

        assert status["generation"] == 1
        assert status["state"] == "active"
        assert status["serving"] == 1
        assert status["online"] is True
        assert status["partitions"]["offlinekit-v1-static"] == 2
        assert status["queues"][JOIN] == 1
