"""The :class:`Engine` context object.

One :class:`Engine` owns every collaborator of the offline cache -- the
network client, the cache store, the sync queue, the lifecycle manager, the
router and its strategy dispatch table, the background task group, and the
message bus -- and exposes the entry points a host application drives:

* :meth:`Engine.handle` -- answer an outbound request.
* :meth:`Engine.install` / :meth:`Engine.skip_waiting` -- generation lifecycle.
* :meth:`Engine.set_online`, :meth:`Engine.on_sync`,
  :meth:`Engine.on_periodic_sync`, :meth:`Engine.retry_now` -- replay triggers.
* :meth:`Engine.handle_message` -- control messages from the application
  (``SKIP_WAITING``, ``QUEUE_REQUEST``, ``CACHE_URLS``, ``CLEAR_CACHE``,
  ``SET_BADGE``, ``CLEAR_BADGE``).
* :meth:`Engine.dispatch` -- one table from event kind to handler, so a test
  or an embedding runtime can fire ``install``, ``fetch``, ``sync``,
  ``periodicsync``, ``push``, ``message``, ``online`` and ``offline`` events
  directly.

Example::

    async with Engine.from_config(resolve_config()) as engine:
        await engine.install()
        response = await engine.handle(FetchRequest(url="/api/matches"))
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlsplit

import httpx

from offlinekit.cache.store import CacheStore
from offlinekit.client import NetworkClient
from offlinekit.config import get_storage_root
from offlinekit.events import MessageBus
from offlinekit.exceptions import (
    InvalidUsageError,
    OfflinekitError,
    StorageError,
    TransportError,
)
from offlinekit.lifecycle import LifecycleManager
from offlinekit.models import (
    EngineConfig,
    FetchRequest,
    FetchResponse,
    GenerationState,
    MessageType,
    QueueItem,
    ReplayReport,
    ResponseSource,
)
from offlinekit.network import NetworkMonitor
from offlinekit.router import StrategyRouter
from offlinekit.strategies import StrategyContext, build_strategies
from offlinekit.sync.queue import SyncQueue
from offlinekit.tasks import BackgroundTasks
from offlinekit.urls import normalize_url, resolve_url

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[Any]]


class Engine:
    """Offline-first request cache and background-sync engine.

    Args:
        config: Effective engine configuration.
        root: Durable storage root for partitions, queues, and lifecycle state.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`.
        clock: Returns the current time in epoch seconds.
        monitor: Connectivity signal; a fresh online monitor by default.
    """

    def __init__(
        self,
        config: EngineConfig,
        root: str | Path,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
        monitor: Optional[NetworkMonitor] = None,
    ) -> None:
        self.config = config
        self.bus = MessageBus()
        self.tasks = BackgroundTasks()
        self.client = NetworkClient(config.request, base_url=config.base_url, transport=transport)
        self.store = CacheStore(root, clock=clock)
        self.queue = SyncQueue(
            root, self.client, self.bus, known_queues=config.sync.queues, clock=clock
        )
        self.lifecycle = LifecycleManager(
            root, config.lifecycle, self.store, self.client, self.bus, base_url=config.base_url
        )
        self.router = StrategyRouter(config.routing, base_url=config.base_url)
        self._context = StrategyContext(
            store=self.store,
            client=self.client,
            tasks=self.tasks,
            generation=lambda: self.lifecycle.serving,
            base_url=config.base_url,
            offline_url=config.lifecycle.offline_url,
        )
        self.strategies = build_strategies(self._context)
        self.monitor = monitor or NetworkMonitor()
        self.monitor.add_listener(self._on_connectivity)
        self.badge: Optional[int] = None

        self._events: dict[str, EventHandler] = {
            "install": lambda _: self.install(),
            "activate": lambda _: self.skip_waiting(),
            "fetch": self.handle,
            "sync": self.on_sync,
            "periodicsync": self.on_periodic_sync,
            "push": self.on_push,
            "message": self.handle_message,
            "online": lambda _: self.set_online(True),
            "offline": lambda _: self.set_online(False),
        }
        self._messages: dict[str, EventHandler] = {
            "SKIP_WAITING": lambda _: self.skip_waiting(),
            "QUEUE_REQUEST": self._message_queue_request,
            "CACHE_URLS": self._message_cache_urls,
            "CLEAR_CACHE": self._message_clear_cache,
            "SET_BADGE": self._message_set_badge,
            "CLEAR_BADGE": self._message_clear_badge,
        }

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs: Any) -> Engine:
        """Create an engine storing its state under the configured storage root."""
        return cls(config, get_storage_root(config), **kwargs)

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Engine:
        self.client.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Wait for background work, then release the client and storage."""
        await self.tasks.drain()
        await self.client.aclose()
        self.queue.close()
        self.lifecycle.close()
        self.store.close()

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def handle(self, request: FetchRequest) -> FetchResponse:
        """Answer *request* from the cache, the network, or both.

        Never raises for connectivity problems: a transport failure with no
        usable fallback becomes the offline page (navigations) or a ``503``
        JSON body, and a failed mutation with a sync queue is queued and
        acknowledged with ``202``.
        """
        route = self.router.classify(request)
        if route is None:
            return await self._pass_through(request)

        logger.debug(
            "%s %s -> %s (%s)",
            request.method,
            request.url,
            route.strategy.value,
            route.cache_name,
        )
        try:
            return await self.strategies[route.strategy].handle(request, route)
        except TransportError:
            if request.is_navigation:
                return self._context.offline_page()
            return self._context.offline_json(self._context.cache_key(request))

    async def _pass_through(self, request: FetchRequest) -> FetchResponse:
        try:
            return await self.client.fetch(request)
        except TransportError:
            queue_name = self._queue_for(request)
            if queue_name is None:
                return self._context.offline_json(resolve_url(request.url, self.config.base_url))
            try:
                item = self.queue.enqueue(queue_name, QueueItem.from_request(request))
            except StorageError as exc:
                logger.error("Could not queue %s %s: %s", request.method, request.url, exc)
                return self._context.offline_json(resolve_url(request.url, self.config.base_url))
            return FetchResponse.from_json(
                {"queued": True, "queue": queue_name, "id": item.id},
                status_code=202,
                url=resolve_url(request.url, self.config.base_url),
                source=ResponseSource.OFFLINE,
            )

    def _queue_for(self, request: FetchRequest) -> Optional[str]:
        if request.method.upper() in ("GET", "HEAD"):
            return None
        if request.queue_name:
            return request.queue_name
        path = urlsplit(resolve_url(request.url, self.config.base_url)).path
        for prefix, queue_name in self.config.sync.routes.items():
            if path.startswith(prefix):
                return queue_name
        return None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def install(self) -> GenerationState:
        return await self.lifecycle.install()

    async def skip_waiting(self) -> GenerationState:
        return await self.lifecycle.skip_waiting()

    # ------------------------------------------------------------------ #
    # Replay triggers
    # ------------------------------------------------------------------ #

    async def set_online(self, online: bool) -> bool:
        """Feed a connectivity observation; replays all queues on reconnect."""
        return await self.monitor.set_online(online)

    async def _on_connectivity(self, online: bool) -> None:
        if online:
            await self.queue.replay_all()

    async def retry_now(self, queue_name: Optional[str] = None) -> list[ReplayReport]:
        """Replay one queue, or every queue when *queue_name* is ``None``."""
        if queue_name is not None:
            return [await self.queue.replay(queue_name)]
        return await self.queue.replay_all()

    async def on_sync(self, tag: str) -> Optional[ReplayReport]:
        """Handle a background-sync event for *tag*.

        Tags map to queues through ``sync.tags``; a tag that is itself a
        queue name replays that queue. Unknown tags are ignored.
        """
        queue_name = self.config.sync.tags.get(tag)
        if queue_name is None and tag in self.queue.queue_names():
            queue_name = tag
        if queue_name is None:
            logger.debug("Ignoring unknown sync tag %s", tag)
            return None
        return await self.queue.replay(queue_name)

    async def on_periodic_sync(self, tag: Optional[str] = None) -> int:
        """Periodic tick: refresh the listings, then replay every queue.

        Returns:
            How many resources were refreshed.
        """
        if tag is not None and tag != self.config.sync.periodic_tag:
            logger.debug("Ignoring unknown periodic sync tag %s", tag)
            return 0
        refreshed = await self.lifecycle.periodic_refresh()
        await self.queue.replay_all()
        return refreshed

    async def run_periodic(
        self, interval: Optional[float] = None, iterations: Optional[int] = None
    ) -> None:
        """Run :meth:`on_periodic_sync` every *interval* seconds.

        Best-effort: a failing tick is logged and the loop carries on. Runs
        forever unless *iterations* is given.
        """
        delay = interval if interval is not None else self.config.lifecycle.refresh_interval
        count = 0
        while iterations is None or count < iterations:
            await asyncio.sleep(delay)
            try:
                await self.on_periodic_sync()
            except (OfflinekitError, OSError) as exc:
                logger.warning("Periodic sync tick failed: %s", exc)
            count += 1

    # ------------------------------------------------------------------ #
    # Push, badge, cache control
    # ------------------------------------------------------------------ #

    async def on_push(self, payload: Optional[dict[str, Any]]) -> Optional[int]:
        """Apply the badge count carried by a push payload.

        Rendering the notification itself belongs to the host application.
        """
        data = (payload or {}).get("data") or {}
        count = data.get("unreadCount") if isinstance(data, dict) else None
        if count is None:
            return None
        return self.set_badge(int(count))

    def set_badge(self, count: Optional[int]) -> Optional[int]:
        """Deliver a badge-count update; ``0`` clears the badge."""
        if count is None:
            return self.badge
        self.badge = count if count > 0 else None
        self.bus.publish(MessageType.BADGE_UPDATED, data={"count": max(count, 0)})
        return self.badge

    async def warm(self, urls: list[str]) -> int:
        """Pre-fetch *urls* into the ``dynamic`` partition, each on its own.

        Returns:
            How many URLs were stored.
        """
        cache_name = self.lifecycle.serving.partition_name("dynamic")

        async def _warm_one(url: str) -> bool:
            response = await self.client.fetch(FetchRequest(url=url))
            if not response.ok:
                return False
            return self.store.put(cache_name, normalize_url(url, self.config.base_url), response)

        results = await asyncio.gather(*(_warm_one(url) for url in urls), return_exceptions=True)
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                logger.warning("Could not warm %s: %s", url, result)
        return sum(1 for result in results if result is True)

    def clear_cache(self, name: str = "dynamic") -> bool:
        """Wipe a partition by physical name or by logical name of the serving generation."""
        if name in self.store.partitions():
            return self.store.delete_partition(name)
        return self.store.delete_partition(self.lifecycle.serving.partition_name(name))

    # ------------------------------------------------------------------ #
    # Control messages and event dispatch
    # ------------------------------------------------------------------ #

    async def handle_message(self, message: dict[str, Any]) -> Any:
        """Handle a control message from the application layer.

        Unknown message types are ignored.

        Raises:
            InvalidUsageError: If a known message is missing required fields.
        """
        handler = self._messages.get(str(message.get("type", "")))
        if handler is None:
            logger.debug("Ignoring unknown message %r", message.get("type"))
            return None
        return await handler(message)

    async def dispatch(self, kind: str, payload: Any = None) -> Any:
        """Invoke the handler registered for event *kind*.

        Raises:
            InvalidUsageError: If *kind* has no handler.
        """
        handler = self._events.get(kind)
        if handler is None:
            raise InvalidUsageError(f"Unknown event kind: {kind}")
        return await handler(payload)

    async def _message_queue_request(self, message: dict[str, Any]) -> QueueItem:
        queue_name = message.get("queue_name") or message.get("queueKey")
        request = message.get("request")
        if not queue_name or not isinstance(request, dict):
            raise InvalidUsageError("QUEUE_REQUEST needs 'queue_name' and a 'request' object")
        body = request.get("body")
        if isinstance(body, str):
            request = {**request, "body": body.encode("utf-8")}
        try:
            item = QueueItem.model_validate(request)
        except ValueError as exc:
            raise InvalidUsageError(f"Invalid queued request: {exc}") from exc
        return self.queue.enqueue(queue_name, item)

    async def _message_cache_urls(self, message: dict[str, Any]) -> int:
        urls = message.get("urls") or []
        if not isinstance(urls, list):
            raise InvalidUsageError("CACHE_URLS needs a list of 'urls'")
        return await self.warm([str(url) for url in urls])

    async def _message_clear_cache(self, message: dict[str, Any]) -> bool:
        return self.clear_cache(message.get("cache_name") or "dynamic")

    async def _message_set_badge(self, message: dict[str, Any]) -> Optional[int]:
        count = message.get("count")
        return self.set_badge(int(count) if count is not None else None)

    async def _message_clear_badge(self, message: dict[str, Any]) -> Optional[int]:
        return self.set_badge(0)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def status(self) -> dict[str, Any]:
        """Snapshot of generation, partitions, queues, and connectivity."""
        serving = self.lifecycle.serving
        return {
            "generation": self.lifecycle.generation.version,
            "state": self.lifecycle.state.value,
            "serving": serving.version,
            "online": self.monitor.online,
            "badge": self.badge,
            "partitions": self.store.stats()["partitions"],
            "queues": self.queue.pending_counts(),
        }
