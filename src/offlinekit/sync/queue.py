"""Durable per-topic FIFO queue of mutating requests awaiting replay.

Each queue (``match-join-queue``, ``wallet-deposit-queue``, ...) is a
:class:`diskcache.Cache` directory under ``<root>/queues/`` whose keys are
integer item ids. Ids come from a per-queue counter kept in
``<root>/queues/_meta`` and are never reused, so they are unique within a
queue for its whole lifetime. Iterating keys in sort order therefore yields
items in enqueue order.

Replay semantics:

* items are attempted in enqueue order, each independently -- a failure
  never stops the pass;
* an item is deleted only after its request returns a 2xx status, and a
  ``SYNC_SUCCESS`` message is published for it;
* anything else (transport failure, 4xx, 5xx) leaves the item queued for the
  next trigger. There is no retry limit and no backoff.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable, Iterable, Optional

import diskcache

from offlinekit.client import NetworkClient
from offlinekit.events import MessageBus
from offlinekit.exceptions import QueueError, StorageError, TransportError
from offlinekit.models import MessageType, QueueItem, ReplayReport

logger = logging.getLogger(__name__)

_META_NAME = "_meta"


class SyncQueue:
    """Named, durable FIFO queues with replay-on-reconnect.

    Args:
        root: Storage root. Queues live in ``root / "queues"``.
        client: Network client used to replay items.
        bus: Message bus that receives ``SYNC_SUCCESS`` notifications.
        known_queues: Queue names that always exist, even when empty.
        clock: Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        root: str | Path,
        client: NetworkClient,
        bus: Optional[MessageBus] = None,
        known_queues: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root) / "queues"
        self._root.mkdir(parents=True, exist_ok=True)
        self._client = client
        self._bus = bus or MessageBus()
        self._known = list(known_queues)
        self._clock = clock
        self._meta = diskcache.Cache(str(self._root / _META_NAME))
        self._queues: dict[str, diskcache.Cache] = {}
        self._replaying: set[str] = set()

    # ------------------------------------------------------------------ #
    # Items
    # ------------------------------------------------------------------ #

    def enqueue(self, queue_name: str, item: QueueItem) -> QueueItem:
        """Persist *item* at the back of *queue_name* and assign its id.

        Returns:
            A copy of *item* with ``id``, ``queue_name``, and
            ``enqueued_at`` filled in.

        Raises:
            QueueError: If *queue_name* is not a usable name.
            StorageError: If the item could not be written to disk.
        """
        _validate_name(queue_name)
        try:
            item_id = self._meta.incr(queue_name)
            stored = item.model_copy(
                update={"id": item_id, "queue_name": queue_name, "enqueued_at": self._clock()}
            )
            self._open(queue_name).set(item_id, stored.model_dump())
        except (OSError, sqlite3.Error, diskcache.Timeout) as exc:
            raise StorageError(f"Could not persist request in '{queue_name}': {exc}") from exc
        logger.info("Queued %s %s in %s as #%d", stored.method, stored.url, queue_name, item_id)
        return stored

    def items(self, queue_name: str) -> list[QueueItem]:
        """All items of *queue_name* in enqueue order."""
        if not self._exists(queue_name):
            return []
        cache = self._open(queue_name)
        items = []
        for key in cache.iterkeys():
            data = cache.get(key)
            if data is not None:
                items.append(QueueItem.model_validate(data))
        return items

    def remove(self, queue_name: str, item_id: int) -> None:
        """Drop one item without replaying it.

        Raises:
            QueueError: If the item does not exist.
        """
        if not self._exists(queue_name) or not self._open(queue_name).delete(item_id):
            raise QueueError(f"No item #{item_id} in queue '{queue_name}'")

    def clear(self, queue_name: str) -> int:
        """Drop every item of *queue_name*. Returns how many were removed."""
        if not self._exists(queue_name):
            return 0
        cache = self._open(queue_name)
        count = len(cache)
        cache.clear()
        return count

    def queue_names(self) -> list[str]:
        """Configured queue names followed by any other queue found on disk."""
        names = list(self._known)
        for path in sorted(self._root.iterdir()):
            if path.is_dir() and path.name != _META_NAME and path.name not in names:
                names.append(path.name)
        return names

    def pending_counts(self) -> dict[str, int]:
        return {name: len(self.items(name)) for name in self.queue_names()}

    # ------------------------------------------------------------------ #
    # Replay
    # ------------------------------------------------------------------ #

    async def replay(self, queue_name: str) -> ReplayReport:
        """Re-send every queued item of *queue_name* once, in enqueue order.

        A replay requested while the same queue is already replaying returns
        immediately with ``skipped=True``.
        """
        report = ReplayReport(queue_name=queue_name)
        if queue_name in self._replaying:
            logger.debug("Replay of %s already in progress", queue_name)
            report.skipped = True
            return report

        self._replaying.add(queue_name)
        try:
            for item in self.items(queue_name):
                assert item.id is not None
                if await self._replay_item(item):
                    report.succeeded.append(item.id)
                else:
                    report.failed.append(item.id)
        finally:
            self._replaying.discard(queue_name)

        if report.succeeded or report.failed:
            logger.info(
                "Replayed %s: %d succeeded, %d still queued",
                queue_name,
                len(report.succeeded),
                len(report.failed),
            )
        return report

    async def replay_all(self) -> list[ReplayReport]:
        """Replay every known queue concurrently."""
        return list(await asyncio.gather(*(self.replay(name) for name in self.queue_names())))

    async def _replay_item(self, item: QueueItem) -> bool:
        try:
            response = await self._client.fetch(item.to_request())
        except TransportError as exc:
            logger.warning("Replay of %s #%s failed: %s", item.queue_name, item.id, exc)
            return False

        if not response.ok:
            logger.warning(
                "Replay of %s #%s returned HTTP %d", item.queue_name, item.id, response.status_code
            )
            return False

        try:
            self._open(item.queue_name).delete(item.id)
        except (OSError, sqlite3.Error, diskcache.Timeout) as exc:
            logger.error(
                "Replay of %s #%s succeeded but the item could not be removed: %s",
                item.queue_name,
                item.id,
                exc,
            )
            return False
        self._bus.publish(
            MessageType.SYNC_SUCCESS,
            tag=item.queue_name,
            data=item.model_dump(mode="json"),
        )
        return True

    # ------------------------------------------------------------------ #
    # Storage
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        for cache in self._queues.values():
            cache.close()
        self._queues.clear()
        self._meta.close()

    def _exists(self, queue_name: str) -> bool:
        return queue_name in self._queues or (self._root / queue_name).is_dir()

    def _open(self, queue_name: str) -> diskcache.Cache:
        cache = self._queues.get(queue_name)
        if cache is None:
            cache = diskcache.Cache(str(self._root / queue_name))
            self._queues[queue_name] = cache
        return cache


def _validate_name(queue_name: str) -> None:
    if not queue_name or queue_name == _META_NAME or "/" in queue_name or queue_name.startswith("."):
        raise QueueError(f"Invalid queue name: {queue_name!r}")
