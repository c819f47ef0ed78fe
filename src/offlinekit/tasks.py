"""Detached background tasks whose failures are logged and discarded.

Caching strategies start background work (a stale-entry refresh, a
stale-while-revalidate fetch) that the request path never awaits.
:class:`BackgroundTasks` gives those tasks an owner: it keeps a strong
reference until each task finishes, logs any exception it raised, and lets
shutdown code and tests wait for everything still in flight with
:meth:`BackgroundTasks.drain`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """A set of fire-and-forget :class:`asyncio.Task` objects."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None
    ) -> asyncio.Task[Any]:
        """Schedule *coro* on the running loop without awaiting it.

        The returned task handle may be ignored; its result is discarded and
        any exception is logged at WARNING level.
        """
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task %s failed: %s", task.get_name(), exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
