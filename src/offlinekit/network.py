"""Online/offline status signal.

:class:`NetworkMonitor` tracks the last known connectivity state and notifies
listeners only on transitions. The engine subscribes to it and replays every
sync queue when the state flips back to online. Whatever detects connectivity
(an OS hook, a periodic probe, a UI event) simply calls
:meth:`NetworkMonitor.set_online`.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[bool], Awaitable[None]]


class NetworkMonitor:
    """Connectivity state with async transition listeners."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: list[Listener] = []

    @property
    def online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def set_online(self, online: bool) -> bool:
        """Record the current state; notify listeners if it changed.

        Returns:
            ``True`` if this call was a transition.
        """
        if online == self._online:
            return False
        self._online = online
        logger.info("Network is now %s", "online" if online else "offline")
        for listener in list(self._listeners):
            await listener(online)
        return True
