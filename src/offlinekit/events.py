"""In-process message bus from the engine to the UI layer.

The engine reports things the UI may want to surface -- a queued mutation
that finally went through, fresh match listings, a new badge count, a waiting
update -- by publishing :class:`~offlinekit.models.ClientMessage` objects.
Subscribers are plain callables invoked in registration order. A subscriber
that raises is logged and skipped; it never breaks delivery to the others or
the engine operation that published the message.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from offlinekit.models import ClientMessage, MessageType

logger = logging.getLogger(__name__)

Subscriber = Callable[[ClientMessage], None]


class MessageBus:
    """Publish/subscribe channel for :class:`ClientMessage` objects."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(
        self,
        type: MessageType,
        tag: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> ClientMessage:
        message = ClientMessage(type=type, tag=tag, data=data or {})
        for callback in list(self._subscribers):
            try:
                callback(message)
            except Exception as exc:
                logger.warning("Subscriber %r failed on %s: %s", callback, type.value, exc)
        return message
