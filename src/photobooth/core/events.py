"""Lifecycle events published by the ingestion pipeline and photo processor.

The core never talks to a transport directly.  Components publish named
events with a JSON-ready payload to an :class:`EventSink`; whatever fans the
events out to browsers (socket.io, SSE, pub/sub) subscribes to an
:class:`EventBus` from outside the core.

Events
------
============================  =============================================
Name                          Payload
============================  =============================================
``photo_added``               ``filename``, ``path``, ``thumbnail``,
                              ``timestamp``
``photo_deleted``             ``filename``
``photos_cleared``            ``removed``
``watch_status_changed``      ``isWatching``, ``path``
============================  =============================================

Publishing is fire-and-forget: a failing subscriber is logged and never
reaches the publisher.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

PHOTO_ADDED = "photo_added"
PHOTO_DELETED = "photo_deleted"
PHOTOS_CLEARED = "photos_cleared"
WATCH_STATUS_CHANGED = "watch_status_changed"

EVENT_NAMES = frozenset({PHOTO_ADDED, PHOTO_DELETED, PHOTOS_CLEARED, WATCH_STATUS_CHANGED})

Subscriber = Callable[[str, dict[str, Any]], None]


class EventSink(Protocol):
    """Anything that accepts published lifecycle events."""

    def publish(self, event_name: str, payload: dict[str, Any]) -> None: ...


class EventBus:
    """In-process event channel with a subscriber list.

    Subscribers are called synchronously on the publishing thread, in
    subscription order.  The subscriber list is copied before dispatch so
    subscribers may unsubscribe themselves while handling an event.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        """Register ``subscriber`` and return it (usable as a decorator)."""
        with self._lock:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def publish(self, event_name: str, payload: dict[str, Any] | None = None) -> None:
        """Deliver an event to every subscriber.

        Args:
            event_name: One of :data:`EVENT_NAMES`.
            payload: JSON-ready event data.  ``None`` is delivered as ``{}``.
        """
        if event_name not in EVENT_NAMES:
            logger.debug(f"Publishing non-standard event: {event_name}")

        with self._lock:
            subscribers = list(self._subscribers)

        data = payload or {}
        for subscriber in subscribers:
            try:
                subscriber(event_name, data)
            except Exception as e:
                logger.error(f"Event subscriber failed on {event_name}: {e}", exc_info=True)


class NullSink:
    """Event sink that discards everything."""

    def publish(self, event_name: str, payload: dict[str, Any] | None = None) -> None:
        pass
