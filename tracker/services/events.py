"""
In-process event bus.

Services publish domain events here after successful mutations; the
real-time bridge and the series trackers subscribe. Handlers run
synchronously in publish order. A failing handler is logged and skipped so
one subscriber cannot break a write that has already been committed.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ENTRY_ADDED = "entry_added"
ENTRY_UPDATED = "entry_updated"
ENTRY_DELETED = "entry_deleted"
TARIFFS_CHANGED = "tariffs_changed"

ENTRY_EVENTS = (ENTRY_ADDED, ENTRY_UPDATED, ENTRY_DELETED)

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """Minimal publish/subscribe registry."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: Handler) -> Handler:
        with self._lock:
            if handler not in self._handlers[event]:
                self._handlers[event].append(handler)
        return handler

    def unsubscribe(self, event: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

    def handlers(self, event: str) -> List[Handler]:
        with self._lock:
            return list(self._handlers[event])

    def publish(self, event: str, payload: Dict[str, Any]) -> int:
        """
        Deliver ``payload`` to every handler subscribed to ``event``.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in self.handlers(event):
            try:
                handler(payload)
                delivered += 1
            except Exception as e:
                logger.exception(f"Handler {getattr(handler, '__name__', handler)} failed for {event}: {e}")
        logger.debug(f"Published {event} to {delivered} handler(s)")
        return delivered
