"""Synchronous publish/subscribe hub for album and photo change events."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from photo_albums.events.events import EVENT_TYPES

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], bool]


class ChangeNotifier:
    """Dispatch typed change events to subscribers.

    Handlers run on the publisher's thread, in registration order. The
    handler list is snapshotted when a dispatch starts: a handler removed
    during dispatch still runs in that dispatch, one added during dispatch
    first runs on the next publish. A raising handler is logged and the
    remaining handlers still run.
    """

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: type, handler: Handler) -> Unsubscribe:
        """Register ``handler`` for ``event_type``. Returns an unsubscribe callable."""
        self._check_event_type(event_type)
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def subscribe_once(self, event_type: type, handler: Handler) -> Unsubscribe:
        """Register a handler that is removed after its first invocation."""

        def once(event: Any) -> None:
            # A re-entrant publish can reach this wrapper twice; only the
            # call that removes the registration runs the handler
            if self.unsubscribe(event_type, once):
                handler(event)

        return self.subscribe(event_type, once)

    def unsubscribe(self, event_type: type, handler: Handler) -> bool:
        """Remove one registration of ``handler``.

        Returns False, and changes nothing, if it was not registered.
        """
        with self._lock:
            handlers = self._handlers.get(event_type)
            if not handlers:
                return False
            for i, registered in enumerate(handlers):
                # Bound methods are recreated on each attribute access
                if registered == handler:
                    del handlers[i]
                    break
            else:
                return False
            if not handlers:
                del self._handlers[event_type]
            return True

    def publish(self, event: Any) -> None:
        """Invoke every handler subscribed to ``type(event)``."""
        event_type = type(event)
        self._check_event_type(event_type)
        with self._lock:
            snapshot = list(self._handlers.get(event_type, ()))
        for handler in snapshot:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in handler for {event_type.name!r}")

    def listener_count(self, event_type: type) -> int:
        with self._lock:
            return len(self._handlers.get(event_type, ()))

    def clear(self, event_type: type | None = None) -> None:
        """Drop all handlers for one event type, or for every type."""
        with self._lock:
            if event_type is None:
                self._handlers.clear()
            else:
                self._handlers.pop(event_type, None)

    @staticmethod
    def _check_event_type(event_type: type) -> None:
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Not a known event type: {event_type!r}")
