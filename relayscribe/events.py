"""
Fire-and-forget publish/subscribe channel.

Handlers run synchronously on the thread that calls emit(): recognition
results arrive on the capture thread, state changes on the control thread.
Handlers must not block.
"""

import logging
import threading
from typing import Callable, Generic, List, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Event(Generic[T]):
    """
    A named list of subscribers.

    Usage:
        changed = Event("recognition_changed")
        changed.subscribe(lambda payload: print(payload))
        changed.emit(payload)
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[[T], None]) -> None:
        with self._lock:
            self._handlers.append(handler)

    def unsubscribe(self, handler: Callable[[T], None]) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def emit(self, payload: T) -> None:
        """Deliver payload to every handler; a failing handler does not stop the others."""
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
