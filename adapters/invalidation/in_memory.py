from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from domain.models import InvalidationSignal, LayoutKey
from domain.ports.sync import InvalidationBroadcaster

logger = logging.getLogger(__name__)

Subscriber = Callable[[InvalidationSignal], None]


class InMemoryInvalidationBus(InvalidationBroadcaster):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []
        self._revisions: dict[LayoutKey, int] = {}

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, signal: InvalidationSignal) -> None:
        with self._lock:
            current = self._revisions.get(signal.key, 0)
            self._revisions[signal.key] = max(current, signal.revision)
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(signal)
            except Exception:
                logger.exception("Invalidation subscriber failed for %s", signal.key.as_path())

    def revision(self, key: LayoutKey) -> int:
        with self._lock:
            return self._revisions.get(key, 0)
