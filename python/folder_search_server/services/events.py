"""Observer channel for indexing lifecycle and progress events."""
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from folder_search_server.models.schemas import IndexingEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[IndexingEvent], None]

# Event names published by the indexing engine
INDEXING_STARTED = "indexing:started"
INDEXING_PROGRESS = "indexing:progress"
INDEXING_COMPLETED = "indexing:completed"
INDEXING_ERROR = "indexing:error"
FILE_INDEXED = "file:indexed"
FILE_UPDATED = "file:updated"
FILE_DELETED = "file:deleted"
WATCHER_STARTED = "watcher:started"
WATCHER_STOPPED = "watcher:stopped"
WATCHER_ERROR = "watcher:error"


class EventBus:
    """Publishes typed events to subscribers and keeps a replay buffer.

    Subscribers are called synchronously in publish order. A failing
    subscriber is logged and never affects the publisher.
    """

    def __init__(self, buffer_size: int = 1000):
        self._subscribers: List[Subscriber] = []
        self._recent: Deque[IndexingEvent] = deque(maxlen=buffer_size)
        self._seq = 0
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, name: str, payload: Optional[Dict[str, Any]] = None) -> IndexingEvent:
        with self._lock:
            self._seq += 1
            event = IndexingEvent(seq=self._seq, name=name, payload=payload or {},
                                  timestamp=time.time())
            self._recent.append(event)

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event subscriber failed on {name}: {e}", exc_info=True)
        return event

    def events_since(self, seq: int = 0, limit: Optional[int] = None) -> List[IndexingEvent]:
        """Buffered events with a sequence number greater than seq."""
        with self._lock:
            events = [event for event in self._recent if event.seq > seq]
        if limit is not None:
            events = events[:limit]
        return events

    @property
    def last_seq(self) -> int:
        return self._seq
