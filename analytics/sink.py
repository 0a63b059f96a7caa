"""Analytics sink: queues events and fans them out to subscribers."""

import queue
import logging
import threading
from collections import deque
from typing import Callable, List, Optional

from schemas.analytics import AnalyticsEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[AnalyticsEvent], None]

_STOP = object()


class AnalyticsSink:
    """
    Fire-and-forget event recorder.

    ``record`` only enqueues; a daemon worker keeps a bounded history and
    calls subscribers (e.g. a real-time broadcast collaborator). A full queue
    drops the event with a warning instead of blocking the conversation, and
    a failing subscriber is logged and never affects other subscribers.
    """

    def __init__(self, max_events: int = 10000, queue_size: int = 1000):
        """
        Initialize sink and start its worker.

        Args:
            max_events: Events kept in memory for ``events()``
            queue_size: Pending events before new ones are dropped
        """
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._history: deque = deque(maxlen=max_events)
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self._dropped = 0
        self._closed = False
        self._worker = threading.Thread(target=self._run, name="analytics-sink", daemon=True)
        self._worker.start()

    @property
    def dropped(self) -> int:
        """Events dropped because the queue was full or the sink closed."""
        with self._lock:
            return self._dropped

    def record(self, event: AnalyticsEvent):
        """Enqueue an event. Never blocks and never raises."""
        if self._closed:
            self._count_drop()
            logger.warning(f"Analytics sink closed, dropping event for {event.tenant_id}:{event.conversation_id}")
            return
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._count_drop()
            logger.warning(f"Analytics queue full, dropping event for {event.tenant_id}:{event.conversation_id}")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a subscriber for every recorded event.

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def events(self, tenant_id: Optional[str] = None) -> List[AnalyticsEvent]:
        """Recorded events, oldest first, optionally for one tenant."""
        with self._lock:
            events = list(self._history)
        if tenant_id is not None:
            events = [e for e in events if e.tenant_id == tenant_id]
        return events

    def flush(self, timeout: Optional[float] = 5.0) -> bool:
        """
        Wait until every queued event has been processed.

        Returns:
            True if the queue drained within the timeout
        """
        done = threading.Event()
        try:
            self._queue.put(done, timeout=timeout)
        except queue.Full:
            return False
        return done.wait(timeout)

    def close(self, timeout: Optional[float] = 5.0):
        """Process queued events and stop the worker."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._worker.join(timeout)

    def _count_drop(self):
        with self._lock:
            self._dropped += 1

    def _run(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            if isinstance(item, threading.Event):
                item.set()
                continue
            self._dispatch(item)

    def _dispatch(self, event: AnalyticsEvent):
        with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Analytics subscriber {getattr(callback, '__name__', callback)} failed: {e}")
