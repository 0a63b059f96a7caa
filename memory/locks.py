"""Per-key FIFO serialization for conversation processing."""

import threading
from contextlib import contextmanager
from typing import Hashable, NamedTuple


class Ticket(NamedTuple):
    """Place in line for one key."""
    key: Hashable
    number: int


class _KeyQueue:
    def __init__(self, lock: threading.Lock):
        self.cond = threading.Condition(lock)
        self.next_ticket = 0
        self.serving = 0
        self.abandoned: set[int] = set()


class KeyedFifoLock:
    """
    At most one holder per key, granted in ticket order.

    Taking a ticket and waiting for it are separate steps, so a caller can
    reserve its place when a message arrives and wait later on a worker
    thread. Keys never contend with each other, and a key's bookkeeping is
    dropped once its line is empty.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._queues: dict[Hashable, _KeyQueue] = {}

    def ticket(self, key: Hashable) -> Ticket:
        """Reserve the next place in line for ``key``."""
        with self._lock:
            queue = self._queues.get(key)
            if queue is None:
                queue = _KeyQueue(self._lock)
                self._queues[key] = queue
            number = queue.next_ticket
            queue.next_ticket += 1
            return Ticket(key, number)

    def acquire(self, ticket: Ticket):
        """Block until every earlier ticket for the key has been released."""
        with self._lock:
            queue = self._queues[ticket.key]
            queue.cond.wait_for(lambda: queue.serving == ticket.number)

    def release(self, ticket: Ticket):
        """Hand the key to the next ticket in line."""
        with self._lock:
            self._advance(ticket)

    def abandon(self, ticket: Ticket):
        """Give up a ticket that will never be acquired."""
        with self._lock:
            queue = self._queues.get(ticket.key)
            if queue is None:
                return
            if queue.serving == ticket.number:
                self._advance(ticket)
            else:
                queue.abandoned.add(ticket.number)

    @contextmanager
    def hold(self, key: Hashable):
        """Take a ticket and hold the key for the duration of the block."""
        ticket = self.ticket(key)
        self.acquire(ticket)
        try:
            yield ticket
        finally:
            self.release(ticket)

    def pending(self, key: Hashable) -> int:
        """Tickets issued for ``key`` and not yet released."""
        with self._lock:
            queue = self._queues.get(key)
            if queue is None:
                return 0
            return queue.next_ticket - queue.serving - len(queue.abandoned)

    def _advance(self, ticket: Ticket):
        """Caller holds ``self._lock``."""
        queue = self._queues[ticket.key]
        if queue.serving != ticket.number:
            raise RuntimeError(f"Ticket {ticket.number} released out of turn for {ticket.key}")
        queue.serving += 1
        while queue.serving in queue.abandoned:
            queue.abandoned.discard(queue.serving)
            queue.serving += 1
        if queue.serving == queue.next_ticket:
            del self._queues[ticket.key]
        else:
            queue.cond.notify_all()
