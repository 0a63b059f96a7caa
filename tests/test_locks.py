"""Tests for KeyedFifoLock."""

import threading
import time

import pytest

from memory.locks import KeyedFifoLock


class TestKeyedFifoLock:
    """Test per-key FIFO serialization."""

    def setup_method(self):
        """Set up test fixtures."""
        self.lock = KeyedFifoLock()

    def test_tickets_granted_in_order(self):
        """Test that holders run in ticket order even if they start waiting out of order."""
        tickets = [self.lock.ticket("k") for _ in range(5)]
        order = []

        def worker(ticket):
            self.lock.acquire(ticket)
            order.append(ticket.number)
            time.sleep(0.01)
            self.lock.release(ticket)

        threads = [threading.Thread(target=worker, args=(t,)) for t in reversed(tickets)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert order == [0, 1, 2, 3, 4]
        assert self.lock.pending("k") == 0

    def test_at_most_one_holder_per_key(self):
        """Test mutual exclusion under contention."""
        active = []
        overlaps = []

        def worker():
            with self.lock.hold("k"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.005)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert overlaps == []

    def test_different_keys_do_not_block(self):
        """Test that holding one key leaves others free."""
        held = self.lock.ticket("a")
        self.lock.acquire(held)
        acquired = threading.Event()

        def other():
            with self.lock.hold("b"):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=2)
        t.join()
        self.lock.release(held)

    def test_abandoned_ticket_is_skipped(self):
        """Test that an abandoned place in line does not block later tickets."""
        first = self.lock.ticket("k")
        second = self.lock.ticket("k")
        third = self.lock.ticket("k")
        self.lock.abandon(second)

        self.lock.acquire(first)
        self.lock.release(first)
        done = threading.Event()

        def waiter():
            self.lock.acquire(third)
            done.set()
            self.lock.release(third)

        t = threading.Thread(target=waiter)
        t.start()
        assert done.wait(timeout=2)
        t.join()
        assert self.lock.pending("k") == 0

    def test_release_out_of_turn_raises(self):
        """Test that only the current holder may release."""
        self.lock.ticket("k")
        second = self.lock.ticket("k")
        with pytest.raises(RuntimeError):
            self.lock.release(second)
