"""Tests for AnalyticsSink."""

import threading

from analytics.sink import AnalyticsSink
from schemas.analytics import AnalyticsEvent, OutcomeTag


def event(tenant="shop", conversation="c1", success=True):
    return AnalyticsEvent(
        tenant_id=tenant,
        conversation_id=conversation,
        latency_ms=12.5,
        provider_used="openai",
        success=success,
    )


class TestAnalyticsSink:
    """Test fire-and-forget event recording."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sink = AnalyticsSink()

    def teardown_method(self):
        """Stop the worker."""
        self.sink.close()

    def test_record_then_events(self):
        """Test that recorded events are visible after a flush."""
        self.sink.record(event())
        self.sink.record(event(conversation="c2"))
        assert self.sink.flush(timeout=5)
        assert [e.conversation_id for e in self.sink.events()] == ["c1", "c2"]

    def test_filter_by_tenant(self):
        """Test per-tenant event filtering."""
        self.sink.record(event(tenant="a"))
        self.sink.record(event(tenant="b"))
        self.sink.flush(timeout=5)
        assert [e.tenant_id for e in self.sink.events("b")] == ["b"]

    def test_subscriber_receives_events(self):
        """Test real-time fan-out to subscribers."""
        received = []
        unsubscribe = self.sink.subscribe(received.append)
        self.sink.record(event())
        self.sink.flush(timeout=5)
        unsubscribe()
        self.sink.record(event(conversation="c2"))
        self.sink.flush(timeout=5)
        assert [e.conversation_id for e in received] == ["c1"]

    def test_failing_subscriber_isolated(self):
        """Test that one broken subscriber does not affect the others."""
        received = []

        def broken(_event):
            raise RuntimeError("socket closed")

        self.sink.subscribe(broken)
        self.sink.subscribe(received.append)
        self.sink.record(event())
        self.sink.flush(timeout=5)
        assert len(received) == 1
        assert len(self.sink.events()) == 1

    def test_full_queue_drops_instead_of_blocking(self):
        """Test that a saturated sink drops events and counts them."""
        self.sink.close()
        self.sink = AnalyticsSink(queue_size=1)
        entered = threading.Event()
        release = threading.Event()

        def slow(_event):
            entered.set()
            release.wait(timeout=5)

        self.sink.subscribe(slow)
        self.sink.record(event(conversation="c1"))
        assert entered.wait(timeout=5)

        self.sink.record(event(conversation="c2"))
        self.sink.record(event(conversation="c3"))
        assert self.sink.dropped == 1

        release.set()
        self.sink.flush(timeout=5)
        assert [e.conversation_id for e in self.sink.events()] == ["c1", "c2"]

    def test_record_after_close_is_dropped(self):
        """Test that a closed sink drops events without raising."""
        self.sink.close()
        self.sink.record(event())
        assert self.sink.dropped == 1

    def test_event_keeps_outcomes(self):
        """Test that outcome tags survive the queue."""
        self.sink.record(AnalyticsEvent(
            tenant_id="shop",
            conversation_id="c1",
            latency_ms=3.0,
            provider_used="fallback",
            success=False,
            outcomes=[OutcomeTag.ALL_PROVIDERS_EXHAUSTED],
        ))
        self.sink.flush(timeout=5)
        assert self.sink.events()[0].outcomes == [OutcomeTag.ALL_PROVIDERS_EXHAUSTED]
