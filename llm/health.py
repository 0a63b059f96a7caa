"""Provider health tracking shared by all workers."""

import time
import logging
import threading
from enum import Enum
from typing import Iterable, Optional
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProviderStatus(str, Enum):
    """Coarse availability of a provider."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class ProviderHealth(BaseModel):
    """Point-in-time health of one provider."""
    name: str
    status: ProviderStatus = ProviderStatus.HEALTHY
    last_latency_ms: Optional[float] = None
    avg_latency_ms: Optional[float] = None
    consecutive_failures: int = 0
    total_calls: int = 0
    total_failures: int = 0
    window_requests: int = 0
    rate_limited: bool = False


class _ProviderSlot:
    """Mutable health record guarded by its own lock."""

    def __init__(self, name: str):
        self.lock = threading.Lock()
        self.health = ProviderHealth(name=name)
        self.window_start: Optional[float] = None
        self.window_requests = 0


class ProviderHealthRegistry:
    """
    Thread-safe registry of provider health.

    Each provider has its own lock, so concurrent failures on one provider are
    counted exactly and never block updates to another. Health only biases the
    order in which providers are tried.
    """

    LATENCY_SMOOTHING = 0.3  # Weight of the newest sample in the rolling average

    def __init__(
        self,
        providers: Iterable[str] = (),
        down_after: int = 3,
        rate_limit: Optional[int] = None,
        rate_window_s: float = 3600.0
    ):
        """
        Initialize registry.

        Args:
            providers: Provider names to pre-register
            down_after: Consecutive failures after which a provider is marked down
            rate_limit: Requests allowed per provider per window (None: unlimited)
            rate_window_s: Length of the fixed rate-limit window
        """
        self.down_after = down_after
        self.rate_limit = rate_limit
        self.rate_window_s = rate_window_s
        self._slots: dict[str, _ProviderSlot] = {}
        self._slots_lock = threading.Lock()
        for name in providers:
            self._slot(name)

    def _slot(self, name: str) -> _ProviderSlot:
        with self._slots_lock:
            slot = self._slots.get(name)
            if slot is None:
                slot = _ProviderSlot(name)
                self._slots[name] = slot
            return slot

    def _status_for(self, failures: int) -> ProviderStatus:
        if failures >= self.down_after:
            return ProviderStatus.DOWN
        if failures > 0:
            return ProviderStatus.DEGRADED
        return ProviderStatus.HEALTHY

    def record_success(self, name: str, latency_ms: float) -> ProviderHealth:
        """Reset the failure streak and fold the latency into the rolling average."""
        slot = self._slot(name)
        with slot.lock:
            h = slot.health
            if h.avg_latency_ms is None:
                avg = latency_ms
            else:
                avg = self.LATENCY_SMOOTHING * latency_ms + (1 - self.LATENCY_SMOOTHING) * h.avg_latency_ms
            slot.health = h.model_copy(update={
                "status": ProviderStatus.HEALTHY,
                "last_latency_ms": latency_ms,
                "avg_latency_ms": avg,
                "consecutive_failures": 0,
                "total_calls": h.total_calls + 1,
            })
            return slot.health

    def record_failure(self, name: str, latency_ms: Optional[float] = None) -> int:
        """
        Increment the failure streak.

        Returns:
            The new consecutive failure count (increment-and-read in one step)
        """
        slot = self._slot(name)
        with slot.lock:
            h = slot.health
            failures = h.consecutive_failures + 1
            status = self._status_for(failures)
            slot.health = h.model_copy(update={
                "status": status,
                "last_latency_ms": latency_ms if latency_ms is not None else h.last_latency_ms,
                "consecutive_failures": failures,
                "total_calls": h.total_calls + 1,
                "total_failures": h.total_failures + 1,
            })
        if status == ProviderStatus.DOWN and failures == self.down_after:
            logger.warning(f"Provider {name} marked down after {failures} consecutive failures")
        return failures

    def record_request(self, name: str, now: Optional[float] = None) -> int:
        """
        Count a request against the provider's current window.

        Returns:
            Requests made in the current window, this one included
        """
        slot = self._slot(name)
        with slot.lock:
            self._roll_window(slot, now)
            slot.window_requests += 1
            count = slot.window_requests
        if self.rate_limit is not None and count == self.rate_limit:
            logger.warning(f"Provider {name} reached its rate limit of {self.rate_limit} per {self.rate_window_s:.0f}s")
        return count

    def is_rate_limited(self, name: str, now: Optional[float] = None) -> bool:
        """Whether the provider has used up its current window."""
        if self.rate_limit is None:
            return False
        slot = self._slot(name)
        with slot.lock:
            self._roll_window(slot, now)
            return slot.window_requests >= self.rate_limit

    def _roll_window(self, slot: _ProviderSlot, now: Optional[float]):
        """Start a new window once the current one has expired. Caller holds ``slot.lock``."""
        now = time.monotonic() if now is None else now
        if slot.window_start is None or now - slot.window_start >= self.rate_window_s:
            slot.window_start = now
            slot.window_requests = 0

    def get(self, name: str, now: Optional[float] = None) -> ProviderHealth:
        """Get a copy of one provider's health."""
        slot = self._slot(name)
        with slot.lock:
            self._roll_window(slot, now)
            return slot.health.model_copy(update={
                "window_requests": slot.window_requests,
                "rate_limited": self.rate_limit is not None and slot.window_requests >= self.rate_limit,
            })

    def snapshot(self) -> dict[str, ProviderHealth]:
        """Get copies of every provider's health, for dashboards."""
        with self._slots_lock:
            names = list(self._slots)
        return {name: self.get(name) for name in names}

    def reset(self, name: Optional[str] = None):
        """Forget failure streaks for one provider, or all of them."""
        names = [name] if name else list(self.snapshot())
        for provider in names:
            slot = self._slot(provider)
            with slot.lock:
                slot.health = ProviderHealth(name=provider)
                slot.window_start = None
                slot.window_requests = 0
        logger.info(f"Provider health reset: {', '.join(names)}")

    def rank(self, priority: list[str], now: Optional[float] = None) -> list[str]:
        """
        Order providers for the next request.

        Sort key: available first (neither down nor rate limited), fewest
        consecutive failures, lowest rolling latency, then position in the
        configured priority list. A provider with no latency sample yet sorts
        after measured ones.
        """
        def sort_key(item):
            index, name = item
            h = self.get(name, now)
            latency = h.avg_latency_ms if h.avg_latency_ms is not None else float("inf")
            return (
                h.status == ProviderStatus.DOWN or h.rate_limited,
                h.consecutive_failures,
                latency,
                index,
            )

        return [name for _, name in sorted(enumerate(priority), key=sort_key)]
