"""Tests for ProviderRouter failover."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from llm.base_client import Message
from llm.health import ProviderHealthRegistry, ProviderStatus
from llm.router import ProviderRouter, FALLBACK_PROVIDER
from schemas.responses import GenerationConstraints
from tests.fakes import FakeLLMClient, FailingClient, SlowClient


MESSAGES = [Message(role="user", content="Where is my order?")]


class TestProviderRouter:
    """Test provider selection and fallback."""

    def setup_method(self):
        """Set up test fixtures."""
        self.primary = FakeLLMClient(name="openai", reply="From primary.")
        self.secondary = FakeLLMClient(name="anthropic", reply="From secondary.")

    def _router(self, clients, **kwargs):
        return ProviderRouter(
            clients=clients,
            priority=list(clients),
            registry=ProviderHealthRegistry(list(clients), down_after=3),
            fallback_text="Sorry, please try again later.",
            **kwargs
        )

    def test_first_healthy_provider_wins(self):
        """Test that the first provider in priority order is used."""
        router = self._router({"openai": self.primary, "anthropic": self.secondary})
        result = router.generate(MESSAGES)
        assert result.success is True
        assert result.provider_used == "openai"
        assert result.text == "From primary."
        assert result.attempts == ["openai"]
        assert len(self.secondary.calls) == 0

    def test_fails_over_on_error(self):
        """Test failover when the first provider raises."""
        router = self._router({"openai": FailingClient("openai"), "anthropic": self.secondary})
        result = router.generate(MESSAGES)
        assert result.success is True
        assert result.provider_used == "anthropic"
        assert result.attempts == ["openai", "anthropic"]
        assert router.registry.get("openai").consecutive_failures == 1

    def test_fails_over_on_timeout(self):
        """Test that a slow provider is abandoned after the timeout."""
        router = self._router({"openai": SlowClient("openai", delay_s=1.0), "anthropic": self.secondary})
        result = router.generate(MESSAGES, GenerationConstraints(timeout_s=0.1))
        assert result.provider_used == "anthropic"
        assert router.registry.get("openai").consecutive_failures == 1

    def test_empty_response_counts_as_failure(self):
        """Test that a blank completion triggers failover."""
        router = self._router({"openai": FakeLLMClient("openai", reply="   "), "anthropic": self.secondary})
        result = router.generate(MESSAGES)
        assert result.provider_used == "anthropic"

    def test_all_providers_down_returns_fallback(self):
        """Test the fallback guarantee when every provider fails."""
        router = self._router({"openai": FailingClient("openai"), "anthropic": FailingClient("anthropic")})
        result = router.generate(MESSAGES)
        assert result.success is False
        assert result.provider_used == FALLBACK_PROVIDER
        assert result.text == "Sorry, please try again later."
        assert result.attempts == ["openai", "anthropic"]

    def test_down_provider_not_selected_while_healthy_exists(self):
        """Test that a provider marked down is tried last."""
        router = self._router({"openai": self.primary, "anthropic": self.secondary})
        for _ in range(3):
            router.registry.record_failure("openai")
        assert router.registry.get("openai").status == ProviderStatus.DOWN

        result = router.generate(MESSAGES)
        assert result.provider_used == "anthropic"
        assert result.attempts == ["anthropic"]
        assert len(self.primary.calls) == 0

    def test_degraded_provider_demoted_after_failure(self):
        """Test that one failure moves a provider behind a healthy one."""
        failing = FailingClient("openai")
        router = self._router({"openai": failing, "anthropic": self.secondary})
        router.generate(MESSAGES)
        router.generate(MESSAGES)
        assert len(failing.calls) == 1
        assert router.registry.get("openai").status == ProviderStatus.DEGRADED

    def test_success_records_latency(self):
        """Test that a successful call feeds the health registry."""
        router = self._router({"openai": self.primary})
        router.generate(MESSAGES)
        health = router.registry.get("openai")
        assert health.total_calls == 1
        assert health.avg_latency_ms is not None

    def test_unknown_priority_name_rejected(self):
        """Test that the priority list may only name configured providers."""
        with pytest.raises(ValueError):
            ProviderRouter(clients={"openai": self.primary}, priority=["openai", "gemini"])

    def test_rate_limited_provider_tried_last(self):
        """Test that a provider over its request window yields to the others."""
        registry = ProviderHealthRegistry(["openai", "anthropic"], rate_limit=1, rate_window_s=3600)
        router = ProviderRouter(
            clients={"openai": self.primary, "anthropic": self.secondary},
            registry=registry,
        )
        assert router.generate(MESSAGES).provider_used == "openai"
        assert router.generate(MESSAGES).provider_used == "anthropic"
        assert len(self.primary.calls) == 1
        assert registry.get("openai").rate_limited is True

    def test_hung_primary_does_not_starve_backup(self):
        """Test that concurrent requests fail over while the primary hangs."""
        slow = SlowClient("openai", delay_s=1.0)
        fast = FakeLLMClient("anthropic", reply="From backup.")
        router = self._router({"openai": slow, "anthropic": fast}, max_workers=8)
        constraints = GenerationConstraints(timeout_s=0.3)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: router.generate(MESSAGES, constraints), range(8)))

        assert [r.provider_used for r in results] == ["anthropic"] * 8
        health = router.registry.get("anthropic")
        assert health.status == ProviderStatus.HEALTHY
        assert health.consecutive_failures == 0
        router.shutdown()

    def test_queued_call_not_charged_to_provider(self):
        """Test that waiting behind busy workers is not recorded as a failure."""
        slow = SlowClient("openai", delay_s=1.0)
        router = self._router({"openai": slow, "anthropic": self.secondary}, max_workers=1)
        constraints = GenerationConstraints(timeout_s=0.3)

        first = router.generate(MESSAGES, constraints)
        assert first.provider_used == "anthropic"
        assert router.registry.get("openai").consecutive_failures == 1

        router.registry.reset()
        # The only worker is still busy with the first call
        second = router.generate(MESSAGES, constraints)
        assert second.attempts == ["openai", "anthropic"]
        assert second.provider_used == "anthropic"
        assert router.registry.get("openai").consecutive_failures == 0
        router.shutdown()
