"""Provider selection with timeout and failover."""

import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional, List

from errors import TransientProviderError, AllProvidersExhausted
from schemas.responses import GenerationConstraints, GenerationResult
from .base_client import BaseLLMClient, Message
from .health import ProviderHealthRegistry

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = "fallback"


class _NotStarted(Exception):
    """The call was still queued behind the provider's other in-flight calls."""


class ProviderRouter:
    """
    Routes a generation request across providers.

    Providers are tried in the order given by the health registry, each call
    bounded by the request timeout. The first success wins; if every provider
    fails the router returns the canned fallback text instead of raising.

    Each provider gets its own thread pool, so calls hanging on one provider
    never hold up calls to another. A call that times out before a worker
    picked it up is skipped without counting against the provider's health.
    """

    def __init__(
        self,
        clients: dict[str, BaseLLMClient],
        priority: Optional[List[str]] = None,
        registry: Optional[ProviderHealthRegistry] = None,
        fallback_text: str = "I'm sorry, I'm having trouble processing your request right now.",
        max_workers: int = 8
    ):
        """
        Initialize router.

        Args:
            clients: Provider name -> client
            priority: Fixed tie-break order (defaults to the clients' insertion order)
            registry: Shared health registry
            fallback_text: Reply used when every provider fails
            max_workers: Threads per provider for in-flight calls
        """
        self.clients = dict(clients)
        self.priority = list(priority) if priority else list(self.clients)
        unknown = [name for name in self.priority if name not in self.clients]
        if unknown:
            raise ValueError(f"Priority lists unconfigured providers: {unknown}")
        self.registry = registry or ProviderHealthRegistry(self.priority)
        self.fallback_text = fallback_text
        self._executors = {
            name: ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"provider-{name}")
            for name in self.clients
        }

    def generate(
        self,
        messages: List[Message],
        constraints: Optional[GenerationConstraints] = None
    ) -> GenerationResult:
        """
        Generate a reply, failing over between providers.

        Args:
            messages: Prompt messages
            constraints: Temperature, token and timeout limits

        Returns:
            GenerationResult; success=False with the fallback text if all providers failed
        """
        constraints = constraints or GenerationConstraints()
        attempts = []
        started = time.monotonic()

        for name in self.registry.rank(self.priority):
            attempts.append(name)
            call_started = time.monotonic()
            try:
                text = self._call(name, messages, constraints)
            except _NotStarted:
                logger.warning(f"Provider {name} saturated, call never started within {constraints.timeout_s}s")
                continue
            except TransientProviderError as e:
                failures = self.registry.record_failure(
                    name, latency_ms=(time.monotonic() - call_started) * 1000
                )
                logger.warning(f"Provider {e.provider} failed ({e.reason}); consecutive failures: {failures}")
                continue

            latency_ms = (time.monotonic() - call_started) * 1000
            self.registry.record_success(name, latency_ms)
            return GenerationResult(
                text=text,
                provider_used=name,
                latency_ms=latency_ms,
                success=True,
                attempts=attempts,
            )

        exhausted = AllProvidersExhausted(attempts)
        logger.error(f"{exhausted}; returning fallback reply")
        return GenerationResult(
            text=self.fallback_text,
            provider_used=FALLBACK_PROVIDER,
            latency_ms=(time.monotonic() - started) * 1000,
            success=False,
            attempts=attempts,
        )

    def _call(self, name: str, messages: List[Message], constraints: GenerationConstraints) -> str:
        """
        Call one provider with a bounded wait.

        Raises:
            _NotStarted: If the call was still queued when the timeout passed
            TransientProviderError: For every failure of a call that ran
        """
        client = self.clients[name]
        running = threading.Event()

        def run():
            running.set()
            return client.chat(messages, temperature=constraints.temperature, max_tokens=constraints.max_tokens)

        future = self._executors[name].submit(run)
        self.registry.record_request(name)
        try:
            response = future.result(timeout=constraints.timeout_s)
        except FutureTimeout:
            if future.cancel() or not running.is_set():
                raise _NotStarted(name)
            raise TransientProviderError(name, f"timed out after {constraints.timeout_s}s")
        except TransientProviderError:
            raise
        except Exception as e:
            raise TransientProviderError(name, str(e) or type(e).__name__) from e

        content = (response.content or "").strip()
        if not content:
            raise TransientProviderError(name, "empty response")
        return content

    def shutdown(self):
        """Stop accepting provider calls."""
        for executor in self._executors.values():
            executor.shutdown(wait=False)
