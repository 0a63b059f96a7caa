"""LLM client factory."""

import logging
from enum import Enum
from typing import Optional

from config.settings import Settings
from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient
from .health import ProviderHealthRegistry
from .router import ProviderRouter

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


def create_llm_client(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = 30.0
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Args:
        provider: LLM provider (openai or anthropic)
        api_key: API key for the provider
        model: Optional model override
        timeout: Transport timeout in seconds

    Returns:
        Configured LLM client

    Raises:
        ValueError: If provider is not supported
    """
    if provider == LLMProvider.OPENAI:
        return OpenAIClient(api_key=api_key, model=model, timeout=timeout)
    elif provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(api_key=api_key, model=model, timeout=timeout)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def build_router(
    settings: Settings,
    registry: Optional[ProviderHealthRegistry] = None
) -> ProviderRouter:
    """
    Build a router over every provider in the configured priority list.

    Providers without an API key are still registered; their calls fail fast
    and the router moves on to the next one.
    """
    clients = {}
    for name in settings.provider_priority:
        provider = LLMProvider(name)
        clients[name] = create_llm_client(
            provider=provider,
            api_key=settings.get_api_key(name),
            model=settings.get_model(name),
            timeout=settings.provider_timeout_s,
        )

    registry = registry or ProviderHealthRegistry(
        settings.provider_priority,
        down_after=settings.down_after_failures,
        rate_limit=settings.provider_rate_limit,
        rate_window_s=settings.provider_rate_window_s,
    )
    described = ", ".join(f"{c.get_provider_name()}/{c.get_model_name()}" for c in clients.values())
    logger.info(f"Provider router initialized with priority: {described}")
    return ProviderRouter(
        clients=clients,
        priority=settings.provider_priority,
        registry=registry,
        fallback_text=settings.fallback_reply,
        max_workers=settings.worker_count,
    )
