"""LLM client abstraction layer with health-aware routing."""

from .base_client import BaseLLMClient, Message, LLMResponse
from .health import ProviderHealthRegistry, ProviderHealth, ProviderStatus
from .router import ProviderRouter, FALLBACK_PROVIDER
from .factory import create_llm_client, build_router, LLMProvider

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "ProviderHealthRegistry",
    "ProviderHealth",
    "ProviderStatus",
    "ProviderRouter",
    "FALLBACK_PROVIDER",
    "create_llm_client",
    "build_router",
    "LLMProvider",
]
