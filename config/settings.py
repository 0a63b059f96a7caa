"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application configuration settings."""

    # Provider settings, tried in this order when health is equal
    provider_priority: list[str] = Field(default_factory=lambda: ["openai", "anthropic"])
    openai_model: Optional[str] = None
    anthropic_model: Optional[str] = None

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Timeouts (seconds)
    provider_timeout_s: float = 10.0
    context_timeout_s: float = 2.0  # Shorter than provider timeout, falls back to no memory

    # Provider health
    down_after_failures: int = 3
    provider_rate_limit: Optional[int] = 1000  # Requests per provider per window, None for unlimited
    provider_rate_window_s: float = 60 * 60

    # Memory settings
    memory_enabled: bool = True
    db_path: Optional[str] = "data/conversations.db"  # None keeps memory in-process only
    max_context_turns: int = 20
    max_summary_chars: int = 1200
    context_ttl_s: float = 24 * 60 * 60

    # Knowledge settings
    knowledge_refresh_s: float = 30.0
    knowledge_top_k: int = 5
    knowledge_sheets: dict[str, str] = Field(
        default_factory=dict,
        description="tenant_id -> exported sheet path or published CSV URL"
    )

    # Personality
    default_language: str = "en"

    # Canned replies
    fallback_reply: str = (
        "I'm sorry, I'm having trouble processing your request right now. "
        "Could you please try again in a moment?"
    )
    apology_reply: str = (
        "We apologize, our assistant is temporarily unavailable. "
        "A member of our team will get back to you shortly."
    )

    # Workers
    worker_count: int = 8

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        if "openai_api_key" not in data or data["openai_api_key"] is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "anthropic_api_key" not in data or data["anthropic_api_key"] is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        super().__init__(**data)

    def get_api_key(self, provider: str) -> Optional[str]:
        """Get the API key for a provider."""
        if provider == "openai":
            return self.openai_api_key
        elif provider == "anthropic":
            return self.anthropic_api_key
        return None

    def get_model(self, provider: str) -> Optional[str]:
        """Get the model override for a provider."""
        if provider == "openai":
            return self.openai_model
        elif provider == "anthropic":
            return self.anthropic_model
        return None
