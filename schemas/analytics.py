"""Analytics event schema."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .context import Intent, Emotion


class OutcomeTag(str, Enum):
    """Degradations recorded against a processed message."""
    ALL_PROVIDERS_EXHAUSTED = "all_providers_exhausted"
    CONTEXT_STORE_UNAVAILABLE = "context_store_unavailable"
    KNOWLEDGE_CACHE_MISS = "knowledge_cache_miss"
    INVALID_PERSONALITY_PROFILE = "invalid_personality_profile"
    LANGUAGE_FALLBACK = "language_fallback"
    FAILED_SAFE = "failed_safe"
    REPLY_DISCARDED = "reply_discarded"
    CLASSIFIER_FAILED = "classifier_failed"
    PERSONALIZATION_FAILED = "personalization_failed"
    DUPLICATE_MESSAGE = "duplicate_message"


class AnalyticsEvent(BaseModel):
    """Write-once record of one orchestrated message."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    conversation_id: str
    latency_ms: float = Field(ge=0.0)
    provider_used: str
    success: bool
    intent: Intent = Intent.GENERAL
    emotion: Emotion = Emotion.NEUTRAL
    timestamp: datetime = Field(default_factory=datetime.now)
    outcomes: list[OutcomeTag] = Field(default_factory=list)
    profile_version: Optional[str] = None
    profile_tone: Optional[str] = None
    state: str = "done"
