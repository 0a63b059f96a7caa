"""Pipeline response schemas."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .analytics import AnalyticsEvent


class OrchestrationState(str, Enum):
    """States one request moves through."""
    RECEIVED = "received"
    CONTEXT_LOADED = "context_loaded"
    KNOWLEDGE_ENRICHED = "knowledge_enriched"
    PROVIDER_CALLED = "provider_called"
    PERSONALIZED = "personalized"
    PERSISTED = "persisted"
    DONE = "done"
    FAILED_SAFE = "failed_safe"


class GenerationConstraints(BaseModel):
    """Limits for one provider call."""
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(500, gt=0)
    timeout_s: float = Field(10.0, gt=0.0)


class GenerationResult(BaseModel):
    """Outcome of ProviderRouter.generate."""
    text: str
    provider_used: str
    latency_ms: float = 0.0
    success: bool = True
    attempts: list[str] = Field(default_factory=list, description="Providers tried, in order")


class Reply(BaseModel):
    """What the orchestrator hands back to the inbound channel."""
    text: str
    state: OrchestrationState
    delivered: bool = True
    provider_used: Optional[str] = None
    event: Optional[AnalyticsEvent] = None
