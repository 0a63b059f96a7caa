"""Pydantic schemas for the business assistant core."""

from .context import ConversationKey, Classification, Intent, Emotion
from .personality import (
    PersonalityProfile,
    Tone,
    Formality,
    Industry,
    CommunicationStyle,
    ResponseLength,
    EmotionalTone,
    default_profile,
)
from .knowledge import KnowledgeItem, KnowledgeSourceType
from .analytics import AnalyticsEvent, OutcomeTag
from .responses import OrchestrationState, GenerationConstraints, GenerationResult, Reply

__all__ = [
    "ConversationKey",
    "Classification",
    "Intent",
    "Emotion",
    "PersonalityProfile",
    "Tone",
    "Formality",
    "Industry",
    "CommunicationStyle",
    "ResponseLength",
    "EmotionalTone",
    "default_profile",
    "KnowledgeItem",
    "KnowledgeSourceType",
    "AnalyticsEvent",
    "OutcomeTag",
    "OrchestrationState",
    "GenerationConstraints",
    "GenerationResult",
    "Reply",
]
