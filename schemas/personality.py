"""Personality profile schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Tone(str, Enum):
    """Overall personality type of the assistant."""
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    EXPERT = "expert"
    CARING = "caring"
    TRENDY = "trendy"


class Formality(str, Enum):
    """How formal the wording should be."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Industry(str, Enum):
    """Business vertical, used for vocabulary adjustments."""
    GENERAL = "general"
    HEALTHCARE = "healthcare"
    FINANCE = "finance"
    RETAIL = "retail"
    HOSPITALITY = "hospitality"
    TECHNOLOGY = "technology"
    EDUCATION = "education"


class CommunicationStyle(str, Enum):
    """Communication style picked during onboarding."""
    FORMAL = "formal"
    FRIENDLY = "friendly"
    CASUAL = "casual"
    ENTHUSIASTIC = "enthusiastic"


class ResponseLength(str, Enum):
    """Preferred reply length."""
    BRIEF = "brief"
    MODERATE = "moderate"
    DETAILED = "detailed"
    ADAPTIVE = "adaptive"


class EmotionalTone(str, Enum):
    """Emotional colouring applied on top of the tone."""
    ENTHUSIASTIC = "enthusiastic"
    CALM = "calm"
    EMPATHETIC = "empathetic"
    CONFIDENT = "confident"


class PersonalityProfile(BaseModel):
    """Immutable personality snapshot for one tenant."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(min_length=1)
    tone: Tone = Tone.FRIENDLY
    formality: Formality = Formality.MEDIUM
    industry: Industry = Industry.GENERAL
    communication_style: CommunicationStyle = CommunicationStyle.FRIENDLY
    response_length: ResponseLength = ResponseLength.MODERATE
    emotional_tone: EmotionalTone = EmotionalTone.EMPATHETIC
    custom_instructions: str = ""
    language: str = "en"
    terminology: dict[str, str] = Field(
        default_factory=dict,
        description="Brand terminology: generic word -> branded word"
    )
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def version(self) -> str:
        """Version tag derived from the update timestamp."""
        return self.updated_at.isoformat()


def default_profile(tenant_id: str, language: Optional[str] = None) -> PersonalityProfile:
    """System default profile used when a tenant has none (or an invalid one)."""
    return PersonalityProfile(
        tenant_id=tenant_id,
        language=language or "en",
        updated_at=datetime.min,
    )
