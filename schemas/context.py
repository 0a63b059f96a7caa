"""Conversation key and message classification schemas."""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class Intent(str, Enum):
    """Classification of a customer message's intent."""
    GREETING = "greeting"
    ORDER_STATUS = "order_status"
    BOOKING = "booking"
    COMPLAINT = "complaint"
    APPRECIATION = "appreciation"
    GOODBYE = "goodbye"
    HELP = "help"
    PRODUCT_INQUIRY = "product_inquiry"
    QUESTION = "question"
    GENERAL = "general"


class Emotion(str, Enum):
    """Dominant emotion detected in a customer message."""
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    EXCITED = "excited"
    WORRIED = "worried"
    NEUTRAL = "neutral"


class ConversationKey(BaseModel):
    """Identifies one ongoing dialogue: tenant plus customer identifier."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(min_length=1)
    conversation_id: str = Field(min_length=1, description="e.g. customer phone number")

    def __str__(self) -> str:
        return f"{self.tenant_id}:{self.conversation_id}"


class Classification(BaseModel):
    """Intent and emotion extracted from one message."""
    intent: Intent = Intent.GENERAL
    intent_confidence: float = Field(0.0, ge=0.0, le=1.0)
    emotion: Emotion = Emotion.NEUTRAL
    emotion_confidence: float = Field(0.0, ge=0.0, le=1.0)
