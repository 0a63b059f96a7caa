"""Memory data models."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel, Field

from schemas.context import Intent, Emotion


class Role(str, Enum):
    """Who produced a turn."""
    CUSTOMER = "customer"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """A single turn in a conversation."""
    turn_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Role
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)
    intent: Optional[Intent] = None
    emotion: Optional[Emotion] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class ConversationSummary(BaseModel):
    """Rolling summary of turns folded out of the verbatim window."""
    segments: List[str] = Field(default_factory=list, description="One segment per folded slice, oldest first")
    key_topics: List[str] = Field(default_factory=list)
    folded_turns: int = 0
    last_updated: Optional[datetime] = None

    @property
    def text(self) -> str:
        return " ".join(self.segments)

    def is_empty(self) -> bool:
        return not self.segments


class ConversationContext(BaseModel):
    """Bounded memory for one conversation key."""
    tenant_id: str
    conversation_id: str
    turns: List[Turn] = Field(default_factory=list)
    summary: ConversationSummary = Field(default_factory=ConversationSummary)
    preferences: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    last_write: Optional[datetime] = None
    last_turn_at: Optional[datetime] = None  # Survives eviction of the turns themselves
    seen_turn_ids: List[str] = Field(
        default_factory=list,
        description="Ids of recently appended turns, oldest first; kept when turns are folded"
    )

    def has_turn(self, turn_id: str) -> bool:
        """Whether the turn was appended, even if it has since been folded."""
        return turn_id in self.seen_turn_ids or self.find_turn(turn_id) is not None

    def find_turn(self, turn_id: str) -> Optional[Turn]:
        """The turn with this id, if it is still in the verbatim window."""
        for turn in self.turns:
            if turn.turn_id == turn_id:
                return turn
        return None
