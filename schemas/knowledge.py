"""Knowledge base schemas."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class KnowledgeSourceType(str, Enum):
    """Where a knowledge item came from."""
    SYNCED = "synced"
    MANUAL = "manual"


class KnowledgeItem(BaseModel):
    """A single fact from a tenant's knowledge source."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    key: str = Field(description="Topic or row label, e.g. a product name")
    value: str
    source: KnowledgeSourceType = KnowledgeSourceType.SYNCED
    last_updated: datetime = Field(default_factory=datetime.now)

    def as_fact(self) -> str:
        """Render the item as a one-line fact for a prompt."""
        return f"{self.key}: {self.value}"
