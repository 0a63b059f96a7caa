"""Memory system: conversation contexts, profiles and persistence."""

from .models import Role, Turn, ConversationContext, ConversationSummary
from .summarizer import Summarizer, ExtractiveSummarizer
from .sqlite_store import SQLiteMemoryStore
from .context_store import ContextStore
from .locks import KeyedFifoLock, Ticket
from .profile_store import ProfileStore, validate_profile

__all__ = [
    "Role",
    "Turn",
    "ConversationContext",
    "ConversationSummary",
    "Summarizer",
    "ExtractiveSummarizer",
    "SQLiteMemoryStore",
    "ContextStore",
    "KeyedFifoLock",
    "Ticket",
    "ProfileStore",
    "validate_profile",
]
