"""Error taxonomy for the conversation core.

None of these reach the caller of ``ConversationOrchestrator.handle``; each is
caught at the component seam that owns the degradation and recorded as an
``OutcomeTag`` on the analytics event.
"""

from typing import Optional


class AssistantError(Exception):
    """Base class for conversation core errors."""


class TransientProviderError(AssistantError):
    """A text-generation provider timed out or failed; try the next one."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}")


class AllProvidersExhausted(AssistantError):
    """Every configured provider failed for one request."""

    def __init__(self, attempts: Optional[list[str]] = None):
        self.attempts = attempts or []
        super().__init__(f"All providers failed: {', '.join(self.attempts) or 'none configured'}")


class ContextStoreUnavailable(AssistantError):
    """Conversation memory could not be read or written."""


class KnowledgeCacheMiss(AssistantError):
    """No knowledge items are cached for a tenant yet."""


class InvalidPersonalityProfile(AssistantError):
    """A personality profile is missing required fields or has bad values."""

    def __init__(self, tenant_id: Optional[str], reason: str):
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Invalid personality profile for tenant {tenant_id}: {reason}")


class KnowledgeSourceError(AssistantError):
    """A tenant's knowledge sheet could not be fetched or parsed."""

    def __init__(self, tenant_id: str, reason: str):
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Knowledge source for tenant {tenant_id}: {reason}")
