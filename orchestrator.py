"""Conversation orchestrator: one reply per inbound customer message."""

import re
import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future, TimeoutError as FutureTimeout
from datetime import datetime
from typing import Optional, List

from config.settings import Settings
from errors import ContextStoreUnavailable
from schemas.analytics import AnalyticsEvent, OutcomeTag
from schemas.context import ConversationKey, Classification, Intent, Emotion
from schemas.knowledge import KnowledgeItem
from schemas.personality import PersonalityProfile
from schemas.responses import GenerationConstraints, GenerationResult, OrchestrationState, Reply

# LLM components
from llm.factory import build_router
from llm.health import ProviderHealthRegistry
from llm.router import ProviderRouter, FALLBACK_PROVIDER

# Memory components
from memory.context_store import ContextStore
from memory.locks import KeyedFifoLock, Ticket
from memory.models import ConversationContext, Role, Turn
from memory.profile_store import ProfileStore
from memory.sqlite_store import SQLiteMemoryStore

# Agents
from agents.classifier import RuleBasedClassifier
from agents.composer import PromptComposer
from agents.personality import PersonalityEngine

from retrieval.knowledge_cache import KnowledgeCache
from retrieval.sheet_sources import build_knowledge_source
from analytics.sink import AnalyticsSink

logger = logging.getLogger(__name__)

REPLAY_PROVIDER = "replay"
_ANGLE_BRACKETS = re.compile(r"[<>]")


def normalize_message(message: Optional[str]) -> str:
    """Trim, collapse whitespace and strip angle brackets."""
    if not message:
        return ""
    return " ".join(_ANGLE_BRACKETS.sub("", message).split())


class _Run:
    """Mutable record of one request while it moves through the pipeline."""

    def __init__(self, key: ConversationKey, message: str, message_id: Optional[str]):
        self.key = key
        self.message = message
        self.message_id = message_id
        self.received_at = datetime.now()
        self.started = time.monotonic()
        self.state = OrchestrationState.RECEIVED
        self.outcomes: List[OutcomeTag] = []
        self.classification: Optional[Classification] = None
        self.profile: Optional[PersonalityProfile] = None
        self.text: Optional[str] = None
        self.provider_used: Optional[str] = None
        self.success = False
        self.suppressed = False  # Duplicate whose reply was already sent

    def advance(self, state: OrchestrationState):
        self.state = state
        logger.debug(f"{self.key} -> {state.value}")

    def tag(self, outcome: OutcomeTag):
        if outcome not in self.outcomes:
            self.outcomes.append(outcome)


class ConversationOrchestrator:
    """
    Per-message pipeline: classify, load context, enrich with knowledge,
    generate, personalize, persist, record.

    At most one message per conversation is in flight; messages for the same
    conversation are processed in the order they were handed in. Every
    failure inside the pipeline degrades to a reply, never to an exception.
    """

    def __init__(
        self,
        router: ProviderRouter,
        context_store: ContextStore,
        personality: PersonalityEngine,
        profiles: Optional[ProfileStore] = None,
        knowledge: Optional[KnowledgeCache] = None,
        classifier: Optional[RuleBasedClassifier] = None,
        composer: Optional[PromptComposer] = None,
        analytics: Optional[AnalyticsSink] = None,
        settings: Optional[Settings] = None
    ):
        """
        Initialize orchestrator.

        Args:
            router: Provider router
            context_store: Conversation memory
            personality: Personality engine
            profiles: Tenant profiles (default: empty store, system defaults)
            knowledge: Knowledge cache (None: no enrichment)
            classifier: Anything with ``classify(text) -> Classification``
            composer: Prompt composer
            analytics: Event sink (default: a new AnalyticsSink)
            settings: Application settings
        """
        self.settings = settings or Settings()
        self.router = router
        self.context_store = context_store
        self.personality = personality
        self.profiles = profiles or ProfileStore(default_language=self.settings.default_language)
        self.knowledge = knowledge
        self.classifier = classifier or RuleBasedClassifier()
        self.composer = composer or PromptComposer()
        self.analytics = analytics or AnalyticsSink()

        self._locks = KeyedFifoLock()
        self._workers = ThreadPoolExecutor(
            max_workers=self.settings.worker_count, thread_name_prefix="conversation"
        )
        self._context_io = ThreadPoolExecutor(
            max_workers=self.settings.worker_count, thread_name_prefix="context-read"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        registry: Optional[ProviderHealthRegistry] = None
    ) -> "ConversationOrchestrator":
        """Build the full pipeline from settings."""
        settings = settings or Settings()

        router = build_router(settings, registry=registry)

        backend = None
        if settings.memory_enabled and settings.db_path:
            backend = SQLiteMemoryStore(db_path=settings.db_path)
            logger.info(f"Memory initialized: {settings.db_path}")
        context_store = ContextStore(
            max_turns=settings.max_context_turns,
            backend=backend,
            max_summary_chars=settings.max_summary_chars,
        )

        knowledge = KnowledgeCache(
            source=build_knowledge_source(settings.knowledge_sheets, timeout=settings.provider_timeout_s)
            if settings.knowledge_sheets else None,
            refresh_interval_s=settings.knowledge_refresh_s,
        )

        return cls(
            router=router,
            context_store=context_store,
            personality=PersonalityEngine(default_language=settings.default_language),
            profiles=ProfileStore(default_language=settings.default_language),
            knowledge=knowledge,
            analytics=AnalyticsSink(),
            settings=settings,
        )

    def handle(
        self,
        tenant_id: str,
        conversation_id: str,
        message: str,
        message_id: Optional[str] = None,
        cancelled: Optional[threading.Event] = None
    ) -> Reply:
        """
        Process one inbound message on the calling thread.

        Args:
            tenant_id: Business account
            conversation_id: Customer conversation within the tenant
            message: Raw inbound text
            message_id: Channel message id; a repeated id replays the stored reply
            cancelled: Set by the caller when it stops waiting for the reply

        Returns:
            Reply (never raises)
        """
        key = ConversationKey(tenant_id=tenant_id, conversation_id=conversation_id)
        ticket = self._locks.ticket(key)
        return self._process(ticket, key, message, message_id, cancelled)

    def submit(
        self,
        tenant_id: str,
        conversation_id: str,
        message: str,
        message_id: Optional[str] = None,
        cancelled: Optional[threading.Event] = None
    ) -> "Future[Reply]":
        """
        Queue a message on the worker pool.

        The conversation's place in line is taken here, so messages submitted
        for one conversation are processed in submission order.
        """
        key = ConversationKey(tenant_id=tenant_id, conversation_id=conversation_id)
        ticket = self._locks.ticket(key)
        try:
            return self._workers.submit(self._process, ticket, key, message, message_id, cancelled)
        except RuntimeError:
            self._locks.abandon(ticket)
            raise

    def evict_idle(self, older_than: Optional[float] = None) -> int:
        """
        Evict contexts idle longer than ``older_than`` seconds (default: settings.context_ttl_s).

        Conversations with a message in flight or queued are left alone.
        """
        return self.context_store.evict_idle(
            older_than if older_than is not None else self.settings.context_ttl_s,
            skip=lambda key: self._locks.pending(key) > 0,
        )

    def shutdown(self, wait: bool = True):
        """Stop workers and background components."""
        self._workers.shutdown(wait=wait)
        self._context_io.shutdown(wait=False)
        self.router.shutdown()
        if self.knowledge:
            self.knowledge.close()
        self.analytics.close()

    def _process(
        self,
        ticket: Ticket,
        key: ConversationKey,
        message: str,
        message_id: Optional[str],
        cancelled: Optional[threading.Event]
    ) -> Reply:
        run = _Run(key, normalize_message(message), message_id)

        self._locks.acquire(ticket)
        try:
            self._run_pipeline(run)
        except Exception as e:
            # The caller always gets a reply
            logger.error(f"Unhandled error processing message for {key}: {e}", exc_info=True)
            self._fail_safe(run)
        finally:
            self._locks.release(ticket)

        return self._finish(run, cancelled)

    def _run_pipeline(self, run: _Run):
        if not run.message:
            logger.info(f"Empty message for {run.key}, replying with fallback")
            run.text = self.settings.fallback_reply
            run.provider_used = FALLBACK_PROVIDER
            run.advance(OrchestrationState.DONE)
            return

        run.classification = self._classify(run)
        run.profile = self._profile_snapshot(run)

        context, context_ok = self._load_context(run)
        run.advance(OrchestrationState.CONTEXT_LOADED)

        if run.message_id and context.has_turn(run.message_id):
            self._replay(run, context)
            return

        facts = self._lookup_knowledge(run)
        run.advance(OrchestrationState.KNOWLEDGE_ENRICHED)

        messages = self.composer.compose(run.message, context, run.classification, facts, run.profile)
        result = self.router.generate(
            messages,
            GenerationConstraints(timeout_s=self.settings.provider_timeout_s),
        )
        run.provider_used = result.provider_used
        run.success = result.success
        run.advance(OrchestrationState.PROVIDER_CALLED)

        if not result.success:
            run.tag(OutcomeTag.ALL_PROVIDERS_EXHAUSTED)
            if not context_ok:
                self._fail_safe(run)
                return

        run.text = self._personalize(run, result)
        run.advance(OrchestrationState.PERSONALIZED)

        if self.settings.memory_enabled and self._persist(run):
            run.advance(OrchestrationState.PERSISTED)

        run.advance(OrchestrationState.DONE)

    def _profile_snapshot(self, run: _Run) -> PersonalityProfile:
        profile, is_default = self.profiles.snapshot(run.key.tenant_id)
        if self.profiles.rejected(run.key.tenant_id):
            run.tag(OutcomeTag.INVALID_PERSONALITY_PROFILE)
        if is_default:
            logger.debug(f"No personality profile for tenant {run.key.tenant_id}, using system default")
        if not self.personality.supports_language(profile.language):
            run.tag(OutcomeTag.LANGUAGE_FALLBACK)
        return profile

    def _load_context(self, run: _Run) -> tuple[ConversationContext, bool]:
        """Read context with a bounded wait; fall back to an empty, memoryless one."""
        empty = ConversationContext(tenant_id=run.key.tenant_id, conversation_id=run.key.conversation_id)
        if not self.settings.memory_enabled:
            return empty, True

        future = self._context_io.submit(self.context_store.get, run.key)
        try:
            return future.result(timeout=self.settings.context_timeout_s), True
        except FutureTimeout:
            logger.warning(
                f"Context read for {run.key} exceeded {self.settings.context_timeout_s}s, continuing without memory"
            )
        except ContextStoreUnavailable as e:
            logger.warning(f"Context store unavailable for {run.key}, continuing without memory: {e}")
        run.tag(OutcomeTag.CONTEXT_STORE_UNAVAILABLE)
        return empty, False

    def _replay(self, run: _Run, context: ConversationContext):
        """Answer a redelivered message with the reply it already got, or not at all."""
        run.tag(OutcomeTag.DUPLICATE_MESSAGE)
        run.provider_used = REPLAY_PROVIDER
        reply_id = _reply_turn_id(run.message_id)
        previous = context.find_turn(reply_id)
        if previous is None and self.settings.memory_enabled:
            try:
                previous = self.context_store.find_turn(run.key, reply_id)
            except ContextStoreUnavailable as e:
                logger.warning(f"Reply lookup for {run.key} failed: {e}")

        if previous is not None:
            logger.info(f"Message {run.message_id} already answered for {run.key}, replaying reply")
            run.text = previous.text
            run.success = True
        else:
            logger.info(f"Message {run.message_id} already answered for {run.key}, reply no longer held; not resending")
            run.text = self.settings.fallback_reply
            run.suppressed = True
        run.advance(OrchestrationState.DONE)

    def _classify(self, run: _Run) -> Classification:
        try:
            return self.classifier.classify(run.message)
        except Exception as e:
            logger.warning(f"Classifier failed for {run.key}, using general/neutral: {e}", exc_info=True)
            run.tag(OutcomeTag.CLASSIFIER_FAILED)
            return Classification(intent=Intent.GENERAL, emotion=Emotion.NEUTRAL)

    def _lookup_knowledge(self, run: _Run) -> List[KnowledgeItem]:
        if self.knowledge is None:
            return []
        if not self.knowledge.is_cached(run.key.tenant_id):
            run.tag(OutcomeTag.KNOWLEDGE_CACHE_MISS)
        return self.knowledge.lookup(run.key.tenant_id, run.message, limit=self.settings.knowledge_top_k)

    def _personalize(self, run: _Run, result: GenerationResult) -> str:
        # The canned fallback is sent as configured
        if not result.success:
            return result.text
        try:
            return self.personality.apply(result.text, run.profile)
        except Exception as e:
            logger.warning(f"Personalization failed for {run.key}, sending provider text unstyled: {e}", exc_info=True)
            run.tag(OutcomeTag.PERSONALIZATION_FAILED)
            return result.text

    def _persist(self, run: _Run) -> bool:
        """Append the customer and assistant turns. Returns False if the store failed."""
        classification = run.classification
        customer = Turn(
            role=Role.CUSTOMER,
            text=run.message,
            timestamp=run.received_at,
            intent=classification.intent,
            emotion=classification.emotion,
            confidence=classification.intent_confidence,
        )
        if run.message_id:
            customer = customer.model_copy(update={"turn_id": run.message_id})
        assistant = Turn(role=Role.ASSISTANT, text=run.text)
        if run.message_id:
            assistant = assistant.model_copy(update={"turn_id": _reply_turn_id(run.message_id)})

        try:
            self.context_store.append_turns(run.key, [customer, assistant])
        except ContextStoreUnavailable as e:
            logger.warning(f"Turns for {run.key} not persisted: {e}")
            run.tag(OutcomeTag.CONTEXT_STORE_UNAVAILABLE)
            return False
        return True

    def _fail_safe(self, run: _Run):
        run.text = self.settings.apology_reply
        run.success = False
        run.provider_used = run.provider_used or FALLBACK_PROVIDER
        run.tag(OutcomeTag.FAILED_SAFE)
        run.advance(OrchestrationState.FAILED_SAFE)
        logger.error(f"Request for {run.key} failed safe with outcomes: {[o.value for o in run.outcomes]}")

    def _finish(self, run: _Run, cancelled: Optional[threading.Event]) -> Reply:
        delivered = not run.suppressed and not (cancelled is not None and cancelled.is_set())
        if not delivered and not run.suppressed:
            run.tag(OutcomeTag.REPLY_DISCARDED)
            logger.info(f"Caller for {run.key} went away, reply discarded")

        classification = run.classification
        event_fields = {}
        if classification is not None:
            event_fields = {"intent": classification.intent, "emotion": classification.emotion}
        event = AnalyticsEvent(
            tenant_id=run.key.tenant_id,
            conversation_id=run.key.conversation_id,
            latency_ms=(time.monotonic() - run.started) * 1000,
            provider_used=run.provider_used or FALLBACK_PROVIDER,
            success=run.success,
            outcomes=list(run.outcomes),
            profile_version=run.profile.version if run.profile else None,
            profile_tone=run.profile.tone.value if run.profile else None,
            state=run.state.value,
            **event_fields,
        )
        self.analytics.record(event)

        if self.settings.verbose:
            logger.info(
                f"{run.key} {run.state.value} via {event.provider_used} in {event.latency_ms:.0f}ms "
                f"outcomes={[o.value for o in run.outcomes]}"
            )

        return Reply(
            text=run.text or self.settings.apology_reply,
            state=run.state,
            delivered=delivered,
            provider_used=run.provider_used,
            event=event,
        )


def _reply_turn_id(message_id: str) -> str:
    return f"{message_id}:reply"
