"""Per-conversation bounded memory with summary folding and idle eviction."""

import sqlite3
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional, List

from errors import ContextStoreUnavailable
from schemas.context import ConversationKey
from .models import ConversationContext, ConversationSummary, Turn
from .summarizer import Summarizer, ExtractiveSummarizer
from .sqlite_store import SQLiteMemoryStore

logger = logging.getLogger(__name__)


class ContextStore:
    """
    Conversation memory keyed by (tenant, conversation).

    Keeps the last ``max_turns`` turns verbatim and folds older ones into the
    summary. Idle contexts lose their raw turns on eviction but keep summary
    and preferences, either in-process or in the optional SQLite backend.

    Writers are expected to hold the conversation's lock (see
    ``memory.locks.KeyedFifoLock``); the store's own lock only guards its maps.
    """

    def __init__(
        self,
        max_turns: int = 20,
        summarizer: Optional[Summarizer] = None,
        backend: Optional[SQLiteMemoryStore] = None,
        max_summary_chars: int = 1200,
        max_seen_ids: int = 500
    ):
        """
        Initialize context store.

        Args:
            max_turns: Turns kept verbatim per conversation
            summarizer: Folding policy (default: ExtractiveSummarizer)
            backend: Optional durable store for summaries, preferences and the turn log
            max_summary_chars: Summary cap for the default summarizer
            max_seen_ids: Recent turn ids remembered per conversation for duplicate detection
        """
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self.max_seen_ids = max(max_seen_ids, max_turns)
        self.summarizer = summarizer or ExtractiveSummarizer(max_chars=max_summary_chars)
        self.backend = backend
        self._contexts: dict[ConversationKey, ConversationContext] = {}
        self._retained: dict[ConversationKey, ConversationContext] = {}  # Evicted, turns dropped
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)

    def keys(self) -> List[ConversationKey]:
        """Keys of contexts currently held in memory."""
        with self._lock:
            return list(self._contexts)

    def get(self, key: ConversationKey) -> ConversationContext:
        """
        Get a copy of the context, creating an empty one on first use.

        Raises:
            ContextStoreUnavailable: If the backend cannot be read
        """
        return self._ensure(key).model_copy(deep=True)

    def get_summary(self, key: ConversationKey) -> ConversationSummary:
        """Get a copy of the rolling summary."""
        return self._ensure(key).summary.model_copy(deep=True)

    def append_turn(self, key: ConversationKey, turn: Turn) -> bool:
        """
        Append one turn. See ``append_turns``.

        Returns:
            True if the turn was appended
        """
        return self.append_turns(key, [turn]) == 1

    def append_turns(self, key: ConversationKey, turns: List[Turn]) -> int:
        """
        Append turns as one unit, folding the oldest excess turns into the summary.

        The backend is written before memory, so a failed write leaves the
        context as it was. Turns whose id was already appended are skipped,
        even after they were folded, so retries are safe. A turn not strictly
        later than the previous one is moved to 1µs after it.

        Returns:
            Number of turns appended

        Raises:
            ContextStoreUnavailable: If the backend cannot be written
        """
        self._ensure(key)
        with self._lock:
            ctx = self._contexts.get(key)
            if ctx is None:
                # Evicted between _ensure and here; start from the retained copy
                ctx = self._reinstate(key)
            last = ctx.last_turn_at
            pending = []
            for turn in turns:
                if ctx.has_turn(turn.turn_id) or any(t.turn_id == turn.turn_id for t in pending):
                    logger.debug(f"Turn {turn.turn_id} already recorded for {key}, skipping")
                    continue
                if last is not None and turn.timestamp <= last:
                    turn = turn.model_copy(update={"timestamp": last + timedelta(microseconds=1)})
                pending.append(turn)
                last = turn.timestamp

        if not pending:
            return 0
        if self.backend:
            inserted = set(self._backend_call(self.backend.add_turns, key, pending))
            skipped = [t.turn_id for t in pending if t.turn_id not in inserted]
            if skipped:
                logger.debug(f"Turns {skipped} already logged for {key}, skipping")
            pending = [t for t in pending if t.turn_id in inserted]
            if not pending:
                return 0

        folded = False
        with self._lock:
            ctx = self._contexts.get(key) or self._reinstate(key)
            ctx.turns.extend(pending)
            ctx.last_turn_at = pending[-1].timestamp
            ctx.last_write = datetime.now()
            ctx.seen_turn_ids.extend(t.turn_id for t in pending)
            del ctx.seen_turn_ids[:-self.max_seen_ids]

            excess = len(ctx.turns) - self.max_turns
            if excess > 0:
                evicted, ctx.turns = ctx.turns[:excess], ctx.turns[excess:]
                ctx.summary = self.summarizer.fold(ctx.summary, evicted)
                folded = True
                logger.debug(f"Folded {len(evicted)} turn(s) into summary for {key}")

            summary = ctx.summary.model_copy(deep=True)
            preferences = dict(ctx.preferences)

        if self.backend and folded:
            try:
                self._backend_call(self.backend.save_context, key, summary, preferences)
            except ContextStoreUnavailable as e:
                # Turns are logged; the summary catches up on the next fold or eviction
                logger.error(f"Summary for {key} not persisted after folding: {e}")
        return len(pending)

    def find_turn(self, key: ConversationKey, turn_id: str) -> Optional[Turn]:
        """
        Look up a turn by id, in the verbatim window or else the backend log.

        Raises:
            ContextStoreUnavailable: If the backend cannot be read
        """
        ctx = self._ensure(key)
        with self._lock:
            turn = ctx.find_turn(turn_id)
            if turn is not None:
                return turn.model_copy()
        if self.backend:
            return self._backend_call(self.backend.get_turn, key, turn_id)
        return None

    def set_preference(self, key: ConversationKey, name: str, value: str):
        """
        Record a customer preference.

        Raises:
            ContextStoreUnavailable: If the backend cannot be written
        """
        self._ensure(key)
        with self._lock:
            ctx = self._contexts.get(key) or self._reinstate(key)
            ctx.preferences[name] = value
            ctx.last_write = datetime.now()
            summary = ctx.summary.model_copy(deep=True)
            preferences = dict(ctx.preferences)

        if self.backend:
            self._backend_call(self.backend.save_context, key, summary, preferences)

    def evict_idle(
        self,
        older_than: float,
        now: Optional[datetime] = None,
        skip: Optional[Callable[[ConversationKey], bool]] = None
    ) -> int:
        """
        Drop raw turns of contexts with no writes for ``older_than`` seconds.

        Remaining turns are folded into the summary first, so nothing but the
        verbatim text is lost. Keys for which ``skip`` returns True are left alone.

        Returns:
            Number of contexts evicted
        """
        cutoff = (now or datetime.now()) - timedelta(seconds=older_than)
        evicted = []
        with self._lock:
            for key, ctx in list(self._contexts.items()):
                last = ctx.last_write or ctx.created_at
                if last >= cutoff or (skip is not None and skip(key)):
                    continue
                if ctx.turns:
                    ctx.summary = self.summarizer.fold(ctx.summary, ctx.turns)
                ctx.turns = []
                del self._contexts[key]
                if not self.backend:
                    self._retained[key] = ctx
                evicted.append((key, ctx.summary.model_copy(deep=True), dict(ctx.preferences)))

        if self.backend:
            for key, summary, preferences in evicted:
                try:
                    self._backend_call(self.backend.save_context, key, summary, preferences)
                except ContextStoreUnavailable as e:
                    logger.error(f"Summary for {key} not persisted on eviction: {e}")

        if evicted:
            logger.info(f"Evicted {len(evicted)} idle conversation context(s)")
        return len(evicted)

    def _ensure(self, key: ConversationKey) -> ConversationContext:
        with self._lock:
            ctx = self._contexts.get(key)
            if ctx is not None:
                return ctx
            if key in self._retained or not self.backend:
                return self._reinstate(key)

        # Backend read happens outside the map lock
        loaded = self._backend_call(self.backend.load_context, key)
        ctx = ConversationContext(tenant_id=key.tenant_id, conversation_id=key.conversation_id)
        if loaded:
            ctx.summary, ctx.preferences = loaded
        recent = self._backend_call(self.backend.get_recent_turns, key, self.max_seen_ids)
        if recent:
            ctx.seen_turn_ids = [t.turn_id for t in recent]
            ctx.last_turn_at = recent[-1].timestamp
        with self._lock:
            return self._contexts.setdefault(key, ctx)

    def _reinstate(self, key: ConversationKey) -> ConversationContext:
        """Move a retained context back into memory, or create an empty one. Caller holds the lock."""
        ctx = self._retained.pop(key, None)
        if ctx is None:
            ctx = ConversationContext(tenant_id=key.tenant_id, conversation_id=key.conversation_id)
        self._contexts[key] = ctx
        return ctx

    @staticmethod
    def _backend_call(fn, *args):
        try:
            return fn(*args)
        except sqlite3.Error as e:
            raise ContextStoreUnavailable(f"Memory backend error: {e}") from e
