"""Folding of evicted turns into the rolling conversation summary."""

from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime
from typing import List

from schemas.context import Intent, Emotion
from .models import ConversationSummary, Role, Turn


class Summarizer(ABC):
    """Folds a slice of evicted turns into an existing summary."""

    @abstractmethod
    def fold(self, summary: ConversationSummary, evicted: List[Turn]) -> ConversationSummary:
        """
        Fold newly evicted turns into the summary.

        Implementations must only look at ``evicted`` plus the existing
        summary, never at the whole history.
        """
        pass


class ExtractiveSummarizer(Summarizer):
    """
    Templated compression: one segment per folded slice.

    A segment records the dominant intent (topic), the dominant emotion
    (sentiment), whether the slice ended with the assistant answering, and a
    short excerpt of the first customer message, e.g.
    ``[order_status|worried|resolved] "Where is my order?"``.
    """

    EXCERPT_CHARS = 60
    MAX_KEY_TOPICS = 10

    def __init__(self, max_chars: int = 1200):
        """
        Args:
            max_chars: Cap on the summary text; oldest segments are dropped beyond it
        """
        self.max_chars = max_chars

    def fold(self, summary: ConversationSummary, evicted: List[Turn]) -> ConversationSummary:
        if not evicted:
            return summary

        customer_turns = [t for t in evicted if t.role == Role.CUSTOMER]
        topic = self._dominant([t.intent for t in customer_turns if t.intent], Intent.GENERAL)
        sentiment = self._dominant([t.emotion for t in customer_turns if t.emotion], Emotion.NEUTRAL)
        resolved = evicted[-1].role == Role.ASSISTANT

        excerpt = ""
        if customer_turns:
            excerpt = " ".join(customer_turns[0].text.split())
            if len(excerpt) > self.EXCERPT_CHARS:
                excerpt = excerpt[: self.EXCERPT_CHARS - 3].rstrip() + "..."
            excerpt = f' "{excerpt}"'

        segment = f"[{topic.value}|{sentiment.value}|{'resolved' if resolved else 'unresolved'}]{excerpt}"

        segments = summary.segments + [segment]
        while len(" ".join(segments)) > self.max_chars and len(segments) > 1:
            segments.pop(0)
        if len(segments[0]) > self.max_chars:
            segments[0] = segments[0][: self.max_chars]

        key_topics = [t for t in summary.key_topics if t != topic.value] + [topic.value]

        return ConversationSummary(
            segments=segments,
            key_topics=key_topics[-self.MAX_KEY_TOPICS:],
            folded_turns=summary.folded_turns + len(evicted),
            last_updated=datetime.now(),
        )

    @staticmethod
    def _dominant(values, default):
        if not values:
            return default
        # Counter.most_common keeps first-seen order on ties
        return Counter(values).most_common(1)[0][0]
