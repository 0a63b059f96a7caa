"""Tests for RuleBasedClassifier."""

import pytest

from agents.classifier import RuleBasedClassifier
from schemas.context import Intent, Emotion


class TestRuleBasedClassifier:
    """Test intent and emotion classification."""

    def setup_method(self):
        """Set up test fixtures."""
        self.classifier = RuleBasedClassifier()

    def test_order_status_with_frustration(self):
        """Test the classic angry order-status message."""
        result = self.classifier.classify("where is my order?? I'm so frustrated")
        assert result.intent == Intent.ORDER_STATUS
        assert result.emotion == Emotion.ANGRY
        assert 0.0 < result.intent_confidence <= 1.0

    @pytest.mark.parametrize("text,intent", [
        ("Hello there", Intent.GREETING),
        ("I want to book an appointment for Friday", Intent.BOOKING),
        ("Thank you so much, I appreciate it", Intent.APPRECIATION),
        ("Goodbye, see you", Intent.GOODBYE),
        ("There is a problem, the size is wrong", Intent.COMPLAINT),
        ("I would like the price list of your products and services", Intent.PRODUCT_INQUIRY),
        ("Has my package shipped? Any tracking number?", Intent.ORDER_STATUS),
    ])
    def test_intents(self, text, intent):
        """Test keyword intents."""
        assert self.classifier.classify(text).intent == intent

    def test_unmatched_is_general_neutral(self):
        """Test defaults when nothing matches."""
        result = self.classifier.classify("lorem ipsum")
        assert result.intent == Intent.GENERAL
        assert result.emotion == Emotion.NEUTRAL
        assert result.intent_confidence == 0.5

    def test_worried(self):
        """Test worried emotion."""
        assert self.classifier.classify("I'm worried my parcel got lost").emotion == Emotion.WORRIED

    def test_shouting_reads_as_angry(self):
        """Test caps-lock messages without emotion words."""
        assert self.classifier.classify("WHY IS NOBODY ANSWERING").emotion == Emotion.ANGRY

    def test_deterministic(self):
        """Test that classification is repeatable."""
        text = "Do you have this item available? Thanks!"
        assert self.classifier.classify(text) == self.classifier.classify(text)
