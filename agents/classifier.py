"""Rule-based intent and emotion classification of customer messages."""

import re
from typing import List, Tuple

from schemas.context import Intent, Emotion, Classification


# (label, weight, patterns); earlier entries win ties
IntentRule = Tuple[Intent, float, List[str]]
EmotionRule = Tuple[Emotion, float, List[str]]


class RuleBasedClassifier:
    """Classifies messages with keyword patterns. Never calls a provider."""

    # Hits needed for a rule to reach its full weight
    SATURATION = 2

    def __init__(self):
        """Initialize classifier with pattern tables."""
        self.intent_rules: List[IntentRule] = [
            (Intent.ORDER_STATUS, 0.9, [
                r"where('s| is) my (order|package|parcel|delivery)",
                r"\border\b",
                r"\bdeliver(y|ed)?\b",
                r"\btracking\b",
                r"\bshipp(ed|ing)\b",
                r"\barrived?\b",
            ]),
            (Intent.GREETING, 0.9, [
                r"\bhello\b", r"\bhi\b", r"\bhey\b",
                r"good (morning|afternoon|evening)",
            ]),
            (Intent.GOODBYE, 0.9, [
                r"\bbye\b", r"\bgoodbye\b", r"see you", r"\bfarewell\b", r"\blater\b",
            ]),
            (Intent.BOOKING, 0.85, [
                r"\bbook(ing)?\b", r"\breserv(e|ation)\b", r"\bschedule\b",
                r"\bappointment\b", r"\bmeeting\b",
            ]),
            (Intent.APPRECIATION, 0.85, [
                r"\bthank(s| you)?\b", r"\bappreciate\b", r"\bgrateful\b", r"\bawesome\b", r"\bgreat\b",
            ]),
            (Intent.COMPLAINT, 0.8, [
                r"\bproblem\b", r"\bissue\b", r"\bwrong\b", r"\berror\b",
                r"\bcomplain(t)?\b", r"\bdisappointed\b",
            ]),
            (Intent.HELP, 0.8, [
                r"\bhelp\b", r"\bassist\b", r"\bsupport\b", r"\bguide\b", r"\bexplain\b",
            ]),
            (Intent.QUESTION, 0.8, [
                r"\bwhat\b", r"\bhow\b", r"\bwhen\b", r"\bwhere\b", r"\bwhy\b", r"\bwho\b",
                r"\bwhich\b", r"\?",
            ]),
            (Intent.PRODUCT_INQUIRY, 0.75, [
                r"\bproducts?\b", r"\bitems?\b", r"\bservices?\b", r"\bprices?\b",
                r"\bcost\b", r"\bavailable\b", r"\bin stock\b",
            ]),
        ]
        self.emotion_rules: List[EmotionRule] = [
            (Emotion.ANGRY, 0.85, [
                r"\bangry\b", r"\bmad\b", r"\bfurious\b", r"\birritated\b", r"\bannoyed\b",
                r"\bfrustrat(ed|ing)\b", r"\bridiculous\b",
            ]),
            (Emotion.WORRIED, 0.8, [
                r"\bworried\b", r"\bconcerned\b", r"\bnervous\b", r"\banxious\b",
                r"\bscared\b", r"\bafraid\b",
            ]),
            (Emotion.SAD, 0.8, [
                r"\bsad\b", r"\bdisappointed\b", r"\bupset\b", r"\bunhappy\b", r"\bdepressed\b",
            ]),
            (Emotion.EXCITED, 0.8, [
                r"\bexcited\b", r"\bthrilled\b", r"\bamazing\b", r"\bincredible\b", r"\bwow\b",
            ]),
            (Emotion.HAPPY, 0.8, [
                r"\bhappy\b", r"\bgreat\b", r"\bawesome\b", r"\bwonderful\b",
                r"\bexcellent\b", r"\bfantastic\b", r"\blove\b",
            ]),
            (Emotion.NEUTRAL, 0.6, [
                r"\bokay\b", r"\bok\b", r"\bfine\b", r"\balright\b", r"\bsure\b",
            ]),
        ]

    def classify(self, text: str) -> Classification:
        """
        Classify a message.

        Args:
            text: Normalized customer message

        Returns:
            Classification with intent, emotion and their confidences
        """
        text_lower = text.lower()
        intent, intent_confidence = self._best_match(text_lower, self.intent_rules, Intent.GENERAL)
        emotion, emotion_confidence = self._best_match(text_lower, self.emotion_rules, Emotion.NEUTRAL)

        # Shouting reads as anger when nothing more specific matched
        if emotion == Emotion.NEUTRAL and self._is_shouting(text):
            emotion, emotion_confidence = Emotion.ANGRY, 0.6

        return Classification(
            intent=intent,
            intent_confidence=intent_confidence,
            emotion=emotion,
            emotion_confidence=emotion_confidence,
        )

    def _best_match(self, text_lower: str, rules, default) -> Tuple:
        best, best_score = default, 0.0
        for label, weight, patterns in rules:
            hits = sum(1 for pattern in patterns if re.search(pattern, text_lower))
            score = weight * min(1.0, hits / self.SATURATION)
            if score > best_score:
                best, best_score = label, score
        if best_score == 0.0:
            return default, 0.5
        return best, round(best_score, 3)

    @staticmethod
    def _is_shouting(text: str) -> bool:
        letters = [c for c in text if c.isalpha()]
        if len(letters) < 6:
            return text.count("!") >= 3
        return sum(1 for c in letters if c.isupper()) / len(letters) > 0.7 or text.count("!") >= 3
