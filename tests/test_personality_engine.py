"""Tests for PersonalityEngine."""

import logging

import pytest

from agents.personality import PersonalityEngine, MAX_EXCLAMATIONS
from schemas.personality import (
    PersonalityProfile,
    Tone,
    Formality,
    Industry,
    ResponseLength,
    EmotionalTone,
)


REPLY = "Hello! I cannot find your order yet. It is not shipped. Thanks for waiting!"


class TestPersonalityEngine:
    """Test deterministic personality transforms."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = PersonalityEngine()

    def profile(self, **kwargs):
        return PersonalityProfile(tenant_id="shop", **kwargs)

    def test_empathetic_acknowledgment_prepended(self):
        """Test that an empathetic profile always opens with an acknowledgment."""
        result = self.engine.apply("Your order is on its way.", self.profile(emotional_tone=EmotionalTone.EMPATHETIC))
        acknowledgments = self.engine.acknowledgments(EmotionalTone.EMPATHETIC, "en")
        assert any(result.startswith(phrase) for phrase in acknowledgments)
        assert "Your order is on its way" in result

    def test_deterministic(self):
        """Test that the same inputs give the same output."""
        profile = self.profile(tone=Tone.TRENDY, emotional_tone=EmotionalTone.ENTHUSIASTIC)
        assert self.engine.apply(REPLY, profile) == self.engine.apply(REPLY, profile)

    @pytest.mark.parametrize("tone", list(Tone))
    @pytest.mark.parametrize("emotional_tone", list(EmotionalTone))
    def test_applying_twice_equals_applying_once(self, tone, emotional_tone):
        """Test that re-applying a profile does not stack greetings, emoji or acknowledgments."""
        profile = self.profile(tone=tone, emotional_tone=emotional_tone)
        once = self.engine.apply(REPLY, profile)
        assert self.engine.apply(once, profile) == once

    def test_repeated_application_is_bounded(self):
        """Test that markers do not grow over many applications."""
        profile = self.profile(tone=Tone.FRIENDLY, emotional_tone=EmotionalTone.ENTHUSIASTIC)
        text = REPLY
        for _ in range(5):
            text = self.engine.apply(text, profile)
        assert text.count("😊") == 1
        assert text.count("!") <= MAX_EXCLAMATIONS

    def test_exclamations_capped(self):
        """Test the exclamation cap across core text and decorations."""
        profile = self.profile(tone=Tone.TRENDY, emotional_tone=EmotionalTone.ENTHUSIASTIC)
        result = self.engine.apply("Wow!!! This is amazing! Great! Super! Yes! Thanks!", profile)
        assert result.count("!") <= MAX_EXCLAMATIONS
        assert "!!" not in result

    def test_professional_formalizes(self):
        """Test formal substitutions for a professional tone."""
        profile = self.profile(tone=Tone.PROFESSIONAL, emotional_tone=EmotionalTone.CALM)
        result = self.engine.apply("We can't ship today, but we won't forget you.", profile)
        assert "cannot" in result
        assert "will not" in result
        assert "can't" not in result

    def test_friendly_casualizes(self):
        """Test casual substitutions for a friendly tone."""
        profile = self.profile(tone=Tone.FRIENDLY, emotional_tone=EmotionalTone.CONFIDENT)
        result = self.engine.apply("We cannot ship today.", profile)
        assert "We can't ship today" in result
        assert result.endswith("😊")

    def test_high_formality_overrides_friendly_register(self):
        """Test that formality picks the substitution table."""
        profile = self.profile(tone=Tone.FRIENDLY, formality=Formality.HIGH, emotional_tone=EmotionalTone.CALM)
        result = self.engine.apply("We can't ship today.", profile)
        assert "cannot" in result

    def test_greeting_added_only_for_greetings(self):
        """Test that tone greetings follow a greeting in the reply."""
        profile = self.profile(tone=Tone.PROFESSIONAL, emotional_tone=EmotionalTone.CALM)
        greetings = ["Good day.", "Hello, and welcome."]
        assert any(g in self.engine.apply("Hello, how can we help?", profile) for g in greetings)
        assert not any(g in self.engine.apply("Your parcel left our warehouse.", profile) for g in greetings)

    def test_industry_vocabulary(self):
        """Test healthcare vocabulary substitutions."""
        profile = self.profile(industry=Industry.HEALTHCARE, emotional_tone=EmotionalTone.CALM)
        result = self.engine.apply("We will fix the problem today.", profile)
        assert "address the concern" in result

    def test_terminology_does_not_compound(self):
        """Test that a branded term containing its generic word is applied once."""
        profile = self.profile(emotional_tone=EmotionalTone.CALM, terminology={"order": "order box"})
        once = self.engine.apply("Your order ships today.", profile)
        assert "order box" in once
        assert "order box box" not in self.engine.apply(once, profile)

    def test_brief_keeps_two_sentences(self):
        """Test brief response length."""
        profile = self.profile(
            tone=Tone.CARING,
            response_length=ResponseLength.BRIEF,
            emotional_tone=EmotionalTone.CALM,
        )
        result = self.engine.apply("One is here. Two is here. Three is here. Four is here.", profile)
        assert "Two is here." in result
        assert "Three" not in result

    def test_expert_prefix(self):
        """Test that the expert tone adds an expertise lead-in."""
        profile = self.profile(tone=Tone.EXPERT, emotional_tone=EmotionalTone.CONFIDENT)
        result = self.engine.apply("Use the blue cable.", profile)
        assert any(p in result for p in ["From our experience:", "Here is what we recommend:"])

    def test_indonesian_templates(self):
        """Test that a supported language uses its own templates."""
        profile = self.profile(language="id", emotional_tone=EmotionalTone.EMPATHETIC)
        result = self.engine.apply("Pesanan Anda sedang dikirim.", profile)
        acknowledgments = self.engine.acknowledgments(EmotionalTone.EMPATHETIC, "id")
        assert any(result.startswith(phrase) for phrase in acknowledgments)

    def test_unknown_language_falls_back_with_warning(self, caplog):
        """Test default-language fallback for an unsupported language."""
        profile = self.profile(language="fr", emotional_tone=EmotionalTone.EMPATHETIC)
        with caplog.at_level(logging.WARNING, logger="agents.personality"):
            result = self.engine.apply("Your order is on its way.", profile)
        assert any(result.startswith(p) for p in self.engine.acknowledgments(EmotionalTone.EMPATHETIC, "en"))
        assert "fr" in caplog.text
        assert self.engine.supports_language("fr") is False

    def test_empty_text_unchanged(self):
        """Test that blank text passes through."""
        assert self.engine.apply("   ", self.profile()) == "   "


class TestQuestionnaire:
    """Test profile creation from onboarding answers."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = PersonalityEngine()

    def test_formal_clinic(self):
        """Test a formal healthcare business with empathetic, patient traits."""
        profile = self.engine.from_questionnaire("clinic-1", {
            "communication_style": "formal",
            "response_length": "brief",
            "personality_traits": ["empathetic", "patient"],
            "business_type": "clinic",
            "language": "id",
            "custom_instructions": "Never give medical diagnoses.",
        })
        assert profile.tenant_id == "clinic-1"
        assert profile.tone == Tone.CARING
        assert profile.formality == Formality.HIGH
        assert profile.industry == Industry.HEALTHCARE
        assert profile.emotional_tone == EmotionalTone.EMPATHETIC
        assert profile.response_length == ResponseLength.BRIEF
        assert profile.language == "id"
        assert profile.custom_instructions == "Never give medical diagnoses."

    def test_enthusiastic_shop(self):
        """Test an enthusiastic retail business."""
        profile = self.engine.from_questionnaire("shop-1", {
            "communication_style": "enthusiastic",
            "business_type": "retail",
        })
        assert profile.tone == Tone.TRENDY
        assert profile.emotional_tone == EmotionalTone.ENTHUSIASTIC
        assert profile.industry == Industry.RETAIL

    def test_unknown_answers_use_defaults(self):
        """Test that unknown answers are ignored."""
        profile = self.engine.from_questionnaire("x", {"communication_style": "pirate", "business_type": "moon"})
        assert profile.tone == Tone.FRIENDLY
        assert profile.industry == Industry.GENERAL
        assert profile.language == "en"
