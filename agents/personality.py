"""Personality Engine: applies a tenant's profile to a generated reply."""

import re
import hashlib
import logging
from pathlib import Path
from typing import Optional, Any, List, Tuple

import yaml

from schemas.personality import (
    PersonalityProfile,
    Tone,
    Formality,
    Industry,
    CommunicationStyle,
    ResponseLength,
    EmotionalTone,
)
from memory.profile_store import validate_profile

logger = logging.getLogger(__name__)

MAX_EXCLAMATIONS = 3
DEFAULT_TEMPLATES = Path(__file__).resolve().parent.parent / "config" / "languages.yaml"

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_PERIOD_AT_END = re.compile(r"\.(?=\s|$)")
_EXCLAMATION_RUN = re.compile(r"!{2,}")
_SENTENCE_LIMITS = {ResponseLength.BRIEF: 2, ResponseLength.MODERATE: 5}

# Questionnaire answer -> profile fields
COMMUNICATION_STYLE_MAP = {
    "formal": {
        "communication_style": CommunicationStyle.FORMAL,
        "tone": Tone.PROFESSIONAL,
        "formality": Formality.HIGH,
    },
    "friendly": {
        "communication_style": CommunicationStyle.FRIENDLY,
        "tone": Tone.FRIENDLY,
        "formality": Formality.MEDIUM,
    },
    "casual": {
        "communication_style": CommunicationStyle.CASUAL,
        "tone": Tone.FRIENDLY,
        "formality": Formality.LOW,
    },
    "enthusiastic": {
        "communication_style": CommunicationStyle.ENTHUSIASTIC,
        "tone": Tone.TRENDY,
        "formality": Formality.LOW,
        "emotional_tone": EmotionalTone.ENTHUSIASTIC,
    },
}

RESPONSE_LENGTH_MAP = {
    "brief": ResponseLength.BRIEF,
    "short": ResponseLength.BRIEF,
    "moderate": ResponseLength.MODERATE,
    "medium": ResponseLength.MODERATE,
    "detailed": ResponseLength.DETAILED,
    "adaptive": ResponseLength.ADAPTIVE,
}

# First matching trait decides the emotional tone
TRAIT_EMOTIONAL_TONES = [
    ("empathetic", EmotionalTone.EMPATHETIC),
    ("patient", EmotionalTone.CALM),
    ("confident", EmotionalTone.CONFIDENT),
    ("enthusiastic", EmotionalTone.ENTHUSIASTIC),
]

BUSINESS_TYPE_MAP = {
    "retail": Industry.RETAIL,
    "ecommerce": Industry.RETAIL,
    "shop": Industry.RETAIL,
    "restaurant": Industry.HOSPITALITY,
    "hotel": Industry.HOSPITALITY,
    "hospitality": Industry.HOSPITALITY,
    "clinic": Industry.HEALTHCARE,
    "healthcare": Industry.HEALTHCARE,
    "finance": Industry.FINANCE,
    "bank": Industry.FINANCE,
    "technology": Industry.TECHNOLOGY,
    "software": Industry.TECHNOLOGY,
    "education": Industry.EDUCATION,
    "school": Industry.EDUCATION,
}


class PersonalityEngine:
    """
    Rewrites replies in a tenant's voice.

    ``apply`` is a pure function of (text, profile): the same inputs always
    give the same output and applying a profile twice gives the same result
    as applying it once. Decorations (greetings, acknowledgments, closings,
    emoji) are stripped before the core text is transformed and re-added
    afterwards, so they never stack.
    """

    def __init__(self, templates_path: Optional[str] = None, default_language: str = "en"):
        """
        Initialize engine.

        Args:
            templates_path: Path to language templates YAML (default: config/languages.yaml)
            default_language: Language used when a profile's language has no templates
        """
        path = Path(templates_path) if templates_path else DEFAULT_TEMPLATES
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self.templates: dict[str, dict[str, Any]] = data.get("languages") or {}
        if default_language not in self.templates:
            default_language = data.get("default", "en")
        if default_language not in self.templates:
            raise ValueError(f"No templates for default language '{default_language}' in {path}")
        self.default_language = default_language

        self._tone_handlers = {
            Tone.PROFESSIONAL: self._no_prefix,
            Tone.FRIENDLY: self._no_prefix,
            Tone.CARING: self._no_prefix,
            Tone.TRENDY: self._no_prefix,
            Tone.EXPERT: self._expert_prefix,
        }
        self._emotional_handlers = {
            EmotionalTone.ENTHUSIASTIC: self._make_enthusiastic,
            EmotionalTone.CALM: self._unchanged,
            EmotionalTone.EMPATHETIC: self._unchanged,
            EmotionalTone.CONFIDENT: self._unchanged,
        }

        logger.info(f"Personality templates loaded for languages: {', '.join(sorted(self.templates))}")

    def supports_language(self, language: str) -> bool:
        """Whether templates exist for ``language``."""
        return language in self.templates

    def resolve_language(self, language: Optional[str]) -> str:
        """Language whose templates will be used, logging a warning on fallback."""
        if language and language in self.templates:
            return language
        logger.warning(
            f"No personality templates for language '{language}', "
            f"using '{self.default_language}'"
        )
        return self.default_language

    def acknowledgments(self, emotional_tone: EmotionalTone, language: Optional[str] = None) -> List[str]:
        """Acknowledgment phrases for an emotional tone."""
        lang = self.templates.get(language or self.default_language) or self.templates[self.default_language]
        return list((lang.get("acknowledgments") or {}).get(emotional_tone.value, []))

    def apply(self, text: str, profile: PersonalityProfile) -> str:
        """
        Apply a personality profile to a reply.

        Args:
            text: Reply text from the provider
            profile: Tenant profile snapshot for this request

        Returns:
            Personalized reply
        """
        if not text or not text.strip():
            return text

        lang = self.templates[self.resolve_language(profile.language)]
        raw = text.strip()
        core = self._unwrap(raw, lang)
        if not core:
            return self._cap_exclamations(raw, MAX_EXCLAMATIONS)

        core = self._substitute(core, lang.get(self._register(profile)) or {})
        core = self._emotional_handlers[profile.emotional_tone](core, lang)
        core = self._substitute(core, (lang.get("industry_vocabulary") or {}).get(profile.industry.value, {}))
        core = self._substitute(core, profile.terminology)
        core = self._trim(core, profile.response_length)
        core = self._unwrap(core, lang)
        if not core:
            return self._cap_exclamations(raw, MAX_EXCLAMATIONS)

        seed = re.sub(r"\W+", "", core.lower())
        prefix, suffix = self._decorations(raw, core, profile, lang, seed)

        budget = MAX_EXCLAMATIONS - sum(part.count("!") for part in prefix + suffix)
        core = self._cap_exclamations(core, max(budget, 0))

        return " ".join(prefix + [core] + suffix)

    def from_questionnaire(self, tenant_id: str, answers: dict[str, Any]) -> PersonalityProfile:
        """
        Build a profile from onboarding questionnaire answers.

        Unknown answer values are ignored and the field keeps its default.

        Raises:
            InvalidPersonalityProfile: If the resulting profile is invalid
        """
        fields: dict[str, Any] = {"tenant_id": tenant_id}

        style = str(answers.get("communication_style", "")).lower()
        if style in COMMUNICATION_STYLE_MAP:
            fields.update(COMMUNICATION_STYLE_MAP[style])
        elif style:
            logger.debug(f"Unknown communication style '{style}' for tenant {tenant_id}")

        length = str(answers.get("response_length", "")).lower()
        if length in RESPONSE_LENGTH_MAP:
            fields["response_length"] = RESPONSE_LENGTH_MAP[length]

        traits = [str(t).lower() for t in answers.get("personality_traits") or []]
        for trait, emotional_tone in TRAIT_EMOTIONAL_TONES:
            if trait in traits:
                fields.setdefault("emotional_tone", emotional_tone)
                break
        if "knowledgeable" in traits and style in ("", "formal"):
            fields["tone"] = Tone.EXPERT
        elif "empathetic" in traits and "patient" in traits and style != "enthusiastic":
            fields["tone"] = Tone.CARING

        business = str(answers.get("business_type", "")).lower()
        fields["industry"] = BUSINESS_TYPE_MAP.get(business, Industry.GENERAL)

        fields["language"] = answers.get("language") or self.default_language
        fields["custom_instructions"] = str(answers.get("custom_instructions") or "")
        if answers.get("terminology"):
            fields["terminology"] = dict(answers["terminology"])

        return validate_profile(fields)

    # Core transforms

    @staticmethod
    def _register(profile: PersonalityProfile) -> Optional[str]:
        """Substitution table for the profile's formality."""
        if profile.formality == Formality.HIGH:
            return "formal_substitutions"
        if profile.formality == Formality.LOW:
            return "casual_substitutions"
        if profile.tone == Tone.PROFESSIONAL:
            return "formal_substitutions"
        if profile.tone in (Tone.FRIENDLY, Tone.TRENDY):
            return "casual_substitutions"
        return None

    def _make_enthusiastic(self, core: str, lang: dict) -> str:
        core = self._substitute(core, lang.get("enthusiastic_substitutions") or {})
        return _PERIOD_AT_END.sub("!", core)

    @staticmethod
    def _unchanged(core: str, lang: dict) -> str:
        return core

    @staticmethod
    def _substitute(text: str, mapping: dict[str, str]) -> str:
        """
        Whole-word, case-insensitive replacement.

        Existing occurrences of a replacement are left alone, so a mapping
        whose target contains its source does not grow on every pass.
        """
        for source, target in mapping.items():
            if not source or source.lower() == target.lower():
                continue
            pattern = re.compile(rf"(?<!\w){re.escape(source)}(?!\w)", re.IGNORECASE)
            protected = re.compile(rf"((?<!\w){re.escape(target)}(?!\w))")
            pieces = protected.split(text)
            # Odd indices are existing targets
            text = "".join(
                piece if i % 2 else pattern.sub(lambda m: _match_case(m.group(0), target), piece)
                for i, piece in enumerate(pieces)
            )
        return text

    @staticmethod
    def _trim(core: str, length: ResponseLength) -> str:
        limit = _SENTENCE_LIMITS.get(length)
        if limit is None:
            return core
        sentences = _SENTENCE_END.split(core)
        if len(sentences) <= limit:
            return core
        return " ".join(sentences[:limit])

    @staticmethod
    def _cap_exclamations(text: str, limit: int) -> str:
        """Collapse '!!' runs, then turn every '!' after the first ``limit`` into '.'."""
        text = _EXCLAMATION_RUN.sub("!", text)
        seen = 0
        chars = []
        for c in text:
            if c == "!":
                seen += 1
                if seen > limit:
                    c = "."
            chars.append(c)
        return "".join(chars)

    # Decorations

    def _decorations(
        self, raw: str, core: str, profile: PersonalityProfile, lang: dict, seed: str
    ) -> Tuple[List[str], List[str]]:
        """Phrases to put before and after the core text."""
        tone = profile.tone.value
        prefix: List[str] = []
        suffix: List[str] = []

        ack = _pick((lang.get("acknowledgments") or {}).get(profile.emotional_tone.value), seed, "ack")
        if ack:
            prefix.append(ack)
        if self._mentions(raw, lang.get("greeting_keywords")):
            greeting = _pick((lang.get("greetings") or {}).get(tone), seed, "greeting")
            if greeting:
                prefix.append(greeting)
        prefix.extend(self._tone_handlers[profile.tone](lang, seed))

        if self._mentions(raw, lang.get("closing_keywords")):
            closing = _pick((lang.get("closings") or {}).get(tone), seed, "closing")
            if closing:
                suffix.append(closing)
        suffix.extend((lang.get("suffixes") or {}).get(tone) or [])

        core_lower = core.lower()
        prefix = [p for p in prefix if p.lower() not in core_lower]
        suffix = [s for s in suffix if s.lower() not in core_lower]
        return prefix, suffix

    def _expert_prefix(self, lang: dict, seed: str) -> List[str]:
        phrase = _pick((lang.get("prefixes") or {}).get(Tone.EXPERT.value), seed, "prefix")
        return [phrase] if phrase else []

    @staticmethod
    def _no_prefix(lang: dict, seed: str) -> List[str]:
        return []

    @staticmethod
    def _mentions(text: str, keywords: Optional[List[str]]) -> bool:
        text_lower = text.lower()
        return any(re.search(rf"\b{re.escape(k)}\b", text_lower) for k in keywords or [])

    @staticmethod
    def _unwrap(text: str, lang: dict) -> str:
        """Strip decoration phrases of any tone from both ends."""
        leading, trailing = [], []
        for key in ("greetings", "acknowledgments", "prefixes"):
            for phrases in (lang.get(key) or {}).values():
                leading.extend(phrases or [])
        for key in ("closings", "suffixes"):
            for phrases in (lang.get(key) or {}).values():
                trailing.extend(phrases or [])
        leading.sort(key=len, reverse=True)
        trailing.sort(key=len, reverse=True)

        stripped = True
        while stripped and text:
            stripped = False
            for phrase in leading:
                if text.startswith(phrase):
                    text = text[len(phrase):].lstrip()
                    stripped = True
                    break
            for phrase in trailing:
                if text.endswith(phrase):
                    text = text[: -len(phrase)].rstrip()
                    stripped = True
                    break
        return text


def _pick(options: Optional[List[str]], seed: str, slot: str) -> Optional[str]:
    """Stable choice among ``options`` for a given seed."""
    if not options:
        return None
    digest = hashlib.md5(f"{slot}:{seed}".encode("utf-8")).hexdigest()
    return options[int(digest, 16) % len(options)]


def _match_case(original: str, replacement: str) -> str:
    if original.isupper() and len(original) > 1:
        return replacement.upper()
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement
