"""Agents for the conversation pipeline."""

from .classifier import RuleBasedClassifier
from .composer import PromptComposer
from .personality import PersonalityEngine, MAX_EXCLAMATIONS

__all__ = [
    "RuleBasedClassifier",
    "PromptComposer",
    "PersonalityEngine",
    "MAX_EXCLAMATIONS",
]
