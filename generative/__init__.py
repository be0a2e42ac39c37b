"""
Generative Adapter Package

Lower-trust text sources for the escalation orchestrator: a question
parser and an answer renderer on top of swappable LLM providers.

Nothing here computes evidence. Every number shown to a user comes from
the evidence package; this package only phrases it.
"""

from .language import (
    detect_language,
    QuestionParser,
    KeywordParser,
    AnswerRenderer,
    ProviderFallback,
)
from .prompts import CanonicalPrompt, LANGUAGE_NAMES

__all__ = [
    'detect_language',
    'QuestionParser',
    'KeywordParser',
    'AnswerRenderer',
    'ProviderFallback',
    'CanonicalPrompt',
    'LANGUAGE_NAMES',
]
