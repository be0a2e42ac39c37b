"""
Natural-Language Adapter
========================

The model is a linguistic adapter only. It turns a question into query
parameters (parser role) and a verified result into prose (renderer
role). All numbers come from the deterministic query engine.

WHAT THIS LAYER MUST NOT DO:
- Compute or alter any count or percentage
- Let text leave the system without the witness guard (the escalation
  orchestrator applies it to everything a ProviderFallback returns)
- Raise on provider failure: failures become Error results or None
"""

from __future__ import annotations
from typing import Callable, Optional, Sequence
import json
import logging
import re

from evidence.contracts.base import Error, ErrorCode, Result
from evidence.contracts.query import QueryParameters, QueryResult
from evidence.contracts.records import AGE_GROUP_LABELS
from evidence.escalation import GenerativeFallback
from evidence.escalation.templates import EscalationContext

from .prompts import CanonicalPrompt
from .providers.base import InvocationParams, LLMProvider

logger = logging.getLogger(__name__)

_LANGUAGE_HINTS = (
    ("sv", re.compile(
        r"\b(för|och|är|med|hos|alla|vilka|finns|det|rapporter|biverkningar|dödsfall|kvinnor|män|äldre)\b",
        re.IGNORECASE,
    )),
    ("de", re.compile(
        r"\b(für|und|ist|mit|bei|alle|welche|gibt|das|berichte|nebenwirkungen|todesfälle|frauen|männer)\b",
        re.IGNORECASE,
    )),
    ("fr", re.compile(
        r"\b(pour|et|est|avec|chez|tous|quels|existe|des|rapports|effets|décès|femmes|hommes)\b",
        re.IGNORECASE,
    )),
)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

PARSE_PARAMS = InvocationParams(max_tokens=200)
RENDER_PARAMS = InvocationParams(max_tokens=500)

# drug -> reaction terms the corpus actually reports for it
ReactionVocabulary = Callable[[str], Sequence[str]]


def detect_language(text: str) -> str:
    """Keyword heuristic. First matching language wins, default English."""
    for language, pattern in _LANGUAGE_HINTS:
        if pattern.search(text):
            return language
    return "en"


def _choose(value, allowed: Sequence[str]) -> Optional[str]:
    if not isinstance(value, str):
        return None
    for candidate in allowed:
        if candidate.lower() == value.strip().lower():
            return candidate
    return None


class QuestionParser:
    """
    Parser role: question → QueryParameters.

    Whatever the model returns is checked against the fixed vocabularies.
    Values outside them are dropped rather than passed to the query engine.
    A reaction is kept only when reactions_for(drug) lists it, and is then
    replaced by the corpus spelling; without reactions_for it is dropped.
    """

    def __init__(self, provider: LLMProvider, params: InvocationParams = PARSE_PARAMS):
        self._provider = provider
        self._params = params

    def parse(
        self,
        question: str,
        known_drugs: Sequence[str],
        reactions_for: Optional[ReactionVocabulary] = None
    ) -> Result:
        prompt = CanonicalPrompt.parse(question, known_drugs)
        response = self._provider.invoke(prompt.prompt_text, self._params, system=prompt.system_text)
        if not response.success:
            return Result.failure(Error.create(
                ErrorCode.UNRECOGNIZED_QUESTION,
                f"Parser unavailable: {response.error_message}",
                provider_error=response.error_code.value,
            ))

        match = _JSON_OBJECT.search(response.content)
        if not match:
            return Result.failure(Error.create(
                ErrorCode.UNRECOGNIZED_QUESTION,
                "Parser reply contained no JSON object",
            ))
        try:
            data = json.loads(match.group(0))
        except ValueError:
            return Result.failure(Error.create(
                ErrorCode.UNRECOGNIZED_QUESTION,
                "Parser reply was not valid JSON",
            ))
        if not isinstance(data, dict):
            return Result.failure(Error.create(
                ErrorCode.UNRECOGNIZED_QUESTION,
                "Parser reply was not a JSON object",
            ))

        drug = _choose(data.get("drug"), known_drugs)
        if drug is None:
            return Result.failure(Error.create(
                ErrorCode.UNRECOGNIZED_QUESTION,
                "Could not identify a known drug in the question",
                available_drugs=", ".join(sorted(known_drugs)),
            ))

        serious = data.get("serious")
        reaction = None
        raw_reaction = data.get("reaction")
        if reactions_for is not None and isinstance(raw_reaction, str) and raw_reaction.strip():
            reaction = _choose(raw_reaction, reactions_for(drug))
        parameters = QueryParameters(
            drug=drug,
            sex=_choose(data.get("sex"), ("Male", "Female")),
            age_group=_choose(data.get("age_group"), AGE_GROUP_LABELS),
            serious=serious if isinstance(serious, bool) else None,
            reaction=reaction,
        )
        logger.debug("Parsed %r as %s (prompt %s)", question, parameters.to_dict(), prompt.prompt_hash[:12])
        return Result.success(parameters)


class KeywordParser:
    """
    Offline parser used when no model is configured.

    Only recognizes the drug, by whole-word match against the known list.
    Every other facet is left unset.
    """

    def parse(
        self,
        question: str,
        known_drugs: Sequence[str],
        reactions_for: Optional[ReactionVocabulary] = None
    ) -> Result:
        lowered = question.lower()
        for drug in sorted(known_drugs, key=lambda d: (-len(d), d)):
            if re.search(rf"\b{re.escape(drug.lower())}\b", lowered):
                return Result.success(QueryParameters(drug=drug))
        return Result.failure(Error.create(
            ErrorCode.UNRECOGNIZED_QUESTION,
            "Could not identify a known drug in the question",
            available_drugs=", ".join(sorted(known_drugs)),
        ))


class AnswerRenderer:
    """Renderer role: verified QueryResult → prose in the asker's language."""

    def __init__(self, provider: LLMProvider, params: InvocationParams = RENDER_PARAMS):
        self._provider = provider
        self._params = params

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    def render(self, result: QueryResult, language: Optional[str], question: str) -> Optional[str]:
        prompt = CanonicalPrompt.render(result, language, question)
        response = self._provider.invoke(prompt.prompt_text, self._params, system=prompt.system_text)
        if not response.success:
            logger.info(
                "Renderer %s gave no answer: %s",
                self._provider.provider_id,
                response.error_code.value,
            )
            return None
        return response.content


class ProviderFallback(GenerativeFallback):
    """Plugs an AnswerRenderer into the escalation orchestrator."""

    def __init__(self, renderer: AnswerRenderer):
        self._renderer = renderer

    @property
    def model_id(self) -> str:
        version = self._renderer.provider.get_version()
        return f"{version.provider_id}:{version.model_id}"

    def answer(self, question: str, context: EscalationContext) -> Optional[str]:
        if context.result is None:
            return None
        return self._renderer.render(context.result, context.language, question)
