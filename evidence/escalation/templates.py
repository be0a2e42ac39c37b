"""
Level 1 Response Templates

Ordered, pre-vetted templates. Each matches question text with a regular
expression and derives its answer purely from an already computed
QueryResult. No I/O, no randomness.

Templates are vetted against the witness blocklist when authored (see
tests/escalation/test_templates.py); their output is not re-checked at
runtime.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional, Tuple
import re

from ..contracts.query import QueryResult
from ..domain.serialization import percent_of


@dataclass(frozen=True)
class EscalationContext:
    """What a level may draw on when answering."""
    result: Optional[QueryResult] = None
    language: str = "en"


@dataclass(frozen=True)
class ResponseTemplate:
    template_id: str
    language: str
    pattern: "re.Pattern[str]"
    render: Callable[[QueryResult], str]

    def matches(self, question: str) -> bool:
        return self.pattern.search(question) is not None

    def answer(self, question: str, context: EscalationContext) -> Optional[str]:
        if context.result is None or not self.matches(question):
            return None
        return self.render(context.result)


def _reaction_list_sv(result: QueryResult) -> str:
    if not result.reaction_summary:
        return f"Inga reaktioner rapporterades bland {result.total_matching} FAERS-rapporter för {result.parameters.drug}."
    top = ", ".join(f"{r.reaction} ({r.percent} %)" for r in result.reaction_summary[:3])
    return (
        f"Baserat på {result.total_matching} FAERS-rapporter för {result.parameters.drug} "
        f"är de vanligast rapporterade reaktionerna: {top}."
    )


def _serious_en(result: QueryResult) -> str:
    serious = result.seriousness["serious"]
    share = percent_of(serious, result.total_matching)
    return (
        f"{serious} of {result.total_matching} FAERS reports for {result.filter_description} "
        f"({share}%) are classified as serious."
    )


def _serious_sv(result: QueryResult) -> str:
    serious = result.seriousness["serious"]
    share = percent_of(serious, result.total_matching)
    return (
        f"{serious} av {result.total_matching} FAERS-rapporter för {result.parameters.drug} "
        f"({share} %) är klassade som allvarliga."
    )


def _fatal_en(result: QueryResult) -> str:
    return (
        f"{result.outcomes['Fatal']} reaction entries with a reported outcome of Fatal appear in "
        f"{result.total_matching} FAERS reports for {result.filter_description}."
    )


def _fatal_sv(result: QueryResult) -> str:
    return (
        f"{result.outcomes['Fatal']} reaktioner med rapporterat dödligt utfall förekommer i "
        f"{result.total_matching} FAERS-rapporter för {result.parameters.drug}."
    )


def _count_en(result: QueryResult) -> str:
    return (
        f"{result.total_matching} of {result.total_in_corpus} FAERS reports for {result.parameters.drug} "
        f"match ({result.match_percent}%): {result.filter_description}."
    )


def _count_sv(result: QueryResult) -> str:
    return (
        f"{result.total_matching} av {result.total_in_corpus} FAERS-rapporter för {result.parameters.drug} "
        f"matchar urvalet ({result.match_percent} %)."
    )


def _compile(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern, re.IGNORECASE)


DEFAULT_TEMPLATES: Tuple[ResponseTemplate, ...] = (
    ResponseTemplate("fatal_outcomes", "sv", _compile(r"dödsfall|dödlig"), _fatal_sv),
    ResponseTemplate("fatal_outcomes", "en", _compile(r"\b(fatal|deaths?)\b"), _fatal_en),
    ResponseTemplate("serious_share", "sv", _compile(r"allvarlig"), _serious_sv),
    ResponseTemplate("serious_share", "en", _compile(r"\bserious\b"), _serious_en),
    ResponseTemplate("adverse_event_count", "sv", _compile(r"hur många biverkningar|hur många rapporter"), _count_sv),
    ResponseTemplate("adverse_event_count", "en", _compile(r"how many (adverse events|reports)"), _count_en),
    ResponseTemplate("adverse_event_list", "sv", _compile(r"vilka biverkningar|lista biverkningar"), _reaction_list_sv),
    ResponseTemplate(
        "adverse_event_list", "en",
        _compile(r"what adverse events|which (adverse events|reactions)|list (adverse events|reactions)|most common"),
        lambda result: result.summary,
    ),
)
