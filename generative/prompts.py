"""
Canonical Prompt Generation
===========================

Pure functions producing the parser and renderer prompts.

INVARIANT: Same inputs → same prompt_hash
No UI context, no runtime state. The renderer prompt is built only from
the verified result, never from anything the model said earlier.
"""

from __future__ import annotations
from dataclasses import dataclass
import json
from typing import Optional, Sequence

from evidence.contracts.query import QueryResult
from evidence.contracts.records import AGE_GROUP_LABELS
from evidence.domain.serialization import sha256_hex

LANGUAGE_NAMES = {
    "en": "English",
    "sv": "Swedish",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "nl": "Dutch",
    "da": "Danish",
    "no": "Norwegian",
    "fi": "Finnish",
}


@dataclass(frozen=True)
class CanonicalPrompt:
    """
    Frozen prompt with hash for deterministic tracking.

    INVARIANT: Same task_type + inputs → same prompt_hash
    """
    task_type: str
    system_text: str
    prompt_text: str
    prompt_hash: str

    @staticmethod
    def _create(task_type: str, system_text: str, prompt_text: str) -> CanonicalPrompt:
        return CanonicalPrompt(
            task_type=task_type,
            system_text=system_text,
            prompt_text=prompt_text,
            prompt_hash=sha256_hex(f"{task_type}\n{system_text}\n{prompt_text}"),
        )

    @staticmethod
    def parse(question: str, known_drugs: Sequence[str]) -> CanonicalPrompt:
        return CanonicalPrompt._create("parse", PromptTemplates.parser_system(known_drugs), question)

    @staticmethod
    def render(result: QueryResult, language: Optional[str], question: str) -> CanonicalPrompt:
        return CanonicalPrompt._create(
            "render",
            PromptTemplates.renderer_system(result, language),
            f'Formulate an answer to: "{question}"',
        )


class PromptTemplates:
    """Prompt texts. System prompts are always English."""

    @staticmethod
    def parser_system(known_drugs: Sequence[str]) -> str:
        age_groups = ", ".join(f'"{label}"' for label in AGE_GROUP_LABELS)
        return f"""You are a PARSER for medical queries. Your ONLY task is to extract structured parameters.

ALLOWED PARAMETERS:
- drug: one of [{', '.join(sorted(known_drugs))}]
- sex: "Male" or "Female" (or null)
- age_group: {age_groups} (or null)
- serious: true (serious), false (non-serious), or null (all)
- reaction: specific reaction if mentioned (or null)

RULES:
- Respond ONLY with JSON
- No explanations
- No medical interpretation
- If drug doesn't match the list, set drug: null
- If anything is unclear, set null

EXAMPLES:
Question: "What are the most common side effects for metformin in women over 65?"
Answer: {{"drug":"metformin","sex":"Female","age_group":"65-84","serious":null,"reaction":null}}

Question: "Serious reactions for warfarin?"
Answer: {{"drug":"warfarin","sex":null,"age_group":null,"serious":true,"reaction":null}}

Question: "Vilka biverkningar finns för aspirin?" (Swedish)
Answer: {{"drug":"aspirin","sex":null,"age_group":null,"serious":null,"reaction":null}}"""

    @staticmethod
    def renderer_system(result: QueryResult, language: Optional[str]) -> str:
        language_name = LANGUAGE_NAMES.get(language or "en", "English")
        results = json.dumps(result.to_dict()["results"], indent=2, sort_keys=True, ensure_ascii=False)
        filters = ", ".join(result.applied_filters) or "none"
        return f"""You are a RENDERER for medical data. Your ONLY task is to formulate the verified result as readable text.

RULES:
- Use ONLY data from the verified result below
- Do NOT add your own knowledge
- Give NO recommendations or interpretations
- Write in {language_name}
- Keep the response concise (2-4 sentences)
- Mention the number of reports and percentages for top reactions
- End by stating this is reported data, not medical advice

VERIFIED RESULT:
{results}

FILTERS USED:
{filters}"""
