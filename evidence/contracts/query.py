"""
Query Contracts

Immutable inputs and outputs of the guided query and compare engines.

REPRODUCIBILITY:
================
Two parameter sets are equal iff their canonical encodings are byte
identical. The canonical form always carries the resolved version.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .base import GenerationMode, TrinityLevel, VerificationStatus


DISCLAIMER = (
    "This is descriptive statistics from reported adverse events in FDA FAERS. "
    "It does not imply causality, risk assessment, or medical advice."
)

REACTION_SUMMARY_LIMIT = 15
REACTION_DELTA_LIMIT = 15


def _parse_serious(value) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        if lowered in ("", "null", "none", "all"):
            return None
    raise ValueError(f"serious must be true, false or null, got {value!r}")


def _blank_to_none(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class QueryParameters:
    """
    Facets of a guided query.

    serious is tri-state: True (serious only), False (non-serious only),
    None (all). version None means "latest at execution time".
    """
    drug: Optional[str]
    sex: Optional[str] = None
    age_group: Optional[str] = None
    serious: Optional[bool] = None
    reaction: Optional[str] = None
    version: Optional[str] = None

    @staticmethod
    def from_dict(data: dict) -> QueryParameters:
        sex = _blank_to_none(data.get("sex"))
        if sex is not None and sex.lower() in ("male", "female"):
            sex = sex.capitalize()
        return QueryParameters(
            drug=_blank_to_none(data.get("drug")),
            sex=sex,
            age_group=_blank_to_none(data.get("age_group")),
            serious=_parse_serious(data.get("serious")),
            reaction=_blank_to_none(data.get("reaction")),
            version=_blank_to_none(data.get("version")),
        )

    def with_version(self, version: str) -> QueryParameters:
        return replace(self, version=version)

    def canonical(self, resolved_version: Optional[str] = None) -> Dict[str, object]:
        return {
            "drug": self.drug,
            "sex": self.sex,
            "age_group": self.age_group,
            "serious": self.serious,
            "reaction": self.reaction,
            "version": resolved_version if resolved_version is not None else self.version,
        }

    def to_dict(self) -> Dict[str, object]:
        return self.canonical()


@dataclass(frozen=True)
class ReactionCount:
    reaction: str
    count: int
    percent: int

    def to_dict(self) -> dict:
        return {"reaction": self.reaction, "count": self.count, "percent": self.percent}


@dataclass(frozen=True)
class QueryResult:
    """
    Output of one guided query. Derived, never persisted on its own.

    result_hash covers only the aggregate (never timing), so it is stable
    across repeated runs over one version.
    """
    parameters: QueryParameters
    applied_filters: Tuple[str, ...]
    corpus_version: str
    root_hash: str
    total_in_corpus: int
    total_matching: int
    match_percent: int
    filter_description: str
    reaction_summary: Tuple[ReactionCount, ...]
    outcome_summary: Tuple[Tuple[str, int], ...]
    sex_summary: Tuple[Tuple[str, int], ...]
    seriousness_summary: Tuple[Tuple[str, int], ...]
    summary: str
    query_hash: str
    result_hash: str
    processing_time_ms: float = 0.0
    trinity_level: TrinityLevel = TrinityLevel.VERIFIED
    generation_mode: GenerationMode = GenerationMode.VERIFIED_DETERMINISTIC
    status: VerificationStatus = VerificationStatus.VERIFIED
    disclaimer: str = DISCLAIMER

    @property
    def outcomes(self) -> Dict[str, int]:
        return dict(self.outcome_summary)

    @property
    def seriousness(self) -> Dict[str, int]:
        return dict(self.seriousness_summary)

    @property
    def sexes(self) -> Dict[str, int]:
        return dict(self.sex_summary)

    def aggregate(self) -> dict:
        """Canonical aggregate covered by result_hash."""
        return {
            "total_in_corpus": self.total_in_corpus,
            "total_matching": self.total_matching,
            "match_percent": self.match_percent,
            "reaction_summary": [r.to_dict() for r in self.reaction_summary],
            "outcome_summary": self.outcomes,
            "sex_summary": self.sexes,
            "seriousness_summary": self.seriousness,
        }

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "query_type": "GUIDED_EVIDENCE",
            "trinity_level": int(self.trinity_level),
            "generation_mode": self.generation_mode.value,
            "parameters": self.parameters.canonical(self.corpus_version),
            "applied_filters": list(self.applied_filters),
            "corpus_version": self.corpus_version,
            "root_hash": self.root_hash,
            "results": {
                "total_in_corpus": self.total_in_corpus,
                "total_matching": self.total_matching,
                "match_percent": self.match_percent,
                "filter_description": self.filter_description,
                "reaction_summary": [r.to_dict() for r in self.reaction_summary],
                "outcome_summary": self.outcomes,
                "seriousness_summary": self.seriousness,
                "sex_summary": self.sexes,
            },
            "natural_language_summary": self.summary,
            "verification": {
                "query_hash": self.query_hash,
                "result_hash": self.result_hash,
                "root_hash": self.root_hash,
                "reproducible": True,
            },
            "disclaimer": self.disclaimer,
            "processing_time_ms": self.processing_time_ms,
        }


# =============================================================================
# COMPARE CONTRACTS
# =============================================================================

class Direction(Enum):
    HIGHER_IN_A = "HIGHER_IN_A"
    HIGHER_IN_B = "HIGHER_IN_B"
    EQUAL = "EQUAL"

    @staticmethod
    def of(difference: float) -> Direction:
        if difference > 0:
            return Direction.HIGHER_IN_A
        if difference < 0:
            return Direction.HIGHER_IN_B
        return Direction.EQUAL


@dataclass(frozen=True)
class ReactionDeltaEntry:
    reaction: str
    percent_a: int
    percent_b: int
    count_a: int
    count_b: int
    percent_difference: int
    direction: Direction

    def to_dict(self) -> dict:
        return {
            "reaction": self.reaction,
            "group_a_percent": self.percent_a,
            "group_b_percent": self.percent_b,
            "group_a_count": self.count_a,
            "group_b_count": self.count_b,
            "percent_difference": self.percent_difference,
            "direction": self.direction.value,
        }


@dataclass(frozen=True)
class ReactionDelta:
    largest_differences: Tuple[ReactionDeltaEntry, ...]
    total_unique_reactions: int
    only_in_a: int
    only_in_b: int

    def to_dict(self) -> dict:
        return {
            "largest_differences": [e.to_dict() for e in self.largest_differences],
            "total_unique_reactions": self.total_unique_reactions,
            "only_in_a": self.only_in_a,
            "only_in_b": self.only_in_b,
        }


@dataclass(frozen=True)
class CategoryDelta:
    """Percentage of one category within each group's own total."""
    category: str
    count_a: int
    count_b: int
    percent_a: int
    percent_b: int
    difference: int
    direction: Direction

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "group_a_count": self.count_a,
            "group_b_count": self.count_b,
            "group_a_percent": self.percent_a,
            "group_b_percent": self.percent_b,
            "difference": self.difference,
            "direction": self.direction.value,
        }


class ComparisonType(Enum):
    AGE_COMPARISON = "AGE_COMPARISON"
    SEX_COMPARISON = "SEX_COMPARISON"
    SERIOUSNESS_COMPARISON = "SERIOUSNESS_COMPARISON"
    DRUG_COMPARISON = "DRUG_COMPARISON"
    CUSTOM_COMPARISON = "CUSTOM_COMPARISON"


@dataclass(frozen=True)
class ComparisonLabel:
    """UI framing only. Carries no numeric meaning."""
    group_a: str
    group_b: str
    description: str
    comparison_type: ComparisonType

    def to_dict(self) -> dict:
        return {
            "group_a": self.group_a,
            "group_b": self.group_b,
            "description": self.description,
            "type": self.comparison_type.value,
        }


@dataclass(frozen=True)
class InterpretationPolicy:
    allowed: Tuple[str, ...]
    blocked: Tuple[str, ...]

    def to_dict(self) -> dict:
        return {"allowed": list(self.allowed), "blocked": list(self.blocked)}


@dataclass(frozen=True)
class CompareResult:
    group_a: QueryResult
    group_b: QueryResult
    corpus_version: str
    root_hash: str
    label: ComparisonLabel
    reaction_delta: ReactionDelta
    seriousness_delta: Tuple[CategoryDelta, ...]
    outcome_delta: Tuple[CategoryDelta, ...]
    sample_size_difference: int
    compare_hash: str
    diff_hash: str
    interpretation_policy: InterpretationPolicy
    processing_time_ms: float = 0.0
    disclaimer: str = DISCLAIMER

    def delta(self) -> dict:
        """Canonical delta covered by diff_hash."""
        return {
            "reaction_delta": self.reaction_delta.to_dict(),
            "seriousness_delta": [d.to_dict() for d in self.seriousness_delta],
            "outcome_delta": [d.to_dict() for d in self.outcome_delta],
            "sample_size_difference": self.sample_size_difference,
        }

    def to_dict(self) -> dict:
        def group(result: QueryResult, label: str) -> dict:
            return {
                "label": label,
                "parameters": result.parameters.canonical(result.corpus_version),
                "total_matching": result.total_matching,
                "match_percent": result.match_percent,
                "query_hash": result.query_hash,
                "result_hash": result.result_hash,
            }

        return {
            "status": VerificationStatus.VERIFIED.value,
            "query_type": "COMPARE_EVIDENCE",
            "trinity_level": int(TrinityLevel.VERIFIED),
            "generation_mode": GenerationMode.VERIFIED_DETERMINISTIC.value,
            "comparison": self.label.to_dict(),
            "corpus_version": self.corpus_version,
            "root_hash": self.root_hash,
            "group_a": group(self.group_a, self.label.group_a),
            "group_b": group(self.group_b, self.label.group_b),
            "delta": self.delta(),
            "verification": {
                "compare_hash": self.compare_hash,
                "diff_hash": self.diff_hash,
                "root_hash": self.root_hash,
            },
            "interpretation_policy": self.interpretation_policy.to_dict(),
            "disclaimer": self.disclaimer,
            "processing_time_ms": self.processing_time_ms,
        }
