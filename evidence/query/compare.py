"""
Compare Evidence Query

Runs the guided query twice over one pinned version and reports a purely
descriptive delta between the two distributions: show the delta, never
the conclusion.

WHAT THIS MODULE MUST NOT DO:
=============================
- Compare across two snapshot versions
- Let the comparison label influence any number
- Apply the interpretation policy (it is exposed, enforcement lives in
  the witness guard)
"""

from __future__ import annotations
from typing import Dict, List, Tuple
import logging
import time

from ..contracts.base import AuditEventType, Error, ErrorCode, Result
from ..contracts.query import (
    CategoryDelta, CompareResult, ComparisonLabel, ComparisonType, Direction,
    InterpretationPolicy, QueryParameters, QueryResult, ReactionCount,
    ReactionDelta, ReactionDeltaEntry, REACTION_DELTA_LIMIT,
)
from ..contracts.records import OUTCOME_CATEGORIES
from ..domain.serialization import digest_of, percent_of
from ..observability import AuditLog
from . import GuidedQueryEngine

logger = logging.getLogger(__name__)


INTERPRETATION_POLICY = InterpretationPolicy(
    allowed=(
        "Descriptive statistics",
        "Percentage differences",
        "Count comparisons",
        "Presence/absence of reactions",
    ),
    blocked=(
        "Risk assessment",
        "Safety conclusions",
        "Medical recommendations",
        "Causal inference",
        'Words: "safer", "more dangerous", "better", "worse", "risk"',
    ),
)

COMPARE_DISCLAIMER = (
    "This comparison shows differences in reported adverse events between two populations. "
    "It does NOT imply causality, relative safety, or risk. "
    "Differences may reflect reporting patterns, population characteristics, or chance."
)


# =============================================================================
# DELTAS
# =============================================================================

def reaction_delta(
    reactions_a: Tuple[ReactionCount, ...],
    reactions_b: Tuple[ReactionCount, ...],
    limit: int = REACTION_DELTA_LIMIT
) -> ReactionDelta:
    """Per-reaction percent difference over the union of both summaries."""
    by_name_a: Dict[str, ReactionCount] = {r.reaction: r for r in reactions_a}
    by_name_b: Dict[str, ReactionCount] = {r.reaction: r for r in reactions_b}

    names: List[str] = list(by_name_a)
    names.extend(name for name in by_name_b if name not in by_name_a)

    entries: List[ReactionDeltaEntry] = []
    for name in names:
        a = by_name_a.get(name)
        b = by_name_b.get(name)
        percent_a = a.percent if a else 0
        percent_b = b.percent if b else 0
        if percent_a == 0 and percent_b == 0:
            continue
        difference = percent_a - percent_b
        entries.append(ReactionDeltaEntry(
            reaction=name,
            percent_a=percent_a,
            percent_b=percent_b,
            count_a=a.count if a else 0,
            count_b=b.count if b else 0,
            percent_difference=difference,
            direction=Direction.of(difference),
        ))

    entries.sort(key=lambda e: -abs(e.percent_difference))
    return ReactionDelta(
        largest_differences=tuple(entries[:limit]),
        total_unique_reactions=len(names),
        only_in_a=sum(1 for e in entries if e.percent_b == 0),
        only_in_b=sum(1 for e in entries if e.percent_a == 0),
    )


def _category_delta(category: str, count_a: int, total_a: int, count_b: int, total_b: int) -> CategoryDelta:
    percent_a = percent_of(count_a, total_a)
    percent_b = percent_of(count_b, total_b)
    difference = percent_a - percent_b
    return CategoryDelta(
        category=category,
        count_a=count_a,
        count_b=count_b,
        percent_a=percent_a,
        percent_b=percent_b,
        difference=difference,
        direction=Direction.of(difference),
    )


def seriousness_delta(a: QueryResult, b: QueryResult) -> Tuple[CategoryDelta, ...]:
    """Serious / non-serious share of each group's matching reports."""
    sa, sb = a.seriousness, b.seriousness
    return tuple(
        _category_delta(category, sa[category], a.total_matching, sb[category], b.total_matching)
        for category in ("serious", "non_serious")
    )


def outcome_delta(a: QueryResult, b: QueryResult) -> Tuple[CategoryDelta, ...]:
    """Six fixed outcome categories, each as a share of the group's own outcome total."""
    oa, ob = a.outcomes, b.outcomes
    total_a = sum(oa.values())
    total_b = sum(ob.values())
    return tuple(
        _category_delta(category, oa.get(category, 0), total_a, ob.get(category, 0), total_b)
        for category in OUTCOME_CATEGORIES
    )


# =============================================================================
# LABELS (UI framing only)
# =============================================================================

def group_label(params: QueryParameters) -> str:
    parts = [params.drug or ""]
    if params.sex:
        parts.append(params.sex.lower())
    if params.age_group:
        parts.append(f"age {params.age_group}")
    if params.serious is True:
        parts.append("serious")
    elif params.serious is False:
        parts.append("non-serious")
    if params.reaction:
        parts.append(f"with {params.reaction}")
    return ", ".join(parts)


def detect_comparison_type(a: QueryParameters, b: QueryParameters) -> ComparisonType:
    if a.age_group != b.age_group and a.sex == b.sex:
        return ComparisonType.AGE_COMPARISON
    if a.sex != b.sex and a.age_group == b.age_group:
        return ComparisonType.SEX_COMPARISON
    if a.serious != b.serious:
        return ComparisonType.SERIOUSNESS_COMPARISON
    if a.drug != b.drug:
        return ComparisonType.DRUG_COMPARISON
    return ComparisonType.CUSTOM_COMPARISON


def describe_comparison(a: QueryParameters, b: QueryParameters) -> ComparisonLabel:
    label_a = group_label(a)
    label_b = group_label(b)
    return ComparisonLabel(
        group_a=label_a,
        group_b=label_b,
        description=f"Comparing {label_a} vs {label_b}",
        comparison_type=detect_comparison_type(a, b),
    )


# =============================================================================
# ENGINE
# =============================================================================

class CompareEngine:
    """
    Two guided queries over one pinned version, then a descriptive delta.

    Version pinning: explicit differing versions fail with
    VERSION_MISMATCH; otherwise the explicit version (or "latest",
    resolved once) is used for both sides.
    """

    def __init__(self, guided: GuidedQueryEngine):
        self._guided = guided
        self._audit = AuditLog("compare", guided.config.audit_max_entries)

    def _pin_version(self, a: QueryParameters, b: QueryParameters) -> Result:
        if a.version and b.version and a.version != b.version:
            return Result.failure(Error.create(
                ErrorCode.VERSION_MISMATCH,
                f"Cannot compare across corpus versions {a.version} and {b.version}",
                group_a_version=a.version, group_b_version=b.version,
            ))
        requested = a.version or b.version
        version = self._guided.resolve_version(requested)
        if version is None:
            message = "No corpus available" if requested is None else f"Corpus version {requested} not found"
            return Result.failure(Error.create(ErrorCode.NO_CORPUS, message))
        return Result.success(version)

    def run(self, group_a: QueryParameters, group_b: QueryParameters) -> Result:
        start_time = time.time()

        if not group_a.drug or not group_b.drug:
            return Result.failure(Error.create(
                ErrorCode.MISSING_PARAMETER, 'Both groups require "drug" parameter', parameter="drug"
            ))

        pinned = self._pin_version(group_a, group_b)
        if pinned.is_failure:
            return pinned
        version = pinned.value

        results = {}
        for side, params in (("a", group_a), ("b", group_b)):
            outcome = self._guided.run(params.with_version(version))
            if outcome.is_failure:
                error = outcome.error
                return Result.failure(Error(
                    code=error.code,
                    message=f"Group {side.upper()} query failed: {error.message}",
                    timestamp=error.timestamp,
                    context=error.context,
                ).with_context("group", side))
            results[side] = outcome.value

        result_a: QueryResult = results["a"]
        result_b: QueryResult = results["b"]
        if result_a.corpus_version != result_b.corpus_version:
            return Result.failure(Error.create(
                ErrorCode.VERSION_MISMATCH,
                f"Group results come from different versions: "
                f"{result_a.corpus_version} and {result_b.corpus_version}",
            ))

        reactions = reaction_delta(result_a.reaction_summary, result_b.reaction_summary)
        serious = seriousness_delta(result_a, result_b)
        outcomes = outcome_delta(result_a, result_b)
        sample_size_difference = result_a.total_matching - result_b.total_matching

        compare_hash = digest_of({
            "group_a": group_a.canonical(version),
            "group_b": group_b.canonical(version),
            "version": version,
        })
        diff_hash = digest_of({
            "reaction_delta": reactions.to_dict(),
            "seriousness_delta": [d.to_dict() for d in serious],
            "outcome_delta": [d.to_dict() for d in outcomes],
            "sample_size_difference": sample_size_difference,
        })

        result = CompareResult(
            group_a=result_a,
            group_b=result_b,
            corpus_version=version,
            root_hash=result_a.root_hash,
            label=describe_comparison(group_a, group_b),
            reaction_delta=reactions,
            seriousness_delta=serious,
            outcome_delta=outcomes,
            sample_size_difference=sample_size_difference,
            compare_hash=compare_hash,
            diff_hash=diff_hash,
            interpretation_policy=INTERPRETATION_POLICY,
            processing_time_ms=(time.time() - start_time) * 1000,
            disclaimer=COMPARE_DISCLAIMER,
        )
        self._audit.record(
            AuditEventType.COMPARE, "compare_query",
            entity_id=compare_hash,
            metadata=(("version", version), ("diff_hash", diff_hash)),
        )
        logger.info("Compare %s on %s: sample size difference %d", compare_hash[:12], version, sample_size_difference)
        return Result.success(result)

    def get_audit_log(self):
        return self._audit.get_entries()
