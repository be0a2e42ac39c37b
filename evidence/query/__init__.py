"""
Guided Query Layer

RESPONSIBILITY: Deterministic filter + aggregate over one snapshot
ALLOWED INPUTS: QueryParameters with an explicit or "latest" version
OUTPUTS: QueryResult with query_hash/result_hash, or a typed Error

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate any snapshot state
- Interpret, rank by importance, or infer causality
- Return a successful-looking result for a failed precondition
- Use adjectives implying judgment in any generated string

BOUNDARY ENFORCEMENT:
=====================
- ONLY reads data through the injected SnapshotStore
- Gates run in a fixed order; the first failure is returned
- Every failure is an Error inside a Result, never an exception
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import time

from ..contracts.base import AuditEventType, Error, ErrorCode, Result
from ..contracts.query import QueryParameters, QueryResult, ReactionCount, REACTION_SUMMARY_LIMIT
from ..contracts.records import (
    AdverseEventRecord, OUTCOME_CATEGORIES, SEX_CODES, SERIOUS_CODE, NON_SERIOUS_CODE,
    age_group_for, find_age_group,
)
from ..domain.serialization import digest_of, percent_of
from ..observability import AuditLog, DEFAULT_AUDIT_MAX_ENTRIES
from ..storage import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryEngineConfig:
    """Configuration for the guided query engine."""
    reaction_limit: int = REACTION_SUMMARY_LIMIT
    enable_audit: bool = True
    audit_max_entries: Optional[int] = DEFAULT_AUDIT_MAX_ENTRIES


# =============================================================================
# FILTERS (applied in a fixed order)
# =============================================================================

class RecordFilter:
    """Base class for one facet filter."""

    def applies(self, params: QueryParameters) -> bool:
        raise NotImplementedError

    def keep(self, record: AdverseEventRecord, params: QueryParameters) -> bool:
        raise NotImplementedError

    def describe(self, params: QueryParameters) -> str:
        raise NotImplementedError

    def apply(
        self,
        records: List[AdverseEventRecord],
        params: QueryParameters
    ) -> Tuple[List[AdverseEventRecord], Optional[str]]:
        if not self.applies(params):
            return records, None
        return [r for r in records if self.keep(r, params)], self.describe(params)


class SexFilter(RecordFilter):

    def applies(self, params):
        return params.sex is not None

    def keep(self, record, params):
        return record.sex_code == SEX_CODES[params.sex]

    def describe(self, params):
        return f"Sex: {params.sex}"


class AgeGroupFilter(RecordFilter):
    """Records whose age cannot be converted to years are excluded."""

    def applies(self, params):
        return params.age_group is not None

    def keep(self, record, params):
        group = age_group_for(record.age_years)
        return group is not None and group.label == params.age_group

    def describe(self, params):
        return f"Age: {params.age_group}"


class SeriousnessFilter(RecordFilter):

    def applies(self, params):
        return params.serious is not None

    def keep(self, record, params):
        wanted = SERIOUS_CODE if params.serious else NON_SERIOUS_CODE
        return record.serious_code == wanted

    def describe(self, params):
        return "Serious only" if params.serious else "Non-serious only"


class ReactionFilter(RecordFilter):
    """Case-insensitive exact match against any of the record's reactions."""

    def applies(self, params):
        return params.reaction is not None

    def keep(self, record, params):
        return record.has_reaction(params.reaction)

    def describe(self, params):
        return f"Reaction: {params.reaction}"


FILTER_CHAIN: Tuple[RecordFilter, ...] = (
    SexFilter(),
    AgeGroupFilter(),
    SeriousnessFilter(),
    ReactionFilter(),
)


def apply_filters(
    records: List[AdverseEventRecord],
    params: QueryParameters
) -> Tuple[List[AdverseEventRecord], List[str]]:
    applied: List[str] = []
    for record_filter in FILTER_CHAIN:
        records, description = record_filter.apply(records, params)
        if description is not None:
            applied.append(description)
    return records, applied


# =============================================================================
# AGGREGATION
# =============================================================================

@dataclass(frozen=True)
class Aggregate:
    reaction_summary: Tuple[ReactionCount, ...]
    outcomes: Tuple[Tuple[str, int], ...]
    sexes: Tuple[Tuple[str, int], ...]
    seriousness: Tuple[Tuple[str, int], ...]


def aggregate(records: Sequence[AdverseEventRecord], reaction_limit: int = REACTION_SUMMARY_LIMIT) -> Aggregate:
    """
    Count reactions, outcomes, sexes and seriousness over a filtered set.

    Reaction counts are sorted by count descending; ties keep first-seen
    order (dicts preserve insertion order and sorted() is stable).
    """
    reaction_counts: Dict[str, int] = {}
    outcome_counts: Dict[str, int] = {category: 0 for category in OUTCOME_CATEGORIES}
    sex_counts = {"Male": 0, "Female": 0, "Unknown": 0}
    serious_counts = {"serious": 0, "non_serious": 0, "unknown": 0}

    for record in records:
        for reaction in record.reactions:
            if reaction.term is not None:
                reaction_counts[reaction.term] = reaction_counts.get(reaction.term, 0) + 1
            outcome_counts[reaction.outcome] += 1

        sex_counts[record.sex] += 1

        if record.serious_code == SERIOUS_CODE:
            serious_counts["serious"] += 1
        elif record.serious_code == NON_SERIOUS_CODE:
            serious_counts["non_serious"] += 1
        else:
            serious_counts["unknown"] += 1

    total = len(records)
    ranked = sorted(reaction_counts.items(), key=lambda item: -item[1])[:reaction_limit]
    summary = tuple(
        ReactionCount(reaction=name, count=count, percent=percent_of(count, total))
        for name, count in ranked
    )
    return Aggregate(
        reaction_summary=summary,
        outcomes=tuple(outcome_counts.items()),
        sexes=tuple(sex_counts.items()),
        seriousness=tuple(serious_counts.items()),
    )


def describe_filters(params: QueryParameters) -> str:
    parts = [params.drug]
    if params.sex:
        parts.append(f"{params.sex.lower()} patients")
    if params.age_group:
        parts.append(f"aged {params.age_group}")
    if params.serious is True:
        parts.append("serious cases")
    elif params.serious is False:
        parts.append("non-serious cases")
    if params.reaction:
        parts.append(f"with {params.reaction}")
    return ", ".join(parts)


def summarize(total_matching: int, filter_description: str, reactions: Sequence[ReactionCount]) -> str:
    """Counts-only summary; first three reactions."""
    summary = f"Based on {total_matching} FAERS reports for {filter_description}"
    if reactions:
        top = ", ".join(f"{r.reaction} ({r.percent}%)" for r in reactions[:3])
        return summary + f", the most frequently reported reactions are: {top}."
    return summary + ", no reactions were reported in the matching set."


# =============================================================================
# ENGINE
# =============================================================================

class GuidedQueryEngine:
    """
    Runs one guided query against the injected store.

    GATES (in order):
    1. drug present                 -> MISSING_PARAMETER
    2. sex / age_group vocabulary   -> INVALID_PARAMETER
    3. version resolvable           -> NO_CORPUS
    4. commitment present           -> NO_PROOF
    5. records present for drug     -> NO_DATA
    """

    def __init__(self, store: SnapshotStore, config: Optional[QueryEngineConfig] = None):
        self._store = store
        self._config = config or QueryEngineConfig()
        self._audit = AuditLog("query", self._config.audit_max_entries)

    @property
    def config(self) -> QueryEngineConfig:
        return self._config

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def resolve_version(self, requested: Optional[str]) -> Optional[str]:
        if requested is None:
            return self._store.resolve_latest_version()
        if requested in self._store.list_versions():
            return requested
        return None

    def run(self, params: QueryParameters) -> Result:
        start_time = time.time()
        try:
            result = self._run(params, start_time)
        except Exception as exc:
            logger.exception("Guided query failed for drug=%s", params.drug)
            result = Result.failure(Error.create(
                ErrorCode.INTERNAL_ERROR, f"Query failed: {exc}", drug=str(params.drug)
            ))

        if self._config.enable_audit:
            if result.is_success:
                self._audit.record(
                    AuditEventType.QUERY, "guided_query",
                    entity_id=result.value.query_hash,
                    metadata=(("version", result.value.corpus_version),
                              ("total_matching", str(result.value.total_matching))),
                )
            else:
                self._audit.record(
                    AuditEventType.ERROR, "guided_query",
                    metadata=(("error_code", result.error.code.name),),
                )
        return result

    def _validate(self, params: QueryParameters) -> Optional[Error]:
        if not params.drug:
            return Error.create(ErrorCode.MISSING_PARAMETER, "Missing required parameter: drug", parameter="drug")
        if params.sex is not None and params.sex not in SEX_CODES:
            return Error.create(
                ErrorCode.INVALID_PARAMETER, f"Invalid sex: {params.sex} (expected Male or Female)",
                parameter="sex",
            )
        if params.age_group is not None and find_age_group(params.age_group) is None:
            return Error.create(
                ErrorCode.INVALID_PARAMETER, f"Invalid age_group: {params.age_group}",
                parameter="age_group",
            )
        return None

    def _run(self, params: QueryParameters, start_time: float) -> Result:
        error = self._validate(params)
        if error is not None:
            return Result.failure(error)

        version = self.resolve_version(params.version)
        if version is None:
            message = "No corpus available" if params.version is None else f"Corpus version {params.version} not found"
            return Result.failure(Error.create(ErrorCode.NO_CORPUS, message))

        commitment = self._store.load_commitment(version)
        if commitment is None:
            return Result.failure(Error.create(
                ErrorCode.NO_PROOF, f"No proof found for version {version}", version=version
            ))

        all_records = self._store.load_records(params.drug, version)
        if not all_records:
            return Result.failure(Error.create(
                ErrorCode.NO_DATA, f"No data for drug: {params.drug}", drug=params.drug, version=version
            ))

        filtered, applied_filters = apply_filters(all_records, params)
        agg = aggregate(filtered, self._config.reaction_limit)

        filter_description = describe_filters(params)
        total_matching = len(filtered)

        query_hash = digest_of(params.canonical(version))
        result = QueryResult(
            parameters=params.with_version(version),
            applied_filters=tuple(applied_filters),
            corpus_version=version,
            root_hash=commitment.root_hash,
            total_in_corpus=len(all_records),
            total_matching=total_matching,
            match_percent=percent_of(total_matching, len(all_records)),
            filter_description=filter_description,
            reaction_summary=agg.reaction_summary,
            outcome_summary=agg.outcomes,
            sex_summary=agg.sexes,
            seriousness_summary=agg.seriousness,
            summary=summarize(total_matching, filter_description, agg.reaction_summary),
            query_hash=query_hash,
            result_hash="",
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        result = _with_result_hash(result)

        logger.info(
            "Guided query %s on %s: %d/%d matching",
            query_hash[:12], version, total_matching, len(all_records),
        )
        return Result.success(result)

    def get_audit_log(self):
        return self._audit.get_entries()


def _with_result_hash(result: QueryResult) -> QueryResult:
    return replace(result, result_hash=digest_of(result.aggregate()))


__all__ = [
    'QueryEngineConfig',
    'RecordFilter',
    'SexFilter',
    'AgeGroupFilter',
    'SeriousnessFilter',
    'ReactionFilter',
    'FILTER_CHAIN',
    'apply_filters',
    'Aggregate',
    'aggregate',
    'describe_filters',
    'summarize',
    'GuidedQueryEngine',
]
