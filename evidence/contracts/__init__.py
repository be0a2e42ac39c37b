"""
Contracts Package

Immutable types shared by every layer. Layers import from here and never
from each other's implementations.
"""

from .base import (
    ErrorCode,
    Error,
    Result,
    Timestamp,
    TrinityLevel,
    GenerationMode,
    VerificationStatus,
    GENERATION_MODE_BY_LEVEL,
)
from .records import (
    KnowledgeObject,
    AdverseEventRecord,
    ReactionEntry,
    DrugManifest,
    AgeGroup,
    AGE_GROUPS,
    AGE_GROUP_LABELS,
    OUTCOME_CATEGORIES,
    age_in_years,
    age_group_for,
    find_age_group,
    drug_key,
)
from .proofs import (
    MerkleProof,
    ProofStep,
    SiblingPosition,
    CorpusProof,
    RecordProof,
    LEAF_ORDER_SORTED,
)
from .query import (
    QueryParameters,
    QueryResult,
    ReactionCount,
    CompareResult,
    ReactionDelta,
    ReactionDeltaEntry,
    CategoryDelta,
    ComparisonLabel,
    ComparisonType,
    Direction,
    InterpretationPolicy,
    DISCLAIMER,
)

__all__ = [
    'ErrorCode', 'Error', 'Result', 'Timestamp',
    'TrinityLevel', 'GenerationMode', 'VerificationStatus', 'GENERATION_MODE_BY_LEVEL',
    'KnowledgeObject', 'AdverseEventRecord', 'ReactionEntry', 'DrugManifest',
    'AgeGroup', 'AGE_GROUPS', 'AGE_GROUP_LABELS', 'OUTCOME_CATEGORIES',
    'age_in_years', 'age_group_for', 'find_age_group', 'drug_key',
    'QueryParameters', 'QueryResult', 'ReactionCount', 'CompareResult',
    'ReactionDelta', 'ReactionDeltaEntry', 'CategoryDelta', 'ComparisonLabel',
    'ComparisonType', 'Direction', 'InterpretationPolicy', 'DISCLAIMER',
    'MerkleProof', 'ProofStep', 'SiblingPosition', 'CorpusProof', 'RecordProof',
    'LEAF_ORDER_SORTED',
]
