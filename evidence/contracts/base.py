"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.
No behavior, no side effects, no dependencies.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, IntEnum, auto


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Parameter errors
    MISSING_PARAMETER = auto()
    INVALID_PARAMETER = auto()

    # Snapshot errors
    NO_CORPUS = auto()
    NO_PROOF = auto()
    NO_DATA = auto()
    VERSION_MISMATCH = auto()

    # Commitment errors
    EMPTY_CORPUS = auto()
    PROOF_NOT_FOUND = auto()
    INTEGRITY_MISMATCH = auto()

    # Witness / escalation errors
    WITNESS_VIOLATION = auto()
    ESCALATION_EXHAUSTED = auto()
    UNRECOGNIZED_QUESTION = auto()

    INTERNAL_ERROR = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(code: ErrorCode, message: str, **context: str) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=tuple((k, str(v)) for k, v in context.items())
        )

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )

    def context_value(self, key: str) -> Optional[str]:
        for k, v in self.context:
            if k == key:
                return v
        return None

    def to_dict(self) -> dict:
        return {
            "error_code": self.code.name,
            "error": self.message,
            "context": dict(self.context),
        }


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


# =============================================================================
# TEMPORAL TYPES (Immutable, explicit semantics)
# =============================================================================

@dataclass(frozen=True)
class Timestamp:
    """
    Immutable timestamp with explicit semantics.
    All timestamps are UTC, never local time.
    """
    value: datetime

    def __post_init__(self):
        # Ensure UTC timezone
        if self.value.tzinfo is None:
            object.__setattr__(self, 'value', self.value.replace(tzinfo=timezone.utc))

    @staticmethod
    def now() -> Timestamp:
        return Timestamp(value=datetime.now(timezone.utc))

    @staticmethod
    def from_iso(iso_string: str) -> Timestamp:
        dt = datetime.fromisoformat(iso_string.replace('Z', '+00:00'))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return Timestamp(value=dt)

    def to_iso(self) -> str:
        return self.value.isoformat().replace('+00:00', 'Z')


# =============================================================================
# TRUST TAGS
# =============================================================================

class TrinityLevel(IntEnum):
    """Trust tier that produced an answer."""
    VERIFIED = 1
    LOCAL = 2
    EXTERNAL = 3


class GenerationMode(Enum):
    VERIFIED_DETERMINISTIC = "VERIFIED_DETERMINISTIC"
    LOCAL_LLM_UNVERIFIED = "LOCAL_LLM_UNVERIFIED"
    EXTERNAL_LLM_UNVERIFIED = "EXTERNAL_LLM_UNVERIFIED"


class VerificationStatus(Enum):
    VERIFIED = "VERIFIED"
    UNVERIFIED = "UNVERIFIED"


GENERATION_MODE_BY_LEVEL = {
    TrinityLevel.VERIFIED: GenerationMode.VERIFIED_DETERMINISTIC,
    TrinityLevel.LOCAL: GenerationMode.LOCAL_LLM_UNVERIFIED,
    TrinityLevel.EXTERNAL: GenerationMode.EXTERNAL_LLM_UNVERIFIED,
}


# =============================================================================
# AUDIT TYPES
# =============================================================================

class AuditEventType(Enum):
    """Explicit audit event types."""
    QUERY = "query"
    COMPARE = "compare"
    PROOF = "proof"
    ESCALATION = "escalation"
    WITNESS = "witness"
    ERROR = "error"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: Timestamp
    layer: str  # Which layer generated this
    action: str
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.to_iso(),
            "layer": self.layer,
            "action": self.action,
            "entity_id": self.entity_id,
            "metadata": dict(self.metadata),
        }
