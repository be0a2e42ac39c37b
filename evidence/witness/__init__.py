"""
Witness Output Guard

Witness mode: generated text may observe and cite, never recommend or
decide. Every piece of free text from a generative source passes through
here before it may leave the system.

GUARANTEES:
===========
- Stateless, side-effect free
- Reports EVERY blocked phrase found, in blocklist order
- Case-insensitive substring match against a versioned phrase list

Deterministic template output is vetted when templates are authored and
is not routed through this guard.
"""

from __future__ import annotations
from typing import List, Sequence, Tuple

from ..contracts.base import Error, ErrorCode, Result

BLOCKLIST_VERSION = "WITNESS_BLOCKLIST_v1"

BLOCKED_PHRASES_SV: Tuple[str, ...] = (
    "jag rekommenderar",
    "du bör",
    "det är tillrådligt",
    "min rekommendation är",
    "jag föreslår att du",
    "ta detta läkemedel",
    "sluta ta",
    "öka dosen",
    "minska dosen",
    "byt till",
    "prova istället",
)

BLOCKED_PHRASES_EN: Tuple[str, ...] = (
    "i recommend",
    "you should",
    "it is advisable",
    "my recommendation is",
    "i suggest you",
    "take this medication",
    "stop taking",
    "increase the dose",
    "decrease the dose",
    "switch to",
    "try instead",
)

BLOCKED_PHRASES: Tuple[str, ...] = BLOCKED_PHRASES_SV + BLOCKED_PHRASES_EN


class WitnessViolationError(Exception):
    """Generated text contained advisory phrasing. The text must be dropped."""

    code = ErrorCode.WITNESS_VIOLATION

    def __init__(self, blocked_phrases: Sequence[str]):
        self.blocked_phrases: List[str] = list(blocked_phrases)
        super().__init__(f"Output contains blocked phrases: {', '.join(self.blocked_phrases)}")

    def to_error(self) -> Error:
        return Error.create(
            ErrorCode.WITNESS_VIOLATION,
            str(self),
            blocked_phrases=", ".join(self.blocked_phrases),
            blocklist_version=BLOCKLIST_VERSION,
        )


def find_blocked_phrases(text: str, phrases: Sequence[str] = BLOCKED_PHRASES) -> List[str]:
    lowered = text.lower()
    return [phrase for phrase in phrases if phrase in lowered]


def validate_witness_output(text: str) -> None:
    """Raise WitnessViolationError listing every blocked phrase in text."""
    found = find_blocked_phrases(text)
    if found:
        raise WitnessViolationError(found)


def check_witness_output(text: str) -> Result:
    """Result-returning form: success(text) or failure(WITNESS_VIOLATION)."""
    found = find_blocked_phrases(text)
    if found:
        return Result.failure(WitnessViolationError(found).to_error())
    return Result.success(text)


__all__ = [
    'BLOCKLIST_VERSION',
    'BLOCKED_PHRASES',
    'BLOCKED_PHRASES_SV',
    'BLOCKED_PHRASES_EN',
    'WitnessViolationError',
    'find_blocked_phrases',
    'validate_witness_output',
    'check_witness_output',
]
