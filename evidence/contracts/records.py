"""
Record Contracts

Immutable types for what ingestion wrote into a snapshot:
KnowledgeObjects (the committed unit) and the adverse-event records
decoded from their content.

DECODING POLICY:
================
Upstream FAERS payloads are loosely structured. Decoding never throws on a
malformed sub-field; the field is treated as absent instead. A payload that
is not a JSON object at all yields no record.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import hashlib
import json
import logging
import math
import re

logger = logging.getLogger(__name__)


# =============================================================================
# CODE TABLES (FAERS field vocabularies)
# =============================================================================

SEX_LABELS: Dict[str, str] = {"1": "Male", "2": "Female"}
SEX_CODES: Dict[str, str] = {label: code for code, label in SEX_LABELS.items()}

SERIOUS_CODE = "1"
NON_SERIOUS_CODE = "2"

OUTCOME_LABELS: Dict[str, str] = {
    "1": "Recovered",
    "2": "Recovering",
    "3": "Not Recovered",
    "4": "Recovered with Sequelae",
    "5": "Fatal",
    "6": "Unknown",
}
OUTCOME_CATEGORIES: Tuple[str, ...] = tuple(OUTCOME_LABELS.values())

# Divisor converting a reported age into years, keyed by FAERS unit code.
AGE_UNIT_DIVISORS: Dict[str, float] = {
    "800": 0.1,       # decade
    "801": 1.0,       # year
    "802": 12.0,      # month
    "803": 52.0,      # week
    "804": 365.0,     # day
    "805": 8760.0,    # hour
}

MAX_AGE_YEARS = 999


def sex_label(code: Optional[str]) -> str:
    return SEX_LABELS.get(code or "", "Unknown")


def outcome_label(code: Optional[str]) -> str:
    return OUTCOME_LABELS.get(code or "", "Unknown")


def drug_key(drug: str) -> str:
    """File-safe key for a drug name."""
    return re.sub(r"[^a-z0-9]", "_", drug.lower())


# =============================================================================
# AGE BINS
# =============================================================================

@dataclass(frozen=True)
class AgeGroup:
    """Inclusive integer age range in completed years."""
    label: str
    minimum: int
    maximum: int

    def contains(self, years: int) -> bool:
        return self.minimum <= years <= self.maximum


AGE_GROUPS: Tuple[AgeGroup, ...] = (
    AgeGroup("0-17", 0, 17),
    AgeGroup("18-40", 18, 40),
    AgeGroup("41-64", 41, 64),
    AgeGroup("65-84", 65, 84),
    AgeGroup("85+", 85, MAX_AGE_YEARS),
)
AGE_GROUP_LABELS: Tuple[str, ...] = tuple(g.label for g in AGE_GROUPS)


def find_age_group(label: str) -> Optional[AgeGroup]:
    for group in AGE_GROUPS:
        if group.label == label:
            return group
    return None


def age_in_years(age: Optional[str], unit: Optional[str]) -> Optional[float]:
    """
    Convert a reported age and FAERS unit code to years.

    Missing unit means years. Unknown units, negative or unparseable
    ages return None so the record is excluded from age filtering.
    """
    if age is None:
        return None
    try:
        value = float(age)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None

    if unit is None or unit == "":
        divisor = 1.0
    else:
        divisor = AGE_UNIT_DIVISORS.get(unit)
        if divisor is None:
            return None
    return value / divisor


def age_group_for(years: Optional[float]) -> Optional[AgeGroup]:
    """Bin completed years; None outside [0, 999] or when age is unknown."""
    if years is None:
        return None
    completed = math.floor(years)
    if completed < 0 or completed > MAX_AGE_YEARS:
        return None
    for group in AGE_GROUPS:
        if group.contains(completed):
            return group
    return None


# =============================================================================
# KNOWLEDGE OBJECTS (committed unit)
# =============================================================================

def content_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class KnowledgeObject:
    """
    One ingested record as written by ingestion.

    INVARIANT: content_hash == sha256(content). Checked by
    verify_integrity(), never assumed.
    """
    id: str
    version: str
    content: str
    content_hash: str
    source_uri: str
    timestamp: str
    author_id: str
    parent_version: Optional[str] = None
    source_type: Optional[str] = None

    @staticmethod
    def create(
        id: str,
        version: str,
        content: str,
        source_uri: str,
        timestamp: str,
        author_id: str,
        parent_version: Optional[str] = None,
        source_type: Optional[str] = None
    ) -> KnowledgeObject:
        return KnowledgeObject(
            id=id,
            version=version,
            content=content,
            content_hash=content_digest(content),
            source_uri=source_uri,
            timestamp=timestamp,
            author_id=author_id,
            parent_version=parent_version,
            source_type=source_type,
        )

    @staticmethod
    def from_dict(data: dict) -> KnowledgeObject:
        content = data["content"]
        if not isinstance(content, str):
            raise ValueError(f"KnowledgeObject {data.get('id')} content must be a string")
        return KnowledgeObject(
            id=str(data["id"]),
            version=str(data["version"]),
            content=content,
            content_hash=str(data["content_hash"]),
            source_uri=str(data.get("source_uri", "")),
            timestamp=str(data.get("timestamp", "")),
            author_id=str(data.get("author_id", "")),
            parent_version=data.get("parent_version"),
            source_type=data.get("source_type"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "version": self.version,
            "content": self.content,
            "content_hash": self.content_hash,
            "source_uri": self.source_uri,
            "source_type": self.source_type,
            "timestamp": self.timestamp,
            "author_id": self.author_id,
            "parent_version": self.parent_version,
        }

    def compute_hash(self) -> str:
        return content_digest(self.content)

    def verify_integrity(self) -> bool:
        return self.compute_hash() == self.content_hash

    def decode(self) -> Optional[AdverseEventRecord]:
        return AdverseEventRecord.decode(self.content)


# =============================================================================
# ADVERSE EVENT RECORDS (decoded view)
# =============================================================================

def _as_code(value) -> Optional[str]:
    """Codes arrive as strings, occasionally as numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return None


def _as_text(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True)
class ReactionEntry:
    term: Optional[str]
    outcome_code: Optional[str] = None

    @property
    def outcome(self) -> str:
        return outcome_label(self.outcome_code)


@dataclass(frozen=True)
class AdverseEventRecord:
    """Typed, defensively decoded FAERS safety report."""
    report_id: Optional[str] = None
    serious_code: Optional[str] = None
    sex_code: Optional[str] = None
    age: Optional[str] = None
    age_unit: Optional[str] = None
    reactions: Tuple[ReactionEntry, ...] = field(default_factory=tuple)
    receive_date: Optional[str] = None
    country: Optional[str] = None

    @property
    def age_years(self) -> Optional[float]:
        return age_in_years(self.age, self.age_unit)

    @property
    def sex(self) -> str:
        return sex_label(self.sex_code)

    def has_reaction(self, term: str) -> bool:
        wanted = term.lower()
        return any(r.term is not None and r.term.lower() == wanted for r in self.reactions)

    @staticmethod
    def from_payload(payload: dict) -> AdverseEventRecord:
        patient = payload.get("patient")
        if not isinstance(patient, dict):
            patient = {}

        reactions: List[ReactionEntry] = []
        raw_reactions = patient.get("reaction")
        if isinstance(raw_reactions, list):
            for raw in raw_reactions:
                if not isinstance(raw, dict):
                    continue
                reactions.append(ReactionEntry(
                    term=_as_text(raw.get("reactionmeddrapt")),
                    outcome_code=_as_code(raw.get("reactionoutcome")),
                ))

        age = patient.get("patientonsetage")
        if isinstance(age, (int, float)) and not isinstance(age, bool):
            age = str(age)
        elif not isinstance(age, str):
            age = None

        return AdverseEventRecord(
            report_id=_as_code(payload.get("safetyreportid")),
            serious_code=_as_code(payload.get("serious")),
            sex_code=_as_code(patient.get("patientsex")),
            age=age,
            age_unit=_as_code(patient.get("patientonsetageunit")),
            reactions=tuple(reactions),
            receive_date=_as_text(payload.get("receivedate")),
            country=_as_text(payload.get("primarysourcecountry")) or _as_text(payload.get("occurcountry")),
        )

    @staticmethod
    def decode(content: str) -> Optional[AdverseEventRecord]:
        try:
            payload = json.loads(content)
        except (TypeError, ValueError):
            logger.warning("Skipping record with unparseable content")
            return None
        if not isinstance(payload, dict):
            logger.warning("Skipping record whose content is not a JSON object")
            return None
        return AdverseEventRecord.from_payload(payload)


# =============================================================================
# MANIFESTS
# =============================================================================

@dataclass(frozen=True)
class DrugManifest:
    """Per-drug manifest written once by ingestion."""
    drug: str
    version: str
    total_events: int
    top_reactions: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    source: Optional[str] = None
    created_at: Optional[str] = None
    total_available: Optional[int] = None

    @staticmethod
    def from_dict(data: dict) -> DrugManifest:
        top = []
        for entry in data.get("top_reactions") or []:
            if isinstance(entry, dict) and "reaction" in entry:
                top.append((str(entry["reaction"]), int(entry.get("count", 0))))
        return DrugManifest(
            drug=str(data["drug"]),
            version=str(data["version"]),
            total_events=int(data.get("total_events", 0)),
            top_reactions=tuple(top),
            source=data.get("source"),
            created_at=data.get("created_at"),
            total_available=data.get("total_available"),
        )

    def to_dict(self) -> dict:
        return {
            "drug": self.drug,
            "version": self.version,
            "total_events": self.total_events,
            "top_reactions": [{"reaction": r, "count": c} for r, c in self.top_reactions],
            "source": self.source,
            "created_at": self.created_at,
            "total_available": self.total_available,
        }
