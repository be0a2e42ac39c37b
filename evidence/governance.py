"""
Governance Metadata

Policy identifiers and decision records attached to every answer that
leaves the HTTP layer. Decision ids are derived from the answer's hashes
so the same answer on the same day always carries the same id.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .domain.serialization import digest_of

GOVERNANCE_VERSION = "GOVERNANCE_v1"
POLICY_VERSION = "NO_MEDICAL_ADVICE_v1"

DISCLAIMERS = {
    "en": (
        "This is descriptive statistics from reported adverse events in FDA FAERS. "
        "It does not constitute medical advice and does not imply causality."
    ),
    "sv": (
        "Detta är deskriptiv statistik baserad på rapporterade biverkningar i FDA FAERS. "
        "Det utgör inte medicinsk rådgivning och implicerar inte kausalitet."
    ),
    "de": (
        "Dies ist deskriptive Statistik aus gemeldeten Nebenwirkungen in FDA FAERS. "
        "Sie stellt keine medizinische Beratung dar und impliziert keine Kausalität."
    ),
    "fr": (
        "Il s'agit de statistiques descriptives basées sur les effets indésirables signalés dans FDA FAERS. "
        "Cela ne constitue pas un avis médical et n'implique pas de causalité."
    ),
}

NO_MATCH_MESSAGES = {
    "en": "Could not identify a drug in the question.",
    "sv": "Kunde inte identifiera något läkemedel i frågan.",
    "de": "Konnte kein Medikament in der Frage identifizieren.",
    "fr": "Impossible d'identifier un médicament dans la question.",
}


def disclaimer_for(language: Optional[str]) -> str:
    return DISCLAIMERS.get(language or "en", DISCLAIMERS["en"])


@dataclass(frozen=True)
class DecisionRecord:
    decision_id: str
    decision_type: str
    context_hash: str
    governance_version: str = GOVERNANCE_VERSION
    policy_version: str = POLICY_VERSION

    def to_dict(self) -> dict:
        return {
            "decision_id": self.decision_id,
            "decision_type": self.decision_type,
            "context_hash": self.context_hash,
            "governance_version": self.governance_version,
            "policy_version": self.policy_version,
        }


def issue_decision_id(
    decision_type: str,
    query_hash: str,
    result_hash: str,
    version: str,
    now: datetime
) -> DecisionRecord:
    """EVE-MED-YYYYMMDD-xxxxxx, suffix taken from the context hash."""
    context_hash = digest_of({
        "decision_type": decision_type,
        "query_hash": query_hash,
        "result_hash": result_hash,
        "version": version,
        "date": now.strftime("%Y-%m-%d"),
    })
    return DecisionRecord(
        decision_id=f"EVE-MED-{now.strftime('%Y%m%d')}-{context_hash[:6]}",
        decision_type=decision_type,
        context_hash=context_hash,
    )
