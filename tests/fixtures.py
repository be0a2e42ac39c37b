"""
Evidence Test Fixtures

Versioned, hashable fixtures for deterministic testing.
All fixtures are explicit - no random generation.
"""

import json
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from evidence.contracts.records import DrugManifest, KnowledgeObject, drug_key
from evidence.domain.serialization import canonical_json
from evidence.storage import InMemorySnapshotStore
from evidence.verify.merkle import create_corpus_proof


# =============================================================================
# FIXED TIMESTAMPS AND VERSIONS (deterministic)
# =============================================================================

EPOCH = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
EPOCH_ISO = "2026-01-01T00:00:00Z"

VERSION_1 = "v2026-01-01"
VERSION_2 = "v2026-02-01"


# =============================================================================
# FAERS PAYLOADS
# =============================================================================

def make_event(
    report_id: str,
    serious: Optional[str] = "1",
    sex: Optional[str] = "2",
    age: Optional[str] = "70",
    age_unit: Optional[str] = "801",
    reactions: Sequence[Tuple[str, Optional[str]]] = (("Nausea", "1"),),
    country: Optional[str] = "US",
    receive_date: Optional[str] = "20250115",
) -> dict:
    """One openFDA drug event payload, trimmed to the fields the engine reads."""
    patient: Dict[str, object] = {
        "reaction": [
            {"reactionmeddrapt": term, "reactionoutcome": outcome}
            for term, outcome in reactions
        ],
    }
    if sex is not None:
        patient["patientsex"] = sex
    if age is not None:
        patient["patientonsetage"] = age
    if age_unit is not None:
        patient["patientonsetageunit"] = age_unit

    payload: Dict[str, object] = {"safetyreportid": report_id, "patient": patient}
    if serious is not None:
        payload["serious"] = serious
    if country is not None:
        payload["primarysourcecountry"] = country
    if receive_date is not None:
        payload["receivedate"] = receive_date
    return payload


def make_object(version: str, drug: str, payload: dict) -> KnowledgeObject:
    report_id = payload.get("safetyreportid", "unknown")
    return KnowledgeObject.create(
        id=f"{drug}-{report_id}",
        version=version,
        content=canonical_json(payload),
        source_uri=f"https://api.fda.gov/drug/event.json?search=safetyreportid:{report_id}",
        timestamp=EPOCH_ISO,
        author_id="faers-ingestion",
        source_type="faers",
    )


def build_store(
    corpus: Dict[str, List[dict]],
    version: str = VERSION_1,
    commit: bool = True,
    store: Optional[InMemorySnapshotStore] = None,
) -> InMemorySnapshotStore:
    """Populate one version and, unless commit=False, publish its proof."""
    store = store or InMemorySnapshotStore()
    all_objects: List[KnowledgeObject] = []
    for drug, payloads in corpus.items():
        objects = [make_object(version, drug, payload) for payload in payloads]
        store.add_objects(version, drug, objects)
        all_objects.extend(objects)
    if commit and all_objects:
        proof, _ = create_corpus_proof(version, all_objects, EPOCH_ISO)
        store.save_commitment(proof)
    return store


# =============================================================================
# SCENARIOS
# =============================================================================

def metformin_corpus() -> Dict[str, List[dict]]:
    """
    500 metformin reports: 120 female aged 65-84, 380 that do not match
    a Female / 65-84 query.
    """
    events: List[dict] = []
    for i in range(120):
        reactions = [("Nausea", "1")]
        if i % 2 == 0:
            reactions.append(("Diarrhoea", "2"))
        if i % 5 == 0:
            reactions.append(("Lactic acidosis", "5"))
        events.append(make_event(f"F{i:04d}", sex="2", age="72", reactions=reactions))
    for i in range(200):
        events.append(make_event(f"M{i:04d}", sex="1", age="70", reactions=[("Headache", "1")]))
    for i in range(180):
        events.append(make_event(f"Y{i:04d}", sex="2", age="30", serious="2", reactions=[("Dizziness", "6")]))
    return {"metformin": events}


def nausea_age_corpus() -> Dict[str, List[dict]]:
    """
    100 reports aged 65-84 (30 with Nausea) and 100 aged 18-40 (12 with
    Nausea), same drug.
    """
    events: List[dict] = []
    for i in range(100):
        reactions = [("Nausea", "1")] if i < 30 else [("Fatigue", "2")]
        events.append(make_event(f"O{i:04d}", age="70", serious="1" if i < 40 else "2", reactions=reactions))
    for i in range(100):
        reactions = [("Nausea", "1")] if i < 12 else [("Rash", "1")]
        events.append(make_event(f"Y{i:04d}", age="25", serious="1" if i < 20 else "2", reactions=reactions))
    return {"warfarin": events}


def small_corpus() -> Dict[str, List[dict]]:
    """Two drugs, a handful of reports each."""
    return {
        "aspirin": [
            make_event("A001", reactions=[("Nausea", "1"), ("Headache", "2")]),
            make_event("A002", sex="1", age="45", reactions=[("Headache", "1")]),
            make_event("A003", serious="2", age="19", reactions=[("Rash", "5")], country="SE"),
        ],
        "metformin": [
            make_event("M001", reactions=[("Nausea", "1")], receive_date="20240301"),
            make_event("M002", sex="1", age="88", reactions=[("Fatigue", None)]),
        ],
    }


# =============================================================================
# ON-DISK LAYOUT
# =============================================================================

def write_corpus(data_dir, corpus: Dict[str, List[dict]], version: str = VERSION_1) -> List[KnowledgeObject]:
    """
    Write the batch ingestion layout under data_dir:
    corpus/<version>/<drug>_objects.json and <drug>_manifest.json.
    """
    version_dir = os.path.join(str(data_dir), "corpus", version)
    os.makedirs(version_dir, exist_ok=True)
    written: List[KnowledgeObject] = []
    for drug, payloads in corpus.items():
        objects = [make_object(version, drug, payload) for payload in payloads]
        key = drug_key(drug)
        with open(os.path.join(version_dir, f"{key}_objects.json"), "w", encoding="utf-8") as f:
            json.dump([o.to_dict() for o in objects], f)
        manifest = DrugManifest(drug=drug, version=version, total_events=len(objects), created_at=EPOCH_ISO)
        with open(os.path.join(version_dir, f"{key}_manifest.json"), "w", encoding="utf-8") as f:
            json.dump(manifest.to_dict(), f)
        written.extend(objects)
    return written
