"""
Snapshot Storage Layer

RESPONSIBILITY: Read-only access to immutable, versioned snapshots
ALLOWED INPUTS: Version identifiers and drug names
OUTPUTS: KnowledgeObjects, decoded records, manifests, commitments

WHAT THIS LAYER MUST NOT DO:
============================
- Modify or delete a published snapshot
- Interpret, filter or aggregate records
- Decide which version a caller "meant" beyond the latest-version rule

BOUNDARY ENFORCEMENT:
=====================
- Snapshots are written once by ingestion and only read here
- The only write is the per-version proof file, which is regenerable
- The store is injected into engines, never looked up globally

LAYOUT (FileSnapshotStore):
===========================
    <data_dir>/corpus/<version>/<drug_key>_objects.json
    <data_dir>/corpus/<version>/<drug_key>_manifest.json
    <data_dir>/corpus/<version>/<drug_key>_stats.json      (optional)
    <data_dir>/proofs/<version>_proof.json
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import json
import logging
import os
import tempfile

from ..contracts.proofs import CorpusProof
from ..contracts.records import (
    AdverseEventRecord, DrugManifest, KnowledgeObject, drug_key
)

logger = logging.getLogger(__name__)

OBJECTS_SUFFIX = "_objects.json"
MANIFEST_SUFFIX = "_manifest.json"
STATS_SUFFIX = "_stats.json"
PROOF_SUFFIX = "_proof.json"


class SnapshotReadError(Exception):
    """A snapshot, manifest, stats or proof file exists but cannot be decoded."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Unreadable snapshot file {path}: {reason}")
        self.path = path
        self.reason = reason


def latest_of(versions: List[str]) -> Optional[str]:
    """Latest version: greatest name starting with 'v'."""
    candidates = sorted(v for v in versions if v.startswith("v"))
    return candidates[-1] if candidates else None


# =============================================================================
# STORAGE INTERFACE (Dependency Inversion)
# =============================================================================

class SnapshotStore:
    """
    Abstract snapshot store.

    Implementations differ only in where bytes come from; every
    implementation serves the same immutable view of a version.
    """

    def list_versions(self) -> List[str]:
        raise NotImplementedError

    def list_drugs(self, version: str) -> List[str]:
        raise NotImplementedError

    def load_objects(self, version: str, drug: Optional[str] = None) -> List[KnowledgeObject]:
        """Objects of one drug, or of the whole version when drug is None."""
        raise NotImplementedError

    def load_manifests(self, version: str) -> List[DrugManifest]:
        raise NotImplementedError

    def load_stats(self, version: str, drug: str) -> Optional[dict]:
        raise NotImplementedError

    def load_commitment(self, version: str) -> Optional[CorpusProof]:
        raise NotImplementedError

    def save_commitment(self, proof: CorpusProof) -> None:
        raise NotImplementedError

    def resolve_latest_version(self) -> Optional[str]:
        return latest_of(self.list_versions())

    def load_records(self, drug: str, version: str) -> List[AdverseEventRecord]:
        """Decoded records for a drug; undecodable content is skipped."""
        records = []
        for obj in self.load_objects(version, drug):
            record = obj.decode()
            if record is not None:
                records.append(record)
        return records

    def find_object(self, version: str, record_id: str) -> Optional[KnowledgeObject]:
        for obj in self.load_objects(version):
            if obj.id == record_id:
                return obj
        return None


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================

class InMemorySnapshotStore(SnapshotStore):
    """In-memory store for tests and embedding. Populate before reading."""

    def __init__(self):
        self._objects: Dict[str, Dict[str, Tuple[str, List[KnowledgeObject]]]] = {}
        self._manifests: Dict[str, List[DrugManifest]] = {}
        self._stats: Dict[Tuple[str, str], dict] = {}
        self._commitments: Dict[str, CorpusProof] = {}

    def add_objects(self, version: str, drug: str, objects: List[KnowledgeObject]) -> None:
        drugs = self._objects.setdefault(version, {})
        key = drug_key(drug)
        _, existing = drugs.get(key, (drug, []))
        drugs[key] = (drug, existing + list(objects))

    def add_manifest(self, manifest: DrugManifest) -> None:
        self._manifests.setdefault(manifest.version, []).append(manifest)

    def add_stats(self, version: str, drug: str, stats: dict) -> None:
        self._stats[(version, drug_key(drug))] = stats

    def list_versions(self) -> List[str]:
        return sorted(self._objects)

    def list_drugs(self, version: str) -> List[str]:
        drugs = self._objects.get(version, {})
        return [drugs[key][0] for key in sorted(drugs)]

    def load_objects(self, version: str, drug: Optional[str] = None) -> List[KnowledgeObject]:
        drugs = self._objects.get(version, {})
        if drug is not None:
            _, objects = drugs.get(drug_key(drug), (drug, []))
            return list(objects)
        result: List[KnowledgeObject] = []
        for key in sorted(drugs):
            result.extend(drugs[key][1])
        return result

    def load_manifests(self, version: str) -> List[DrugManifest]:
        return list(self._manifests.get(version, []))

    def load_stats(self, version: str, drug: str) -> Optional[dict]:
        return self._stats.get((version, drug_key(drug)))

    def load_commitment(self, version: str) -> Optional[CorpusProof]:
        return self._commitments.get(version)

    def save_commitment(self, proof: CorpusProof) -> None:
        self._commitments[proof.version] = proof


# =============================================================================
# FILE-BASED IMPLEMENTATION
# =============================================================================

class FileSnapshotStore(SnapshotStore):
    """Reads the on-disk layout written by batch ingestion."""

    def __init__(self, data_dir: str):
        self._data_dir = data_dir
        self._corpus_dir = os.path.join(data_dir, "corpus")
        self._proofs_dir = os.path.join(data_dir, "proofs")

    @property
    def data_dir(self) -> str:
        return self._data_dir

    def _version_dir(self, version: str) -> str:
        if os.sep in version or version in ("", ".", ".."):
            raise ValueError(f"Invalid version identifier: {version!r}")
        return os.path.join(self._corpus_dir, version)

    def _read_json(self, path: str):
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise SnapshotReadError(path, str(e)) from e

    def _decode(self, path: str, decode, raw):
        try:
            return decode(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SnapshotReadError(path, f"{type(e).__name__}: {e}") from e

    def _files_with_suffix(self, version: str, suffix: str) -> List[str]:
        version_dir = self._version_dir(version)
        if not os.path.isdir(version_dir):
            return []
        return sorted(name for name in os.listdir(version_dir) if name.endswith(suffix))

    def list_versions(self) -> List[str]:
        if not os.path.isdir(self._corpus_dir):
            return []
        return sorted(
            name for name in os.listdir(self._corpus_dir)
            if os.path.isdir(os.path.join(self._corpus_dir, name))
        )

    def list_drugs(self, version: str) -> List[str]:
        names = {m.drug for m in self.load_manifests(version)}
        drugs = []
        for filename in self._files_with_suffix(version, OBJECTS_SUFFIX):
            key = filename[:-len(OBJECTS_SUFFIX)]
            named = [n for n in names if drug_key(n) == key]
            drugs.append(named[0] if named else key)
        return drugs

    def load_objects(self, version: str, drug: Optional[str] = None) -> List[KnowledgeObject]:
        if drug is not None:
            filenames = [drug_key(drug) + OBJECTS_SUFFIX]
        else:
            filenames = self._files_with_suffix(version, OBJECTS_SUFFIX)

        objects: List[KnowledgeObject] = []
        for filename in filenames:
            path = os.path.join(self._version_dir(version), filename)
            if not os.path.exists(path):
                continue
            raw = self._read_json(path)
            if not isinstance(raw, list):
                raise SnapshotReadError(path, "expected a JSON array of objects")
            objects.extend(self._decode(path, lambda items: [KnowledgeObject.from_dict(i) for i in items], raw))
            logger.debug("Loaded %d objects from %s", len(raw), path)
        return objects

    def load_manifests(self, version: str) -> List[DrugManifest]:
        manifests = []
        for filename in self._files_with_suffix(version, MANIFEST_SUFFIX):
            path = os.path.join(self._version_dir(version), filename)
            manifests.append(self._decode(path, DrugManifest.from_dict, self._read_json(path)))
        return manifests

    def load_stats(self, version: str, drug: str) -> Optional[dict]:
        path = os.path.join(self._version_dir(version), drug_key(drug) + STATS_SUFFIX)
        if not os.path.exists(path):
            return None
        return self._read_json(path)

    def _proof_path(self, version: str) -> str:
        self._version_dir(version)
        return os.path.join(self._proofs_dir, version + PROOF_SUFFIX)

    def load_commitment(self, version: str) -> Optional[CorpusProof]:
        path = self._proof_path(version)
        if not os.path.exists(path):
            return None
        return self._decode(path, CorpusProof.from_dict, self._read_json(path))

    def save_commitment(self, proof: CorpusProof) -> None:
        """Atomic replace so readers never see a half-written proof file."""
        os.makedirs(self._proofs_dir, exist_ok=True)
        path = self._proof_path(proof.version)
        fd, tmp_path = tempfile.mkstemp(dir=self._proofs_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(proof.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info("Wrote commitment for %s to %s", proof.version, path)
