"""
Commitment Contracts

Proof documents exchanged with third parties. A MerkleProof is
self-contained: it can be verified with nothing but itself and the
published root hash.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


# Canonical leaf order of a snapshot: content_hash of every
# KnowledgeObject in the version, sorted ascending.
LEAF_ORDER_SORTED = "sorted-content-hash"


class SiblingPosition(Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class ProofStep:
    hash: str
    position: SiblingPosition

    def to_dict(self) -> dict:
        return {"hash": self.hash, "position": self.position.value}

    @staticmethod
    def from_dict(data: dict) -> ProofStep:
        return ProofStep(hash=str(data["hash"]), position=SiblingPosition(data["position"]))


@dataclass(frozen=True)
class MerkleProof:
    """Path from a leaf to the root, ordered leaf first."""
    leaf: str
    root: str
    path: Tuple[ProofStep, ...]

    def to_dict(self) -> dict:
        return {
            "leaf": self.leaf,
            "root": self.root,
            "path": [step.to_dict() for step in self.path],
        }

    @staticmethod
    def from_dict(data: dict) -> MerkleProof:
        return MerkleProof(
            leaf=str(data["leaf"]),
            root=str(data["root"]),
            path=tuple(ProofStep.from_dict(step) for step in data.get("path", [])),
        )


@dataclass(frozen=True)
class CorpusProof:
    """
    Per-version commitment file.

    Regenerable from the snapshot at any time; a cache, not a second
    source of truth.
    """
    version: str
    root_hash: str
    leaf_count: int
    created_at: str
    leaf_order: str = LEAF_ORDER_SORTED

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "root_hash": self.root_hash,
            "leaf_count": self.leaf_count,
            "created_at": self.created_at,
            "leaf_order": self.leaf_order,
        }

    @staticmethod
    def from_dict(data: dict) -> CorpusProof:
        return CorpusProof(
            version=str(data["version"]),
            root_hash=str(data["root_hash"]),
            leaf_count=int(data.get("leaf_count", data.get("item_count", 0))),
            created_at=str(data.get("created_at", "")),
            leaf_order=str(data.get("leaf_order", LEAF_ORDER_SORTED)),
        )


@dataclass(frozen=True)
class RecordProof:
    """A cited record together with its inclusion proof."""
    version: str
    record_id: str
    content: str
    content_hash: str
    proof: MerkleProof
    record_source_uri: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "record_id": self.record_id,
            "content": self.content,
            "content_hash": self.content_hash,
            "source_uri": self.record_source_uri,
            "proof": self.proof.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict) -> RecordProof:
        return RecordProof(
            version=str(data["version"]),
            record_id=str(data["record_id"]),
            content=str(data["content"]),
            content_hash=str(data["content_hash"]),
            proof=MerkleProof.from_dict(data["proof"]),
            record_source_uri=data.get("source_uri"),
        )
