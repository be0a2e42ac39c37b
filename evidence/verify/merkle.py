"""
Merkle Commitment & Inclusion Proofs

RESPONSIBILITY: Commit a snapshot to one root hash; prove and verify
membership of single records against that root.

WHAT THIS LAYER MUST NOT DO:
============================
- Read the store or touch the network
- Reorder leaves (callers supply the canonical order)
- Hold any state between calls

TREE SHAPE:
===========
Each input digest IS a leaf node. Adjacent nodes are paired left to right
with hash_pair(l, r) = sha256(l + r) over the hex strings. An odd trailing
node is paired with itself, and its proof records itself as the right
sibling so every leaf verifies.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
import hashlib

from ..contracts.base import ErrorCode
from ..contracts.proofs import (
    CorpusProof, MerkleProof, ProofStep, SiblingPosition, LEAF_ORDER_SORTED
)
from ..contracts.records import KnowledgeObject


class EmptyCorpusError(ValueError):
    """A commitment was requested over zero leaves."""

    code = ErrorCode.EMPTY_CORPUS

    def __init__(self, message: str = "Cannot build a Merkle tree over an empty corpus"):
        super().__init__(message)


def hash_pair(left: str, right: str) -> str:
    return hashlib.sha256((left + right).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class MerkleNode:
    hash: str
    left: Optional[MerkleNode] = None
    right: Optional[MerkleNode] = None
    duplicated: bool = False  # right is the left node paired with itself

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


@dataclass(frozen=True)
class MerkleTree:
    root: MerkleNode
    leaf_count: int

    @property
    def root_hash(self) -> str:
        return self.root.hash

    @staticmethod
    def build(leaf_hashes: Sequence[str]) -> MerkleTree:
        return MerkleTree(root=build_merkle_tree(leaf_hashes), leaf_count=len(leaf_hashes))


def build_merkle_tree(leaf_hashes: Sequence[str]) -> MerkleNode:
    """Build the tree bottom-up. Raises EmptyCorpusError on no leaves."""
    if not leaf_hashes:
        raise EmptyCorpusError()

    level: List[MerkleNode] = [MerkleNode(hash=h) for h in leaf_hashes]
    while len(level) > 1:
        parents: List[MerkleNode] = []
        for i in range(0, len(level), 2):
            left = level[i]
            if i + 1 < len(level):
                right = level[i + 1]
                parents.append(MerkleNode(hash=hash_pair(left.hash, right.hash), left=left, right=right))
            else:
                parents.append(MerkleNode(
                    hash=hash_pair(left.hash, left.hash), left=left, right=left, duplicated=True
                ))
        level = parents
    return level[0]


def generate_proof(tree: MerkleTree, leaf_hash: str) -> Optional[MerkleProof]:
    """
    Depth-first search for the leaf; collects siblings on the way back up.

    Returns None when the leaf is not in the tree (distinct from a proof
    that fails verification). Duplicate leaves resolve to the leftmost.
    """
    steps: List[ProofStep] = []

    def find(node: MerkleNode) -> bool:
        if node.is_leaf:
            return node.hash == leaf_hash
        if node.left is not None and find(node.left):
            if node.right is not None:
                steps.append(ProofStep(hash=node.right.hash, position=SiblingPosition.RIGHT))
            return True
        if node.right is not None and not node.duplicated and find(node.right):
            steps.append(ProofStep(hash=node.left.hash, position=SiblingPosition.LEFT))
            return True
        return False

    if not find(tree.root):
        return None
    # Steps were appended on unwind, so they already run leaf to root.
    return MerkleProof(leaf=leaf_hash, root=tree.root_hash, path=tuple(steps))


def verify_proof(proof: MerkleProof) -> bool:
    """Pure offline fold of the path; true iff it reproduces proof.root."""
    current = proof.leaf
    for step in proof.path:
        if step.position is SiblingPosition.LEFT:
            current = hash_pair(step.hash, current)
        else:
            current = hash_pair(current, step.hash)
    return current == proof.root


# =============================================================================
# SNAPSHOT COMMITMENTS
# =============================================================================

def snapshot_leaf_hashes(objects: Iterable[KnowledgeObject]) -> List[str]:
    """Canonical leaf order: every content_hash, sorted ascending."""
    return sorted(obj.content_hash for obj in objects)


def create_corpus_proof(version: str, objects: Sequence[KnowledgeObject], created_at: str) -> Tuple[CorpusProof, MerkleTree]:
    tree = MerkleTree.build(snapshot_leaf_hashes(objects))
    proof = CorpusProof(
        version=version,
        root_hash=tree.root_hash,
        leaf_count=tree.leaf_count,
        created_at=created_at,
        leaf_order=LEAF_ORDER_SORTED,
    )
    return proof, tree


def verify_record_proof(obj: KnowledgeObject, proof: MerkleProof, published_root: str) -> Tuple[bool, Optional[str]]:
    """
    Check a cited record against a published root.

    Returns (ok, reason). The content digest is recomputed here rather than
    trusting the stored content_hash.
    """
    if not obj.verify_integrity():
        return False, "content_hash does not match content"
    if obj.content_hash != proof.leaf:
        return False, "proof leaf does not match content_hash"
    if proof.root != published_root:
        return False, "proof root does not match published root"
    if not verify_proof(proof):
        return False, "proof path does not reproduce root"
    return True, None
