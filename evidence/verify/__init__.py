"""
Commitment & Proof Layer

Pure functions over leaf digests. Safe to call concurrently across
snapshots; nothing here holds state.
"""

from .merkle import (
    EmptyCorpusError,
    MerkleNode,
    MerkleTree,
    hash_pair,
    build_merkle_tree,
    generate_proof,
    verify_proof,
    snapshot_leaf_hashes,
    create_corpus_proof,
    verify_record_proof,
)

__all__ = [
    'EmptyCorpusError',
    'MerkleNode',
    'MerkleTree',
    'hash_pair',
    'build_merkle_tree',
    'generate_proof',
    'verify_proof',
    'snapshot_leaf_hashes',
    'create_corpus_proof',
    'verify_record_proof',
]
