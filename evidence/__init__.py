"""
Verifiable Evidence Query Engine

This package answers structured queries against versioned, immutable
snapshots of adverse-event reports and lets an untrusting party re-verify
any cited record against a published Merkle root hash.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Frozen data types, error codes and the Result type
   - MUST NOT: Import from any other layer

2. SNAPSHOT STORE (storage/)
   - Responsibility: Read-only access to one immutable snapshot per version
   - Outputs: KnowledgeObjects, decoded event records, commitments
   - MUST NOT: Modify a published version

3. COMMITMENT & PROOFS (verify/)
   - Responsibility: Merkle tree, inclusion proofs, offline verification
   - MUST NOT: Touch the network or the store

4. QUERY & COMPARE (query/)
   - Responsibility: Deterministic filter + aggregate, descriptive deltas
   - MUST NOT: Interpret, rank by importance, or infer causality

5. WITNESS GUARD (witness/)
   - Responsibility: Block advisory phrasing in generated text

6. ESCALATION (escalation/)
   - Responsibility: Template answers first, generative fallbacks after
   - MUST NOT: Return unverified text that has not passed the witness guard

7. OBSERVABILITY (observability/)
   - Responsibility: Logging configuration and append-only audit logs

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: snapshots and contracts are never mutated
- Deterministic: identical parameters over one version give identical hashes
- Explicit errors: every failure is a typed Error, never a partial success
"""

__version__ = "1.0.0"
