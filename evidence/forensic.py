"""
Forensic Reporter CLI
=====================

Tool for forensic verification of published evidence snapshots.
Reads the data directory directly; no server required.

COMMANDS:
- versions:      List snapshot versions and their published roots
- prove:         Build and persist the commitment for a version
- prove-record:  Emit the inclusion proof for one record
- verify-proof:  Check a record proof file against a published root (exit 0/1)
- query:         Run a guided query
- compare:       Compare two parameter sets on one pinned version
- stats:         Descriptive counts for one drug

USAGE:
    python -m evidence.forensic [--data-dir DIR] [COMMAND] [ARGS]
"""
import argparse
import json
import os
import sys
from dataclasses import replace
from typing import List, Optional

from .contracts.base import Error
from .contracts.proofs import RecordProof
from .engine import BackendConfig, EvidenceBackend
from .observability import configure_logging
from .storage import FileSnapshotStore, SnapshotReadError, latest_of


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True))


def _fail(error: Error) -> int:
    print(f"[FAIL] {error.code.name}: {error.message}")
    return 1


def cmd_versions(args, backend: EvidenceBackend) -> int:
    versions = backend.list_versions()
    if not versions:
        print("[!] No corpus versions found.")
        return 1
    latest = latest_of(versions)
    for version in versions:
        try:
            commitment = backend.store.load_commitment(version)
        except SnapshotReadError:
            root = "(unreadable proof file)"
        else:
            root = commitment.root_hash if commitment else "(no proof file)"
        marker = "*" if version == latest else " "
        print(f"{marker} {version}  {root}")
    return 0


def cmd_prove(args, backend: EvidenceBackend) -> int:
    print(f"[*] Building commitment for: {args.version or 'latest'}")
    result = backend.build_proof(args.version)
    if result.is_failure:
        return _fail(result.error)
    proof = result.value
    print(f"[PASS] {proof.version}: {proof.leaf_count} leaves")
    print(f"[INFO] Root: {proof.root_hash}")
    return 0


def cmd_prove_record(args, backend: EvidenceBackend) -> int:
    result = backend.prove_record(args.record_id, args.version)
    if result.is_failure:
        return _fail(result.error)
    document = result.value.to_dict()
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
        print(f"[*] Wrote proof for {args.record_id} to {args.out}")
    else:
        _print_json(document)
    return 0


def cmd_verify_proof(args, backend: EvidenceBackend) -> int:
    print(f"[*] Verifying record proof: {args.file}")
    try:
        with open(args.file, "r", encoding="utf-8") as f:
            record_proof = RecordProof.from_dict(json.load(f))
    except (OSError, ValueError, KeyError) as e:
        print(f"[FAIL] Unreadable proof file: {e}")
        return 1

    valid, reason = backend.verify_record(record_proof, published_root=args.root)
    if valid:
        print(f"[PASS] Record {record_proof.record_id} is included in {record_proof.version or 'the published root'}.")
        return 0
    print(f"[FAIL] {reason}")
    return 1


def cmd_query(args, backend: EvidenceBackend) -> int:
    params = {
        "drug": args.drug,
        "sex": args.sex,
        "age_group": args.age_group,
        "serious": args.serious,
        "reaction": args.reaction,
        "version": args.version,
    }
    result = backend.run_guided_query(params)
    if result.is_failure:
        return _fail(result.error)
    _print_json(result.value.to_dict())
    return 0


def cmd_compare(args, backend: EvidenceBackend) -> int:
    try:
        group_a = json.loads(args.group_a)
        group_b = json.loads(args.group_b)
    except ValueError as e:
        print(f"[FAIL] Groups must be JSON objects: {e}")
        return 1
    if not isinstance(group_a, dict) or not isinstance(group_b, dict):
        print("[FAIL] Groups must be JSON objects")
        return 1
    result = backend.run_compare_query(group_a, group_b)
    if result.is_failure:
        return _fail(result.error)
    _print_json(result.value.to_dict())
    return 0


def cmd_stats(args, backend: EvidenceBackend) -> int:
    result = backend.drug_statistics(args.drug, args.version)
    if result.is_failure:
        return _fail(result.error)
    _print_json(result.value.to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forensic Reporter")
    parser.add_argument(
        "--data-dir",
        default=os.environ.get("EVE_DATA_DIR", "./data"),
        help="Path to data directory (corpus/ and proofs/)",
    )
    parser.add_argument("--log-level", default="WARNING")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("versions", help="List versions")

    prove = subparsers.add_parser("prove", help="Build and persist commitment")
    prove.add_argument("--version")

    prove_record = subparsers.add_parser("prove-record", help="Inclusion proof for one record")
    prove_record.add_argument("record_id")
    prove_record.add_argument("--version")
    prove_record.add_argument("--out", help="Write proof JSON to this file")

    verify = subparsers.add_parser("verify-proof", help="Verify a record proof file")
    verify.add_argument("file")
    verify.add_argument("--root", help="Published root hash (default: the version's proof file)")

    query = subparsers.add_parser("query", help="Guided query")
    query.add_argument("--drug", required=True)
    query.add_argument("--sex")
    query.add_argument("--age-group")
    serious = query.add_mutually_exclusive_group()
    serious.add_argument("--serious", dest="serious", action="store_const", const=True)
    serious.add_argument("--non-serious", dest="serious", action="store_const", const=False)
    query.add_argument("--reaction")
    query.add_argument("--version")

    compare = subparsers.add_parser("compare", help="Compare two groups")
    compare.add_argument("group_a", help='JSON, e.g. {"drug": "metformin", "sex": "Female"}')
    compare.add_argument("group_b", help='JSON, e.g. {"drug": "metformin", "sex": "Male"}')

    stats = subparsers.add_parser("stats", help="Descriptive counts for one drug")
    stats.add_argument("drug")
    stats.add_argument("--version")

    return parser


COMMANDS = {
    "versions": cmd_versions,
    "prove": cmd_prove,
    "prove-record": cmd_prove_record,
    "verify-proof": cmd_verify_proof,
    "query": cmd_query,
    "compare": cmd_compare,
    "stats": cmd_stats,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    configure_logging(args.log_level)
    config = replace(BackendConfig.from_env(), data_dir=args.data_dir, offline_mode=True)
    backend = EvidenceBackend(FileSnapshotStore(args.data_dir), config)
    return handler(args, backend)


if __name__ == "__main__":
    sys.exit(main())
