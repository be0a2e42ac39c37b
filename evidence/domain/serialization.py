import hashlib
import json
import math
from dataclasses import asdict
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any


class StrictForensicEncoder(json.JSONEncoder):
    """
    JSON Encoder that prioritizes Fidelity over Flexibility.

    RULES:
    1. Dates MUST be ISO 8601 strings (UTC).
    2. Enums MUST use their .value.
    3. Decimals are emitted as strings so no precision is lost in a digest.
    4. Sets -> Lists (sorted for determinism).
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(list(obj))
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if hasattr(obj, "__dataclass_fields__"):
            return asdict(obj)

        return super().default(obj)


def canonical_json(obj: Any) -> str:
    """
    Canonical encoding used for every digest in the system.

    Keys are sorted, separators carry no whitespace and non-ASCII text is
    kept as UTF-8, so two equal inputs always produce identical bytes.
    """
    return json.dumps(
        obj,
        cls=StrictForensicEncoder,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def digest_of(obj: Any) -> str:
    """sha256 hex digest of the canonical encoding of obj."""
    return sha256_hex(canonical_json(obj))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def percent_of(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(part / total * 100)
