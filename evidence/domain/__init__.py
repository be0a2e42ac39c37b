"""Domain helpers shared by every layer: canonical encoding and digests."""

from .serialization import (
    StrictForensicEncoder,
    canonical_json,
    sha256_hex,
    digest_of,
    round_half_up,
    percent_of,
)

__all__ = [
    'StrictForensicEncoder',
    'canonical_json',
    'sha256_hex',
    'digest_of',
    'round_half_up',
    'percent_of',
]
