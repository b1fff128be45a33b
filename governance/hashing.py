"""
Cryptographic Hashing for Governance

SHA256 digests over:
- Raw bytes and files (parameter archives, input snapshots)
- Canonical JSON of results (RiskIndexResult.content_hash, summaries)

All hashes are lowercase hex strings. The "sha256:"-prefixed form used in
provenance records is produced by prefixed_hash().
"""

import hashlib
from pathlib import Path
from typing import Any, Union

from governance.canonical_json import canonical_dumps

HASH_PREFIX = "sha256:"


def hash_bytes(data: bytes) -> str:
    """Lowercase hex SHA256 of raw bytes (64 characters)."""
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Union[str, Path]) -> str:
    """
    SHA256 of file contents.

    Raises:
        FileNotFoundError: If file does not exist
    """
    return hash_bytes(Path(path).read_bytes())


def hash_canonical_json(obj: Any) -> str:
    """
    SHA256 of the compact canonical JSON form of `obj`.

    Two results that are equal field-by-field hash identically, whatever
    the Decimal exponent or dict insertion order.

    Raises:
        ValueError: If obj contains NaN or Inf
        TypeError: If obj contains non-serializable types
    """
    canonical = canonical_dumps(obj, indent=None)
    return hash_bytes(canonical.encode('utf-8'))


def hash_canonical_json_short(obj: Any, length: int = 16) -> str:
    """Truncated canonical-JSON hash (for log lines and run ids)."""
    return hash_canonical_json(obj)[:length]


def prefixed_hash(obj: Any) -> str:
    """Canonical-JSON hash in "sha256:<hex>" form."""
    return HASH_PREFIX + hash_canonical_json(obj)


def verify_file_hash(path: Union[str, Path], expected_hash: str) -> bool:
    """
    True when the file's hash matches `expected_hash`.

    Accepts the bare hex form, the "sha256:" form, or a hex prefix.
    """
    expected = expected_hash.lower()
    if expected.startswith(HASH_PREFIX):
        expected = expected[len(HASH_PREFIX):]
    return hash_file(path).startswith(expected)
