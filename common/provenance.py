"""
Provenance tracking for deterministic outputs.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from governance.hashing import prefixed_hash

# Fields excluded from hash computation (non-deterministic)
HASH_EXCLUDED_FIELDS = frozenset([
    "loaded_at",
    "generated_at",
    "timestamp",
    "runtime_ms",
])


def _clean(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items() if k not in HASH_EXCLUDED_FIELDS}
    if isinstance(value, (list, tuple)):
        return [_clean(v) for v in value]
    return value


def compute_hash(data: Any) -> str:
    """
    Deterministic "sha256:<hex>" hash of data.

    Keys in HASH_EXCLUDED_FIELDS are dropped at every nesting level, so a
    re-run at a different wall-clock time hashes identically.
    """
    return prefixed_hash(_clean(data))


def create_provenance(
    risk_index_version: str,
    inputs: Dict[str, Any],
    as_of: Optional[str] = None,
    parameters_hash: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create provenance record for a scoring or aggregation output.

    Args:
        risk_index_version: Scoring version used
        inputs: Input data for hash computation
        as_of: Reference timestamp used for staleness and decay
        parameters_hash: Hash of the parameter set the engine ran with

    Returns:
        Dict with risk_index_version, inputs_hash, as_of, parameters_hash
    """
    return {
        "risk_index_version": risk_index_version,
        "inputs_hash": compute_hash(inputs),
        "as_of": as_of,
        "parameters_hash": parameters_hash,
    }
