"""
Schema Version Registry

Centralized version constants for:
- Risk index scoring version (the engine's current parameter set)
- Output schema versions for each serialized result type

Provides lookup helpers for reporting them.
"""

from typing import Any, Dict

from scoring.config import RISK_INDEX_VERSION

# =============================================================================
# VERSION CONSTANTS
# =============================================================================

# Schema version - bump when output structure changes
SCHEMA_VERSION = "1.0.0"

# Output-specific schema versions
OUTPUT_SCHEMA_VERSIONS = {
    "risk_index_result": "1.0.0",
    "portfolio_summary": "1.0.0",
    "backtest_metrics": "1.0.0",
    "model_metadata": "1.0.0",
}

# Scoring versions with an archived parameter set
SUPPORTED_RISK_INDEX_VERSIONS = ["2.0"]


def get_schema_info() -> Dict[str, Any]:
    """All schema/version information."""
    return {
        "schema_version": SCHEMA_VERSION,
        "risk_index_version": RISK_INDEX_VERSION,
        "supported_risk_index_versions": list(SUPPORTED_RISK_INDEX_VERSIONS),
        "output_schema_versions": dict(OUTPUT_SCHEMA_VERSIONS),
    }


def get_output_schema_version(output_type: str) -> str:
    """
    Schema version for a specific output type.

    Raises:
        KeyError: If output_type is not recognized
    """
    if output_type not in OUTPUT_SCHEMA_VERSIONS:
        raise KeyError(f"Unknown output type: {output_type}. Known types: {list(OUTPUT_SCHEMA_VERSIONS.keys())}")
    return OUTPUT_SCHEMA_VERSIONS[output_type]
