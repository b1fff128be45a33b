"""
Governance Module - Deterministic Output and Parameter Lineage

Provides:
- Canonical JSON serialization for byte-identical outputs
- SHA256 hashing for files and JSON objects
- Schema version registry
- Parameters archive loading (fail-closed)
- Risk model governance metadata

All operations are deterministic: same inputs produce identical outputs.
"""

from governance.hashing import (
    hash_file,
    hash_bytes,
    hash_canonical_json,
    hash_canonical_json_short,
    prefixed_hash,
    verify_file_hash,
)
from governance.canonical_json import (
    canonical_dumps,
    canonical_dump,
    validate_canonical_json,
)
from governance.schema_registry import (
    SCHEMA_VERSION,
    OUTPUT_SCHEMA_VERSIONS,
    SUPPORTED_RISK_INDEX_VERSIONS,
    get_schema_info,
    get_output_schema_version,
)
from governance.params_loader import (
    load_params,
    load_risk_index_config,
    compute_parameters_hash,
    save_params,
    ParamsLoadError,
    ParamsValidationError,
)
from governance.model_metadata import (
    ModelMetadata,
    get_model_metadata,
    parameters_hash,
)

__all__ = [
    # Hashing
    "hash_file",
    "hash_bytes",
    "hash_canonical_json",
    "hash_canonical_json_short",
    "prefixed_hash",
    "verify_file_hash",
    # Canonical JSON
    "canonical_dumps",
    "canonical_dump",
    "validate_canonical_json",
    # Schema
    "SCHEMA_VERSION",
    "OUTPUT_SCHEMA_VERSIONS",
    "SUPPORTED_RISK_INDEX_VERSIONS",
    "get_schema_info",
    "get_output_schema_version",
    # Params
    "load_params",
    "load_risk_index_config",
    "compute_parameters_hash",
    "save_params",
    "ParamsLoadError",
    "ParamsValidationError",
    # Model metadata
    "ModelMetadata",
    "get_model_metadata",
    "parameters_hash",
]
