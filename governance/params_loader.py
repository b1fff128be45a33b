"""
Parameters Archive Loader

Loads risk index scoring parameters from versioned archive files
(params_archive/<version>.json) into an immutable RiskIndexConfig and
computes parameters_hash for the audit trail.

Fail-closed: a missing, oversized, symlinked or invalid params file stops
the run. There is no silent fallback to built-in defaults.
"""

import json
import logging
import os
import tempfile
from dataclasses import fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from governance.canonical_json import canonical_dumps
from governance.hashing import hash_canonical_json_short
from scoring.config import RiskIndexConfig

logger = logging.getLogger(__name__)

# Default params archive directory (relative to repo root)
DEFAULT_PARAMS_DIR = "params_archive"

MAX_PARAMS_FILE_BYTES = 1024 * 1024

_LEVEL_KEYS = ("High", "Medium", "Low")


class ParamsLoadError(Exception):
    """Error loading parameters from archive."""
    pass


class ParamsValidationError(ParamsLoadError):
    """Error validating parameters against the RiskIndexConfig schema."""
    pass


def get_params_path(
    version: str,
    params_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Path to the parameters file for a scoring version.

    Args:
        version: Scoring version (e.g., "2.0")
        params_dir: Optional override for params directory

    Raises:
        ParamsLoadError: If the version string could escape the directory
    """
    if not version or "/" in version or "\\" in version or version.startswith("."):
        raise ParamsLoadError(f"Invalid parameters version: {version!r}")

    if params_dir is None:
        params_dir = Path(__file__).parent.parent / DEFAULT_PARAMS_DIR

    return Path(params_dir) / f"{version}.json"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def validate_params_structure(params: Any) -> List[str]:
    """
    Check a parameter mapping against the RiskIndexConfig fields.

    Returns:
        List of error messages (empty when valid)
    """
    if not isinstance(params, dict):
        return [f"Parameters must be a JSON object, got {type(params).__name__}"]

    errors = []
    schema = {f.name: f for f in fields(RiskIndexConfig)}
    defaults = RiskIndexConfig()

    missing = sorted(set(schema) - set(params))
    if missing:
        errors.append(f"Missing required parameters: {missing}")
    unknown = sorted(set(params) - set(schema))
    if unknown:
        errors.append(f"Unknown parameters: {unknown}")

    for name in sorted(set(schema) & set(params)):
        value = params[name]
        default = getattr(defaults, name)
        if isinstance(default, Mapping):
            if not isinstance(value, dict) or sorted(value) != sorted(_LEVEL_KEYS):
                errors.append(f"{name} must be an object with keys {list(_LEVEL_KEYS)}")
            elif not all(_is_number(v) for v in value.values()):
                errors.append(f"{name} values must be numbers")
        elif isinstance(default, str):
            if not isinstance(value, str) or not value.strip():
                errors.append(f"{name} must be a non-empty string")
        elif isinstance(default, int):
            if not isinstance(value, int) or isinstance(value, bool):
                errors.append(f"{name} must be an integer")
        elif not _is_number(value):
            errors.append(f"{name} must be a number")

    if not errors:
        if not (params["band_low_max"] < params["band_moderate_max"] < params["band_elevated_max"]):
            errors.append("band thresholds must be strictly increasing")

    return errors


def compute_parameters_hash(params: Dict[str, Any], length: int = 16) -> str:
    """Truncated canonical-JSON hash of a parameter mapping."""
    return hash_canonical_json_short(params, length=length)


def load_params(
    version: str,
    params_dir: Optional[Union[str, Path]] = None,
) -> Tuple[Dict[str, Any], str]:
    """
    Load and validate a parameter mapping from the archive.

    Numbers are parsed as Decimal so 0.35 stays exactly 0.35.

    Returns:
        Tuple of (params_dict, parameters_hash)

    Raises:
        ParamsLoadError: If params file missing, oversized, a symlink or not JSON
        ParamsValidationError: If params do not match the config schema
    """
    params_path = get_params_path(version, params_dir)

    if params_path.is_symlink():
        raise ParamsLoadError(
            f"Parameters file is a symbolic link (security risk): {params_path}"
        )

    if not params_path.is_file():
        raise ParamsLoadError(
            f"Parameters file not found: {params_path}. "
            f"Create {params_path} with scoring parameters for version '{version}'."
        )

    size = params_path.stat().st_size
    if size > MAX_PARAMS_FILE_BYTES:
        raise ParamsLoadError(
            f"Parameters file too large: {size} bytes (max {MAX_PARAMS_FILE_BYTES})"
        )

    try:
        with open(params_path, 'r', encoding='utf-8') as f:
            params = json.load(f, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise ParamsLoadError(f"Invalid JSON in {params_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ParamsLoadError(f"Invalid encoding in {params_path}: {e}") from e
    except OSError as e:
        raise ParamsLoadError(f"Error reading {params_path}: {e}") from e

    errors = validate_params_structure(params)
    if errors:
        raise ParamsValidationError(
            f"Parameters fail validation for {params_path}: {'; '.join(errors[:5])}"
        )

    if str(params["version"]).strip() != version:
        raise ParamsValidationError(
            f"Parameters file {params_path} declares version {params['version']!r}, expected {version!r}"
        )

    return params, compute_parameters_hash(params)


def load_risk_index_config(
    version: str,
    params_dir: Optional[Union[str, Path]] = None,
) -> Tuple[RiskIndexConfig, str]:
    """
    Load a RiskIndexConfig for a scoring version from the archive.

    Args:
        version: Scoring version (e.g., "2.0")
        params_dir: Optional override for params directory

    Returns:
        Tuple of (config, parameters_hash)

    Raises:
        ParamsLoadError / ParamsValidationError: fail-closed on any problem
    """
    params, params_hash = load_params(version, params_dir)
    try:
        config = RiskIndexConfig.from_dict(params)
    except (KeyError, TypeError, ValueError, ArithmeticError) as e:
        raise ParamsValidationError(f"Cannot build config for version {version!r}: {e}") from e

    logger.info("Loaded risk index parameters %s (hash: %s)", version, params_hash)
    return config, params_hash


def save_params(
    config: RiskIndexConfig,
    params_dir: Optional[Union[str, Path]] = None,
) -> Tuple[Path, str]:
    """
    Archive a config as canonical JSON, written atomically.

    Returns:
        Tuple of (path, parameters_hash)
    """
    params = config.to_dict()
    errors = validate_params_structure(params)
    if errors:
        raise ParamsValidationError(f"Cannot save invalid parameters: {'; '.join(errors[:5])}")

    params_path = get_params_path(config.version, params_dir)
    params_path.parent.mkdir(parents=True, exist_ok=True)

    content = canonical_dumps(params)

    fd, tmp_path = tempfile.mkstemp(
        dir=params_path.parent,
        prefix='.tmp_params_',
        suffix='.json'
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
        Path(tmp_path).replace(params_path)
    except OSError:
        Path(tmp_path).unlink(missing_ok=True)
        raise

    params_hash = compute_parameters_hash(params)
    logger.debug("Saved parameters to %s (hash: %s)", params_path, params_hash)
    return params_path, params_hash
