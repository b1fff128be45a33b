"""
common/snapshot_io.py - JSON snapshot input and canonical output for runners.

Snapshots are plain JSON objects exported by the persistence layer. Reading
fails loudly with InputFileError; writing always goes through canonical JSON
so two runs over the same snapshot produce byte-identical files.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from governance.canonical_json import canonical_dumps

logger = logging.getLogger(__name__)

MAX_SNAPSHOT_BYTES = 256 * 1024 * 1024


class InputFileError(Exception):
    """Unreadable, oversized or malformed snapshot file."""
    pass


def read_json_snapshot(
    path: Union[str, Path],
    required_keys: Iterable[str] = (),
) -> Dict[str, Any]:
    """
    Load a JSON object snapshot.

    Args:
        path: Snapshot file path
        required_keys: Top-level keys that must be present

    Returns:
        The parsed object

    Raises:
        InputFileError: If the file is missing, too large, not JSON, not an
            object, or lacks a required key
    """
    path = Path(path)
    if not path.is_file():
        raise InputFileError(f"Input file not found: {path}")
    size = path.stat().st_size
    if size > MAX_SNAPSHOT_BYTES:
        raise InputFileError(f"Input file too large: {path} ({size} bytes)")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InputFileError(f"Invalid JSON in {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise InputFileError(f"Error reading {path}: {e}") from e

    if not isinstance(data, dict):
        raise InputFileError(f"Snapshot must be a JSON object, got {type(data).__name__}")

    missing = [k for k in required_keys if k not in data]
    if missing:
        raise InputFileError(f"Snapshot {path} missing required keys: {missing}")

    logger.debug("Loaded snapshot %s (%d bytes)", path, size)
    return data


def write_canonical_output(path: Union[str, Path], obj: Any) -> Path:
    """Write `obj` as canonical JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = canonical_dumps(obj)
    path.write_text(content, encoding="utf-8")
    logger.info("Wrote %s (%d bytes)", path, len(content.encode("utf-8")))
    return path
