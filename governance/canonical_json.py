"""
Canonical JSON Serialization

Produces byte-identical JSON for identical risk index results, portfolio
summaries and parameter archives, so outputs can be compared by hash.

Rules:
1. All dict keys sorted recursively
2. Decimal rendered exactly: integral values as ints, others as their
   shortest float form (never scientific notation for normal ranges)
3. NaN and Inf are forbidden (raise ValueError)
4. Lists are NOT reordered (caller must sort semantic lists)
5. Value objects serialize through their to_dict(); str Enums through value
6. Dates and datetimes as ISO-8601 strings; sets as sorted lists
7. Output ends with trailing newline
"""

import json
import math
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, IO, Optional


class CanonicalJSONEncoder(json.JSONEncoder):
    """
    JSON encoder that produces deterministic, canonical output.

    Accepts the value objects of this package directly: anything exposing
    to_dict() is serialized through it.
    """

    # Maximum decimal places for float formatting
    FLOAT_PRECISION = 10

    def encode(self, o: Any) -> str:
        return super().encode(self._canonicalize(o))

    def _canonicalize(self, obj: Any) -> Any:
        if isinstance(obj, bool) or obj is None:
            return obj
        if isinstance(obj, Enum):
            return self._canonicalize(obj.value)
        if isinstance(obj, dict):
            return {str(k): self._canonicalize(v) for k, v in sorted(obj.items(), key=lambda i: str(i[0]))}
        if isinstance(obj, (list, tuple)):
            return [self._canonicalize(item) for item in obj]
        if isinstance(obj, (set, frozenset)):
            return [self._canonicalize(item) for item in sorted(obj, key=str)]
        if isinstance(obj, Decimal):
            return self._format_decimal(obj)
        if isinstance(obj, float):
            return self._format_float(obj)
        if isinstance(obj, (int, str)):
            return obj
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if callable(getattr(obj, "to_dict", None)):
            return self._canonicalize(obj.to_dict())
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

    def _format_float(self, value: float) -> Any:
        if math.isnan(value):
            raise ValueError("NaN values are not allowed in canonical JSON")
        if math.isinf(value):
            raise ValueError("Infinity values are not allowed in canonical JSON")

        if value == 0.0:
            return 0
        if value == int(value) and abs(value) < 2**53:
            return int(value)

        formatted = f"{value:.{self.FLOAT_PRECISION}f}".rstrip("0")
        if formatted.endswith("."):
            formatted += "0"
        return float(formatted)

    def _format_decimal(self, value: Decimal) -> Any:
        if value.is_nan():
            raise ValueError("NaN values are not allowed in canonical JSON")
        if value.is_infinite():
            raise ValueError("Infinity values are not allowed in canonical JSON")

        # Decimal("1.00") and Decimal("1") must serialize identically
        if value == value.to_integral_value():
            return int(value)
        return self._format_float(float(value))


def canonical_dumps(
    obj: Any,
    indent: Optional[int] = 2,
    ensure_ascii: bool = False,
) -> str:
    """
    Serialize object to canonical JSON string.

    Args:
        obj: Object to serialize (plain data or value objects with to_dict())
        indent: Indentation level (None for compact)
        ensure_ascii: If True, escape non-ASCII characters (band arrows, ≤)

    Returns:
        Canonical JSON string with trailing newline

    Raises:
        ValueError: If obj contains NaN or Inf
        TypeError: If obj contains non-serializable types
    """
    result = json.dumps(
        obj,
        cls=CanonicalJSONEncoder,
        indent=indent,
        sort_keys=True,
        ensure_ascii=ensure_ascii,
        separators=(',', ': ') if indent else (',', ':'),
    )
    return result + '\n'


def canonical_dump(
    obj: Any,
    fp: IO[str],
    indent: Optional[int] = 2,
    ensure_ascii: bool = False,
) -> None:
    """Serialize object to canonical JSON and write to an open text file."""
    fp.write(canonical_dumps(obj, indent=indent, ensure_ascii=ensure_ascii))


def validate_canonical_json(json_str: str) -> bool:
    """True when `json_str` is already in canonical (indented) form."""
    try:
        obj = json.loads(json_str.rstrip('\n'))
        return json_str == canonical_dumps(obj)
    except (json.JSONDecodeError, ValueError):
        return False
