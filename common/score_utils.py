"""
common/score_utils.py - Score Manipulation Utilities

Provides standardized utilities for risk score arithmetic:
- Safe Decimal conversion (non-finite values rejected)
- Bounds clamping and linear ramps
- Half-up rounding to integers and fixed precision
- Zero-safe division and nearest-rank percentiles

Design Philosophy:
- DECIMAL-ONLY: All score operations use Decimal for precision
- DETERMINISTIC: Same inputs always produce same outputs
- DEFENSIVE: Handles None/invalid values gracefully

Usage:
    from common.score_utils import to_decimal, clamp_value, linear_ramp

    # Clamp a raw score to 0-100
    bounded = clamp_value(raw_score, Decimal("0"), Decimal("100"))

    # Ramp 3 -> 6 between 0.5pp and 1.5pp of compression
    penalty = linear_ramp(spread, Decimal("0.5"), Decimal("1.5"), Decimal("3"), Decimal("6"))

Author: Wake Robin Capital Management
Version: 1.0.0
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP
from typing import Any, Optional, Sequence

# Default precision for scores
SCORE_PRECISION = Decimal("0.01")

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Small epsilon for division safety
EPS = Decimal("0.000001")


# ============================================================================
# TYPE CONVERSION
# ============================================================================

def to_decimal(
    value: Any,
    default: Optional[Decimal] = None
) -> Optional[Decimal]:
    """
    Safely convert value to Decimal.

    Handles:
    - None -> default
    - Decimal -> pass through (non-finite -> default)
    - int/float -> convert via string (for precision)
    - str -> parse (strips whitespace)
    - bool -> default

    Args:
        value: Value to convert
        default: Default value if conversion fails

    Returns:
        Decimal value or default
    """
    if value is None:
        return default

    try:
        if isinstance(value, bool):
            # Prevent True -> Decimal("1")
            return default
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, (int, float)):
            result = Decimal(str(value))
        elif isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return default
            result = Decimal(stripped)
        else:
            return default
    except (InvalidOperation, ValueError, TypeError):
        return default

    if not result.is_finite():
        return default
    return result


# ============================================================================
# CLAMPING AND RAMPS
# ============================================================================

def clamp_value(value: Decimal, min_val: Decimal, max_val: Decimal) -> Decimal:
    """Clamp value to [min_val, max_val] without quantizing."""
    return max(min_val, min(max_val, value))


def linear_ramp(
    x: Decimal,
    start: Decimal,
    end: Decimal,
    out_start: Decimal,
    out_end: Decimal,
) -> Decimal:
    """
    Linearly interpolate x from [start, end] onto [out_start, out_end].

    Works for descending inputs too (start > end), e.g. a DSCR ramp that
    grows as coverage falls. Outside the input interval the output is held
    at the nearest endpoint.

    Examples:
        >>> linear_ramp(Decimal("1.0"), Decimal("0.5"), Decimal("1.5"), Decimal("3"), Decimal("6"))
        Decimal('4.5')
    """
    span = end - start
    if abs(span) < EPS:
        return out_end
    t = (x - start) / span
    t = clamp_value(t, ZERO, ONE)
    return out_start + (out_end - out_start) * t


# ============================================================================
# ROUNDING
# ============================================================================

def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(value.quantize(ONE, rounding=ROUND_HALF_UP))


def quantize_score(value: Decimal, precision: Decimal = SCORE_PRECISION) -> Decimal:
    """Quantize to fixed precision using half-up rounding."""
    return value.quantize(precision, rounding=ROUND_HALF_UP)


# ============================================================================
# AGGREGATION
# ============================================================================

def safe_divide(
    numerator: Decimal,
    denominator: Decimal,
    default: Decimal = ZERO,
) -> Decimal:
    """Divide, returning `default` when the denominator is (near) zero."""
    if abs(denominator) < EPS:
        return default
    return numerator / denominator


def pct_of(part: Decimal, whole: Decimal) -> Decimal:
    """part/whole as a 0-100 percentage; 0 when whole is zero."""
    return safe_divide(part * HUNDRED, whole)


def nearest_rank_percentile(values: Sequence[Decimal], fraction: Decimal) -> Optional[Decimal]:
    """
    Nearest-rank percentile: sorted(values)[ceil(n * fraction) - 1].

    Returns None for an empty sequence.

    Examples:
        >>> nearest_rank_percentile([Decimal(v) for v in (1, 2, 3, 4, 5)], Decimal("0.8"))
        Decimal('4')
    """
    if not values:
        return None
    ordered = sorted(values)
    n = len(ordered)
    rank = int((Decimal(n) * fraction).to_integral_value(rounding=ROUND_CEILING))
    index = min(max(rank - 1, 0), n - 1)
    return ordered[index]
