"""
scoring/sanitizer.py - Input Sanitizer and Assumption Validation

Range-checks normalized assumptions before scoring.

Error classes:
- RECOVERABLE: out-of-range values are clamped to their domain bounds and a
  human-readable message is recorded.
- SEVERE: non-positive purchase_price or negative noi_year1 are recorded,
  left as given, and mark the result severe. The scoring engine turns a
  severe result into a minimum Moderate band.

Missing fields are never errors here; absence is handled by the scoring
engine's missing-data path.

Also provides non-mutating completeness / range helpers used by the
portfolio badges and alerts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from common.score_utils import clamp_value, round_half_up
from common.types import AssumptionSet
from scoring.normalization import normalize_assumptions

logger = logging.getLogger(__name__)

NUMERIC_RANGES: Dict[str, Tuple[Decimal, Decimal]] = {
    "vacancy": (Decimal("0"), Decimal("100")),
    "cap_rate_in": (Decimal("0"), Decimal("25")),
    "exit_cap": (Decimal("0"), Decimal("25")),
    "ltv": (Decimal("0"), Decimal("100")),
    "debt_rate": (Decimal("0"), Decimal("25")),
    "rent_growth": (Decimal("-10"), Decimal("30")),
    "expense_growth": (Decimal("-10"), Decimal("30")),
    "noi_year1": (Decimal("0"), Decimal("1e12")),
    "hold_period_years": (Decimal("0"), Decimal("50")),
    "purchase_price": (Decimal("0"), Decimal("1e15")),
}

REQUIRED_ASSUMPTION_KEYS: Tuple[str, ...] = (
    "cap_rate_in",
    "exit_cap",
    "noi_year1",
    "ltv",
    "vacancy",
    "debt_rate",
    "expense_growth",
    "rent_growth",
)

CRITICAL_ASSUMPTION_KEYS: Tuple[str, ...] = ("expense_growth", "debt_rate")


@dataclass(frozen=True)
class SanitizationResult:
    """Sanitized copy of an assumption set plus the errors found."""
    sanitized: AssumptionSet
    errors: Tuple[str, ...]
    severe: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sanitized": self.sanitized.to_dict(),
            "errors": list(self.errors),
            "severe": self.severe,
        }


def _severe_error(key: str, value: Decimal) -> Optional[str]:
    if key == "purchase_price" and value <= 0:
        return f"purchase_price must be positive (got {value})"
    if key == "noi_year1" and value < 0:
        return f"noi_year1 must be non-negative (got {value})"
    return None


def sanitize_assumptions(assumptions: AssumptionSet) -> SanitizationResult:
    """
    Clamp out-of-range values and flag severe structural errors.

    The input is normalized first if it has not been. Never raises for
    missing fields. Re-sanitizing a sanitized set returns its recorded
    result unchanged.

    Args:
        assumptions: Normalized assumption set

    Returns:
        SanitizationResult(sanitized, errors, severe)
    """
    if assumptions.sanitized:
        return SanitizationResult(
            sanitized=assumptions,
            errors=assumptions.validation_errors,
            severe=assumptions.severe,
        )

    normalized = normalize_assumptions(assumptions)
    errors: List[str] = []
    severe = False
    cells = []

    for key, cell in normalized:
        value = cell.value
        if value is None or key not in NUMERIC_RANGES:
            cells.append((key, cell))
            continue

        severe_msg = _severe_error(key, value)
        if severe_msg is not None:
            errors.append(severe_msg)
            severe = True
            cells.append((key, cell))
            continue

        lo, hi = NUMERIC_RANGES[key]
        if value < lo or value > hi:
            clamped = clamp_value(value, lo, hi)
            errors.append(f"{key} {value} out of range [{lo}, {hi}]; clamped to {clamped}")
            cells.append((key, cell.with_value(clamped)))
        else:
            cells.append((key, cell))

    if errors:
        logger.debug("Sanitizer recorded %d error(s), severe=%s", len(errors), severe)

    sanitized = AssumptionSet(
        cells=tuple(cells),
        normalized=True,
        unit_inferred=normalized.unit_inferred,
        sanitized=True,
        validation_errors=tuple(errors),
        severe=severe,
    )
    return SanitizationResult(sanitized=sanitized, errors=tuple(errors), severe=severe)


# =============================================================================
# COMPLETENESS AND RANGE HELPERS (non-mutating)
# =============================================================================

@dataclass(frozen=True)
class CompletenessResult:
    pct: int
    missing: Tuple[str, ...]
    present: Tuple[str, ...]


@dataclass(frozen=True)
class RangeError:
    key: str
    value: Decimal
    low: Decimal
    high: Decimal


def compute_assumption_completeness(assumptions: AssumptionSet) -> CompletenessResult:
    """Percent of the required assumption keys carrying a value."""
    present = tuple(k for k in REQUIRED_ASSUMPTION_KEYS if assumptions.value(k) is not None)
    missing = tuple(k for k in REQUIRED_ASSUMPTION_KEYS if k not in present)
    total = len(REQUIRED_ASSUMPTION_KEYS)
    pct = round_half_up(Decimal(len(present)) * 100 / total) if total else 100
    return CompletenessResult(pct=pct, missing=missing, present=present)


def validate_assumption_ranges(assumptions: AssumptionSet) -> List[RangeError]:
    """Report values outside their expected ranges without changing them."""
    errors = []
    for key, (lo, hi) in NUMERIC_RANGES.items():
        value = assumptions.value(key)
        if value is None:
            continue
        if value < lo or value > hi:
            errors.append(RangeError(key=key, value=value, low=lo, high=hi))
    return errors


def has_missing_critical_inputs(assumptions: AssumptionSet) -> bool:
    """True when expense_growth or debt_rate is absent."""
    return any(assumptions.value(k) is None for k in CRITICAL_ASSUMPTION_KEYS)
