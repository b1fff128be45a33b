"""
scoring/normalization.py - Unit Normalizer

Resolves decimal-vs-percent ambiguity for percent-like assumptions so that
0.08 and 8 both mean "8 percent" before validation and scoring.

Rules (percent-like keys only):
- unit denotes percent and 0 < value < 1  -> value * 100
- unit missing and 0 < value <= 1         -> value * 100, marked inferred
- anything else                           -> unchanged

Normalizing an already-normalized set is a no-op.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Tuple

from common.types import AssumptionSet

logger = logging.getLogger(__name__)

PERCENT_KEYS = frozenset({
    "ltv",
    "vacancy",
    "cap_rate_in",
    "exit_cap",
    "rent_growth",
    "expense_growth",
    "debt_rate",
})

PERCENT_UNITS = frozenset({"percent", "%", "pct"})

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def unit_is_percent(unit: Optional[str]) -> bool:
    if not isinstance(unit, str):
        return False
    return unit.strip().lower() in PERCENT_UNITS


def unit_is_missing(unit: Optional[str]) -> bool:
    return unit is None or (isinstance(unit, str) and unit.strip() == "")


def normalize_percent_value(
    key: str,
    value: Optional[Decimal],
    unit: Optional[str] = None,
) -> Tuple[Optional[Decimal], bool]:
    """
    Normalize one assumption value onto the 0-100 percent scale.

    Args:
        key: Assumption key
        value: Raw value (None passes through)
        unit: Raw unit string

    Returns:
        (normalized_value, inferred) where inferred is True only when the
        unit was missing and the value was treated as a fraction.
    """
    if value is None or key not in PERCENT_KEYS:
        return value, False
    if unit_is_percent(unit):
        if _ZERO < value < _ONE:
            return value * _HUNDRED, False
        return value, False
    if unit_is_missing(unit) and _ZERO < value <= _ONE:
        return value * _HUNDRED, True
    return value, False


def normalize_assumptions(assumptions: AssumptionSet) -> AssumptionSet:
    """
    Normalize every percent-like cell of an assumption set.

    Returns a new set flagged as normalized; `unit_inferred` is True when
    any cell's unit had to be inferred.
    """
    if assumptions.normalized:
        return assumptions

    cells = []
    inferred_keys = []
    for key, cell in assumptions:
        value, inferred = normalize_percent_value(key, cell.value, cell.unit)
        if inferred:
            inferred_keys.append(key)
        cells.append((key, cell.with_value(value)))

    if inferred_keys:
        logger.debug("Inferred fractional unit for %s", ", ".join(inferred_keys))

    return AssumptionSet(
        cells=tuple(cells),
        normalized=True,
        unit_inferred=bool(inferred_keys),
    )
