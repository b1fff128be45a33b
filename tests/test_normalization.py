#!/usr/bin/env python3
"""
Tests for scoring/normalization.py

Percent-vs-fraction resolution for percent-like assumptions.
"""

from decimal import Decimal

import pytest

from common.types import AssumptionSet
from scoring.normalization import normalize_assumptions, normalize_percent_value


class TestNormalizePercentValue:
    """Single-value rules."""

    @pytest.mark.parametrize("unit", ["%", "percent", "PCT", " Percent "])
    def test_percent_unit_fraction_scaled(self, unit):
        value, inferred = normalize_percent_value("vacancy", Decimal("0.08"), unit)
        assert value == Decimal("8")
        assert inferred is False

    def test_percent_unit_one_left_alone(self):
        """With an explicit percent unit, exactly 1 means one percent."""
        value, inferred = normalize_percent_value("debt_rate", Decimal("1"), "%")
        assert value == Decimal("1")
        assert inferred is False

    def test_missing_unit_fraction_inferred(self):
        value, inferred = normalize_percent_value("ltv", Decimal("0.75"), None)
        assert value == Decimal("75")
        assert inferred is True

    def test_missing_unit_one_inferred(self):
        """(0, 1] with no unit is treated as a fraction."""
        value, inferred = normalize_percent_value("ltv", Decimal("1"), "")
        assert value == Decimal("100")
        assert inferred is True

    def test_missing_unit_whole_number_unchanged(self):
        value, inferred = normalize_percent_value("vacancy", Decimal("12"), None)
        assert value == Decimal("12")
        assert inferred is False

    def test_non_percent_key_untouched(self):
        value, inferred = normalize_percent_value("purchase_price", Decimal("0.5"), None)
        assert value == Decimal("0.5")
        assert inferred is False

    def test_none_passes_through(self):
        assert normalize_percent_value("ltv", None, "%") == (None, False)

    def test_zero_and_negative_untouched(self):
        assert normalize_percent_value("rent_growth", Decimal("0"), None) == (Decimal("0"), False)
        assert normalize_percent_value("rent_growth", Decimal("-0.02"), None) == (Decimal("-0.02"), False)


class TestNormalizeAssumptions:
    """Set-level normalization."""

    def _set(self, **cells):
        return AssumptionSet.from_mapping(cells)

    def test_flags_inferred(self):
        result = normalize_assumptions(self._set(
            ltv={"value": 0.7},
            vacancy={"value": 10, "unit": "%"},
        ))
        assert result.normalized is True
        assert result.unit_inferred is True
        assert result.value("ltv") == Decimal("70")
        assert result.value("vacancy") == Decimal("10")

    def test_no_inference_flag_when_units_present(self):
        result = normalize_assumptions(self._set(ltv={"value": 0.7, "unit": "%"}))
        assert result.unit_inferred is False
        assert result.value("ltv") == Decimal("70")

    def test_idempotent(self):
        once = normalize_assumptions(self._set(ltv={"value": 0.7}, exit_cap={"value": 0.065}))
        twice = normalize_assumptions(once)
        assert twice == once
        assert twice.value("exit_cap") == Decimal("6.5")

    def test_does_not_mutate_input(self):
        raw = self._set(ltv={"value": 0.7})
        normalize_assumptions(raw)
        assert raw.value("ltv") == Decimal("0.7")
        assert raw.normalized is False
