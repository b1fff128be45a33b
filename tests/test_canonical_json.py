#!/usr/bin/env python3
"""
Tests for governance/canonical_json.py

Covers:
- Sorted keys and trailing newline
- Decimal rendering (integral as int, exponent-independent)
- NaN / Inf rejection
- Value objects and enums
"""

import io
import json
from datetime import date
from decimal import Decimal

import pytest

from common.types import Band, RiskRecord, RiskType, Level
from governance.canonical_json import canonical_dump, canonical_dumps, validate_canonical_json


class TestCanonicalDumps:
    """Deterministic serialization."""

    def test_keys_sorted_recursively(self):
        out = canonical_dumps({"b": 1, "a": {"d": 2, "c": 3}}, indent=None)
        assert out == '{"a":{"c":3,"d":2},"b":1}\n'

    def test_trailing_newline(self):
        assert canonical_dumps({}).endswith("\n")

    def test_decimal_exponent_independent(self):
        assert canonical_dumps(Decimal("1.00")) == canonical_dumps(Decimal("1"))
        assert canonical_dumps(Decimal("2.80")) == canonical_dumps(Decimal("2.8"))

    def test_decimal_fraction(self):
        assert json.loads(canonical_dumps({"x": Decimal("0.35")})) == {"x": 0.35}

    def test_float_integral(self):
        assert canonical_dumps(3.0, indent=None) == "3\n"

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), Decimal("NaN"), Decimal("-Infinity")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValueError):
            canonical_dumps({"x": value})

    def test_value_objects(self):
        record = RiskRecord(RiskType.REFI_RISK, Level.HIGH, Level.LOW)
        out = json.loads(canonical_dumps({"risk": record, "band": Band.HIGH, "day": date(2025, 1, 15)}))
        assert out == {
            "band": "High",
            "day": "2025-01-15",
            "risk": {"confidence": "Low", "risk_type": "RefiRisk", "severity_current": "High"},
        }

    def test_list_order_preserved(self):
        assert json.loads(canonical_dumps([3, 1, 2])) == [3, 1, 2]

    def test_unicode_kept(self):
        assert "→" in canonical_dumps({"delta_band": "Low → Moderate"})

    def test_unserializable(self):
        with pytest.raises(TypeError):
            canonical_dumps({"x": object()})


class TestCanonicalHelpers:
    """File writer and validation."""

    def test_canonical_dump(self):
        buf = io.StringIO()
        canonical_dump({"b": 1, "a": 2}, buf)
        assert buf.getvalue() == canonical_dumps({"a": 2, "b": 1})

    def test_validate(self):
        assert validate_canonical_json(canonical_dumps({"a": 1, "b": [1, 2]})) is True
        assert validate_canonical_json('{"b": 1, "a": 2}') is False
        assert validate_canonical_json("{nope") is False
