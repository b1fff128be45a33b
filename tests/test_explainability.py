#!/usr/bin/env python3
"""
Tests for scoring/explainability.py
"""

from decimal import Decimal

from common.types import RiskType
from scoring.explainability import compute_explainability_diff
from scoring.risk_index import PreviousScore, compute_risk_index

from conftest import make_assumptions, make_risk


LATEST = {
    "contributions": [
        {"driver": "leverage", "points": 5},
        {"driver": "vacancy", "points": 2},
    ],
    "delta_comparable": True,
}

PREVIOUS = {
    "contributions": [
        {"driver": "leverage", "points": 3},
        {"driver": "market", "points": 4},
    ],
}


class TestExplainabilityDiff:
    """Per-driver diffs between two breakdowns."""

    def test_sorted_by_absolute_delta(self):
        items = compute_explainability_diff(LATEST, PREVIOUS)
        assert [i.driver for i in items] == ["market", "leverage", "vacancy"]
        assert items[0].delta_points == Decimal("-4")
        assert items[1].previous_points == Decimal("3")
        assert items[1].current_points == Decimal("5")

    def test_not_comparable_is_empty(self):
        latest = dict(LATEST, delta_comparable=False)
        assert compute_explainability_diff(latest, PREVIOUS) == []

    def test_explicit_comparable_flag(self):
        latest = {"contributions": LATEST["contributions"]}
        assert compute_explainability_diff(latest, PREVIOUS) == []
        assert len(compute_explainability_diff(latest, PREVIOUS, delta_comparable=True)) == 3

    def test_missing_side_is_empty(self):
        assert compute_explainability_diff(LATEST, None) == []
        assert compute_explainability_diff(LATEST, {"contributions": "bad"}) == []

    def test_engine_breakdowns(self):
        previous = compute_risk_index([make_risk(RiskType.REFI_RISK)])
        latest = compute_risk_index(
            [make_risk(RiskType.REFI_RISK), make_risk(RiskType.VACANCY_UNDERSTATED)],
            make_assumptions(vacancy=15),
            previous=PreviousScore(previous.score, previous.risk_index_version),
        )
        items = compute_explainability_diff(latest.breakdown, previous.breakdown)
        assert items
        by_driver = {i.driver: i for i in items}
        assert by_driver["vacancy"].previous_points == Decimal("0")
        assert by_driver["vacancy"].delta_points > 0
        assert items[0].to_dict()["driver"] == items[0].driver
