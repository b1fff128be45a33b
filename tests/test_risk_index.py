#!/usr/bin/env python3
"""
Tests for scoring/risk_index.py

Covers:
- Score bounds and band thresholds
- Missing-data ceiling and the structural-High exception
- Tier overrides (LTV, compression, LTV x vacancy, DSCR, severe validation)
- Monotonicity of the continuous ramps
- Unit, order and repeat-call invariance
- Driver attribution and share cap
- Version-gated deltas
"""

from decimal import Decimal

import pytest

from common.types import AssumptionSet, Band, Driver, Level, RiskType
from scoring.config import DEFAULT_CONFIG, RiskIndexConfig
from scoring.risk_index import (
    EDGE_DRIVER_SHARE_CAP_APPLIED,
    EDGE_EXIT_CAP_EXTREME,
    EDGE_PRO_FORMA_AGGRESSIVE,
    EDGE_UNIT_INFERRED,
    EDGE_VACANCY_EXTREME,
    FORCED_ELEVATED_DSCR,
    FORCED_ELEVATED_EXIT_CAP_COMPRESSION,
    FORCED_HIGH_LTV_90,
    FORCED_HIGH_LTV_VACANCY,
    FORCED_MODERATE_SEVERE_VALIDATION,
    MISSING_DATA_CAP_APPLIED,
    PreviousScore,
    compute_dscr,
    compute_risk_index,
    compute_risk_penalty_contribution,
    describe_stabilizers,
    get_risk_trend,
    is_delta_comparable,
    score_to_band,
)

from conftest import make_assumptions, make_risk


# ============================================================================
# HELPERS
# ============================================================================

def _sweep_scores(risks, base_values, key, values):
    scores = []
    for value in values:
        params = dict(base_values)
        params[key] = value
        scores.append(compute_risk_index(risks, make_assumptions(**params)).score)
    return scores


def _is_non_decreasing(values):
    return all(a <= b for a, b in zip(values, values[1:]))


SWEEP_BASE = {
    "purchase_price": 10_000_000,
    "noi_year1": 600_000,
    "debt_rate": 6,
    "cap_rate_in": 6,
    "exit_cap": 6,
    "vacancy": 10,
    "ltv": 70,
}


# ============================================================================
# BASELINES
# ============================================================================

class TestBaseline:
    """Scores for minimal inputs."""

    def test_no_risks_no_assumptions(self):
        """Zero risks count as zero confidence: base plus the low-confidence penalty."""
        result = compute_risk_index([])
        assert result.score == 43
        assert result.band == Band.MODERATE
        assert result.breakdown.review_flag is True
        assert result.breakdown.contributions == ()
        assert result.breakdown.structural_weight == 0
        assert result.risk_index_version == "2.0"

    def test_single_structural_risk(self):
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)])
        assert result.score == 45
        assert result.band == Band.MODERATE
        assert result.breakdown.structural_weight == 100
        assert result.breakdown.market_weight == 0
        assert result.breakdown.confidence_factor == Decimal("1.00")
        assert result.breakdown.review_flag is False

    def test_typical_deal(self, base_assumptions, moderate_risks):
        result = compute_risk_index(moderate_risks, base_assumptions)
        assert result.score == 39
        assert result.band == Band.MODERATE
        assert result.breakdown.structural_weight == 54
        assert result.breakdown.market_weight == 46
        assert result.breakdown.stabilizer_benefit == Decimal("6.00")

    def test_benign_deal_is_low(self):
        assumptions = make_assumptions(ltv=50, cap_rate_in=6, exit_cap=7)
        result = compute_risk_index(
            [make_risk(RiskType.RENT_GROWTH_AGGRESSIVE, Level.LOW, Level.HIGH)],
            assumptions,
        )
        assert result.score == 26
        assert result.band == Band.LOW

    def test_raw_rows_accepted(self):
        rows = [{"risk_type": "RefiRisk", "severity_current": "High", "confidence": "High"}]
        assert compute_risk_index(rows) == compute_risk_index([make_risk(RiskType.REFI_RISK)])


class TestBounds:
    """Score stays in [0, 100] and bands follow the thresholds."""

    @pytest.mark.parametrize("score,band", [
        (0, Band.LOW),
        (34, Band.LOW),
        (35, Band.MODERATE),
        (54, Band.MODERATE),
        (55, Band.ELEVATED),
        (69, Band.ELEVATED),
        (70, Band.HIGH),
        (100, Band.HIGH),
    ])
    def test_band_thresholds(self, score, band):
        assert score_to_band(score) == band

    def test_extreme_inputs_clamped(self):
        risks = [make_risk(rt) for rt in RiskType] * 4
        assumptions = make_assumptions(
            ltv=99, vacancy=95, cap_rate_in=12, exit_cap=1,
            purchase_price=10_000_000, noi_year1=10_000, debt_rate=20,
            rent_growth=25,
        )
        result = compute_risk_index(risks, assumptions, macro_linked_count=50)
        assert 0 <= result.score <= 100
        assert result.band == Band.HIGH

    def test_band_never_below_score_band(self, base_assumptions, moderate_risks):
        result = compute_risk_index(moderate_risks, base_assumptions)
        assert result.band.rank >= score_to_band(result.score).rank


# ============================================================================
# MISSING DATA
# ============================================================================

class TestMissingDataCeiling:
    """Deals flagged only for missing data cannot be scored into Elevated+."""

    @pytest.fixture
    def missing_inputs(self):
        return make_assumptions(cap_rate_in=7, exit_cap=6.1, vacancy=45)

    @pytest.fixture
    def missing_risks(self):
        return [make_risk(RiskType.DATA_MISSING, Level.HIGH, Level.LOW)] * 3

    def test_ceiling_applied(self, missing_inputs, missing_risks):
        result = compute_risk_index(missing_risks, missing_inputs)
        assert result.score == 49
        assert result.band == Band.MODERATE
        assert MISSING_DATA_CAP_APPLIED in result.breakdown.tier_drivers
        assert EDGE_VACANCY_EXTREME in result.breakdown.edge_flags

    def test_structural_high_lifts_ceiling(self, missing_inputs, missing_risks):
        risks = missing_risks + [make_risk(RiskType.REFI_RISK, Level.HIGH, Level.LOW)]
        result = compute_risk_index(risks, missing_inputs)
        assert result.score == 57
        assert result.band == Band.ELEVATED
        assert MISSING_DATA_CAP_APPLIED not in result.breakdown.tier_drivers

    def test_expense_understated_counts_as_missing(self):
        risks = [make_risk(RiskType.EXPENSE_UNDERSTATED, Level.HIGH, Level.LOW)]
        result = compute_risk_index(risks, make_assumptions(vacancy=60))
        assert result.score <= 49


# ============================================================================
# PER-RISK PENALTIES
# ============================================================================

class TestRiskPenaltyContribution:
    """Type-specific caps."""

    def test_default_cap(self):
        points = compute_risk_penalty_contribution(make_risk(RiskType.INSURANCE_RISK), AssumptionSet())
        assert points == Decimal("6")

    def test_data_missing_cap(self):
        points = compute_risk_penalty_contribution(make_risk(RiskType.DATA_MISSING), AssumptionSet())
        assert points == Decimal("3")

    def test_expense_understated_zero_when_present(self):
        risk = make_risk(RiskType.EXPENSE_UNDERSTATED)
        assert compute_risk_penalty_contribution(risk, make_assumptions(expense_growth=3)) == Decimal("0")
        assert compute_risk_penalty_contribution(risk, AssumptionSet()) == Decimal("3")

    def test_debt_cost_no_rate_floor(self):
        risk = make_risk(RiskType.DEBT_COST_RISK, Level.LOW, Level.HIGH)
        assert compute_risk_penalty_contribution(risk, make_assumptions(ltv=70)) == Decimal("4")
        assert compute_risk_penalty_contribution(risk, make_assumptions(ltv=70, debt_rate=6)) == Decimal("2")
        assert compute_risk_penalty_contribution(risk, make_assumptions(ltv=60)) == Decimal("2")

    def test_compression_requires_spread(self):
        risk = make_risk(RiskType.EXIT_CAP_COMPRESSION)
        assert compute_risk_penalty_contribution(risk, make_assumptions(cap_rate_in=6, exit_cap=5.8)) == Decimal("0")
        assert compute_risk_penalty_contribution(risk, make_assumptions(cap_rate_in=6, exit_cap=5)) == Decimal("8")
        assert compute_risk_penalty_contribution(risk, AssumptionSet()) == Decimal("0")

    def test_confidence_scales_points(self):
        risk = make_risk(RiskType.REFI_RISK, Level.MEDIUM, Level.MEDIUM)
        assert compute_risk_penalty_contribution(risk, AssumptionSet()) == Decimal("2.8")


# ============================================================================
# TIER OVERRIDES
# ============================================================================

class TestTierOverrides:
    """Band floors raise but never lower."""

    def test_ltv_above_90_forces_high(self):
        result = compute_risk_index([], make_assumptions(ltv=95))
        assert result.score == 43
        assert result.band == Band.HIGH
        assert FORCED_HIGH_LTV_90 in result.breakdown.tier_drivers

    def test_extreme_case(self):
        assumptions = make_assumptions(ltv=85, vacancy=35, cap_rate_in=7, exit_cap=6)
        risks = [
            make_risk(RiskType.DEBT_COST_RISK),
            make_risk(RiskType.REFI_RISK),
            make_risk(RiskType.MARKET_LIQUIDITY_RISK),
            make_risk(RiskType.VACANCY_UNDERSTATED),
            make_risk(RiskType.EXIT_CAP_COMPRESSION),
        ]
        result = compute_risk_index(risks, assumptions)
        assert result.score == 81
        assert result.band == Band.HIGH
        assert FORCED_HIGH_LTV_VACANCY in result.breakdown.tier_drivers
        assert FORCED_ELEVATED_EXIT_CAP_COMPRESSION in result.breakdown.tier_drivers

    def test_dscr_below_override(self):
        assumptions = make_assumptions(purchase_price=10_000_000, noi_year1=450_000, ltv=70, debt_rate=6)
        result = compute_risk_index([], assumptions)
        assert result.score == 47
        assert result.band == Band.ELEVATED
        assert FORCED_ELEVATED_DSCR in result.breakdown.tier_drivers

    def test_severe_validation_forces_moderate(self):
        assumptions = make_assumptions(ltv=50, cap_rate_in=6, exit_cap=7, purchase_price=-1)
        result = compute_risk_index(
            [make_risk(RiskType.RENT_GROWTH_AGGRESSIVE, Level.LOW, Level.HIGH)],
            assumptions,
        )
        assert result.score == 29
        assert result.band == Band.MODERATE
        assert FORCED_MODERATE_SEVERE_VALIDATION in result.breakdown.tier_drivers
        assert result.breakdown.review_flag is True
        assert result.breakdown.validation_errors

    def test_floor_does_not_lower_band(self):
        """A Moderate floor on a High score leaves it High."""
        assumptions = make_assumptions(ltv=95, purchase_price=0)
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)] * 3, assumptions)
        assert result.band == Band.HIGH


# ============================================================================
# MONOTONICITY
# ============================================================================

class TestMonotonicity:
    """Worsening one input never lowers the score."""

    def test_ltv_sweep(self, moderate_risks):
        scores = _sweep_scores(moderate_risks, SWEEP_BASE, "ltv", [50, 60, 65, 70, 75, 80, 85, 90, 95])
        assert _is_non_decreasing(scores)
        assert scores[-1] > scores[0]

    def test_vacancy_sweep(self, moderate_risks):
        scores = _sweep_scores(moderate_risks, SWEEP_BASE, "vacancy", [0, 5, 10, 20, 30, 35, 40, 45, 60])
        assert _is_non_decreasing(scores)
        assert scores[-1] > scores[0]

    def test_compression_sweep(self, moderate_risks):
        scores = _sweep_scores(moderate_risks, SWEEP_BASE, "exit_cap", [6.5, 6, 5.8, 5.5, 5, 4.5, 4])
        assert _is_non_decreasing(scores)
        assert scores[-1] > scores[0]

    def test_dscr_sweep(self, moderate_risks):
        scores = _sweep_scores(
            moderate_risks, SWEEP_BASE, "noi_year1",
            [900_000, 600_000, 525_000, 480_000, 420_000, 300_000, 0],
        )
        assert _is_non_decreasing(scores)
        assert scores[-1] > scores[0]

    def test_ltv_vacancy_interaction_steps(self):
        low = compute_risk_index([], make_assumptions(ltv=75, vacancy=20)).score
        mid = compute_risk_index([], make_assumptions(ltv=80, vacancy=30)).score
        high = compute_risk_index([], make_assumptions(ltv=85, vacancy=35)).score
        assert low < mid < high


# ============================================================================
# INVARIANCE
# ============================================================================

class TestInvariance:
    """Representation does not change the result."""

    @pytest.mark.parametrize("key,fraction,percent", [
        ("vacancy", 0.25, 25),
        ("ltv", 0.75, 75),
    ])
    def test_percent_unit_invariance(self, moderate_risks, key, fraction, percent):
        as_fraction = AssumptionSet.from_mapping({key: {"value": fraction, "unit": "%"}})
        as_percent = AssumptionSet.from_mapping({key: {"value": percent, "unit": "%"}})
        assert compute_risk_index(moderate_risks, as_fraction) == compute_risk_index(moderate_risks, as_percent)

    def test_inferred_unit_flags_but_same_score(self, moderate_risks):
        inferred = AssumptionSet.from_mapping({"vacancy": {"value": 0.25}})
        explicit = AssumptionSet.from_mapping({"vacancy": {"value": 25, "unit": "%"}})
        a = compute_risk_index(moderate_risks, inferred)
        b = compute_risk_index(moderate_risks, explicit)
        assert a.score == b.score
        assert EDGE_UNIT_INFERRED in a.breakdown.edge_flags
        assert a.breakdown.review_flag is True
        assert EDGE_UNIT_INFERRED not in b.breakdown.edge_flags

    def test_risk_order_invariance(self, base_assumptions):
        risks = [
            make_risk(RiskType.REFI_RISK, Level.MEDIUM, Level.MEDIUM),
            make_risk(RiskType.VACANCY_UNDERSTATED, Level.HIGH, Level.LOW),
            make_risk(RiskType.INSURANCE_RISK, Level.LOW, Level.HIGH),
            make_risk(RiskType.DATA_MISSING, Level.HIGH, Level.MEDIUM),
        ]
        forward = compute_risk_index(risks, base_assumptions, macro_linked_count=2)
        backward = compute_risk_index(list(reversed(risks)), base_assumptions, macro_linked_count=2)
        assert forward == backward
        assert forward.content_hash() == backward.content_hash()

    def test_repeat_calls_identical(self, base_assumptions, moderate_risks):
        first = compute_risk_index(moderate_risks, base_assumptions)
        second = compute_risk_index(moderate_risks, base_assumptions)
        assert first.to_dict() == second.to_dict()
        assert first.content_hash() == second.content_hash()
        assert len(first.content_hash()) == 64


# ============================================================================
# MACRO AND EDGE FLAGS
# ============================================================================

class TestMacroAndEdges:
    """Macro penalty caps and edge-case flags."""

    def test_macro_penalty_capped_by_share(self):
        refi = [make_risk(RiskType.REFI_RISK)]
        assert compute_risk_index(refi, macro_linked_count=5).score == 47
        assert compute_risk_index(refi, macro_linked_count=100).score == 47

    def test_decayed_weight_replaces_count(self):
        refi = [make_risk(RiskType.REFI_RISK)]
        result = compute_risk_index(refi, macro_linked_count=5, macro_decayed_weight=Decimal("1"))
        assert result.score == 46

    def test_exit_cap_extreme_flag(self, moderate_risks):
        result = compute_risk_index(moderate_risks, make_assumptions(exit_cap=1.5, cap_rate_in=1))
        assert EDGE_EXIT_CAP_EXTREME in result.breakdown.edge_flags
        assert result.breakdown.review_flag is True

    def test_pro_forma_aggressive_needs_low_confidence(self):
        assumptions = make_assumptions(rent_growth=9)
        low_conf = compute_risk_index([make_risk(RiskType.REFI_RISK, Level.HIGH, Level.LOW)], assumptions)
        high_conf = compute_risk_index([make_risk(RiskType.REFI_RISK, Level.HIGH, Level.HIGH)], assumptions)
        assert EDGE_PRO_FORMA_AGGRESSIVE in low_conf.breakdown.edge_flags
        assert EDGE_PRO_FORMA_AGGRESSIVE not in high_conf.breakdown.edge_flags


# ============================================================================
# ATTRIBUTION
# ============================================================================

class TestAttribution:
    """Driver contributions and the share cap."""

    def test_share_cap_moves_excess_to_residual(self):
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)])
        points = result.breakdown.points_by_driver()
        assert points == {Driver.LEVERAGE: Decimal("2.40"), Driver.RESIDUAL: Decimal("3.60")}
        pct = {p.driver: p.pct for p in result.breakdown.contribution_pct}
        assert pct == {Driver.LEVERAGE: 40, Driver.RESIDUAL: 60}
        assert result.breakdown.top_drivers == (Driver.RESIDUAL, Driver.LEVERAGE)
        assert EDGE_DRIVER_SHARE_CAP_APPLIED in result.breakdown.edge_flags

    def test_synthetic_multiplier_for_residual(self):
        result = compute_risk_index([make_risk(RiskType.REFI_RISK, Level.HIGH, Level.MEDIUM)])
        multipliers = {m.driver: m.multiplier for m in result.breakdown.driver_confidence_multipliers}
        assert multipliers[Driver.LEVERAGE] == Decimal("0.70")
        assert multipliers[Driver.RESIDUAL] == Decimal("1.00")

    def test_stabilizers_negative(self, base_assumptions, moderate_risks):
        result = compute_risk_index(moderate_risks, base_assumptions)
        points = result.breakdown.points_by_driver()
        assert points[Driver.STABILIZERS] == Decimal("-6.00")

    def test_contribution_pct_sums_near_100(self, base_assumptions):
        risks = [
            make_risk(RiskType.REFI_RISK, Level.MEDIUM, Level.MEDIUM),
            make_risk(RiskType.VACANCY_UNDERSTATED, Level.HIGH, Level.LOW),
            make_risk(RiskType.EXIT_CAP_COMPRESSION),
        ]
        result = compute_risk_index(risks, base_assumptions, macro_linked_count=1)
        total = sum(p.pct for p in result.breakdown.contribution_pct)
        assert abs(total - 100) <= len(result.breakdown.contribution_pct)
        assert len(result.breakdown.top_drivers) <= 3

    def test_optional_groups_omitted(self, base_assumptions, moderate_risks):
        out = compute_risk_index(moderate_risks, base_assumptions).to_dict()["breakdown"]
        assert "tier_drivers" not in out
        assert "validation_errors" not in out
        assert "delta_score" not in out
        assert "previous_score" not in out


# ============================================================================
# DELTAS
# ============================================================================

class TestDelta:
    """Version-gated delta fields."""

    def test_same_version_delta(self):
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)], previous=PreviousScore(30, "2.0"))
        bd = result.breakdown
        assert bd.delta_score == 15
        assert bd.delta_band == "Low → Moderate"
        assert bd.deterioration_flag is True
        assert bd.delta_comparable is True

    def test_small_delta_not_deterioration(self):
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)], previous=PreviousScore(40, "2.0"))
        assert result.breakdown.delta_score == 5
        assert result.breakdown.deterioration_flag is False

    def test_version_mismatch_suppresses_delta(self):
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)], previous=PreviousScore(30, "1.0"))
        out = result.to_dict()["breakdown"]
        assert out["previous_score"] == 30
        assert out["delta_comparable"] is False
        assert "delta_score" not in out
        assert "deterioration_flag" not in out

    def test_missing_previous_version_not_comparable(self):
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)], previous=PreviousScore(30, None))
        assert result.breakdown.delta_comparable is False
        assert result.breakdown.delta_score is None

    def test_is_delta_comparable(self):
        assert is_delta_comparable("2.0", "2.0") is True
        assert is_delta_comparable(" 2.0 ", "2.0") is True
        assert is_delta_comparable("1.0", "2.0") is False
        assert is_delta_comparable(None, "2.0") is False
        assert is_delta_comparable("", "2.0") is False

    @pytest.mark.parametrize("current,previous,expected", [
        (50, 40, "increased"),
        (40, 50, "decreased"),
        (40, 40, "stable"),
        (40, None, None),
        (None, 40, None),
    ])
    def test_get_risk_trend(self, current, previous, expected):
        assert get_risk_trend(current, previous) == expected


# ============================================================================
# HELPERS EXPOSED FOR THE PORTFOLIO
# ============================================================================

class TestHelpers:
    """DSCR and stabilizer descriptions."""

    def test_compute_dscr(self, base_assumptions):
        dscr = compute_dscr(base_assumptions)
        assert Decimal("1.42") < dscr < Decimal("1.43")

    def test_dscr_missing_input(self):
        assert compute_dscr(make_assumptions(purchase_price=10_000_000, noi_year1=600_000, ltv=70)) is None
        assert compute_dscr(make_assumptions(purchase_price=0, noi_year1=1, ltv=70, debt_rate=6)) is None

    def test_describe_stabilizers(self):
        assert describe_stabilizers(make_assumptions(ltv=55, cap_rate_in=6, exit_cap=6.5)) == [
            "Low LTV (≤60)",
            "Exit cap ≥ cap rate in",
        ]
        assert describe_stabilizers(make_assumptions(ltv=63)) == ["Moderate LTV (≤65)"]
        assert describe_stabilizers(AssumptionSet()) == []

    def test_alternate_config_thresholds(self):
        config = RiskIndexConfig(version="9.9", band_low_max=50, band_moderate_max=60, band_elevated_max=80)
        result = compute_risk_index([make_risk(RiskType.REFI_RISK)], config=config)
        assert result.band == Band.LOW
        assert result.risk_index_version == "9.9"
        assert DEFAULT_CONFIG.version == "2.0"
