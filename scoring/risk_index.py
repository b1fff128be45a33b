"""
scoring/risk_index.py - CRE Risk Index Scoring Engine

Final Score = Base + Risk Penalties + Macro + Adjustments - Stabilizers,
clamped to [0, 100]. Bands (v2.0): 0-34 Low, 35-54 Moderate, 55-69 Elevated,
70+ High, then raised (never lowered) by tier overrides.

Pipeline per call:
1. Normalize and sanitize assumptions (both idempotent).
2. Per-risk penalties with type-specific caps, split into structural and
   market buckets; market bucket capped at a share of the raw total.
3. Missing-data ceiling when only DataMissing/ExpenseUnderstated risks exist.
4. Stabilizers, macro penalty, confidence and validation adjustments.
5. Continuous ramps: exit-cap compression, DSCR, LTV x vacancy.
6. Edge-case flags, clamping, banding and tier overrides.
7. Driver attribution with a per-driver share cap.
8. Version-gated delta against a previous score.

Design Philosophy:
- DETERMINISTIC: pure function, same inputs -> byte-identical result
- DECIMAL-ONLY: all arithmetic in Decimal, exact and order-independent
- FAIL-SOFT: malformed but type-correct input becomes flags, never raises

Author: Wake Robin Capital Management
Version: 2.0.0
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from common.score_utils import (
    ZERO,
    HUNDRED,
    linear_ramp,
    pct_of,
    quantize_score,
    round_half_up,
)
from common.types import (
    AssumptionSet,
    Band,
    Driver,
    Level,
    RiskRecord,
    RiskType,
)
from governance.hashing import hash_canonical_json
from scoring.config import DEFAULT_CONFIG, RiskIndexConfig
from scoring.sanitizer import sanitize_assumptions

logger = logging.getLogger(__name__)


# =============================================================================
# REASON CODES
# =============================================================================

MISSING_DATA_CAP_APPLIED = "MISSING_DATA_CAP_APPLIED"
FORCED_HIGH_LTV_90 = "FORCED_HIGH_LTV_90"
FORCED_ELEVATED_EXIT_CAP_COMPRESSION = "FORCED_ELEVATED_EXIT_CAP_COMPRESSION"
FORCED_HIGH_LTV_VACANCY = "FORCED_HIGH_LTV_VACANCY"
FORCED_ELEVATED_LTV_VACANCY = "FORCED_ELEVATED_LTV_VACANCY"
FORCED_ELEVATED_DSCR = "FORCED_ELEVATED_DSCR"
FORCED_MODERATE_SEVERE_VALIDATION = "FORCED_MODERATE_SEVERE_VALIDATION"

EDGE_EXIT_CAP_EXTREME = "EDGE_EXIT_CAP_EXTREME"
EDGE_PRO_FORMA_AGGRESSIVE = "EDGE_PRO_FORMA_AGGRESSIVE"
EDGE_VACANCY_EXTREME = "EDGE_VACANCY_EXTREME"
EDGE_UNIT_INFERRED = "EDGE_UNIT_INFERRED"
EDGE_DRIVER_SHARE_CAP_APPLIED = "EDGE_DRIVER_SHARE_CAP_APPLIED"

SYNTHETIC_MULTIPLIER = Decimal("1.00")
POINTS_PRECISION = Decimal("0.01")


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class PreviousScore:
    """A prior scan's score and the scoring version that produced it."""
    score: int
    version: Optional[str] = None


@dataclass(frozen=True)
class DriverPoints:
    driver: Driver
    points: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"driver": self.driver.value, "points": self.points}


@dataclass(frozen=True)
class DriverPct:
    driver: Driver
    pct: int

    def to_dict(self) -> Dict[str, Any]:
        return {"driver": self.driver.value, "pct": self.pct}


@dataclass(frozen=True)
class DriverMultiplier:
    driver: Driver
    multiplier: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"driver": self.driver.value, "multiplier": self.multiplier}


@dataclass(frozen=True)
class Breakdown:
    """
    Full attribution of a risk index score.

    Optional groups (tier_drivers, validation_errors, edge_flags, delta_*)
    are empty / None when they do not apply and are omitted from to_dict().
    """
    structural_weight: int
    market_weight: int
    confidence_factor: Decimal
    stabilizer_benefit: Decimal
    penalty_total: int
    contributions: Tuple[DriverPoints, ...]
    contribution_pct: Tuple[DriverPct, ...]
    top_drivers: Tuple[Driver, ...]
    review_flag: bool
    driver_confidence_multipliers: Tuple[DriverMultiplier, ...]
    tier_drivers: Tuple[str, ...] = ()
    validation_errors: Tuple[str, ...] = ()
    edge_flags: Tuple[str, ...] = ()
    previous_score: Optional[int] = None
    delta_score: Optional[int] = None
    delta_band: Optional[str] = None
    deterioration_flag: Optional[bool] = None
    delta_comparable: Optional[bool] = None

    def points_by_driver(self) -> Dict[Driver, Decimal]:
        return {c.driver: c.points for c in self.contributions}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "structural_weight": self.structural_weight,
            "market_weight": self.market_weight,
            "confidence_factor": self.confidence_factor,
            "stabilizer_benefit": self.stabilizer_benefit,
            "penalty_total": self.penalty_total,
            "contributions": [c.to_dict() for c in self.contributions],
            "contribution_pct": [c.to_dict() for c in self.contribution_pct],
            "top_drivers": [d.value for d in self.top_drivers],
            "review_flag": self.review_flag,
            "driver_confidence_multipliers": [m.to_dict() for m in self.driver_confidence_multipliers],
        }
        if self.tier_drivers:
            out["tier_drivers"] = list(self.tier_drivers)
        if self.validation_errors:
            out["validation_errors"] = list(self.validation_errors)
        if self.edge_flags:
            out["edge_flags"] = list(self.edge_flags)
        if self.delta_comparable is not None:
            out["previous_score"] = self.previous_score
            out["delta_comparable"] = self.delta_comparable
            if self.delta_comparable:
                out["delta_score"] = self.delta_score
                out["delta_band"] = self.delta_band
                out["deterioration_flag"] = self.deterioration_flag
        return out


@dataclass(frozen=True)
class RiskIndexResult:
    """Scoring engine output: bounded score, band and breakdown."""
    score: int
    band: Band
    breakdown: Breakdown
    risk_index_version: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "band": self.band.value,
            "risk_index_version": self.risk_index_version,
            "breakdown": self.breakdown.to_dict(),
        }

    def content_hash(self) -> str:
        """SHA-256 over the canonical JSON form of this result."""
        return hash_canonical_json(self.to_dict())


# =============================================================================
# INTERNAL COMPONENTS
# =============================================================================

@dataclass(frozen=True)
class _PenaltyTotals:
    structural: Decimal
    market: Decimal
    only_missing_data: bool
    has_structural_high: bool


@dataclass(frozen=True)
class _RampResult:
    penalty: Decimal
    force_min_band: Optional[Band] = None


def score_to_band(score: int, config: RiskIndexConfig = DEFAULT_CONFIG) -> Band:
    """Map an integer score onto the band thresholds of `config`."""
    return config.score_to_band(score)


def compute_risk_penalty_contribution(
    risk: RiskRecord,
    assumptions: AssumptionSet,
    config: RiskIndexConfig = DEFAULT_CONFIG,
) -> Decimal:
    """
    Penalty points one risk contributes before bucket caps.

    Uses the stored severity and confidence only; does not recompute the
    overall score.
    """
    conf = config.confidence_factor_for(risk.confidence)
    sev_points = config.severity_points_for(risk.severity_current)
    base = sev_points * conf
    risk_type = risk.risk_type

    if risk_type == RiskType.DATA_MISSING:
        return min(base, config.missing_risk_cap)

    if risk_type == RiskType.EXPENSE_UNDERSTATED:
        if assumptions.value("expense_growth") is None:
            return min(base, config.missing_risk_cap)
        return ZERO

    if risk_type == RiskType.DEBT_COST_RISK:
        points = min(base, config.debt_cost_cap)
        ltv = assumptions.value("ltv")
        if (
            assumptions.value("debt_rate") is None
            and ltv is not None
            and ltv > config.debt_cost_no_rate_ltv
        ):
            no_rate = config.debt_cost_no_rate_points
            points = max(points, min(no_rate * conf, no_rate))
        return points

    if risk_type == RiskType.EXIT_CAP_COMPRESSION:
        exit_cap = assumptions.value("exit_cap")
        cap_in = assumptions.value("cap_rate_in")
        if (
            exit_cap is not None
            and cap_in is not None
            and cap_in - exit_cap > config.compression_risk_min_spread
        ):
            return min(base, config.compression_risk_cap)
        return ZERO

    return min(base, config.default_risk_cap)


def _compute_penalties(
    risks: Sequence[RiskRecord],
    assumptions: AssumptionSet,
    config: RiskIndexConfig,
) -> _PenaltyTotals:
    structural = ZERO
    market = ZERO
    missing_count = 0
    other_count = 0
    has_structural_high = False

    for risk in risks:
        points = compute_risk_penalty_contribution(risk, assumptions, config)
        if risk.risk_type.is_structural:
            structural += points
            if risk.severity_current == Level.HIGH:
                has_structural_high = True
        else:
            market += points

        if risk.risk_type.is_missing_data:
            missing_count += 1
        else:
            other_count += 1

    return _PenaltyTotals(
        structural=structural,
        market=market,
        only_missing_data=missing_count > 0 and other_count == 0,
        has_structural_high=has_structural_high,
    )


def _compute_stabilizers(assumptions: AssumptionSet, config: RiskIndexConfig) -> Decimal:
    total = ZERO
    ltv = assumptions.value("ltv")
    if ltv is not None:
        if ltv <= config.stabilizer_low_ltv:
            total += config.stabilizer_low_ltv_points
        elif ltv <= config.stabilizer_moderate_ltv:
            total += config.stabilizer_moderate_ltv_points

    exit_cap = assumptions.value("exit_cap")
    cap_in = assumptions.value("cap_rate_in")
    if exit_cap is not None and cap_in is not None and exit_cap >= cap_in:
        total += config.stabilizer_exit_cap_points

    return min(total, config.stabilizer_cap)


def describe_stabilizers(
    assumptions: AssumptionSet,
    config: RiskIndexConfig = DEFAULT_CONFIG,
) -> List[str]:
    """Human-readable list of the stabilizers that applied."""
    out = []
    ltv = assumptions.value("ltv")
    if ltv is not None:
        if ltv <= config.stabilizer_low_ltv:
            out.append(f"Low LTV (≤{config.stabilizer_low_ltv})")
        elif ltv <= config.stabilizer_moderate_ltv:
            out.append(f"Moderate LTV (≤{config.stabilizer_moderate_ltv})")
    exit_cap = assumptions.value("exit_cap")
    cap_in = assumptions.value("cap_rate_in")
    if exit_cap is not None and cap_in is not None and exit_cap >= cap_in:
        out.append("Exit cap ≥ cap rate in")
    return out


def _exit_cap_compression(assumptions: AssumptionSet) -> Decimal:
    exit_cap = assumptions.value("exit_cap")
    cap_in = assumptions.value("cap_rate_in")
    if exit_cap is None or cap_in is None or exit_cap >= cap_in:
        return ZERO
    return cap_in - exit_cap


def _compression_penalty(compression: Decimal, config: RiskIndexConfig) -> Decimal:
    if compression < config.compression_ramp_start:
        return ZERO
    return linear_ramp(
        compression,
        config.compression_ramp_start,
        config.compression_ramp_end,
        config.compression_ramp_min_points,
        config.compression_ramp_max_points,
    )


def compute_dscr(assumptions: AssumptionSet) -> Optional[Decimal]:
    """
    Debt service coverage: NOI / (LTV x purchase price x debt rate).

    None when any input is missing, purchase price is non-positive, or debt
    service is zero. Nothing is inferred for missing inputs.
    """
    purchase_price = assumptions.value("purchase_price")
    noi = assumptions.value("noi_year1")
    ltv = assumptions.value("ltv")
    debt_rate = assumptions.value("debt_rate")
    if purchase_price is None or purchase_price <= 0 or noi is None or ltv is None or debt_rate is None:
        return None
    debt_service = (ltv / HUNDRED) * purchase_price * (debt_rate / HUNDRED)
    if debt_service <= 0:
        return None
    return noi / debt_service


def _dscr_penalty(assumptions: AssumptionSet, config: RiskIndexConfig) -> _RampResult:
    dscr = compute_dscr(assumptions)
    if dscr is None:
        return _RampResult(penalty=ZERO)
    penalty = linear_ramp(dscr, config.dscr_safe, config.dscr_floor, ZERO, config.dscr_max_points)
    force = Band.ELEVATED if dscr < config.dscr_tier_override else None
    return _RampResult(penalty=penalty, force_min_band=force)


def _ltv_vacancy_penalty(assumptions: AssumptionSet, config: RiskIndexConfig) -> _RampResult:
    ltv = assumptions.value("ltv")
    vacancy = assumptions.value("vacancy")
    if ltv is None or vacancy is None:
        return _RampResult(penalty=ZERO)

    if ltv >= config.ltv_ramp_high and vacancy >= config.vacancy_ramp_high:
        return _RampResult(penalty=config.ltv_vacancy_high_points, force_min_band=Band.HIGH)
    if ltv >= config.ltv_ramp_mid and vacancy >= config.vacancy_ramp_mid:
        return _RampResult(penalty=config.ltv_vacancy_mid_points, force_min_band=Band.ELEVATED)
    if ltv >= config.ltv_ramp_low and vacancy >= config.vacancy_ramp_low:
        ltv_dist = (ltv - config.ltv_ramp_low) / (config.ltv_ramp_high - config.ltv_ramp_low)
        vac_dist = (vacancy - config.vacancy_ramp_low) / (config.vacancy_ramp_high - config.vacancy_ramp_low)
        dist = min(Decimal("1"), (ltv_dist + vac_dist) / 2)
        steps = round_half_up(dist * config.ltv_vacancy_partial_span)
        return _RampResult(penalty=config.ltv_vacancy_partial_base + steps)
    return _RampResult(penalty=ZERO)


def _apply_floor(band: Band, floor: Band, reason: str, tier_drivers: List[str]) -> Band:
    tier_drivers.append(reason)
    raised = band.at_least(floor)
    if raised != band:
        logger.debug("Tier override %s raised band %s -> %s", reason, band.value, raised.value)
    return raised


# =============================================================================
# DRIVER ATTRIBUTION
# =============================================================================

@dataclass(frozen=True)
class _Attribution:
    contributions: Tuple[DriverPoints, ...]
    contribution_pct: Tuple[DriverPct, ...]
    top_drivers: Tuple[Driver, ...]
    multipliers: Tuple[DriverMultiplier, ...]
    share_cap_applied: bool


def _attribute_drivers(
    risks: Sequence[RiskRecord],
    assumptions: AssumptionSet,
    compression_penalty: Decimal,
    leverage_penalty: Decimal,
    macro_penalty: Decimal,
    stabilizer_benefit: Decimal,
    config: RiskIndexConfig,
) -> _Attribution:
    points: Dict[Driver, Decimal] = {d: ZERO for d in Driver}
    conf_sum: Dict[Driver, Decimal] = {d: ZERO for d in Driver}
    conf_count: Dict[Driver, int] = {d: 0 for d in Driver}

    for risk in risks:
        pts = compute_risk_penalty_contribution(risk, assumptions, config)
        if pts <= 0:
            continue
        driver = Driver.for_risk_type(risk.risk_type)
        points[driver] += pts
        conf_sum[driver] += config.confidence_factor_for(risk.confidence)
        conf_count[driver] += 1

    points[Driver.COMPRESSION] += compression_penalty
    points[Driver.LEVERAGE] += leverage_penalty
    points[Driver.MARKET] += macro_penalty
    points[Driver.STABILIZERS] = -stabilizer_benefit

    # Share cap: no single positive driver above cap% of total positive
    total_positive = sum(
        (max(ZERO, p) for d, p in points.items() if d != Driver.STABILIZERS),
        ZERO,
    )
    share_cap_applied = False
    if total_positive > 0:
        cap = config.driver_share_cap_pct / HUNDRED * total_positive
        residual = ZERO
        for driver in Driver:
            if driver in (Driver.STABILIZERS, Driver.RESIDUAL):
                continue
            if points[driver] > cap:
                residual += points[driver] - cap
                points[driver] = cap
                share_cap_applied = True
        if residual > 0:
            points[Driver.RESIDUAL] += residual
            logger.debug("Driver share cap moved %s points to residual", residual)

    contributions = tuple(
        DriverPoints(driver=d, points=quantize_score(points[d], POINTS_PRECISION))
        for d in Driver
        if points[d] != 0
    )

    total_abs = sum((abs(points[c.driver]) for c in contributions), ZERO)
    if total_abs > 0:
        contribution_pct = tuple(
            DriverPct(driver=c.driver, pct=round_half_up(pct_of(abs(points[c.driver]), total_abs)))
            for c in contributions
        )
    else:
        contribution_pct = ()

    # Stable sort keeps enum order among ties
    ranked = sorted(contributions, key=lambda c: -abs(points[c.driver]))
    top_drivers = tuple(c.driver for c in ranked[:3])

    multipliers = []
    for c in contributions:
        if conf_count[c.driver]:
            value = conf_sum[c.driver] / conf_count[c.driver]
        else:
            value = SYNTHETIC_MULTIPLIER
        multipliers.append(DriverMultiplier(driver=c.driver, multiplier=quantize_score(value)))

    return _Attribution(
        contributions=contributions,
        contribution_pct=contribution_pct,
        top_drivers=top_drivers,
        multipliers=tuple(multipliers),
        share_cap_applied=share_cap_applied,
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def _coerce_risks(risks: Iterable[Union[RiskRecord, Dict[str, Any]]]) -> List[RiskRecord]:
    return [RiskRecord.from_row(r) for r in risks]


def compute_risk_index(
    risks: Iterable[Union[RiskRecord, Dict[str, Any]]],
    assumptions: Optional[AssumptionSet] = None,
    macro_linked_count: int = 0,
    macro_decayed_weight: Optional[Decimal] = None,
    previous: Optional[PreviousScore] = None,
    config: RiskIndexConfig = DEFAULT_CONFIG,
) -> RiskIndexResult:
    """
    Compute the CRE Risk Index for one scan.

    Args:
        risks: Risk records (raw rows are coerced; unknown values -> DataMissing/Low)
        assumptions: Assumption set, raw or already normalized/sanitized
        macro_linked_count: Unique linked macro signals
        macro_decayed_weight: Time-decayed macro weight; replaces the count when given
        previous: Prior score and its scoring version, for delta fields
        config: Scoring parameters for the version being computed

    Returns:
        RiskIndexResult with score in [0, 100], band and breakdown
    """
    risk_list = _coerce_risks(risks)
    sanitized = sanitize_assumptions(assumptions if assumptions is not None else AssumptionSet())
    values = sanitized.sanitized
    validation_errors = sanitized.errors

    tier_drivers: List[str] = []
    edge_flags: List[str] = []

    # Penalties and bucket caps
    stabilizer_benefit = _compute_stabilizers(values, config)
    totals = _compute_penalties(risk_list, values, config)

    total_raw = totals.structural + totals.market
    if total_raw > 0:
        market_capped = min(totals.market, config.market_share_cap * total_raw)
    else:
        market_capped = totals.market
    effective_penalty = totals.structural + market_capped

    if macro_decayed_weight is not None:
        macro_penalty = max(ZERO, Decimal(str(macro_decayed_weight)))
    else:
        macro_penalty = max(ZERO, config.macro_penalty_per_signal * max(0, int(macro_linked_count)))
    macro_cap = min(config.macro_penalty_cap, config.macro_share_cap * max(effective_penalty, Decimal("1")))
    macro_penalty = min(macro_penalty, macro_cap)

    missing_only = totals.only_missing_data and not totals.has_structural_high
    penalty_for_score = effective_penalty
    if missing_only:
        penalty_for_score = min(effective_penalty, config.missing_penalty_cap)

    raw_score = config.base_score + penalty_for_score + macro_penalty - stabilizer_benefit

    # Confidence and validation adjustments
    count = len(risk_list)
    total_conf = sum((config.confidence_factor_for(r.confidence) for r in risk_list), ZERO)
    overall_conf = total_conf / max(count, 1)

    review_flag = bool(validation_errors)
    if overall_conf < config.low_confidence_threshold:
        review_flag = True
        raw_score += config.low_confidence_penalty
    elif overall_conf >= config.high_confidence_threshold:
        raw_score -= config.high_confidence_credit
    if validation_errors:
        raw_score += config.validation_error_penalty

    # Continuous ramps
    compression = _exit_cap_compression(values)
    compression_penalty = _compression_penalty(compression, config)
    ltv_vacancy = _ltv_vacancy_penalty(values, config)
    dscr = _dscr_penalty(values, config)
    raw_score += compression_penalty + ltv_vacancy.penalty + dscr.penalty

    # Edge cases
    ltv = values.value("ltv")
    vacancy = values.value("vacancy")
    exit_cap = values.value("exit_cap")
    rent_growth = values.value("rent_growth")

    if exit_cap is not None and (exit_cap < config.exit_cap_extreme_low or exit_cap > config.exit_cap_extreme_high):
        edge_flags.append(EDGE_EXIT_CAP_EXTREME)
        review_flag = True
    if rent_growth is not None and rent_growth > config.rent_growth_aggressive and overall_conf < config.high_confidence_threshold:
        edge_flags.append(EDGE_PRO_FORMA_AGGRESSIVE)
        review_flag = True
    if vacancy is not None and vacancy > config.vacancy_extreme:
        edge_flags.append(EDGE_VACANCY_EXTREME)
        raw_score += config.vacancy_extreme_points
    if values.unit_inferred:
        edge_flags.append(EDGE_UNIT_INFERRED)
        review_flag = True

    if missing_only and raw_score > config.missing_score_ceiling:
        raw_score = config.missing_score_ceiling
        tier_drivers.append(MISSING_DATA_CAP_APPLIED)

    score = max(0, min(100, round_half_up(raw_score)))
    band = config.score_to_band(score)

    # Tier overrides (floors only)
    if ltv is not None and ltv > config.ltv_force_high:
        band = _apply_floor(band, Band.HIGH, FORCED_HIGH_LTV_90, tier_drivers)
    if compression >= config.compression_tier_override:
        band = _apply_floor(band, Band.ELEVATED, FORCED_ELEVATED_EXIT_CAP_COMPRESSION, tier_drivers)
    if ltv_vacancy.force_min_band is not None:
        reason = FORCED_HIGH_LTV_VACANCY if ltv_vacancy.force_min_band == Band.HIGH else FORCED_ELEVATED_LTV_VACANCY
        band = _apply_floor(band, ltv_vacancy.force_min_band, reason, tier_drivers)
    if dscr.force_min_band is not None:
        band = _apply_floor(band, dscr.force_min_band, FORCED_ELEVATED_DSCR, tier_drivers)
    if sanitized.severe:
        band = _apply_floor(band, Band.MODERATE, FORCED_MODERATE_SEVERE_VALIDATION, tier_drivers)

    # Structural / market weights
    structural_pct = pct_of(totals.structural, effective_penalty)
    market_pct = pct_of(market_capped, effective_penalty)
    if risk_list and structural_pct < config.structural_weight_floor_pct:
        structural_pct = config.structural_weight_floor_pct
        market_pct = HUNDRED - structural_pct

    attribution = _attribute_drivers(
        risk_list,
        values,
        compression_penalty=compression_penalty,
        leverage_penalty=ltv_vacancy.penalty + dscr.penalty,
        macro_penalty=macro_penalty,
        stabilizer_benefit=stabilizer_benefit,
        config=config,
    )
    if attribution.share_cap_applied:
        edge_flags.append(EDGE_DRIVER_SHARE_CAP_APPLIED)

    delta_fields = _delta_fields(score, band, previous, config)

    breakdown = Breakdown(
        structural_weight=min(100, round_half_up(structural_pct)),
        market_weight=min(100, round_half_up(market_pct)),
        confidence_factor=quantize_score(overall_conf),
        stabilizer_benefit=quantize_score(stabilizer_benefit, POINTS_PRECISION),
        penalty_total=round_half_up(penalty_for_score + compression_penalty + ltv_vacancy.penalty + dscr.penalty),
        contributions=attribution.contributions,
        contribution_pct=attribution.contribution_pct,
        top_drivers=attribution.top_drivers,
        review_flag=review_flag,
        driver_confidence_multipliers=attribution.multipliers,
        tier_drivers=tuple(tier_drivers),
        validation_errors=tuple(validation_errors),
        edge_flags=tuple(edge_flags),
        **delta_fields,
    )
    return RiskIndexResult(score=score, band=band, breakdown=breakdown, risk_index_version=config.version)


def _normalize_version(version: Optional[str]) -> Optional[str]:
    if version is None:
        return None
    stripped = str(version).strip()
    return stripped or None


def is_delta_comparable(previous_version: Optional[str], current_version: str) -> bool:
    """Two scores are comparable only when produced by the same scoring version."""
    prev = _normalize_version(previous_version)
    return prev is not None and prev == _normalize_version(current_version)


def _delta_fields(
    score: int,
    band: Band,
    previous: Optional[PreviousScore],
    config: RiskIndexConfig,
) -> Dict[str, Any]:
    if previous is None:
        return {}
    if not is_delta_comparable(previous.version, config.version):
        logger.debug(
            "Delta suppressed: previous version %r != current %r",
            previous.version, config.version,
        )
        return {"previous_score": previous.score, "delta_comparable": False}

    delta = score - previous.score
    previous_band = config.score_to_band(previous.score)
    return {
        "previous_score": previous.score,
        "delta_score": delta,
        "delta_band": f"{previous_band.value} → {band.value}",
        "deterioration_flag": delta >= config.deterioration_threshold,
        "delta_comparable": True,
    }


def get_risk_trend(current_score: Optional[int], previous_score: Optional[int]) -> Optional[str]:
    """'increased' / 'decreased' / 'stable', or None when either score is missing."""
    if current_score is None or previous_score is None:
        return None
    delta = current_score - previous_score
    if delta > 0:
        return "increased"
    if delta < 0:
        return "decreased"
    return "stable"
