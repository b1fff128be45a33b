"""
portfolio/aggregator.py - Portfolio Aggregator

Builds the portfolio-level summary from pre-fetched persistence rows: one
authoritative scan per deal, exposure-weighted metrics, concentration,
composite PRPI, version drift, risk movement, badges and alerts.

Design Philosophy:
- PURE: rows in, PortfolioSummary out; no queries, no wall-clock reads
  beyond an explicit as_of
- ZERO-SAFE: an empty deal set, missing purchase prices or an empty
  backtest sample yield defined zero results, never an exception
- VERSION-GATED: numeric deltas are compared only between scans scored by
  the same non-empty scoring version
- DETERMINISTIC: every list is sorted with an explicit tie-break

Author: Wake Robin Capital Management
Version: 2.0.0
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from backtest.benchmark import (
    DEFAULT_THRESHOLDS,
    BenchmarkResult,
    ClassificationThresholds,
    build_benchmark,
)
from backtest.calibration import MIN_SAMPLE_SIZE, BacktestMetrics, compute_backtest_metrics
from common.date_utils import parse_timestamp, validate_as_of_date
from common.provenance import compute_hash
from governance.model_metadata import parameters_hash
from common.score_utils import (
    ONE,
    ZERO,
    nearest_rank_percentile,
    pct_of,
    quantize_score,
    round_half_up,
    safe_divide,
    to_decimal,
)
from common.types import ELEVATED_PLUS_BANDS, AssumptionSet, Band, RiskRecord
from portfolio.latest_scan import group_scans_by_deal, resolve_latest_scan, resolve_previous_scan
from portfolio.markets import exposure_market_key, exposure_market_label
from portfolio.prpi import (
    EMPTY_COMPONENTS,
    PRPIBands,
    PRPIComponents,
    PRPIResult,
    PRPIWeights,
    compute_prpi,
)
from scoring.band_consistency import check_band_consistency
from scoring.config import DEFAULT_CONFIG, RiskIndexConfig
from scoring.normalization import normalize_assumptions
from scoring.risk_index import compute_risk_penalty_contribution, describe_stabilizers
from scoring.sanitizer import has_missing_critical_inputs

logger = logging.getLogger(__name__)

AGGREGATOR_VERSION = "2.0.0"

# Badges
BADGE_UNSCANNED = "unscanned"
BADGE_STALE = "stale"
BADGE_NEEDS_REVIEW = "needs_review"

# Alert types
ALERT_HIGH_IMPACT_RISK = "high_impact_risk"
ALERT_VERSION_DRIFT = "version_drift"
ALERT_UNSCANNED_COUNT = "unscanned_count"
ALERT_TIER_CHANGE = "tier_change"
ALERT_SCORE_INCREASE = "score_increase"
ALERT_STALE_SCAN = "stale_scan"
ALERT_MISSING_INPUT = "missing_input"

EXPOSURE_BUCKET_HIGH = "High"
EXPOSURE_BUCKET_NORMAL = "Normal"

UNSPECIFIED_ASSET_TYPE = "Unspecified"
NO_BAND_LABEL = "—"
OTHER_MACRO_CATEGORY = "other"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class PortfolioConfig:
    """Aggregation thresholds."""
    stale_days: int = 30
    deterioration_threshold: int = 8
    high_impact_percentile: Decimal = Decimal("0.80")
    prpi_weights: PRPIWeights = field(default_factory=PRPIWeights)
    prpi_bands: PRPIBands = field(default_factory=PRPIBands)
    classification: ClassificationThresholds = DEFAULT_THRESHOLDS
    top_n: int = 5
    top_contributors: int = 3
    min_backtest_sample: int = MIN_SAMPLE_SIZE


DEFAULT_PORTFOLIO_CONFIG = PortfolioConfig()


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True)
class Alert:
    type: str
    message: str
    deal_id: Optional[str] = None
    deal_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "message": self.message}
        if self.deal_id is not None:
            out["deal_id"] = self.deal_id
            out["deal_name"] = self.deal_name
        return out


@dataclass(frozen=True)
class Deterioration:
    deal_id: str
    deal_name: str
    delta: int
    latest_score: int
    previous_score: int
    exposure_weight: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deal_id": self.deal_id,
            "deal_name": self.deal_name,
            "delta": self.delta,
            "latest_score": self.latest_score,
            "previous_score": self.previous_score,
        }


@dataclass(frozen=True)
class BandTransition:
    deal_id: str
    deal_name: str
    from_band: str
    to_band: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deal_id": self.deal_id,
            "deal_name": self.deal_name,
            "from_band": self.from_band,
            "to_band": self.to_band,
        }


@dataclass(frozen=True)
class RiskContributor:
    risk_type: str
    penalty: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"risk_type": self.risk_type, "penalty": quantize_score(self.penalty)}


@dataclass(frozen=True)
class DealExplainability:
    top_risk_contributors: Tuple[RiskContributor, ...]
    stabilizers: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "top_risk_contributors": [c.to_dict() for c in self.top_risk_contributors],
            "stabilizers": list(self.stabilizers),
        }


@dataclass(frozen=True)
class DealSummary:
    """Per-deal view: resolved scan, score, exposure and badges."""
    deal_id: str
    deal_name: str
    asset_type: str
    market_key: str
    market_label: str
    latest_scan_id: Optional[str]
    score: Optional[int]
    band: Optional[str]
    risk_index_version: Optional[str]
    exposure_weight: Decimal
    exposure_bucket: str
    badges: Tuple[str, ...]
    explainability: Optional[DealExplainability] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deal_id": self.deal_id,
            "deal_name": self.deal_name,
            "asset_type": self.asset_type,
            "market_key": self.market_key,
            "market_label": self.market_label,
            "latest_scan_id": self.latest_scan_id,
            "score": self.score,
            "band": self.band,
            "risk_index_version": self.risk_index_version,
            "exposure_weight": self.exposure_weight,
            "exposure_bucket": self.exposure_bucket,
            "badges": list(self.badges),
            "explainability": self.explainability.to_dict() if self.explainability else None,
        }


@dataclass(frozen=True)
class RecurringRisk:
    risk_type: str
    deal_count: int
    total_penalty: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_type": self.risk_type,
            "deal_count": self.deal_count,
            "total_penalty": quantize_score(self.total_penalty),
        }


@dataclass(frozen=True)
class WeightedMetrics:
    pct_elevated_plus_by_count: Decimal
    pct_elevated_plus_by_weight: Decimal
    weighted_avg_score: Decimal
    has_weight_data: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pct_elevated_plus_by_count": quantize_score(self.pct_elevated_plus_by_count),
            "pct_elevated_plus_by_weight": quantize_score(self.pct_elevated_plus_by_weight),
            "weighted_avg_score": quantize_score(self.weighted_avg_score),
            "has_weight_data": self.has_weight_data,
        }


@dataclass(frozen=True)
class Concentration:
    top_market_pct: Decimal
    top_asset_pct: Decimal
    elevated_plus_by_market: Tuple[Tuple[str, int], ...]
    high_impact_deteriorations: Tuple[Deterioration, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "top_market_pct": quantize_score(self.top_market_pct),
            "top_asset_pct": quantize_score(self.top_asset_pct),
            "elevated_plus_by_market": [
                {"market_key": k, "elevated_plus_count": n} for k, n in self.elevated_plus_by_market
            ],
            "high_impact_deteriorations": [d.to_dict() for d in self.high_impact_deteriorations],
        }


@dataclass(frozen=True)
class RiskMovement:
    deteriorated: Tuple[str, ...]
    crossed_tiers: Tuple[str, ...]
    version_drift: Tuple[str, ...]

    @property
    def total_affected(self) -> int:
        return len(set(self.deteriorated) | set(self.crossed_tiers) | set(self.version_drift))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deteriorated": len(self.deteriorated),
            "crossed_tiers": len(self.crossed_tiers),
            "version_drift": len(self.version_drift),
            "total_affected": self.total_affected,
            "deal_ids": {
                "deteriorated": list(self.deteriorated),
                "crossed_tiers": list(self.crossed_tiers),
                "version_drift": list(self.version_drift),
            },
        }


@dataclass(frozen=True)
class VersionDrift:
    majority_version: Optional[str]
    versions_seen: Tuple[str, ...]
    drifting_deal_ids: Tuple[str, ...]

    @property
    def has_drift(self) -> bool:
        return len(self.versions_seen) > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_drift": self.has_drift,
            "majority_version": self.majority_version,
            "versions_seen": list(self.versions_seen),
            "drifting_deal_ids": list(self.drifting_deal_ids),
        }


@dataclass(frozen=True)
class Counts:
    total: int = 0
    scanned: int = 0
    unscanned: int = 0
    stale: int = 0
    needs_review: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "scanned": self.scanned,
            "unscanned": self.unscanned,
            "stale": self.stale,
            "needs_review": self.needs_review,
        }


@dataclass(frozen=True)
class PortfolioSummary:
    """Complete aggregation result."""
    as_of: str
    deals: Tuple[DealSummary, ...]
    counts: Counts
    distribution_by_band: Tuple[Tuple[str, int], ...]
    exposure_by_asset: Tuple[Tuple[str, Dict[str, int]], ...]
    exposure_by_market: Tuple[Tuple[str, Dict[str, Any]], ...]
    top_deals_by_score: Tuple[DealSummary, ...]
    recurring_risks: Tuple[RecurringRisk, ...]
    risk_composition: Dict[str, int]
    macro_exposure: Tuple[Tuple[str, int], ...]
    deteriorations: Tuple[Deterioration, ...]
    band_transitions: Tuple[BandTransition, ...]
    band_mismatches: Tuple[Dict[str, Any], ...]
    alerts: Tuple[Alert, ...]
    weighted_metrics: WeightedMetrics
    concentration: Concentration
    prpi: PRPIResult
    version_drift: VersionDrift
    risk_movement: RiskMovement
    governance: Dict[str, Any]
    backtest: Optional[BacktestMetrics] = None
    benchmark: Optional[BenchmarkResult] = None

    def deal(self, deal_id: str) -> Optional[DealSummary]:
        for summary in self.deals:
            if summary.deal_id == deal_id:
                return summary
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of,
            "deals": [d.to_dict() for d in self.deals],
            "counts": self.counts.to_dict(),
            "distribution_by_band": dict(self.distribution_by_band),
            "exposure_by_asset": {k: dict(v) for k, v in self.exposure_by_asset},
            "exposure_by_market": {k: dict(v) for k, v in self.exposure_by_market},
            "top_deals_by_score": [d.to_dict() for d in self.top_deals_by_score],
            "recurring_risks": [r.to_dict() for r in self.recurring_risks],
            "risk_composition": dict(self.risk_composition),
            "macro_exposure": [{"category": c, "deal_count": n} for c, n in self.macro_exposure],
            "trend_summary": {
                "deteriorations": [d.to_dict() for d in self.deteriorations],
                "band_transitions": [t.to_dict() for t in self.band_transitions],
            },
            "band_mismatches": [dict(m) for m in self.band_mismatches],
            "alerts": [a.to_dict() for a in self.alerts],
            "weighted_metrics": self.weighted_metrics.to_dict(),
            "concentration": self.concentration.to_dict(),
            "prpi": self.prpi.to_dict(),
            "version_drift": self.version_drift.to_dict(),
            "risk_movement": self.risk_movement.to_dict(),
            "governance": dict(self.governance),
            "backtest": self.backtest.to_dict() if self.backtest is not None else None,
            "benchmark": self.benchmark.to_dict() if self.benchmark is not None else None,
        }


# ============================================================================
# HELPERS
# ============================================================================

def _assumptions_for(scan: Mapping[str, Any]) -> AssumptionSet:
    return normalize_assumptions(AssumptionSet.from_extraction(scan.get("extraction")))


def _purchase_price(scan: Mapping[str, Any]) -> Optional[Decimal]:
    price = AssumptionSet.from_extraction(scan.get("extraction")).value("purchase_price")
    if price is not None and price > 0:
        return price
    return None


def get_exposure_weight(scan: Optional[Mapping[str, Any]]) -> Decimal:
    """Purchase price from the scan extraction when positive, else 1."""
    if scan is None:
        return ONE
    return _purchase_price(scan) or ONE


def _trimmed_version(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _score_of(scan: Optional[Mapping[str, Any]]) -> Optional[int]:
    if scan is None:
        return None
    value = to_decimal(scan.get("risk_index_score"))
    return int(value) if value is not None else None


def _band_label(scan: Mapping[str, Any]) -> str:
    raw = scan.get("risk_index_band")
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return NO_BAND_LABEL


def majority_version(versions: Sequence[str], current_version: str) -> Optional[str]:
    """
    Most frequent version; ties prefer the engine's current version, then the
    lexically greatest.
    """
    if not versions:
        return None
    counts = Counter(versions)
    return max(counts, key=lambda v: (counts[v], v == current_version, v))


def compute_version_drift(
    deal_versions: Sequence[Tuple[str, Any]],
    current_version: str,
) -> VersionDrift:
    """
    Drift over (deal_id, version) pairs.

    Null or blank versions are ignored entirely: they neither vote for the
    majority nor count as drifting.
    """
    cleaned = [(deal_id, _trimmed_version(v)) for deal_id, v in deal_versions]
    versions = [v for _, v in cleaned if v is not None]
    majority = majority_version(versions, current_version)
    drifting = sorted({deal_id for deal_id, v in cleaned if v is not None and v != majority})
    return VersionDrift(
        majority_version=majority,
        versions_seen=tuple(sorted(set(versions))),
        drifting_deal_ids=tuple(drifting),
    )


def _is_stale(scan: Mapping[str, Any], as_of: datetime, stale_days: int) -> bool:
    scanned_at = parse_timestamp(scan.get("completed_at")) or parse_timestamp(scan.get("created_at"))
    if scanned_at is None:
        return False
    return scanned_at < as_of - timedelta(days=stale_days)


def _empty_summary(as_of: datetime, governance: Dict[str, Any]) -> PortfolioSummary:
    return PortfolioSummary(
        as_of=as_of.isoformat(),
        deals=(),
        counts=Counts(),
        distribution_by_band=(),
        exposure_by_asset=(),
        exposure_by_market=(),
        top_deals_by_score=(),
        recurring_risks=(),
        risk_composition={"structural_pct": 0, "market_pct": 0},
        macro_exposure=(),
        deteriorations=(),
        band_transitions=(),
        band_mismatches=(),
        alerts=(),
        weighted_metrics=WeightedMetrics(ZERO, ZERO, ZERO, False),
        concentration=Concentration(ZERO, ZERO, (), ()),
        prpi=compute_prpi(EMPTY_COMPONENTS, ZERO),
        version_drift=VersionDrift(None, (), ()),
        risk_movement=RiskMovement((), (), ()),
        governance=governance,
    )


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def aggregate_portfolio(
    deals: Sequence[Mapping[str, Any]],
    scans: Iterable[Mapping[str, Any]],
    risks: Iterable[Mapping[str, Any]] = (),
    links: Iterable[Mapping[str, Any]] = (),
    prior_scan_index: Optional[Mapping[str, Mapping[str, Any]]] = None,
    as_of: Optional[datetime] = None,
    outcome_scans: Optional[Iterable[Mapping[str, Any]]] = None,
    cohort_scores: Optional[Iterable[Any]] = None,
    config: PortfolioConfig = DEFAULT_PORTFOLIO_CONFIG,
    risk_config: RiskIndexConfig = DEFAULT_CONFIG,
) -> PortfolioSummary:
    """
    Aggregate a portfolio of deals into a PortfolioSummary.

    Args:
        deals: Deal rows (id, name, asset_type, market, latest_scan_id, ...)
        scans: Scan rows for those deals; non-completed scans are ignored
        risks: Risk rows (id, deal_scan_id, risk_type, severity_current, confidence)
        links: Risk-to-signal links (deal_risk_id, signal_id, signal_type)
        prior_scan_index: Optional deal_id -> previous scan, overriding
            previous-scan resolution
        as_of: Reference time for staleness (defaults to now, UTC; naive
            datetimes are taken as UTC)
        outcome_scans: Scans with realized outcomes; enables the backtest block
        cohort_scores: Peer weighted scores; enables the benchmark block
        config: Aggregation thresholds
        risk_config: Scoring configuration (bands, current version)

    Returns:
        PortfolioSummary
    """
    as_of = datetime.now(timezone.utc) if as_of is None else validate_as_of_date(as_of)
    deals = list(deals)
    scans = list(scans)
    risks = list(risks)
    links = list(links)

    governance: Dict[str, Any] = {
        "aggregator_version": AGGREGATOR_VERSION,
        "engine_version": risk_config.version,
        "parameters_hash": parameters_hash(risk_config),
        "input_hash": compute_hash({
            "deals": deals,
            "scans": scans,
            "risks": risks,
            "links": links,
        }),
    }

    if not deals:
        logger.info("Portfolio aggregation: no deals")
        governance.update({"majority_version": None, "versions_seen": []})
        return _with_optional_blocks(_empty_summary(as_of, governance), outcome_scans, cohort_scores, config)

    deal_ids = {str(d.get("id")) for d in deals}
    orphaned = sorted({str(s.get("deal_id")) for s in scans if str(s.get("deal_id")) not in deal_ids})
    if orphaned:
        logger.warning("Ignoring scans for %d unknown deal(s): %s", len(orphaned), orphaned)

    scans_by_deal = group_scans_by_deal(scans)

    latest_by_deal: Dict[str, Mapping[str, Any]] = {}
    for deal in deals:
        latest = resolve_latest_scan(deal, scans_by_deal)
        if latest is not None:
            latest_by_deal[str(deal["id"])] = latest

    previous_by_deal: Dict[str, Mapping[str, Any]] = {}
    for deal_id, latest in latest_by_deal.items():
        if prior_scan_index is not None and deal_id in prior_scan_index:
            prior = prior_scan_index[deal_id]
        else:
            prior = resolve_previous_scan(latest, scans_by_deal.get(deal_id, ()))
        if prior is not None:
            previous_by_deal[deal_id] = prior

    latest_scan_ids = {str(s.get("id")) for s in latest_by_deal.values()}
    risks_by_scan: Dict[str, List[Mapping[str, Any]]] = {}
    risk_scan_by_id: Dict[str, str] = {}
    for row in risks:
        scan_id = str(row.get("deal_scan_id"))
        if scan_id not in latest_scan_ids:
            continue
        risks_by_scan.setdefault(scan_id, []).append(row)
        risk_scan_by_id[str(row.get("id"))] = scan_id

    prices = [p for p in (_purchase_price(s) for s in latest_by_deal.values()) if p is not None]
    p80 = nearest_rank_percentile(prices, config.high_impact_percentile)

    distribution: Counter = Counter()
    exposure_by_asset: Dict[str, Dict[str, int]] = {}
    exposure_by_market: Dict[str, Dict[str, Any]] = {}
    recurring_counts: Dict[str, Set[str]] = {}
    recurring_penalty: Dict[str, Decimal] = {}
    macro_deals: Dict[str, Set[str]] = {}
    structural_total = ZERO
    market_total = ZERO
    deteriorations: List[Deterioration] = []
    transitions: List[BandTransition] = []
    mismatches: List[Dict[str, Any]] = []
    alerts: List[Alert] = []
    summaries: List[DealSummary] = []
    scored: List[DealSummary] = []

    sum_weight = ZERO
    sum_score_weight = ZERO
    elevated_count = 0
    elevated_weight = ZERO
    high_weight = ZERO
    deteriorating_weight = ZERO
    has_weight_data = False

    for deal in deals:
        deal_id = str(deal["id"])
        deal_name = str(deal.get("name") or "")
        asset_type = deal.get("asset_type") or UNSPECIFIED_ASSET_TYPE
        market_key = exposure_market_key(deal)
        market_label = exposure_market_label(deal)
        latest = latest_by_deal.get(deal_id)

        asset_entry = exposure_by_asset.setdefault(asset_type, {"total": 0, "scanned": 0})
        market_entry = exposure_by_market.setdefault(
            market_key, {"label": market_label, "total": 0, "scanned": 0}
        )
        asset_entry["total"] += 1
        market_entry["total"] += 1

        if latest is None:
            summaries.append(DealSummary(
                deal_id=deal_id,
                deal_name=deal_name,
                asset_type=asset_type,
                market_key=market_key,
                market_label=market_label,
                latest_scan_id=None,
                score=None,
                band=None,
                risk_index_version=None,
                exposure_weight=ONE,
                exposure_bucket=EXPOSURE_BUCKET_NORMAL,
                badges=(BADGE_UNSCANNED,),
            ))
            continue

        asset_entry["scanned"] += 1
        market_entry["scanned"] += 1

        badges: List[str] = []
        score = _score_of(latest)
        band_label = _band_label(latest)
        band = Band.parse(latest.get("risk_index_band"))
        version = _trimmed_version(latest.get("risk_index_version"))
        weight = get_exposure_weight(latest)
        price = _purchase_price(latest)
        bucket = (
            EXPOSURE_BUCKET_HIGH
            if price is not None and p80 is not None and price >= p80
            else EXPOSURE_BUCKET_NORMAL
        )

        if score is not None:
            if weight > ONE:
                has_weight_data = True
            sum_weight += weight
            sum_score_weight += Decimal(score) * weight
            if band in ELEVATED_PLUS_BANDS:
                elevated_count += 1
                elevated_weight += weight
            if band == Band.HIGH:
                high_weight += weight
            distribution[band_label] += 1

            consistency = check_band_consistency(
                score, latest.get("risk_index_band"), latest.get("risk_index_version"), risk_config
            )
            if consistency.mismatch:
                mismatches.append({
                    "deal_id": deal_id,
                    "stored_band": band_label,
                    "expected_band": consistency.expected_band.value if consistency.expected_band else None,
                })

        if _is_stale(latest, as_of, config.stale_days):
            badges.append(BADGE_STALE)

        previous = previous_by_deal.get(deal_id)
        previous_score = _score_of(previous)
        if score is not None and previous is not None and previous_score is not None:
            previous_band = Band.parse(previous.get("risk_index_band"))
            if band is not None and previous_band is not None and band != previous_band:
                transitions.append(BandTransition(deal_id, deal_name, previous_band.value, band.value))
                if band.rank > previous_band.rank:
                    badges.append(BADGE_NEEDS_REVIEW)

            previous_version = _trimmed_version(previous.get("risk_index_version"))
            comparable = version is not None and version == previous_version
            delta = score - previous_score
            if comparable and delta >= config.deterioration_threshold:
                if BADGE_NEEDS_REVIEW not in badges:
                    badges.append(BADGE_NEEDS_REVIEW)
                deteriorations.append(Deterioration(
                    deal_id=deal_id,
                    deal_name=deal_name,
                    delta=delta,
                    latest_score=score,
                    previous_score=previous_score,
                    exposure_weight=weight,
                ))
                deteriorating_weight += weight

        assumptions = _assumptions_for(latest)
        deal_risks = [RiskRecord.from_row(r) for r in risks_by_scan.get(str(latest.get("id")), [])]
        contributions = [
            RiskContributor(r.risk_type.value, compute_risk_penalty_contribution(r, assumptions, risk_config))
            for r in deal_risks
        ]
        contributions.sort(key=lambda c: (-c.penalty, c.risk_type))
        explainability = DealExplainability(
            top_risk_contributors=tuple(contributions[:config.top_contributors]),
            stabilizers=tuple(describe_stabilizers(assumptions, risk_config)),
        )
        for contributor in contributions:
            recurring_counts.setdefault(contributor.risk_type, set()).add(deal_id)
            recurring_penalty[contributor.risk_type] = (
                recurring_penalty.get(contributor.risk_type, ZERO) + contributor.penalty
            )

        breakdown = latest.get("risk_index_breakdown")
        if isinstance(breakdown, Mapping):
            structural_total += to_decimal(breakdown.get("structural_weight"), ZERO)
            market_total += to_decimal(breakdown.get("market_weight"), ZERO)

        if band in ELEVATED_PLUS_BANDS and bucket == EXPOSURE_BUCKET_HIGH:
            alerts.append(Alert(
                ALERT_HIGH_IMPACT_RISK,
                "High exposure and Elevated/High risk band",
                deal_id,
                deal_name,
            ))

        summary = DealSummary(
            deal_id=deal_id,
            deal_name=deal_name,
            asset_type=asset_type,
            market_key=market_key,
            market_label=market_label,
            latest_scan_id=str(latest.get("id")),
            score=score,
            band=band_label if score is not None else (band.value if band else None),
            risk_index_version=version,
            exposure_weight=weight,
            exposure_bucket=bucket,
            badges=tuple(badges),
            explainability=explainability,
        )
        summaries.append(summary)
        if score is not None:
            scored.append(summary)

    # Macro exposure: distinct deals per signal category, latest scans only
    scan_to_deal = {str(s.get("id")): deal_id for deal_id, s in latest_by_deal.items()}
    for link in links:
        scan_id = risk_scan_by_id.get(str(link.get("deal_risk_id")))
        if scan_id is None:
            continue
        category = str(link.get("signal_type") or "").strip().lower() or OTHER_MACRO_CATEGORY
        macro_deals.setdefault(category, set()).add(scan_to_deal[scan_id])
    macro_exposure = sorted(
        ((c, len(ids)) for c, ids in macro_deals.items() if c != OTHER_MACRO_CATEGORY),
        key=lambda item: (-item[1], item[0]),
    )

    deteriorations.sort(key=lambda d: (-d.delta, d.deal_id))
    top_deteriorations = deteriorations[:config.top_n]

    recurring = sorted(
        (RecurringRisk(rt, len(ids), recurring_penalty[rt]) for rt, ids in recurring_counts.items()),
        key=lambda r: (-r.deal_count, r.risk_type),
    )

    composition_total = structural_total + market_total
    risk_composition = {
        "structural_pct": round_half_up(pct_of(structural_total, composition_total)),
        "market_pct": round_half_up(pct_of(market_total, composition_total)),
    }

    weighted = WeightedMetrics(
        pct_elevated_plus_by_count=pct_of(Decimal(elevated_count), Decimal(len(scored))),
        pct_elevated_plus_by_weight=pct_of(elevated_weight, sum_weight),
        weighted_avg_score=safe_divide(sum_score_weight, sum_weight),
        has_weight_data=has_weight_data,
    )

    top_deals = sorted(scored, key=lambda d: (-(d.score or 0), d.deal_id))[:config.top_n]

    drift = compute_version_drift(
        [(d.deal_id, d.risk_index_version) for d in scored], risk_config.version
    )
    if drift.has_drift:
        logger.warning(
            "Version drift: versions %s, majority %s, %d drifting deal(s)",
            list(drift.versions_seen), drift.majority_version, len(drift.drifting_deal_ids),
        )
        alerts.append(Alert(ALERT_VERSION_DRIFT, "Mixed scoring versions in portfolio."))

    total_deals = Decimal(len(deals))
    top_market = max((e["total"] for e in exposure_by_market.values()), default=0)
    top_asset = max((e["total"] for e in exposure_by_asset.values()), default=0)
    elevated_by_market: Counter = Counter(
        d.market_key for d in scored if Band.parse(d.band) in ELEVATED_PLUS_BANDS
    )
    high_impact = tuple(
        d for d in top_deteriorations if p80 is not None and d.exposure_weight >= p80
    )
    concentration = Concentration(
        top_market_pct=pct_of(Decimal(top_market), total_deals),
        top_asset_pct=pct_of(Decimal(top_asset), total_deals),
        elevated_plus_by_market=tuple(sorted(elevated_by_market.items(), key=lambda i: (-i[1], i[0]))),
        high_impact_deteriorations=high_impact,
    )

    components = PRPIComponents(
        weighted_average_score=weighted.weighted_avg_score,
        pct_exposure_high=pct_of(high_weight, sum_weight),
        pct_exposure_deteriorating=pct_of(deteriorating_weight, sum_weight),
        top_market_concentration_pct=concentration.top_market_pct,
        top_asset_concentration_pct=concentration.top_asset_pct,
    )
    prpi = compute_prpi(components, sum_weight, config.prpi_weights, config.prpi_bands)

    movement = RiskMovement(
        deteriorated=tuple(sorted({d.deal_id for d in deteriorations})),
        crossed_tiers=tuple(sorted({t.deal_id for t in transitions})),
        version_drift=drift.drifting_deal_ids,
    )

    unscanned = sum(1 for s in summaries if BADGE_UNSCANNED in s.badges)
    if unscanned:
        alerts.append(Alert(ALERT_UNSCANNED_COUNT, f"{unscanned} deal(s) unscanned"))
    for t in transitions:
        alerts.append(Alert(ALERT_TIER_CHANGE, f"Tier changed: {t.from_band} → {t.to_band}", t.deal_id, t.deal_name))
    for d in top_deteriorations:
        alerts.append(Alert(
            ALERT_SCORE_INCREASE,
            f"Score +{d.delta} ({d.previous_score} → {d.latest_score})",
            d.deal_id,
            d.deal_name,
        ))
    for s in summaries:
        if BADGE_STALE in s.badges:
            alerts.append(Alert(
                ALERT_STALE_SCAN, f"Scan is over {config.stale_days} days old", s.deal_id, s.deal_name
            ))
        latest = latest_by_deal.get(s.deal_id)
        if latest is not None and has_missing_critical_inputs(_assumptions_for(latest)):
            alerts.append(Alert(
                ALERT_MISSING_INPUT,
                "Missing critical inputs (expense_growth or debt_rate)",
                s.deal_id,
                s.deal_name,
            ))

    counts = Counts(
        total=len(deals),
        scanned=len(scored),
        unscanned=unscanned,
        stale=sum(1 for s in summaries if BADGE_STALE in s.badges),
        needs_review=sum(1 for s in summaries if BADGE_NEEDS_REVIEW in s.badges),
    )

    if mismatches:
        logger.warning("%d deal(s) carry a band inconsistent with their score", len(mismatches))

    governance.update({
        "majority_version": drift.majority_version,
        "versions_seen": list(drift.versions_seen),
    })

    logger.info(
        "Portfolio aggregation: %d deals, %d scanned, %d unscanned, %d stale, %d needs review, PRPI %d (%s)",
        counts.total, counts.scanned, counts.unscanned, counts.stale, counts.needs_review,
        prpi.prpi_score, prpi.prpi_band.value,
    )

    summary = PortfolioSummary(
        as_of=as_of.isoformat(),
        deals=tuple(summaries),
        counts=counts,
        distribution_by_band=tuple(sorted(distribution.items(), key=lambda i: _band_sort_key(i[0]))),
        exposure_by_asset=tuple(sorted(exposure_by_asset.items())),
        exposure_by_market=tuple(sorted(exposure_by_market.items())),
        top_deals_by_score=tuple(top_deals),
        recurring_risks=tuple(recurring),
        risk_composition=risk_composition,
        macro_exposure=tuple(macro_exposure),
        deteriorations=tuple(top_deteriorations),
        band_transitions=tuple(transitions),
        band_mismatches=tuple(mismatches),
        alerts=tuple(alerts),
        weighted_metrics=weighted,
        concentration=concentration,
        prpi=prpi,
        version_drift=drift,
        risk_movement=movement,
        governance=governance,
    )
    return _with_optional_blocks(summary, outcome_scans, cohort_scores, config)


def _band_sort_key(label: str) -> Tuple[int, str]:
    band = Band.parse(label)
    return (band.rank if band is not None else len(Band), label)


def _with_optional_blocks(
    summary: PortfolioSummary,
    outcome_scans: Optional[Iterable[Mapping[str, Any]]],
    cohort_scores: Optional[Iterable[Any]],
    config: PortfolioConfig,
) -> PortfolioSummary:
    backtest = None
    if outcome_scans is not None:
        backtest = compute_backtest_metrics(outcome_scans, config.min_backtest_sample)

    benchmark = None
    if cohort_scores is not None:
        benchmark = build_benchmark(
            summary.weighted_metrics.weighted_avg_score,
            cohort_scores,
            summary.weighted_metrics.pct_elevated_plus_by_weight,
            summary.prpi.components.pct_exposure_deteriorating,
            summary.concentration.top_market_pct,
            summary.concentration.top_asset_pct,
            config.classification,
        )

    if backtest is None and benchmark is None:
        return summary
    return replace(summary, backtest=backtest, benchmark=benchmark)
