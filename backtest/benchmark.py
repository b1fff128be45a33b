"""
Portfolio Benchmark Module

Ranks one organization's portfolio against a peer cohort and labels its
risk posture.

Classification is an ordered rule list; the first rule that matches wins:
1. Deteriorating  - deteriorating exposure share at or above threshold
2. Concentrated   - top market or top asset-type share at or above threshold
3. Aggressive     - high weighted score or high Elevated+ exposure
4. Conservative   - low weighted score and low Elevated+ exposure
5. Moderate       - everything else

Deterioration and concentration outrank raw aggressiveness: a portfolio
that is getting worse, or is a single-market bet, is labelled as such even
when its average score is high.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from common.score_utils import HUNDRED, round_half_up, to_decimal

logger = logging.getLogger(__name__)

# Percentile reported when the cohort is too small to rank against
FALLBACK_PERCENTILE = 50
MIN_COHORT_SIZE = 2


class PortfolioClassification(str, Enum):
    CONSERVATIVE = "Conservative"
    MODERATE = "Moderate"
    AGGRESSIVE = "Aggressive"
    CONCENTRATED = "Concentrated"
    DETERIORATING = "Deteriorating"


@dataclass(frozen=True)
class ClassificationThresholds:
    """Rule thresholds, all on a 0-100 percentage / score scale."""
    deteriorating_exposure_pct: Decimal = Decimal("20")
    concentrated_market_pct: Decimal = Decimal("50")
    concentrated_asset_pct: Decimal = Decimal("60")
    aggressive_weighted_avg: Decimal = Decimal("55")
    aggressive_elevated_plus_pct: Decimal = Decimal("40")
    conservative_weighted_avg: Decimal = Decimal("34")
    conservative_elevated_plus_pct: Decimal = Decimal("10")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deteriorating_exposure_pct": self.deteriorating_exposure_pct,
            "concentrated_market_pct": self.concentrated_market_pct,
            "concentrated_asset_pct": self.concentrated_asset_pct,
            "aggressive_weighted_avg": self.aggressive_weighted_avg,
            "aggressive_elevated_plus_pct": self.aggressive_elevated_plus_pct,
            "conservative_weighted_avg": self.conservative_weighted_avg,
            "conservative_elevated_plus_pct": self.conservative_elevated_plus_pct,
        }


DEFAULT_THRESHOLDS = ClassificationThresholds()


@dataclass(frozen=True)
class BenchmarkResult:
    weighted_score: Decimal
    percentile_rank: int
    cohort_size: int
    classification: PortfolioClassification

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weighted_score": self.weighted_score,
            "percentile_rank": self.percentile_rank,
            "cohort_size": self.cohort_size,
            "classification": self.classification.value,
        }


def _clean_cohort(cohort_scores: Iterable[Any]) -> List[Decimal]:
    out = []
    for raw in cohort_scores:
        value = to_decimal(raw)
        if value is not None:
            out.append(value)
    return out


def compute_percentile_rank(score: Any, cohort_scores: Iterable[Any]) -> int:
    """
    Percentile of `score` within the cohort: share of members at or below it.

    Returns 50 when the cohort has fewer than two usable members or the
    score itself is not numeric.

    Example:
        >>> compute_percentile_rank(40, [10, 20, 40, 80])
        75
    """
    cohort = _clean_cohort(cohort_scores)
    value = to_decimal(score)
    if value is None or len(cohort) < MIN_COHORT_SIZE:
        return FALLBACK_PERCENTILE
    at_or_below = sum(1 for s in cohort if s <= value)
    return round_half_up(Decimal(at_or_below) * HUNDRED / Decimal(len(cohort)))


def classify_portfolio(
    weighted_avg_score: Decimal,
    pct_elevated_plus_by_weight: Decimal,
    pct_exposure_deteriorating: Decimal,
    top_market_pct: Decimal,
    top_asset_pct: Decimal,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> PortfolioClassification:
    """Apply the ordered classification rules."""
    t = thresholds
    if pct_exposure_deteriorating >= t.deteriorating_exposure_pct:
        return PortfolioClassification.DETERIORATING
    if top_market_pct >= t.concentrated_market_pct or top_asset_pct >= t.concentrated_asset_pct:
        return PortfolioClassification.CONCENTRATED
    if (
        weighted_avg_score >= t.aggressive_weighted_avg
        or pct_elevated_plus_by_weight >= t.aggressive_elevated_plus_pct
    ):
        return PortfolioClassification.AGGRESSIVE
    if (
        weighted_avg_score <= t.conservative_weighted_avg
        and pct_elevated_plus_by_weight <= t.conservative_elevated_plus_pct
    ):
        return PortfolioClassification.CONSERVATIVE
    return PortfolioClassification.MODERATE


def build_benchmark(
    weighted_avg_score: Decimal,
    cohort_scores: Optional[Iterable[Any]],
    pct_elevated_plus_by_weight: Decimal,
    pct_exposure_deteriorating: Decimal,
    top_market_pct: Decimal,
    top_asset_pct: Decimal,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> BenchmarkResult:
    """
    Percentile rank plus classification for one portfolio.

    Args:
        weighted_avg_score: Exposure-weighted average risk index score
        cohort_scores: Peer portfolios' weighted scores (None treated as empty)
        pct_elevated_plus_by_weight: % exposure in Elevated or High bands
        pct_exposure_deteriorating: % exposure in deteriorating deals
        top_market_pct: Largest single-market share of deal count
        top_asset_pct: Largest single asset-type share of deal count
        thresholds: Classification rule thresholds

    Returns:
        BenchmarkResult
    """
    cohort = _clean_cohort(cohort_scores or ())
    percentile = compute_percentile_rank(weighted_avg_score, cohort)
    classification = classify_portfolio(
        weighted_avg_score,
        pct_elevated_plus_by_weight,
        pct_exposure_deteriorating,
        top_market_pct,
        top_asset_pct,
        thresholds,
    )
    logger.debug(
        "Benchmark: score=%s percentile=%d cohort=%d class=%s",
        weighted_avg_score, percentile, len(cohort), classification.value,
    )
    return BenchmarkResult(
        weighted_score=weighted_avg_score,
        percentile_rank=percentile,
        cohort_size=len(cohort),
        classification=classification,
    )
