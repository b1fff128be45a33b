"""
Backtest Calibration Module

Measures how well persisted risk index scores anticipated realized outcomes:
- Default rate and average loss rate per band
- Pearson correlation between score and numeric outcome
- Discrimination: default rate in High band vs Low band
- Predictive strength label (Weak / Moderate / Strong)

Below the minimum sample size the correlation is None and strength is Weak;
small samples never report spurious precision.

All arithmetic is Decimal (square root via Decimal.sqrt), so results are
exact-reproducible across platforms.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from common.score_utils import to_decimal
from common.types import BAND_ORDER, Band

logger = logging.getLogger(__name__)

CALIBRATION_VERSION = "1.0.0"

# Minimum observations for a reported correlation
MIN_SAMPLE_SIZE = 10

DEFAULT_OUTCOME_TYPES = frozenset({"default_flag", "default"})

STRONG_MIN_CORRELATION = Decimal("0.5")
STRONG_MIN_SPREAD = Decimal("0.20")
MODERATE_MIN_CORRELATION = Decimal("0.3")
MODERATE_MIN_SPREAD = Decimal("0.10")

RATE_PRECISION = Decimal("0.0001")

STRENGTH_WEAK = "Weak"
STRENGTH_MODERATE = "Moderate"
STRENGTH_STRONG = "Strong"


def _q(value: Decimal) -> Decimal:
    return value.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BandOutcomeMetrics:
    count: int
    defaults: int
    default_rate: Decimal
    avg_loss_rate: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "defaults": self.defaults,
            "default_rate": self.default_rate,
            "avg_loss_rate": self.avg_loss_rate,
        }


@dataclass(frozen=True)
class BacktestMetrics:
    sample_size: int
    metrics_by_band: Tuple[Tuple[str, BandOutcomeMetrics], ...]
    correlation_score_vs_outcome: Optional[Decimal]
    pct_high_defaulted: Decimal
    pct_low_defaulted: Decimal
    predictive_strength: str

    def band(self, name: str) -> Optional[BandOutcomeMetrics]:
        for key, metrics in self.metrics_by_band:
            if key == name:
                return metrics
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_size": self.sample_size,
            "metrics_by_band": {k: m.to_dict() for k, m in self.metrics_by_band},
            "correlation_score_vs_outcome": self.correlation_score_vs_outcome,
            "discrimination": {
                "pct_high_defaulted": self.pct_high_defaulted,
                "pct_low_defaulted": self.pct_low_defaulted,
            },
            "predictive_strength": self.predictive_strength,
        }


# -----------------------------
# Helpers
# -----------------------------

def _has_outcome(scan: Mapping[str, Any]) -> bool:
    outcome_type = scan.get("actual_outcome_type")
    return isinstance(outcome_type, str) and outcome_type != ""


def _is_default_type(scan: Mapping[str, Any]) -> bool:
    return scan.get("actual_outcome_type") in DEFAULT_OUTCOME_TYPES


def is_default(scan: Mapping[str, Any]) -> bool:
    """Default outcome type with a positive value."""
    if not _is_default_type(scan):
        return False
    value = to_decimal(scan.get("actual_outcome_value"))
    return value is not None and value > 0


def numeric_outcome(scan: Mapping[str, Any]) -> Optional[Decimal]:
    """Outcome value when numeric; 0 for a default-type outcome without one."""
    value = to_decimal(scan.get("actual_outcome_value"))
    if value is not None:
        return value
    if _is_default_type(scan):
        return Decimal("0")
    return None


def _band_key(scan: Mapping[str, Any]) -> str:
    raw = scan.get("risk_index_band")
    if not isinstance(raw, str) or not raw.strip():
        return Band.LOW.value
    parsed = Band.parse(raw)
    return parsed.value if parsed is not None else raw.strip()


def pearson_correlation(x: Sequence[Decimal], y: Sequence[Decimal]) -> Optional[Decimal]:
    """
    Pearson r clamped to [-1, 1].

    None when lengths differ, n < 2, or either series has zero variance.
    """
    n = len(x)
    if n != len(y) or n < 2:
        return None
    mean_x = sum(x, Decimal("0")) / n
    mean_y = sum(y, Decimal("0")) / n
    cov = Decimal("0")
    var_x = Decimal("0")
    var_y = Decimal("0")
    for xi, yi in zip(x, y):
        dx = xi - mean_x
        dy = yi - mean_y
        cov += dx * dy
        var_x += dx * dx
        var_y += dy * dy
    if var_x == 0 or var_y == 0:
        return None
    r = cov / (var_x * var_y).sqrt()
    return max(Decimal("-1"), min(Decimal("1"), r))


def classify_predictive_strength(
    sample_size: int,
    correlation: Optional[Decimal],
    spread: Decimal,
    min_sample_size: int = MIN_SAMPLE_SIZE,
) -> str:
    if sample_size < min_sample_size or correlation is None:
        return STRENGTH_WEAK
    abs_corr = abs(correlation)
    if abs_corr >= STRONG_MIN_CORRELATION and spread >= STRONG_MIN_SPREAD:
        return STRENGTH_STRONG
    if abs_corr >= MODERATE_MIN_CORRELATION or spread >= MODERATE_MIN_SPREAD:
        return STRENGTH_MODERATE
    return STRENGTH_WEAK


# -----------------------------
# Main entry point
# -----------------------------

def compute_backtest_metrics(
    scans: Iterable[Mapping[str, Any]],
    min_sample_size: int = MIN_SAMPLE_SIZE,
) -> BacktestMetrics:
    """
    Compute calibration metrics from scans carrying realized outcomes.

    Only scans with a non-empty actual_outcome_type are included. Safe for
    empty and tiny samples.

    Args:
        scans: Rows with risk_index_score, risk_index_band,
            actual_outcome_type, actual_outcome_value
        min_sample_size: Minimum outcomes required for a correlation

    Returns:
        BacktestMetrics
    """
    with_outcome = [s for s in scans if _has_outcome(s)]
    sample_size = len(with_outcome)

    counts: Dict[str, int] = {b.value: 0 for b in BAND_ORDER}
    defaults: Dict[str, int] = {b.value: 0 for b in BAND_ORDER}
    loss_sum: Dict[str, Decimal] = {b.value: Decimal("0") for b in BAND_ORDER}
    loss_n: Dict[str, int] = {b.value: 0 for b in BAND_ORDER}

    scores: List[Decimal] = []
    outcomes: List[Decimal] = []

    for scan in with_outcome:
        band = _band_key(scan)
        counts.setdefault(band, 0)
        defaults.setdefault(band, 0)
        loss_sum.setdefault(band, Decimal("0"))
        loss_n.setdefault(band, 0)

        counts[band] += 1
        if is_default(scan):
            defaults[band] += 1
        loss = to_decimal(scan.get("actual_outcome_value"))
        if loss is not None:
            loss_sum[band] += loss
            loss_n[band] += 1

        score = to_decimal(scan.get("risk_index_score"))
        outcome = numeric_outcome(scan)
        if score is not None and outcome is not None:
            scores.append(score)
            outcomes.append(outcome)

    canonical = [b.value for b in BAND_ORDER]
    extra = sorted(k for k in counts if k not in canonical)
    metrics_by_band = []
    for band in canonical + extra:
        n = counts[band]
        metrics_by_band.append((band, BandOutcomeMetrics(
            count=n,
            defaults=defaults[band],
            default_rate=_q(Decimal(defaults[band]) / n) if n else Decimal("0"),
            avg_loss_rate=_q(loss_sum[band] / loss_n[band]) if loss_n[band] else Decimal("0"),
        )))

    correlation = None
    if sample_size >= min_sample_size:
        raw = pearson_correlation(scores, outcomes)
        correlation = _q(raw) if raw is not None else None

    high = dict(metrics_by_band)[Band.HIGH.value]
    low = dict(metrics_by_band)[Band.LOW.value]
    pct_high = high.default_rate if high.count else Decimal("0")
    pct_low = low.default_rate if low.count else Decimal("0")
    spread = abs(pct_high - pct_low)

    strength = classify_predictive_strength(sample_size, correlation, spread, min_sample_size)

    logger.debug(
        "Backtest: n=%d corr=%s spread=%s strength=%s",
        sample_size, correlation, spread, strength,
    )

    return BacktestMetrics(
        sample_size=sample_size,
        metrics_by_band=tuple(metrics_by_band),
        correlation_score_vs_outcome=correlation,
        pct_high_defaulted=pct_high,
        pct_low_defaulted=pct_low,
        predictive_strength=strength,
    )
