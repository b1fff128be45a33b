"""
portfolio/prpi.py - Composite Portfolio Risk Index (PRPI)

PRPI = 0.30 x weighted average score
     + 0.25 x % exposure in High band
     + 0.15 x % exposure deteriorating (version-comparable, delta >= 8)
     + 0.15 x top market concentration %
     + 0.15 x top asset-type concentration %

Every component is on a 0-100 scale, so PRPI is in [0, 100]. Banded at
<=30 Low, <=50 Moderate, <=70 Elevated, else High. A portfolio with no
scanned exposure scores 0 / Low.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict

from common.score_utils import HUNDRED, ZERO, clamp_value, quantize_score, round_half_up
from common.types import Band


@dataclass(frozen=True)
class PRPIWeights:
    weighted_average_score: Decimal = Decimal("0.30")
    pct_exposure_high: Decimal = Decimal("0.25")
    pct_exposure_deteriorating: Decimal = Decimal("0.15")
    top_market_concentration: Decimal = Decimal("0.15")
    top_asset_concentration: Decimal = Decimal("0.15")


@dataclass(frozen=True)
class PRPIBands:
    low_max: int = 30
    moderate_max: int = 50
    elevated_max: int = 70

    def band_for(self, score: int) -> Band:
        if score <= self.low_max:
            return Band.LOW
        if score <= self.moderate_max:
            return Band.MODERATE
        if score <= self.elevated_max:
            return Band.ELEVATED
        return Band.HIGH


@dataclass(frozen=True)
class PRPIComponents:
    weighted_average_score: Decimal
    pct_exposure_high: Decimal
    pct_exposure_deteriorating: Decimal
    top_market_concentration_pct: Decimal
    top_asset_concentration_pct: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weighted_average_score": quantize_score(self.weighted_average_score),
            "pct_exposure_high": quantize_score(self.pct_exposure_high),
            "pct_exposure_deteriorating": quantize_score(self.pct_exposure_deteriorating),
            "top_market_concentration_pct": quantize_score(self.top_market_concentration_pct),
            "top_asset_concentration_pct": quantize_score(self.top_asset_concentration_pct),
        }


@dataclass(frozen=True)
class PRPIResult:
    prpi_score: int
    prpi_band: Band
    components: PRPIComponents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prpi_score": self.prpi_score,
            "prpi_band": self.prpi_band.value,
            "components": self.components.to_dict(),
        }


EMPTY_COMPONENTS = PRPIComponents(ZERO, ZERO, ZERO, ZERO, ZERO)


def compute_prpi(
    components: PRPIComponents,
    scanned_exposure: Decimal,
    weights: PRPIWeights = PRPIWeights(),
    bands: PRPIBands = PRPIBands(),
) -> PRPIResult:
    """
    Blend the five 0-100 components into the portfolio index.

    Args:
        components: Component values, each on a 0-100 scale
        scanned_exposure: Total exposure weight of scanned deals
        weights: Component weights (sum to 1)
        bands: PRPI band cut points

    Returns:
        PRPIResult; 0 / Low when scanned exposure is zero
    """
    if scanned_exposure <= 0:
        return PRPIResult(prpi_score=0, prpi_band=Band.LOW, components=components)

    def bounded(value: Decimal) -> Decimal:
        return clamp_value(value, ZERO, HUNDRED)

    raw = (
        weights.weighted_average_score * bounded(components.weighted_average_score)
        + weights.pct_exposure_high * bounded(components.pct_exposure_high)
        + weights.pct_exposure_deteriorating * bounded(components.pct_exposure_deteriorating)
        + weights.top_market_concentration * bounded(components.top_market_concentration_pct)
        + weights.top_asset_concentration * bounded(components.top_asset_concentration_pct)
    )
    score = max(0, min(100, round_half_up(raw)))
    return PRPIResult(prpi_score=score, prpi_band=bands.band_for(score), components=components)
