"""
scoring/config.py - Risk Index Scoring Configuration

Every constant the scoring engine uses lives in one immutable RiskIndexConfig,
constructed once per scoring version. Alternate versions are loaded from the
params archive (governance.params_loader) and swapped in without touching
algorithm code.

Design Philosophy:
- IMMUTABLE: frozen dataclass, no module-level magic numbers in the engine
- DECIMAL-ONLY: all thresholds and weights are Decimal
- AUDITABLE: to_dict() round-trips through the params archive

Author: Wake Robin Capital Management
Version: 2.0.0
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping

from common.types import Band, Level


def _levels(high: str, medium: str, low: str) -> Dict[str, Decimal]:
    return {
        Level.HIGH.value: Decimal(high),
        Level.MEDIUM.value: Decimal(medium),
        Level.LOW.value: Decimal(low),
    }


_LEVEL_TABLES = ("severity_points", "confidence_factors")


@dataclass(frozen=True)
class RiskIndexConfig:
    """Versioned scoring parameters for the CRE Risk Index."""

    version: str = "2.0"
    locked_at: str = "2025-01-15"

    # Base and per-risk points
    base_score: Decimal = Decimal("40")
    severity_points: Mapping[str, Decimal] = field(default_factory=lambda: _levels("8", "4", "2"))
    confidence_factors: Mapping[str, Decimal] = field(default_factory=lambda: _levels("1.0", "0.7", "0.4"))
    missing_confidence_factor: Decimal = Decimal("0.4")
    missing_risk_cap: Decimal = Decimal("3")
    debt_cost_cap: Decimal = Decimal("6")
    debt_cost_no_rate_points: Decimal = Decimal("4")
    debt_cost_no_rate_ltv: Decimal = Decimal("65")
    compression_risk_cap: Decimal = Decimal("8")
    compression_risk_min_spread: Decimal = Decimal("0.5")
    default_risk_cap: Decimal = Decimal("6")

    # Bucket caps
    market_share_cap: Decimal = Decimal("0.35")
    missing_penalty_cap: Decimal = Decimal("15")
    missing_score_ceiling: Decimal = Decimal("49")

    # Stabilizers
    stabilizer_low_ltv: Decimal = Decimal("60")
    stabilizer_low_ltv_points: Decimal = Decimal("8")
    stabilizer_moderate_ltv: Decimal = Decimal("65")
    stabilizer_moderate_ltv_points: Decimal = Decimal("4")
    stabilizer_exit_cap_points: Decimal = Decimal("6")
    stabilizer_cap: Decimal = Decimal("20")

    # Macro
    macro_penalty_per_signal: Decimal = Decimal("1")
    macro_penalty_cap: Decimal = Decimal("3")
    macro_share_cap: Decimal = Decimal("0.35")

    # Confidence adjustment
    low_confidence_threshold: Decimal = Decimal("0.70")
    low_confidence_penalty: Decimal = Decimal("3")
    high_confidence_threshold: Decimal = Decimal("0.90")
    high_confidence_credit: Decimal = Decimal("1")
    validation_error_penalty: Decimal = Decimal("3")

    # Exit-cap compression ramp (percentage points)
    compression_ramp_start: Decimal = Decimal("0.5")
    compression_ramp_end: Decimal = Decimal("1.5")
    compression_ramp_min_points: Decimal = Decimal("3")
    compression_ramp_max_points: Decimal = Decimal("6")
    compression_tier_override: Decimal = Decimal("1.0")

    # DSCR ramp
    dscr_safe: Decimal = Decimal("1.25")
    dscr_floor: Decimal = Decimal("1.00")
    dscr_max_points: Decimal = Decimal("6")
    dscr_tier_override: Decimal = Decimal("1.10")

    # LTV x vacancy interaction
    ltv_ramp_low: Decimal = Decimal("75")
    ltv_ramp_mid: Decimal = Decimal("80")
    ltv_ramp_high: Decimal = Decimal("85")
    vacancy_ramp_low: Decimal = Decimal("20")
    vacancy_ramp_mid: Decimal = Decimal("30")
    vacancy_ramp_high: Decimal = Decimal("35")
    ltv_vacancy_partial_base: Decimal = Decimal("2")
    ltv_vacancy_partial_span: Decimal = Decimal("2")
    ltv_vacancy_mid_points: Decimal = Decimal("5")
    ltv_vacancy_high_points: Decimal = Decimal("8")

    # Edge cases
    exit_cap_extreme_low: Decimal = Decimal("2")
    exit_cap_extreme_high: Decimal = Decimal("15")
    rent_growth_aggressive: Decimal = Decimal("8")
    vacancy_extreme: Decimal = Decimal("40")
    vacancy_extreme_points: Decimal = Decimal("2")

    # Tier overrides
    ltv_force_high: Decimal = Decimal("90")

    # Attribution and breakdown
    driver_share_cap_pct: Decimal = Decimal("40")
    structural_weight_floor_pct: Decimal = Decimal("10")
    deterioration_threshold: int = 8

    # Band thresholds (inclusive upper bounds)
    band_low_max: int = 34
    band_moderate_max: int = 54
    band_elevated_max: int = 69

    def __post_init__(self) -> None:
        # Level tables are exposed as read-only views
        for name in _LEVEL_TABLES:
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def score_to_band(self, score: int) -> Band:
        if score <= self.band_low_max:
            return Band.LOW
        if score <= self.band_moderate_max:
            return Band.MODERATE
        if score <= self.band_elevated_max:
            return Band.ELEVATED
        return Band.HIGH

    def severity_points_for(self, level: Level) -> Decimal:
        return self.severity_points.get(level.value, self.severity_points[Level.LOW.value])

    def confidence_factor_for(self, level: Level) -> Decimal:
        return self.confidence_factors.get(level.value, self.missing_confidence_factor)

    @property
    def market_weight_cap_pct(self) -> Decimal:
        return self.market_share_cap * Decimal("100")

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping of every parameter, in declaration order."""
        return {
            f.name: dict(getattr(self, f.name)) if f.name in _LEVEL_TABLES else getattr(self, f.name)
            for f in fields(self)
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RiskIndexConfig":
        """
        Build a config from a parameter mapping.

        Numbers are converted through str() to Decimal; unknown keys raise
        KeyError so a typo in an archive cannot silently fall back to a
        default.
        """
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise KeyError(f"Unknown risk index parameters: {unknown}")

        kwargs: Dict[str, Any] = {}
        for name, value in data.items():
            default = getattr(DEFAULT_CONFIG, name)
            if name in _LEVEL_TABLES:
                kwargs[name] = {str(k): Decimal(str(v)) for k, v in value.items()}
            elif isinstance(default, Decimal):
                kwargs[name] = Decimal(str(value))
            elif isinstance(default, bool):
                kwargs[name] = bool(value)
            elif isinstance(default, int):
                kwargs[name] = int(value)
            else:
                kwargs[name] = str(value)
        return cls(**kwargs)


DEFAULT_CONFIG = RiskIndexConfig()

RISK_INDEX_VERSION = DEFAULT_CONFIG.version
