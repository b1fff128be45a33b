"""
Risk model governance metadata.

A stable snapshot of the parameters that define a scoring version: version,
lock date, weight floors and caps, and the ramp breakpoints. Any change to
a ramp constant changes this snapshot and its parameters hash, which is
what audit reviews compare across releases.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from governance.params_loader import compute_parameters_hash
from governance.schema_registry import get_schema_info
from scoring.config import DEFAULT_CONFIG, RiskIndexConfig


def parameters_hash(config: RiskIndexConfig = DEFAULT_CONFIG) -> str:
    """Hash of every parameter in `config` (matches the archive's hash)."""
    return compute_parameters_hash(config.to_dict())


@dataclass(frozen=True)
class RampThresholds:
    compression_start: Decimal
    compression_end: Decimal
    compression_tier_override: Decimal
    dscr_safe: Decimal
    dscr_floor: Decimal
    dscr_tier_override: Decimal
    ltv_low: Decimal
    ltv_mid: Decimal
    ltv_high: Decimal
    vacancy_low: Decimal
    vacancy_mid: Decimal
    vacancy_high: Decimal
    ltv_force_high: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compression": {
                "start": self.compression_start,
                "end": self.compression_end,
                "tier_override": self.compression_tier_override,
            },
            "dscr": {
                "safe": self.dscr_safe,
                "floor": self.dscr_floor,
                "tier_override": self.dscr_tier_override,
            },
            "ltv_vacancy": {
                "ltv": [self.ltv_low, self.ltv_mid, self.ltv_high],
                "vacancy": [self.vacancy_low, self.vacancy_mid, self.vacancy_high],
                "ltv_force_high": self.ltv_force_high,
            },
        }


@dataclass(frozen=True)
class ModelMetadata:
    risk_index_version: str
    locked_at: str
    structural_weight_floor_pct: Decimal
    market_weight_cap_pct: Decimal
    macro_penalty_cap: Decimal
    driver_share_cap_pct: Decimal
    missing_score_ceiling: Decimal
    band_thresholds: Dict[str, int]
    ramps: RampThresholds
    parameters_hash: str
    schema_version: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_index_version": self.risk_index_version,
            "locked_at": self.locked_at,
            "structural_weight_floor_pct": self.structural_weight_floor_pct,
            "market_weight_cap_pct": self.market_weight_cap_pct,
            "macro_penalty_cap": self.macro_penalty_cap,
            "driver_share_cap_pct": self.driver_share_cap_pct,
            "missing_score_ceiling": self.missing_score_ceiling,
            "band_thresholds": dict(self.band_thresholds),
            "ramps": self.ramps.to_dict(),
            "parameters_hash": self.parameters_hash,
            "schema_version": self.schema_version,
        }


def get_model_metadata(
    config: RiskIndexConfig = DEFAULT_CONFIG,
    params_hash: Optional[str] = None,
) -> ModelMetadata:
    """
    Governance snapshot for a scoring configuration.

    Args:
        config: Scoring configuration
        params_hash: Hash reported by the params loader; computed from
            `config` when omitted

    Returns:
        ModelMetadata
    """
    return ModelMetadata(
        risk_index_version=config.version,
        locked_at=config.locked_at,
        structural_weight_floor_pct=config.structural_weight_floor_pct,
        market_weight_cap_pct=config.market_weight_cap_pct,
        macro_penalty_cap=config.macro_penalty_cap,
        driver_share_cap_pct=config.driver_share_cap_pct,
        missing_score_ceiling=config.missing_score_ceiling,
        band_thresholds={
            "low_max": config.band_low_max,
            "moderate_max": config.band_moderate_max,
            "elevated_max": config.band_elevated_max,
        },
        ramps=RampThresholds(
            compression_start=config.compression_ramp_start,
            compression_end=config.compression_ramp_end,
            compression_tier_override=config.compression_tier_override,
            dscr_safe=config.dscr_safe,
            dscr_floor=config.dscr_floor,
            dscr_tier_override=config.dscr_tier_override,
            ltv_low=config.ltv_ramp_low,
            ltv_mid=config.ltv_ramp_mid,
            ltv_high=config.ltv_ramp_high,
            vacancy_low=config.vacancy_ramp_low,
            vacancy_mid=config.vacancy_ramp_mid,
            vacancy_high=config.vacancy_ramp_high,
            ltv_force_high=config.ltv_force_high,
        ),
        parameters_hash=params_hash or parameters_hash(config),
        schema_version=get_schema_info()["schema_version"],
    )
