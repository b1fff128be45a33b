"""
scoring - CRE Risk Index scoring engine.

Provides:
- config: Immutable versioned scoring parameters
- normalization: Percent/decimal unit normalization
- sanitizer: Range validation, clamping and severe-error detection
- risk_index: The scoring engine, breakdown and driver attribution
- band_consistency: Persisted band vs score consistency check
- severity_overrides: Numeric severity overrides before scoring
- macro: Macro signal linkage, decay and relevance
- explainability: Per-driver diff between two scans
"""

from scoring.config import DEFAULT_CONFIG, RISK_INDEX_VERSION, RiskIndexConfig
from scoring.normalization import normalize_assumptions, normalize_percent_value
from scoring.sanitizer import (
    SanitizationResult,
    sanitize_assumptions,
    compute_assumption_completeness,
    validate_assumption_ranges,
    has_missing_critical_inputs,
)
from scoring.risk_index import (
    Breakdown,
    PreviousScore,
    RiskIndexResult,
    compute_risk_index,
    compute_risk_penalty_contribution,
    describe_stabilizers,
    get_risk_trend,
    is_delta_comparable,
    score_to_band,
)
from scoring.band_consistency import BandConsistencyResult, check_band_consistency
from scoring.severity_overrides import apply_severity_override, apply_severity_overrides
from scoring.macro import (
    compute_decayed_macro_weight,
    count_unique_macro_signals,
    infer_signal_context,
    is_signal_relevant,
)
from scoring.explainability import ExplainabilityDiffItem, compute_explainability_diff

__all__ = [
    # Config
    "DEFAULT_CONFIG",
    "RISK_INDEX_VERSION",
    "RiskIndexConfig",
    # Normalization / sanitization
    "normalize_assumptions",
    "normalize_percent_value",
    "SanitizationResult",
    "sanitize_assumptions",
    "compute_assumption_completeness",
    "validate_assumption_ranges",
    "has_missing_critical_inputs",
    # Engine
    "Breakdown",
    "PreviousScore",
    "RiskIndexResult",
    "compute_risk_index",
    "compute_risk_penalty_contribution",
    "describe_stabilizers",
    "get_risk_trend",
    "is_delta_comparable",
    "score_to_band",
    # Consistency
    "BandConsistencyResult",
    "check_band_consistency",
    # Supplements
    "apply_severity_override",
    "apply_severity_overrides",
    "compute_decayed_macro_weight",
    "count_unique_macro_signals",
    "infer_signal_context",
    "is_signal_relevant",
    "ExplainabilityDiffItem",
    "compute_explainability_diff",
]
