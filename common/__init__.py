"""
common - Shared utilities for the risk index packages.

Provides:
- types: Closed enumerations, assumption/risk value objects, row contracts
- score_utils: Decimal conversion, clamping, ramps, rounding, percentiles
- date_utils: Timestamp parsing and day arithmetic
- provenance: Deterministic input hashes
- logging_config: Runner logging setup (rotation, redaction, run IDs)
"""

from common.date_utils import normalize_date, to_date_string, parse_timestamp, days_between, validate_as_of_date
from common.score_utils import (
    to_decimal,
    clamp_value,
    linear_ramp,
    round_half_up,
    quantize_score,
    safe_divide,
    pct_of,
    nearest_rank_percentile,
)
from common.types import (
    AssumptionCell,
    AssumptionSet,
    Band,
    Driver,
    Level,
    RiskRecord,
    RiskType,
    DealRow,
    ScanRow,
    RiskRow,
    LinkRow,
    OutcomeScanRow,
)

__all__ = [
    # Dates
    "normalize_date",
    "to_date_string",
    "parse_timestamp",
    "days_between",
    "validate_as_of_date",
    # Numbers
    "to_decimal",
    "clamp_value",
    "linear_ramp",
    "round_half_up",
    "quantize_score",
    "safe_divide",
    "pct_of",
    "nearest_rank_percentile",
    # Types
    "AssumptionCell",
    "AssumptionSet",
    "Band",
    "Driver",
    "Level",
    "RiskRecord",
    "RiskType",
    "DealRow",
    "ScanRow",
    "RiskRow",
    "LinkRow",
    "OutcomeScanRow",
]
