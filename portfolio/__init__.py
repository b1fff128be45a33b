"""
portfolio - Portfolio-level aggregation of deal risk index scans.
"""

from portfolio.aggregator import (
    PortfolioConfig,
    PortfolioSummary,
    aggregate_portfolio,
    compute_version_drift,
    get_exposure_weight,
)
from portfolio.latest_scan import resolve_latest_scan, resolve_latest_scan_id, resolve_previous_scan
from portfolio.markets import normalize_market, exposure_market_key, exposure_market_label
from portfolio.prpi import PRPIComponents, PRPIResult, compute_prpi

__all__ = [
    "PortfolioConfig",
    "PortfolioSummary",
    "aggregate_portfolio",
    "compute_version_drift",
    "get_exposure_weight",
    "resolve_latest_scan",
    "resolve_latest_scan_id",
    "resolve_previous_scan",
    "normalize_market",
    "exposure_market_key",
    "exposure_market_label",
    "PRPIComponents",
    "PRPIResult",
    "compute_prpi",
]
