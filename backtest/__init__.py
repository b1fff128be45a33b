"""
Backtest and benchmark tooling for the risk index.

Provides outcome calibration of persisted scores and peer benchmarking of
portfolio-level results.
"""

from backtest.calibration import (
    BacktestMetrics,
    BandOutcomeMetrics,
    compute_backtest_metrics,
    pearson_correlation,
    classify_predictive_strength,
    CALIBRATION_VERSION,
    MIN_SAMPLE_SIZE,
)

from backtest.benchmark import (
    BenchmarkResult,
    ClassificationThresholds,
    PortfolioClassification,
    build_benchmark,
    classify_portfolio,
    compute_percentile_rank,
)

__all__ = [
    # Calibration
    "BacktestMetrics",
    "BandOutcomeMetrics",
    "compute_backtest_metrics",
    "pearson_correlation",
    "classify_predictive_strength",
    "CALIBRATION_VERSION",
    "MIN_SAMPLE_SIZE",
    # Benchmark
    "BenchmarkResult",
    "ClassificationThresholds",
    "PortfolioClassification",
    "build_benchmark",
    "classify_portfolio",
    "compute_percentile_rank",
]
