#!/usr/bin/env python3
"""
run_portfolio.py - Deterministic Portfolio Risk Summary

Reads a JSON snapshot of deal, scan, risk and macro-link rows exported by the
persistence layer and writes the portfolio summary (weighted metrics,
concentration, PRPI, version drift, alerts) as canonical JSON.

DETERMINISM GUARANTEES:
- --as-of is REQUIRED (no today() defaults); staleness is measured against it
- Parameters come from params_archive/<version>.json (fail-closed)
- Stable ordering on all outputs; canonical JSON bytes

Snapshot keys:
    deals, scans (required); risks, links, prior_scan_index,
    outcome_scans, cohort_scores (optional)

Usage:
    python run_portfolio.py --as-of 2025-03-01 --input snapshot.json --output summary.json
    python run_portfolio.py --as-of 2025-03-01 --input snapshot.json --output summary.json --log-level DEBUG
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from common.date_utils import validate_as_of_date
from common.logging_config import LogContext, generate_run_id, setup_logging
from common.provenance import compute_hash, create_provenance
from common.snapshot_io import InputFileError, read_json_snapshot, write_canonical_output
from governance.model_metadata import get_model_metadata
from governance.params_loader import ParamsLoadError, load_risk_index_config
from governance.schema_registry import get_output_schema_version
from portfolio.aggregator import PortfolioConfig, aggregate_portfolio
from scoring.config import RISK_INDEX_VERSION

logger = logging.getLogger(__name__)

VERSION = "2.0.0"

REQUIRED_SNAPSHOT_KEYS = ("deals", "scans")


def _rows(snapshot: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = snapshot.get(key) or []
    if not isinstance(value, list):
        raise InputFileError(f"{key} must be a list, got {type(value).__name__}")
    bad = [i for i, row in enumerate(value) if not isinstance(row, dict)]
    if bad:
        raise InputFileError(f"{key} rows must be objects (bad indexes: {bad[:5]})")
    if key == "deals":
        missing = [i for i, row in enumerate(value) if row.get("id") is None]
        if missing:
            raise InputFileError(f"deals rows must carry an id (bad indexes: {missing[:5]})")
    return value


def summarize_snapshot(
    snapshot: Dict[str, Any],
    as_of: datetime,
    params_version: str = RISK_INDEX_VERSION,
    params_dir: Optional[Path] = None,
    stale_days: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Aggregate one snapshot and wrap it with governance metadata.

    Raises:
        InputFileError: If a snapshot collection is malformed
        ParamsLoadError: If the parameter archive cannot be loaded
    """
    risk_config, params_hash = load_risk_index_config(params_version, params_dir)
    config = PortfolioConfig() if stale_days is None else PortfolioConfig(stale_days=stale_days)

    prior_index = snapshot.get("prior_scan_index")
    if prior_index is not None and not isinstance(prior_index, dict):
        raise InputFileError("prior_scan_index must be an object keyed by deal id")

    outcome_scans = _rows(snapshot, "outcome_scans") if "outcome_scans" in snapshot else None
    cohort_scores = snapshot.get("cohort_scores")
    if cohort_scores is not None and not isinstance(cohort_scores, list):
        raise InputFileError("cohort_scores must be a list")

    summary = aggregate_portfolio(
        _rows(snapshot, "deals"),
        _rows(snapshot, "scans"),
        _rows(snapshot, "risks"),
        _rows(snapshot, "links"),
        prior_scan_index=prior_index,
        as_of=as_of,
        outcome_scans=outcome_scans,
        cohort_scores=cohort_scores,
        config=config,
        risk_config=risk_config,
    )

    return {
        "schema_version": get_output_schema_version("portfolio_summary"),
        "summary": summary.to_dict(),
        "model_metadata": get_model_metadata(risk_config, params_hash).to_dict(),
        "provenance": create_provenance(
            risk_config.version,
            snapshot,
            as_of=as_of.isoformat(),
            parameters_hash=params_hash,
        ),
    }


def main(argv: Optional[list] = None) -> int:
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="CRE Risk Index - portfolio summary (deterministic)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Determinism guarantees:
  - Identical snapshot + --as-of -> identical output bytes
  - No today() defaults (--as-of is required)
  - Stable ordering on all outputs
        """,
    )
    parser.add_argument(
        "--as-of",
        required=True,
        help="Reference timestamp (ISO-8601). REQUIRED - staleness is measured against it.",
    )
    parser.add_argument("--input", type=Path, required=True, help="Snapshot JSON file")
    parser.add_argument("--output", type=Path, required=True, help="Output JSON file path")
    parser.add_argument(
        "--params-version",
        default=RISK_INDEX_VERSION,
        help=f"Scoring parameter archive version (default: {RISK_INDEX_VERSION})",
    )
    parser.add_argument("--params-dir", type=Path, default=None, help="Override the params_archive directory")
    parser.add_argument("--stale-days", type=int, default=None, help="Stale scan threshold in days (default: 30)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", type=Path, default=None, help="Optional rotating log file")
    parser.add_argument("--structured-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    args = parser.parse_args(argv)

    try:
        setup_logging(
            log_file=args.log_file,
            log_level=args.log_level,
            structured_output=args.structured_logs,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        as_of = validate_as_of_date(args.as_of)
    except ValueError as e:
        parser.error(str(e))

    if args.stale_days is not None and args.stale_days < 0:
        parser.error("--stale-days must be non-negative")

    try:
        snapshot = read_json_snapshot(args.input, REQUIRED_SNAPSHOT_KEYS)
        with LogContext(generate_run_id(compute_hash(snapshot))):
            output = summarize_snapshot(
                snapshot,
                as_of=as_of,
                params_version=args.params_version,
                params_dir=args.params_dir,
                stale_days=args.stale_days,
            )
            write_canonical_output(args.output, output)

            counts = output["summary"]["counts"]
            prpi = output["summary"]["prpi"]
            logger.info("=" * 60)
            logger.info("PORTFOLIO SUMMARY (%s)", as_of.date().isoformat())
            logger.info("=" * 60)
            logger.info("Deals:          %d", counts["total"])
            logger.info("Scanned:        %d", counts["scanned"])
            logger.info("Unscanned:      %d", counts["unscanned"])
            logger.info("Stale:          %d", counts["stale"])
            logger.info("Needs review:   %d", counts["needs_review"])
            logger.info("PRPI:           %d (%s)", prpi["prpi_score"], prpi["prpi_band"])
            logger.info("=" * 60)
        return 0

    except (InputFileError, ParamsLoadError) as e:
        logger.error("ERROR: %s", e)
        return 1
    except Exception as e:
        logger.exception("UNEXPECTED ERROR: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
