#!/usr/bin/env python3
"""
run_risk_index.py - Score a single deal scan

Reads a scan payload (risks, extraction assumptions, optional macro links and
previous score), computes the CRE Risk Index with an archived parameter set,
and writes the result as canonical JSON.

DETERMINISM GUARANTEES:
- Parameters come from params_archive/<version>.json (fail-closed)
- Macro decay uses an explicit --as-of (no wall-clock reads)
- Output is canonical JSON with a content hash

Input payload:
    {
      "risks": [{"risk_type": ..., "severity_current": ..., "confidence": ...}],
      "extraction": {"assumptions": {"ltv": {"value": 80, "unit": "%"}, ...}},
      "links": [{"deal_risk_id": ..., "signal_id": ..., "signal_date": ...}],
      "previous": {"score": 52, "version": "2.0"}
    }

Usage:
    python run_risk_index.py --input scan.json --output result.json
    python run_risk_index.py --input scan.json --output result.json --as-of 2025-03-01 --severity-overrides
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from common.date_utils import validate_as_of_date
from common.logging_config import LogContext, generate_run_id, setup_logging
from common.provenance import compute_hash, create_provenance
from common.snapshot_io import InputFileError, read_json_snapshot, write_canonical_output
from common.types import AssumptionSet, RiskRecord
from governance.model_metadata import get_model_metadata
from governance.params_loader import ParamsLoadError, load_risk_index_config
from governance.schema_registry import get_output_schema_version
from scoring.config import RISK_INDEX_VERSION
from scoring.macro import compute_decayed_macro_weight, count_unique_macro_signals
from scoring.normalization import normalize_assumptions
from scoring.risk_index import PreviousScore, compute_risk_index
from scoring.severity_overrides import apply_severity_overrides

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


def _previous_from_payload(raw: Any) -> Optional[PreviousScore]:
    if not isinstance(raw, dict) or raw.get("score") is None:
        return None
    try:
        score = int(raw["score"])
    except (TypeError, ValueError) as e:
        raise InputFileError(f"previous.score must be an integer, got {raw['score']!r}") from e
    version = raw.get("version")
    return PreviousScore(score=score, version=str(version) if version is not None else None)


def score_payload(
    payload: Dict[str, Any],
    params_version: str = RISK_INDEX_VERSION,
    as_of: Optional[datetime] = None,
    severity_overrides: bool = False,
    params_dir: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Score one scan payload and wrap it with governance metadata.

    Raises:
        InputFileError: If the payload is structurally invalid
        ParamsLoadError: If the parameter archive cannot be loaded
    """
    config, params_hash = load_risk_index_config(params_version, params_dir)

    raw_risks = payload.get("risks", [])
    if not isinstance(raw_risks, list):
        raise InputFileError("risks must be a list")
    risks = [RiskRecord.from_row(r) for r in raw_risks if isinstance(r, dict)]

    if "extraction" in payload:
        assumptions = AssumptionSet.from_extraction(payload.get("extraction"))
    else:
        assumptions = AssumptionSet.from_mapping(payload.get("assumptions"))
    assumptions = normalize_assumptions(assumptions)

    if severity_overrides:
        risks = apply_severity_overrides(risks, assumptions)

    links = [l for l in payload.get("links", []) or [] if isinstance(l, dict)]
    macro_count = count_unique_macro_signals(links)
    macro_weight = compute_decayed_macro_weight(links, as_of) if (links and as_of is not None) else None

    result = compute_risk_index(
        risks,
        assumptions,
        macro_linked_count=macro_count,
        macro_decayed_weight=macro_weight,
        previous=_previous_from_payload(payload.get("previous")),
        config=config,
    )
    logger.info(
        "Scored scan: %d risks, score %d (%s), version %s",
        len(risks), result.score, result.band.value, result.risk_index_version,
    )

    return {
        "schema_version": get_output_schema_version("risk_index_result"),
        "result": result.to_dict(),
        "content_hash": result.content_hash(),
        "model_metadata": get_model_metadata(config, params_hash).to_dict(),
        "provenance": create_provenance(
            config.version,
            payload,
            as_of=as_of.isoformat() if as_of is not None else None,
            parameters_hash=params_hash,
        ),
    }


def main(argv: Optional[list] = None) -> int:
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="CRE Risk Index - score a single scan (deterministic)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--input", type=Path, required=True, help="Scan payload JSON file")
    parser.add_argument("--output", type=Path, required=True, help="Output JSON file path")
    parser.add_argument(
        "--as-of",
        default=None,
        help="Evaluation timestamp for macro signal decay (ISO-8601). Without it the linked count is used.",
    )
    parser.add_argument(
        "--params-version",
        default=RISK_INDEX_VERSION,
        help=f"Scoring parameter archive version (default: {RISK_INDEX_VERSION})",
    )
    parser.add_argument(
        "--params-dir",
        type=Path,
        default=None,
        help="Override the params_archive directory",
    )
    parser.add_argument(
        "--severity-overrides",
        action="store_true",
        help="Derive risk severities from numeric assumptions before scoring",
    )
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
        as_of = validate_as_of_date(args.as_of) if args.as_of else None
    except ValueError as e:
        parser.error(str(e))

    try:
        payload = read_json_snapshot(args.input)
        with LogContext(generate_run_id(compute_hash(payload))):
            output = score_payload(
                payload,
                params_version=args.params_version,
                as_of=as_of,
                severity_overrides=args.severity_overrides,
                params_dir=args.params_dir,
            )
            write_canonical_output(args.output, output)
        return 0

    except (InputFileError, ParamsLoadError) as e:
        logger.error("ERROR: %s", e)
        return 1
    except Exception as e:
        logger.exception("UNEXPECTED ERROR: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
