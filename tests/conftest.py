#!/usr/bin/env python3
"""
Shared test fixtures for the risk index test suite.

Provides reusable fixtures for:
- Standard as_of timestamps for deterministic tests
- Assumption sets and risk records for the scoring engine
- Deal / scan / risk / link rows for portfolio aggregation
- Temporary params and snapshot directories
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest

# Add parent to path for module imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.types import AssumptionSet, Level, RiskRecord, RiskType


# ============================================================================
# STANDARD DATES
# ============================================================================

@pytest.fixture
def as_of() -> datetime:
    """Standard as_of timestamp for deterministic tests."""
    return datetime(2025, 2, 20, tzinfo=timezone.utc)


@pytest.fixture
def as_of_str() -> str:
    """Standard as_of as string for CLI tests."""
    return "2025-02-20"


# ============================================================================
# SCORING INPUTS
# ============================================================================

def make_assumptions(**values: Any) -> AssumptionSet:
    """AssumptionSet from keyword values, all tagged as percent units."""
    cells = {}
    for key, value in values.items():
        unit = "USD" if key in ("purchase_price", "noi_year1") else "%"
        if key == "hold_period_years":
            unit = "years"
        cells[key] = {"value": value, "unit": unit, "confidence": "High"}
    return AssumptionSet.from_mapping(cells)


def make_risk(risk_type: RiskType, severity: Level = Level.HIGH, confidence: Level = Level.HIGH) -> RiskRecord:
    return RiskRecord(risk_type=risk_type, severity_current=severity, confidence=confidence)


@pytest.fixture
def base_assumptions() -> AssumptionSet:
    """A complete, unremarkable stabilized deal."""
    return make_assumptions(
        purchase_price=10_000_000,
        noi_year1=600_000,
        cap_rate_in=6,
        exit_cap=6,
        ltv=70,
        vacancy=10,
        debt_rate=6,
        rent_growth=3,
        expense_growth=3,
    )


@pytest.fixture
def moderate_risks() -> List[RiskRecord]:
    """One structural and one market risk at medium severity."""
    return [
        make_risk(RiskType.REFI_RISK, Level.MEDIUM, Level.MEDIUM),
        make_risk(RiskType.VACANCY_UNDERSTATED, Level.MEDIUM, Level.HIGH),
    ]


# ============================================================================
# PORTFOLIO ROWS
# ============================================================================

@pytest.fixture
def portfolio_deals() -> List[Dict[str, Any]]:
    """Three deals: two Dallas (spelled differently) and one unscanned Austin deal."""
    return [
        {
            "id": "d1",
            "name": "Alpha",
            "asset_type": "Multifamily",
            "market": "Dallas, TX",
            "latest_scan_id": "s1b",
        },
        {
            "id": "d2",
            "name": "Bravo",
            "asset_type": "Office",
            "market": "Dallas, Texas",
            "latest_scan_id": None,
        },
        {
            "id": "d3",
            "name": "Charlie",
            "asset_type": "Retail",
            "market": "Austin, TX",
        },
    ]


@pytest.fixture
def portfolio_scans() -> List[Dict[str, Any]]:
    """d1 deteriorates 40 -> 60 on the same version; d2 has one Low scan."""
    return [
        {
            "id": "s1a",
            "deal_id": "d1",
            "created_at": "2025-01-01T00:00:00Z",
            "status": "completed",
            "risk_index_score": 40,
            "risk_index_band": "Moderate",
            "risk_index_version": "2.0",
            "extraction": {"assumptions": {"purchase_price": {"value": 20_000_000, "unit": "USD"}}},
        },
        {
            "id": "s1b",
            "deal_id": "d1",
            "created_at": "2025-02-01T00:00:00Z",
            "status": "completed",
            "risk_index_score": 60,
            "risk_index_band": "Elevated",
            "risk_index_version": "2.0",
            "risk_index_breakdown": {"structural_weight": 70, "market_weight": 30},
            "extraction": {
                "assumptions": {
                    "purchase_price": {"value": 20_000_000, "unit": "USD"},
                    "noi_year1": {"value": 1_400_000, "unit": "USD"},
                    "ltv": {"value": 70, "unit": "%"},
                    "debt_rate": {"value": 6.5, "unit": "%"},
                    "expense_growth": {"value": 3, "unit": "%"},
                    "vacancy": {"value": 8, "unit": "%"},
                    "cap_rate_in": {"value": 6, "unit": "%"},
                    "exit_cap": {"value": 6.5, "unit": "%"},
                }
            },
        },
        {
            "id": "s2a",
            "deal_id": "d2",
            "created_at": "2025-02-10T00:00:00Z",
            "status": "completed",
            "risk_index_score": 30,
            "risk_index_band": "Low",
            "risk_index_version": "2.0",
            "risk_index_breakdown": {"structural_weight": 50, "market_weight": 50},
            "extraction": {
                "assumptions": {
                    "purchase_price": {"value": 5_000_000, "unit": "USD"},
                    "ltv": {"value": 72, "unit": "%"},
                    "expense_growth": {"value": 2, "unit": "%"},
                }
            },
        },
    ]


@pytest.fixture
def portfolio_risks() -> List[Dict[str, Any]]:
    return [
        {"id": "r1", "deal_scan_id": "s1b", "risk_type": "RefiRisk", "severity_current": "High", "confidence": "High"},
        {"id": "r2", "deal_scan_id": "s1b", "risk_type": "VacancyUnderstated", "severity_current": "Medium", "confidence": "Medium"},
        {"id": "r3", "deal_scan_id": "s2a", "risk_type": "DebtCostRisk", "severity_current": "Medium", "confidence": "Low"},
        {"id": "r0", "deal_scan_id": "s1a", "risk_type": "InsuranceRisk", "severity_current": "High", "confidence": "High"},
    ]


@pytest.fixture
def portfolio_links() -> List[Dict[str, Any]]:
    return [
        {"deal_risk_id": "r1", "signal_id": "sig1", "signal_type": "Rates"},
        {"deal_risk_id": "r3", "signal_id": "sig1", "signal_type": "Rates"},
        {"deal_risk_id": "r2", "signal_id": "sig2", "signal_type": ""},
        {"deal_risk_id": "r0", "signal_id": "sig3", "signal_type": "Insurance"},
    ]


@pytest.fixture
def portfolio_snapshot(portfolio_deals, portfolio_scans, portfolio_risks, portfolio_links) -> Dict[str, Any]:
    return {
        "deals": portfolio_deals,
        "scans": portfolio_scans,
        "risks": portfolio_risks,
        "links": portfolio_links,
    }


# ============================================================================
# FILESYSTEM
# ============================================================================

@pytest.fixture
def params_dir(tmp_path) -> Path:
    """Empty temporary params archive directory."""
    path = tmp_path / "params_archive"
    path.mkdir()
    return path


@pytest.fixture
def write_json(tmp_path):
    """Write an object to a JSON file under tmp_path and return its path."""
    def _write(name: str, obj: Any) -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(obj), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def restore_root_logger():
    """Put root logger handlers and level back after a test reconfigures them."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
