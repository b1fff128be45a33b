"""
Deterministic severity overrides applied after extraction and before scoring.

When the numeric assumption behind a risk type is present, its severity is
derived from that number rather than from the extracted label, which keeps
repeated extractions of the same deal from drifting.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from common.types import AssumptionSet, Level, RiskRecord, RiskType

RENT_GROWTH_HIGH = Decimal("4")
RENT_GROWTH_MEDIUM = Decimal("3")
VACANCY_HIGH = Decimal("20")
VACANCY_MEDIUM = Decimal("10")
LTV_HIGH = Decimal("75")
LTV_MEDIUM = Decimal("65")
SPREAD_HIGH = Decimal("0.5")
SPREAD_MEDIUM = Decimal("0.25")


def _tiered(value: Decimal, high: Decimal, medium: Decimal) -> Level:
    if value >= high:
        return Level.HIGH
    if value >= medium:
        return Level.MEDIUM
    return Level.LOW


def apply_severity_override(
    risk_type: RiskType,
    extracted_severity: Level,
    assumptions: AssumptionSet,
) -> Level:
    """Severity for `risk_type` given the assumptions; falls back to the extracted one."""
    if risk_type == RiskType.RENT_GROWTH_AGGRESSIVE:
        rent_growth = assumptions.value("rent_growth")
        if rent_growth is not None:
            return _tiered(rent_growth, RENT_GROWTH_HIGH, RENT_GROWTH_MEDIUM)

    elif risk_type == RiskType.VACANCY_UNDERSTATED:
        vacancy = assumptions.value("vacancy")
        if vacancy is not None:
            return _tiered(vacancy, VACANCY_HIGH, VACANCY_MEDIUM)

    elif risk_type in (RiskType.DEBT_COST_RISK, RiskType.REFI_RISK):
        ltv = assumptions.value("ltv")
        if ltv is not None:
            return _tiered(ltv, LTV_HIGH, LTV_MEDIUM)

    elif risk_type == RiskType.EXIT_CAP_COMPRESSION:
        exit_cap = assumptions.value("exit_cap")
        cap_in = assumptions.value("cap_rate_in")
        if exit_cap is not None and cap_in is not None:
            spread = cap_in - exit_cap
            if spread > SPREAD_HIGH:
                return Level.HIGH
            if spread > SPREAD_MEDIUM:
                return Level.MEDIUM
            return Level.LOW

    return extracted_severity


def apply_severity_overrides(
    risks: Iterable[RiskRecord],
    assumptions: AssumptionSet,
) -> List[RiskRecord]:
    """Return new risk records with deterministic severities applied."""
    out = []
    for risk in risks:
        severity = apply_severity_override(risk.risk_type, risk.severity_current, assumptions)
        out.append(RiskRecord(
            risk_type=risk.risk_type,
            severity_current=severity,
            confidence=risk.confidence,
        ))
    return out
