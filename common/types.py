"""
Shared type definitions for the CRE risk index engine.

Closed enumerations are normalized at the row boundary: unknown risk types
collapse to DataMissing, unknown severities/confidences to Low. Scoring code
never string-matches raw row values.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union
from typing_extensions import TypedDict, NotRequired

from common.score_utils import to_decimal


# =============================================================================
# TYPE ALIASES
# =============================================================================

DealId = str
ScanId = str
Score = int
TimestampString = str  # ISO-8601


# =============================================================================
# CLOSED ENUMERATIONS
# =============================================================================

class Level(str, Enum):
    """Severity / confidence level."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def parse(cls, value: Any) -> "Level":
        """Parse a raw level; missing or unrecognized input is Low."""
        if isinstance(value, Level):
            return value
        if isinstance(value, str):
            stripped = value.strip().lower()
            for member in cls:
                if member.value.lower() == stripped:
                    return member
        return cls.LOW


class RiskType(str, Enum):
    """Risk types produced by extraction (closed set of 11)."""
    EXIT_CAP_COMPRESSION = "ExitCapCompression"
    RENT_GROWTH_AGGRESSIVE = "RentGrowthAggressive"
    EXPENSE_UNDERSTATED = "ExpenseUnderstated"
    VACANCY_UNDERSTATED = "VacancyUnderstated"
    REFI_RISK = "RefiRisk"
    DEBT_COST_RISK = "DebtCostRisk"
    INSURANCE_RISK = "InsuranceRisk"
    CONSTRUCTION_TIMING_RISK = "ConstructionTimingRisk"
    MARKET_LIQUIDITY_RISK = "MarketLiquidityRisk"
    REGULATORY_POLICY_EXPOSURE = "RegulatoryPolicyExposure"
    DATA_MISSING = "DataMissing"

    @classmethod
    def parse(cls, value: Any) -> "RiskType":
        """Parse a raw risk type; unknown input is DataMissing."""
        if isinstance(value, RiskType):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            for member in cls:
                if member.value == stripped:
                    return member
        return cls.DATA_MISSING

    @property
    def is_structural(self) -> bool:
        return self in STRUCTURAL_RISK_TYPES

    @property
    def is_missing_data(self) -> bool:
        return self in MISSING_DATA_RISK_TYPES


# Capital structure / debt / refi risks; everything else is market
STRUCTURAL_RISK_TYPES = frozenset({
    RiskType.REFI_RISK,
    RiskType.DEBT_COST_RISK,
    RiskType.MARKET_LIQUIDITY_RISK,
    RiskType.INSURANCE_RISK,
    RiskType.CONSTRUCTION_TIMING_RISK,
})

MISSING_DATA_RISK_TYPES = frozenset({
    RiskType.DATA_MISSING,
    RiskType.EXPENSE_UNDERSTATED,
})


class Band(str, Enum):
    """Qualitative risk tier."""
    LOW = "Low"
    MODERATE = "Moderate"
    ELEVATED = "Elevated"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return BAND_ORDER.index(self)

    def at_least(self, floor: "Band") -> "Band":
        """Raise this band to `floor` if it is lower; never lowers."""
        return floor if self.rank < floor.rank else self

    @classmethod
    def parse(cls, value: Any) -> Optional["Band"]:
        """Parse a stored band string; None when empty or unrecognized."""
        if isinstance(value, Band):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            for member in cls:
                if member.value == stripped:
                    return member
        return None


BAND_ORDER: Tuple[Band, ...] = (Band.LOW, Band.MODERATE, Band.ELEVATED, Band.HIGH)
ELEVATED_PLUS_BANDS = frozenset({Band.ELEVATED, Band.HIGH})


class Driver(str, Enum):
    """Semantic driver labels. Declaration order is the attribution order."""
    LEVERAGE = "leverage"
    VACANCY = "vacancy"
    COMPRESSION = "compression"
    MISSING = "missing"
    MARKET = "market"
    STABILIZERS = "stabilizers"
    RESIDUAL = "residual"

    @classmethod
    def for_risk_type(cls, risk_type: RiskType) -> "Driver":
        if risk_type in (RiskType.DEBT_COST_RISK, RiskType.REFI_RISK):
            return cls.LEVERAGE
        if risk_type == RiskType.VACANCY_UNDERSTATED:
            return cls.VACANCY
        if risk_type == RiskType.EXIT_CAP_COMPRESSION:
            return cls.COMPRESSION
        if risk_type.is_missing_data:
            return cls.MISSING
        return cls.MARKET


# =============================================================================
# ASSUMPTIONS
# =============================================================================

ASSUMPTION_KEYS: Tuple[str, ...] = (
    "purchase_price",
    "cap_rate_in",
    "noi_year1",
    "rent_growth",
    "expense_growth",
    "vacancy",
    "exit_cap",
    "hold_period_years",
    "debt_rate",
    "ltv",
)


@dataclass(frozen=True)
class AssumptionCell:
    """One extracted assumption value."""
    value: Optional[Decimal]
    unit: Optional[str] = None
    confidence: Level = Level.LOW

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["AssumptionCell"]:
        """Build a cell from a raw payload dict; None when not a dict."""
        if isinstance(raw, AssumptionCell):
            return raw
        if not isinstance(raw, Mapping):
            return None
        unit = raw.get("unit")
        return cls(
            value=to_decimal(raw.get("value")),
            unit=unit if isinstance(unit, str) else None,
            confidence=Level.parse(raw.get("confidence")),
        )

    def with_value(self, value: Optional[Decimal]) -> "AssumptionCell":
        return AssumptionCell(value=value, unit=self.unit, confidence=self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "unit": self.unit,
            "confidence": self.confidence.value,
        }


@dataclass(frozen=True)
class AssumptionSet:
    """
    Immutable set of assumption cells keyed by assumption name.

    Transforms never mutate a set; they return a new one. The markers record
    which pipeline stages the set has been through so each stage is
    idempotent.
    """
    cells: Tuple[Tuple[str, AssumptionCell], ...] = ()
    normalized: bool = False
    unit_inferred: bool = False
    sanitized: bool = False
    validation_errors: Tuple[str, ...] = ()
    severe: bool = False

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "AssumptionSet":
        """Build from {key: cell-dict}; unknown keys and non-dict cells are dropped."""
        if not isinstance(mapping, Mapping):
            return cls()
        cells = []
        for key in ASSUMPTION_KEYS:
            cell = AssumptionCell.from_raw(mapping.get(key))
            if cell is not None:
                cells.append((key, cell))
        return cls(cells=tuple(cells))

    @classmethod
    def from_extraction(cls, extraction: Any) -> "AssumptionSet":
        """Build from a scan extraction payload ({"assumptions": {...}})."""
        if not isinstance(extraction, Mapping):
            return cls()
        return cls.from_mapping(extraction.get("assumptions"))

    def get(self, key: str) -> Optional[AssumptionCell]:
        for k, cell in self.cells:
            if k == key:
                return cell
        return None

    def value(self, key: str) -> Optional[Decimal]:
        cell = self.get(key)
        return cell.value if cell is not None else None

    def keys(self) -> List[str]:
        return [k for k, _ in self.cells]

    def __iter__(self) -> Iterator[Tuple[str, AssumptionCell]]:
        return iter(self.cells)

    def __len__(self) -> int:
        return len(self.cells)

    def to_dict(self) -> Dict[str, Any]:
        return {k: cell.to_dict() for k, cell in self.cells}


# =============================================================================
# RISKS
# =============================================================================

@dataclass(frozen=True)
class RiskRecord:
    """A risk flag attached to a scan."""
    risk_type: RiskType
    severity_current: Level = Level.LOW
    confidence: Level = Level.LOW

    @classmethod
    def from_row(cls, row: Union["RiskRow", Mapping[str, Any], "RiskRecord"]) -> "RiskRecord":
        if isinstance(row, RiskRecord):
            return row
        return cls(
            risk_type=RiskType.parse(row.get("risk_type")),
            severity_current=Level.parse(row.get("severity_current")),
            confidence=Level.parse(row.get("confidence")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_type": self.risk_type.value,
            "severity_current": self.severity_current.value,
            "confidence": self.confidence.value,
        }


# =============================================================================
# PERSISTENCE ROW CONTRACTS (read-only input)
# =============================================================================

class DealRow(TypedDict):
    """Deal row as returned by the persistence layer."""
    id: str
    name: str
    asset_type: NotRequired[Optional[str]]
    market: NotRequired[Optional[str]]
    market_key: NotRequired[Optional[str]]
    market_label: NotRequired[Optional[str]]
    latest_scan_id: NotRequired[Optional[str]]
    created_at: NotRequired[Optional[str]]


class ScanRow(TypedDict):
    """Completed deal scan row."""
    id: str
    deal_id: str
    created_at: str
    completed_at: NotRequired[Optional[str]]
    status: NotRequired[Optional[str]]
    extraction: NotRequired[Any]
    risk_index_score: NotRequired[Optional[int]]
    risk_index_band: NotRequired[Optional[str]]
    risk_index_version: NotRequired[Optional[str]]
    risk_index_breakdown: NotRequired[Optional[Dict[str, Any]]]
    macro_linked_count: NotRequired[Optional[int]]


class RiskRow(TypedDict):
    """Risk row linked to a scan."""
    id: str
    deal_scan_id: str
    risk_type: str
    severity_current: str
    confidence: NotRequired[Optional[str]]


class LinkRow(TypedDict):
    """Risk-to-macro-signal link with the linked signal's category/text."""
    deal_risk_id: str
    signal_id: str
    signal_type: NotRequired[Optional[str]]
    what_changed: NotRequired[Optional[str]]
    signal_date: NotRequired[Optional[str]]


class OutcomeScanRow(TypedDict):
    """Scan carrying a realized outcome, for backtesting."""
    risk_index_score: Optional[int]
    risk_index_band: Optional[str]
    actual_outcome_type: Optional[str]
    actual_outcome_value: NotRequired[Optional[float]]
