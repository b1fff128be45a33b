"""
scoring/macro.py - Macro Signal Linkage

Turns risk-to-macro-signal links into the macro input of the risk index:
- count_unique_macro_signals: +1 per distinct signal (duplicates never inflate)
- compute_decayed_macro_weight: distinct signals weighted by age window
- is_signal_relevant / infer_signal_context: keep signals that match the
  deal's asset type and state/market

Window Configuration:
- 7d:  Fresh signals get 100% weight
- 30d: Recent signals get 50% weight
- 90d: Historical context at 25% weight
- Older signals carry no weight; undated signals get the 90d weight

Design Philosophy:
- DETERMINISTIC: No datetime.now(), as-of is always explicit
- DECIMAL-ONLY: weights are Decimal

Version: 1.0.0
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from common.date_utils import days_between, parse_timestamp, validate_as_of_date

logger = logging.getLogger(__name__)


# =============================================================================
# TIME-DECAY WINDOW CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class MacroDecayWindow:
    """Configuration for a single signal-age window."""
    name: str
    max_age_days: int
    weight: Decimal
    description: str


DEFAULT_MACRO_DECAY_WINDOWS: Tuple[MacroDecayWindow, ...] = (
    MacroDecayWindow(
        name="7d",
        max_age_days=7,
        weight=Decimal("1.00"),
        description="Fresh signals - full weight",
    ),
    MacroDecayWindow(
        name="30d",
        max_age_days=30,
        weight=Decimal("0.50"),
        description="Recent signals - 50% weight",
    ),
    MacroDecayWindow(
        name="90d",
        max_age_days=90,
        weight=Decimal("0.25"),
        description="Historical context - 25% weight",
    ),
)

UNDATED_SIGNAL_WEIGHT = Decimal("0.25")


def _signal_id(link: Mapping[str, Any]) -> Optional[str]:
    signal_id = link.get("signal_id")
    if signal_id is None:
        return None
    return str(signal_id)


def count_unique_macro_signals(links: Iterable[Mapping[str, Any]]) -> int:
    """
    COUNT(DISTINCT signal_id) over link rows.

    Multiple risks linking to the same signal count once.
    """
    return len({sid for sid in (_signal_id(link) for link in links) if sid is not None})


def window_weight(
    age_days: Optional[Decimal],
    windows: Tuple[MacroDecayWindow, ...] = DEFAULT_MACRO_DECAY_WINDOWS,
) -> Decimal:
    """Weight of a signal of the given age; undated signals use the oldest window."""
    if age_days is None:
        return UNDATED_SIGNAL_WEIGHT
    for window in windows:
        if age_days <= window.max_age_days:
            return window.weight
    return Decimal("0")


def compute_decayed_macro_weight(
    links: Iterable[Mapping[str, Any]],
    as_of: datetime,
    windows: Tuple[MacroDecayWindow, ...] = DEFAULT_MACRO_DECAY_WINDOWS,
) -> Decimal:
    """
    Sum of window weights over distinct linked signals.

    When the same signal appears on several links, its most recent date is
    used. Signals dated after `as_of` are treated as fresh.

    Args:
        links: Link rows carrying signal_id and optional signal_date
        as_of: Explicit evaluation time (naive datetimes are taken as UTC)
        windows: Age windows, ordered by increasing max age

    Returns:
        Decimal weight (0 when there are no links)
    """
    as_of = validate_as_of_date(as_of)
    latest: Dict[str, Optional[datetime]] = {}
    for link in links:
        sid = _signal_id(link)
        if sid is None:
            continue
        ts = parse_timestamp(link.get("signal_date"))
        if sid not in latest:
            latest[sid] = ts
        elif ts is not None and (latest[sid] is None or ts > latest[sid]):
            latest[sid] = ts

    total = Decimal("0")
    for sid in sorted(latest):
        ts = latest[sid]
        age = None
        if ts is not None:
            age = max(Decimal("0"), days_between(ts, as_of))
        total += window_weight(age, windows)

    logger.debug("Decayed macro weight %s over %d signal(s)", total, len(latest))
    return total


# =============================================================================
# RELEVANCE FILTERING
# =============================================================================

@dataclass(frozen=True)
class SignalContext:
    asset_type: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class DealContext:
    asset_type: Optional[str] = None
    state: Optional[str] = None
    market: Optional[str] = None


_ASSET_KEYWORDS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("multifamily", "multi-family", "multifam"), "multifamily"),
    (("office",), "office"),
    (("retail",), "retail"),
    (("industrial",), "industrial"),
)

_STATE_PATTERN = re.compile(r"\b(florida|texas|phoenix|arizona|austin|california|nevada|georgia)\b")


def normalize_asset_type(value: str) -> str:
    text = value.strip().lower()
    for keywords, label in _ASSET_KEYWORDS:
        if any(k in text for k in keywords):
            return label
    return text


def _normalize_place(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip().lower())


def is_signal_relevant(signal: SignalContext, deal: DealContext) -> bool:
    """
    True unless the signal's asset type or place contradicts the deal's.

    Missing context on either side never excludes a signal. Places match
    when one contains the other (e.g. "phoenix, az" and "phoenix").
    """
    if signal.asset_type and deal.asset_type:
        sig_asset = normalize_asset_type(signal.asset_type)
        deal_asset = normalize_asset_type(deal.asset_type)
        if sig_asset and deal_asset and sig_asset != deal_asset:
            return False

    deal_place = (deal.state or deal.market or "").strip()
    if signal.state and deal_place:
        sig_place = _normalize_place(signal.state)
        deal_norm = _normalize_place(deal_place)
        if sig_place and deal_norm:
            if not (sig_place == deal_norm or sig_place in deal_norm or deal_norm in sig_place):
                return False

    return True


def infer_signal_context(signal_type: Optional[str], what_changed: Optional[str]) -> SignalContext:
    """Derive asset type and a coarse state/market from a signal's category and text."""
    combined = f"{(signal_type or '').lower()} {(what_changed or '').lower()}"

    asset_type = None
    for keywords, label in _ASSET_KEYWORDS:
        if any(k in combined for k in keywords):
            asset_type = label
            break

    match = _STATE_PATTERN.search(combined)
    state = match.group(1) if match else None

    return SignalContext(asset_type=asset_type, state=state, category=signal_type)
