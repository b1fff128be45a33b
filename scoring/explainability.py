"""
Explainability diff: why a score changed between two scans.

Compares the per-driver contributions of two breakdowns. Only meaningful
when both scans were scored by the same version, so a non-comparable pair
yields an empty diff.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from common.score_utils import to_decimal
from common.types import Driver
from scoring.risk_index import Breakdown

BreakdownLike = Union[Breakdown, Mapping[str, Any], None]

_DRIVER_ORDER = {d.value: i for i, d in enumerate(Driver)}


@dataclass(frozen=True)
class ExplainabilityDiffItem:
    driver: str
    previous_points: Decimal
    current_points: Decimal
    delta_points: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "driver": self.driver,
            "previous_points": self.previous_points,
            "current_points": self.current_points,
            "delta_points": self.delta_points,
        }


def _points_by_driver(breakdown: BreakdownLike) -> Optional[Dict[str, Decimal]]:
    if isinstance(breakdown, Breakdown):
        return {c.driver.value: c.points for c in breakdown.contributions}
    if not isinstance(breakdown, Mapping):
        return None
    contributions = breakdown.get("contributions")
    if not isinstance(contributions, list):
        return None
    out: Dict[str, Decimal] = {}
    for item in contributions:
        if not isinstance(item, Mapping):
            continue
        driver = item.get("driver")
        points = to_decimal(item.get("points"))
        if isinstance(driver, str) and points is not None:
            out[driver] = out.get(driver, Decimal("0")) + points
    return out


def _is_marked_comparable(breakdown: BreakdownLike) -> bool:
    if isinstance(breakdown, Breakdown):
        return breakdown.delta_comparable is True
    if isinstance(breakdown, Mapping):
        return breakdown.get("delta_comparable") is True
    return False


def compute_explainability_diff(
    latest: BreakdownLike,
    previous: BreakdownLike,
    delta_comparable: bool = False,
) -> List[ExplainabilityDiffItem]:
    """
    Per-driver (previous, current, delta) points between two breakdowns.

    Sorted by |delta| descending, then driver order. Empty when the pair is
    not comparable or either side lacks contributions.
    """
    if not delta_comparable and not _is_marked_comparable(latest):
        return []

    current = _points_by_driver(latest)
    prior = _points_by_driver(previous)
    if current is None or prior is None:
        return []

    items = []
    for driver in set(current) | set(prior):
        prev_pts = prior.get(driver, Decimal("0"))
        curr_pts = current.get(driver, Decimal("0"))
        items.append(ExplainabilityDiffItem(
            driver=driver,
            previous_points=prev_pts,
            current_points=curr_pts,
            delta_points=curr_pts - prev_pts,
        ))

    items.sort(key=lambda i: (-abs(i.delta_points), _DRIVER_ORDER.get(i.driver, len(_DRIVER_ORDER)), i.driver))
    return items
