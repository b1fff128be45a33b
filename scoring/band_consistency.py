"""
Score/band consistency check for persisted risk index results.

The canonical band comes from the scoring config's thresholds. A stored band
is only asserted against when the scan was produced by the current scoring
version; older versions may legitimately use different thresholds.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from common.score_utils import round_half_up
from common.types import Band
from scoring.config import DEFAULT_CONFIG, RiskIndexConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BandConsistencyResult:
    mismatch: bool
    expected_band: Optional[Band] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"mismatch": self.mismatch}
        if self.expected_band is not None:
            out["expected_band"] = self.expected_band.value
        return out


def _coerce_score(score: Any) -> Optional[int]:
    if isinstance(score, bool) or score is None:
        return None
    if isinstance(score, int):
        return score
    if isinstance(score, (float, Decimal)):
        if score != score or score in (float("inf"), float("-inf")):
            return None
        if isinstance(score, Decimal) and not score.is_finite():
            return None
        return round_half_up(Decimal(str(score)))
    return None


def check_band_consistency(
    score: Any,
    stored_band: Optional[str],
    risk_index_version: Optional[str],
    config: RiskIndexConfig = DEFAULT_CONFIG,
) -> BandConsistencyResult:
    """
    Compare a stored band with the band its score maps to.

    Args:
        score: Persisted score (None/non-numeric short-circuits)
        stored_band: Persisted band string (empty/unrecognized short-circuits)
        risk_index_version: Version that produced the stored record
        config: Current scoring config

    Returns:
        BandConsistencyResult; expected_band is set only on mismatch
    """
    value = _coerce_score(score)
    if value is None:
        return BandConsistencyResult(mismatch=False)

    band = Band.parse(stored_band)
    if band is None:
        return BandConsistencyResult(mismatch=False)

    version = risk_index_version.strip() if isinstance(risk_index_version, str) else ""
    if not version or version != config.version.strip():
        return BandConsistencyResult(mismatch=False)

    expected = config.score_to_band(value)
    if expected != band:
        logger.debug("Band mismatch: score %s stored %s expected %s", value, band.value, expected.value)
        return BandConsistencyResult(mismatch=True, expected_band=expected)
    return BandConsistencyResult(mismatch=False)
