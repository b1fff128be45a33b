"""
Latest-scan and previous-scan resolution.

A deal's authoritative scan is its stored latest_scan_id when that id names
one of the deal's completed scans. Otherwise (pointer null, or dangling after
a partial write) it is the scan with the greatest (created_at, id) pair.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from common.date_utils import parse_timestamp

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

COMPLETED_STATUS = "completed"


def _order_key(scan: Mapping[str, Any]) -> Tuple[datetime, str]:
    created = parse_timestamp(scan.get("created_at")) or _EPOCH
    return created, str(scan.get("id", ""))


def is_completed(scan: Mapping[str, Any]) -> bool:
    """Scans without a status are taken as completed (pre-filtered input)."""
    status = scan.get("status")
    return status is None or status == COMPLETED_STATUS


def group_scans_by_deal(scans: Iterable[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    """Completed scans grouped by deal id, newest first."""
    grouped: Dict[str, List[Mapping[str, Any]]] = defaultdict(list)
    for scan in scans:
        if not is_completed(scan):
            continue
        deal_id = scan.get("deal_id")
        if deal_id is None:
            continue
        grouped[str(deal_id)].append(scan)
    for deal_scans in grouped.values():
        deal_scans.sort(key=_order_key, reverse=True)
    return dict(grouped)


def newest_scan(scans: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """Scan with the greatest (created_at, id); None for an empty sequence."""
    if not scans:
        return None
    return max(scans, key=_order_key)


def resolve_latest_scan(
    deal: Mapping[str, Any],
    scans_by_deal: Mapping[str, Sequence[Mapping[str, Any]]],
) -> Optional[Mapping[str, Any]]:
    """
    Authoritative latest scan for a deal, or None when it has no scans.

    Args:
        deal: Deal row (id, latest_scan_id)
        scans_by_deal: Completed scans grouped by deal id

    Returns:
        The scan row
    """
    deal_scans = scans_by_deal.get(str(deal.get("id")), ())
    pointer = deal.get("latest_scan_id")
    if pointer:
        for scan in deal_scans:
            if str(scan.get("id")) == str(pointer):
                return scan
        if deal_scans:
            logger.warning(
                "Deal %s latest_scan_id %s not among its completed scans; using newest",
                deal.get("id"), pointer,
            )
    return newest_scan(deal_scans)


def resolve_latest_scan_id(
    deal: Mapping[str, Any],
    scans_by_deal: Mapping[str, Sequence[Mapping[str, Any]]],
) -> Optional[str]:
    scan = resolve_latest_scan(deal, scans_by_deal)
    return str(scan["id"]) if scan is not None else None


def resolve_previous_scan(
    latest: Mapping[str, Any],
    deal_scans: Sequence[Mapping[str, Any]],
) -> Optional[Mapping[str, Any]]:
    """Newest of the deal's other scans, or None."""
    latest_id = str(latest.get("id"))
    others = [s for s in deal_scans if str(s.get("id")) != latest_id]
    return newest_scan(others)
