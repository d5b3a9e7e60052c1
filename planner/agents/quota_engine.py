"""Category quotas and auto-completion of a user's location selection."""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from planner.config import get_logger
from planner.errors import QuotaShortfall
from planner.schemas import Location, SelectionEntry

logger = get_logger(__name__)

# Processing order for auto-completion; candidates are appended in this order.
QUOTA_CATEGORIES = ("attraction", "restaurant", "cafe", "lodging")


def compute_minimums(trip_days: int, *, lodging_per_day: bool = False) -> Dict[str, int]:
    """Return the minimum number of stops required per category.

    Lodging is fixed at one regardless of trip length. ``lodging_per_day``
    switches to the alternate one-per-day reading of the lodging rule.
    """
    if trip_days < 1:
        raise ValueError(f"trip_days must be >= 1, got {trip_days}")
    return {
        "attraction": 4 * trip_days,
        "restaurant": 3 * trip_days,
        "cafe": 3 * trip_days,
        "lodging": trip_days if lodging_per_day else 1,
    }


def count_by_category(entries: Iterable[SelectionEntry]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for entry in entries:
        counts[entry.category] = counts.get(entry.category, 0) + 1
    return counts


def _take_from_pool(
    category: str,
    pool: Sequence[Location],
    shortfall: int,
    taken_ids: Set[str],
) -> List[Location]:
    picked: List[Location] = []
    for location in pool:
        if len(picked) >= shortfall:
            break
        if location.id in taken_ids:
            continue
        picked.append(location)
        taken_ids.add(location.id)
    if len(picked) < shortfall:
        raise QuotaShortfall(category, shortfall, picked)
    return picked


def auto_complete(
    selected: Sequence[SelectionEntry],
    pools: Mapping[str, Sequence[Location]],
    trip_days: int,
    *,
    minimums: Optional[Mapping[str, int]] = None,
) -> List[SelectionEntry]:
    """Fill per-category shortfalls from ranked recommendation pools.

    The input entries are returned first, unchanged and in order, followed by
    the added candidates grouped by category in ``QUOTA_CATEGORIES`` order.
    Pools are taken in the order given; an id is never added twice, whether it
    was already selected or added earlier in the same call. A pool that cannot
    cover its shortfall contributes what it has.
    """
    required = dict(minimums) if minimums is not None else compute_minimums(trip_days)
    current = count_by_category(selected)
    taken_ids: Set[str] = {entry.id for entry in selected}
    result: List[SelectionEntry] = list(selected)

    for category in QUOTA_CATEGORIES:
        shortfall = max(0, required.get(category, 0) - current.get(category, 0))
        logger.debug(
            "%s: selected %d, minimum %d, shortfall %d",
            category,
            current.get(category, 0),
            required.get(category, 0),
            shortfall,
        )
        if shortfall == 0:
            continue
        try:
            picked = _take_from_pool(category, pools.get(category) or [], shortfall, taken_ids)
        except QuotaShortfall as exc:
            logger.warning("Quota shortfall: %s", exc)
            picked = exc.available
        result.extend(SelectionEntry(location=loc, is_candidate=True) for loc in picked)
        if picked:
            logger.info("Auto-added %d %s candidate(s)", len(picked), category)

    logger.info(
        "Auto-completion produced %d entries (%d selected, %d candidates)",
        len(result),
        len(selected),
        len(result) - len(selected),
    )
    return result
