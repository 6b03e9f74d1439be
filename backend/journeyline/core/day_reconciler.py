"""
Day-set reconciliation between a journey's live days and a target window.

Works purely on civil dates: callers project stored day instants through
the civil calendar before handing them in.
"""

import bisect
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Generic, Iterable, List, Sequence, Tuple, TypeVar

from journeyline.core.errors import PreconditionFailed, TimelineError

T = TypeVar("T")


class ReconciliationError(TimelineError):
    """No surviving day is left to receive orphaned activities"""

    code = "reconciliation_failed"


@dataclass
class DayReconciliation(Generic[T]):
    target_dates: List[date]
    dates_to_create: List[date]
    kept: Dict[date, T]
    orphans: List[Tuple[date, T]]
    reanchor: Dict[date, date] = field(default_factory=dict)

    @property
    def days_added(self) -> int:
        return len(self.dates_to_create)

    @property
    def days_removed(self) -> int:
        return len(self.orphans)

    @property
    def is_noop(self) -> bool:
        return not self.dates_to_create and not self.orphans


def date_range(start: date, end: date) -> List[date]:
    """Every civil date from ``start`` to ``end`` inclusive"""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def nearest_date(target: date, candidates: Sequence[date]) -> date:
    """Candidate closest to ``target`` in whole days.

    ``candidates`` must be sorted ascending. On an exact tie the earlier
    date wins.
    """
    if not candidates:
        raise ReconciliationError(f"No surviving date to anchor {target.isoformat()}")
    idx = bisect.bisect_left(candidates, target)
    if idx < len(candidates) and candidates[idx] == target:
        return target
    before = candidates[idx - 1] if idx > 0 else None
    after = candidates[idx] if idx < len(candidates) else None
    if before is None:
        return after
    if after is None:
        return before
    if (after - target) < (target - before):
        return after
    return before


def reconcile_day_set(
    existing: Iterable[Tuple[date, T]],
    start: date,
    end: date,
) -> DayReconciliation[T]:
    """Diff existing days against the inclusive window ``[start, end]``.

    ``existing`` is a sequence of ``(civil_date, day)`` pairs. The first day
    seen for a date is kept when the date is in the window; any further day
    on the same date is an orphan that re-anchors onto that same date.
    Orphans re-anchor onto the post-reconciliation window, so a freshly
    created date is a valid destination.
    """
    if end < start:
        raise PreconditionFailed(
            f"Empty window: end {end.isoformat()} is before start {start.isoformat()}",
            start=start.isoformat(),
            end=end.isoformat(),
        )

    target_dates = date_range(start, end)
    target_set = set(target_dates)

    kept: Dict[date, T] = {}
    orphans: List[Tuple[date, T]] = []
    for day_date, day in existing:
        if day_date in target_set and day_date not in kept:
            kept[day_date] = day
        else:
            orphans.append((day_date, day))

    dates_to_create = [d for d in target_dates if d not in kept]

    if orphans and not target_dates:
        raise ReconciliationError("Orphaned days exist but no day survives reconciliation")

    reanchor = {
        orphan_date: nearest_date(orphan_date, target_dates)
        for orphan_date, _ in orphans
    }

    return DayReconciliation(
        target_dates=target_dates,
        dates_to_create=dates_to_create,
        kept=kept,
        orphans=orphans,
        reanchor=reanchor,
    )
