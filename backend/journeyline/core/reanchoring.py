"""
Moves activities off days that are being removed onto their nearest surviving day.

Civil clock time is preserved and only the calendar date changes: an
activity at 14:00 on a removed day lands at 14:00 on its new day. Activities
from several orphans that share a destination are merged onto it without
any overlap check.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import UUID

from journeyline.core.civil_calendar import CivilCalendar
from journeyline.core.day_reconciler import ReconciliationError
from journeyline.db.models import JourneyActivity, JourneyDay

logger = logging.getLogger(__name__)


@dataclass
class ActivityMove:
    activity: JourneyActivity
    source_day_id: UUID
    target_day: JourneyDay
    time: datetime
    end_time: Optional[datetime]


def reanchor_times(
    calendar: CivilCalendar,
    start: datetime,
    end: Optional[datetime],
    new_date: date,
) -> Tuple[datetime, Optional[datetime]]:
    """Recombine an activity's civil clock times with ``new_date``.

    An end time on a later civil day than its start (crossing midnight)
    keeps the same day offset from the new start.
    """
    new_start = calendar.combine(new_date, calendar.clock_time(start))
    if end is None:
        return new_start, None
    offset = calendar.civil_date(end) - calendar.civil_date(start)
    new_end = calendar.combine(new_date + timedelta(days=offset.days), calendar.clock_time(end))
    return new_start, new_end


def plan_activity_moves(
    calendar: CivilCalendar,
    orphans: Iterable[Tuple[date, JourneyDay]],
    reanchor: Mapping[date, date],
    days_by_date: Mapping[date, JourneyDay],
    activities_by_day: Mapping[UUID, List[JourneyActivity]],
) -> List[ActivityMove]:
    """Compute, without writing, where every orphaned activity goes"""
    moves: List[ActivityMove] = []
    for orphan_date, orphan_day in orphans:
        try:
            new_date = reanchor[orphan_date]
            target_day = days_by_date[new_date]
        except KeyError:
            raise ReconciliationError(
                f"No surviving day for orphaned day {orphan_date.isoformat()}",
                day_id=str(orphan_day.id),
            )
        for activity in activities_by_day.get(orphan_day.id, []):
            new_start, new_end = reanchor_times(calendar, activity.time, activity.end_time, new_date)
            moves.append(ActivityMove(
                activity=activity,
                source_day_id=orphan_day.id,
                target_day=target_day,
                time=new_start,
                end_time=new_end,
            ))
    return moves


def apply_activity_moves(moves: Iterable[ActivityMove]) -> Dict[UUID, int]:
    """Re-point each activity at its new day; returns moved counts per target day"""
    moved: Dict[UUID, int] = {}
    for move in moves:
        move.activity.journey_day_id = move.target_day.id
        move.activity.time = move.time
        move.activity.end_time = move.end_time
        moved[move.target_day.id] = moved.get(move.target_day.id, 0) + 1
    if moved:
        logger.info(f"Re-anchored {sum(moved.values())} activities onto {len(moved)} days")
    return moved
