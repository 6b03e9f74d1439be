"""
Journey storage operations.

Every read here excludes soft-deleted rows. None of these functions begin,
commit or roll back; they run inside whatever transaction the caller opened.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from journeyline.db.models import Journey, JourneyDay, JourneyActivity, utcnow

logger = logging.getLogger(__name__)

# ===== JOURNEY OPERATIONS =====

async def get_journey(
    session: AsyncSession,
    journey_id: UUID,
    for_update: bool = False
) -> Optional[Journey]:
    """Get a live journey, optionally locking its row for the rest of the transaction"""
    stmt = select(Journey).where(Journey.id == journey_id, Journey.is_deleted == False)  # noqa: E712
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()

async def create_journey(
    session: AsyncSession,
    account_id: UUID,
    title: str,
    start: datetime,
    end: Optional[datetime] = None,
    is_shared: bool = False,
    is_completed: bool = False,
    location: str = ""
) -> Journey:
    """Insert a journey and flush so its id is usable immediately"""
    journey = Journey(
        account_id=account_id,
        title=title,
        start=start,
        end=end,
        is_shared=is_shared,
        is_completed=is_completed,
        location=location
    )
    session.add(journey)
    await session.flush()
    logger.info(f"Created journey: {journey.id}")
    return journey

async def get_account_journeys(
    session: AsyncSession,
    account_id: UUID,
    skip: int = 0,
    limit: int = 100
) -> List[Journey]:
    """Get an account's live journeys, latest start first"""
    result = await session.execute(
        select(Journey)
        .where(Journey.account_id == account_id, Journey.is_deleted == False)  # noqa: E712
        .order_by(desc(Journey.start), Journey.id)
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())

# ===== DAY OPERATIONS =====

async def get_live_days(session: AsyncSession, journey_id: UUID) -> List[JourneyDay]:
    """Live days of a journey in chronological order"""
    result = await session.execute(
        select(JourneyDay)
        .where(JourneyDay.journey_id == journey_id, JourneyDay.is_deleted == False)  # noqa: E712
        .order_by(JourneyDay.date, JourneyDay.day_number, JourneyDay.id)
    )
    return list(result.scalars().all())

async def get_day_starting_in(
    session: AsyncSession,
    journey_id: UUID,
    window_start: datetime,
    window_end: datetime
) -> Optional[JourneyDay]:
    """Live day whose date falls in [window_start, window_end)"""
    result = await session.execute(
        select(JourneyDay)
        .where(
            JourneyDay.journey_id == journey_id,
            JourneyDay.is_deleted == False,  # noqa: E712
            JourneyDay.date >= window_start,
            JourneyDay.date < window_end,
        )
        .order_by(JourneyDay.day_number)
        .limit(1)
    )
    return result.scalar_one_or_none()

async def get_day(session: AsyncSession, day_id: UUID) -> Optional[JourneyDay]:
    result = await session.execute(
        select(JourneyDay).where(JourneyDay.id == day_id, JourneyDay.is_deleted == False)  # noqa: E712
    )
    return result.scalar_one_or_none()

async def get_max_day_number(session: AsyncSession, journey_id: UUID) -> int:
    value = await session.scalar(
        select(func.max(JourneyDay.day_number))
        .where(JourneyDay.journey_id == journey_id, JourneyDay.is_deleted == False)  # noqa: E712
    )
    return value or 0

# ===== ACTIVITY OPERATIONS =====

async def get_activity(session: AsyncSession, activity_id: UUID) -> Optional[JourneyActivity]:
    result = await session.execute(
        select(JourneyActivity)
        .where(JourneyActivity.id == activity_id, JourneyActivity.is_deleted == False)  # noqa: E712
    )
    return result.scalar_one_or_none()

async def get_activities_by_day(
    session: AsyncSession,
    day_ids: Sequence[UUID]
) -> Dict[UUID, List[JourneyActivity]]:
    """Live activities grouped by owning day, each group in start-time order"""
    grouped: Dict[UUID, List[JourneyActivity]] = {day_id: [] for day_id in day_ids}
    if not day_ids:
        return grouped
    result = await session.execute(
        select(JourneyActivity)
        .where(
            JourneyActivity.journey_day_id.in_(list(day_ids)),
            JourneyActivity.is_deleted == False,  # noqa: E712
        )
        .order_by(JourneyActivity.time, JourneyActivity.created_at, JourneyActivity.id)
    )
    for activity in result.scalars().all():
        grouped.setdefault(activity.journey_day_id, []).append(activity)
    return grouped

async def _soft_delete_ids(session: AsyncSession, model, ids: List[UUID]) -> int:
    if not ids:
        return 0
    now = utcnow()
    await session.execute(
        update(model)
        .where(model.id.in_(ids))
        .values(is_deleted=True, deleted_at=now, updated_at=now)
    )
    return len(ids)

async def soft_delete_journey_subtree(session: AsyncSession, journey_id: UUID) -> Tuple[int, int]:
    """Soft-delete every live activity and day of a journey; returns (activities, days)"""
    day_ids = list((await session.execute(
        select(JourneyDay.id)
        .where(JourneyDay.journey_id == journey_id, JourneyDay.is_deleted == False)  # noqa: E712
    )).scalars().all())
    activity_ids: List[UUID] = []
    if day_ids:
        activity_ids = list((await session.execute(
            select(JourneyActivity.id)
            .where(JourneyActivity.journey_day_id.in_(day_ids), JourneyActivity.is_deleted == False)  # noqa: E712
        )).scalars().all())
    removed_activities = await _soft_delete_ids(session, JourneyActivity, activity_ids)
    removed_days = await _soft_delete_ids(session, JourneyDay, day_ids)
    return removed_activities, removed_days

async def soft_delete_activities_by_poi(
    session: AsyncSession,
    journey_id: UUID,
    poi_id: UUID
) -> int:
    """Soft-delete every live activity of the journey that selected ``poi_id``"""
    activity_ids = list((await session.execute(
        select(JourneyActivity.id)
        .join(JourneyDay, JourneyActivity.journey_day_id == JourneyDay.id)
        .where(
            JourneyDay.journey_id == journey_id,
            JourneyActivity.selected_poi_id == poi_id,
            JourneyActivity.is_deleted == False,  # noqa: E712
        )
    )).scalars().all())
    return await _soft_delete_ids(session, JourneyActivity, activity_ids)
