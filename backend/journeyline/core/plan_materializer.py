"""
Plan materialization.

Replaces a journey's whole day/activity subtree with the contents of a plan
skeleton. Runs inside the caller's transaction and never commits; a failure
anywhere leaves the rollback to the timeline service, so the previous
subtree survives intact.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from journeyline.api.schemas import JourneyCreateInput, PlanActivityBlock, PlanSkeleton
from journeyline.core.civil_calendar import CivilCalendar
from journeyline.core.errors import AccessDenied, JourneyNotFound, PreconditionFailed
from journeyline.db import crud
from journeyline.db.models import Journey, JourneyActivity, JourneyDay

logger = logging.getLogger(__name__)


@dataclass
class MaterializedPlan:
    journey: Journey
    created_journey: bool
    days_created: int
    activities_created: int
    activities_skipped: int
    activities_wiped: int
    days_wiped: int


def parse_poi_id(raw: str) -> Optional[UUID]:
    if not raw:
        return None
    try:
        return UUID(raw)
    except (ValueError, AttributeError, TypeError):
        return None


class PlanMaterializer:
    """Writes a plan skeleton into the store as days and activities"""

    def __init__(
        self,
        session: AsyncSession,
        calendar: CivilCalendar,
        activity_type: str = "poi",
        max_days: Optional[int] = None,
    ):
        self.session = session
        self.calendar = calendar
        self.activity_type = activity_type
        self.max_days = max_days

    async def materialize(
        self,
        skeleton: PlanSkeleton,
        journey_id: Optional[UUID] = None,
        create_input: Optional[JourneyCreateInput] = None,
        account_id: Optional[UUID] = None,
    ) -> MaterializedPlan:
        if self.max_days is not None and len(skeleton.days) > self.max_days:
            raise PreconditionFailed(
                f"Plan has {len(skeleton.days)} days; at most {self.max_days} are allowed"
            )

        journey, created = await self._resolve_journey(skeleton, journey_id, create_input)
        if account_id is not None and journey.account_id != account_id:
            raise AccessDenied("Not authorized to modify this journey", journey_id=str(journey.id))

        base_date = self.calendar.civil_date(journey.start)

        wiped_activities, wiped_days = await crud.soft_delete_journey_subtree(self.session, journey.id)

        days_created = 0
        activities_created = 0
        skipped = 0
        for position, block in enumerate(skeleton.days, start=1):
            day_date = base_date + timedelta(days=position - 1)
            day = JourneyDay(
                journey_id=journey.id,
                date=self.calendar.midnight_of(day_date),
                day_number=position,
            )
            self.session.add(day)
            await self.session.flush()
            days_created += 1

            activities = []
            for activity_block in block.activities:
                activity = self._build_activity(day, day_date, activity_block)
                if activity is None:
                    skipped += 1
                    continue
                activities.append(activity)
            if activities:
                self.session.add_all(activities)
                activities_created += len(activities)

        await self.session.flush()
        logger.info(
            f"Materialized plan into journey {journey.id}: {days_created} days, "
            f"{activities_created} activities ({skipped} skipped); "
            f"wiped {wiped_days} days, {wiped_activities} activities"
        )
        return MaterializedPlan(
            journey=journey,
            created_journey=created,
            days_created=days_created,
            activities_created=activities_created,
            activities_skipped=skipped,
            activities_wiped=wiped_activities,
            days_wiped=wiped_days,
        )

    async def _resolve_journey(
        self,
        skeleton: PlanSkeleton,
        journey_id: Optional[UUID],
        create_input: Optional[JourneyCreateInput],
    ):
        if journey_id is not None:
            journey = await crud.get_journey(self.session, journey_id, for_update=True)
            if journey is not None:
                return journey, False
            if create_input is None:
                raise JourneyNotFound(journey_id)
            logger.warning(f"Journey {journey_id} not found; creating a new one from input")

        if create_input is None:
            raise PreconditionFailed("Journey creation input is required when no journey exists")

        start = self.calendar.localize(create_input.start)
        end = self.calendar.localize(create_input.end) if create_input.end is not None else None
        if end is None and skeleton.days:
            end = self.calendar.shift_days(start, len(skeleton.days) - 1)
        if end is not None and end < start:
            raise PreconditionFailed("Journey end is before its start")

        journey = await crud.create_journey(
            self.session,
            account_id=create_input.account_id,
            title=create_input.title,
            start=start,
            end=end,
            is_shared=create_input.is_shared,
            is_completed=create_input.is_completed,
            location=skeleton.destination,
        )
        return journey, True

    def _build_activity(
        self,
        day: JourneyDay,
        day_date: date,
        block: PlanActivityBlock,
    ) -> Optional[JourneyActivity]:
        poi_id = parse_poi_id(block.main_poi_id)
        if poi_id is None:
            logger.debug(f"Skipping activity block with unusable POI id {block.main_poi_id!r}")
            return None

        start_clock = self.calendar.parse_clock(block.start_time)
        start = self.calendar.combine(day_date, start_clock) if start_clock else self.calendar.midnight_of(day_date)

        end: Optional[datetime] = None
        end_clock = self.calendar.parse_clock(block.end_time)
        if end_clock is not None:
            end = self.calendar.combine(day_date, end_clock)
            if end < start:
                # crosses midnight
                end = end + timedelta(hours=24)

        return JourneyActivity(
            journey_day_id=day.id,
            time=start,
            end_time=end,
            activity_type=self.activity_type,
            selected_poi_id=poi_id,
            notes="",
        )
