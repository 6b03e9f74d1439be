"""
Journey timeline service.

The public face of the timeline engine. Every operation runs in exactly one
transaction opened here; engine components only raise ``TimelineError``
subclasses and never touch the transaction boundary. Mutations lock the
journey row first so two edits of the same journey serialize.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncGenerator, List, Optional, Tuple, Union
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from journeyline.api.schemas import (
    JourneyActivityDetail,
    JourneyCreateInput,
    JourneyDayDetail,
    JourneyDetail,
    JourneySummary,
    PlanSkeleton,
    WindowRescaleResult,
)
from journeyline.core.civil_calendar import CivilCalendar
from journeyline.core.day_reconciler import reconcile_day_set
from journeyline.core.errors import (
    AccessDenied,
    ActivityNotFound,
    DayNotFound,
    IntegrityViolation,
    JourneyNotFound,
    PreconditionFailed,
    StorageFailure,
    TimelineError,
)
from journeyline.core.plan_materializer import PlanMaterializer, parse_poi_id
from journeyline.core.reanchoring import apply_activity_moves, plan_activity_moves
from journeyline.core.renumbering import renumber_days
from journeyline.core.settings import Settings
from journeyline.db import crud
from journeyline.db.models import Journey, JourneyActivity, JourneyDay, utcnow
from journeyline.db.session import DatabaseManager

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


class JourneyTimelineService:
    """Transaction-scoped operations over a journey's days and activities"""

    def __init__(
        self,
        db: DatabaseManager,
        calendar: Optional[CivilCalendar] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or db.settings
        self.calendar = calendar or CivilCalendar(self.settings.CIVIL_TIMEZONE)

    # ===== TRANSACTION PLUMBING =====

    @asynccontextmanager
    async def _unit_of_work(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self.db.transaction() as session:
                yield session
        except TimelineError as e:
            logger.warning("journey_operation_rejected", operation=operation, error=e.code, reason=e.message)
            raise
        except IntegrityError as e:
            logger.warning("journey_operation_rolled_back", operation=operation, error=str(e), retryable=False)
            raise IntegrityViolation(cause=e) from e
        except SQLAlchemyError as e:
            logger.error("journey_operation_rolled_back", operation=operation, error=str(e))
            raise StorageFailure(cause=e) from e

    async def _lock_journey(
        self,
        session: AsyncSession,
        journey_id: UUID,
        account_id: Optional[UUID] = None,
    ) -> Journey:
        journey = await crud.get_journey(session, journey_id, for_update=True)
        if journey is None:
            raise JourneyNotFound(journey_id)
        self._check_owner(journey, account_id)
        return journey

    def _activity_span(self, start: datetime, end: Optional[datetime]) -> Tuple[datetime, Optional[datetime]]:
        start = self.calendar.localize(start)
        end = self.calendar.localize(end) if end is not None else None
        if end is not None and end < start:
            # crosses midnight
            end = end + timedelta(hours=24)
        return start, end

    @staticmethod
    def _check_owner(journey: Journey, account_id: Optional[UUID]) -> None:
        if account_id is not None and journey.account_id != account_id:
            raise AccessDenied("Not authorized to modify this journey", journey_id=str(journey.id))

    # ===== PLAN MATERIALIZATION =====

    async def materialize_plan(
        self,
        journey_id: Optional[UUID],
        skeleton: PlanSkeleton,
        create_input: Optional[JourneyCreateInput] = None,
        account_id: Optional[UUID] = None,
    ) -> UUID:
        """Replace the journey's days and activities with ``skeleton``.

        Creates the journey from ``create_input`` when ``journey_id`` is None
        or names no live journey. Returns the journey id.
        """
        if journey_id is None and create_input is None:
            raise PreconditionFailed("Journey creation input is required when no journey id is given")

        async with self._unit_of_work("materialize_plan") as session:
            materializer = PlanMaterializer(
                session,
                self.calendar,
                activity_type=self.settings.DEFAULT_ACTIVITY_TYPE,
                max_days=self.settings.MAX_JOURNEY_DAYS,
            )
            result = await materializer.materialize(
                skeleton,
                journey_id=journey_id,
                create_input=create_input,
                account_id=account_id,
            )
            materialized_id = result.journey.id

        logger.info(
            "journey_materialized",
            journey_id=str(materialized_id),
            created=result.created_journey,
            days=result.days_created,
            activities=result.activities_created,
            skipped=result.activities_skipped,
            wiped_days=result.days_wiped,
            wiped_activities=result.activities_wiped,
        )
        return materialized_id

    # ===== WINDOW RESCALE =====

    async def rescale_window(
        self,
        journey_id: UUID,
        new_start: datetime,
        new_end: datetime,
        account_id: Optional[UUID] = None,
    ) -> WindowRescaleResult:
        """Move the journey window to ``[new_start, new_end]``.

        Days outside the new window are soft-deleted after their activities
        are re-anchored onto the nearest surviving day; missing days are
        created and the whole sequence is renumbered.
        """
        new_start = self.calendar.localize(new_start)
        new_end = self.calendar.localize(new_end)
        start_date = self.calendar.civil_date(new_start)
        end_date = self.calendar.civil_date(new_end)
        if end_date < start_date:
            raise PreconditionFailed("Journey end date is before its start date")
        span = (end_date - start_date).days + 1
        if span > self.settings.MAX_JOURNEY_DAYS:
            raise PreconditionFailed(
                f"Journey window spans {span} days; at most {self.settings.MAX_JOURNEY_DAYS} are allowed"
            )

        async with self._unit_of_work("rescale_window") as session:
            journey = await self._lock_journey(session, journey_id, account_id)
            live_days = await crud.get_live_days(session, journey.id)
            plan = reconcile_day_set(
                ((self.calendar.civil_date(day.date), day) for day in live_days),
                start_date,
                end_date,
            )

            if not plan.is_noop:
                # provisional numbers above the current maximum; renumbering fixes them
                next_number = max((day.day_number for day in live_days), default=0) + 1
                days_by_date = dict(plan.kept)
                for offset, day_date in enumerate(plan.dates_to_create):
                    day = JourneyDay(
                        journey_id=journey.id,
                        date=self.calendar.midnight_of(day_date),
                        day_number=next_number + offset,
                    )
                    session.add(day)
                    days_by_date[day_date] = day
                await session.flush()

                orphan_ids = [day.id for _, day in plan.orphans]
                activities_by_day = await crud.get_activities_by_day(session, orphan_ids)
                moves = plan_activity_moves(
                    self.calendar,
                    plan.orphans,
                    plan.reanchor,
                    days_by_date,
                    activities_by_day,
                )
                apply_activity_moves(moves)

                now = utcnow()
                for _, day in plan.orphans:
                    day.soft_delete(now)
                renumber_days(list(days_by_date.values()))

            journey.start = new_start
            journey.end = new_end
            await session.flush()

        logger.info(
            "journey_window_rescaled",
            journey_id=str(journey_id),
            start=start_date.isoformat(),
            end=end_date.isoformat(),
            days_added=plan.days_added,
            days_removed=plan.days_removed,
        )
        return WindowRescaleResult(
            journey_id=journey_id,
            days_added=plan.days_added,
            days_removed=plan.days_removed,
        )

    # ===== INCREMENTAL EDITS =====

    async def add_day(self, journey_id: UUID, account_id: Optional[UUID] = None) -> UUID:
        """Append one civil day after the journey's latest day"""
        async with self._unit_of_work("add_day") as session:
            journey = await self._lock_journey(session, journey_id, account_id)
            live_days = await crud.get_live_days(session, journey.id)
            if not live_days:
                raise PreconditionFailed(
                    "Journey has no days to extend from; rescale its window first",
                    journey_id=str(journey.id),
                )
            if len(live_days) >= self.settings.MAX_JOURNEY_DAYS:
                raise PreconditionFailed(
                    f"Journey already has the maximum of {self.settings.MAX_JOURNEY_DAYS} days"
                )

            last_date = max(self.calendar.civil_date(day.date) for day in live_days)
            new_date = last_date + timedelta(days=1)
            max_number = await crud.get_max_day_number(session, journey.id)
            day = JourneyDay(
                journey_id=journey.id,
                date=self.calendar.midnight_of(new_date),
                day_number=max_number + 1,
            )
            session.add(day)

            if journey.end is None or self.calendar.civil_date(journey.end) < new_date:
                anchor = journey.end if journey.end is not None else journey.start
                journey.end = self.calendar.combine(new_date, self.calendar.clock_time(anchor))
            await session.flush()
            day_id = day.id
            day_number = day.day_number

        logger.info(
            "journey_day_added",
            journey_id=str(journey_id),
            day_id=str(day_id),
            date=new_date.isoformat(),
            day_number=day_number,
        )
        return day_id

    async def add_activity(
        self,
        journey_id: UUID,
        poi_id: UUID,
        start: datetime,
        end: Optional[datetime] = None,
        account_id: Optional[UUID] = None,
    ) -> UUID:
        """Add a POI activity on the existing day that contains ``start``"""
        start, end = self._activity_span(start, end)

        day_start = self.calendar.civil_midnight(start)
        day_end = self.calendar.shift_days(day_start, 1)

        async with self._unit_of_work("add_activity") as session:
            journey = await self._lock_journey(session, journey_id, account_id)
            day = await crud.get_day_starting_in(session, journey.id, day_start, day_end)
            if day is None:
                raise DayNotFound(
                    f"Journey has no day on {day_start.date().isoformat()}",
                    journey_id=str(journey.id),
                    date=day_start.date().isoformat(),
                )
            activity = JourneyActivity(
                journey_day_id=day.id,
                time=start,
                end_time=end,
                activity_type=self.settings.DEFAULT_ACTIVITY_TYPE,
                selected_poi_id=poi_id,
                notes="",
            )
            session.add(activity)
            await session.flush()
            activity_id = activity.id
            day_id = day.id

        logger.info(
            "journey_activity_added",
            journey_id=str(journey_id),
            day_id=str(day_id),
            activity_id=str(activity_id),
            poi_id=str(poi_id),
        )
        return activity_id

    async def remove_activity(
        self,
        journey_id: UUID,
        poi_id: UUID,
        account_id: Optional[UUID] = None,
    ) -> int:
        """Soft-delete every activity of the journey that selected ``poi_id``"""
        async with self._unit_of_work("remove_activity") as session:
            journey = await self._lock_journey(session, journey_id, account_id)
            removed = await crud.soft_delete_activities_by_poi(session, journey.id, poi_id)

        logger.info(
            "journey_activity_removed",
            journey_id=str(journey_id),
            poi_id=str(poi_id),
            removed=removed,
        )
        return removed

    async def update_activity_selection(
        self,
        activity_id: UUID,
        new_poi_id: Union[UUID, str],
        start: datetime,
        end: Optional[datetime] = None,
        account_id: Optional[UUID] = None,
    ) -> None:
        """Point an activity at another POI and overwrite its times.

        ``start`` must fall on the civil date of the activity's current day. An
        ``end`` earlier than ``start`` is read as crossing midnight, as in
        ``add_activity``.
        """
        poi_id = new_poi_id if isinstance(new_poi_id, UUID) else parse_poi_id(str(new_poi_id).strip())
        if poi_id is None:
            raise PreconditionFailed("A valid POI id is required", activity_id=str(activity_id))
        start, end = self._activity_span(start, end)

        async with self._unit_of_work("update_activity_selection") as session:
            activity = await crud.get_activity(session, activity_id)
            if activity is None:
                raise ActivityNotFound(activity_id)
            day = await crud.get_day(session, activity.journey_day_id)
            if day is None:
                raise DayNotFound(
                    f"Day of activity {activity_id} not found",
                    activity_id=str(activity_id),
                )
            await self._lock_journey(session, day.journey_id, account_id)

            day_date = self.calendar.civil_date(day.date)
            if self.calendar.civil_date(start) != day_date:
                raise PreconditionFailed(
                    f"Start time does not fall on the activity's day {day_date.isoformat()}",
                    activity_id=str(activity_id),
                )
            activity.selected_poi_id = poi_id
            activity.time = start
            activity.end_time = end
            await session.flush()
            journey_id = day.journey_id

        logger.info(
            "journey_activity_updated",
            journey_id=str(journey_id),
            activity_id=str(activity_id),
            poi_id=str(poi_id),
        )

    # ===== READS =====

    async def list_journeys(self, account_id: UUID, page: int = 1, page_size: int = 20) -> List[JourneySummary]:
        if page < 1:
            raise PreconditionFailed("page must be at least 1")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise PreconditionFailed(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        async with self._unit_of_work("list_journeys") as session:
            journeys = await crud.get_account_journeys(
                session,
                account_id,
                skip=(page - 1) * page_size,
                limit=page_size,
            )
            return [
                JourneySummary(
                    id=journey.id,
                    title=journey.title,
                    start=self.calendar.localize(journey.start),
                    end=self.calendar.localize(journey.end) if journey.end else None,
                    location=journey.location,
                    is_shared=journey.is_shared,
                    is_completed=journey.is_completed,
                )
                for journey in journeys
            ]

    async def get_journey_detail(self, journey_id: UUID, account_id: Optional[UUID] = None) -> JourneyDetail:
        """Journey with live days in date order, each with activities in start order.

        Shared journeys are readable by any account.
        """
        async with self._unit_of_work("get_journey_detail") as session:
            journey = await crud.get_journey(session, journey_id)
            if journey is None:
                raise JourneyNotFound(journey_id)
            if not journey.is_shared:
                self._check_owner(journey, account_id)

            days = await crud.get_live_days(session, journey.id)
            activities_by_day = await crud.get_activities_by_day(session, [day.id for day in days])

            day_details = []
            total_activities = 0
            for day in days:
                activities = activities_by_day.get(day.id, [])
                total_activities += len(activities)
                day_details.append(JourneyDayDetail(
                    id=day.id,
                    day_number=day.day_number,
                    date=self.calendar.localize(day.date),
                    activities=[
                        JourneyActivityDetail(
                            id=activity.id,
                            time=self.calendar.localize(activity.time),
                            end_time=self.calendar.localize(activity.end_time) if activity.end_time else None,
                            activity_type=activity.activity_type,
                            selected_poi_id=activity.selected_poi_id,
                            notes=activity.notes,
                        )
                        for activity in activities
                    ],
                ))

            duration_days = 0
            if journey.end is not None:
                duration_days = self.calendar.days_between(journey.start, journey.end) + 1

            return JourneyDetail(
                id=journey.id,
                title=journey.title,
                start=self.calendar.localize(journey.start),
                end=self.calendar.localize(journey.end) if journey.end else None,
                location=journey.location,
                duration_days=duration_days,
                is_shared=journey.is_shared,
                is_completed=journey.is_completed,
                total_days=len(days),
                total_activities=total_activities,
                days=day_details,
            )
