"""
Plan materialization against a real SQLite store
"""

from datetime import date, time
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from journeyline.api.schemas import JourneyCreateInput, PlanSkeleton
from journeyline.db.models import JourneyActivity
from journeyline.core.errors import IntegrityViolation, JourneyNotFound, PreconditionFailed, StorageFailure
from journeyline.core.plan_materializer import PlanMaterializer, parse_poi_id


def skeleton(*days, destination="Da Lat"):
    return PlanSkeleton.model_validate({
        "destination": destination,
        "days": [{"day": i, "activities": list(blocks)} for i, blocks in enumerate(days, start=1)],
    })


def block(poi, start=None, end=None):
    return {"main_poi_id": str(poi) if poi is not None else "", "start_time": start, "end_time": end}


def create_input(account, calendar, start_date=date(2025, 1, 1), end=None):
    return JourneyCreateInput(
        account_id=account.id,
        title="Highlands",
        start=calendar.combine(start_date, time(8, 0)),
        end=end,
    )


def content(detail):
    """Comparable view of a journey detail without row identities"""
    return [
        (
            day.day_number,
            day.date,
            [(a.selected_poi_id, a.time, a.end_time, a.activity_type) for a in day.activities],
        )
        for day in detail.days
    ]


class TestParsePoiId:

    def test_valid_and_invalid(self):
        poi = uuid4()
        assert parse_poi_id(str(poi)) == poi
        assert parse_poi_id("") is None
        assert parse_poi_id("not-a-uuid") is None


class TestMaterializePlan:

    @pytest.mark.asyncio
    async def test_creates_journey_and_days_from_skeleton(self, service, account, calendar):
        poi_a, poi_b, poi_c = uuid4(), uuid4(), uuid4()
        plan = skeleton(
            [block(poi_a, "09:00", "11:00"), block(poi_b, "13:30")],
            [block(poi_c, "10:00", "12:00")],
        )
        journey_id = await service.materialize_plan(None, plan, create_input(account, calendar))

        detail = await service.get_journey_detail(journey_id)
        assert detail.location == "Da Lat"
        assert [day.day_number for day in detail.days] == [1, 2]
        assert [day.date for day in detail.days] == [
            calendar.midnight_of(date(2025, 1, 1)),
            calendar.midnight_of(date(2025, 1, 2)),
        ]
        first = detail.days[0].activities
        assert [a.selected_poi_id for a in first] == [poi_a, poi_b]
        assert first[0].time == calendar.combine(date(2025, 1, 1), time(9, 0))
        assert first[0].end_time == calendar.combine(date(2025, 1, 1), time(11, 0))
        assert first[1].end_time is None
        assert first[0].activity_type == "poi"
        assert detail.total_activities == 3

    @pytest.mark.asyncio
    async def test_end_before_start_crosses_midnight(self, service, account, calendar):
        poi = uuid4()
        plan = skeleton([block(poi, "09:00", "08:00")], [])
        journey_id = await service.materialize_plan(None, plan, create_input(account, calendar))

        activity = (await service.get_journey_detail(journey_id)).days[0].activities[0]
        assert activity.time == calendar.combine(date(2025, 1, 1), time(9, 0))
        assert activity.end_time == calendar.combine(date(2025, 1, 2), time(8, 0))

    @pytest.mark.asyncio
    async def test_unusable_poi_blocks_are_skipped(self, service, account, calendar):
        keep_a, keep_b = uuid4(), uuid4()
        plan = skeleton([
            block(keep_a, "08:00"),
            block(None, "09:00"),
            block("not-a-uuid", "10:00"),
            block(keep_b, "11:00"),
        ])
        journey_id = await service.materialize_plan(None, plan, create_input(account, calendar))

        activities = (await service.get_journey_detail(journey_id)).days[0].activities
        assert [a.selected_poi_id for a in activities] == [keep_a, keep_b]

    @pytest.mark.asyncio
    async def test_unparsable_start_defaults_to_midnight(self, service, account, calendar):
        plan = skeleton([], [block(uuid4(), "after lunch", "garbage")])
        journey_id = await service.materialize_plan(None, plan, create_input(account, calendar))

        activity = (await service.get_journey_detail(journey_id)).days[1].activities[0]
        assert activity.time == calendar.midnight_of(date(2025, 1, 2))
        assert activity.end_time is None

    @pytest.mark.asyncio
    async def test_end_derived_from_skeleton_length(self, service, account, calendar):
        plan = skeleton([], [], [])
        journey_id = await service.materialize_plan(None, plan, create_input(account, calendar))

        detail = await service.get_journey_detail(journey_id)
        assert detail.end == calendar.combine(date(2025, 1, 3), time(8, 0))
        assert detail.duration_days == 3
        assert detail.total_days == 3

    @pytest.mark.asyncio
    async def test_explicit_end_is_kept(self, service, account, calendar):
        end = calendar.combine(date(2025, 1, 10), time(18, 0))
        journey_id = await service.materialize_plan(
            None, skeleton([]), create_input(account, calendar, end=end)
        )
        assert (await service.get_journey_detail(journey_id)).end == end

    @pytest.mark.asyncio
    async def test_replaces_existing_subtree(self, service, journey_factory, calendar):
        old_poi = uuid4()
        journey = await journey_factory(
            date(2025, 2, 1), date(2025, 2, 4),
            activities=[(date(2025, 2, 2), "10:00", old_poi)],
        )
        new_poi = uuid4()

        await service.materialize_plan(journey.id, skeleton([block(new_poi, "15:00")], []))

        detail = await service.get_journey_detail(journey.id)
        assert [day.date for day in detail.days] == [
            calendar.midnight_of(date(2025, 2, 1)),
            calendar.midnight_of(date(2025, 2, 2)),
        ]
        pois = [a.selected_poi_id for day in detail.days for a in day.activities]
        assert pois == [new_poi]

    @pytest.mark.asyncio
    async def test_repeated_materialization_is_idempotent(self, service, journey_factory):
        journey = await journey_factory(date(2025, 2, 1), date(2025, 2, 2))
        plan = skeleton(
            [block(uuid4(), "09:00", "10:00"), block(uuid4(), "21:00", "01:00")],
            [block(uuid4(), "12:00")],
        )

        await service.materialize_plan(journey.id, plan)
        first = content(await service.get_journey_detail(journey.id))
        await service.materialize_plan(journey.id, plan)
        second = content(await service.get_journey_detail(journey.id))

        assert first == second

    @pytest.mark.asyncio
    async def test_failure_leaves_previous_subtree_untouched(self, service, journey_factory):
        poi = uuid4()
        journey = await journey_factory(
            date(2025, 2, 1), date(2025, 2, 2),
            activities=[(date(2025, 2, 1), "10:00", poi)],
        )
        before = content(await service.get_journey_detail(journey.id))

        boom = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(PlanMaterializer, "_build_activity", side_effect=boom):
            with pytest.raises(StorageFailure) as exc_info:
                await service.materialize_plan(journey.id, skeleton([block(uuid4(), "09:00")]))
        assert exc_info.value.retryable

        assert content(await service.get_journey_detail(journey.id)) == before

    @pytest.mark.asyncio
    async def test_account_without_local_row_can_create_journey(self, service, db, calendar):
        async with db.transaction() as session:
            enforced = (await session.execute(text("PRAGMA foreign_keys"))).scalar_one()
        assert enforced == 1

        owner = uuid4()
        journey_id = await service.materialize_plan(
            None,
            skeleton([block(uuid4(), "09:00")]),
            JourneyCreateInput(account_id=owner, title="Sapa", start=calendar.combine(date(2025, 3, 1), time(8, 0))),
        )

        assert [s.id for s in await service.list_journeys(owner)] == [journey_id]

    @pytest.mark.asyncio
    async def test_constraint_violation_is_not_retryable(self, service, journey_factory, calendar):
        journey = await journey_factory(date(2025, 2, 1), date(2025, 2, 1))
        before = content(await service.get_journey_detail(journey.id))

        def dangling(day, day_date, activity_block):
            return JourneyActivity(
                journey_day_id=uuid4(),
                time=calendar.midnight_of(day_date),
                selected_poi_id=uuid4(),
            )

        with patch.object(PlanMaterializer, "_build_activity", side_effect=dangling):
            with pytest.raises(IntegrityViolation) as exc_info:
                await service.materialize_plan(journey.id, skeleton([block(uuid4(), "09:00")]))
        assert not exc_info.value.retryable
        assert exc_info.value.http_status == 409

        assert content(await service.get_journey_detail(journey.id)) == before

    @pytest.mark.asyncio
    async def test_missing_creation_input(self, service):
        with pytest.raises(PreconditionFailed):
            await service.materialize_plan(None, skeleton([]))
        with pytest.raises(JourneyNotFound):
            await service.materialize_plan(uuid4(), skeleton([]))

    @pytest.mark.asyncio
    async def test_unknown_journey_id_with_creation_input_creates(self, service, account, calendar):
        journey_id = await service.materialize_plan(
            uuid4(), skeleton([block(uuid4(), "09:00")]), create_input(account, calendar)
        )
        assert (await service.get_journey_detail(journey_id)).total_activities == 1

    @pytest.mark.asyncio
    async def test_oversized_plan_is_rejected(self, service, account, calendar, settings):
        plan = skeleton(*[[] for _ in range(settings.MAX_JOURNEY_DAYS + 1)])
        with pytest.raises(PreconditionFailed):
            await service.materialize_plan(None, plan, create_input(account, calendar))
        assert await service.list_journeys(account.id) == []

    @pytest.mark.asyncio
    async def test_end_before_start_input_is_rejected(self, service, account, calendar):
        end = calendar.combine(date(2024, 12, 30), time(8, 0))
        with pytest.raises(PreconditionFailed):
            await service.materialize_plan(None, skeleton([]), create_input(account, calendar, end=end))


def test_skeleton_tolerates_null_fields():
    plan = PlanSkeleton.model_validate({
        "days": [
            {"day": 1, "activities": None},
            {"activities": [{"main_poi_id": None, "start_time": " ", "end_time": None}]},
        ]
    })
    assert plan.destination == ""
    assert plan.days[0].activities == []
    assert plan.days[1].activities[0].main_poi_id == ""
    assert plan.days[1].activities[0].start_time is None
