"""
Shared fixtures: a throwaway SQLite journey store per test and helpers to seed it.
"""

import os
from datetime import date, time
from types import SimpleNamespace
from uuid import uuid4

# no log file during tests
os.environ.setdefault("LOG_FILE", "")

import pytest
import pytest_asyncio
from sqlalchemy import event

from journeyline.core.civil_calendar import CivilCalendar
from journeyline.core.day_reconciler import date_range
from journeyline.core.settings import Settings
from journeyline.core.timeline_service import JourneyTimelineService
from journeyline.db import crud
from journeyline.db.models import JourneyActivity, JourneyDay
from journeyline.db.session import DatabaseManager

CIVIL_TZ = "Asia/Ho_Chi_Minh"


@pytest.fixture
def calendar():
    return CivilCalendar(CIVIL_TZ)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DB_URL=f"sqlite:///{tmp_path / 'journeys.db'}",
        DB_CREATE_TABLES=True,
        CIVIL_TIMEZONE=CIVIL_TZ,
        MAX_JOURNEY_DAYS=30,
        ENABLE_RATE_LIMITING=False,
        LOG_FILE="",
    )


@pytest_asyncio.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.initialize()

    # enforce foreign keys the way PostgreSQL does
    @event.listens_for(manager.engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await manager.engine.dispose()
    yield manager
    await manager.close()


@pytest.fixture
def service(db, calendar, settings):
    return JourneyTimelineService(db, calendar=calendar, settings=settings)


@pytest.fixture
def account():
    """Account as handed over by the identity service; nothing about it is stored locally"""
    return SimpleNamespace(id=uuid4())


@pytest.fixture
def other_account():
    return SimpleNamespace(id=uuid4())


@pytest_asyncio.fixture
async def journey_factory(db, calendar, account):
    """Seed a journey with one live day per date in ``[first, last]``.

    ``activities`` entries are ``(date, "HH:MM", poi_id)`` or
    ``(date, "HH:MM", poi_id, end_instant)``.
    """
    async def make(first: date, last: date, activities=(), with_days=True, title="Da Lat getaway"):
        async with db.transaction() as session:
            journey = await crud.create_journey(
                session,
                account_id=account.id,
                title=title,
                start=calendar.combine(first, time(8, 0)),
                end=calendar.combine(last, time(20, 0)),
            )
            days = {}
            if with_days:
                for number, day_date in enumerate(date_range(first, last), start=1):
                    day = JourneyDay(
                        journey_id=journey.id,
                        date=calendar.midnight_of(day_date),
                        day_number=number,
                    )
                    session.add(day)
                    days[day_date] = day
                await session.flush()
            for entry in activities:
                day_date, clock, poi_id = entry[:3]
                end_time = entry[3] if len(entry) > 3 else None
                session.add(JourneyActivity(
                    journey_day_id=days[day_date].id,
                    time=calendar.combine(day_date, CivilCalendar.parse_clock(clock)),
                    end_time=end_time,
                    selected_poi_id=poi_id,
                ))
        return journey

    return make
