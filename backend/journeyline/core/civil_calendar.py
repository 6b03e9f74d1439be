"""
Civil calendar normalization.

Every date comparison in the timeline engine goes through one
``CivilCalendar`` so that "which day does this instant belong to" has a
single answer. The timezone is injected at construction; nothing in the
engine reads a process-wide zone.
"""

import re
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class CivilCalendar:
    """Projects absolute instants onto civil days of one fixed timezone."""

    def __init__(self, tz: Union[str, tzinfo]):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def __repr__(self) -> str:
        return f"CivilCalendar({self.tz!r})"

    def localize(self, instant: datetime) -> datetime:
        """Express an instant in the civil timezone.

        Naive datetimes are taken to already be civil wall-clock time.
        """
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self.tz)
        return instant.astimezone(self.tz)

    def civil_date(self, instant: datetime) -> date:
        return self.localize(instant).date()

    def midnight_of(self, civil_date: date) -> datetime:
        return datetime.combine(civil_date, time(0, 0), tzinfo=self.tz)

    def civil_midnight(self, instant: datetime) -> datetime:
        """Start of the civil day containing ``instant``."""
        return self.midnight_of(self.civil_date(instant))

    def combine(self, civil_date: date, clock: time) -> datetime:
        """Absolute instant for a civil date at an hour:minute clock time."""
        return datetime.combine(civil_date, clock.replace(tzinfo=None), tzinfo=self.tz)

    def clock_time(self, instant: datetime) -> time:
        """Civil hour:minute:second of an instant, without tzinfo."""
        return self.localize(instant).time().replace(tzinfo=None)

    def shift_days(self, instant: datetime, days: int) -> datetime:
        """Same civil clock time, ``days`` calendar days later."""
        local = self.localize(instant)
        return self.combine(local.date() + timedelta(days=days), local.time())

    def days_between(self, earlier: datetime, later: datetime) -> int:
        return (self.civil_date(later) - self.civil_date(earlier)).days

    @staticmethod
    def parse_clock(value: Optional[str]) -> Optional[time]:
        """Parse an ``HH:MM`` string; anything else yields None."""
        if not value:
            return None
        m = _CLOCK_RE.match(value)
        if not m:
            return None
        hour, minute = int(m.group(1)), int(m.group(2))
        if hour > 23 or minute > 59:
            return None
        return time(hour, minute)
