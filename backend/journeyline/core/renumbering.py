from datetime import datetime
from typing import List, Protocol, Sequence


class NumberedDay(Protocol):
    date: datetime
    day_number: int


def renumber_days(days: Sequence[NumberedDay]) -> List[NumberedDay]:
    """Assign dense 1..N day numbers in date order.

    Mutates only the days whose number drifted and returns them, so callers
    write nothing when the sequence is already correct. Days sharing a date
    keep their relative order by current number.
    """
    ordered = sorted(days, key=lambda d: (d.date, d.day_number))
    changed = []
    for position, day in enumerate(ordered, start=1):
        if day.day_number != position:
            day.day_number = position
            changed.append(day)
    return changed
