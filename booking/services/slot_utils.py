"""
slot_utils.py
-------------
Pure helpers behind the availability engine: parsing shop-local dates and
times, building the candidate grid for a working day, and tagging each
candidate as free or taken.

Nothing here touches the database or reads the clock. Times are handled as
minutes since local midnight so a date is never pushed through a UTC offset.
"""

from collections import namedtuple
from datetime import date, datetime, time

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_time

from ..exceptions import InvalidInputError

MINUTES_PER_DAY = 24 * 60

# Working hours of one staff member on one day.
ScheduleWindow = namedtuple("ScheduleWindow", ["open_time", "close_time"])


class Slot(namedtuple("Slot", ["start", "is_available"])):
    """A candidate start time on the grid, tagged free/taken. Never stored."""

    __slots__ = ()

    @property
    def label(self) -> str:
        return self.start.strftime("%H:%M")


def parse_shop_date(value) -> date:
    """
    Accept a date or a 'YYYY-MM-DD' string and return a date.

    The (year, month, day) triple is used as-is: no timestamp is built, so
    the date can't drift to the previous/next day through a UTC offset.
    datetimes are rejected; callers must pick the civil date themselves.
    """
    if isinstance(value, datetime):
        raise InvalidInputError("Expected a calendar date, got a date-time.")
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidInputError("Invalid date. Use YYYY-MM-DD.")
    try:
        parsed = parse_date(value.strip())
    except ValueError:
        # well formed but impossible, e.g. 2025-02-30
        parsed = None
    if parsed is None:
        raise InvalidInputError(f"Invalid date {value!r}. Use YYYY-MM-DD.")
    return parsed


def parse_hhmm(value) -> time:
    """Accept a time or an 'HH:MM' / 'HH:MM:SS' string."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise InvalidInputError("Invalid time. Use HH:MM.")
    try:
        parsed = parse_time(value.strip())
    except ValueError:
        parsed = None
    if parsed is None:
        raise InvalidInputError(f"Invalid time {value!r}. Use HH:MM.")
    return parsed


def validate_duration(duration_minutes) -> int:
    # bool is an int subclass; True minutes is not a duration
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise InvalidInputError("Duration must be a whole number of minutes.")
    if duration_minutes <= 0:
        raise InvalidInputError("Duration must be greater than zero.")
    return duration_minutes


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise InvalidInputError("Time falls outside the day.")
    return time(minutes // 60, minutes % 60)


def add_minutes(start: time, minutes: int) -> time:
    """start + minutes on the same day; crossing midnight is an error."""
    return from_minutes(to_minutes(start) + minutes)


def shop_now(value=None) -> datetime:
    """
    Normalize "now" to a naive shop-local datetime.

    Aware values are converted to the shop timezone (settings.TIME_ZONE);
    naive values are taken to already be shop wall-clock time.
    """
    if value is None:
        value = timezone.now()
    if not isinstance(value, datetime):
        raise InvalidInputError("'now' must be a date-time.")
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return value.replace(tzinfo=None)


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open [start, end) intersection. Touching intervals don't overlap."""
    return start_a < end_b and end_a > start_b


def generate_candidate_starts(open_time: time, close_time: time,
                              duration_minutes: int, step_minutes: int = 30):
    """
    Candidate starts (minutes since midnight) from open, every step minutes,
    keeping only those whose whole block ends by close.
    """
    if step_minutes <= 0:
        raise InvalidInputError("Slot interval must be greater than zero.")
    open_m = to_minutes(open_time)
    close_m = to_minutes(close_time)

    starts = []
    current = open_m
    while current + duration_minutes <= close_m:
        starts.append(current)
        current += step_minutes
    return starts


def compute_slots(window, occupied, on_date: date, duration_minutes: int,
                  now: datetime, step_minutes: int = 30):
    """
    Build the tagged slot grid for one staff member on one day.

    Args:
        window: ScheduleWindow or None (None = not working that day)
        occupied: iterable of (start, end) times already committed
        on_date: shop-local date being booked
        duration_minutes: total length of the requested services
        now: naive shop-local datetime (see shop_now)
        step_minutes: grid spacing

    Returns:
        list[Slot] in ascending start order. On the current day, starts at
        or before now's time of day are left out of the grid.
    """
    validate_duration(duration_minutes)
    if window is None:
        return []

    busy = [(to_minutes(s), to_minutes(e)) for s, e in occupied]
    cutoff = now.time() if on_date == now.date() else None

    slots = []
    for start in generate_candidate_starts(window.open_time, window.close_time,
                                           duration_minutes, step_minutes):
        # same day: start must be strictly after now
        if cutoff is not None and from_minutes(start) <= cutoff:
            continue
        end = start + duration_minutes
        free = not any(overlaps(start, end, b_start, b_end) for b_start, b_end in busy)
        slots.append(Slot(from_minutes(start), free))
    return slots
