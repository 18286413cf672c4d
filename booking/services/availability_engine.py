"""
availability_engine.py
----------------------
Computes bookable start times for one technician on one shop-local date by
checking a fixed grid of candidate slots against:
1) the technician's working hours for that weekday (staff.StaffSchedule), and
2) the technician's existing appointments (double-booking prevention).

Rules:
- No schedule row, a day off, or an inactive/unknown technician -> no slots.
- A candidate is offered only if start + duration <= closing time.
- Overlap is half-open: existing_start < new_end AND existing_end > new_start,
  so back-to-back appointments are allowed.
- Cancelled and no-show appointments never block time; pending ones do.
- On the current day only starts strictly after "now" are offered.

"now" is an explicit value. The injected clock is read only when the caller
doesn't pass one.

Failed lookups are logged and the day reports no slots (fail closed).
"""

import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError

from configmgr.settings_store import get_int_setting

from ..exceptions import UpstreamDataError
from ..models import Appointment
from .slot_utils import (
    ScheduleWindow,
    add_minutes,
    compute_slots,
    overlaps,
    parse_hhmm,
    parse_shop_date,
    shop_now,
    to_minutes,
    validate_duration,
)

logger = logging.getLogger(__name__)


def weekday_index(day) -> int:
    """0=Sunday .. 6=Saturday, the numbering used by StaffSchedule."""
    return day.isoweekday() % 7


def get_staff_schedule(staff_id, weekday: int):
    """
    Working window of an active technician on a weekday, or None when the
    technician is unknown, inactive, off that day, or has no hours set.
    """
    from staff.models import StaffSchedule

    try:
        row = (
            StaffSchedule.objects
            .filter(staff_id=staff_id, staff__is_active=True, day_of_week=weekday)
            .first()
        )
    except (TypeError, ValueError, ValidationError):
        # malformed id, e.g. "abc"; treated like an unknown technician
        return None

    if row is None or not row.is_available:
        return None
    if row.start_time is None or row.end_time is None or row.end_time <= row.start_time:
        return None
    return ScheduleWindow(row.start_time, row.end_time)


def list_occupying_appointments(staff_id, on_date):
    """
    (start_time, end_time) pairs of the technician's appointments that hold
    calendar time on `on_date`.
    """
    qs = (
        Appointment.objects
        .filter(staff_id=staff_id, appointment_date=on_date)
        .exclude(status__in=Appointment.NON_OCCUPYING_STATUSES)
    )
    return list(qs.order_by("start_time").values_list("start_time", "end_time"))


def shop_clock():
    """Current shop-local wall-clock time (naive)."""
    return shop_now()


class AvailabilityEngine:
    """
    Args (all optional, for injection in tests):
        schedule_lookup: callable(staff_id, weekday) -> ScheduleWindow | None
        appointment_lookup: callable(staff_id, date) -> [(start, end), ...]
        clock: callable() -> datetime, shop-local "now"
        step_minutes: grid spacing; defaults to SLOT_INTERVAL_MINUTES
    """

    def __init__(self, schedule_lookup=None, appointment_lookup=None, clock=None, step_minutes=None):
        self.schedule_lookup = schedule_lookup or get_staff_schedule
        self.appointment_lookup = appointment_lookup or list_occupying_appointments
        self.clock = clock or shop_clock
        self.step_minutes = step_minutes

    def _step(self) -> int:
        if self.step_minutes is not None:
            return self.step_minutes
        return get_int_setting("SLOT_INTERVAL_MINUTES", 30)

    def _now(self, now):
        return shop_now(now if now is not None else self.clock())

    def _load_window(self, staff_id, day):
        try:
            return self.schedule_lookup(staff_id, weekday_index(day))
        except DatabaseError as exc:
            raise UpstreamDataError(f"Schedule lookup failed for staff {staff_id}") from exc

    def _load_occupied(self, staff_id, day):
        try:
            return list(self.appointment_lookup(staff_id, day))
        except DatabaseError as exc:
            raise UpstreamDataError(f"Appointment lookup failed for staff {staff_id} on {day}") from exc

    def get_time_slots(self, staff_id, on_date, total_duration_minutes, now=None):
        """
        Full candidate grid for the day, each Slot tagged available or not.

        Raises:
            InvalidInputError: malformed date or non-positive duration.
        """
        day = parse_shop_date(on_date)
        duration = validate_duration(total_duration_minutes)
        current = self._now(now)

        try:
            window = self._load_window(staff_id, day)
            if window is None:
                return []
            occupied = self._load_occupied(staff_id, day)
        except UpstreamDataError:
            logger.exception("No slots offered for staff %s on %s: data unavailable", staff_id, day)
            return []

        return compute_slots(window, occupied, day, duration, current, self._step())

    def get_available_times(self, staff_id, on_date, total_duration_minutes, now=None):
        """Available starts only, as 'HH:MM' strings for the booking widget."""
        slots = self.get_time_slots(staff_id, on_date, total_duration_minutes, now=now)
        return [slot.label for slot in slots if slot.is_available]

    def is_slot_available(self, staff_id, on_date, start_time, duration_minutes, now=None) -> bool:
        """
        Check one exact start (grid-aligned or not) for the write path.

        Unlike get_time_slots this lets UpstreamDataError propagate: a
        booking must not be accepted when the calendar can't be read.
        """
        day = parse_shop_date(on_date)
        start = parse_hhmm(start_time)
        duration = validate_duration(duration_minutes)
        current = self._now(now)

        if day < current.date() or (day == current.date() and start <= current.time()):
            return False

        window = self._load_window(staff_id, day)
        if window is None:
            return False

        new_start = to_minutes(start)
        new_end = new_start + duration
        if new_start < to_minutes(window.open_time) or new_end > to_minutes(window.close_time):
            return False

        for existing_start, existing_end in self._load_occupied(staff_id, day):
            if overlaps(new_start, new_end, to_minutes(existing_start), to_minutes(existing_end)):
                return False
        return True

    @staticmethod
    def end_time_for(start_time, duration_minutes):
        """start + duration on the same day (InvalidInputError past midnight)."""
        return add_minutes(parse_hhmm(start_time), validate_duration(duration_minutes))
