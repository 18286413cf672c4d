from datetime import date, datetime, time, timedelta, timezone as dt_timezone

from django.db import DatabaseError
from django.test import TestCase, override_settings

from booking.exceptions import InvalidInputError, UpstreamDataError
from booking.models import Appointment
from booking.services.availability_engine import AvailabilityEngine, weekday_index
from booking.services.booking_manager import BookingManager
from configmgr.models import SystemSetting

from .helpers import make_schedule, make_staff

DAY = date(2030, 6, 3)
BEFORE = datetime(2030, 6, 1, 8, 0)


def book(staff, start, end, status=Appointment.CONFIRMED, day=DAY):
    start_m = start.hour * 60 + start.minute
    end_m = end.hour * 60 + end.minute
    return Appointment.objects.create(
        staff=staff,
        appointment_date=day,
        start_time=start,
        end_time=end,
        status=status,
        total_duration_minutes=end_m - start_m,
    )


class AvailabilityEngineTests(TestCase):
    def setUp(self):
        self.staff = make_staff()
        make_schedule(self.staff, DAY)
        self.engine = AvailabilityEngine(step_minutes=30, clock=lambda: BEFORE)

    def test_weekday_numbering_starts_on_sunday(self):
        self.assertEqual(weekday_index(date(2030, 6, 2)), 0)  # Sunday
        self.assertEqual(weekday_index(DAY), 1)               # Monday
        self.assertEqual(weekday_index(date(2030, 6, 8)), 6)  # Saturday

    def test_example_day_with_one_confirmed_job(self):
        book(self.staff, time(10, 0), time(11, 0))

        slots = self.engine.get_time_slots(self.staff.id, DAY, 30, now=BEFORE)
        by_label = {s.label: s.is_available for s in slots}

        self.assertTrue(by_label["09:00"])
        self.assertTrue(by_label["09:30"])
        self.assertFalse(by_label["10:00"])
        self.assertFalse(by_label["10:30"])
        self.assertTrue(by_label["11:00"])
        self.assertEqual(slots[-1].label, "17:30")
        self.assertTrue(slots[-1].is_available)

    def test_long_job_last_offered_start(self):
        times = self.engine.get_available_times(self.staff.id, "2030-06-03", 90, now=BEFORE)
        self.assertEqual(times[-1], "16:30")

    def test_available_times_are_hhmm_strings_in_order(self):
        times = self.engine.get_available_times(self.staff.id, DAY, 60, now=BEFORE)
        self.assertEqual(times[:3], ["09:00", "09:30", "10:00"])
        self.assertEqual(times, sorted(times))

    def test_day_off_or_missing_schedule_gives_empty(self):
        other = make_staff(name="Sam Off")
        make_schedule(other, DAY, is_available=False)
        self.assertEqual(self.engine.get_time_slots(other.id, DAY, 30, now=BEFORE), [])

        sunday = DAY - timedelta(days=1)
        self.assertEqual(self.engine.get_time_slots(self.staff.id, sunday, 30, now=BEFORE), [])

    def test_unknown_inactive_or_malformed_staff_gives_empty(self):
        inactive = make_staff(name="Old Timer", is_active=False)
        make_schedule(inactive, DAY)

        self.assertEqual(self.engine.get_time_slots(inactive.id, DAY, 30, now=BEFORE), [])
        self.assertEqual(self.engine.get_time_slots(99999, DAY, 30, now=BEFORE), [])
        self.assertEqual(self.engine.get_time_slots("abc", DAY, 30, now=BEFORE), [])

    def test_invalid_input_raises(self):
        with self.assertRaises(InvalidInputError):
            self.engine.get_time_slots(self.staff.id, "2030-02-30", 30, now=BEFORE)
        with self.assertRaises(InvalidInputError):
            self.engine.get_time_slots(self.staff.id, DAY, 0, now=BEFORE)
        with self.assertRaises(InvalidInputError):
            self.engine.get_time_slots(self.staff.id, DAY, -15, now=BEFORE)

    def test_pending_blocks_but_cancelled_and_no_show_do_not(self):
        book(self.staff, time(9, 0), time(10, 0), status=Appointment.PENDING)
        book(self.staff, time(12, 0), time(13, 0), status=Appointment.CANCELLED)
        book(self.staff, time(15, 0), time(16, 0), status=Appointment.NO_SHOW)

        times = self.engine.get_available_times(self.staff.id, DAY, 60, now=BEFORE)
        self.assertNotIn("09:00", times)
        self.assertIn("12:00", times)
        self.assertIn("15:00", times)

    def test_unassigned_and_other_staff_appointments_do_not_block(self):
        other = make_staff(name="Other Tech")
        book(None, time(9, 0), time(12, 0))
        book(other, time(9, 0), time(12, 0))

        self.assertIn("09:00", self.engine.get_available_times(self.staff.id, DAY, 60, now=BEFORE))

    def test_same_day_cutoff(self):
        now = datetime(2030, 6, 3, 14, 0)
        times = self.engine.get_available_times(self.staff.id, DAY, 30, now=now)
        self.assertNotIn("13:30", times)
        self.assertNotIn("14:00", times)
        self.assertEqual(times[0], "14:30")

    @override_settings(TIME_ZONE="America/Toronto")
    def test_aware_now_is_read_in_shop_time(self):
        now = datetime(2030, 6, 3, 18, 0, tzinfo=dt_timezone.utc)  # 14:00 in Toronto
        self.assertEqual(self.engine.get_available_times(self.staff.id, DAY, 30, now=now)[0], "14:30")

    def test_clock_is_used_when_now_is_omitted(self):
        engine = AvailabilityEngine(step_minutes=30, clock=lambda: datetime(2030, 6, 3, 16, 59))
        self.assertEqual(engine.get_available_times(self.staff.id, DAY, 30), ["17:00", "17:30"])

    def test_identical_inputs_give_identical_output(self):
        book(self.staff, time(11, 0), time(12, 30))
        first = self.engine.get_time_slots(self.staff.id, DAY, 45, now=BEFORE)
        second = self.engine.get_time_slots(self.staff.id, DAY, 45, now=BEFORE)
        self.assertEqual(first, second)

    def test_cancelling_frees_the_slot_on_next_query(self):
        appt = book(self.staff, time(10, 0), time(11, 0))
        self.assertNotIn("10:00", self.engine.get_available_times(self.staff.id, DAY, 60, now=BEFORE))

        BookingManager(engine=self.engine).cancel_appointment(appt, by_customer=False, now=BEFORE)

        self.assertIn("10:00", self.engine.get_available_times(self.staff.id, DAY, 60, now=BEFORE))

    def test_slot_interval_comes_from_system_setting(self):
        SystemSetting.objects.create(key="SLOT_INTERVAL_MINUTES", value="15")
        engine = AvailabilityEngine(clock=lambda: BEFORE)
        self.assertEqual(engine.get_available_times(self.staff.id, DAY, 30)[:3], ["09:00", "09:15", "09:30"])

    def test_lookup_failure_fails_closed(self):
        def broken(*args):
            raise DatabaseError("connection lost")

        no_appointments = AvailabilityEngine(appointment_lookup=broken, step_minutes=30)
        no_schedules = AvailabilityEngine(schedule_lookup=broken, step_minutes=30)

        with self.assertLogs("booking.services.availability_engine", level="ERROR"):
            self.assertEqual(no_appointments.get_time_slots(self.staff.id, DAY, 30, now=BEFORE), [])
        with self.assertLogs("booking.services.availability_engine", level="ERROR"):
            self.assertEqual(no_schedules.get_time_slots(self.staff.id, DAY, 30, now=BEFORE), [])

    def test_is_slot_available_checks_exact_times(self):
        book(self.staff, time(10, 0), time(11, 0))

        self.assertTrue(self.engine.is_slot_available(self.staff.id, DAY, time(9, 15), 45, now=BEFORE))
        self.assertFalse(self.engine.is_slot_available(self.staff.id, DAY, time(9, 30), 45, now=BEFORE))
        self.assertTrue(self.engine.is_slot_available(self.staff.id, DAY, "11:00", 60, now=BEFORE))
        self.assertFalse(self.engine.is_slot_available(self.staff.id, DAY, "17:30", 60, now=BEFORE))
        self.assertFalse(self.engine.is_slot_available(self.staff.id, DAY, "08:30", 30, now=BEFORE))

    def test_is_slot_available_rejects_past_starts(self):
        now = datetime(2030, 6, 3, 12, 0)
        self.assertFalse(self.engine.is_slot_available(self.staff.id, DAY, "12:00", 30, now=now))
        self.assertTrue(self.engine.is_slot_available(self.staff.id, DAY, "12:30", 30, now=now))

    def test_is_slot_available_surfaces_lookup_failure(self):
        def broken(*args):
            raise DatabaseError("connection lost")

        engine = AvailabilityEngine(appointment_lookup=broken)
        with self.assertRaises(UpstreamDataError):
            engine.is_slot_available(self.staff.id, DAY, "10:00", 30, now=BEFORE)
