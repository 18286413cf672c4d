from datetime import date, datetime, time, timezone as dt_timezone

from django.test import SimpleTestCase, override_settings

from booking.exceptions import InvalidInputError
from booking.services.slot_utils import (
    ScheduleWindow,
    add_minutes,
    compute_slots,
    generate_candidate_starts,
    overlaps,
    parse_hhmm,
    parse_shop_date,
    shop_now,
)

DAY = date(2030, 6, 3)
EARLIER = datetime(2030, 6, 1, 8, 0)  # two days before DAY
OPEN_9_TO_6 = ScheduleWindow(time(9, 0), time(18, 0))


def labels(slots, available=None):
    return [s.label for s in slots if available is None or s.is_available == available]


class ParsingTests(SimpleTestCase):
    def test_parse_shop_date_keeps_calendar_day(self):
        self.assertEqual(parse_shop_date("2030-06-03"), DAY)
        self.assertEqual(parse_shop_date(" 2030-12-31 "), date(2030, 12, 31))
        self.assertEqual(parse_shop_date(DAY), DAY)

    def test_parse_shop_date_rejects_malformed(self):
        for bad in ("", "06/03/2030", "2030-13-01", "2030-02-30", "tomorrow", None, 20300603):
            with self.assertRaises(InvalidInputError):
                parse_shop_date(bad)

    def test_parse_shop_date_rejects_datetime(self):
        with self.assertRaises(InvalidInputError):
            parse_shop_date(datetime(2030, 6, 3, 23, 30))

    def test_parse_hhmm(self):
        self.assertEqual(parse_hhmm("09:30"), time(9, 30))
        self.assertEqual(parse_hhmm("14:00:00"), time(14, 0))
        with self.assertRaises(InvalidInputError):
            parse_hhmm("25:00")

    def test_add_minutes_refuses_to_cross_midnight(self):
        self.assertEqual(add_minutes(time(10, 0), 90), time(11, 30))
        with self.assertRaises(InvalidInputError):
            add_minutes(time(23, 30), 60)

    @override_settings(TIME_ZONE="America/Toronto")
    def test_shop_now_converts_aware_values_to_shop_time(self):
        aware = datetime(2030, 6, 3, 18, 0, tzinfo=dt_timezone.utc)
        self.assertEqual(shop_now(aware), datetime(2030, 6, 3, 14, 0))

    def test_shop_now_keeps_naive_values(self):
        self.assertEqual(shop_now(datetime(2030, 6, 3, 14, 0)), datetime(2030, 6, 3, 14, 0))


class OverlapTests(SimpleTestCase):
    def test_half_open_intervals(self):
        self.assertTrue(overlaps(600, 660, 630, 690))
        self.assertTrue(overlaps(600, 720, 630, 660))  # containment
        self.assertFalse(overlaps(600, 660, 660, 720))  # back-to-back
        self.assertFalse(overlaps(660, 720, 600, 660))


class CandidateGridTests(SimpleTestCase):
    def test_no_candidate_runs_past_close(self):
        for duration in (15, 30, 45, 60, 90, 120, 540):
            starts = generate_candidate_starts(time(9, 0), time(18, 0), duration, 30)
            self.assertTrue(starts)
            for start in starts:
                self.assertLessEqual(start + duration, 18 * 60)

    def test_duration_longer_than_day_gives_nothing(self):
        self.assertEqual(generate_candidate_starts(time(9, 0), time(18, 0), 600, 30), [])

    def test_non_positive_step_is_rejected(self):
        with self.assertRaises(InvalidInputError):
            generate_candidate_starts(time(9, 0), time(18, 0), 30, 0)


class ComputeSlotsTests(SimpleTestCase):
    def test_closed_day_has_no_slots(self):
        self.assertEqual(compute_slots(None, [], DAY, 30, EARLIER), [])

    def test_existing_appointment_blocks_overlapping_candidates(self):
        slots = compute_slots(OPEN_9_TO_6, [(time(10, 0), time(11, 0))], DAY, 30, EARLIER)

        self.assertEqual(labels(slots)[0], "09:00")
        self.assertEqual(labels(slots)[-1], "17:30")
        self.assertEqual(labels(slots, available=False), ["10:00", "10:30"])
        available = labels(slots, available=True)
        self.assertEqual(available[:3], ["09:00", "09:30", "11:00"])
        self.assertEqual(len(available), 16)

    def test_long_job_last_start_fits_before_close(self):
        slots = compute_slots(OPEN_9_TO_6, [], DAY, 90, EARLIER)
        self.assertEqual(labels(slots)[-1], "16:30")

    def test_back_to_back_is_allowed(self):
        slots = compute_slots(OPEN_9_TO_6, [(time(9, 0), time(10, 0)), (time(11, 0), time(12, 0))],
                              DAY, 60, EARLIER)
        self.assertIn("10:00", labels(slots, available=True))
        self.assertNotIn("10:30", labels(slots, available=True))

    def test_same_day_cutoff_is_strict(self):
        now = datetime(2030, 6, 3, 14, 0)
        grid = labels(compute_slots(OPEN_9_TO_6, [], DAY, 30, now))
        self.assertNotIn("13:30", grid)
        self.assertNotIn("14:00", grid)
        self.assertEqual(grid[0], "14:30")

    def test_cutoff_only_applies_to_today(self):
        now = datetime(2030, 6, 2, 17, 0)
        self.assertEqual(labels(compute_slots(OPEN_9_TO_6, [], DAY, 30, now))[0], "09:00")

    def test_available_slots_never_overlap_busy_time(self):
        busy = [(time(9, 30), time(10, 15)), (time(13, 0), time(14, 30)), (time(17, 0), time(17, 45))]
        for duration in (15, 30, 60, 75):
            for slot in compute_slots(OPEN_9_TO_6, busy, DAY, duration, EARLIER, step_minutes=15):
                if not slot.is_available:
                    continue
                start = slot.start.hour * 60 + slot.start.minute
                for b_start, b_end in busy:
                    self.assertFalse(overlaps(start, start + duration,
                                              b_start.hour * 60 + b_start.minute,
                                              b_end.hour * 60 + b_end.minute))

    def test_invalid_duration(self):
        for bad in (0, -30, "30", 30.0, True):
            with self.assertRaises(InvalidInputError):
                compute_slots(OPEN_9_TO_6, [], DAY, bad, EARLIER)
