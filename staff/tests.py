from datetime import time

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIClient

from booking.tests.helpers import make_staff
from .models import StaffSchedule
from .schedules import ensure_default_week


class DefaultWeekTests(TestCase):
    def setUp(self):
        self.staff = make_staff()

    def test_creates_six_working_days_and_sunday_off(self):
        self.assertEqual(ensure_default_week(self.staff), 7)

        sunday = StaffSchedule.objects.get(staff=self.staff, day_of_week=0)
        self.assertFalse(sunday.is_available)
        saturday = StaffSchedule.objects.get(staff=self.staff, day_of_week=6)
        self.assertTrue(saturday.is_available)
        self.assertEqual((saturday.start_time, saturday.end_time), (time(9, 0), time(18, 0)))

    def test_existing_days_are_kept(self):
        StaffSchedule.objects.create(staff=self.staff, day_of_week=1,
                                     start_time=time(7, 0), end_time=time(15, 0))
        self.assertEqual(ensure_default_week(self.staff), 6)
        self.assertEqual(ensure_default_week(self.staff), 0)
        self.assertEqual(StaffSchedule.objects.get(staff=self.staff, day_of_week=1).start_time, time(7, 0))


class ScheduleValidationTests(TestCase):
    def setUp(self):
        self.staff = make_staff()

    def test_working_day_needs_ordered_times(self):
        with self.assertRaises(ValidationError):
            StaffSchedule(staff=self.staff, day_of_week=2, start_time=time(18, 0), end_time=time(9, 0)).clean()
        with self.assertRaises(ValidationError):
            StaffSchedule(staff=self.staff, day_of_week=2, start_time=time(9, 0)).clean()

    def test_day_off_needs_no_times(self):
        StaffSchedule(staff=self.staff, day_of_week=0, is_available=False).clean()


class ScheduleApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.staff = make_staff()
        ensure_default_week(self.staff)

    def test_requires_staff_login(self):
        self.assertEqual(self.client.get("/api/staff-schedules/").status_code, 403)

    def test_filter_and_update(self):
        self.client.force_authenticate(User.objects.create_user("boss", password="x", is_staff=True))
        other = make_staff(name="Other Tech")
        ensure_default_week(other)

        resp = self.client.get("/api/staff-schedules/", {"staff": self.staff.id})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data), 7)

        monday = StaffSchedule.objects.get(staff=self.staff, day_of_week=1)
        resp = self.client.patch(f"/api/staff-schedules/{monday.id}/", {"end_time": "08:00"}, format="json")
        self.assertEqual(resp.status_code, 400)
        resp = self.client.patch(f"/api/staff-schedules/{monday.id}/", {"end_time": "16:00"}, format="json")
        self.assertEqual(resp.status_code, 200)
        monday.refresh_from_db()
        self.assertEqual(monday.end_time, time(16, 0))
