# booking/tests/test_api.py
#
# End-to-end checks of the public booking flow and the staff endpoints,
# through DRF's APIClient. Dates are far in the future so the real clock
# never reaches them.

from datetime import date, time

from django.contrib.auth.models import User
from django.db import IntegrityError, transaction
from django.test import TestCase
from rest_framework.test import APIClient

from booking.models import Appointment, Customer
from staff.models import StaffSchedule

from .helpers import make_customer, make_schedule, make_service, make_staff

DAY = date(2099, 6, 1)


class PublicBookingApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.staff = make_staff()
        make_schedule(self.staff, DAY)
        self.customer = make_customer()
        self.oil = make_service("Oil Change", duration=30)
        self.diag = make_service("Diagnostic", duration=60)

    def availability(self, **params):
        query = {"staff": self.staff.id, "date": DAY.isoformat(), **params}
        return self.client.get("/api/appointments/availability/", query)

    def book(self, start="10:00", services=None, staff=None):
        return self.client.post("/api/appointments/", {
            "customer": self.customer.id,
            "staff": (staff or self.staff).id,
            "appointment_date": DAY.isoformat(),
            "start_time": start,
            "services": services or [self.oil.id],
        }, format="json")

    def test_availability_by_services(self):
        resp = self.availability(services=f"{self.oil.id},{self.diag.id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["duration_minutes"], 90)
        self.assertEqual(resp.data["slots"][0], "09:00")
        self.assertEqual(resp.data["slots"][-1], "16:30")

    def test_availability_by_duration_and_datetime_input(self):
        resp = self.availability(duration=30, date=f"{DAY.isoformat()}T00:00:00Z")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["date"], DAY.isoformat())
        self.assertEqual(len(resp.data["slots"]), 18)

    def test_availability_bad_input(self):
        self.assertEqual(self.client.get("/api/appointments/availability/", {"staff": self.staff.id}).status_code, 400)
        self.assertEqual(self.availability(duration=30, date="2099-02-30").status_code, 400)
        self.assertEqual(self.availability(duration=0).status_code, 400)
        self.assertEqual(self.availability(duration="abc").status_code, 400)

    def test_availability_unknown_staff_is_empty(self):
        resp = self.client.get("/api/appointments/availability/",
                               {"staff": 99999, "date": DAY.isoformat(), "duration": 30})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["slots"], [])

    def test_booking_then_slot_disappears(self):
        resp = self.book("10:00", services=[self.diag.id])
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["status"], "pending")
        self.assertEqual(resp.data["end_time"], "11:00:00")

        slots = self.availability(duration=30).data["slots"]
        self.assertNotIn("10:00", slots)
        self.assertNotIn("10:30", slots)
        self.assertIn("11:00", slots)

    def test_double_booking_returns_conflict(self):
        self.assertEqual(self.book("10:00").status_code, 201)
        resp = self.book("10:00")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(Appointment.objects.count(), 1)

    def test_booking_non_bookable_service_is_rejected(self):
        hidden = make_service("Engine Swap", duration=480, bookable=False)
        self.assertEqual(self.book("10:00", services=[hidden.id]).status_code, 400)

    def test_customer_find_or_create_by_phone(self):
        resp = self.client.post("/api/customers/", {
            "name": "Jane D.", "phone": "(647) 555-0101", "vehicle_make": "Honda",
        }, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, {"id": self.customer.id, "name": "Jane Driver"})
        self.assertEqual(Customer.objects.get(pk=self.customer.id).vehicle_make, "Honda")

        resp = self.client.post("/api/customers/", {"name": "New Person", "phone": "4165550199"}, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(set(resp.data), {"id", "name"})
        self.assertEqual(Customer.objects.get(pk=resp.data["id"]).phone, "+14165550199")

    def test_anonymous_find_or_create_keeps_existing_details(self):
        resp = self.client.post("/api/customers/", {
            "name": "Someone Else", "phone": "647-555-0101", "email": "other@example.com",
        }, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("email", resp.data)
        self.assertNotIn("phone", resp.data)

        customer = Customer.objects.get(pk=self.customer.id)
        self.assertEqual(customer.name, "Jane Driver")
        self.assertEqual(customer.email, "jane@example.com")

    def test_phone_is_unique_in_the_database(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Customer.objects.create(name="Copy", phone="+16475550101")
    def test_customer_cancel_checks_phone(self):
        appt_id = self.book("10:00").data["id"]

        resp = self.client.post(f"/api/appointments/{appt_id}/cancel/", {"phone": "000"}, format="json")
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(f"/api/appointments/{appt_id}/cancel/", {"phone": "647 555 0101"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Appointment.objects.get(pk=appt_id).status, "cancelled")
        self.assertIn("10:00", self.availability(duration=30).data["slots"])

    def test_status_change_requires_staff(self):
        appt_id = self.book("10:00").data["id"]
        resp = self.client.post(f"/api/appointments/{appt_id}/status/", {"status": "confirmed"}, format="json")
        self.assertEqual(resp.status_code, 403)
    def test_lookup_by_phone_lists_own_appointments_newest_first(self):
        early = self.book("09:00").data["id"]
        late = self.book("14:00").data["id"]
        Appointment.objects.filter(pk=late).update(internal_notes="Owes from last visit")
        other = make_customer(name="Someone Else", phone="416-555-0123", email="")
        Appointment.objects.filter(pk=early).update(customer=other)
        mine = self.book("11:00").data["id"]

        resp = self.client.get("/api/appointments/lookup/", {"phone": "(647) 555-0101"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([a["id"] for a in resp.data], [late, mine])
        self.assertNotIn("internal_notes", resp.data[0])
        self.assertEqual(resp.data[0]["services"][0]["service_name"], "Oil Change")

    def test_lookup_unknown_or_missing_phone(self):
        resp = self.client.get("/api/appointments/lookup/", {"phone": "905-555-0000"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, [])

        self.assertEqual(self.client.get("/api/appointments/lookup/").status_code, 400)



class StaffApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(username="boss", password="pass12345", is_staff=True)
        self.client.force_authenticate(self.admin)
        self.staff = make_staff()
        make_schedule(self.staff, DAY)
        self.customer = make_customer()
        self.oil = make_service("Oil Change", duration=30)

    def make_appointment(self):
        resp = self.client.post("/api/appointments/", {
            "customer": self.customer.id,
            "staff": self.staff.id,
            "appointment_date": DAY.isoformat(),
            "start_time": "10:00",
            "services": [self.oil.id],
        }, format="json")
        return resp.data["id"]

    def test_status_changes(self):
        appt_id = self.make_appointment()
        url = f"/api/appointments/{appt_id}/status/"

        self.assertEqual(self.client.post(url, {"status": "confirmed"}, format="json").status_code, 200)
        resp = self.client.post(url, {"status": "completed"}, format="json")
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(url, {"status": "cancelled", "reason": "Customer called"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["cancellation_reason"], "Customer called")

    def test_staff_cancel_bypasses_phone_and_window(self):
        appt_id = self.make_appointment()
        resp = self.client.post(f"/api/appointments/{appt_id}/cancel/", {}, format="json")
        self.assertEqual(resp.status_code, 200)

    def test_list_filters(self):
        self.make_appointment()
        self.assertEqual(len(self.client.get("/api/appointments/", {"date": DAY.isoformat()}).data), 1)
        self.assertEqual(len(self.client.get("/api/appointments/", {"status": "confirmed"}).data), 0)
        self.assertEqual(len(self.client.get("/api/appointments/", {"date": "not-a-date"}).data), 0)

    def test_new_staff_gets_default_week(self):
        resp = self.client.post("/api/staff/", {"name": "New Tech", "email": "new@shop.test"}, format="json")
        self.assertEqual(resp.status_code, 201)

        rows = StaffSchedule.objects.filter(staff_id=resp.data["id"]).order_by("day_of_week")
        self.assertEqual(rows.count(), 7)
        self.assertFalse(rows[0].is_available)  # Sunday
        self.assertTrue(all(r.is_available for r in rows[1:]))
        self.assertEqual(rows[1].start_time, time(9, 0))

    def test_service_create_with_setting(self):
        resp = self.client.post("/api/services/", {
            "name": "Alignment", "price": "99.99",
            "setting": {"duration_minutes": 60, "is_bookable": True},
        }, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["setting"]["duration_minutes"], 60)
        self.assertEqual(resp.data["setting"]["buffer_minutes"], 15)

    def test_calendar_filters_by_staff_and_status(self):
        appt_id = self.make_appointment()
        other = make_staff(name="Other Tech")
        self.client.force_login(self.admin)

        resp = self.client.get("/admin/appointments-calendar/",
                               {"year": DAY.year, "month": DAY.month, "staff": self.staff.id})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        entries = [a for cell in body["cells"] if not cell["blank"] for a in cell["appointments"]]
        self.assertEqual([e["id"] for e in entries], [appt_id])

        resp = self.client.get("/admin/appointments-calendar/",
                               {"year": DAY.year, "month": DAY.month, "staff": other.id})
        entries = [a for cell in resp.json()["cells"] if not cell["blank"] for a in cell["appointments"]]
        self.assertEqual(entries, [])

        resp = self.client.get("/admin/appointments-calendar/",
                               {"year": DAY.year, "month": DAY.month, "status": "cancelled"})
        entries = [a for cell in resp.json()["cells"] if not cell["blank"] for a in cell["appointments"]]
        self.assertEqual(entries, [])

    def test_calendar_is_staff_only(self):
        anonymous = APIClient()
        resp = anonymous.get("/admin/appointments-calendar/")
        self.assertEqual(resp.status_code, 302)

    def test_staff_find_or_create_returns_and_updates_full_record(self):
        resp = self.client.post("/api/customers/", {
            "name": "Jane Driver", "phone": "647-555-0101", "email": "jane.new@example.com",
        }, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["phone"], "+16475550101")
        self.assertEqual(resp.data["email"], "jane.new@example.com")

    def test_customer_with_invoices_cannot_be_deleted(self):
        from booking.services.invoice_service import InvoiceService

        InvoiceService().create_invoice(self.customer, [
            {"item_type": "service", "item_id": self.oil.id},
        ])
        resp = self.client.delete(f"/api/customers/{self.customer.id}/")
        self.assertEqual(resp.status_code, 400)
        self.assertTrue(Customer.objects.filter(pk=self.customer.id).exists())
