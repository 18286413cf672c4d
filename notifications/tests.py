from datetime import date, time, timedelta
from io import StringIO

from django.contrib.auth.models import User
from django.core import mail
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from booking.models import Appointment
from booking.services.booking_manager import BookingManager
from booking.services.notification_service import NotificationService, format_long_date, format_time_12h
from booking.tests.helpers import make_customer, make_schedule, make_service, make_staff
from notifications.backends import LocmemSmsBackend
from notifications.models import Notification

DAY = date(2099, 6, 1)


class BrokenSmsBackend:
    def send(self, to, body):
        raise RuntimeError("carrier rejected message")


class OverlappingRunBackend(LocmemSmsBackend):
    """The first send starts a second dispatch run, as overlapping cron jobs would."""

    started = False
    nested_result = None

    def send(self, to, body):
        if not OverlappingRunBackend.started:
            OverlappingRunBackend.started = True
            OverlappingRunBackend.nested_result = NotificationService().dispatch_due()
        super().send(to, body)


class AppointmentNotificationTests(TestCase):
    def setUp(self):
        self.staff = make_staff(phone="416-555-0123")
        make_schedule(self.staff, DAY)
        self.customer = make_customer()
        self.oil = make_service("Oil Change", duration=30)
        self.manager = BookingManager()

    def book(self):
        with self.captureOnCommitCallbacks(execute=True):
            return self.manager.create_appointment(
                customer=self.customer, staff=self.staff, appointment_date=DAY,
                start_time="10:00", services=[self.oil],
            )

    def kinds(self, appointment, **filters):
        return sorted(
            (n.recipient_type, n.notification_type)
            for n in Notification.objects.filter(appointment=appointment, **filters)
        )

    def test_new_booking_queues_ack_reminders_and_admin_alert(self):
        appt = self.book()

        self.assertEqual(self.kinds(appt), [
            ("admin", "staff_notification"),
            ("customer", "booking_received"),
            ("customer", "reminder_24h"),
            ("customer", "reminder_2h"),
        ])
        ack = Notification.objects.get(appointment=appt, notification_type="booking_received")
        self.assertEqual(ack.recipient_phone, "+16475550101")
        self.assertIn("Oil Change", ack.message_body)
        self.assertIn("10:00 AM", ack.message_body)

        reminder = Notification.objects.get(appointment=appt, notification_type="reminder_2h")
        starts_at = timezone.make_aware(appt.starts_at)
        self.assertEqual(reminder.scheduled_for, starts_at - timedelta(hours=2))

        admin = Notification.objects.get(appointment=appt, recipient_type="admin")
        self.assertEqual(admin.recipient_phone, "+16475016039")

    def test_nothing_is_queued_before_commit(self):
        self.manager.create_appointment(
            customer=self.customer, staff=self.staff, appointment_date=DAY,
            start_time="10:00", services=[self.oil],
        )
        self.assertEqual(Notification.objects.count(), 0)

    def test_confirmation_notifies_customer_and_assigned_staff(self):
        appt = self.book()
        with self.captureOnCommitCallbacks(execute=True):
            self.manager.transition(appt, Appointment.CONFIRMED)

        self.assertIn(("customer", "confirmation"), self.kinds(appt))
        assigned = Notification.objects.get(appointment=appt, notification_type="staff_assigned")
        self.assertEqual(assigned.recipient_phone, "+14165550123")

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["jane@example.com"])
        self.assertIn("confirmed", mail.outbox[0].body)

    def test_staff_who_uses_the_admin_phone_gets_no_extra_message(self):
        self.staff.phone = "647-501-6039"
        self.staff.save()
        appt = self.book()
        with self.captureOnCommitCallbacks(execute=True):
            self.manager.transition(appt, Appointment.CONFIRMED)

        self.assertFalse(Notification.objects.filter(notification_type="staff_assigned").exists())

    def test_cancellation_voids_reminders_and_tells_everyone(self):
        appt = self.book()
        with self.captureOnCommitCallbacks(execute=True):
            self.manager.cancel_appointment(appt, by_customer=False, reason="Parts delayed")

        reminders = Notification.objects.filter(appointment=appt, notification_type__in=Notification.REMINDER_TYPES)
        self.assertEqual({n.status for n in reminders}, {Notification.VOID})

        self.assertEqual(self.kinds(appt, notification_type="cancellation"), [
            ("admin", "cancellation"),
            ("customer", "cancellation"),
            ("staff", "cancellation"),
        ])
        admin = Notification.objects.get(appointment=appt, notification_type="cancellation", recipient_type="admin")
        self.assertIn("Parts delayed", admin.message_body)
        self.assertEqual(len(mail.outbox), 1)

    def test_plain_status_progress_sends_nothing(self):
        appt = self.book()
        self.manager.transition(appt, Appointment.CONFIRMED)
        before = Notification.objects.count()
        with self.captureOnCommitCallbacks(execute=True):
            self.manager.transition(appt, Appointment.IN_PROGRESS)
        self.assertEqual(Notification.objects.count(), before)


class FormattingTests(TestCase):
    def test_formats(self):
        self.assertEqual(format_time_12h(time(14, 30)), "2:30 PM")
        self.assertEqual(format_time_12h(time(0, 5)), "12:05 AM")
        self.assertEqual(format_long_date(date(2025, 12, 1)), "Monday, December 1, 2025")


@override_settings(SMS_BACKEND="notifications.backends.LocmemSmsBackend")
class DispatchTests(TestCase):
    def setUp(self):
        LocmemSmsBackend.outbox = []
        self.now = timezone.now()
        self.due = Notification.objects.create(
            recipient_phone="+16475550101", recipient_type="customer",
            notification_type="confirmation", message_body="See you soon",
            scheduled_for=self.now - timedelta(minutes=5),
        )
        self.later = Notification.objects.create(
            recipient_phone="+16475550101", recipient_type="customer",
            notification_type="reminder_2h", message_body="In 2 hours",
            scheduled_for=self.now + timedelta(hours=3),
        )

    def test_only_due_messages_are_sent(self):
        result = NotificationService().dispatch_due(now=self.now)

        self.assertEqual(result, {"processed": 1, "sent": 1, "failed": 0})
        self.assertEqual(LocmemSmsBackend.outbox, [("+16475550101", "See you soon")])
        self.due.refresh_from_db()
        self.later.refresh_from_db()
        self.assertEqual(self.due.status, Notification.SENT)
        self.assertIsNotNone(self.due.sent_at)
        self.assertEqual(self.later.status, Notification.PENDING)

    def test_void_messages_are_skipped(self):
        self.due.status = Notification.VOID
        self.due.save()
        self.assertEqual(NotificationService().dispatch_due(now=self.now)["processed"], 0)

    @override_settings(SMS_BACKEND="notifications.tests.BrokenSmsBackend")
    def test_backend_failure_is_recorded(self):
        with self.assertLogs("booking.services.notification_service", level="ERROR"):
            result = NotificationService().dispatch_due(now=self.now)

        self.assertEqual(result["failed"], 1)
        self.due.refresh_from_db()
        self.assertEqual(self.due.status, Notification.FAILED)
        self.assertIn("carrier rejected", self.due.error_message)

    def test_management_command(self):
        out = StringIO()
        call_command("process_notifications", "--limit", "10", stdout=out)
        self.assertIn("sent=1", out.getvalue())

    def test_process_endpoint_is_staff_only(self):
        client = APIClient()
        self.assertEqual(client.post("/api/notifications/process").status_code, 403)

        client.force_authenticate(User.objects.create_user("boss", password="x", is_staff=True))
        resp = client.post("/api/notifications/process")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["sent"], 1)

    @override_settings(SMS_BACKEND="notifications.tests.OverlappingRunBackend")
    def test_overlapping_runs_send_each_message_once(self):
        OverlappingRunBackend.started = False
        second = Notification.objects.create(
            recipient_phone="+16475550102", recipient_type="staff",
            notification_type="staff_notification", message_body="New job",
            scheduled_for=self.now - timedelta(minutes=1),
        )

        outer = NotificationService().dispatch_due(now=self.now)

        self.assertEqual(sorted(LocmemSmsBackend.outbox),
                         [("+16475550101", "See you soon"), ("+16475550102", "New job")])
        self.assertEqual(outer["processed"] + OverlappingRunBackend.nested_result["processed"], 2)
        self.assertEqual(Notification.objects.filter(status=Notification.SENT).count(), 2)
        second.refresh_from_db()
        self.assertEqual(second.status, Notification.SENT)

    def test_message_claimed_by_another_run_is_skipped(self):
        Notification.objects.filter(pk=self.due.pk).update(status=Notification.SENDING)

        result = NotificationService().dispatch_due(now=self.now)

        self.assertEqual(result["processed"], 0)
        self.assertEqual(LocmemSmsBackend.outbox, [])
