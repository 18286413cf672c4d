# notifications/models.py
#
# Purpose:
# - Queue of SMS messages about appointments (received, confirmed,
#   reminders, cancellations), for customers, staff and the shop admin.
#
# Design:
# - FK to booking.Appointment (nullable so manual messages are possible).
# - 'status' records the delivery attempt result; 'void' marks reminders
#   dropped because their appointment was cancelled.
# - dispatch_due moves a row pending -> sending before handing it to the
#   SMS backend, so overlapping runs never send the same row twice.
# - 'scheduled_for' is when the message becomes due.
#
from django.db import models
from booking.models import Appointment


class Notification(models.Model):
    RECIPIENT_CHOICES = [
        ("customer", "Customer"),
        ("staff", "Staff"),
        ("admin", "Admin"),
    ]
    TYPE_CHOICES = [
        ("booking_received", "Booking received"),
        ("confirmation", "Confirmation"),
        ("staff_assigned", "Staff assigned"),
        ("staff_notification", "Staff notification"),
        ("reminder_24h", "Reminder 24h"),
        ("reminder_2h", "Reminder 2h"),
        ("cancellation", "Cancellation"),
    ]
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    VOID = "void"
    SENDING = "sending"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (SENDING, "Sending"),
        (SENT, "Sent"),
        (FAILED, "Failed"),
        (VOID, "Void"),
    ]
    REMINDER_TYPES = ("reminder_24h", "reminder_2h")

    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, null=True, blank=True,
                                    related_name="notifications")
    recipient_phone = models.CharField(max_length=20)
    recipient_type = models.CharField(max_length=10, choices=RECIPIENT_CHOICES)
    notification_type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    message_body = models.TextField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)
    error_message = models.TextField(blank=True)
    scheduled_for = models.DateTimeField()
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["scheduled_for", "id"]

    def __str__(self) -> str:
        return f"{self.notification_type} to {self.recipient_phone} at {self.scheduled_for:%Y-%m-%d %H:%M}"
