"""
NotificationService
-------------------
Purpose:
- Queue SMS notifications for appointment events (notifications.Notification).
- Send the matching email to customers who left an email address.
- Dispatch due SMS through the configured SMS backend.

Delivery:
- Email goes through Django's EMAIL_BACKEND (console in dev).
- SMS goes through settings.SMS_BACKEND (console/logging by default).
- Delivery failures are logged and recorded on the Notification row; they
  never break the request that triggered them.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from django.utils.module_loading import import_string

from configmgr.settings_store import get_setting

from ..phone_utils import format_phone_display, normalize_phone

logger = logging.getLogger(__name__)


def format_time_12h(value) -> str:
    """time(14, 30) -> '2:30 PM'."""
    hour12 = value.hour % 12 or 12
    return f"{hour12}:{value.minute:02d} {'PM' if value.hour >= 12 else 'AM'}"


def format_long_date(value) -> str:
    """date(2025, 12, 1) -> 'Monday, December 1, 2025'."""
    return f"{value:%A, %B} {value.day}, {value.year}"


def _send_email(subject: str, body: str, to_email: str) -> bool:
    """
    Send one email. Never lets an exception bubble up into the request.
    """
    if not to_email:
        return False
    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=[to_email],
            fail_silently=False,  # raise so we can log; we still catch it below
        )
    except Exception:
        logger.exception("Email send error to %s (subject: %s)", to_email, subject)
        return False
    return True


class NotificationService:
    """
    Builds and queues the messages for each appointment event.
    """

    def __init__(self):
        self.shop_name = get_setting("SHOP_NAME", "our shop")
        self.admin_phone = normalize_phone(get_setting("SHOP_ADMIN_PHONE", ""))

    # ---------- queue ----------
    def queue(self, appointment, recipient_phone, recipient_type, notification_type, body,
              scheduled_for=None):
        """
        Add one SMS to the queue. Returns None when there is no phone.
        """
        from notifications.models import Notification

        phone = normalize_phone(recipient_phone)
        if not phone:
            return None
        return Notification.objects.create(
            appointment=appointment,
            recipient_phone=phone,
            recipient_type=recipient_type,
            notification_type=notification_type,
            message_body=body,
            scheduled_for=scheduled_for or timezone.now(),
        )

    def _when(self, appointment):
        return format_long_date(appointment.appointment_date), format_time_12h(appointment.start_time)

    def _services_list(self, appointment) -> str:
        return ", ".join(line.service_name for line in appointment.services.all())

    def _staff_phone(self, appointment):
        phone = normalize_phone(getattr(appointment.staff, "phone", "") or "")
        if phone and phone != self.admin_phone:
            return phone
        return None

    # ---------- events ----------
    def booking_received(self, appointment) -> list:
        """
        New request: acknowledgement + 24h/2h reminders for the customer,
        and an alert for the shop admin.
        """
        day, at = self._when(appointment)
        customer = appointment.customer
        services = self._services_list(appointment)
        created = []

        if customer is not None:
            created.append(self.queue(
                appointment, customer.phone, "customer", "booking_received",
                f"Thank you for booking with {self.shop_name}! Your appointment request for "
                f"{services} on {day} at {at} is pending approval. We'll review and confirm shortly.",
            ))
            starts_at = timezone.make_aware(appointment.starts_at)
            now = timezone.now()
            for hours, kind, text in (
                (24, "reminder_24h", f"Reminder: Your appointment at {self.shop_name} is tomorrow at {at}."),
                (2, "reminder_2h", f"Reminder: Your appointment at {self.shop_name} is in 2 hours at {at}."),
            ):
                due = starts_at - timedelta(hours=hours)
                if due > now:
                    created.append(self.queue(appointment, customer.phone, "customer", kind, text,
                                              scheduled_for=due))

        who = customer.name if customer else "Walk-in"
        staff_name = appointment.staff.name if appointment.staff else "Unassigned"
        created.append(self.queue(
            appointment, self.admin_phone, "admin", "staff_notification",
            f"New appointment request: {who} on {day} at {at}. Services: {services}. "
            f"Assigned to: {staff_name}",
        ))
        return [n for n in created if n is not None]

    def send_confirmation(self, appointment) -> list:
        """Appointment confirmed by the shop."""
        day, at = self._when(appointment)
        customer = appointment.customer
        created = []
        if customer is None:
            return created

        body = (
            f"Your appointment at {self.shop_name} has been confirmed for {day} at {at}. See you soon!\n\n"
            f"{format_phone_display(self.admin_phone)}"
        )
        created.append(self.queue(appointment, customer.phone, "customer", "confirmation", body))

        staff_phone = self._staff_phone(appointment)
        if staff_phone:
            created.append(self.queue(
                appointment, staff_phone, "staff", "staff_assigned",
                f"You've been assigned to: {customer.name} on {day} at {at}",
            ))

        _send_email(f"Appointment Confirmed: {day} at {at}", body, customer.email)
        return [n for n in created if n is not None]

    def send_cancellation(self, appointment) -> list:
        """Appointment cancelled by customer or staff; pending reminders are voided."""
        self.void_pending_reminders(appointment)

        day, at = self._when(appointment)
        customer = appointment.customer
        who = customer.name if customer else "Walk-in"
        created = []

        body = (
            f"Your appointment at {self.shop_name} for {day} at {at} has been cancelled. "
            f"If you think this is an error, please call us at {format_phone_display(self.admin_phone)}."
        )
        if customer is not None:
            created.append(self.queue(appointment, customer.phone, "customer", "cancellation", body))
        created.append(self.queue(
            appointment, self.admin_phone, "admin", "cancellation",
            f"Appointment cancelled: {who} on {day} at {at}. Reason: {appointment.cancellation_reason}",
        ))
        staff_phone = self._staff_phone(appointment)
        if staff_phone:
            created.append(self.queue(
                appointment, staff_phone, "staff", "cancellation",
                f"Appointment cancelled: {who} on {day} at {at}",
            ))

        if customer is not None:
            _send_email(f"Appointment #{appointment.pk} Cancelled", body, customer.email)
        return [n for n in created if n is not None]

    def void_pending_reminders(self, appointment) -> int:
        from notifications.models import Notification

        return (
            Notification.objects
            .filter(appointment=appointment, status=Notification.PENDING,
                    notification_type__in=Notification.REMINDER_TYPES)
            .update(status=Notification.VOID)
        )

    # ---------- delivery ----------
    def dispatch(self, notification, backend=None) -> bool:
        """
        Hand one queued SMS to the SMS backend and record the outcome.
        """
        from notifications.models import Notification

        backend = backend or import_string(settings.SMS_BACKEND)()
        try:
            backend.send(notification.recipient_phone, notification.message_body)
        except Exception as exc:
            logger.exception("SMS #%s to %s failed", notification.pk, notification.recipient_phone)
            notification.status = Notification.FAILED
            notification.error_message = str(exc)
            notification.save(update_fields=["status", "error_message"])
            return False

        notification.status = Notification.SENT
        notification.sent_at = timezone.now()
        notification.error_message = ""
        notification.save(update_fields=["status", "sent_at", "error_message"])
        return True

    def dispatch_due(self, limit=50, now=None) -> dict:
        """Send pending notifications whose scheduled_for has passed."""
        from notifications.models import Notification

        now = now or timezone.now()
        backend = import_string(settings.SMS_BACKEND)()
        due = list(
            Notification.objects
            .filter(status=Notification.PENDING, scheduled_for__lte=now)
            .order_by("scheduled_for", "id")[:limit]
        )
        processed = sent = 0
        for notification in due:
            # Claim the row first; an overlapping run that claimed it already wins.
            claimed = (
                Notification.objects
                .filter(pk=notification.pk, status=Notification.PENDING)
                .update(status=Notification.SENDING)
            )
            if claimed != 1:
                logger.info("SMS #%s already claimed by another run", notification.pk)
                continue
            notification.status = Notification.SENDING
            processed += 1
            if self.dispatch(notification, backend=backend):
                sent += 1
        return {"processed": processed, "sent": sent, "failed": processed - sent}
