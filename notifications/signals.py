# notifications/signals.py
#
# Purpose:
# - Queue SMS (and send email) when an Appointment is created or its
#   status changes.
#   * created              -> booking received + reminders + admin alert
#   * status -> confirmed  -> confirmation (+ staff assignment)
#   * status -> cancelled  -> cancellation to customer/admin/staff,
#                             pending reminders voided
#
# Notes:
# - Work runs on transaction commit, so the appointment's service lines
#   (written after the appointment row) are visible and a rolled-back
#   booking sends nothing.
# - A status change is detected from update_fields; saves with
#   update_fields=None (admin form) are treated as touching status.
#
import logging
from functools import partial

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from booking.models import Appointment
from booking.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _status_touched(created: bool, update_fields) -> bool:
    if created:
        return False
    return update_fields is None or "status" in update_fields


def _run(handler_name: str, appointment_id: int):
    appointment = (
        Appointment.objects
        .select_related("customer", "staff")
        .filter(pk=appointment_id)
        .first()
    )
    if appointment is None:
        return
    try:
        getattr(NotificationService(), handler_name)(appointment)
    except Exception:
        logger.exception("Could not queue %s notifications for appointment #%s", handler_name, appointment_id)


@receiver(post_save, sender=Appointment)
def appointment_notifications(sender, instance: Appointment, created: bool, update_fields=None, **kwargs):
    """
    Decide which notification set (if any) this save triggers.
    """
    if created:
        handler = "booking_received"
    elif _status_touched(created, update_fields) and instance.status == Appointment.CONFIRMED:
        handler = "send_confirmation"
    elif _status_touched(created, update_fields) and instance.status == Appointment.CANCELLED:
        handler = "send_cancellation"
    else:
        return

    transaction.on_commit(partial(_run, handler, instance.pk))
