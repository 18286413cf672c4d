"""
booking_manager.py
------------------
Coordinates appointment creation, status changes and cancellation.

Rules:
- New appointments always start as "pending", with
  end_time = start_time + sum of the selected services' durations.
- Creation is an atomic check-and-insert: the technician row is locked
  (select_for_update) and the slot is re-validated with AvailabilityEngine
  inside the same transaction, so two requests for the same slot can't both
  be written. The loser gets SlotConflictError.
- Status changes follow Appointment.TRANSITIONS.
- Customers may cancel only CANCELLATION_WINDOW_HOURS (default 24) or more
  before the start; staff may cancel any time.

Notes:
- Unassigned appointments (staff=None) skip the overlap check; they don't
  hold anyone's calendar.
- The lock serializes writers per technician on PostgreSQL/MySQL. SQLite
  ignores FOR UPDATE, so the project opens SQLite transactions with
  BEGIN IMMEDIATE (settings.DATABASES): a second booking waits for the
  first to commit and then re-checks. A writer that still finds the
  database locked gets SlotConflictError.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from django.db import OperationalError, transaction
from django.utils import timezone

from configmgr.settings_store import get_int_setting

from ..exceptions import (
    CancellationNotAllowedError,
    InvalidInputError,
    InvalidTransitionError,
    SlotConflictError,
)
from ..models import Appointment, AppointmentService, Service, Staff
from .availability_engine import AvailabilityEngine
from .slot_utils import parse_hhmm, parse_shop_date, shop_now

logger = logging.getLogger(__name__)


def resolve_bookable_services(services):
    """
    Turn Service instances or ids into a list of bookable Services (with
    their settings), keeping the caller's order.

    Raises:
        InvalidInputError: empty selection, unknown ids, or a service that
        is inactive / not bookable online.
    """
    items = list(services or [])
    if not items:
        raise InvalidInputError("Select at least one service.")

    ids = []
    for item in items:
        pk = item.pk if isinstance(item, Service) else item
        try:
            ids.append(int(pk))
        except (TypeError, ValueError):
            raise InvalidInputError(f"Invalid service id {pk!r}.") from None

    found = {
        s.pk: s
        for s in Service.objects.filter(pk__in=ids).select_related("setting")
    }
    resolved = []
    for pk in ids:
        service = found.get(pk)
        if service is None:
            raise InvalidInputError(f"Service {pk} does not exist.")
        setting = getattr(service, "setting", None)
        if not service.active or setting is None or not setting.is_bookable:
            raise InvalidInputError(f"{service.name} cannot be booked online.")
        resolved.append(service)
    return resolved


def total_duration_for(services) -> int:
    """Sum of the selected services' durations, in minutes."""
    return sum(s.setting.duration_minutes for s in resolve_bookable_services(services))


class BookingManager:
    def __init__(self, engine=None):
        self.availability = engine or AvailabilityEngine()

    def create_appointment(self, customer, staff, appointment_date, start_time, services,
                           customer_notes="", now=None):
        """
        Create a pending appointment after re-checking the slot under lock.

        Args:
            customer: Customer instance (or None for a walk-in)
            staff: Staff instance, or None if not assigned yet
            appointment_date: date or 'YYYY-MM-DD' (shop-local)
            start_time: time or 'HH:MM'
            services: Service instances or ids, in the order performed
            customer_notes: optional string
            now: shop-local "now"; defaults to the engine clock

        Raises:
            InvalidInputError: bad date/time, services, or a past start.
            SlotConflictError: the technician is not free for the whole block,
                or another booking held the database while this one ran.
        """
        try:
            return self._create_locked(customer, staff, appointment_date, start_time, services,
                                       customer_notes, now)
        except OperationalError as exc:
            if "locked" not in str(exc).lower():
                raise
            logger.warning("Booking for staff #%s on %s %s lost a write race: %s",
                           getattr(staff, "pk", None), appointment_date, start_time, exc)
            raise SlotConflictError() from exc

    @transaction.atomic
    def _create_locked(self, customer, staff, appointment_date, start_time, services,
                       customer_notes, now):
        day = parse_shop_date(appointment_date)
        start = parse_hhmm(start_time).replace(second=0, microsecond=0)
        selected = resolve_bookable_services(services)
        total_duration = sum(s.setting.duration_minutes for s in selected)
        total_price = sum((s.price for s in selected), Decimal("0"))
        end = self.availability.end_time_for(start, total_duration)

        current = shop_now(now if now is not None else self.availability.clock())
        if (day, start) <= (current.date(), current.time()):
            raise InvalidInputError("Start time must be in the future.")

        if staff is not None:
            # Serialize writers for this technician until commit.
            locked = Staff.objects.select_for_update().filter(pk=staff.pk).first()
            if locked is None or not locked.is_active:
                raise InvalidInputError("Selected technician is not available.")
            if not self.availability.is_slot_available(staff.pk, day, start, total_duration, now=current):
                logger.info("Slot conflict for staff #%s on %s at %s", staff.pk, day, start)
                raise SlotConflictError()

        appointment = Appointment.objects.create(
            customer=customer,
            staff=staff,
            appointment_date=day,
            start_time=start,
            end_time=end,
            status=Appointment.PENDING,
            total_duration_minutes=total_duration,
            total_price=total_price,
            customer_notes=customer_notes or "",
        )
        AppointmentService.objects.bulk_create([
            AppointmentService(
                appointment=appointment,
                service=service,
                service_name=service.name,
                duration_minutes=service.setting.duration_minutes,
                price=service.price,
                sequence_order=index,
            )
            for index, service in enumerate(selected)
        ])
        logger.info("Created appointment #%s (%s %s-%s, staff #%s)",
                    appointment.pk, day, start, end, getattr(staff, "pk", None))
        return appointment

    @transaction.atomic
    def transition(self, appointment, new_status, now=None):
        """
        Move an appointment to `new_status` (staff action).
        Cancellation is delegated to cancel_appointment(by_customer=False).
        """
        if new_status == Appointment.CANCELLED:
            return self.cancel_appointment(appointment, by_customer=False, now=now)
        if new_status == Appointment.NO_SHOW:
            return self.mark_no_show(appointment, now=now)
        self._check_transition(appointment, new_status)

        appointment.status = new_status
        appointment.save(update_fields=["status", "updated_at"])
        logger.info("Appointment #%s -> %s", appointment.pk, new_status)
        return appointment

    @transaction.atomic
    def mark_no_show(self, appointment, now=None):
        """pending -> no_show, allowed only once the start time has passed."""
        self._check_transition(appointment, Appointment.NO_SHOW)
        current = shop_now(now if now is not None else self.availability.clock())
        if appointment.starts_at > current:
            raise InvalidTransitionError("Cannot mark a no-show before the appointment time.")

        appointment.status = Appointment.NO_SHOW
        appointment.save(update_fields=["status", "updated_at"])
        logger.info("Appointment #%s -> no_show", appointment.pk)
        return appointment

    @transaction.atomic
    def cancel_appointment(self, appointment, by_customer=True, reason="", now=None):
        """
        Cancel an appointment.

        Customers must cancel at least CANCELLATION_WINDOW_HOURS before the
        start; staff cancellations have no window. The freed slot shows up
        on the next availability query.
        """
        self._check_transition(appointment, Appointment.CANCELLED)
        current = shop_now(now if now is not None else self.availability.clock())

        if by_customer:
            window_hours = get_int_setting("CANCELLATION_WINDOW_HOURS", 24, minimum=0)
            if appointment.starts_at - current < timedelta(hours=window_hours):
                raise CancellationNotAllowedError(
                    f"Appointments must be cancelled at least {window_hours} hours in advance."
                )

        appointment.status = Appointment.CANCELLED
        appointment.cancelled_at = timezone.now()
        appointment.cancellation_reason = reason or (
            "Customer cancelled via portal" if by_customer else "Cancelled by staff"
        )
        appointment.save(update_fields=["status", "cancelled_at", "cancellation_reason", "updated_at"])
        logger.info("Appointment #%s cancelled (%s)", appointment.pk, "customer" if by_customer else "staff")
        return appointment

    @staticmethod
    def _check_transition(appointment, new_status):
        if new_status not in dict(Appointment.STATUS_CHOICES):
            raise InvalidTransitionError(f"Unknown status {new_status!r}.")
        if not appointment.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot change appointment from {appointment.status} to {new_status}."
            )
