# booking/models.py
#
# Purpose:
# - Core domain models for the auto-shop back office.
#
# Design highlights:
# - Customer: person + vehicle; matched by normalized phone.
#   • phone is unique in the database; clean() gives the friendly error.
# - Service: catalog item; "active" flag controls visibility.
# - ServiceSetting: booking rules for one service (duration, buffer,
#   bookable flag, max_concurrent). buffer_minutes and max_concurrent are
#   stored for the admin screens; the availability engine does not apply them.
# - Staff: technician who can be assigned to appointments.
# - Appointment:
#   • wall-clock appointment_date + start_time/end_time in the shop timezone
#   • status is lowercase: pending/confirmed/in_progress/completed/cancelled/no_show
#   • every status except NON_OCCUPYING_STATUSES blocks a technician's calendar
#   • clean() (admin forms) rejects overlaps and illegal status edits
# - AppointmentService: one line per booked service (name/price snapshot).
#
# Notes for developers:
# - Status changes go through BookingManager so transitions are validated
#   and notification signals see update_fields with "status".
#

from datetime import datetime

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from .phone_utils import normalize_phone


# -------------------------
# Customer (person who books)
# -------------------------
class Customer(models.Model):
    """
    A customer and the vehicle they bring in.
    - phone is stored normalized (+1XXXXXXXXXX), unique, and is the lookup key.
    """
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, unique=True)
    email = models.EmailField(blank=True)
    vehicle_make = models.CharField(max_length=100, blank=True)
    vehicle_model = models.CharField(max_length=100, blank=True)
    vehicle_year = models.CharField(max_length=4, blank=True)
    vehicle_plate = models.CharField(max_length=20, blank=True)
    vin = models.CharField(max_length=17, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.phone = normalize_phone(self.phone)
        super().save(*args, **kwargs)

    def clean(self):
        """
        App-level duplicate prevention: one customer per normalized phone.
        Allows saving when updating the same record (excludes self.pk).
        """
        phone = normalize_phone(self.phone)
        if not phone:
            return

        qs = Customer.objects.filter(phone=phone)
        if self.pk:
            qs = qs.exclude(pk=self.pk)

        if qs.exists():
            raise ValidationError("A customer with this phone number already exists.")


# -------------------------
# Service catalog item
# -------------------------
class Service(models.Model):
    """
    A service offered by the shop (oil change, brake job, ...).

    Rules:
    - price must be > 0
    - active controls visibility
    - bookability online is decided by ServiceSetting.is_bookable
    """
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True)
    price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(0.01)],  # price must be > 0
    )
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} (${self.price})"


class ServiceSetting(models.Model):
    """
    Online-booking rules for one service.
    """
    service = models.OneToOneField(Service, on_delete=models.CASCADE, related_name="setting")
    duration_minutes = models.PositiveIntegerField(
        default=60,
        validators=[MinValueValidator(1)],  # duration must be >= 1 minute
    )
    buffer_minutes = models.PositiveIntegerField(default=15)
    is_bookable = models.BooleanField(default=False)
    max_concurrent = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    requires_vehicle_info = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.service.name}: {self.duration_minutes} min"


# -------------------------
# Staff member / Technician
# -------------------------
class Staff(models.Model):
    """
    A technician who can be assigned to appointments.
    Weekly working hours live in staff.StaffSchedule.
    """
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=100, default="technician")
    is_active = models.BooleanField(default=True)
    color = models.CharField(max_length=7, default="#3B82F6")  # calendar colour
    bio = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "staff"

    def __str__(self):
        return self.name


# -------------------------
# Appointment record
# -------------------------
class Appointment(models.Model):
    """
    A booked visit.

    Lifecycle:
      pending -> confirmed -> in_progress -> completed
      pending/confirmed/in_progress -> cancelled
      pending -> no_show
    completed, cancelled and no_show are terminal.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (IN_PROGRESS, "In progress"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
        (NO_SHOW, "No show"),
    ]

    # Statuses that never hold calendar time
    NON_OCCUPYING_STATUSES = (CANCELLED, NO_SHOW)

    TRANSITIONS = {
        PENDING: {CONFIRMED, CANCELLED, NO_SHOW},
        CONFIRMED: {IN_PROGRESS, CANCELLED},
        IN_PROGRESS: {COMPLETED, CANCELLED},
        COMPLETED: set(),
        CANCELLED: set(),
        NO_SHOW: set(),
    }

    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="appointments")
    staff = models.ForeignKey(Staff, on_delete=models.SET_NULL, null=True, blank=True,
                              related_name="appointments")
    appointment_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=PENDING,
        help_text="Appointment lifecycle status",
    )
    total_duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    total_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    customer_notes = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["appointment_date", "start_time"]
        indexes = [models.Index(fields=["staff", "appointment_date"])]

    def __str__(self):
        who = self.customer.name if self.customer else "Walk-in"
        return f"{who} on {self.appointment_date} {self.start_time:%H:%M} ({self.status})"

    @property
    def starts_at(self) -> datetime:
        """Naive shop-local start of the appointment."""
        return datetime.combine(self.appointment_date, self.start_time)

    @property
    def occupies_calendar(self) -> bool:
        return self.status not in self.NON_OCCUPYING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not self.TRANSITIONS.get(self.status)

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, set())

    def clean(self):
        """
        Admin/form validation:
        - end_time - start_time must equal total_duration_minutes
        - status changes of a saved appointment follow TRANSITIONS
        - an occupying appointment may not overlap another one of the same
          technician on the same day
        """
        self._check_status_change()
        if self.start_time is None or self.end_time is None or not self.total_duration_minutes:
            return
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        if end - start != self.total_duration_minutes:
            raise ValidationError("End time must equal start time plus the total duration.")
        self._check_overlap()

    def _check_status_change(self):
        if self.pk is None:
            return
        previous = Appointment.objects.filter(pk=self.pk).values_list("status", flat=True).first()
        if previous is None or previous == self.status:
            return
        if self.status not in self.TRANSITIONS.get(previous, set()):
            raise ValidationError({
                "status": f"Cannot change appointment from {previous} to {self.status}.",
            })

    def _check_overlap(self):
        if self.staff_id is None or self.appointment_date is None or not self.occupies_calendar:
            return
        clashes = (
            Appointment.objects
            .filter(staff_id=self.staff_id, appointment_date=self.appointment_date,
                    start_time__lt=self.end_time, end_time__gt=self.start_time)
            .exclude(status__in=self.NON_OCCUPYING_STATUSES)
        )
        if self.pk is not None:
            clashes = clashes.exclude(pk=self.pk)
        other = clashes.first()
        if other is not None:
            raise ValidationError(
                f"{self.staff} already has an appointment from "
                f"{other.start_time:%H:%M} to {other.end_time:%H:%M} that day."
            )


class AppointmentService(models.Model):
    """
    One booked service of an appointment. Name, duration and price are
    copied at booking time so later catalog edits don't rewrite history.
    """
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name="services")
    service = models.ForeignKey(Service, on_delete=models.SET_NULL, null=True, blank=True)
    service_name = models.CharField(max_length=200)
    duration_minutes = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=8, decimal_places=2)
    sequence_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["appointment_id", "sequence_order"]

    def __str__(self):
        return f"{self.service_name} ({self.duration_minutes} min)"
