from django.core.exceptions import ValidationError
from django.db import models


class StaffSchedule(models.Model):
    """
    Weekly working hours of a staff member.
    One row per (staff, weekday); day_of_week is 0=Sunday .. 6=Saturday.
    Points to booking.Staff to avoid having two Staff models.
    """
    DAY_CHOICES = [
        (0, "Sunday"),
        (1, "Monday"),
        (2, "Tuesday"),
        (3, "Wednesday"),
        (4, "Thursday"),
        (5, "Friday"),
        (6, "Saturday"),
    ]

    staff = models.ForeignKey(
        "booking.Staff",                 # ← reference booking app model
        on_delete=models.CASCADE,
        related_name="schedules",
    )
    day_of_week = models.PositiveSmallIntegerField(choices=DAY_CHOICES)
    start_time = models.TimeField(null=True, blank=True)
    end_time = models.TimeField(null=True, blank=True)
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["staff_id", "day_of_week"]
        constraints = [
            models.UniqueConstraint(fields=["staff", "day_of_week"], name="uniq_staff_schedule_per_day"),
        ]

    def __str__(self):
        day = self.get_day_of_week_display()
        if not self.is_available or self.start_time is None or self.end_time is None:
            return f"{self.staff.name}: {day} off"
        return f"{self.staff.name}: {day} {self.start_time:%H:%M} - {self.end_time:%H:%M}"

    def clean(self):
        if self.is_available:
            if self.start_time is None or self.end_time is None:
                raise ValidationError("Working days need both a start and an end time.")
            if self.end_time <= self.start_time:
                raise ValidationError("End time must be after start time.")
