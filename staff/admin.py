# staff/admin.py
from django.contrib import admin
from .models import StaffSchedule  # Only schedules are managed here

@admin.register(StaffSchedule)
class StaffScheduleAdmin(admin.ModelAdmin):
    list_display = ("staff", "day_of_week", "start_time", "end_time", "is_available")
    list_filter = ("staff", "is_available")
    search_fields = ("staff__name",)
