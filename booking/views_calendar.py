# booking/views_calendar.py
#
# Purpose:
# - Staff-only month view of appointments at /admin/appointments-calendar/.
# - Returns JSON the admin calendar screen renders as a month grid.
#
# Behavior:
# - Only staff (or superusers) can access (enforced by @staff_member_required).
# - Query params:
#     ?year=YYYY&month=MM   (defaults to the current shop-local month if missing/invalid)
#     ?staff=ID             (one technician only)
#     ?status=a,b           (only these statuses; default: everything that
#                            holds calendar time, i.e. not cancelled/no_show)
# - Appointment dates are shop-local calendar dates, so no timezone
#   conversion is applied when placing them on a day.
#
import calendar

from django.contrib.admin.views.decorators import staff_member_required
from django.http import JsonResponse

from .models import Appointment
from .services.slot_utils import shop_now


@staff_member_required
def appointments_calendar(request):
    """
    Build a flat 'cells' list with leading blanks for the first week so the
    client can render a Sunday-first grid.
    """
    today = shop_now().date()

    # 1) Parse year/month safely with fallbacks
    try:
        year = int(request.GET.get("year", today.year))
        month = int(request.GET.get("month", today.month))
        if not (1 <= month <= 12):
            raise ValueError()
    except ValueError:
        year, month = today.year, today.month

    _, last_day_num = calendar.monthrange(year, month)

    # 2) Query the month's appointments with the requested filters
    qs = (
        Appointment.objects
        .filter(appointment_date__year=year, appointment_date__month=month)
        .select_related("customer", "staff")
        .prefetch_related("services")
        .order_by("appointment_date", "start_time")
    )
    staff_id = (request.GET.get("staff") or "").strip()
    if staff_id.isdigit():
        qs = qs.filter(staff_id=int(staff_id))

    valid_statuses = {value for value, _ in Appointment.STATUS_CHOICES}
    statuses = [s.strip() for s in (request.GET.get("status") or "").split(",") if s.strip() in valid_statuses]
    if statuses:
        qs = qs.filter(status__in=statuses)
    else:
        qs = qs.exclude(status__in=Appointment.NON_OCCUPYING_STATUSES)

    # 3) Map day number -> appointments with display fields
    days_map = {d: [] for d in range(1, last_day_num + 1)}
    for appt in qs:
        days_map[appt.appointment_date.day].append({
            "id": appt.id,
            "start": appt.start_time.strftime("%H:%M"),
            "end": appt.end_time.strftime("%H:%M"),
            "customer": appt.customer.name if appt.customer else None,
            "staff": appt.staff.name if appt.staff else None,
            "staff_color": appt.staff.color if appt.staff else None,
            "status": appt.status,
            "services": [line.service_name for line in appt.services.all()],
        })

    # 4) Leading blanks: monthrange()[0] is 0=Mon..6=Sun; grid starts on Sunday.
    first_weekday = (calendar.monthrange(year, month)[0] + 1) % 7
    cells = [{"blank": True} for _ in range(first_weekday)]
    for d in range(1, last_day_num + 1):
        cells.append({"blank": False, "day": d, "appointments": days_map[d]})

    # 5) Previous/next month for navigation
    prev_y, prev_m = (year - 1, 12) if month == 1 else (year, month - 1)
    next_y, next_m = (year + 1, 1) if month == 12 else (year, month + 1)

    return JsonResponse({
        "year": year,
        "month": month,
        "month_name": calendar.month_name[month],
        "cells": cells,
        "prev_year": prev_y, "prev_month": prev_m,
        "next_year": next_y, "next_month": next_m,
    })
