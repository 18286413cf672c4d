# booking_system/urls.py
#
# Purpose:
# - Project URL router.
# - Keeps the DRF APIs under /api/ and the staff calendar next to the admin.
#
from django.contrib import admin
from django.urls import path, include

# Staff month calendar (JSON)
from booking.views_calendar import appointments_calendar


urlpatterns = [
    # ================
    # Staff-only pages
    # ================
    # NOTE: registered before admin/ so the admin catch-all doesn't shadow it.
    path("admin/appointments-calendar/", appointments_calendar, name="appointments_calendar"),

    # Django admin
    path("admin/", admin.site.urls),

    # =====
    # API's
    # =====
    # All JSON APIs remain under /api/ to keep URL space clean.
    path("api/", include("booking.urls")),
    path("api/", include("staff.urls")),
    path("api/", include("invoices.urls")),
    path("api/notifications/", include("notifications.urls")),
]
