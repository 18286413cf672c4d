# booking/urls.py
#
# Purpose:
# - Expose REST API endpoints for the booking app via DRF router:
#     /api/customers/, /api/services/, /api/staff/, /api/appointments/
# - Appointment extras live on the viewset as actions:
#     GET  /api/appointments/availability/
#     POST /api/appointments/{id}/status/
#     POST /api/appointments/{id}/cancel/
#     GET  /api/appointments/lookup/?phone=
#     POST /api/appointments/{id}/invoice/

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AppointmentViewSet,
    CustomerViewSet,
    ServiceViewSet,
    StaffViewSet,
)

# --------------------------
# DRF Router registrations
# --------------------------
router = DefaultRouter()
router.register(r"customers", CustomerViewSet, basename="customer")
router.register(r"services", ServiceViewSet, basename="service")
router.register(r"staff", StaffViewSet, basename="staff")
router.register(r"appointments", AppointmentViewSet, basename="appointment")

urlpatterns = [
    path("", include(router.urls)),
]
