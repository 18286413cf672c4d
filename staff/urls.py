from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import StaffScheduleViewSet

# SimpleRouter: no API root view, so it can share /api/ with booking.urls
router = SimpleRouter()
router.register(r"staff-schedules", StaffScheduleViewSet, basename="staff-schedule")

urlpatterns = [path("", include(router.urls))]
