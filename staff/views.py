from rest_framework import viewsets
from rest_framework.permissions import BasePermission
from .models import StaffSchedule
from .serializers import StaffScheduleSerializer

class IsStaffOnly(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_staff)

class StaffScheduleViewSet(viewsets.ModelViewSet):
    """
    Weekly schedules. Optional ?staff=ID filter.
    """
    serializer_class = StaffScheduleSerializer
    permission_classes = [IsStaffOnly]

    def get_queryset(self):
        qs = StaffSchedule.objects.all().order_by("staff_id", "day_of_week")
        staff_id = self.request.query_params.get("staff")
        if staff_id and staff_id.isdigit():
            qs = qs.filter(staff_id=int(staff_id))
        return qs
